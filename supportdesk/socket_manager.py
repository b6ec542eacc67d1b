"""
WebSocket connection manager

Sockets are grouped in named rooms: ``user:<id>`` for personal events,
``case:<id>`` for a case conversation and ``tracking`` for the live map.
Every frame is JSON ``{"event": <name>, "data": <payload>}``.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

TRACKING_ROOM = "tracking"

def user_room(user_id: int) -> str:
    return f"user:{user_id}"

def case_room(case_id: int) -> str:
    return f"case:{case_id}"

class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        for name in list(self.rooms):
            self.rooms[name].discard(websocket)
            if not self.rooms[name]:
                del self.rooms[name]

    def join(self, websocket: WebSocket, room: str):
        self.rooms.setdefault(room, set()).add(websocket)

    def leave(self, websocket: WebSocket, room: str):
        members = self.rooms.get(room)
        if not members:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room]

    async def send(self, websocket: WebSocket, event: str, data: Any = None):
        await websocket.send_json({"event": event, "data": jsonable_encoder(data)})

    async def emit(self, room: str, event: str, data: Any = None, skip: Optional[WebSocket] = None):
        """Send an event to every socket in ``room`` except ``skip``"""
        frame = {"event": event, "data": jsonable_encoder(data)}
        for connection in list(self.rooms.get(room, ())):
            if connection is skip:
                continue
            try:
                await connection.send_json(frame)
            except Exception as e:
                logger.warning(f"Dropping socket after failed send to {room}: {e}")
                self.disconnect(connection)


manager = ConnectionManager()
