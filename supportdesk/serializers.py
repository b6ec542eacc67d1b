"""
JSON shapes returned by the API
"""

import math
from typing import Optional

from sqlmodel import Session

from supportdesk.models import User, Case, Message, Notification

_PRIVATE_USER_FIELDS = {
    "password_hash",
    "live_latitude",
    "live_longitude",
    "live_location_updated_at",
}


def live_location(user: User) -> Optional[dict]:
    if user.live_latitude is None or user.live_longitude is None:
        return None
    # GeoJSON point order: [longitude, latitude]
    return {
        "type": "Point",
        "coordinates": [user.live_longitude, user.live_latitude],
        "lastUpdated": user.live_location_updated_at,
    }


def user_to_dict(user: User) -> dict:
    data = user.model_dump(exclude=_PRIVATE_USER_FIELDS)
    data["liveLocation"] = live_location(user)
    return data


def user_summary(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "id": user.id,
        "fullname": user.fullname,
        "email": user.email,
        "phone": user.phone,
        "department": user.department,
    }


def case_to_dict(session: Session, case: Case) -> dict:
    data = case.model_dump()
    data["customer"] = user_summary(session.get(User, case.customer_id))
    data["assigned_agent"] = (
        user_summary(session.get(User, case.assigned_agent_id))
        if case.assigned_agent_id else None
    )
    return data


def message_to_dict(message: Message) -> dict:
    return message.model_dump()


def notification_to_dict(notification: Notification) -> dict:
    data = notification.model_dump(exclude={"extra"})
    data["metadata"] = notification.extra or {}
    return data


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "total": total,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }
