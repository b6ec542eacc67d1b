"""
Message Service - case conversations
"""

from sqlmodel import Session, select, func, col
from typing import Optional, List, Tuple

from supportdesk.models import Message, Case, User, Role
from supportdesk.services.case_service import CaseService, recipient_for

INITIAL_MESSAGES_LIMIT = 50


class MessageService:
    """Service for case messages"""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, message_id: int) -> Optional[Message]:
        return self.session.get(Message, message_id)

    def send(self, case: Case, sender: User, text: str) -> Message:
        """Store a message from ``sender`` and bump the case"""
        recipient_id, recipient_role = recipient_for(case, sender)
        sender_role = Role.CUSTOMER.value if sender.id == case.customer_id else Role.AGENT.value

        message = Message(
            case_id=case.id,
            sender_id=sender.id,
            sender_role=sender_role,
            recipient_id=recipient_id,
            recipient_role=recipient_role,
            text=text.strip(),
        )
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)

        CaseService(self.session).touch(case, last_message_id=message.id)
        return message

    def list_for_case(self, case_id: int, page: int = 1, limit: int = 50) -> Tuple[List[Message], int]:
        total = self.count_for_case(case_id)
        messages = self.session.exec(
            select(Message)
            .where(Message.case_id == case_id)
            .order_by(Message.timestamp, Message.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(messages), total

    def initial(self, case_id: int, limit: int = INITIAL_MESSAGES_LIMIT) -> List[Message]:
        return list(self.session.exec(
            select(Message)
            .where(Message.case_id == case_id)
            .order_by(Message.timestamp, Message.id)
            .limit(limit)
        ).all())

    def count_for_case(self, case_id: int) -> int:
        return self.session.exec(
            select(func.count()).select_from(Message).where(Message.case_id == case_id)
        ).one()

    def mark_read(self, case_id: int, reader: User, message_ids: Optional[List[int]] = None) -> int:
        """Mark messages of a case as read by ``reader``; own messages are left alone"""
        query = (
            select(Message)
            .where(Message.case_id == case_id)
            .where(Message.sender_id != reader.id)
            .where(Message.read == False)  # noqa: E712
        )
        if message_ids:
            query = query.where(col(Message.id).in_(message_ids))
        messages = self.session.exec(query).all()
        for message in messages:
            message.read = True
            self.session.add(message)
        self.session.commit()
        return len(messages)

    def unread_count(self, case_id: int, reader: User) -> int:
        """Unread messages of a case sent by anyone but ``reader``"""
        return self.session.exec(
            select(func.count())
            .select_from(Message)
            .where(Message.case_id == case_id)
            .where(Message.sender_id != reader.id)
            .where(Message.read == False)  # noqa: E712
        ).one()

    def search(
        self,
        user: User,
        q: str,
        case_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Message], int]:
        filters = [col(Message.text).icontains(q, autoescape=True)]
        if case_id is not None:
            filters.append(Message.case_id == case_id)
        case_ids = CaseService(self.session).accessible_case_ids(user)
        if case_ids is not None:
            filters.append(col(Message.case_id).in_(case_ids))

        total = self.session.exec(select(func.count()).select_from(Message).where(*filters)).one()
        messages = self.session.exec(
            select(Message)
            .where(*filters)
            .order_by(Message.timestamp.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(messages), total

    def recent(self, user: User, limit: int = 10) -> List[Message]:
        query = select(Message)
        case_ids = CaseService(self.session).accessible_case_ids(user)
        if case_ids is not None:
            query = query.where(col(Message.case_id).in_(case_ids))
        return list(self.session.exec(
            query.order_by(Message.timestamp.desc(), Message.id.desc()).limit(limit)
        ).all())
