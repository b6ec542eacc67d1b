"""
Notification Service - in-app notifications pushed over the socket relay
"""

import logging
from sqlmodel import Session, select, func
from typing import Optional, List, Tuple

from supportdesk.models import Notification, NotificationType, Case, CaseStatus
from supportdesk.serializers import notification_to_dict
from supportdesk.socket_manager import manager, user_room

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50


class NotificationService:
    """Service for a user's notifications"""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        recipient_id: int,
        type: str,
        title: str,
        message: str,
        case_id: Optional[int] = None,
        extra: Optional[dict] = None,
    ) -> Notification:
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            case_id=case_id,
            extra=extra or {},
        )
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def list_for_user(
        self,
        recipient_id: int,
        limit: int = 20,
        skip: int = 0,
        unread_only: bool = False,
    ) -> Tuple[List[Notification], int]:
        query = select(Notification).where(Notification.recipient_id == recipient_id)
        count_query = select(func.count()).select_from(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            query = query.where(Notification.read == False)  # noqa: E712
            count_query = count_query.where(Notification.read == False)  # noqa: E712

        notifications = self.session.exec(
            query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit)
        ).all()
        return list(notifications), self.session.exec(count_query).one()

    def unread_count(self, recipient_id: int) -> int:
        return self.session.exec(
            select(func.count())
            .select_from(Notification)
            .where(Notification.recipient_id == recipient_id)
            .where(Notification.read == False)  # noqa: E712
        ).one()

    def _get_owned(self, notification_id: int, recipient_id: int) -> Optional[Notification]:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.recipient_id != recipient_id:
            return None
        return notification

    def mark_read(self, notification_id: int, recipient_id: int) -> Optional[Notification]:
        notification = self._get_owned(notification_id, recipient_id)
        if not notification:
            return None
        notification.read = True
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def mark_all_read(self, recipient_id: int) -> int:
        unread = self.session.exec(
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .where(Notification.read == False)  # noqa: E712
        ).all()
        for notification in unread:
            notification.read = True
            self.session.add(notification)
        self.session.commit()
        return len(unread)

    def delete(self, notification_id: int, recipient_id: int) -> bool:
        notification = self._get_owned(notification_id, recipient_id)
        if not notification:
            return False
        self.session.delete(notification)
        self.session.commit()
        return True

    def clear_read(self, recipient_id: int) -> int:
        read = self.session.exec(
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .where(Notification.read == True)  # noqa: E712
        ).all()
        for notification in read:
            self.session.delete(notification)
        self.session.commit()
        return len(read)


# ===== helpers used by the case and message flows =====

async def push_notification(session: Session, recipient_id: Optional[int], **fields) -> Optional[Notification]:
    """Persist a notification and emit it to the recipient's personal room"""
    if recipient_id is None:
        return None
    notification = NotificationService(session).create(recipient_id=recipient_id, **fields)
    logger.debug(f"Notification {notification.type} for user {recipient_id}")
    await manager.emit(user_room(recipient_id), "notification", notification_to_dict(notification))
    return notification


def case_title(case: Case) -> str:
    return case.issue if len(case.issue) <= PREVIEW_LENGTH else case.issue[:PREVIEW_LENGTH] + "..."


async def notify_new_message(session: Session, recipient_id: Optional[int], case_id: int, text: str, sender_name: str):
    preview = text[:PREVIEW_LENGTH] + ("..." if len(text) > PREVIEW_LENGTH else "")
    return await push_notification(
        session,
        recipient_id,
        type=NotificationType.NEW_MESSAGE.value,
        title="New Message",
        message=f"{sender_name}: {preview}",
        case_id=case_id,
        extra={"senderName": sender_name},
    )


async def notify_agent_assigned(session: Session, case: Case, agent_name: str):
    title = case_title(case)
    return await push_notification(
        session,
        case.customer_id,
        type=NotificationType.AGENT_ASSIGNED.value,
        title="Agent Assigned",
        message=f'{agent_name} has been assigned to your case: "{title}"',
        case_id=case.id,
        extra={"agentName": agent_name, "caseTitle": title},
    )


async def notify_case_assigned(session: Session, case: Case):
    title = case_title(case)
    return await push_notification(
        session,
        case.assigned_agent_id,
        type=NotificationType.CASE_ASSIGNED.value,
        title="New Case Assigned",
        message=f'New case assigned: "{title}" from {case.customer_name}',
        case_id=case.id,
        extra={"customerName": case.customer_name, "caseTitle": title},
    )


async def notify_case_status_update(session: Session, case: Case):
    title = case_title(case)
    resolved = case.status == CaseStatus.RESOLVED.value
    return await push_notification(
        session,
        case.customer_id,
        type=(NotificationType.CASE_RESOLVED if resolved else NotificationType.CASE_STATUS_UPDATED).value,
        title="Case Resolved" if resolved else "Case Status Updated",
        message=f'Case "{title}" status changed to: {case.status}',
        case_id=case.id,
        extra={"status": case.status, "caseTitle": title},
    )
