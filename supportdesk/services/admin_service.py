"""
Admin Service - dashboard statistics, agent performance and user removal
"""

from datetime import datetime, timezone
from sqlmodel import Session, select, func, col
from typing import Optional, List, Tuple

from supportdesk.models import (
    User, Case, Message, Notification, OTP, Role, CaseStatus, STAFF_ROLES, utc_now,
)
from supportdesk.services.case_service import CaseService


class AdminService:
    """Read models and maintenance operations for administrators"""

    def __init__(self, session: Session):
        self.session = session

    def _count(self, model, *filters) -> int:
        return self.session.exec(select(func.count()).select_from(model).where(*filters)).one()

    def dashboard_stats(self) -> dict:
        now = utc_now()
        start_of_day = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)

        return {
            "users": {
                "customers": self._count(User, User.role == Role.CUSTOMER.value),
                "agents": self._count(User, User.role == Role.AGENT.value),
                "admins": self._count(User, col(User.role).in_(STAFF_ROLES)),
            },
            "cases": {
                "total": self._count(Case),
                "pendingCases": self._count(Case, Case.status == CaseStatus.PENDING.value),
                "activeCases": self._count(Case, Case.status == CaseStatus.ACTIVE.value),
                "resolvedCases": self._count(Case, Case.status == CaseStatus.RESOLVED.value),
                "rejectedCases": self._count(Case, Case.status == CaseStatus.REJECTED.value),
            },
            "messages": self._count(Message),
            "today": {
                "newCases": self._count(Case, Case.created_at >= start_of_day),
                "newMessages": self._count(Message, Message.timestamp >= start_of_day),
            },
            "updatedAt": now,
        }

    def list_users(self, role: Optional[str] = None, page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
        filters = [User.role == role] if role else []
        users = self.session.exec(
            select(User)
            .where(*filters)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(users), self._count(User, *filters)

    def list_cases(
        self,
        status: Optional[str] = None,
        department: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Case], int]:
        filters = []
        if status:
            filters.append(Case.status == status)
        if department:
            filters.append(Case.department == department)
        cases = self.session.exec(
            select(Case)
            .where(*filters)
            .order_by(Case.updated_at.desc(), Case.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(cases), self._count(Case, *filters)

    def _first_response_minutes(self, case_id: int) -> Optional[float]:
        """Minutes between the first customer message and the first agent reply after it"""
        messages = self.session.exec(
            select(Message).where(Message.case_id == case_id).order_by(Message.timestamp, Message.id)
        ).all()
        first_customer = next((m for m in messages if m.sender_role == Role.CUSTOMER.value), None)
        if first_customer is None:
            return None
        reply = next(
            (m for m in messages
             if m.sender_role == Role.AGENT.value and m.timestamp >= first_customer.timestamp),
            None,
        )
        if reply is None:
            return None
        return (reply.timestamp - first_customer.timestamp).total_seconds() / 60

    def agent_performance(self) -> List[dict]:
        agents = self.session.exec(
            select(User).where(User.role == Role.AGENT.value).order_by(User.fullname)
        ).all()

        performance = []
        for agent in agents:
            cases = self.session.exec(select(Case).where(Case.assigned_agent_id == agent.id)).all()
            resolved = sum(1 for case in cases if case.status == CaseStatus.RESOLVED.value)
            response_times = [
                minutes for minutes in (self._first_response_minutes(case.id) for case in cases)
                if minutes is not None
            ]
            performance.append({
                "agent": {"id": agent.id, "fullname": agent.fullname, "department": agent.department},
                "totalCases": len(cases),
                "resolvedCases": resolved,
                "resolutionRate": (resolved / len(cases)) * 100 if cases else 0,
                "avgFirstResponseTime": sum(response_times) / len(response_times) if response_times else 0,
            })
        return performance

    def delete_user(self, user: User):
        """Remove a non-admin account and everything that only belongs to it.

        An agent's open cases go back to the pending queue; a customer's cases
        and their conversations are removed with the account.
        """
        CaseService(self.session).unassign_agent(user.id)
        for case in self.session.exec(select(Case).where(Case.assigned_agent_id == user.id)).all():
            case.assigned_agent_id = None
            self.session.add(case)

        customer_cases = self.session.exec(select(Case).where(Case.customer_id == user.id)).all()
        case_ids = [case.id for case in customer_cases]
        if case_ids:
            for message in self.session.exec(select(Message).where(col(Message.case_id).in_(case_ids))).all():
                self.session.delete(message)
            for notification in self.session.exec(
                select(Notification).where(col(Notification.case_id).in_(case_ids))
            ).all():
                self.session.delete(notification)

        for message in self.session.exec(select(Message).where(Message.sender_id == user.id)).all():
            message.sender_id = None
            self.session.add(message)
        for message in self.session.exec(select(Message).where(Message.recipient_id == user.id)).all():
            message.recipient_id = None
            self.session.add(message)
        for notification in self.session.exec(select(Notification).where(Notification.recipient_id == user.id)).all():
            self.session.delete(notification)
        for otp in self.session.exec(select(OTP).where(OTP.email == user.email)).all():
            self.session.delete(otp)
        self.session.flush()

        for case in customer_cases:
            self.session.delete(case)
        self.session.flush()
        self.session.delete(user)
        self.session.commit()
