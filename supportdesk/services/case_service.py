"""
Case Service - case lifecycle and agent assignment
"""

from sqlmodel import Session, select, or_
from typing import Optional, List

from supportdesk.models import Case, CaseStatus, Message, User, Role, STAFF_ROLES, AGENT_ROLES, utc_now

# pending -> active -> resolved/rejected; a pending case may also be rejected outright
TRANSITIONS = {
    CaseStatus.PENDING.value: {CaseStatus.ACTIVE.value, CaseStatus.REJECTED.value},
    CaseStatus.ACTIVE.value: {CaseStatus.RESOLVED.value, CaseStatus.REJECTED.value},
    CaseStatus.RESOLVED.value: set(),
    CaseStatus.REJECTED.value: set(),
}


class CaseTransitionError(ValueError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move case from {current} to {target}")
        self.current = current
        self.target = target


class CaseService:
    """Service for support cases"""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, case_id: int) -> Optional[Case]:
        return self.session.get(Case, case_id)

    def create(
        self,
        customer: User,
        issue: str,
        department: str,
        location: str = "Online",
        customer_name: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Case:
        case = Case(
            customer_id=customer.id,
            customer_name=customer_name or customer.fullname or customer.email.split("@")[0],
            issue=issue,
            department=department,
            location=location,
            image_url=image_url,
            status=CaseStatus.PENDING.value,
        )
        self.session.add(case)
        self.session.commit()
        self.session.refresh(case)
        return case

    def list_cases(self, status: Optional[str] = None, department: Optional[str] = None) -> List[Case]:
        query = select(Case)
        if status:
            query = query.where(Case.status == status)
        if department:
            query = query.where(Case.department == department)
        return list(self.session.exec(query.order_by(Case.created_at.desc(), Case.id.desc())).all())

    def list_for_customer(self, customer_id: int, status: Optional[str] = None) -> List[Case]:
        query = select(Case).where(Case.customer_id == customer_id)
        if status:
            query = query.where(Case.status == status)
        return list(self.session.exec(query.order_by(Case.created_at.desc(), Case.id.desc())).all())

    def list_for_agent(self, agent_id: int, status: Optional[str] = None) -> List[Case]:
        query = select(Case).where(Case.assigned_agent_id == agent_id)
        if status:
            query = query.where(Case.status == status)
        return list(self.session.exec(query.order_by(Case.created_at.desc(), Case.id.desc())).all())

    def list_pending(self, department: Optional[str] = None) -> List[Case]:
        return self.list_cases(status=CaseStatus.PENDING.value, department=department)

    def latest_for_customer(self, customer_id: int) -> Optional[Case]:
        return self.session.exec(
            select(Case)
            .where(Case.customer_id == customer_id)
            .order_by(Case.created_at.desc(), Case.id.desc())
        ).first()

    def accessible_case_ids(self, user: User) -> Optional[List[int]]:
        """Ids of the cases ``user`` takes part in; None means every case"""
        if user.role in STAFF_ROLES:
            return None
        return list(self.session.exec(
            select(Case.id).where(or_(Case.customer_id == user.id, Case.assigned_agent_id == user.id))
        ).all())

    @staticmethod
    def can_access(user: User, case: Case) -> bool:
        if user.role in STAFF_ROLES:
            return True
        return case.customer_id == user.id or (
            case.assigned_agent_id is not None and case.assigned_agent_id == user.id
        )

    @staticmethod
    def can_view(user: User, case: Case) -> bool:
        """Like can_access, but agents may also look at cases waiting in the queue"""
        if CaseService.can_access(user, case):
            return True
        return user.role in AGENT_ROLES and case.status == CaseStatus.PENDING.value

    # ----- lifecycle -----

    def _save(self, case: Case) -> Case:
        case.updated_at = utc_now()
        self.session.add(case)
        self.session.commit()
        self.session.refresh(case)
        return case

    def _move(self, case: Case, target: str, force: bool = False):
        if force and case.status == target:
            return
        if not force and target not in TRANSITIONS.get(case.status, set()):
            raise CaseTransitionError(case.status, target)
        case.status = target
        if target == CaseStatus.RESOLVED.value:
            case.resolved_at = utc_now()

    def _address_waiting_messages(self, case: Case):
        """Point customer messages sent before any agent was assigned at the new agent"""
        waiting = self.session.exec(
            select(Message)
            .where(Message.case_id == case.id)
            .where(Message.sender_id == case.customer_id)
            .where(Message.recipient_id.is_(None))
        ).all()
        for message in waiting:
            message.recipient_id = case.assigned_agent_id
            message.recipient_role = Role.AGENT.value
            self.session.add(message)

    def accept(self, case: Case, agent: User) -> Case:
        """Agent takes a pending case"""
        if case.status != CaseStatus.PENDING.value:
            raise CaseTransitionError(case.status, CaseStatus.ACTIVE.value)
        self._move(case, CaseStatus.ACTIVE.value)
        case.assigned_agent_id = agent.id
        self._address_waiting_messages(case)
        return self._save(case)

    def reject(self, case: Case) -> Case:
        self._move(case, CaseStatus.REJECTED.value)
        return self._save(case)

    def assign(self, case: Case, agent: User) -> Case:
        """Supervisor hands a case to an agent; a pending case becomes active"""
        if case.status in (CaseStatus.RESOLVED.value, CaseStatus.REJECTED.value):
            raise CaseTransitionError(case.status, CaseStatus.ACTIVE.value)
        case.assigned_agent_id = agent.id
        if case.status == CaseStatus.PENDING.value:
            self._move(case, CaseStatus.ACTIVE.value)
        self._address_waiting_messages(case)
        return self._save(case)

    def update_status(self, case: Case, status: str, force: bool = False) -> Case:
        """Change status; ``force`` skips the lifecycle check (admin override)"""
        self._move(case, status, force=force)
        if force and status == CaseStatus.PENDING.value:
            case.assigned_agent_id = None
        return self._save(case)

    def touch(self, case: Case, last_message_id: Optional[int] = None) -> Case:
        if last_message_id is not None:
            case.last_message_id = last_message_id
        return self._save(case)

    def unassign_agent(self, agent_id: int) -> int:
        """Send an agent's open cases back to the pending queue"""
        cases = [
            case for case in self.list_for_agent(agent_id)
            if case.status in (CaseStatus.PENDING.value, CaseStatus.ACTIVE.value)
        ]
        for case in cases:
            case.assigned_agent_id = None
            if case.status == CaseStatus.ACTIVE.value:
                case.status = CaseStatus.PENDING.value
            case.updated_at = utc_now()
            self.session.add(case)
        self.session.commit()
        return len(cases)


def recipient_for(case: Case, sender: User):
    """The other party of a case conversation as (user_id, role)"""
    if sender.id == case.customer_id:
        return case.assigned_agent_id, (Role.AGENT.value if case.assigned_agent_id else None)
    return case.customer_id, Role.CUSTOMER.value
