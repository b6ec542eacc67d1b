"""
User Service - accounts, agent provisioning and live location
"""

from sqlmodel import Session, select
from typing import Optional, List, Tuple

from supportdesk.auth import hash_password, verify_password
from supportdesk.models import User, Role, AGENT_ROLES, utc_now
from supportdesk.email_service import generate_password


class UserService:
    """Service for user accounts"""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.exec(
            select(User).where(User.email == email.strip().lower())
        ).first()

    def create(self, email: str, password: str, role: str = Role.CUSTOMER.value, **fields) -> User:
        user = User(
            email=email.strip().lower(),
            password_hash=hash_password(password),
            role=role,
            **fields,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the active user matching the credentials, or None"""
        user = self.get_by_email(email)
        if not user or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def update(self, user: User, **kwargs) -> User:
        for key, value in kwargs.items():
            if hasattr(user, key) and value is not None:
                setattr(user, key, value)
        user.updated_at = utc_now()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def set_password(self, user: User, new_password: str) -> User:
        user.password_hash = hash_password(new_password)
        user.is_first_login = False
        return self.update(user)

    def update_location(self, user: User, latitude: float, longitude: float) -> User:
        user.live_latitude = latitude
        user.live_longitude = longitude
        user.live_location_updated_at = utc_now()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def list_live(self, role: str) -> List[User]:
        """Active users of ``role`` that have reported a location"""
        return list(self.session.exec(
            select(User)
            .where(User.role == role)
            .where(User.is_active == True)  # noqa: E712
            .where(User.live_latitude.is_not(None))
            .where(User.live_longitude.is_not(None))
            .order_by(User.live_location_updated_at.desc())
        ).all())

    # ----- agents -----

    def list_agents(self, department: Optional[str] = None, active_only: bool = True) -> List[User]:
        query = select(User).where(User.role.in_(AGENT_ROLES))
        if department:
            query = query.where(User.department == department)
        if active_only:
            query = query.where(User.is_active == True)  # noqa: E712
        return list(self.session.exec(query.order_by(User.fullname)).all())

    def get_agent(self, agent_id: int) -> Optional[User]:
        agent = self.get_by_id(agent_id)
        if not agent or agent.role not in AGENT_ROLES:
            return None
        return agent

    def create_agent(
        self,
        fullname: str,
        email: str,
        department: str,
        role: str = Role.AGENT.value,
    ) -> Tuple[User, str]:
        """Create an agent account with a generated password.

        Returns the agent and the plain password so it can be emailed.
        """
        password = generate_password()
        agent = self.create(
            email=email,
            password=password,
            role=role,
            fullname=fullname,
            department=department,
        )
        return agent, password

    def reset_agent_password(self, agent: User) -> str:
        password = generate_password()
        agent.password_hash = hash_password(password)
        agent.is_first_login = True
        self.update(agent)
        return password

    def deactivate(self, user: User) -> User:
        user.is_active = False
        return self.update(user)
