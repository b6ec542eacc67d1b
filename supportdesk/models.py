from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ===== ENUMS =====

class Role(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"


STAFF_ROLES = (Role.ADMIN.value, Role.SUPERVISOR.value)
AGENT_ROLES = (Role.AGENT.value, Role.SUPERVISOR.value)


class CaseStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class CaseDepartment(str, Enum):
    """Categories a customer picks when submitting a case"""
    SEXUAL_ASSAULT = "sexual_assault"
    PHYSICAL_ASSAULT = "physical_assault"
    ROBBERY = "robbery"
    BURGLARY = "burglary"
    THEFT = "theft"
    DOMESTIC_VIOLENCE = "domestic_violence"
    HATE_CRIME = "hate_crime"
    KIDNAPPING_ABDUCTION = "kidnapping_abduction"
    HARASSMENT_STALKING = "harassment_stalking"
    CYBER_CRIME = "cyber_crime"
    PUBLIC_DISTURBANCE = "public_disturbance"
    MISSING_PERSON = "missing_person"
    HOMICIDE = "homicide"
    CHILD_ABUSE = "child_abuse"
    ELDER_ABUSE = "elder_abuse"
    HATE_SPEECH = "hate_speech"
    VANDALISM = "vandalism"
    ARSON = "arson"
    DRUG_OFFENSE = "drug_offense"
    TRAFFIC_INCIDENT = "traffic_incident"
    OTHER = "other"


class AgentDepartment(str, Enum):
    """Units agents and supervisors belong to"""
    SEXUAL_ASSAULT_UNIT = "sexual_assault_unit"
    PHYSICAL_ASSAULT_UNIT = "physical_assault_unit"
    DOMESTIC_VIOLENCE_UNIT = "domestic_violence_unit"
    HOMICIDE_UNIT = "homicide_unit"
    ROBBERY_UNIT = "robbery_unit"
    BURGLARY_UNIT = "burglary_unit"
    THEFT_UNIT = "theft_unit"
    VANDALISM_ARSON_UNIT = "vandalism_arson_unit"
    CHILD_ABUSE_UNIT = "child_abuse_unit"
    ELDER_ABUSE_UNIT = "elder_abuse_unit"
    MISSING_PERSONS_UNIT = "missing_persons_unit"
    CYBER_CRIME_UNIT = "cyber_crime_unit"
    DRUG_ENFORCEMENT_UNIT = "drug_enforcement_unit"
    PUBLIC_DISTURBANCE_UNIT = "public_disturbance_unit"
    TRAFFIC_INCIDENT_UNIT = "traffic_incident_unit"
    HATE_CRIMES_UNIT = "hate_crimes_unit"
    EMERGENCY_RESPONSE = "emergency_response"
    INVESTIGATIONS_SUPPORT = "investigations_support"
    GENERAL_SUPPORT = "general_support"


class NotificationType(str, Enum):
    NEW_MESSAGE = "new_message"
    AGENT_ASSIGNED = "agent_assigned"
    CASE_ASSIGNED = "case_assigned"
    CASE_STATUS_UPDATED = "case_status_updated"
    CASE_RESOLVED = "case_resolved"


class OTPPurpose(str, Enum):
    REGISTRATION = "registration"
    PASSWORD_RESET = "password-reset"
    PASSWORD_CHANGE = "password-change"


# ===== MODELS =====

class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    fullname: Optional[str] = None
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = Field(default=Role.CUSTOMER.value, index=True)
    phone: Optional[str] = None
    location: Optional[str] = None
    gender: Optional[str] = None
    department: Optional[str] = Field(default=AgentDepartment.GENERAL_SUPPORT.value, index=True)
    is_active: bool = Field(default=True)
    is_first_login: bool = Field(default=True)
    profile_image: Optional[str] = None

    # Last reported device position, shown on the tracking map
    live_latitude: Optional[float] = None
    live_longitude: Optional[float] = None
    live_location_updated_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Case(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="user.id", index=True)
    customer_name: str
    issue: str
    department: str = Field(index=True)
    location: str = "Online"
    status: str = Field(default=CaseStatus.PENDING.value, index=True)
    assigned_agent_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None
    last_message_id: Optional[int] = None


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    case_id: int = Field(foreign_key="case.id", index=True)
    sender_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    sender_role: str
    recipient_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    recipient_role: Optional[str] = None
    text: str
    read: bool = Field(default=False, index=True)
    timestamp: datetime = Field(default_factory=utc_now, index=True)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    recipient_id: int = Field(foreign_key="user.id", index=True)
    type: str
    title: str
    message: str
    case_id: Optional[int] = Field(default=None, foreign_key="case.id")
    read: bool = Field(default=False, index=True)
    extra: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, index=True)


class OTP(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    otp: str
    purpose: str
    expires_at: datetime
    verified: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)
