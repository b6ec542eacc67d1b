"""
Request bodies for the SupportDesk API

Department and status fields use the closed enumerations from
``supportdesk.models`` so anything outside the set is rejected with a 422
before it reaches the database.
"""

from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import Optional, List, Literal

from supportdesk.models import CaseDepartment, AgentDepartment, CaseStatus


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    fullname: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    location: Optional[str] = None
    gender: Optional[str] = None


class EmailRequest(BaseModel):
    email: EmailStr


class VerifyOTPRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=4, max_length=8)


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    new_password: str = Field(..., min_length=6)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
    otp: str


class ProfileUpdate(BaseModel):
    fullname: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    gender: Optional[str] = None
    profile_image: Optional[str] = None


class AgentCreate(BaseModel):
    fullname: str = Field(..., min_length=1)
    email: EmailStr
    department: AgentDepartment
    role: Literal["agent", "supervisor"] = "agent"


class AgentUpdate(BaseModel):
    fullname: Optional[str] = None
    email: Optional[EmailStr] = None
    department: Optional[AgentDepartment] = None
    role: Optional[Literal["agent", "supervisor"]] = None
    is_active: Optional[bool] = None


class LiveLocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class CaseCreate(BaseModel):
    issue: str = Field(..., min_length=1)
    department: CaseDepartment
    location: str = "Online"
    customer_name: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("issue", "location")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CaseAssign(BaseModel):
    case_id: int
    agent_id: int


class CaseStatusUpdate(BaseModel):
    status: CaseStatus


class MessageCreate(BaseModel):
    case_id: int
    text: str = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class MarkReadRequest(BaseModel):
    message_ids: Optional[List[int]] = None
