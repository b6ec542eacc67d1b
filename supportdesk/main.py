import json
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Optional, List

from fastapi import (
    FastAPI, WebSocket, WebSocketDisconnect, Depends, HTTPException, Query, File, UploadFile, Request, status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import ValidationError
from sqlmodel import Session

from supportdesk import email_service, upload_service
from supportdesk.auth import get_session, get_current_user, require_roles, create_token, user_from_token
from supportdesk.config import ALLOWED_ORIGINS, engine, init_db, setup_logging
from supportdesk.models import (
    User, Case, Message, Role, CaseStatus, CaseDepartment, AgentDepartment, OTPPurpose,
    STAFF_ROLES, AGENT_ROLES,
)
from supportdesk.schemas import (
    LoginRequest, RegisterRequest, EmailRequest, VerifyOTPRequest, ResetPasswordRequest, ChangePasswordRequest,
    ProfileUpdate, AgentCreate, AgentUpdate, LiveLocationUpdate, CaseCreate, CaseAssign, CaseStatusUpdate,
    MessageCreate, MarkReadRequest,
)
from supportdesk.serializers import (
    user_to_dict, user_summary, case_to_dict, message_to_dict, notification_to_dict, live_location, pagination,
)
from supportdesk.services import (
    UserService, CaseService, CaseTransitionError, MessageService, NotificationService, AdminService, OTPService,
)
from supportdesk.services.notification_service import (
    notify_new_message, notify_agent_assigned, notify_case_assigned, notify_case_status_update,
)
from supportdesk.socket_manager import manager, user_room, case_room, TRACKING_ROOM

setup_logging()
logger = logging.getLogger(__name__)

STAFF_AND_AGENTS = AGENT_ROLES + (Role.ADMIN.value,)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("SupportDesk API started")
    yield
    logger.info("SupportDesk API stopped")


app = FastAPI(title="SupportDesk API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(CaseTransitionError)
async def case_transition_handler(request: Request, exc: CaseTransitionError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Something went wrong!"})


# Utils

def get_case_or_404(session: Session, case_id: int) -> Case:
    case = CaseService(session).get_by_id(case_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    return case


def ensure_case_access(user: User, case: Case):
    if not CaseService.can_access(user, case):
        raise HTTPException(status_code=403, detail="Unauthorized case access")


def display_name(user: User) -> str:
    return user.fullname or user.email.split("@")[0]


def case_payload(session: Session, case: Case, message: str) -> dict:
    return {"success": True, "case": case_to_dict(session, case), "message": message}


async def publish_case(session: Session, case: Case):
    await manager.emit(case_room(case.id), "caseUpdated", case_to_dict(session, case))


async def post_message(session: Session, user: User, case_id: int, text: str) -> Message:
    """Store a case message and fan it out to the case room and the recipient"""
    case = get_case_or_404(session, case_id)
    ensure_case_access(user, case)

    message = MessageService(session).send(case, user, text)
    payload = message_to_dict(message)
    await manager.emit(case_room(case.id), "receiveMessage", payload)
    await notify_new_message(session, message.recipient_id, case.id, message.text, display_name(user))
    logger.info(f"Message {message.id} sent in case {case.id} by user {user.id}")
    return message


async def update_live_location(session: Session, user: User, latitude: float, longitude: float) -> User:
    user = UserService(session).update_location(user, latitude, longitude)
    await manager.emit(TRACKING_ROOM, "locationUpdate", {
        "user": {"id": user.id, "fullname": user.fullname, "role": user.role},
        "liveLocation": live_location(user),
    })
    return user


def live_users(session: Session, role: str) -> dict:
    users = UserService(session).list_live(role)
    return {
        "success": True,
        "count": len(users),
        "users": [
            {"id": u.id, "fullname": u.fullname, "role": u.role,
             "department": u.department, "liveLocation": live_location(u)}
            for u in users
        ],
    }


# Routes

@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/departments")
def get_departments():
    return {
        "caseDepartments": [d.value for d in CaseDepartment],
        "agentDepartments": [d.value for d in AgentDepartment],
    }


# ===== AUTH =====

@app.post("/login")
def login_form(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    user = UserService(session).authenticate(form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"access_token": create_token(user), "token_type": "bearer"}


@app.post("/api/auth/login")
def login(data: LoginRequest, session: Session = Depends(get_session)):
    user = UserService(session).authenticate(data.email, data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    logger.info(f"User {user.id} logged in as {user.role}")
    return {"token": create_token(user), "user": {**user_to_dict(user), "name": display_name(user)}}


@app.post("/api/auth/register", status_code=201)
def register(data: RegisterRequest, session: Session = Depends(get_session)):
    users = UserService(session)
    if users.get_by_email(data.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = users.create(
        email=data.email,
        password=data.password,
        role=Role.CUSTOMER.value,
        fullname=data.fullname,
        phone=data.phone,
        location=data.location,
        gender=data.gender,
        department=None,
        is_first_login=False,
    )
    logger.info(f"Customer {user.id} registered")
    return {"token": create_token(user), "user": {**user_to_dict(user), "name": display_name(user)}}


@app.post("/api/auth/forgot-password")
def forgot_password(data: EmailRequest, session: Session = Depends(get_session)):
    # Same answer whether or not the account exists
    if UserService(session).get_by_email(data.email):
        OTPService(session).create(data.email, OTPPurpose.PASSWORD_RESET.value)
    return {"success": True, "message": "If the account exists, an OTP has been sent"}


@app.post("/api/auth/forgot-password/verify-otp")
def verify_reset_otp(data: VerifyOTPRequest, session: Session = Depends(get_session)):
    if not OTPService(session).verify(data.email, data.otp, OTPPurpose.PASSWORD_RESET.value):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")
    return {"success": True, "message": "OTP verified successfully"}


@app.post("/api/auth/reset-password")
def reset_password(data: ResetPasswordRequest, session: Session = Depends(get_session)):
    otps = OTPService(session)
    if not otps.is_verified(data.email, OTPPurpose.PASSWORD_RESET.value):
        raise HTTPException(status_code=400, detail="OTP not verified")

    users = UserService(session)
    user = users.get_by_email(data.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    users.set_password(user, data.new_password)
    otps.consume(data.email, OTPPurpose.PASSWORD_RESET.value)
    logger.info(f"Password reset for user {user.id}")
    return {"success": True, "message": "Password reset successfully"}


@app.post("/api/auth/change-password/request-otp")
def request_change_password_otp(user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    OTPService(session).create(user.email, OTPPurpose.PASSWORD_CHANGE.value)
    return {"success": True, "message": "OTP sent to your email"}


@app.post("/api/auth/change-password")
def change_password(
    data: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    users = UserService(session)
    if not users.authenticate(user.email, data.current_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    otps = OTPService(session)
    if not otps.verify(user.email, data.otp, OTPPurpose.PASSWORD_CHANGE.value):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")

    users.set_password(user, data.new_password)
    otps.consume(user.email, OTPPurpose.PASSWORD_CHANGE.value)
    return {"success": True, "message": "Password changed successfully"}


# ===== USERS =====

@app.get("/api/users/profile")
def get_profile(user: User = Depends(get_current_user)):
    return {"success": True, "user": user_to_dict(user)}


@app.patch("/api/users/profile")
def update_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user = UserService(session).update(user, **data.model_dump(exclude_unset=True))
    return {"success": True, "user": user_to_dict(user)}


# ===== LIVE LOCATION =====

@app.post("/users/live-location")
@app.post("/api/users/live-location")
async def post_live_location(
    data: LiveLocationUpdate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user = await update_live_location(session, user, data.latitude, data.longitude)
    return {"success": True, "message": "Location updated", "liveLocation": live_location(user)}


@app.get("/users/agents/live")
@app.get("/api/users/agents/live")
def get_live_agents(user: User = Depends(require_roles(*STAFF_ROLES)), session: Session = Depends(get_session)):
    return live_users(session, Role.AGENT.value)


@app.get("/users/customers/live")
@app.get("/api/users/customers/live")
def get_live_customers(user: User = Depends(require_roles(*STAFF_ROLES)), session: Session = Depends(get_session)):
    return live_users(session, Role.CUSTOMER.value)


@app.post("/api/users/agents", status_code=201)
def create_agent(
    data: AgentCreate,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    users = UserService(session)
    if users.get_by_email(data.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    agent, password = users.create_agent(
        fullname=data.fullname,
        email=data.email,
        department=data.department.value,
        role=data.role,
    )
    email_sent = email_service.send_credentials_email(agent.email, agent.fullname, password, agent.department)
    logger.info(f"Agent {agent.id} provisioned by user {user.id} (credentials emailed: {email_sent})")
    return {"success": True, "agent": user_to_dict(agent), "emailSent": email_sent}


@app.get("/api/users/agents")
def list_agents(
    department: Optional[AgentDepartment] = None,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    agents = UserService(session).list_agents(department.value if department else None)
    return {"success": True, "count": len(agents), "agents": [user_to_dict(a) for a in agents]}


@app.get("/api/users/agents/{agent_id}")
def get_agent(agent_id: int, user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    agent = UserService(session).get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"success": True, "agent": user_to_dict(agent)}


@app.put("/api/users/agents/{agent_id}")
def update_agent(
    agent_id: int,
    data: AgentUpdate,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    users = UserService(session)
    agent = users.get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")

    changes = data.model_dump(exclude_unset=True)
    if "email" in changes:
        other = users.get_by_email(changes["email"])
        if other and other.id != agent.id:
            raise HTTPException(status_code=400, detail="Email already registered")
        changes["email"] = changes["email"].lower()
    if changes.get("department") is not None:
        changes["department"] = changes["department"].value

    agent = users.update(agent, **changes)
    return {"success": True, "agent": user_to_dict(agent)}


@app.delete("/api/users/agents/{agent_id}")
def deactivate_agent(
    agent_id: int,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    users = UserService(session)
    agent = users.get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")

    users.deactivate(agent)
    requeued = CaseService(session).unassign_agent(agent.id)
    logger.info(f"Agent {agent.id} deactivated, {requeued} case(s) back in the queue")
    return {"success": True, "message": "Agent deactivated", "requeuedCases": requeued}


@app.post("/api/users/agents/{agent_id}/reset-password")
def reset_agent_password(
    agent_id: int,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    users = UserService(session)
    agent = users.get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")

    password = users.reset_agent_password(agent)
    email_sent = email_service.send_credentials_email(agent.email, agent.fullname, password, agent.department)
    return {"success": True, "message": "Password reset", "emailSent": email_sent}


# ===== CASES =====

@app.post("/cases", status_code=201)
@app.post("/api/cases", status_code=201)
def create_case(
    data: CaseCreate,
    user: User = Depends(require_roles(Role.CUSTOMER.value)),
    session: Session = Depends(get_session),
):
    case = CaseService(session).create(
        customer=user,
        issue=data.issue,
        department=data.department.value,
        location=data.location,
        customer_name=data.customer_name,
        image_url=data.image_url,
    )
    logger.info(f"Case {case.id} created by customer {user.id} for {case.department}")
    return case_payload(session, case, "Case created successfully")


@app.get("/api/cases")
def list_cases(
    status: Optional[CaseStatus] = None,
    department: Optional[CaseDepartment] = None,
    user: User = Depends(require_roles(*STAFF_AND_AGENTS)),
    session: Session = Depends(get_session),
):
    cases = CaseService(session).list_cases(
        status=status.value if status else None,
        department=department.value if department else None,
    )
    return {"success": True, "count": len(cases), "cases": [case_to_dict(session, c) for c in cases]}


@app.get("/api/cases/my")
def my_cases(
    status: Optional[CaseStatus] = None,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    service = CaseService(session)
    value = status.value if status else None
    if user.role == Role.CUSTOMER.value:
        cases = service.list_for_customer(user.id, value)
    else:
        cases = service.list_for_agent(user.id, value)
    return {"success": True, "count": len(cases), "cases": [case_to_dict(session, c) for c in cases]}


@app.get("/api/cases/latest")
def latest_case(user: User = Depends(require_roles(Role.CUSTOMER.value)), session: Session = Depends(get_session)):
    case = CaseService(session).latest_for_customer(user.id)
    if not case:
        raise HTTPException(status_code=404, detail="No cases found for this customer")
    return {"success": True, "case": case_to_dict(session, case)}


@app.get("/api/cases/pending")
def pending_cases(
    department: Optional[CaseDepartment] = None,
    user: User = Depends(require_roles(*STAFF_AND_AGENTS)),
    session: Session = Depends(get_session),
):
    cases = CaseService(session).list_pending(department.value if department else None)
    return {"success": True, "count": len(cases), "cases": [case_to_dict(session, c) for c in cases]}


@app.get("/api/cases/agent/{agent_id}")
def cases_by_agent(
    agent_id: int,
    status: Optional[CaseStatus] = None,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    cases = CaseService(session).list_for_agent(agent_id, status.value if status else None)
    return {"success": True, "count": len(cases), "cases": [case_to_dict(session, c) for c in cases]}


@app.put("/api/cases/assign")
async def assign_case(
    data: CaseAssign,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    case = get_case_or_404(session, data.case_id)
    agent = UserService(session).get_agent(data.agent_id)
    if not agent or not agent.is_active:
        raise HTTPException(status_code=404, detail="Agent not found")

    case = CaseService(session).assign(case, agent)
    logger.info(f"Case {case.id} assigned to agent {agent.id} by user {user.id}")
    await publish_case(session, case)
    await notify_case_assigned(session, case)
    await notify_agent_assigned(session, case, display_name(agent))
    return case_payload(session, case, "Case assigned successfully")


@app.put("/api/cases/accept/{case_id}")
async def accept_case(
    case_id: int,
    user: User = Depends(require_roles(*AGENT_ROLES)),
    session: Session = Depends(get_session),
):
    case = get_case_or_404(session, case_id)
    case = CaseService(session).accept(case, user)
    logger.info(f"Case {case.id} accepted by agent {user.id}")
    await publish_case(session, case)
    await notify_agent_assigned(session, case, display_name(user))
    return case_payload(session, case, "Case accepted successfully")


@app.put("/api/cases/reject/{case_id}")
async def reject_case(
    case_id: int,
    user: User = Depends(require_roles(*STAFF_AND_AGENTS)),
    session: Session = Depends(get_session),
):
    case = get_case_or_404(session, case_id)
    if user.role == Role.AGENT.value and case.assigned_agent_id not in (None, user.id):
        raise HTTPException(status_code=403, detail="Case is assigned to another agent")

    case = CaseService(session).reject(case)
    logger.info(f"Case {case.id} rejected by user {user.id}")
    await publish_case(session, case)
    await notify_case_status_update(session, case)
    return case_payload(session, case, "Case rejected successfully")


@app.put("/api/cases/status/{case_id}")
async def update_case_status(
    case_id: int,
    data: CaseStatusUpdate,
    user: User = Depends(require_roles(*STAFF_AND_AGENTS)),
    session: Session = Depends(get_session),
):
    case = get_case_or_404(session, case_id)
    is_staff = user.role in STAFF_ROLES
    if not is_staff and case.assigned_agent_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")

    old_status = case.status
    case = CaseService(session).update_status(case, data.status.value, force=is_staff)
    logger.info(f"Case {case.id} status {old_status} -> {case.status} by user {user.id}")
    await publish_case(session, case)
    if old_status != case.status:
        await notify_case_status_update(session, case)
    return case_payload(session, case, f"Case status updated to {case.status}")


@app.get("/api/cases/{case_id}")
def get_case(case_id: int, user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    case = get_case_or_404(session, case_id)
    if not CaseService.can_view(user, case):
        raise HTTPException(status_code=403, detail="Unauthorized case access")
    return {"success": True, "case": case_to_dict(session, case)}


# ===== MESSAGES =====

@app.post("/api/messages", status_code=201)
async def send_message(
    data: MessageCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    message = await post_message(session, user, data.case_id, data.text)
    return {"success": True, "message": message_to_dict(message)}


@app.get("/api/cases/{case_id}/messages")
def get_case_messages(
    case_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    case = get_case_or_404(session, case_id)
    if not CaseService.can_view(user, case):
        raise HTTPException(status_code=403, detail="Unauthorized case access")

    messages, total = MessageService(session).list_for_case(case.id, page, limit)
    return {
        "success": True,
        "messages": [message_to_dict(m) for m in messages],
        "pagination": {**pagination(page, limit, total), "totalMessages": total},
    }


@app.get("/api/messages/initial/{case_id}")
def get_initial_messages(case_id: int, user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    case = get_case_or_404(session, case_id)
    ensure_case_access(user, case)
    messages = MessageService(session).initial(case.id)
    return {"success": True, "messages": [message_to_dict(m) for m in messages]}


@app.post("/api/cases/{case_id}/messages/read")
async def mark_messages_read(
    case_id: int,
    data: MarkReadRequest,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    case = get_case_or_404(session, case_id)
    ensure_case_access(user, case)
    modified = MessageService(session).mark_read(case.id, user, data.message_ids)
    await manager.emit(case_room(case.id), "messagesRead", {"case_id": case.id, "message_ids": data.message_ids})
    return {"success": True, "modifiedCount": modified, "message": "Messages marked as read"}


@app.get("/api/cases/{case_id}/messages/unread-count")
def unread_messages(case_id: int, user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    case = get_case_or_404(session, case_id)
    ensure_case_access(user, case)
    return {"success": True, "unreadCount": MessageService(session).unread_count(case.id, user)}


@app.get("/api/messages/search")
def search_messages(
    q: Optional[str] = None,
    case_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    messages, total = MessageService(session).search(user, q.strip(), case_id, page, limit)
    return {
        "success": True,
        "searchQuery": q,
        "messages": [message_to_dict(m) for m in messages],
        "pagination": pagination(page, limit, total),
    }


@app.get("/api/messages/recent")
def recent_messages(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    messages = MessageService(session).recent(user, limit)
    return {"success": True, "count": len(messages), "messages": [message_to_dict(m) for m in messages]}


# ===== CHAT HISTORY =====

def chat_history(session: Session, cases: List[Case]) -> dict:
    messages = MessageService(session)
    history = []
    for case in cases:
        first = messages.initial(case.id, limit=10)
        last = messages.get_by_id(case.last_message_id) if case.last_message_id else None
        history.append({
            "case": case_to_dict(session, case),
            "messages": [message_to_dict(m) for m in first],
            "messageCount": messages.count_for_case(case.id),
            "lastMessage": message_to_dict(last) if last else None,
        })
    return {"success": True, "chatHistory": history, "totalCases": len(cases)}


@app.get("/api/customer/chat-history")
def customer_chat_history(user: User = Depends(require_roles(Role.CUSTOMER.value)), session: Session = Depends(get_session)):
    return chat_history(session, CaseService(session).list_for_customer(user.id))


@app.get("/api/agent/chat-history")
def agent_chat_history(user: User = Depends(require_roles(*AGENT_ROLES)), session: Session = Depends(get_session)):
    return chat_history(session, CaseService(session).list_for_agent(user.id))


@app.get("/api/agent/customers")
def agent_customers(user: User = Depends(require_roles(*AGENT_ROLES)), session: Session = Depends(get_session)):
    grouped = OrderedDict()
    for case in CaseService(session).list_for_agent(user.id):
        entry = grouped.setdefault(case.customer_id, {
            "customer": user_summary(session.get(User, case.customer_id)),
            "caseCount": 0,
            "latestCase": case_to_dict(session, case),
        })
        entry["caseCount"] += 1
    return {"success": True, "count": len(grouped), "customers": list(grouped.values())}


@app.get("/api/admin/chat-history")
def all_chat_history(user: User = Depends(require_roles(*STAFF_ROLES)), session: Session = Depends(get_session)):
    return chat_history(session, CaseService(session).list_cases())


@app.get("/api/admin/agent/{agent_id}/chat-history")
def agent_chat_history_for_admin(
    agent_id: int,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    if not UserService(session).get_agent(agent_id):
        raise HTTPException(status_code=404, detail="Agent not found")
    return chat_history(session, CaseService(session).list_for_agent(agent_id))


# ===== NOTIFICATIONS =====

@app.get("/api/notifications")
def get_notifications(
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    unread_only: bool = False,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    service = NotificationService(session)
    notifications, total = service.list_for_user(user.id, limit, skip, unread_only)
    return {
        "notifications": [notification_to_dict(n) for n in notifications],
        "unreadCount": service.unread_count(user.id),
        "total": total,
    }


@app.get("/api/notifications/unread-count")
def notifications_unread_count(user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    return {"count": NotificationService(session).unread_count(user.id)}


@app.patch("/api/notifications/mark-all-read")
def mark_all_notifications_read(user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    count = NotificationService(session).mark_all_read(user.id)
    return {"success": True, "modifiedCount": count}


@app.patch("/api/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    notification = NotificationService(session).mark_read(notification_id, user.id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification_to_dict(notification)


@app.delete("/api/notifications/clear-read")
def clear_read_notifications(user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    count = NotificationService(session).clear_read(user.id)
    return {"success": True, "deletedCount": count}


@app.delete("/api/notifications/{notification_id}")
def delete_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not NotificationService(session).delete(notification_id, user.id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "message": "Notification deleted"}


# ===== ADMIN =====

@app.get("/api/admin/dashboard")
def admin_dashboard(user: User = Depends(require_roles(Role.ADMIN.value)), session: Session = Depends(get_session)):
    return {"success": True, "stats": AdminService(session).dashboard_stats()}


@app.get("/api/admin/users")
def admin_users(
    role: Optional[Role] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_roles(Role.ADMIN.value)),
    session: Session = Depends(get_session),
):
    users, total = AdminService(session).list_users(role.value if role else None, page, limit)
    return {"success": True, "users": [user_to_dict(u) for u in users], "pagination": pagination(page, limit, total)}


@app.get("/api/admin/cases")
def admin_cases(
    status: Optional[CaseStatus] = None,
    department: Optional[CaseDepartment] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_roles(Role.ADMIN.value)),
    session: Session = Depends(get_session),
):
    cases, total = AdminService(session).list_cases(
        status.value if status else None,
        department.value if department else None,
        page,
        limit,
    )
    return {
        "success": True,
        "cases": [case_to_dict(session, c) for c in cases],
        "pagination": pagination(page, limit, total),
    }


@app.get("/api/admin/performance")
def admin_performance(user: User = Depends(require_roles(Role.ADMIN.value)), session: Session = Depends(get_session)):
    return {"success": True, "performance": AdminService(session).agent_performance()}


@app.delete("/api/admin/users/{user_id}")
def admin_delete_user(
    user_id: int,
    user: User = Depends(require_roles(Role.ADMIN.value)),
    session: Session = Depends(get_session),
):
    target = UserService(session).get_by_id(user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if target.role == Role.ADMIN.value:
        raise HTTPException(status_code=403, detail="Cannot delete admin")

    AdminService(session).delete_user(target)
    logger.info(f"User {user_id} deleted by admin {user.id}")
    return {"success": True, "message": "User deleted"}


# ===== UPLOAD =====

@app.post("/upload")
@app.post("/api/upload")
async def upload(image: Optional[UploadFile] = File(None)):
    if image is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = await image.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file uploaded")
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are allowed")

    try:
        return await upload_service.upload_image(content, content_type)
    except upload_service.UploadError as e:
        logger.error(f"Upload of {image.filename} failed: {e}")
        raise HTTPException(status_code=500, detail="Upload failed")


# ===== SOCKET RELAY =====

def _case_id(data) -> Optional[int]:
    if isinstance(data, dict):
        data = data.get("case_id")
    try:
        return int(data)
    except (TypeError, ValueError):
        return None


async def on_join_case(websocket: WebSocket, session: Session, user: User, data):
    case_id = _case_id(data)
    case = session.get(Case, case_id) if case_id is not None else None
    if not case or not CaseService.can_access(user, case):
        await manager.send(websocket, "error", "Unauthorized case access")
        return

    manager.join(websocket, case_room(case.id))
    messages = MessageService(session).initial(case.id)
    await manager.send(websocket, "initialMessages", [message_to_dict(m) for m in messages])
    logger.info(f"User {user.id} joined case {case.id}")


async def on_leave_case(websocket: WebSocket, session: Session, user: User, data):
    case_id = _case_id(data)
    if case_id is not None:
        manager.leave(websocket, case_room(case_id))
        logger.info(f"User {user.id} left case {case_id}")


async def on_send_message(websocket: WebSocket, session: Session, user: User, data):
    case_id = _case_id(data)
    text = data.get("text") if isinstance(data, dict) else None
    if case_id is None or not isinstance(text, str) or not text.strip():
        await manager.send(websocket, "error", "Invalid message format")
        return
    await post_message(session, user, case_id, text)


async def on_mark_as_read(websocket: WebSocket, session: Session, user: User, data):
    case_id = _case_id(data)
    case = session.get(Case, case_id) if case_id is not None else None
    if not case or not CaseService.can_access(user, case):
        await manager.send(websocket, "error", "Unauthorized case access")
        return

    try:
        message_ids = MarkReadRequest.model_validate(
            {"message_ids": data.get("message_ids") if isinstance(data, dict) else None}
        ).message_ids
    except ValidationError:
        await manager.send(websocket, "error", "Invalid message ids")
        return

    MessageService(session).mark_read(case.id, user, message_ids)
    await manager.emit(
        case_room(case.id), "messagesRead", {"case_id": case.id, "message_ids": message_ids}, skip=websocket,
    )


async def on_update_location(websocket: WebSocket, session: Session, user: User, data):
    try:
        location = LiveLocationUpdate.model_validate(data)
    except ValidationError:
        await manager.send(websocket, "error", "Invalid location")
        return
    await update_live_location(session, user, location.latitude, location.longitude)


async def on_ping(websocket: WebSocket, session: Session, user: User, data):
    await manager.send(websocket, "pong")


SOCKET_EVENTS = {
    "joinCase": on_join_case,
    "leaveCase": on_leave_case,
    "sendMessage": on_send_message,
    "markAsRead": on_mark_as_read,
    "updateLocation": on_update_location,
    "ping": on_ping,
}


async def handle_socket_event(websocket: WebSocket, user_id: int, raw: str):
    try:
        frame = json.loads(raw)
    except ValueError:
        await manager.send(websocket, "error", "Invalid event")
        return
    if not isinstance(frame, dict):
        await manager.send(websocket, "error", "Invalid event")
        return

    event = frame.get("event")
    handler = SOCKET_EVENTS.get(event)
    if handler is None:
        await manager.send(websocket, "error", "Unknown event")
        return

    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None or not user.is_active:
            await manager.send(websocket, "error", "Authentication error")
            return
        try:
            await handler(websocket, session, user, frame.get("data"))
        except HTTPException as e:
            await manager.send(websocket, "error", e.detail)
        except Exception:
            logger.exception(f"Error handling socket event {event} for user {user_id}")
            await manager.send(websocket, "error", f"Failed to handle {event}")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)):
    with Session(engine, expire_on_commit=False) as session:
        user = user_from_token(session, token) if token else None
        if user is None:
            await websocket.close(code=1008)
            return
        user_id, role = user.id, user.role

    await manager.connect(websocket)
    manager.join(websocket, user_room(user_id))
    if role in STAFF_ROLES:
        manager.join(websocket, TRACKING_ROOM)
    logger.info(f"Socket connected for user {user_id} ({role})")

    try:
        while True:
            raw = await websocket.receive_text()
            await handle_socket_event(websocket, user_id, raw)
    except WebSocketDisconnect:
        logger.info(f"Socket disconnected for user {user_id}")
    except Exception:
        logger.exception(f"Socket for user {user_id} closed on error")
    finally:
        manager.disconnect(websocket)
