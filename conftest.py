import os

# Must be set before supportdesk.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["BREVO_API_KEY"] = ""
os.environ["CLOUDINARY_CLOUD_NAME"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from supportdesk import email_service
from supportdesk.auth import create_token
from supportdesk.config import engine
from supportdesk.main import app
from supportdesk.models import Role, AgentDepartment
from supportdesk.services import UserService, CaseService

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


@pytest.fixture
def sent_otps(monkeypatch):
    """Capture OTP emails instead of sending them"""
    sent = []

    def fake_send(email, otp, purpose):
        sent.append({"email": email, "otp": otp, "purpose": purpose})
        return True

    monkeypatch.setattr(email_service, "send_otp_email", fake_send)
    return sent


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(role=Role.CUSTOMER.value, email=None, password=PASSWORD, **fields):
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@example.com"
        fields.setdefault("fullname", f"{role.title()} {counter['n']}")
        if role in (Role.AGENT.value, Role.SUPERVISOR.value):
            fields.setdefault("department", AgentDepartment.GENERAL_SUPPORT.value)
        with Session(engine) as session:
            return UserService(session).create(email=email, password=password, role=role, **fields)

    return _make


@pytest.fixture
def make_case():
    def _make(customer, issue="My card was stolen", department="cyber_crime", **fields):
        with Session(engine) as session:
            return CaseService(session).create(customer=customer, issue=issue, department=department, **fields)

    return _make


def auth(user):
    return {"Authorization": f"Bearer {create_token(user)}"}


@pytest.fixture
def headers():
    return auth
