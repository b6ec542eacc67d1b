import os
import logging
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine
from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

# Database - Railway compatible (PostgreSQL preferred for production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./supportdesk.db")

# Handle Railway PostgreSQL URL format
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
SERVER_URL = os.getenv("SERVER_URL", API_BASE_URL)

# Mail relay (Brevo transactional API)
BREVO_API_KEY = os.getenv("BREVO_API_KEY")
BREVO_API_URL = os.getenv("BREVO_API_URL", "https://api.brevo.com/v3/smtp/email")
MAIL_SENDER_EMAIL = os.getenv("MAIL_SENDER_EMAIL", "no-reply@supportdesk.local")
MAIL_SENDER_NAME = os.getenv("MAIL_SENDER_NAME", "Support Team")

# Image host (Cloudinary upload API)
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "customer_profile")

OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live as long as their single connection
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))


def init_db():
    # models must be imported so their tables are registered on the metadata
    from supportdesk import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def setup_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
