"""
OTP Service - one-time codes for password reset and change
"""

import secrets
from datetime import timedelta
from sqlmodel import Session, select
from typing import Optional

from supportdesk import config
from supportdesk import email_service
from supportdesk.models import OTP, utc_now


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


class OTPService:
    """Issue and verify one-time codes per (email, purpose)"""

    def __init__(self, session: Session):
        self.session = session

    def _clear(self, email: str, purpose: str):
        for record in self.session.exec(
            select(OTP).where(OTP.email == email).where(OTP.purpose == purpose)
        ).all():
            self.session.delete(record)

    def create(self, email: str, purpose: str) -> str:
        """Replace any previous code for ``email``/``purpose`` and email the new one"""
        email = email.strip().lower()
        self._clear(email, purpose)

        code = generate_otp()
        self.session.add(OTP(
            email=email,
            otp=code,
            purpose=purpose,
            expires_at=utc_now() + timedelta(minutes=config.OTP_EXPIRE_MINUTES),
        ))
        self.session.commit()

        email_service.send_otp_email(email, code, purpose)
        return code

    def _find(self, email: str, purpose: str, verified: bool, otp: Optional[str] = None) -> Optional[OTP]:
        query = (
            select(OTP)
            .where(OTP.email == email.strip().lower())
            .where(OTP.purpose == purpose)
            .where(OTP.verified == verified)
            .where(OTP.expires_at > utc_now())
        )
        if otp is not None:
            query = query.where(OTP.otp == otp)
        return self.session.exec(query).first()

    def verify(self, email: str, otp: str, purpose: str) -> bool:
        record = self._find(email, purpose, verified=False, otp=otp)
        if not record:
            return False
        record.verified = True
        self.session.add(record)
        self.session.commit()
        return True

    def is_verified(self, email: str, purpose: str) -> bool:
        return self._find(email, purpose, verified=True) is not None

    def consume(self, email: str, purpose: str):
        self._clear(email.strip().lower(), purpose)
        self.session.commit()
