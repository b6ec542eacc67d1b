"""
Transactional email through the Brevo HTTP API

Delivery is best effort: failures are logged and reported as ``False``,
never raised and never retried.
"""

import logging
import secrets
import string

import requests

from supportdesk import config

logger = logging.getLogger(__name__)

PASSWORD_LENGTH = 12
PASSWORD_CHARSET = string.ascii_lowercase + string.ascii_uppercase + string.digits + "!@#$%^&*"

OTP_PURPOSE_TITLES = {
    "registration": "Account Registration",
    "password-reset": "Password Reset",
    "password-change": "Password Change",
}


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))


def send_email(to_email: str, subject: str, html_content: str) -> bool:
    if not config.BREVO_API_KEY:
        logger.warning(f"BREVO_API_KEY not configured - email to {to_email} not sent")
        return False

    payload = {
        "sender": {"name": config.MAIL_SENDER_NAME, "email": config.MAIL_SENDER_EMAIL},
        "to": [{"email": to_email}],
        "subject": subject,
        "htmlContent": html_content,
    }
    headers = {
        "api-key": config.BREVO_API_KEY,
        "accept": "application/json",
        "content-type": "application/json",
    }

    try:
        response = requests.post(config.BREVO_API_URL, json=payload, headers=headers, timeout=15)
    except requests.RequestException as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False

    if response.status_code not in (200, 201, 202):
        logger.error(f"Mail relay rejected email to {to_email}: {response.status_code} - {response.text}")
        return False

    message_id = None
    try:
        message_id = response.json().get("messageId")
    except ValueError:
        pass
    logger.info(f"Email '{subject}' sent to {to_email} (id: {message_id})")
    return True


def send_credentials_email(email: str, fullname: str, password: str, department: str) -> bool:
    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: auto; padding: 20px; border: 1px solid #ddd;">
      <h2>Welcome, {fullname}!</h2>
      <p>Your agent account has been created successfully.</p>
      <div style="background: #f4f4f4; padding: 15px; border-radius: 8px; margin: 20px 0;">
        <p><strong>Email:</strong> {email}</p>
        <p><strong>Temporary Password:</strong> <code>{password}</code></p>
        <p><strong>Department:</strong> {department}</p>
      </div>
      <p><strong>Important:</strong> Please change your password immediately after logging in.</p>
      <p><a href="{config.FRONTEND_URL}">Login Now</a></p>
      <p>Best regards,<br>Admin Team</p>
    </div>
    """
    return send_email(email, "Your Agent Account Credentials", html)


def send_otp_email(email: str, otp: str, purpose: str) -> bool:
    title = OTP_PURPOSE_TITLES.get(purpose, "Verification")
    html = f"""
    <div style="font-family: Arial, sans-serif; padding: 20px;">
      <h2>{title}</h2>
      <p>Your OTP code is:</p>
      <h1 style="color: #007bff; letter-spacing: 5px;">{otp}</h1>
      <p>This code will expire in {config.OTP_EXPIRE_MINUTES} minutes.</p>
    </div>
    """
    return send_email(email, f"{title} - OTP Verification", html)
