"""
Create an administrator account directly in the database

Usage: python -m supportdesk.create_admin <email> <password> [fullname]
"""
import logging
import sys

from sqlmodel import Session

from supportdesk.config import engine, init_db, setup_logging
from supportdesk.models import Role
from supportdesk.services import UserService

logger = logging.getLogger(__name__)


def create_admin(session: Session, email: str, password: str, fullname: str = "Admin"):
    """Return ``(user, created)``; an existing account with that email is left untouched"""
    users = UserService(session)
    existing = users.get_by_email(email)
    if existing:
        return existing, False

    admin = users.create(
        email=email,
        password=password,
        role=Role.ADMIN.value,
        fullname=fullname,
        department=None,
        is_first_login=False,
    )
    return admin, True


def main(argv=None):
    setup_logging()
    args = sys.argv[1:] if argv is None else argv
    if len(args) < 2:
        print(__doc__.strip().splitlines()[-1])
        return 1

    init_db()
    with Session(engine) as session:
        user, created = create_admin(session, args[0], args[1], *args[2:3])
        if created:
            logger.info(f"Created admin user {user.email} (id {user.id})")
        else:
            logger.warning(f"User {user.email} already exists with role {user.role}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
