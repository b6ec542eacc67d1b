# SupportDesk services


from supportdesk.services.user_service import UserService
from supportdesk.services.case_service import CaseService, CaseTransitionError
from supportdesk.services.message_service import MessageService
from supportdesk.services.notification_service import NotificationService
from supportdesk.services.admin_service import AdminService
from supportdesk.services.otp_service import OTPService

__all__ = [
    "UserService",
    "CaseService",
    "CaseTransitionError",
    "MessageService",
    "NotificationService",
    "AdminService",
    "OTPService",
]
