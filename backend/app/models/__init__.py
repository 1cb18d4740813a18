"""Database models"""
from app.models.admin_session import AdminSession
from app.models.admin_user import AdminUser
from app.models.announcement import Announcement
from app.models.approval import ApprovalRequest
from app.models.audit_log import AdminAuditLog
from app.models.step_up_token import StepUpToken

__all__ = [
    "AdminAuditLog",
    "AdminSession",
    "AdminUser",
    "Announcement",
    "ApprovalRequest",
    "StepUpToken",
]
