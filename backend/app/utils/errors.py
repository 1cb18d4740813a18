"""Machine-readable error taxonomy for the admin authorization core.

Every error carries a stable ``error`` code that the admin UI switches on
(prompt for step-up, wait for a reviewer, or show a permanent failure).
The single exception handler in ``app.main`` renders them as::

    {"error": <code>, "reason": <sub-reason?>, "message": <text>, **extra}
"""
from typing import Any, Dict, Optional

from fastapi import status


class AdminGuardError(Exception):
    """Base class for errors surfaced verbatim to the caller."""

    error: str = "app_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be completed"

    def __init__(
        self,
        message: Optional[str] = None,
        reason: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.reason = reason
        self.extra = extra or {}
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.reason is not None:
            body["reason"] = self.reason
        body.update(self.extra)
        return body


class AuthenticationRequiredError(AdminGuardError):
    error = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class PermissionDeniedError(AdminGuardError):
    error = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class NotFoundError(AdminGuardError):
    error = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class CsrfInvalidError(AdminGuardError):
    error = "csrf_invalid"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "CSRF token missing or invalid"


class StepUpRequiredError(AdminGuardError):
    error = "step_up_required"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Re-authenticate to continue with this action"


class InvalidCredentialsError(AdminGuardError):
    error = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid credentials"


class TwoFactorRequiredError(AdminGuardError):
    error = "two_factor_required"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Two-factor code required"


class NotEnrolledMismatchError(AdminGuardError):
    error = "not_enrolled_mismatch"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "A two-factor code was supplied but this account is not enrolled"


class ApprovalInvalidError(AdminGuardError):
    error = "approval_invalid"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Approval is missing, expired, or does not match this action."


class ApprovalNotFoundError(AdminGuardError):
    error = "approval_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Approval request not found"


class SelfApprovalForbiddenError(AdminGuardError):
    error = "self_approval_forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Requesters cannot decide their own approval requests"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message=message, reason="self_approval_forbidden")


class BreakGlassDisabledError(AdminGuardError):
    error = "break_glass_disabled"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Break-glass override is disabled by policy"


class BreakGlassReasonTooShortError(AdminGuardError):
    error = "break_glass_reason_too_short"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Break-glass reason is too short"
