"""Pydantic schemas for request/response validation"""
from app.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementResponse,
    AnnouncementUpdate,
)
from app.schemas.approval import ApprovalListResponse, ApprovalRequestResponse
from app.schemas.audit_log import AuditLogResponse, ChainVerifyResponse
from app.schemas.auth import LoginRequest, StepUpRequest, StepUpResponse
from app.schemas.policy import SecurityPolicyResponse, SecurityPolicyUpdate

__all__ = [
    "AnnouncementCreate",
    "AnnouncementResponse",
    "AnnouncementUpdate",
    "ApprovalListResponse",
    "ApprovalRequestResponse",
    "AuditLogResponse",
    "ChainVerifyResponse",
    "LoginRequest",
    "StepUpRequest",
    "StepUpResponse",
    "SecurityPolicyResponse",
    "SecurityPolicyUpdate",
]
