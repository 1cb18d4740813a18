"""Approval request schemas"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ApprovalRequestResponse(BaseModel):
    """Schema for an approval request"""

    approval_id: str
    action: str
    action_class: str
    target_id: str
    target_ids: Optional[List[str]] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    status: str                          # pending | approved | rejected | expired | executed
    payload: Dict[str, Any] = Field(default_factory=dict)
    note: Optional[str] = None
    requester_user_id: str
    requester_email: Optional[str] = None
    reviewer_user_id: Optional[str] = None
    decision_note: Optional[str] = None
    executed_by: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    decided_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApprovalDecisionRequest(BaseModel):
    """Schema for a reviewer's approve/reject decision"""

    note: Optional[str] = Field(default=None, max_length=1000, description="Optional note recorded with the decision")


class ApprovalListResponse(BaseModel):
    """Schema for list of approval requests"""

    items: List[ApprovalRequestResponse]
    total: int
    pending_count: int


class ApprovalSummaryResponse(BaseModel):
    counts: Dict[str, int]
    due_soon: int
    due_soon_minutes: int


class ApprovalCleanupResponse(BaseModel):
    expired: int
    purged: int
    retention_days: int


def serialize_approval(approval) -> Dict[str, Any]:
    """JSON-ready dict of an ApprovalRequest row"""
    return ApprovalRequestResponse.model_validate(approval).model_dump(mode="json")
