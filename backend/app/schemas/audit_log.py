"""Audit log schemas"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class AuditLogResponse(BaseModel):
    """Schema for audit log response"""

    log_id: str
    action: str
    announcement_id: Optional[str] = None
    user_id: Optional[str] = None
    note: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    previous_hash: str = ""

    class Config:
        from_attributes = True

    @model_validator(mode='before')
    @classmethod
    def map_log_metadata(cls, data):
        """Map log_metadata attribute to metadata field"""
        # Handle SQLAlchemy model objects
        if hasattr(data, '__dict__') and hasattr(data, 'log_metadata'):
            return {
                'log_id': data.log_id,
                'action': data.action,
                'announcement_id': data.announcement_id,
                'user_id': data.user_id,
                'note': data.note,
                'metadata': data.log_metadata,
                'created_at': data.created_at,
                'previous_hash': data.previous_hash or '',
            }
        return data


class AuditLogListResponse(BaseModel):
    items: List[AuditLogResponse]
    total: int


class ChainVerifyResponse(BaseModel):
    """Response from GET /admin/audit-logs/verify"""

    valid: bool = Field(..., description="True if the entire chain is intact")
    total_entries: int = Field(..., description="Total number of entries checked")
    broken_at: Optional[str] = Field(
        None,
        description="log_id of the first entry whose hash does not match; null when valid=true",
    )
