"""Announcement schemas"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

AnnouncementStatus = Literal["draft", "pending", "scheduled", "published", "archived"]


class AnnouncementCreate(BaseModel):
    """Schema for creating an announcement"""

    title: str = Field(..., min_length=1, max_length=500)
    type: str = Field("job", max_length=32)
    category: Optional[str] = Field(None, max_length=255)
    organization: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    external_link: Optional[str] = Field(None, max_length=1000)
    status: AnnouncementStatus = "draft"
    publish_at: Optional[datetime] = None
    note: Optional[str] = None


class AnnouncementUpdate(BaseModel):
    """Schema for a partial update; only fields present are applied"""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    type: Optional[str] = Field(None, max_length=32)
    category: Optional[str] = Field(None, max_length=255)
    organization: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    external_link: Optional[str] = Field(None, max_length=1000)
    status: Optional[AnnouncementStatus] = None
    is_active: Optional[bool] = None
    publish_at: Optional[datetime] = None
    note: Optional[str] = None


class AnnouncementDecision(BaseModel):
    """Body of approve/reject"""

    note: Optional[str] = Field(None, max_length=1000)


class AnnouncementBulkReview(BaseModel):
    """Body of bulk-approve/bulk-reject"""

    ids: List[str] = Field(..., min_length=1, max_length=100)
    note: Optional[str] = Field(None, max_length=1000)


class AnnouncementRollback(BaseModel):
    version: int = Field(..., ge=1)
    note: Optional[str] = Field(None, max_length=1000)


class AnnouncementResponse(BaseModel):
    """Schema for announcement response"""

    id: str
    title: str
    type: str
    category: Optional[str] = None
    organization: Optional[str] = None
    content: Optional[str] = None
    external_link: Optional[str] = None
    status: str
    is_active: bool
    publish_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    note: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    version: int
    versions: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AnnouncementListResponse(BaseModel):
    items: List[AnnouncementResponse]
    total: int


def serialize_announcement(announcement) -> Dict[str, Any]:
    """JSON-ready dict of an Announcement row"""
    return AnnouncementResponse.model_validate(announcement).model_dump(mode="json")
