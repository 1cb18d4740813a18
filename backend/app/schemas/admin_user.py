"""AdminUser management schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.permissions import ADMIN_PORTAL_ROLES


class AdminUserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=255, description="Display name for this admin user")
    role: str = Field(..., description="Role: admin | editor | contributor | reviewer | viewer")
    password: str = Field(..., min_length=12, description="Initial password (argon2-hashed at rest)")

    @field_validator("role")
    @classmethod
    def role_must_be_portal_role(cls, value: str) -> str:
        if value not in ADMIN_PORTAL_ROLES:
            raise ValueError(f"role must be one of: {', '.join(ADMIN_PORTAL_ROLES)}")
        return value


class AdminUserDetail(BaseModel):
    user_id: str
    email: str
    name: str
    role: str
    two_factor_enrolled: bool
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AdminUserListResponse(BaseModel):
    items: List[AdminUserDetail]
    total: int
