"""Login, step-up and session schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    code: Optional[str] = Field(None, description="TOTP or backup code when 2FA is enrolled")


class StepUpRequest(BaseModel):
    """Re-authentication for sensitive actions"""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    code: Optional[str] = Field(None, description="TOTP or backup code when 2FA is enrolled")


class StepUpResponse(BaseModel):
    """The opaque token goes in X-Admin-Step-Up-Token on sensitive calls"""

    token: str
    expires_at: datetime
    single_use: bool


class AdminUserResponse(BaseModel):
    user_id: str
    email: str
    name: str
    role: str
    two_factor_enrolled: bool
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    user: AdminUserResponse
    session_id: str
    permissions: List[str]


class SessionResponse(BaseModel):
    session_id: str
    issued_at: datetime
    expires_at: datetime
    last_activity_at: datetime
    ip: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    is_active: bool
    is_current: bool = False

    class Config:
        from_attributes = True


class TerminateSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
