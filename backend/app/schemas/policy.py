"""Runtime security policy schemas"""
from typing import Dict, Optional

from pydantic import BaseModel, Field

from app.services.runtime_policy import MIN_BREAK_GLASS_REASON_FLOOR


class SecurityPolicyResponse(BaseModel):
    dual_approval_required: bool
    break_glass_enabled: bool
    break_glass_min_reason_length: int
    approval_policy_matrix: Dict[str, bool] = Field(default_factory=dict)


class SecurityPolicyUpdate(BaseModel):
    """Fields left unset keep their current value"""

    dual_approval_required: Optional[bool] = None
    break_glass_enabled: Optional[bool] = None
    break_glass_min_reason_length: Optional[int] = Field(None, ge=MIN_BREAK_GLASS_REASON_FLOOR, le=500)
    approval_policy_matrix: Optional[Dict[str, bool]] = None
