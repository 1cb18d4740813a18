"""Runtime-mutable security policy.

The flags that govern the Policy Gate are held in an immutable
``PolicyConfig``. ``RuntimePolicyStore`` swaps the whole object on update, so
a request always sees one consistent snapshot; nothing reads a module-level
global at decision time.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from app.config import Settings

# Floor applied to the break-glass reason length, whatever is configured
MIN_BREAK_GLASS_REASON_FLOOR = 8


@dataclass(frozen=True)
class PolicyConfig:
    dual_approval_required: bool = True
    break_glass_enabled: bool = False
    break_glass_min_reason_length: int = 12
    approval_policy_matrix: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(
            self,
            "break_glass_min_reason_length",
            max(MIN_BREAK_GLASS_REASON_FLOOR, int(self.break_glass_min_reason_length)),
        )
        object.__setattr__(self, "approval_policy_matrix", dict(self.approval_policy_matrix))

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyConfig":
        return cls(
            dual_approval_required=settings.ADMIN_DUAL_APPROVAL_REQUIRED,
            break_glass_enabled=settings.ADMIN_BREAK_GLASS_ENABLED,
            break_glass_min_reason_length=settings.ADMIN_BREAK_GLASS_MIN_REASON_LENGTH,
            approval_policy_matrix=settings.ADMIN_APPROVAL_POLICY_MATRIX,
        )

    def requires_dual_approval(self, action_name: str, default: bool) -> bool:
        """Whether an action needs a second reviewer under this policy"""
        if not self.dual_approval_required:
            return False
        return bool(self.approval_policy_matrix.get(action_name, default))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dualApprovalRequired": self.dual_approval_required,
            "breakGlassEnabled": self.break_glass_enabled,
            "breakGlassMinReasonLength": self.break_glass_min_reason_length,
            "approvalPolicyMatrix": dict(self.approval_policy_matrix),
        }


class RuntimePolicyStore:
    """Holds the current PolicyConfig for the running app"""

    def __init__(self, initial: PolicyConfig):
        self._current = initial

    def get(self) -> PolicyConfig:
        return self._current

    def update(
        self,
        dual_approval_required: Optional[bool] = None,
        break_glass_enabled: Optional[bool] = None,
        break_glass_min_reason_length: Optional[int] = None,
        approval_policy_matrix: Optional[Mapping[str, bool]] = None,
    ) -> PolicyConfig:
        """Replace the current config with a copy carrying the given changes"""
        changes: Dict[str, Any] = {}
        if dual_approval_required is not None:
            changes["dual_approval_required"] = dual_approval_required
        if break_glass_enabled is not None:
            changes["break_glass_enabled"] = break_glass_enabled
        if break_glass_min_reason_length is not None:
            changes["break_glass_min_reason_length"] = break_glass_min_reason_length
        if approval_policy_matrix is not None:
            changes["approval_policy_matrix"] = approval_policy_matrix

        self._current = replace(self._current, **changes)
        return self._current
