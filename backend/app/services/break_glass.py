"""Break-glass override: single-operator bypass of dual approval"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict

from app.services.runtime_policy import PolicyConfig
from app.utils.errors import BreakGlassDisabledError, BreakGlassReasonTooShortError


@dataclass(frozen=True)
class BreakGlassInvocation:
    """Who bypassed dual approval, on what, and why.

    Not persisted on its own; it rides along as audit metadata on the
    mutation it authorized.
    """

    actor_user_id: str
    target_id: str
    action: str
    reason: str
    invoked_at: datetime

    def audit_metadata(self) -> Dict[str, Any]:
        return {"breakGlassUsed": True, "breakGlassReason": self.reason}


class BreakGlassOverride:
    def __init__(self, config: PolicyConfig, clock: Callable[[], datetime] = datetime.utcnow):
        self.config = config
        self.clock = clock

    def authorize(self, actor_user_id: str, action: str, target_id: str, reason: str) -> BreakGlassInvocation:
        """Admit a break-glass request or raise why not.

        Raises:
            BreakGlassDisabledError: the override is switched off.
            BreakGlassReasonTooShortError: the trimmed reason is shorter than
                the configured minimum.
        """
        if not self.config.break_glass_enabled:
            raise BreakGlassDisabledError()

        minimum = self.config.break_glass_min_reason_length
        if len(reason.strip()) < minimum:
            raise BreakGlassReasonTooShortError(
                f"Break-glass reason must be at least {minimum} characters",
                extra={"minReasonLength": minimum},
            )

        return BreakGlassInvocation(
            actor_user_id=actor_user_id,
            target_id=target_id,
            action=action,
            reason=reason,
            invoked_at=self.clock(),
        )
