"""Policy Gate: decides whether a guarded admin mutation runs now.

Decision order, first match wins:

1. action not sensitive                        -> Allow
2. no valid step-up token                      -> RequireStepUp
3. action needs no second reviewer under the
   current policy                              -> Allow
4. break-glass reason supplied                 -> Allow (audited) or Deny
5. approval id supplied                        -> Allow via the approved
                                                  request, or Deny
6. otherwise                                   -> RequireApproval (new pending request)

Step-up comes first because break-glass and approval replay are themselves
sensitive capabilities.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Union

from sqlalchemy.orm import Session

from app.middleware.monitoring import record_break_glass, record_policy_decision
from app.models.approval import ApprovalRequest
from app.services.actions import ActionSpec
from app.services.approval_ledger import ApprovalLedger, MutationResult
from app.services.audit_sink import AuditSink
from app.services.break_glass import BreakGlassInvocation, BreakGlassOverride
from app.services.runtime_policy import PolicyConfig
from app.services.step_up import StepUpGrant, StepUpVerifier
from app.schemas.approval import serialize_approval
from app.utils.errors import AdminGuardError, StepUpRequiredError
from app.utils.logger import logger
from app.utils.permissions import has_permission
from app.utils.webhook import send_webhook


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ActorContext:
    """The authenticated admin behind a request"""

    user_id: str
    session_id: str
    role: str
    email: Optional[str] = None
    permissions: FrozenSet[str] = frozenset()

    def can(self, permission: str) -> bool:
        return has_permission(self.permissions, permission)


@dataclass(frozen=True)
class Plain:
    pass


@dataclass(frozen=True)
class WithApprovalId:
    approval_id: str


@dataclass(frozen=True)
class WithBreakGlass:
    reason: str


RequestIntent = Union[Plain, WithApprovalId, WithBreakGlass]


def intent_from_headers(approval_id: Optional[str], break_glass_reason: Optional[str]) -> RequestIntent:
    """Build the request intent once at the HTTP boundary.

    A break-glass reason takes precedence over an approval id, matching the
    gate's evaluation order.
    """
    if break_glass_reason and break_glass_reason.strip():
        return WithBreakGlass(reason=break_glass_reason)
    if approval_id and approval_id.strip():
        return WithApprovalId(approval_id=approval_id.strip())
    return Plain()


@dataclass(frozen=True)
class GuardedRequest:
    """A mutation the caller wants to perform"""

    action: ActionSpec
    target_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    note: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    target_ids: Optional[List[str]] = None


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

@dataclass
class Allow:
    grant: Optional[StepUpGrant] = None
    approval: Optional[ApprovalRequest] = None
    break_glass: Optional[BreakGlassInvocation] = None

    label = "allow"

    @property
    def audit_metadata(self) -> Dict[str, Any]:
        if self.break_glass is not None:
            return self.break_glass.audit_metadata()
        if self.approval is not None:
            return {"approvalId": self.approval.approval_id}
        return {}


@dataclass
class RequireStepUp:
    error: StepUpRequiredError = field(default_factory=StepUpRequiredError)

    label = "step_up_required"


@dataclass
class RequireApproval:
    approval: ApprovalRequest

    label = "approval_required"


@dataclass
class Deny:
    error: AdminGuardError

    label = "deny"


Decision = Union[Allow, RequireStepUp, RequireApproval, Deny]

Apply = Callable[[Dict[str, Any]], MutationResult]


def approval_required_body(approval: ApprovalRequest, config: PolicyConfig) -> Dict[str, Any]:
    return {
        "error": "approval_required",
        "requiresApproval": True,
        "approvalId": approval.approval_id,
        "message": "Approval required before this action can be executed.",
        "data": serialize_approval(approval),
        "breakGlass": {
            "enabled": config.break_glass_enabled,
            "minReasonLength": config.break_glass_min_reason_length,
        },
    }


class PolicyGate:
    def __init__(
        self,
        db: Session,
        config: PolicyConfig,
        verifier: StepUpVerifier,
        ledger: ApprovalLedger,
        audit: AuditSink,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.config = config
        self.verifier = verifier
        self.ledger = ledger
        self.audit = audit
        self.break_glass = BreakGlassOverride(config, clock=clock)

    def decide(
        self,
        actor: ActorContext,
        request: GuardedRequest,
        intent: RequestIntent,
        step_up_token: Optional[str],
    ) -> Decision:
        action = request.action
        if not action.sensitive:
            return Allow()

        grant = self.verifier.verify(actor.user_id, actor.session_id, step_up_token)
        if grant is None:
            return RequireStepUp()

        if action.action_class is None or not self.config.requires_dual_approval(action.name, action.dual_approval):
            return Allow(grant=grant)

        try:
            if isinstance(intent, WithBreakGlass):
                invocation = self.break_glass.authorize(
                    actor.user_id, action.name, request.target_id, intent.reason
                )
                return Allow(grant=grant, break_glass=invocation)

            if isinstance(intent, WithApprovalId):
                approval = self.ledger.check_for_execution(
                    intent.approval_id,
                    action,
                    request.target_id,
                    request.payload,
                    actor.user_id,
                )
                return Allow(grant=grant, approval=approval)

            approval = self.ledger.create_pending(
                action,
                request.target_id,
                actor.user_id,
                request.payload,
                requester_email=actor.email,
                note=request.note,
                endpoint=request.endpoint,
                method=request.method,
                target_ids=request.target_ids,
            )
            return RequireApproval(approval=approval)
        except AdminGuardError as exc:
            return Deny(error=exc)

    def enforce(
        self,
        actor: ActorContext,
        request: GuardedRequest,
        intent: RequestIntent,
        step_up_token: Optional[str],
        apply: Apply,
    ) -> MutationResult:
        """Decide, then act on the decision.

        ``apply`` performs the mutation (and its own audit entry) inside the
        session without committing; it receives the audit metadata the
        decision requires. Denials are audited and raised.
        """
        decision = self.decide(actor, request, intent, step_up_token)
        action = request.action
        record_policy_decision(action.name, decision.label)

        log_extra = {
            "action": action.name,
            "decision": decision.label,
            "user_id": actor.user_id,
            "session_id": actor.session_id,
            "announcement_id": request.target_id,
        }

        if isinstance(decision, (RequireStepUp, Deny)):
            error = decision.error
            logger.warning(
                f"Guarded action blocked: {error.error}",
                extra={**log_extra, "error": error.error, "reason": error.reason},
            )
            self._record_denial(actor, request, error)
            raise error

        if isinstance(decision, RequireApproval):
            logger.info("Guarded action queued for approval", extra={**log_extra, "approval_id": decision.approval.approval_id})
            return MutationResult(status_code=202, body=approval_required_body(decision.approval, self.config))

        logger.info("Guarded action allowed", extra=log_extra)

        def consume_grant():
            if decision.grant is not None:
                self.verifier.consume(decision.grant)

        if decision.approval is not None:
            return self.ledger.execute(decision.approval, actor.user_id, apply, before_apply=consume_grant)

        try:
            consume_grant()
            result = apply(decision.audit_metadata)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if decision.break_glass is not None:
            self._announce_break_glass(actor, decision.break_glass)
        return result

    def _record_denial(self, actor: ActorContext, request: GuardedRequest, error: AdminGuardError) -> None:
        self.db.rollback()
        metadata = {"actionType": request.action.name, "error": error.error}
        if error.reason:
            metadata["reason"] = error.reason
        self.audit.record(
            "guard_denied",
            announcement_id=request.target_id,
            user_id=actor.user_id,
            metadata=metadata,
        )
        self.db.commit()

    def _announce_break_glass(self, actor: ActorContext, invocation: BreakGlassInvocation) -> None:
        record_break_glass()
        logger.warning(
            "Break-glass override used",
            extra={
                "action": invocation.action,
                "user_id": actor.user_id,
                "announcement_id": invocation.target_id,
                "reason": invocation.reason,
            },
        )
        send_webhook(
            "break_glass.used",
            {
                "action": invocation.action,
                "target_id": invocation.target_id,
                "actor_user_id": actor.user_id,
                "actor_email": actor.email,
                "reason": invocation.reason,
            },
        )
