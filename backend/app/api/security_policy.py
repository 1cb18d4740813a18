"""Runtime security policy endpoints"""
from fastapi import APIRouter, Depends

from app.api.deps import (
    GuardContext,
    get_guard_context,
    get_policy_config,
    get_policy_store,
    require_permission,
    verify_csrf,
)
from app.services import actions
from app.services.approval_ledger import MutationResult
from app.services.policy_gate import ActorContext
from app.services.runtime_policy import PolicyConfig, RuntimePolicyStore
from app.schemas.policy import SecurityPolicyResponse, SecurityPolicyUpdate
from app.utils.logger import logger

router = APIRouter(
    prefix="/admin/security/policy",
    tags=["security"],
    dependencies=[Depends(verify_csrf)],
)


def _serialize(config: PolicyConfig) -> dict:
    return SecurityPolicyResponse(
        dual_approval_required=config.dual_approval_required,
        break_glass_enabled=config.break_glass_enabled,
        break_glass_min_reason_length=config.break_glass_min_reason_length,
        approval_policy_matrix=dict(config.approval_policy_matrix),
    ).model_dump()


@router.get("")
def get_security_policy(
    config: PolicyConfig = Depends(get_policy_config),
    _: ActorContext = Depends(require_permission("security:read")),
):
    return {"data": _serialize(config)}


@router.put("")
def update_security_policy(
    data: SecurityPolicyUpdate,
    actor: ActorContext = Depends(require_permission("security:write")),
    guard: GuardContext = Depends(get_guard_context),
    store: RuntimePolicyStore = Depends(get_policy_store),
):
    """
    Change dual approval / break-glass settings at runtime (step-up).

    Unset fields keep their current value. The new policy applies to the next
    request; requests already in flight finish under the old one.
    """
    changes = data.model_dump(exclude_none=True)

    def apply(metadata):
        before = store.get()
        after = store.update(**changes)
        guard.gate.audit.record(
            "update_security_policy",
            user_id=actor.user_id,
            metadata={**metadata, "before": before.to_dict(), "after": after.to_dict()},
        )
        return MutationResult(status_code=200, body={"data": _serialize(after)})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.UPDATE_SECURITY_POLICY, "security_policy", changes),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    logger.info("Security policy updated", extra={"user_id": actor.user_id, "action": "update_security_policy"})
    return result.body
