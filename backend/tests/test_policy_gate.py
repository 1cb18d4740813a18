"""Tests for the Policy Gate decision order"""
import pytest

from app.models.audit_log import AdminAuditLog
from app.services import actions
from app.services.approval_ledger import ApprovalLedger, MutationResult
from app.services.audit_sink import AuditSink
from app.services.policy_gate import (
    ActorContext,
    Allow,
    Deny,
    GuardedRequest,
    Plain,
    PolicyGate,
    RequireApproval,
    RequireStepUp,
    WithApprovalId,
    WithBreakGlass,
    intent_from_headers,
)
from app.services.runtime_policy import PolicyConfig
from app.services.step_up import StepUpVerifier
from app.utils.errors import ApprovalInvalidError, StepUpRequiredError
from app.utils.permissions import permissions_for_role

REASON = "exam date typo, correcting before candidates see it"


@pytest.fixture
def make_gate(db, clock):
    def _make_gate(**policy) -> PolicyGate:
        config = PolicyConfig(**{"dual_approval_required": True, "break_glass_enabled": False, **policy})
        audit = AuditSink(db, clock=clock)
        verifier = StepUpVerifier(db, ttl_seconds=600, clock=clock)
        ledger = ApprovalLedger(db, audit, expiry_minutes=30, clock=clock)
        return PolicyGate(db, config, verifier, ledger, audit, clock=clock)

    return _make_gate


@pytest.fixture
def actor_for():
    def _actor_for(user, session_id="ses_1") -> ActorContext:
        return ActorContext(
            user_id=user.user_id,
            session_id=session_id,
            role=user.role,
            email=user.email,
            permissions=permissions_for_role(user.role),
        )

    return _actor_for


@pytest.fixture
def editor(make_user):
    return make_user("editor")


@pytest.fixture
def token_for(db, clock, password):
    def _token_for(user, session_id="ses_1") -> str:
        verifier = StepUpVerifier(db, ttl_seconds=600, clock=clock)
        return verifier.issue(user, session_id, email=user.email, password=password).token

    return _token_for


def _publish(target_id="ann-1", payload=None) -> GuardedRequest:
    return GuardedRequest(
        action=actions.UPDATE_PUBLISH,
        target_id=target_id,
        payload=payload if payload is not None else {"status": "published"},
    )


def test_intent_from_headers():
    assert intent_from_headers(None, None) == Plain()
    assert intent_from_headers("apr_1", None) == WithApprovalId("apr_1")
    assert intent_from_headers(None, "  ") == Plain()
    # Break-glass wins when both headers are present
    assert intent_from_headers("apr_1", REASON) == WithBreakGlass(REASON)


def test_non_sensitive_action_allowed_without_step_up(make_gate, actor_for, editor):
    gate = make_gate()
    request = GuardedRequest(action=actions.CREATE_DRAFT, target_id="new")
    decision = gate.decide(actor_for(editor), request, Plain(), None)
    assert isinstance(decision, Allow)
    assert decision.grant is None


@pytest.mark.parametrize(
    "intent",
    [Plain(), WithApprovalId("apr_anything"), WithBreakGlass(REASON)],
)
def test_step_up_checked_before_everything(make_gate, actor_for, editor, intent):
    gate = make_gate(break_glass_enabled=True)
    decision = gate.decide(actor_for(editor), _publish(), intent, None)
    assert isinstance(decision, RequireStepUp)


def test_dual_approval_disabled_allows_with_step_up(make_gate, actor_for, editor, token_for):
    gate = make_gate(dual_approval_required=False)
    decision = gate.decide(actor_for(editor), _publish(), Plain(), token_for(editor))
    assert isinstance(decision, Allow)
    assert decision.approval is None
    assert decision.audit_metadata == {}


def test_policy_matrix_can_switch_off_one_action(make_gate, actor_for, editor, token_for):
    gate = make_gate(approval_policy_matrix={"update_publish": False})
    token = token_for(editor)

    assert isinstance(gate.decide(actor_for(editor), _publish(), Plain(), token), Allow)
    delete = GuardedRequest(action=actions.DELETE_ANNOUNCEMENT, target_id="ann-1")
    assert isinstance(gate.decide(actor_for(editor), delete, Plain(), token), RequireApproval)


def test_step_up_only_action_allowed_under_dual_approval(make_gate, actor_for, editor, token_for):
    gate = make_gate()
    request = GuardedRequest(action=actions.TERMINATE_OTHER_SESSIONS, target_id="ses_1")
    decision = gate.decide(actor_for(editor), request, Plain(), token_for(editor))
    assert isinstance(decision, Allow)


def test_plain_sensitive_request_queues_approval(db, make_gate, actor_for, editor, token_for):
    gate = make_gate()
    decision = gate.decide(actor_for(editor), _publish(), Plain(), token_for(editor))

    assert isinstance(decision, RequireApproval)
    assert decision.approval.status == "pending"
    assert decision.approval.requester_user_id == editor.user_id


def test_replay_while_pending_is_denied(make_gate, actor_for, editor, token_for):
    gate = make_gate()
    token = token_for(editor)
    queued = gate.decide(actor_for(editor), _publish(), Plain(), token)

    decision = gate.decide(actor_for(editor), _publish(), WithApprovalId(queued.approval.approval_id), token)
    assert isinstance(decision, Deny)
    assert decision.error.error == "approval_invalid"
    assert decision.error.reason == "invalid_status:pending"


def test_approved_request_allows_execution(make_gate, actor_for, editor, make_user, token_for):
    gate = make_gate()
    reviewer = make_user("reviewer")
    token = token_for(editor)
    queued = gate.decide(actor_for(editor), _publish(), Plain(), token)
    gate.ledger.decide(queued.approval.approval_id, reviewer.user_id, "approve")

    decision = gate.decide(actor_for(editor), _publish(), WithApprovalId(queued.approval.approval_id), token)
    assert isinstance(decision, Allow)
    assert decision.audit_metadata == {"approvalId": queued.approval.approval_id}


def test_break_glass_disabled_denies(make_gate, actor_for, editor, token_for):
    gate = make_gate(break_glass_enabled=False)
    decision = gate.decide(actor_for(editor), _publish(), WithBreakGlass(REASON), token_for(editor))
    assert isinstance(decision, Deny)
    assert decision.error.error == "break_glass_disabled"


def test_break_glass_enabled_allows(make_gate, actor_for, editor, token_for):
    gate = make_gate(break_glass_enabled=True)
    decision = gate.decide(actor_for(editor), _publish(), WithBreakGlass(REASON), token_for(editor))
    assert isinstance(decision, Allow)
    assert decision.audit_metadata == {"breakGlassUsed": True, "breakGlassReason": REASON}


def test_enforce_audits_denials(db, make_gate, actor_for, editor):
    gate = make_gate()

    with pytest.raises(StepUpRequiredError):
        gate.enforce(actor_for(editor), _publish(), Plain(), None, lambda metadata: None)

    entry = db.query(AdminAuditLog).filter(AdminAuditLog.action == "guard_denied").one()
    assert entry.user_id == editor.user_id
    assert entry.log_metadata["error"] == "step_up_required"
    assert entry.log_metadata["actionType"] == "update_publish"


def test_enforce_returns_202_body_when_queued(make_gate, actor_for, editor, token_for):
    gate = make_gate()
    result = gate.enforce(actor_for(editor), _publish(), Plain(), token_for(editor), lambda metadata: None)

    assert result.status_code == 202
    assert result.body["error"] == "approval_required"
    assert result.body["requiresApproval"] is True
    assert result.body["approvalId"].startswith("apr_")
    assert result.body["breakGlass"] == {"enabled": False, "minReasonLength": 12}


def test_enforce_never_applies_on_denial(make_gate, actor_for, editor, token_for):
    gate = make_gate()
    applied = []

    def apply(metadata):
        applied.append(metadata)
        return MutationResult(status_code=200, body={})

    token = token_for(editor)
    gate.enforce(actor_for(editor), _publish(), Plain(), token, apply)
    with pytest.raises(ApprovalInvalidError):
        gate.enforce(actor_for(editor), _publish(), WithApprovalId("apr_missing"), token, apply)

    assert applied == []
