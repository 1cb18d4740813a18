"""Tests for the Approval Ledger state machine"""
import pytest

from app.models.approval import ApprovalRequest
from app.models.audit_log import AdminAuditLog
from app.services import actions
from app.services.approval_ledger import ApprovalLedger, MutationResult
from app.services.audit_sink import AuditSink
from app.utils.errors import ApprovalInvalidError, ApprovalNotFoundError, SelfApprovalForbiddenError

PAYLOAD = {"title": "UPSC prelims result", "status": "published"}


@pytest.fixture
def ledger(db, clock) -> ApprovalLedger:
    return ApprovalLedger(db, AuditSink(db, clock=clock), expiry_minutes=30, clock=clock)


@pytest.fixture
def requester(make_user):
    return make_user("editor")


@pytest.fixture
def reviewer(make_user):
    return make_user("reviewer")


def _pending(ledger, requester, target_id="ann-1", action=actions.UPDATE_PUBLISH, payload=PAYLOAD):
    return ledger.create_pending(action, target_id, requester.user_id, payload, requester_email=requester.email)


def test_create_pending(db, ledger, requester):
    approval = _pending(ledger, requester)

    assert approval.status == "pending"
    assert approval.approval_id.startswith("apr_")
    assert approval.action == "update_publish"
    assert approval.action_class == "publish"
    assert approval.requester_user_id == requester.user_id
    assert approval.payload == PAYLOAD

    entry = db.query(AdminAuditLog).filter(AdminAuditLog.action == "create_approval").one()
    assert entry.log_metadata["approvalId"] == approval.approval_id


def test_single_pending_per_target_and_class(ledger, requester):
    first = _pending(ledger, requester)

    with pytest.raises(ApprovalInvalidError) as exc_info:
        _pending(ledger, requester, action=actions.APPROVE_ANNOUNCEMENT, payload={"note": None})
    assert exc_info.value.reason == "invalid_status:pending"
    assert exc_info.value.extra["approvalId"] == first.approval_id


def test_other_action_class_does_not_block(ledger, requester):
    _pending(ledger, requester)
    delete = _pending(ledger, requester, action=actions.DELETE_ANNOUNCEMENT, payload={})
    assert delete.status == "pending"


def test_other_target_does_not_block(ledger, requester):
    _pending(ledger, requester, target_id="ann-1")
    assert _pending(ledger, requester, target_id="ann-2").status == "pending"


def test_self_approval_forbidden(ledger, requester):
    approval = _pending(ledger, requester)

    with pytest.raises(SelfApprovalForbiddenError) as exc_info:
        ledger.decide(approval.approval_id, requester.user_id, "approve")
    assert exc_info.value.to_body()["reason"] == "self_approval_forbidden"
    assert ledger.get(approval.approval_id).status == "pending"


def test_decide_approve_stamps_reviewer(db, ledger, requester, reviewer, clock):
    approval = _pending(ledger, requester)

    decided = ledger.decide(approval.approval_id, reviewer.user_id, "approve", note="looks right")

    assert decided.status == "approved"
    assert decided.reviewer_user_id == reviewer.user_id
    assert decided.decided_at == clock()
    assert decided.decision_note == "looks right"
    assert db.query(AdminAuditLog).filter(AdminAuditLog.action == "approval_approved").count() == 1


def test_double_decision_is_invalid(ledger, requester, reviewer, make_user):
    approval = _pending(ledger, requester)
    ledger.decide(approval.approval_id, reviewer.user_id, "reject")

    second_reviewer = make_user("reviewer")
    with pytest.raises(ApprovalInvalidError) as exc_info:
        ledger.decide(approval.approval_id, second_reviewer.user_id, "approve")
    assert exc_info.value.reason == "invalid_status:rejected"


def test_decide_unknown_approval(ledger, reviewer):
    with pytest.raises(ApprovalNotFoundError):
        ledger.decide("apr_missing", reviewer.user_id, "approve")


@pytest.mark.parametrize("expiry_minutes", [5, 30])
def test_pending_expires_after_ttl(db, clock, requester, reviewer, expiry_minutes):
    ledger = ApprovalLedger(db, AuditSink(db, clock=clock), expiry_minutes=expiry_minutes, clock=clock)
    approval = _pending(ledger, requester)

    clock.advance(minutes=expiry_minutes)

    with pytest.raises(ApprovalInvalidError) as exc_info:
        ledger.decide(approval.approval_id, reviewer.user_id, "approve")
    assert exc_info.value.reason == "invalid_status:expired"
    assert ledger.get(approval.approval_id).status == "expired"


def test_expired_request_frees_the_slot(ledger, requester, clock):
    first = _pending(ledger, requester)
    clock.advance(minutes=31)

    second = _pending(ledger, requester)
    assert second.approval_id != first.approval_id
    assert ledger.get(first.approval_id).status == "expired"


def test_rejected_request_does_not_block_new_cycle(ledger, requester, reviewer):
    first = _pending(ledger, requester)
    ledger.decide(first.approval_id, reviewer.user_id, "reject")

    second = _pending(ledger, requester)
    assert second.status == "pending"


@pytest.mark.parametrize(
    "override, reason",
    [
        ({"approval_id": "apr_missing"}, "not_found"),
        ({"target_id": "ann-other"}, "target_mismatch"),
        ({"action": actions.CREATE_PUBLISH}, "action_mismatch"),
        ({"payload": {"title": "tampered", "status": "published"}}, "payload_mismatch"),
    ],
)
def test_check_for_execution_mismatches(ledger, requester, reviewer, override, reason):
    approval = _pending(ledger, requester)
    ledger.decide(approval.approval_id, reviewer.user_id, "approve")

    args = {
        "approval_id": approval.approval_id,
        "action": actions.UPDATE_PUBLISH,
        "target_id": "ann-1",
        "payload": PAYLOAD,
        "requester_user_id": requester.user_id,
    }
    args.update(override)
    with pytest.raises(ApprovalInvalidError) as exc_info:
        ledger.check_for_execution(**args)
    assert exc_info.value.reason == reason


def test_only_requester_can_execute(ledger, requester, reviewer):
    approval = _pending(ledger, requester)
    ledger.decide(approval.approval_id, reviewer.user_id, "approve")

    with pytest.raises(ApprovalInvalidError) as exc_info:
        ledger.check_for_execution(approval.approval_id, actions.UPDATE_PUBLISH, "ann-1", PAYLOAD, reviewer.user_id)
    assert exc_info.value.reason == "requester_mismatch"


def test_pending_cannot_execute(ledger, requester):
    approval = _pending(ledger, requester)
    with pytest.raises(ApprovalInvalidError) as exc_info:
        ledger.check_for_execution(approval.approval_id, actions.UPDATE_PUBLISH, "ann-1", PAYLOAD, requester.user_id)
    assert exc_info.value.reason == "invalid_status:pending"


def test_execute_is_idempotent(db, ledger, requester, reviewer):
    approval = _pending(ledger, requester)
    ledger.decide(approval.approval_id, reviewer.user_id, "approve")
    calls = []

    def apply(metadata):
        calls.append(metadata)
        return MutationResult(status_code=200, body={"data": {"applied": len(calls)}})

    approved = ledger.check_for_execution(approval.approval_id, actions.UPDATE_PUBLISH, "ann-1", PAYLOAD, requester.user_id)
    first = ledger.execute(approved, requester.user_id, apply)

    replayed = ledger.check_for_execution(approval.approval_id, actions.UPDATE_PUBLISH, "ann-1", PAYLOAD, requester.user_id)
    second = ledger.execute(replayed, requester.user_id, apply)

    assert calls == [{"approvalId": approval.approval_id}]
    assert first.body == second.body == {"data": {"applied": 1}}
    assert second.status_code == 200

    row = db.query(ApprovalRequest).filter(ApprovalRequest.approval_id == approval.approval_id).one()
    assert row.status == "executed"
    assert row.executed_by == requester.user_id
    assert row.executed_at is not None


def test_failed_apply_leaves_request_approved(db, ledger, requester, reviewer):
    approval = _pending(ledger, requester)
    ledger.decide(approval.approval_id, reviewer.user_id, "approve")

    def apply(metadata):
        raise RuntimeError("boom")

    approved = ledger.check_for_execution(approval.approval_id, actions.UPDATE_PUBLISH, "ann-1", PAYLOAD, requester.user_id)
    with pytest.raises(RuntimeError):
        ledger.execute(approved, requester.user_id, apply)

    db.expire_all()
    assert ledger.get(approval.approval_id).status == "approved"


def test_summary_and_list(ledger, requester, reviewer, clock):
    first = _pending(ledger, requester, target_id="ann-1")
    _pending(ledger, requester, target_id="ann-2")
    ledger.decide(first.approval_id, reviewer.user_id, "approve")

    items, total, pending_count = ledger.list(status="pending")
    assert total == 1
    assert pending_count == 1
    assert items[0].target_id == "ann-2"

    summary = ledger.summary(due_soon_minutes=31)
    assert summary.counts["approved"] == 1
    assert summary.counts["pending"] == 1
    assert summary.due_soon == 1


def test_purge_removes_old_terminal_requests(ledger, requester, reviewer, clock):
    approval_id = _pending(ledger, requester).approval_id
    ledger.decide(approval_id, reviewer.user_id, "reject")
    _pending(ledger, requester, target_id="ann-2")

    clock.advance(days=31)
    ledger.expire_stale()
    purged = ledger.purge(retention_days=30)

    assert purged == 2
    assert ledger.get(approval_id) is None
