"""End-to-end admin workflows through the HTTP API"""
import pytest

from app.models.approval import ApprovalRequest
from app.models.audit_log import AdminAuditLog

STEP_UP_HEADER = "X-Admin-Step-Up-Token"
APPROVAL_HEADER = "X-Admin-Approval-Id"


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def admin_client(admin, login):
    return login(admin)


@pytest.fixture
def reviewer_client(make_user, login, step_up):
    reviewer = make_user("reviewer")
    session_client = login(reviewer)
    session_client.step_up_token = step_up(session_client, reviewer)
    return session_client


def _published(sample_announcement):
    return {**sample_announcement, "status": "published"}


def _approve(reviewer_client, approval_id):
    response = reviewer_client.post(
        f"/admin/approvals/{approval_id}/approve",
        json={"note": "checked against the notice"},
        headers={STEP_UP_HEADER: reviewer_client.step_up_token},
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]


def test_terminate_others_requires_step_up(admin, admin_client, login, step_up):
    other_device = login(admin)

    response = admin_client.post("/admin/sessions/terminate-others")
    assert response.status_code == 403
    assert response.json()["error"] == "step_up_required"

    token = step_up(admin_client, admin)
    response = admin_client.post("/admin/sessions/terminate-others", headers={STEP_UP_HEADER: token})
    assert response.status_code == 200
    assert response.json()["terminated"] == 1

    assert other_device.get("/auth/me").status_code == 401
    assert admin_client.get("/auth/me").status_code == 200


def test_draft_create_needs_no_step_up(db, admin_client, sample_announcement):
    response = admin_client.post("/admin/announcements", json=sample_announcement)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "draft"
    assert data["version"] == 1
    assert db.query(ApprovalRequest).count() == 0


def test_publish_with_dual_approval(db, admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    body = _published(sample_announcement)

    # Requester: queued for approval
    response = admin_client.post("/admin/announcements", json=body, headers={STEP_UP_HEADER: token})
    assert response.status_code == 202
    queued = response.json()
    assert queued["error"] == "approval_required"
    assert queued["requiresApproval"] is True
    approval_id = queued["approvalId"]

    # Requester cannot approve their own request
    response = admin_client.post(
        f"/admin/approvals/{approval_id}/approve",
        headers={STEP_UP_HEADER: token},
    )
    assert response.status_code == 403
    assert response.json()["reason"] == "self_approval_forbidden"

    # Reviewer approves with their own step-up
    decided = _approve(reviewer_client, approval_id)
    assert decided["status"] == "approved"
    assert decided["reviewer_user_id"] != admin.user_id

    # Requester replays the same body with the approval id
    headers = {STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id}
    response = admin_client.post("/admin/announcements", json=body, headers=headers)
    assert response.status_code == 200
    created = response.json()["data"]
    assert created["status"] == "published"
    assert created["publish_at"] is not None

    # A second replay returns the stored result and creates nothing new
    response = admin_client.post("/admin/announcements", json=body, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["id"] == created["id"]
    assert admin_client.get("/admin/announcements").json()["total"] == 1

    approval = admin_client.get(f"/admin/approvals/{approval_id}").json()
    assert approval["status"] == "executed"
    assert approval["executed_by"] == admin.user_id

    entry = db.query(AdminAuditLog).filter(AdminAuditLog.action == "create").one()
    assert entry.log_metadata["approvalId"] == approval_id
    assert entry.log_metadata["status"] == "published"


def test_replay_while_pending_is_rejected(admin, admin_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    body = _published(sample_announcement)
    approval_id = admin_client.post(
        "/admin/announcements", json=body, headers={STEP_UP_HEADER: token}
    ).json()["approvalId"]

    response = admin_client.post(
        "/admin/announcements",
        json=body,
        headers={STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id},
    )

    assert response.status_code == 409
    assert response.json()["error"] == "approval_invalid"
    assert response.json()["reason"] == "invalid_status:pending"


def test_replay_with_different_body_is_rejected(admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    created = admin_client.post("/admin/announcements", json=sample_announcement).json()["data"]
    path = f"/admin/announcements/{created['id']}"

    approval_id = admin_client.put(
        path, json={"status": "published"}, headers={STEP_UP_HEADER: token}
    ).json()["approvalId"]
    _approve(reviewer_client, approval_id)

    response = admin_client.put(
        path,
        json={"status": "published", "title": "Something the reviewer never saw"},
        headers={STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id},
    )
    assert response.status_code == 409
    assert response.json()["reason"] == "payload_mismatch"


def test_second_request_on_same_target_is_blocked(admin, admin_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    created = admin_client.post("/admin/announcements", json=sample_announcement).json()["data"]
    path = f"/admin/announcements/{created['id']}"

    first = admin_client.put(path, json={"status": "published"}, headers={STEP_UP_HEADER: token})
    assert first.status_code == 202

    second = admin_client.put(
        path, json={"status": "published", "title": "Revised"}, headers={STEP_UP_HEADER: token}
    )
    assert second.status_code == 409
    assert second.json()["reason"] == "invalid_status:pending"
    assert second.json()["approvalId"] == first.json()["approvalId"]


def test_update_then_rollback(admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    created = admin_client.post("/admin/announcements", json=sample_announcement).json()["data"]
    path = f"/admin/announcements/{created['id']}"

    # Draft edits are not sensitive
    response = admin_client.put(path, json={"title": "Tier-I admit cards (revised)"})
    assert response.status_code == 200
    assert response.json()["data"]["version"] == 2

    # Publishing goes through a reviewer
    approval_id = admin_client.put(
        path, json={"status": "published"}, headers={STEP_UP_HEADER: token}
    ).json()["approvalId"]
    _approve(reviewer_client, approval_id)
    response = admin_client.put(
        path, json={"status": "published"}, headers={STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id}
    )
    assert response.status_code == 200
    assert response.json()["data"]["version"] == 3

    # Restoring a draft snapshot needs step-up only
    response = admin_client.post(f"{path}/rollback", json={"version": 1})
    assert response.status_code == 403
    assert response.json()["error"] == "step_up_required"

    response = admin_client.post(f"{path}/rollback", json={"version": 1}, headers={STEP_UP_HEADER: token})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "draft"
    assert data["title"] == sample_announcement["title"]

    # Restoring the published snapshot is a publish and needs a reviewer
    response = admin_client.post(f"{path}/revert/3", headers={STEP_UP_HEADER: token})
    assert response.status_code == 202
    assert response.json()["approvalId"]


def test_rollback_to_unknown_version(admin, admin_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    created = admin_client.post("/admin/announcements", json=sample_announcement).json()["data"]

    response = admin_client.post(
        f"/admin/announcements/{created['id']}/rollback",
        json={"version": 7},
        headers={STEP_UP_HEADER: token},
    )
    assert response.status_code == 404


def test_delete_with_dual_approval(admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    created = admin_client.post("/admin/announcements", json=sample_announcement).json()["data"]
    path = f"/admin/announcements/{created['id']}"

    response = admin_client.delete(path, headers={STEP_UP_HEADER: token})
    assert response.status_code == 202
    approval_id = response.json()["approvalId"]
    _approve(reviewer_client, approval_id)

    headers = {STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id}
    response = admin_client.delete(path, headers=headers)
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]
    assert admin_client.get(path).status_code == 404

    # Replay after the row is gone still returns the stored result
    response = admin_client.delete(path, headers=headers)
    assert response.status_code == 200


def test_reviewer_rejects_request(admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    body = _published(sample_announcement)
    approval_id = admin_client.post(
        "/admin/announcements", json=body, headers={STEP_UP_HEADER: token}
    ).json()["approvalId"]

    response = reviewer_client.post(
        f"/admin/approvals/{approval_id}/reject",
        json={"note": "wrong exam date"},
        headers={STEP_UP_HEADER: reviewer_client.step_up_token},
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "rejected"

    response = admin_client.post(
        "/admin/announcements",
        json=body,
        headers={STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id},
    )
    assert response.status_code == 409
    assert response.json()["reason"] == "invalid_status:rejected"


def test_reviewer_decision_needs_step_up(admin, admin_client, make_user, login, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    approval_id = admin_client.post(
        "/admin/announcements", json=_published(sample_announcement), headers={STEP_UP_HEADER: token}
    ).json()["approvalId"]

    reviewer_client = login(make_user("reviewer"))
    response = reviewer_client.post(f"/admin/approvals/{approval_id}/approve")
    assert response.status_code == 403
    assert response.json()["error"] == "step_up_required"


def test_unknown_approval(reviewer_client):
    response = reviewer_client.get("/admin/approvals/apr_missing")
    assert response.status_code == 404
    assert response.json()["error"] == "approval_not_found"

    response = reviewer_client.post(
        "/admin/approvals/apr_missing/approve",
        headers={STEP_UP_HEADER: reviewer_client.step_up_token},
    )
    assert response.status_code == 404


def test_editor_cannot_delete_or_review(make_user, login, step_up, sample_announcement):
    editor = make_user("editor")
    editor_client = login(editor)
    token = step_up(editor_client, editor)
    created = editor_client.post("/admin/announcements", json=sample_announcement).json()["data"]

    response = editor_client.delete(f"/admin/announcements/{created['id']}", headers={STEP_UP_HEADER: token})
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"

    assert editor_client.get("/admin/approvals").status_code == 403


def test_approval_queue_listing(admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    admin_client.post("/admin/announcements", json=_published(sample_announcement), headers={STEP_UP_HEADER: token})

    response = reviewer_client.get("/admin/approvals", params={"status": "pending"})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["pending_count"] == 1
    assert body["items"][0]["action"] == "create_publish"

    assert reviewer_client.get("/admin/approvals", params={"status": "bogus"}).status_code == 400

    summary = reviewer_client.get("/admin/approvals/summary").json()
    assert summary["counts"]["pending"] == 1


def test_dual_approval_off_publishes_with_step_up(policy_store, admin, admin_client, step_up, sample_announcement):
    policy_store.update(dual_approval_required=False)
    token = step_up(admin_client, admin)

    response = admin_client.post(
        "/admin/announcements", json=_published(sample_announcement), headers={STEP_UP_HEADER: token}
    )
    assert response.status_code == 201
    assert response.json()["data"]["status"] == "published"


def test_approve_endpoint_with_dual_approval(admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    created = admin_client.post("/admin/announcements", json=sample_announcement).json()["data"]
    path = f"/admin/announcements/{created['id']}/approve"
    body = {"note": "ready for candidates"}

    response = admin_client.post(path, json=body, headers={STEP_UP_HEADER: token})
    assert response.status_code == 202
    assert response.json()["requiresApproval"] is True
    approval_id = response.json()["approvalId"]

    # Retrying before anyone has decided
    headers = {STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id}
    response = admin_client.post(path, json=body, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "approval_invalid"
    assert response.json()["reason"] == "invalid_status:pending"

    response = admin_client.post(f"/admin/approvals/{approval_id}/approve", headers={STEP_UP_HEADER: token})
    assert response.status_code == 403
    assert response.json()["reason"] == "self_approval_forbidden"

    assert _approve(reviewer_client, approval_id)["status"] == "approved"

    response = admin_client.post(path, json=body, headers=headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "published"
    assert data["approved_by"] == admin.user_id
    assert data["note"] == "ready for candidates"


def test_reject_endpoint_with_dual_approval(admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    created = admin_client.post("/admin/announcements", json={**sample_announcement, "status": "pending"}).json()["data"]
    path = f"/admin/announcements/{created['id']}/reject"
    body = {"note": "exam date is wrong"}

    response = admin_client.post(path, json=body, headers={STEP_UP_HEADER: token})
    assert response.status_code == 202
    approval_id = response.json()["approvalId"]
    assert response.json()["data"]["action"] == "reject_announcement"

    _approve(reviewer_client, approval_id)

    response = admin_client.post(path, json=body, headers={STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "draft"
    assert response.json()["data"]["note"] == "exam date is wrong"


# ---------------------------------------------------------------------------
# Bulk review
# ---------------------------------------------------------------------------

def _drafts(admin_client, sample_announcement, count=2):
    ids = []
    for n in range(count):
        body = {**sample_announcement, "title": f"{sample_announcement['title']} ({n})"}
        ids.append(admin_client.post("/admin/announcements", json=body).json()["data"]["id"])
    return ids


def test_bulk_approve_with_dual_approval(db, admin, admin_client, reviewer_client, step_up, sample_announcement):
    token = step_up(admin_client, admin)
    first, second = _drafts(admin_client, sample_announcement)

    response = admin_client.post(
        "/admin/announcements/bulk-approve",
        json={"ids": [second, first], "note": "weekly batch"},
        headers={STEP_UP_HEADER: token},
    )
    assert response.status_code == 202
    queued = response.json()
    approval_id = queued["approvalId"]
    assert queued["data"]["action"] == "bulk_publish"
    assert queued["data"]["target_ids"] == sorted([first, second])
    assert queued["data"]["target_id"].startswith("bulk:")

    # The same set in another order is the same target
    response = admin_client.post(
        "/admin/announcements/bulk-approve",
        json={"ids": [first, second], "note": "weekly batch"},
        headers={STEP_UP_HEADER: token},
    )
    assert response.status_code == 409
    assert response.json()["approvalId"] == approval_id

    _approve(reviewer_client, approval_id)

    response = admin_client.post(
        "/admin/announcements/bulk-approve",
        json={"ids": [first, second], "note": "weekly batch"},
        headers={STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert {item["status"] for item in body["data"]} == {"published"}

    # A replay with a different set does not match the approval
    third = _drafts(admin_client, sample_announcement, count=1)[0]
    response = admin_client.post(
        "/admin/announcements/bulk-approve",
        json={"ids": [first, second, third], "note": "weekly batch"},
        headers={STEP_UP_HEADER: token, APPROVAL_HEADER: approval_id},
    )
    assert response.status_code == 409
    assert response.json()["reason"] == "target_mismatch"

    entry = db.query(AdminAuditLog).filter(AdminAuditLog.action == "bulk_approve").one()
    assert entry.log_metadata["announcementIds"] == sorted([first, second])
    assert entry.log_metadata["approvalId"] == approval_id


def test_bulk_reject_without_dual_approval(db, policy_store, admin, admin_client, step_up, sample_announcement):
    policy_store.update(dual_approval_required=False)
    token = step_up(admin_client, admin)
    ids = _drafts(admin_client, sample_announcement)

    response = admin_client.post(
        "/admin/announcements/bulk-reject",
        json={"ids": ids, "note": "duplicate notices"},
        headers={STEP_UP_HEADER: token},
    )
    assert response.status_code == 200
    assert response.json()["count"] == 2
    assert {item["status"] for item in response.json()["data"]} == {"draft"}
    assert db.query(ApprovalRequest).count() == 0

    entry = db.query(AdminAuditLog).filter(AdminAuditLog.action == "bulk_reject").one()
    assert entry.log_metadata["count"] == 2


def test_bulk_review_needs_step_up_and_known_ids(admin, admin_client, step_up, sample_announcement):
    ids = _drafts(admin_client, sample_announcement)

    response = admin_client.post("/admin/announcements/bulk-approve", json={"ids": ids})
    assert response.status_code == 403
    assert response.json()["error"] == "step_up_required"

    token = step_up(admin_client, admin)
    response = admin_client.post(
        "/admin/announcements/bulk-reject",
        json={"ids": ids + ["missing-id"]},
        headers={STEP_UP_HEADER: token},
    )
    assert response.status_code == 404
    assert response.json()["missingIds"] == ["missing-id"]


def test_editor_cannot_bulk_approve(make_user, login, step_up, sample_announcement):
    editor = make_user("editor")
    editor_client = login(editor)
    token = step_up(editor_client, editor)
    ids = _drafts(editor_client, sample_announcement)

    response = editor_client.post(
        "/admin/announcements/bulk-approve", json={"ids": ids}, headers={STEP_UP_HEADER: token}
    )
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"
