"""Approval request management endpoints (reviewer side)"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import (
    GuardContext,
    get_approval_ledger,
    get_guard_context,
    require_permission,
    verify_csrf,
)
from app.config import settings
from app.services import actions
from app.services.approval_ledger import ApprovalLedger, MutationResult
from app.services.policy_gate import ActorContext
from app.schemas.approval import (
    ApprovalCleanupResponse,
    ApprovalDecisionRequest,
    ApprovalListResponse,
    ApprovalRequestResponse,
    ApprovalSummaryResponse,
    serialize_approval,
)

router = APIRouter(
    prefix="/admin/approvals",
    tags=["approvals"],
    dependencies=[Depends(verify_csrf)],
)

_STATUSES = ("pending", "approved", "rejected", "expired", "executed")


@router.get("", response_model=ApprovalListResponse)
def list_approvals(
    status_filter: Optional[str] = Query(None, alias="status", description="pending, approved, rejected, expired, executed"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    _: ActorContext = Depends(require_permission("announcements:approve")),
):
    """
    List approval requests (reviewers).

    Filter by status=pending to see what needs action. Requests past their
    deadline are expired before listing.
    """
    if status_filter and status_filter not in _STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"status must be one of: {', '.join(_STATUSES)}",
        )

    items, total, pending_count = ledger.list(status=status_filter, limit=limit, offset=offset)
    return ApprovalListResponse(items=items, total=total, pending_count=pending_count)


@router.get("/summary", response_model=ApprovalSummaryResponse)
def approval_summary(
    due_soon_minutes: int = Query(15, ge=1, le=1440),
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    _: ActorContext = Depends(require_permission("announcements:approve")),
):
    """Counts by status plus pending requests expiring within ``due_soon_minutes``."""
    summary = ledger.summary(due_soon_minutes=due_soon_minutes)
    return ApprovalSummaryResponse(
        counts=summary.counts,
        due_soon=summary.due_soon,
        due_soon_minutes=summary.due_soon_minutes,
    )


@router.post("/cleanup", response_model=ApprovalCleanupResponse)
def cleanup_approvals(
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    _: ActorContext = Depends(require_permission("approvals:cleanup")),
):
    """Expire stale pending requests and purge terminal ones past retention (admin)."""
    expired = ledger.expire_stale()
    purged = ledger.purge()
    return ApprovalCleanupResponse(
        expired=expired,
        purged=purged,
        retention_days=settings.ADMIN_APPROVAL_RETENTION_DAYS,
    )


@router.get("/{approval_id}", response_model=ApprovalRequestResponse)
def get_approval(
    approval_id: str,
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    _: ActorContext = Depends(require_permission("announcements:approve")),
):
    return ledger.get_or_404(approval_id)


def _decide(
    approval_id: str,
    outcome: str,
    data: Optional[ApprovalDecisionRequest],
    actor: ActorContext,
    guard: GuardContext,
    ledger: ApprovalLedger,
):
    note = ((data.note if data else None) or "").strip() or None

    def apply(metadata):
        approval = ledger.decide(approval_id, actor.user_id, outcome, note=note)
        return MutationResult(status_code=200, body={"data": serialize_approval(approval)})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.DECIDE_APPROVAL, approval_id, {"outcome": outcome, "note": note}, note=note),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return result.body


@router.post("/{approval_id}/approve")
def approve_request(
    approval_id: str,
    data: Optional[ApprovalDecisionRequest] = None,
    actor: ActorContext = Depends(require_permission("announcements:approve")),
    guard: GuardContext = Depends(get_guard_context),
    ledger: ApprovalLedger = Depends(get_approval_ledger),
):
    """
    Approve a pending request (reviewer, step-up).

    The requester then replays the original call with ``X-Admin-Approval-Id``.
    Requesters can't approve their own requests (403 ``self_approval_forbidden``).
    """
    return _decide(approval_id, "approve", data, actor, guard, ledger)


@router.post("/{approval_id}/reject")
def reject_request(
    approval_id: str,
    data: Optional[ApprovalDecisionRequest] = None,
    actor: ActorContext = Depends(require_permission("announcements:approve")),
    guard: GuardContext = Depends(get_guard_context),
    ledger: ApprovalLedger = Depends(get_approval_ledger),
):
    """Reject a pending request (reviewer, step-up)."""
    return _decide(approval_id, "reject", data, actor, guard, ledger)

