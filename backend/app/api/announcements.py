"""Announcement endpoints guarded by step-up and dual approval"""
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import GuardContext, get_audit_sink, get_clock, get_guard_context, require_permission, verify_csrf
from app.database import get_db
from app.services import actions
from app.services.announcements import PUBLISHED, AnnouncementService, bulk_target, new_announcement_target
from app.services.approval_ledger import MutationResult, fingerprint_payload
from app.services.audit_sink import AuditSink
from app.services.policy_gate import ActorContext, WithApprovalId
from app.schemas.announcement import (
    AnnouncementBulkReview,
    AnnouncementCreate,
    AnnouncementDecision,
    AnnouncementListResponse,
    AnnouncementResponse,
    AnnouncementRollback,
    AnnouncementUpdate,
    serialize_announcement,
)
from app.utils.errors import NotFoundError

router = APIRouter(
    prefix="/admin/announcements",
    tags=["announcements"],
    dependencies=[Depends(verify_csrf)],
)


def get_announcement_service(
    db: Session = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
    clock: Callable = Depends(get_clock),
) -> AnnouncementService:
    return AnnouncementService(db, audit, clock=clock)


def _respond(result: MutationResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


def _clean_note(note: Optional[str]) -> Optional[str]:
    return (note or "").strip() or None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("", response_model=AnnouncementListResponse)
def list_announcements(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: AnnouncementService = Depends(get_announcement_service),
    _: ActorContext = Depends(require_permission("announcements:read")),
):
    items, total = service.list(status=status_filter, limit=limit, offset=offset)
    return AnnouncementListResponse(items=items, total=total)


@router.get("/{announcement_id}", response_model=AnnouncementResponse)
def get_announcement(
    announcement_id: str,
    service: AnnouncementService = Depends(get_announcement_service),
    _: ActorContext = Depends(require_permission("announcements:read")),
):
    return service.get_or_404(announcement_id)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
def create_announcement(
    data: AnnouncementCreate,
    actor: ActorContext = Depends(require_permission("announcements:write")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """
    Create an announcement.

    Drafts are created immediately (201). Creating straight into ``published``
    needs step-up and, under dual approval, a reviewer: the first call returns
    202 with an ``approvalId``; replay the same body with
    ``X-Admin-Approval-Id`` once approved.
    """
    payload = data.model_dump(mode="json")
    if data.status == PUBLISHED:
        action = actions.CREATE_PUBLISH
        target_id = new_announcement_target(fingerprint_payload(payload))
    else:
        action = actions.CREATE_DRAFT
        target_id = "new"

    def apply(metadata):
        announcement = service.create(payload, actor.user_id, metadata)
        # Executing an approved request completes it rather than creating a new resource
        status_code = 200 if metadata.get("approvalId") else 201
        return MutationResult(status_code=status_code, body={"data": serialize_announcement(announcement)})

    result = guard.gate.enforce(
        actor,
        guard.request(action, target_id, payload, note=_clean_note(data.note)),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return _respond(result)


@router.put("/{announcement_id}")
def update_announcement(
    announcement_id: str,
    data: AnnouncementUpdate,
    actor: ActorContext = Depends(require_permission("announcements:write")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Update an announcement; guarded when it is or becomes ``published``."""
    existing = service.get_or_404(announcement_id)
    payload = data.model_dump(mode="json", exclude_unset=True)
    if existing.status == PUBLISHED or payload.get("status") == PUBLISHED:
        action = actions.UPDATE_PUBLISH
    else:
        action = actions.UPDATE_DRAFT

    def apply(metadata):
        announcement = service.update(announcement_id, payload, actor.user_id, metadata)
        return MutationResult(status_code=200, body={"data": serialize_announcement(announcement)})

    result = guard.gate.enforce(
        actor,
        guard.request(action, announcement_id, payload, note=_clean_note(data.note)),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return _respond(result)


@router.post("/{announcement_id}/approve")
def approve_announcement(
    announcement_id: str,
    data: Optional[AnnouncementDecision] = None,
    actor: ActorContext = Depends(require_permission("announcements:approve")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Approve and publish an announcement."""
    service.get_or_404(announcement_id)
    note = _clean_note(data.note if data else None)
    payload = {"note": note}

    def apply(metadata):
        announcement = service.approve(announcement_id, payload, actor.user_id, metadata)
        return MutationResult(status_code=200, body={"data": serialize_announcement(announcement)})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.APPROVE_ANNOUNCEMENT, announcement_id, payload, note=note),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return _respond(result)


@router.post("/{announcement_id}/reject")
def reject_announcement(
    announcement_id: str,
    data: Optional[AnnouncementDecision] = None,
    actor: ActorContext = Depends(require_permission("announcements:approve")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Reject an announcement back to draft."""
    service.get_or_404(announcement_id)
    note = _clean_note(data.note if data else None)
    payload = {"note": note}

    def apply(metadata):
        announcement = service.reject(announcement_id, payload, actor.user_id, metadata)
        return MutationResult(status_code=200, body={"data": serialize_announcement(announcement)})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.REJECT_ANNOUNCEMENT, announcement_id, payload, note=note),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return _respond(result)


def _bulk_review(action, data: AnnouncementBulkReview, actor, guard, service, review) -> JSONResponse:
    ids = sorted(set(data.ids))
    service.get_many_or_404(ids)
    note = _clean_note(data.note)
    payload = {"ids": ids, "note": note}

    def apply(metadata):
        announcements = review(payload, actor.user_id, metadata)
        return MutationResult(
            status_code=200,
            body={"data": [serialize_announcement(item) for item in announcements], "count": len(announcements)},
        )

    result = guard.gate.enforce(
        actor,
        guard.request(action, bulk_target(ids), payload, note=note, target_ids=ids),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return _respond(result)


@router.post("/bulk-approve")
def bulk_approve_announcements(
    data: AnnouncementBulkReview,
    actor: ActorContext = Depends(require_permission("announcements:approve")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """
    Approve and publish several announcements as one guarded action.

    The set of ids is one approval target: replay with the same ids (in any
    order) and ``X-Admin-Approval-Id`` once a reviewer has approved.
    """
    return _bulk_review(actions.BULK_PUBLISH, data, actor, guard, service, service.bulk_approve)


@router.post("/bulk-reject")
def bulk_reject_announcements(
    data: AnnouncementBulkReview,
    actor: ActorContext = Depends(require_permission("announcements:approve")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Reject several announcements back to draft as one guarded action."""
    return _bulk_review(actions.BULK_REJECT, data, actor, guard, service, service.bulk_reject)


def _rollback(
    announcement_id: str,
    version: int,
    note: Optional[str],
    actor: ActorContext,
    guard: GuardContext,
    service: AnnouncementService,
) -> JSONResponse:
    announcement = service.get_or_404(announcement_id)
    entry = service.find_version(announcement, version)
    if entry is None:
        raise NotFoundError("Version snapshot not found")

    # Restoring a published snapshot is a publish in disguise
    if entry["snapshot"].get("status") == PUBLISHED:
        action = actions.ROLLBACK_PUBLISH
    else:
        action = actions.ROLLBACK_ANNOUNCEMENT
    payload = {"version": version, "note": note}

    def apply(metadata):
        updated = service.rollback(announcement_id, payload, actor.user_id, metadata)
        return MutationResult(status_code=200, body={"data": serialize_announcement(updated)})

    result = guard.gate.enforce(
        actor,
        guard.request(action, announcement_id, payload, note=note),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return _respond(result)


@router.post("/{announcement_id}/rollback")
def rollback_announcement(
    announcement_id: str,
    data: AnnouncementRollback,
    actor: ActorContext = Depends(require_permission("announcements:write")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Restore a historical version snapshot."""
    return _rollback(announcement_id, data.version, _clean_note(data.note), actor, guard, service)


@router.post("/{announcement_id}/revert/{version}")
def revert_announcement(
    announcement_id: str,
    version: int,
    actor: ActorContext = Depends(require_permission("announcements:write")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Path-style alias of rollback."""
    return _rollback(announcement_id, version, None, actor, guard, service)


@router.delete("/{announcement_id}")
def delete_announcement(
    announcement_id: str,
    actor: ActorContext = Depends(require_permission("announcements:delete")),
    guard: GuardContext = Depends(get_guard_context),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Delete an announcement (dual approval)."""
    # Replays of an executed delete must still reach the stored result
    if not isinstance(guard.intent, WithApprovalId):
        service.get_or_404(announcement_id)

    def apply(metadata):
        service.delete(announcement_id, actor.user_id, metadata)
        return MutationResult(status_code=200, body={"message": "Announcement deleted", "id": announcement_id})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.DELETE_ANNOUNCEMENT, announcement_id, {}),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return _respond(result)
