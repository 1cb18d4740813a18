"""Admin audit trail endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_audit_sink, require_permission, verify_csrf
from app.services.audit_sink import AuditSink
from app.services.policy_gate import ActorContext
from app.schemas.audit_log import AuditLogListResponse, ChainVerifyResponse
from app.utils.logger import logger

router = APIRouter(
    prefix="/admin/audit-logs",
    tags=["audit"],
    dependencies=[Depends(verify_csrf)],
)


@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    action: Optional[str] = Query(None, description="Filter by action"),
    announcement_id: Optional[str] = Query(None, description="Filter by target id"),
    user_id: Optional[str] = Query(None, description="Filter by acting admin"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    audit: AuditSink = Depends(get_audit_sink),
    _: ActorContext = Depends(require_permission("audit:read")),
):
    """
    Query the admin audit trail, newest first.

    Entries are append-only; there is no update or delete endpoint.
    """
    entries, total = audit.list(
        action=action,
        announcement_id=announcement_id,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
    return AuditLogListResponse(items=entries, total=total)


@router.get("/verify", response_model=ChainVerifyResponse)
def verify_audit_chain(
    audit: AuditSink = Depends(get_audit_sink),
    actor: ActorContext = Depends(require_permission("audit:read")),
):
    """
    Verify the integrity of the hash chain.

    Walks every entry in insertion order and recomputes each link. Returns
    ``valid=false`` and the ``log_id`` of the first broken link if any entry
    was modified, deleted or reordered.
    """
    result = audit.verify()
    logger.info(
        "Audit chain verified",
        extra={"user_id": actor.user_id, "status": "valid" if result.valid else "broken"},
    )
    return ChainVerifyResponse(
        valid=result.valid,
        total_entries=result.total_entries,
        broken_at=result.broken_at,
    )
