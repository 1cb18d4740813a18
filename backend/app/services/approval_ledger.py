"""Approval Ledger: the dual-approval state machine.

Status lifecycle::

    pending -> approved -> executed
            -> rejected
            -> expired

Every transition is a compare-and-swap ``UPDATE ... WHERE status = <from>``
so concurrent callers resolve to exactly one winner. The single-pending rule
is enforced by the partial unique index on (target_id, action_class).
"""
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.middleware.monitoring import record_approval_transition
from app.models.approval import ApprovalRequest
from app.services.actions import ActionSpec
from app.services.audit_sink import AuditSink
from app.utils.auth import generate_prefixed_id
from app.utils.errors import (
    ApprovalInvalidError,
    ApprovalNotFoundError,
    SelfApprovalForbiddenError,
)
from app.utils.logger import logger
from app.utils.webhook import send_webhook

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
EXPIRED = "expired"
EXECUTED = "executed"

TERMINAL_STATUSES = (REJECTED, EXPIRED, EXECUTED)

DECISIONS = {"approve": APPROVED, "reject": REJECTED}


@dataclass
class MutationResult:
    """Response produced by applying a guarded mutation.

    Stored on the approval when executed so a replay returns it verbatim.
    """

    status_code: int
    body: Dict[str, Any]
    replayed: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {"status_code": self.status_code, "body": self.body}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "MutationResult":
        return cls(status_code=record["status_code"], body=record["body"], replayed=True)


@dataclass
class ApprovalSummary:
    counts: Dict[str, int] = field(default_factory=dict)
    due_soon: int = 0
    due_soon_minutes: int = 15


def fingerprint_payload(payload: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a payload"""
    canonical = json.dumps(payload or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _webhook_payload(approval: ApprovalRequest, **extra) -> Dict[str, Any]:
    return {
        "approval_id": approval.approval_id,
        "action": approval.action,
        "target_id": approval.target_id,
        "status": approval.status,
        "actor_user_id": approval.requester_user_id,
        "actor_email": approval.requester_email,
        **extra,
    }


class ApprovalLedger:
    """Owns every status change of an ApprovalRequest"""

    def __init__(
        self,
        db: Session,
        audit: AuditSink,
        expiry_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.audit = audit
        self.expiry = timedelta(minutes=expiry_minutes or settings.approval_expiry_minutes)
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        return (
            self.db.query(ApprovalRequest)
            .filter(ApprovalRequest.approval_id == approval_id)
            .first()
        )

    def get_or_404(self, approval_id: str) -> ApprovalRequest:
        approval = self.get(approval_id)
        if approval is None:
            raise ApprovalNotFoundError(reason="not_found")
        return self._apply_lazy_expiry(approval)

    def list(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[ApprovalRequest], int, int]:
        """Return (items, total, pending_count), expiring stale requests first"""
        self.expire_stale()

        query = self.db.query(ApprovalRequest)
        if status:
            query = query.filter(ApprovalRequest.status == status)

        total = query.count()
        items = query.order_by(ApprovalRequest.created_at.desc()).offset(offset).limit(limit).all()
        pending_count = (
            self.db.query(func.count(ApprovalRequest.id))
            .filter(ApprovalRequest.status == PENDING)
            .scalar()
        )
        return items, total, pending_count

    def summary(self, due_soon_minutes: int = 15) -> ApprovalSummary:
        self.expire_stale()

        rows = (
            self.db.query(ApprovalRequest.status, func.count(ApprovalRequest.id))
            .group_by(ApprovalRequest.status)
            .all()
        )
        counts = {status: 0 for status in (PENDING, APPROVED, REJECTED, EXPIRED, EXECUTED)}
        counts.update({status: count for status, count in rows})

        horizon = self.clock() + timedelta(minutes=due_soon_minutes)
        due_soon = (
            self.db.query(func.count(ApprovalRequest.id))
            .filter(ApprovalRequest.status == PENDING, ApprovalRequest.expires_at <= horizon)
            .scalar()
        )
        return ApprovalSummary(counts=counts, due_soon=due_soon, due_soon_minutes=due_soon_minutes)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire_stale(self, target_id: Optional[str] = None, action_class: Optional[str] = None) -> int:
        """Move pending requests past their deadline to ``expired``"""
        query = self.db.query(ApprovalRequest).filter(
            ApprovalRequest.status == PENDING,
            ApprovalRequest.expires_at <= self.clock(),
        )
        if target_id is not None:
            query = query.filter(ApprovalRequest.target_id == target_id)
        if action_class is not None:
            query = query.filter(ApprovalRequest.action_class == action_class)

        expired = query.update({ApprovalRequest.status: EXPIRED}, synchronize_session=False)
        if expired:
            self.db.commit()
            for _ in range(expired):
                record_approval_transition(EXPIRED)
            logger.info(f"Expired {expired} stale approval request(s)", extra={"status": EXPIRED})
        return expired

    def _apply_lazy_expiry(self, approval: ApprovalRequest) -> ApprovalRequest:
        if approval.status == PENDING and approval.expires_at <= self.clock():
            self.expire_stale(target_id=approval.target_id, action_class=approval.action_class)
            self.db.refresh(approval)
        return approval

    def purge(self, retention_days: Optional[int] = None) -> int:
        """Delete terminal requests older than the retention window"""
        days = retention_days if retention_days is not None else settings.ADMIN_APPROVAL_RETENTION_DAYS
        cutoff = self.clock() - timedelta(days=days)
        purged = (
            self.db.query(ApprovalRequest)
            .filter(
                ApprovalRequest.status.in_(TERMINAL_STATUSES),
                ApprovalRequest.created_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if purged:
            logger.info(f"Purged {purged} approval request(s) older than {days} days")
        return purged

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create_pending(
        self,
        action: ActionSpec,
        target_id: str,
        requester_user_id: str,
        payload: Dict[str, Any],
        requester_email: Optional[str] = None,
        note: Optional[str] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        target_ids: Optional[List[str]] = None,
    ) -> ApprovalRequest:
        """Queue a guarded mutation for a second reviewer.

        Bulk requests pass every affected announcement in ``target_ids``;
        ``target_id`` is then the id derived from that set.

        Raises:
            ApprovalInvalidError: ``invalid_status:pending`` when the target
                already has a pending request in the same action class.
        """
        # A stale pending row would otherwise hold the unique slot
        self.expire_stale(target_id=target_id, action_class=action.action_class)

        now = self.clock()
        approval = ApprovalRequest(
            approval_id=generate_prefixed_id(settings.APPROVAL_ID_PREFIX),
            action=action.name,
            action_class=action.action_class,
            target_id=target_id,
            target_ids=target_ids,
            endpoint=endpoint,
            method=method,
            status=PENDING,
            payload=payload or {},
            payload_fingerprint=fingerprint_payload(payload),
            note=note,
            requester_user_id=requester_user_id,
            requester_email=requester_email,
            created_at=now,
            expires_at=now + self.expiry,
        )
        self.db.add(approval)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            existing = (
                self.db.query(ApprovalRequest)
                .filter(
                    ApprovalRequest.target_id == target_id,
                    ApprovalRequest.action_class == action.action_class,
                    ApprovalRequest.status == PENDING,
                )
                .first()
            )
            logger.info(
                "Approval request rejected: target already has a pending request",
                extra={"action": action.name, "announcement_id": target_id, "user_id": requester_user_id},
            )
            extra = {"approvalId": existing.approval_id} if existing is not None else None
            raise ApprovalInvalidError(
                "An approval request is already pending for this target.",
                reason=f"invalid_status:{PENDING}",
                extra=extra,
            )

        self.audit.record(
            "create_approval",
            announcement_id=target_id,
            user_id=requester_user_id,
            note=note,
            metadata={"approvalId": approval.approval_id, "actionType": action.name},
        )
        self.db.commit()
        self.db.refresh(approval)

        record_approval_transition(PENDING)
        logger.info(
            f"Approval requested: {approval.approval_id}",
            extra={
                "approval_id": approval.approval_id,
                "action": action.name,
                "announcement_id": target_id,
                "user_id": requester_user_id,
            },
        )
        send_webhook("approval.created", _webhook_payload(approval, note=note))
        return approval

    def decide(
        self,
        approval_id: str,
        reviewer_user_id: str,
        outcome: str,
        note: Optional[str] = None,
    ) -> ApprovalRequest:
        """Record a reviewer's approve/reject decision.

        Raises:
            ApprovalNotFoundError: unknown approval id.
            SelfApprovalForbiddenError: reviewer is the requester.
            ApprovalInvalidError: request is no longer pending (already
                decided, executed or expired).
        """
        if outcome not in DECISIONS:
            raise ValueError(f"Unknown decision outcome: {outcome}")
        new_status = DECISIONS[outcome]
        now = self.clock()

        updated = (
            self.db.query(ApprovalRequest)
            .filter(
                ApprovalRequest.approval_id == approval_id,
                ApprovalRequest.status == PENDING,
                ApprovalRequest.expires_at > now,
                ApprovalRequest.requester_user_id != reviewer_user_id,
            )
            .update(
                {
                    ApprovalRequest.status: new_status,
                    ApprovalRequest.reviewer_user_id: reviewer_user_id,
                    ApprovalRequest.decision_note: note,
                    ApprovalRequest.decided_at: now,
                },
                synchronize_session=False,
            )
        )

        if updated == 0:
            self.db.rollback()
            approval = self.get(approval_id)
            if approval is None:
                raise ApprovalNotFoundError(reason="not_found")
            if approval.requester_user_id == reviewer_user_id:
                logger.warning(
                    "Self-approval attempt blocked",
                    extra={"approval_id": approval_id, "user_id": reviewer_user_id},
                )
                raise SelfApprovalForbiddenError()
            approval = self._apply_lazy_expiry(approval)
            raise ApprovalInvalidError(
                f"Approval request is {approval.status}.",
                reason=f"invalid_status:{approval.status}",
                extra={"approvalId": approval_id},
            )

        approval = self.get(approval_id)
        self.audit.record(
            "approval_approved" if new_status == APPROVED else "approval_rejected",
            announcement_id=approval.target_id,
            user_id=reviewer_user_id,
            note=note,
            metadata={"approvalId": approval_id, "actionType": approval.action},
        )
        self.db.commit()
        self.db.refresh(approval)

        record_approval_transition(new_status)
        logger.info(
            f"Approval {new_status}: {approval_id}",
            extra={"approval_id": approval_id, "user_id": reviewer_user_id, "status": new_status},
        )
        send_webhook(f"approval.{new_status}", _webhook_payload(approval, note=note, reviewer_user_id=reviewer_user_id))
        return approval

    def check_for_execution(
        self,
        approval_id: str,
        action: ActionSpec,
        target_id: str,
        payload: Dict[str, Any],
        requester_user_id: str,
    ) -> ApprovalRequest:
        """Validate a replayed approval id against the request being made.

        Returns the approval when it is ``approved`` or already ``executed``.

        Raises:
            ApprovalInvalidError: with a reason naming what didn't match or the
                status that blocks execution.
        """
        approval = self.get(approval_id)
        if approval is None:
            raise ApprovalInvalidError(reason="not_found", extra={"approvalId": approval_id})
        if approval.target_id != target_id:
            raise ApprovalInvalidError(reason="target_mismatch", extra={"approvalId": approval_id})
        if approval.action != action.name:
            raise ApprovalInvalidError(reason="action_mismatch", extra={"approvalId": approval_id})
        if approval.requester_user_id != requester_user_id:
            raise ApprovalInvalidError(reason="requester_mismatch", extra={"approvalId": approval_id})
        if approval.payload_fingerprint != fingerprint_payload(payload):
            raise ApprovalInvalidError(reason="payload_mismatch", extra={"approvalId": approval_id})

        approval = self._apply_lazy_expiry(approval)
        if approval.status not in (APPROVED, EXECUTED):
            raise ApprovalInvalidError(
                f"Approval request is {approval.status}.",
                reason=f"invalid_status:{approval.status}",
                extra={"approvalId": approval_id},
            )
        return approval

    def execute(
        self,
        approval: ApprovalRequest,
        executor_user_id: str,
        apply: Callable[[Dict[str, Any]], MutationResult],
        before_apply: Optional[Callable[[], None]] = None,
    ) -> MutationResult:
        """Apply an approved request's stored payload exactly once.

        The approved->executed swap, the mutation, the stored result and the
        audit entry commit together. A caller that loses the swap gets the
        winner's stored result.
        """
        approval_id = approval.approval_id
        if approval.status == EXECUTED:
            return self._replay(approval_id)

        now = self.clock()
        updated = (
            self.db.query(ApprovalRequest)
            .filter(ApprovalRequest.approval_id == approval_id, ApprovalRequest.status == APPROVED)
            .update(
                {
                    ApprovalRequest.status: EXECUTED,
                    ApprovalRequest.executed_by: executor_user_id,
                    ApprovalRequest.executed_at: now,
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            self.db.rollback()
            return self._replay(approval_id)

        try:
            if before_apply is not None:
                before_apply()
            result = apply({"approvalId": approval_id})
            self.db.query(ApprovalRequest).filter(ApprovalRequest.approval_id == approval_id).update(
                {ApprovalRequest.result: result.to_record()}, synchronize_session=False
            )
            self.audit.record(
                "execute_approval",
                announcement_id=approval.target_id,
                user_id=executor_user_id,
                metadata={"approvalId": approval_id, "actionType": approval.action},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        record_approval_transition(EXECUTED)
        logger.info(
            f"Approval executed: {approval_id}",
            extra={"approval_id": approval_id, "user_id": executor_user_id, "status": EXECUTED},
        )
        self.db.refresh(approval)
        send_webhook("approval.executed", _webhook_payload(approval))
        return result

    def _replay(self, approval_id: str) -> MutationResult:
        approval = self.get(approval_id)
        if approval is not None:
            self.db.refresh(approval)
        if approval is None or approval.status != EXECUTED or not approval.result:
            status = approval.status if approval is not None else "not_found"
            raise ApprovalInvalidError(reason=f"invalid_status:{status}", extra={"approvalId": approval_id})

        logger.info("Approval replayed after execution", extra={"approval_id": approval_id})
        return MutationResult.from_record(approval.result)
