"""Audit Sink: append-only, hash-chained admin audit trail"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.audit_log import AdminAuditLog
from app.utils import chain as chain_utils
from app.utils.logger import logger


@dataclass
class ChainVerification:
    valid: bool
    total_entries: int
    broken_at: Optional[str] = None


class AuditSink:
    """Writes audit entries inside the caller's transaction.

    ``record`` only flushes; the entry becomes durable together with the
    mutation it describes when the caller commits.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.clock = clock

    def record(
        self,
        action: str,
        announcement_id: Optional[str] = None,
        user_id: Optional[str] = None,
        note: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AdminAuditLog:
        # Lock the latest row so a concurrent insert can't compute the same
        # previous_hash (PostgreSQL FOR UPDATE; SQLite serialises writers).
        prev_log = (
            self.db.query(AdminAuditLog)
            .order_by(AdminAuditLog.id.desc())
            .with_for_update()
            .first()
        )

        new_log_id = str(uuid.uuid4())
        if prev_log is None:
            previous_hash = chain_utils.genesis_hash()
        else:
            previous_hash = chain_utils.compute_hash(
                prev_log_id=prev_log.log_id,
                prev_timestamp=prev_log.created_at,
                current_log_id=new_log_id,
                current_action=action,
            )

        entry = AdminAuditLog(
            log_id=new_log_id,
            action=action,
            announcement_id=announcement_id,
            user_id=user_id,
            note=note,
            log_metadata=metadata or None,
            created_at=self.clock(),
            previous_hash=previous_hash,
        )
        self.db.add(entry)
        self.db.flush()

        logger.info(
            f"Audit entry recorded: {action}",
            extra={"action": action, "announcement_id": announcement_id, "user_id": user_id},
        )
        return entry

    def list(
        self,
        action: Optional[str] = None,
        announcement_id: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AdminAuditLog], int]:
        query = self.db.query(AdminAuditLog)
        if action:
            query = query.filter(AdminAuditLog.action == action)
        if announcement_id:
            query = query.filter(AdminAuditLog.announcement_id == announcement_id)
        if user_id:
            query = query.filter(AdminAuditLog.user_id == user_id)

        total = query.count()
        entries = query.order_by(AdminAuditLog.id.desc()).offset(offset).limit(limit).all()
        return entries, total

    def verify(self) -> ChainVerification:
        """Walk the trail in insertion order and recompute every link"""
        entries = self.db.query(AdminAuditLog).order_by(AdminAuditLog.id.asc()).all()

        for i, entry in enumerate(entries):
            if i == 0:
                expected = chain_utils.genesis_hash()
            else:
                prev = entries[i - 1]
                expected = chain_utils.compute_hash(
                    prev_log_id=prev.log_id,
                    prev_timestamp=prev.created_at,
                    current_log_id=entry.log_id,
                    current_action=entry.action,
                )

            if entry.previous_hash != expected:
                logger.warning("Audit chain broken", extra={"action": entry.action, "error": entry.log_id})
                return ChainVerification(valid=False, total_entries=len(entries), broken_at=entry.log_id)

        return ChainVerification(valid=True, total_entries=len(entries))
