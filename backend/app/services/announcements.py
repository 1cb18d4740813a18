"""Announcement mutations applied once the Policy Gate allows them.

Every method takes the JSON payload that was (or would be) stored on an
approval request, so a replay of an approved request applies exactly what the
reviewer saw. Methods add their own audit entry and leave the commit to the
caller.
"""
import hashlib
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.announcement import Announcement
from app.schemas.announcement import AnnouncementCreate, AnnouncementUpdate
from app.services.audit_sink import AuditSink
from app.utils.errors import NotFoundError

PUBLISHED = "published"

SNAPSHOT_FIELDS = (
    "title",
    "type",
    "category",
    "organization",
    "content",
    "external_link",
    "status",
    "is_active",
    "publish_at",
    "approved_at",
    "approved_by",
)

_DATETIME_FIELDS = ("publish_at", "approved_at")


def _to_json(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def _from_json(name: str, value: Any) -> Any:
    if name in _DATETIME_FIELDS and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None) if value else None
    return value


def new_announcement_target(fingerprint: str) -> str:
    """Target id for an announcement that does not exist yet"""
    return f"new:{fingerprint[:24]}"


def bulk_target(announcement_ids: List[str]) -> str:
    """Target id shared by every bulk request over the same set of announcements"""
    digest = hashlib.sha256(",".join(sorted(set(announcement_ids))).encode()).hexdigest()
    return f"bulk:{digest[:24]}"


class AnnouncementService:
    def __init__(self, db: Session, audit: AuditSink, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.audit = audit
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_or_404(self, announcement_id: str) -> Announcement:
        announcement = self.db.query(Announcement).filter(Announcement.id == announcement_id).first()
        if announcement is None:
            raise NotFoundError("Announcement not found")
        return announcement

    def list(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> Tuple[List[Announcement], int]:
        query = self.db.query(Announcement)
        if status:
            query = query.filter(Announcement.status == status)
        total = query.count()
        items = query.order_by(Announcement.updated_at.desc()).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def find_version(announcement: Announcement, version: int) -> Optional[Dict[str, Any]]:
        for entry in announcement.versions or []:
            if entry.get("version") == version and entry.get("snapshot"):
                return entry
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _snapshot(self, announcement: Announcement) -> Dict[str, Any]:
        return {name: _to_json(getattr(announcement, name)) for name in SNAPSHOT_FIELDS}

    def _apply_changes(self, announcement: Announcement, changes: Dict[str, Any], user_id: str) -> Announcement:
        """Push the current state as a version snapshot, then apply ``changes``"""
        now = self.clock()
        history = list(announcement.versions or [])
        history.append({
            "version": announcement.version,
            "updatedAt": now.isoformat(),
            "updatedBy": user_id,
            "snapshot": self._snapshot(announcement),
        })
        announcement.versions = history
        announcement.version = (announcement.version or 1) + 1

        for name, value in changes.items():
            setattr(announcement, name, _from_json(name, value))

        if announcement.status == PUBLISHED and announcement.publish_at is None:
            announcement.publish_at = now
        announcement.updated_by = user_id
        announcement.updated_at = now
        self.db.flush()
        return announcement

    def create(self, payload: Dict[str, Any], user_id: str, metadata: Optional[Dict[str, Any]] = None) -> Announcement:
        data = AnnouncementCreate.model_validate(payload)
        now = self.clock()
        announcement = Announcement(
            title=data.title,
            type=data.type,
            category=data.category,
            organization=data.organization,
            content=data.content,
            external_link=data.external_link,
            status=data.status,
            publish_at=data.publish_at.replace(tzinfo=None) if data.publish_at else None,
            note=data.note,
            created_by=user_id,
            updated_by=user_id,
            version=1,
            versions=[],
            created_at=now,
            updated_at=now,
        )
        if announcement.status == PUBLISHED and announcement.publish_at is None:
            announcement.publish_at = now
        self.db.add(announcement)
        self.db.flush()

        self.audit.record(
            "create",
            announcement_id=announcement.id,
            user_id=user_id,
            note=data.note,
            metadata={"status": announcement.status, **(metadata or {})},
        )
        return announcement

    def update(
        self,
        announcement_id: str,
        payload: Dict[str, Any],
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Announcement:
        data = AnnouncementUpdate.model_validate(payload)
        announcement = self.get_or_404(announcement_id)
        changes = data.model_dump(mode="json", exclude_unset=True)
        self._apply_changes(announcement, changes, user_id)

        self.audit.record(
            "update",
            announcement_id=announcement.id,
            user_id=user_id,
            note=data.note,
            metadata={"status": announcement.status, **(metadata or {})},
        )
        return announcement

    def approve(
        self,
        announcement_id: str,
        payload: Dict[str, Any],
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Announcement:
        announcement = self.get_or_404(announcement_id)
        now = self.clock()
        note = payload.get("note")
        self._apply_changes(
            announcement,
            {"status": PUBLISHED, "publish_at": now, "approved_at": now, "approved_by": user_id, "note": note},
            user_id,
        )

        self.audit.record("approve", announcement_id=announcement.id, user_id=user_id, note=note, metadata=metadata)
        return announcement

    def reject(
        self,
        announcement_id: str,
        payload: Dict[str, Any],
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Announcement:
        announcement = self.get_or_404(announcement_id)
        note = payload.get("note")
        self._apply_changes(
            announcement,
            {"status": "draft", "approved_at": None, "approved_by": None, "note": note},
            user_id,
        )

        self.audit.record("reject", announcement_id=announcement.id, user_id=user_id, note=note, metadata=metadata)
        return announcement

    def rollback(
        self,
        announcement_id: str,
        payload: Dict[str, Any],
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Announcement:
        announcement = self.get_or_404(announcement_id)
        version = int(payload["version"])
        entry = self.find_version(announcement, version)
        if entry is None:
            raise NotFoundError("Version snapshot not found")

        changes = {name: value for name, value in entry["snapshot"].items() if name in SNAPSHOT_FIELDS}
        changes["note"] = payload.get("note") or f"Rolled back to version {version}"
        self._apply_changes(announcement, changes, user_id)

        self.audit.record(
            "rollback",
            announcement_id=announcement.id,
            user_id=user_id,
            note=payload.get("note"),
            metadata={"targetVersion": version, **(metadata or {})},
        )
        return announcement

    def delete(
        self,
        announcement_id: str,
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        announcement = self.get_or_404(announcement_id)
        self.db.delete(announcement)
        self.db.flush()

        self.audit.record("delete", announcement_id=announcement_id, user_id=user_id, metadata=metadata)

    # ------------------------------------------------------------------
    # Bulk review
    # ------------------------------------------------------------------

    def get_many_or_404(self, announcement_ids: List[str]) -> List[Announcement]:
        """Load every id, in the given order; one unknown id fails the whole set"""
        rows = self.db.query(Announcement).filter(Announcement.id.in_(announcement_ids)).all()
        by_id = {row.id: row for row in rows}
        missing = [announcement_id for announcement_id in announcement_ids if announcement_id not in by_id]
        if missing:
            raise NotFoundError("Announcement not found", extra={"missingIds": missing})
        return [by_id[announcement_id] for announcement_id in announcement_ids]

    def bulk_approve(
        self,
        payload: Dict[str, Any],
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Announcement]:
        announcements = self.get_many_or_404(payload["ids"])
        now = self.clock()
        note = payload.get("note")
        for announcement in announcements:
            self._apply_changes(
                announcement,
                {"status": PUBLISHED, "publish_at": now, "approved_at": now, "approved_by": user_id, "note": note},
                user_id,
            )

        self.audit.record(
            "bulk_approve",
            announcement_id=bulk_target(payload["ids"]),
            user_id=user_id,
            note=note,
            metadata={"announcementIds": payload["ids"], "count": len(announcements), **(metadata or {})},
        )
        return announcements

    def bulk_reject(
        self,
        payload: Dict[str, Any],
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Announcement]:
        announcements = self.get_many_or_404(payload["ids"])
        note = payload.get("note")
        for announcement in announcements:
            self._apply_changes(
                announcement,
                {"status": "draft", "approved_at": None, "approved_by": None, "note": note},
                user_id,
            )

        self.audit.record(
            "bulk_reject",
            announcement_id=bulk_target(payload["ids"]),
            user_id=user_id,
            note=note,
            metadata={"announcementIds": payload["ids"], "count": len(announcements), **(metadata or {})},
        )
        return announcements
