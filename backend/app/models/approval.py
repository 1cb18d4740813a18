"""ApprovalRequest model"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, Text, text

from app.database import Base


class ApprovalRequest(Base):
    """ApprovalRequest model - one guarded mutation awaiting a second reviewer.

    Status lifecycle: pending -> approved | rejected | expired, approved -> executed.
    The partial unique index keeps at most one pending request per
    (target_id, action_class) at the store level.
    """

    __tablename__ = "admin_approval_requests"

    id = Column(Integer, primary_key=True, index=True)
    approval_id = Column(String(50), unique=True, nullable=False, index=True)
    action = Column(String(64), nullable=False)
    action_class = Column(String(32), nullable=False)
    target_id = Column(String(128), nullable=False, index=True)
    target_ids = Column(JSON, nullable=True)           # sorted announcement ids of a bulk request
    endpoint = Column(String(255), nullable=True)
    method = Column(String(10), nullable=True)
    status = Column(String(20), default="pending", nullable=False, index=True)  # pending|approved|rejected|expired|executed
    payload = Column(JSON, nullable=False, default=dict)
    payload_fingerprint = Column(String(64), nullable=False)
    note = Column(Text, nullable=True)
    requester_user_id = Column(String(50), nullable=False, index=True)
    requester_email = Column(String(255), nullable=True)
    reviewer_user_id = Column(String(50), nullable=True)
    decision_note = Column(Text, nullable=True)
    executed_by = Column(String(50), nullable=True)
    result = Column(JSON, nullable=True)              # response snapshot returned on replay
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    decided_at = Column(DateTime, nullable=True)
    executed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_admin_approval_pending_target",
            "target_id",
            "action_class",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )
