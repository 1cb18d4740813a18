"""Audit log model"""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from app.database import Base


def generate_uuid_string():
    """Generate UUID as string for SQLite compatibility"""
    return str(uuid.uuid4())


class AdminAuditLog(Base):
    """Append-only admin audit trail, hash-chained entry to entry"""

    __tablename__ = "admin_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    log_id = Column(String(36), default=generate_uuid_string, unique=True, nullable=False, index=True)
    action = Column(String(64), nullable=False, index=True)
    announcement_id = Column(String(128), nullable=True, index=True)  # or other target id
    user_id = Column(String(50), nullable=True, index=True)
    note = Column(Text, nullable=True)
    log_metadata = Column("metadata", JSON, nullable=True)  # Column name is 'metadata', attribute is 'log_metadata'
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    previous_hash = Column(String(64), nullable=False)
