"""Announcement model"""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text

from app.database import Base


def generate_uuid_string():
    """Generate UUID as string for SQLite compatibility"""
    return str(uuid.uuid4())


class Announcement(Base):
    """A government-exam announcement (job, result, admit card, ...).

    Only the fields the publish workflow touches are modelled. ``versions``
    holds prior states as ``{version, updatedAt, updatedBy, snapshot}``.
    """

    __tablename__ = "announcements"

    id = Column(String(36), primary_key=True, default=generate_uuid_string)
    title = Column(String(500), nullable=False)
    type = Column(String(32), nullable=False, default="job")
    category = Column(String(255), nullable=True)
    organization = Column(String(255), nullable=True)
    content = Column(Text, nullable=True)
    external_link = Column(String(1000), nullable=True)
    status = Column(String(20), nullable=False, default="draft", index=True)  # draft|pending|scheduled|published|archived
    is_active = Column(Boolean, default=True, nullable=False)
    publish_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(50), nullable=True)
    note = Column(Text, nullable=True)
    created_by = Column(String(50), nullable=True)
    updated_by = Column(String(50), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    versions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
