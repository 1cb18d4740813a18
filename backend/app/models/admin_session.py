"""AdminSession model: one authenticated browser context"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from app.database import Base


class AdminSession(Base):
    """A login session.

    The session cookie carries a signed JWT whose ``sid`` claim points at
    ``session_id``; the row is the source of truth for whether the session is
    still alive. ``csrf_nonce`` is the random half of the double-submit token
    issued at login.
    """

    __tablename__ = "admin_sessions"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(String(50), ForeignKey("admin_users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    issued_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ip = Column(String(64), nullable=True)
    device = Column(String(50), nullable=True)
    browser = Column(String(50), nullable=True)
    os = Column(String(50), nullable=True)
    csrf_nonce = Column(String(64), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    terminated_at = Column(DateTime, nullable=True)
