"""StepUpToken model: proof of recent re-authentication"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from app.database import Base


class StepUpToken(Base):
    """Stored form of a step-up bearer token.

    Only the SHA-256 digest of the opaque token is kept. A token is valid for
    the (user_id, session_id) pair that minted it and until ``expires_at``;
    single-use tokens are additionally spent once ``consumed_at`` is set.
    """

    __tablename__ = "step_up_tokens"

    id = Column(Integer, primary_key=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(50), ForeignKey("admin_users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(50), ForeignKey("admin_sessions.session_id", ondelete="CASCADE"), nullable=False)
    issued_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    single_use = Column(Boolean, default=False, nullable=False)
    consumed_at = Column(DateTime, nullable=True)
