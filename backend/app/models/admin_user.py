"""AdminUser model: named admin accounts with portal roles"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String

from app.database import Base


class AdminUser(Base):
    """An admin portal account.

    ``password_hash`` is an argon2id digest. Two-factor is enrolled iff
    ``totp_secret`` is set; ``backup_code_hashes`` holds salted digests of the
    remaining one-time backup codes (a code is removed once used).
    """

    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), unique=True, nullable=False, index=True)    # "usr_xxx"
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)                                # admin|editor|contributor|reviewer|viewer
    password_hash = Column(String(255), nullable=False)
    totp_secret = Column(String(64), nullable=True)
    backup_code_hashes = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    @property
    def two_factor_enrolled(self) -> bool:
        return bool(self.totp_secret)
