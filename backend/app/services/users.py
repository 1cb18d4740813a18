"""Admin account provisioning and two-factor enrollment"""
from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from app.config import settings
from app.models.admin_user import AdminUser
from app.utils import auth as auth_utils
from app.utils.errors import AdminGuardError
from app.utils.logger import logger
from app.utils.permissions import is_portal_role


class UserAlreadyExistsError(AdminGuardError):
    error = "user_exists"
    status_code = 409
    default_message = "An admin account with this email already exists"


class InvalidRoleError(AdminGuardError):
    error = "invalid_role"
    status_code = 400
    default_message = "Unknown admin portal role"


@dataclass(frozen=True)
class TwoFactorEnrollment:
    secret: str
    provisioning_uri: str
    backup_codes: List[str]


def create_admin_user(db: Session, email: str, name: str, role: str, password: str) -> AdminUser:
    """Provision a portal account (no commit)"""
    email = email.strip().lower()
    if not is_portal_role(role):
        raise InvalidRoleError(extra={"role": role})
    if db.query(AdminUser).filter(AdminUser.email == email).first() is not None:
        raise UserAlreadyExistsError()

    user = AdminUser(
        user_id=auth_utils.generate_prefixed_id(settings.USER_ID_PREFIX),
        email=email,
        name=name,
        role=role,
        password_hash=auth_utils.hash_password(password),
        backup_code_hashes=[],
        is_active=True,
    )
    db.add(user)
    db.flush()

    logger.info(f"Created admin user: {user.user_id}", extra={"user_id": user.user_id, "action": "create_user"})
    return user


def enroll_two_factor(db: Session, user: AdminUser) -> TwoFactorEnrollment:
    """Set a fresh TOTP secret and backup codes (no commit).

    Replaces any previous enrollment; plain backup codes are returned once.
    """
    secret = auth_utils.generate_totp_secret()
    codes, digests = auth_utils.generate_backup_codes()
    user.totp_secret = secret
    user.backup_code_hashes = digests
    db.flush()

    logger.info("Two-factor enrolled", extra={"user_id": user.user_id, "action": "enroll_two_factor"})
    return TwoFactorEnrollment(
        secret=secret,
        provisioning_uri=auth_utils.totp_provisioning_uri(secret, user.email),
        backup_codes=codes,
    )


def deactivate_admin_user(db: Session, user: AdminUser) -> None:
    user.is_active = False
    db.flush()
    logger.info(f"Deactivated admin user: {user.user_id}", extra={"user_id": user.user_id})
