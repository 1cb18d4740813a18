"""Step-Up Verifier: short-lived proof that an admin just re-authenticated"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.middleware.monitoring import record_step_up
from app.models.admin_user import AdminUser
from app.models.step_up_token import StepUpToken
from app.utils import auth as auth_utils
from app.utils.errors import (
    InvalidCredentialsError,
    NotEnrolledMismatchError,
    StepUpRequiredError,
    TwoFactorRequiredError,
)
from app.utils.logger import logger


@dataclass(frozen=True)
class StepUpGrant:
    """A validated step-up token, returned by ``verify``"""

    token_hash: str
    user_id: str
    session_id: str
    expires_at: datetime
    single_use: bool


@dataclass(frozen=True)
class IssuedStepUp:
    token: str
    expires_at: datetime
    single_use: bool


class StepUpVerifier:
    """Issues and checks step-up tokens bound to one (user, session) pair.

    Only the SHA-256 digest of a token is stored. A grant is invalid once
    expired, presented from another session or by another user, or (in
    single-use mode) once consumed.
    """

    def __init__(
        self,
        db: Session,
        ttl_seconds: int,
        single_use: bool = False,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)
        self.single_use = single_use
        self.clock = clock

    def issue(
        self,
        user: AdminUser,
        session_id: str,
        email: str,
        password: str,
        code: Optional[str] = None,
    ) -> IssuedStepUp:
        """Re-check credentials (and 2FA when enrolled) and mint a token.

        Raises:
            InvalidCredentialsError: wrong email, password or second factor.
            TwoFactorRequiredError: enrolled user supplied no code.
            NotEnrolledMismatchError: code supplied for an unenrolled user.
        """
        log_extra = {"user_id": user.user_id, "session_id": session_id}

        if (email or "").strip().lower() != user.email.lower() or not auth_utils.verify_password(
            user.password_hash, password
        ):
            record_step_up("invalid_credentials")
            logger.warning("Step-up failed: bad credentials", extra=log_extra)
            raise InvalidCredentialsError()

        code = (code or "").strip() or None
        if user.two_factor_enrolled:
            if code is None:
                record_step_up("two_factor_required")
                raise TwoFactorRequiredError()
            if not self._check_second_factor(user, code):
                record_step_up("invalid_credentials")
                logger.warning("Step-up failed: bad second factor", extra=log_extra)
                raise InvalidCredentialsError("Invalid two-factor code")
        elif code is not None:
            record_step_up("not_enrolled_mismatch")
            raise NotEnrolledMismatchError()

        token = auth_utils.generate_opaque_token()
        now = self.clock()
        row = StepUpToken(
            token_hash=auth_utils.hash_token(token),
            user_id=user.user_id,
            session_id=session_id,
            issued_at=now,
            expires_at=now + self.ttl,
            single_use=self.single_use,
        )
        self.db.add(row)
        self.db.commit()

        record_step_up("issued")
        logger.info("Step-up token issued", extra=log_extra)
        return IssuedStepUp(token=token, expires_at=row.expires_at, single_use=row.single_use)

    def _check_second_factor(self, user: AdminUser, code: str) -> bool:
        if auth_utils.verify_totp(user.totp_secret, code):
            return True

        matched = auth_utils.match_backup_code(user.backup_code_hashes, code)
        if matched is None:
            return False

        # Backup codes are single use
        user.backup_code_hashes = [h for h in user.backup_code_hashes if h != matched]
        logger.info("Backup code consumed", extra={"user_id": user.user_id})
        return True

    def verify(self, user_id: str, session_id: str, token: Optional[str]) -> Optional[StepUpGrant]:
        """Return a grant if ``token`` is currently valid for this user and session.

        Pure read; never mutates the token row.
        """
        if not token:
            return None

        row = (
            self.db.query(StepUpToken)
            .filter(StepUpToken.token_hash == auth_utils.hash_token(token))
            .first()
        )
        if row is None:
            return None
        if row.user_id != user_id or row.session_id != session_id:
            logger.warning(
                "Step-up token presented from a different session",
                extra={"user_id": user_id, "session_id": session_id},
            )
            return None
        if row.expires_at <= self.clock():
            return None
        if row.single_use and row.consumed_at is not None:
            return None

        return StepUpGrant(
            token_hash=row.token_hash,
            user_id=row.user_id,
            session_id=row.session_id,
            expires_at=row.expires_at,
            single_use=row.single_use,
        )

    def consume(self, grant: StepUpGrant) -> None:
        """Spend a single-use grant inside the caller's transaction.

        Raises:
            StepUpRequiredError: if another request spent it first.
        """
        if not grant.single_use:
            return

        updated = (
            self.db.query(StepUpToken)
            .filter(StepUpToken.token_hash == grant.token_hash, StepUpToken.consumed_at.is_(None))
            .update({StepUpToken.consumed_at: self.clock()}, synchronize_session=False)
        )
        if updated == 0:
            raise StepUpRequiredError(reason="step_up_consumed")
