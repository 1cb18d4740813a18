"""Admin login sessions"""
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.config import settings
from app.models.admin_session import AdminSession
from app.models.admin_user import AdminUser
from app.utils import auth as auth_utils
from app.utils.csrf import generate_csrf_nonce
from app.utils.errors import (
    AuthenticationRequiredError,
    InvalidCredentialsError,
    NotFoundError,
    TwoFactorRequiredError,
)
from app.utils.logger import logger

# lastActivityAt is only written when it is at least this stale
ACTIVITY_TOUCH_INTERVAL = timedelta(seconds=60)


class SessionService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.clock = clock

    def authenticate(self, email: str, password: str, code: Optional[str] = None) -> AdminUser:
        """Check login credentials.

        Raises:
            InvalidCredentialsError: unknown email, wrong password or code.
            TwoFactorRequiredError: the account is enrolled and no code was sent.
        """
        user = (
            self.db.query(AdminUser)
            .filter(AdminUser.email == email.strip().lower(), AdminUser.is_active == True)
            .first()
        )
        if user is None or not auth_utils.verify_password(user.password_hash, password):
            raise InvalidCredentialsError()

        if user.two_factor_enrolled:
            code = (code or "").strip()
            if not code:
                raise TwoFactorRequiredError()
            if not auth_utils.verify_totp(user.totp_secret, code):
                matched = auth_utils.match_backup_code(user.backup_code_hashes, code)
                if matched is None:
                    raise InvalidCredentialsError("Invalid two-factor code")
                user.backup_code_hashes = [h for h in user.backup_code_hashes if h != matched]

        return user

    def create(self, user: AdminUser, ip: Optional[str], user_agent: Optional[str]) -> AdminSession:
        now = self.clock()
        device, browser, os_name = auth_utils.parse_user_agent(user_agent)
        session = AdminSession(
            session_id=auth_utils.generate_prefixed_id(settings.SESSION_ID_PREFIX),
            user_id=user.user_id,
            issued_at=now,
            expires_at=now + timedelta(hours=settings.session_absolute_timeout_hours),
            last_activity_at=now,
            ip=ip,
            device=device,
            browser=browser,
            os=os_name,
            csrf_nonce=generate_csrf_nonce(),
            is_active=True,
        )
        user.last_login_at = now
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)

        logger.info("Admin session created", extra={"user_id": user.user_id, "session_id": session.session_id})
        return session

    def load_active(self, session_id: str, user_id: str) -> AdminSession:
        """Return the live session or raise ``AuthenticationRequiredError``.

        A session past its absolute or idle deadline is deactivated on sight.
        """
        session = (
            self.db.query(AdminSession)
            .filter(AdminSession.session_id == session_id, AdminSession.user_id == user_id)
            .first()
        )
        if session is None or not session.is_active:
            raise AuthenticationRequiredError("Session is no longer active")

        now = self.clock()
        idle_limit = timedelta(minutes=settings.session_idle_timeout_minutes)
        if session.expires_at <= now or session.last_activity_at + idle_limit <= now:
            self._deactivate(session, now)
            self.db.commit()
            logger.info("Admin session expired", extra={"user_id": user_id, "session_id": session_id})
            raise AuthenticationRequiredError("Session expired")

        return session

    def touch(self, session: AdminSession) -> None:
        now = self.clock()
        if now - session.last_activity_at >= ACTIVITY_TOUCH_INTERVAL:
            session.last_activity_at = now
            self.db.commit()

    def list_active(self, user_id: str) -> List[AdminSession]:
        return (
            self.db.query(AdminSession)
            .filter(AdminSession.user_id == user_id, AdminSession.is_active == True)
            .order_by(AdminSession.last_activity_at.desc())
            .all()
        )

    def _deactivate(self, session: AdminSession, now: datetime) -> None:
        session.is_active = False
        session.terminated_at = now

    def terminate(self, session_id: str, user_id: str) -> AdminSession:
        """Deactivate one of ``user_id``'s sessions (no commit)"""
        session = (
            self.db.query(AdminSession)
            .filter(
                AdminSession.session_id == session_id,
                AdminSession.user_id == user_id,
                AdminSession.is_active == True,
            )
            .first()
        )
        if session is None:
            raise NotFoundError("Session not found")

        self._deactivate(session, self.clock())
        self.db.flush()
        logger.info("Admin session terminated", extra={"user_id": user_id, "session_id": session_id})
        return session

    def terminate_others(self, user_id: str, current_session_id: str) -> Tuple[int, List[str]]:
        """Deactivate every active session of ``user_id`` except the current one (no commit)"""
        now = self.clock()
        others = (
            self.db.query(AdminSession)
            .filter(
                AdminSession.user_id == user_id,
                AdminSession.session_id != current_session_id,
                AdminSession.is_active == True,
            )
            .all()
        )
        for session in others:
            self._deactivate(session, now)
        self.db.flush()

        terminated = [session.session_id for session in others]
        logger.info(
            f"Terminated {len(terminated)} other admin session(s)",
            extra={"user_id": user_id, "session_id": current_session_id},
        )
        return len(terminated), terminated
