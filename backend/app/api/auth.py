"""Login, logout, step-up and two-factor endpoints"""
from typing import Callable

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.api.deps import (
    CurrentSession,
    GuardContext,
    get_clock,
    get_current_session,
    get_guard_context,
    get_step_up_verifier,
    verify_csrf,
)
from app.config import settings
from app.database import get_db
from app.middleware.monitoring import record_auth_failure
from app.middleware.rate_limit import get_rate_limit, limiter
from app.services import actions
from app.services.approval_ledger import MutationResult
from app.services.sessions import SessionService
from app.services.step_up import StepUpVerifier
from app.services.users import enroll_two_factor
from app.schemas.auth import AdminUserResponse, LoginRequest, MeResponse, StepUpRequest, StepUpResponse
from app.utils.csrf import build_csrf_token
from app.utils.errors import InvalidCredentialsError, TwoFactorRequiredError
from app.utils.jwt_utils import create_session_token
from app.utils.logger import logger

router = APIRouter(prefix="/auth", tags=["authentication"])


def _set_session_cookies(response: Response, session_token: str, csrf_token: str) -> None:
    max_age = settings.session_absolute_timeout_hours * 3600
    response.set_cookie(
        settings.ADMIN_AUTH_COOKIE_NAME,
        session_token,
        max_age=max_age,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        path="/",
    )
    # Readable by the admin UI so it can echo it in X-CSRF-Token
    response.set_cookie(
        settings.CSRF_COOKIE_NAME,
        csrf_token,
        max_age=max_age,
        httponly=False,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        path="/",
    )


def _clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.ADMIN_AUTH_COOKIE_NAME, path="/")
    response.delete_cookie(settings.CSRF_COOKIE_NAME, path="/")


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------

@router.post("/login")
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    response: Response,
    data: LoginRequest,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    """Password (+ TOTP or backup code when enrolled) login.

    Sets the HttpOnly session cookie and the readable CSRF cookie. Enrolled
    accounts that omit ``code`` get 401 ``two_factor_required``.
    """
    sessions = SessionService(db, clock=clock)
    try:
        user = sessions.authenticate(data.email, data.password, data.code)
    except (InvalidCredentialsError, TwoFactorRequiredError) as exc:
        record_auth_failure("login")
        logger.warning("Admin login failed", extra={"error": exc.error})
        raise

    ip = request.client.host if request.client else None
    session = sessions.create(user, ip=ip, user_agent=request.headers.get("user-agent"))

    session_token = create_session_token(user.user_id, session.session_id, user.role, session.expires_at)
    csrf_token = build_csrf_token(session.session_id, session.csrf_nonce)
    _set_session_cookies(response, session_token, csrf_token)

    logger.info("Admin logged in", extra={"user_id": user.user_id, "session_id": session.session_id})
    return {
        "data": {
            "user": AdminUserResponse.model_validate(user).model_dump(mode="json"),
            "csrfToken": csrf_token,
            "sessionId": session.session_id,
        }
    }


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------

@router.post("/logout", dependencies=[Depends(verify_csrf)])
def logout(
    response: Response,
    current: CurrentSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    SessionService(db, clock=clock).terminate(current.session.session_id, current.actor.user_id)
    db.commit()
    _clear_session_cookies(response)
    return {"success": True}


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------

@router.get("/me", response_model=MeResponse, dependencies=[Depends(verify_csrf)])
def me(current: CurrentSession = Depends(get_current_session)):
    return MeResponse(
        user=AdminUserResponse.model_validate(current.user),
        session_id=current.session.session_id,
        permissions=sorted(current.actor.permissions),
    )


# ---------------------------------------------------------------------------
# POST /auth/admin/step-up
# ---------------------------------------------------------------------------

@router.post("/admin/step-up", dependencies=[Depends(verify_csrf)])
@limiter.limit(get_rate_limit("step_up"))
def step_up(
    request: Request,
    data: StepUpRequest,
    current: CurrentSession = Depends(get_current_session),
    verifier: StepUpVerifier = Depends(get_step_up_verifier),
):
    """Re-authenticate and receive a short-lived step-up token.

    Send the token as ``X-Admin-Step-Up-Token`` on sensitive calls. It is only
    valid for this session and this admin.
    """
    issued = verifier.issue(
        current.user,
        current.session.session_id,
        email=data.email,
        password=data.password,
        code=data.code,
    )
    body = StepUpResponse(token=issued.token, expires_at=issued.expires_at, single_use=issued.single_use)
    return {"data": body.model_dump(mode="json")}


# ---------------------------------------------------------------------------
# POST /auth/2fa/enroll
# ---------------------------------------------------------------------------

@router.post("/2fa/enroll", dependencies=[Depends(verify_csrf)])
def enroll_totp(
    current: CurrentSession = Depends(get_current_session),
    guard: GuardContext = Depends(get_guard_context),
    db: Session = Depends(get_db),
):
    """Start (or reset) TOTP enrollment; backup codes are shown only once."""
    def apply(metadata):
        enrollment = enroll_two_factor(db, current.user)
        guard.gate.audit.record(
            "enroll_two_factor",
            user_id=current.actor.user_id,
            metadata=metadata or None,
        )
        return MutationResult(
            status_code=200,
            body={
                "data": {
                    "secret": enrollment.secret,
                    "provisioningUri": enrollment.provisioning_uri,
                    "backupCodes": enrollment.backup_codes,
                }
            },
        )

    result = guard.gate.enforce(
        current.actor,
        guard.request(actions.ENROLL_TWO_FACTOR, target_id=current.actor.user_id),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return result.body
