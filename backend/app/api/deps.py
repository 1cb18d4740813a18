"""API dependencies for authentication, CSRF and the authorization core.

Request pipeline for a guarded mutation::

    session cookie -> CurrentSession -> CSRF check -> permission check
                   -> PolicyGate (step-up, approval, break-glass) -> mutation

Every collaborator is built per request from injectable dependencies, so tests
can swap the clock, the runtime policy or the step-up verifier through
``app.dependency_overrides``.
"""
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.middleware.monitoring import record_auth_failure, record_csrf_failure
from app.models.admin_session import AdminSession
from app.models.admin_user import AdminUser
from app.services.approval_ledger import ApprovalLedger
from app.services.audit_sink import AuditSink
from app.services.policy_gate import (
    ActorContext,
    GuardedRequest,
    PolicyGate,
    RequestIntent,
    intent_from_headers,
)
from app.services.runtime_policy import PolicyConfig, RuntimePolicyStore
from app.services.sessions import SessionService
from app.services.step_up import StepUpVerifier
from app.utils import csrf
from app.utils.errors import AuthenticationRequiredError, CsrfInvalidError, PermissionDeniedError
from app.utils.jwt_utils import decode_session_token
from app.utils.permissions import permissions_for_role


class CurrentSession(NamedTuple):
    """Resolved admin identity plus the session row backing the cookie."""
    actor: ActorContext
    session: AdminSession
    user: AdminUser


# ---------------------------------------------------------------------------
# Ambient collaborators
# ---------------------------------------------------------------------------

def get_clock() -> Callable[[], datetime]:
    """Wall clock used by every TTL check (naive UTC)."""
    return datetime.utcnow


def get_policy_store(request: Request) -> RuntimePolicyStore:
    return request.app.state.runtime_policy


def get_policy_config(store: RuntimePolicyStore = Depends(get_policy_store)) -> PolicyConfig:
    """Snapshot of the runtime security policy for this request."""
    return store.get()


def get_audit_sink(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AuditSink:
    return AuditSink(db, clock=clock)


def get_step_up_verifier(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> StepUpVerifier:
    return StepUpVerifier(
        db,
        ttl_seconds=settings.step_up_ttl_seconds,
        single_use=settings.ADMIN_STEP_UP_SINGLE_USE,
        clock=clock,
    )


def get_approval_ledger(
    db: Session = Depends(get_db),
    audit: AuditSink = Depends(get_audit_sink),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ApprovalLedger:
    return ApprovalLedger(db, audit, expiry_minutes=settings.approval_expiry_minutes, clock=clock)


def get_policy_gate(
    db: Session = Depends(get_db),
    config: PolicyConfig = Depends(get_policy_config),
    verifier: StepUpVerifier = Depends(get_step_up_verifier),
    ledger: ApprovalLedger = Depends(get_approval_ledger),
    audit: AuditSink = Depends(get_audit_sink),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> PolicyGate:
    return PolicyGate(db, config, verifier, ledger, audit, clock=clock)


# ---------------------------------------------------------------------------
# Session / actor
# ---------------------------------------------------------------------------

def get_current_session(
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> CurrentSession:
    """Resolve the session cookie to a live session and its admin.

    Raises:
        AuthenticationRequiredError: missing/invalid cookie, terminated or
            expired session, or deactivated account.
    """
    token = request.cookies.get(settings.ADMIN_AUTH_COOKIE_NAME)
    if not token:
        record_auth_failure("session")
        raise AuthenticationRequiredError()

    try:
        payload = decode_session_token(token)
        sessions = SessionService(db, clock=clock)
        session = sessions.load_active(payload["sid"], payload["sub"])
    except AuthenticationRequiredError:
        record_auth_failure("session")
        raise

    user = (
        db.query(AdminUser)
        .filter(AdminUser.user_id == session.user_id, AdminUser.is_active == True)
        .first()
    )
    if user is None:
        record_auth_failure("session")
        raise AuthenticationRequiredError("Account is disabled")

    actor = ActorContext(
        user_id=user.user_id,
        session_id=session.session_id,
        role=user.role,
        email=user.email,
        permissions=permissions_for_role(user.role),
    )
    request.state.user_id = user.user_id
    return CurrentSession(actor=actor, session=session, user=user)


def get_actor_context(current: CurrentSession = Depends(get_current_session)) -> ActorContext:
    return current.actor


def verify_csrf(
    request: Request,
    current: CurrentSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> None:
    """Double-submit CSRF check for state-changing methods.

    Declared as a router/route dependency so it runs before the handler's own
    dependencies and body handling.
    Session activity is recorded only once the request passes the check.
    """
    try:
        csrf.validate_request(request, current.session.session_id, current.session.csrf_nonce)
    except CsrfInvalidError:
        record_csrf_failure()
        raise

    SessionService(db, clock=clock).touch(current.session)


def require_permission(permission: str) -> Callable:
    """Dependency factory: require the actor's role to grant ``permission``.

    Usage::

        @router.post("/...")
        def endpoint(actor: ActorContext = Depends(require_permission("announcements:approve"))):
            ...
    """
    def _check(actor: ActorContext = Depends(get_actor_context)) -> ActorContext:
        if not actor.can(permission):
            raise PermissionDeniedError(extra={"required": permission})
        return actor

    return _check


# ---------------------------------------------------------------------------
# Request intent headers
# ---------------------------------------------------------------------------

def get_request_intent(
    x_admin_approval_id: Optional[str] = Header(None),
    x_admin_break_glass_reason: Optional[str] = Header(None),
) -> RequestIntent:
    return intent_from_headers(x_admin_approval_id, x_admin_break_glass_reason)


def get_step_up_token(x_admin_step_up_token: Optional[str] = Header(None)) -> Optional[str]:
    return x_admin_step_up_token


class GuardContext(NamedTuple):
    """Everything a route needs to run a mutation through the Policy Gate."""
    gate: PolicyGate
    intent: RequestIntent
    step_up_token: Optional[str]
    endpoint: str
    method: str

    def request(
        self,
        action,
        target_id: str,
        payload=None,
        note: Optional[str] = None,
        target_ids: Optional[List[str]] = None,
    ) -> GuardedRequest:
        return GuardedRequest(
            action=action,
            target_id=target_id,
            target_ids=target_ids,
            payload=payload or {},
            note=note,
            endpoint=self.endpoint,
            method=self.method,
        )


def get_guard_context(
    request: Request,
    gate: PolicyGate = Depends(get_policy_gate),
    intent: RequestIntent = Depends(get_request_intent),
    step_up_token: Optional[str] = Depends(get_step_up_token),
) -> GuardContext:
    route = request.scope.get("route")
    endpoint = getattr(route, "path", None) or request.url.path
    return GuardContext(
        gate=gate,
        intent=intent,
        step_up_token=step_up_token,
        endpoint=endpoint,
        method=request.method,
    )
