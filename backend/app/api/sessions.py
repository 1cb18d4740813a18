"""Admin session listing and termination"""
from typing import Callable, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import CurrentSession, GuardContext, get_clock, get_current_session, get_guard_context, verify_csrf
from app.database import get_db
from app.services import actions
from app.services.approval_ledger import MutationResult
from app.services.sessions import SessionService
from app.schemas.auth import SessionResponse, TerminateSessionRequest

router = APIRouter(
    prefix="/admin/sessions",
    tags=["sessions"],
    dependencies=[Depends(verify_csrf)],
)


def get_session_service(
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
) -> SessionService:
    return SessionService(db, clock=clock)


@router.get("", response_model=List[SessionResponse])
def list_sessions(
    current: CurrentSession = Depends(get_current_session),
    sessions: SessionService = Depends(get_session_service),
):
    """Active sessions of the signed-in admin, most recently used first."""
    items = []
    for session in sessions.list_active(current.actor.user_id):
        item = SessionResponse.model_validate(session)
        item.is_current = session.session_id == current.session.session_id
        items.append(item)
    return items


@router.post("/terminate")
def terminate_session(
    data: TerminateSessionRequest,
    current: CurrentSession = Depends(get_current_session),
    guard: GuardContext = Depends(get_guard_context),
    sessions: SessionService = Depends(get_session_service),
):
    """Sign out one of your own sessions (step-up)."""
    actor = current.actor

    def apply(metadata):
        sessions.terminate(data.session_id, actor.user_id)
        guard.gate.audit.record(
            "terminate_session",
            user_id=actor.user_id,
            metadata={**metadata, "sessionId": data.session_id},
        )
        return MutationResult(status_code=200, body={"success": True, "sessionId": data.session_id})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.TERMINATE_SESSION, data.session_id, {"session_id": data.session_id}),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return result.body


@router.post("/terminate-others")
def terminate_other_sessions(
    current: CurrentSession = Depends(get_current_session),
    guard: GuardContext = Depends(get_guard_context),
    sessions: SessionService = Depends(get_session_service),
):
    """Sign out every session except this one (step-up)."""
    actor = current.actor

    def apply(metadata):
        count, terminated = sessions.terminate_others(actor.user_id, actor.session_id)
        guard.gate.audit.record(
            "terminate_other_sessions",
            user_id=actor.user_id,
            metadata={**metadata, "terminated": count, "sessionIds": terminated},
        )
        return MutationResult(status_code=200, body={"success": True, "terminated": count})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.TERMINATE_OTHER_SESSIONS, actor.session_id),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return result.body
