"""Admin user management endpoints (admin role only)"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import GuardContext, get_guard_context, require_permission, verify_csrf
from app.database import get_db
from app.models.admin_user import AdminUser
from app.services import actions
from app.services.approval_ledger import MutationResult
from app.services.policy_gate import ActorContext
from app.services.users import create_admin_user, deactivate_admin_user
from app.schemas.admin_user import AdminUserCreate, AdminUserDetail, AdminUserListResponse
from app.utils.errors import AdminGuardError, NotFoundError

router = APIRouter(
    prefix="/admin/users",
    tags=["users"],
    dependencies=[Depends(verify_csrf)],
)


class SelfDeactivationError(AdminGuardError):
    error = "self_deactivation_forbidden"
    status_code = 400
    default_message = "Admins cannot deactivate their own account"


def _serialize(user: AdminUser) -> dict:
    return AdminUserDetail.model_validate(user).model_dump(mode="json")


@router.post("", status_code=201)
def create_user(
    data: AdminUserCreate,
    actor: ActorContext = Depends(require_permission("users:manage")),
    guard: GuardContext = Depends(get_guard_context),
    db: Session = Depends(get_db),
):
    """
    Create an admin portal account (step-up).

    The password is only used to seed the account; the new admin should
    enroll two-factor right after the first login.
    """
    email = data.email.strip().lower()

    def apply(metadata):
        user = create_admin_user(db, email=email, name=data.name, role=data.role, password=data.password)
        guard.gate.audit.record(
            "create_user",
            user_id=actor.user_id,
            metadata={**metadata, "targetUserId": user.user_id, "role": user.role},
        )
        return MutationResult(status_code=201, body={"data": _serialize(user)})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.MANAGE_USERS, f"user:{email}", {"email": email, "role": data.role}),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return result.body


@router.get("", response_model=AdminUserListResponse)
def list_users(
    db: Session = Depends(get_db),
    _: ActorContext = Depends(require_permission("users:manage")),
):
    """List all admin accounts, newest first."""
    users = db.query(AdminUser).order_by(AdminUser.created_at.desc()).all()
    return AdminUserListResponse(items=users, total=len(users))


@router.delete("/{user_id}")
def deactivate_user(
    user_id: str,
    actor: ActorContext = Depends(require_permission("users:manage")),
    guard: GuardContext = Depends(get_guard_context),
    db: Session = Depends(get_db),
):
    """Deactivate (soft-delete) an admin account (step-up)."""
    user = db.query(AdminUser).filter(AdminUser.user_id == user_id).first()
    if not user:
        raise NotFoundError(f"Admin user {user_id} not found")
    if user.user_id == actor.user_id:
        raise SelfDeactivationError()

    def apply(metadata):
        deactivate_admin_user(db, user)
        guard.gate.audit.record(
            "deactivate_user",
            user_id=actor.user_id,
            metadata={**metadata, "targetUserId": user_id},
        )
        return MutationResult(status_code=200, body={"data": _serialize(user)})

    result = guard.gate.enforce(
        actor,
        guard.request(actions.MANAGE_USERS, f"user:{user_id}", {"deactivate": True}),
        guard.intent,
        guard.step_up_token,
        apply,
    )
    return result.body
