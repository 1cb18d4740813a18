"""Catalogue of guarded admin actions"""
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ActionSpec:
    """How a mutation is guarded.

    ``action_class`` groups actions that contend for the same pending slot on
    a target (two different publish-class requests on one announcement cannot
    both be pending). Only actions with an action class can require dual
    approval.
    """

    name: str
    action_class: Optional[str] = None
    step_up: bool = False
    dual_approval: bool = False

    @property
    def sensitive(self) -> bool:
        return self.step_up or self.dual_approval


PUBLISH = "publish"
REJECT = "reject"
DELETE = "delete"

# Dual approval
CREATE_PUBLISH = ActionSpec("create_publish", PUBLISH, step_up=True, dual_approval=True)
UPDATE_PUBLISH = ActionSpec("update_publish", PUBLISH, step_up=True, dual_approval=True)
APPROVE_ANNOUNCEMENT = ActionSpec("approve_announcement", PUBLISH, step_up=True, dual_approval=True)
ROLLBACK_PUBLISH = ActionSpec("rollback_publish", PUBLISH, step_up=True, dual_approval=True)
REJECT_ANNOUNCEMENT = ActionSpec("reject_announcement", REJECT, step_up=True, dual_approval=True)
DELETE_ANNOUNCEMENT = ActionSpec("delete_announcement", DELETE, step_up=True, dual_approval=True)
BULK_PUBLISH = ActionSpec("bulk_publish", PUBLISH, step_up=True, dual_approval=True)
BULK_REJECT = ActionSpec("bulk_reject", REJECT, step_up=True, dual_approval=True)

# Step-up only
ROLLBACK_ANNOUNCEMENT = ActionSpec("rollback_announcement", step_up=True)
TERMINATE_SESSION = ActionSpec("terminate_session", step_up=True)
TERMINATE_OTHER_SESSIONS = ActionSpec("terminate_other_sessions", step_up=True)
DECIDE_APPROVAL = ActionSpec("decide_approval", step_up=True)
UPDATE_SECURITY_POLICY = ActionSpec("update_security_policy", step_up=True)
ENROLL_TWO_FACTOR = ActionSpec("enroll_two_factor", step_up=True)
MANAGE_USERS = ActionSpec("manage_users", step_up=True)

# Not sensitive: permission check only
CREATE_DRAFT = ActionSpec("create_draft")
UPDATE_DRAFT = ActionSpec("update_draft")

ACTIONS: Dict[str, ActionSpec] = {
    spec.name: spec
    for spec in (
        CREATE_PUBLISH,
        UPDATE_PUBLISH,
        APPROVE_ANNOUNCEMENT,
        ROLLBACK_PUBLISH,
        REJECT_ANNOUNCEMENT,
        DELETE_ANNOUNCEMENT,
        BULK_PUBLISH,
        BULK_REJECT,
        ROLLBACK_ANNOUNCEMENT,
        TERMINATE_SESSION,
        TERMINATE_OTHER_SESSIONS,
        DECIDE_APPROVAL,
        UPDATE_SECURITY_POLICY,
        ENROLL_TWO_FACTOR,
        MANAGE_USERS,
        CREATE_DRAFT,
        UPDATE_DRAFT,
    )
}


def get_action(name: str) -> ActionSpec:
    return ACTIONS[name]
