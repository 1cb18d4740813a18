"""Admin portal roles and their permission grants"""
from typing import Dict, FrozenSet, Iterable, List, Optional

ADMIN_PORTAL_ROLES: List[str] = ["admin", "editor", "contributor", "reviewer", "viewer"]

ADMIN_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "admin": ["*"],
    "editor": [
        "admin:read",
        "admin:write",
        "analytics:read",
        "announcements:read",
        "announcements:write",
    ],
    "contributor": [
        "admin:read",
        "analytics:read",
        "announcements:read",
        "announcements:write",
    ],
    "reviewer": [
        "admin:read",
        "analytics:read",
        "announcements:read",
        "announcements:approve",
        "audit:read",
    ],
    "viewer": [
        "admin:read",
        "analytics:read",
        "announcements:read",
    ],
}


def is_portal_role(role: Optional[str]) -> bool:
    return bool(role) and role in ADMIN_ROLE_PERMISSIONS


def permissions_for_role(role: Optional[str]) -> FrozenSet[str]:
    if not is_portal_role(role):
        return frozenset()
    return frozenset(ADMIN_ROLE_PERMISSIONS[role])


def _matches(permission: str, granted: str) -> bool:
    if granted == "*":
        return True
    if granted.endswith(":*"):
        return permission.startswith(granted[:-1])
    return permission == granted


def has_permission(granted: Iterable[str], permission: str) -> bool:
    """Check whether any granted entry (exact, ``*`` or ``prefix:*``) covers ``permission``"""
    return any(_matches(permission, entry) for entry in granted)
