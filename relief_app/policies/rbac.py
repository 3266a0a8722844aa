#relief_app/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set

from relief_app.core.errors import AccessDeniedError
from relief_app.models.enums import UserRole


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: UserRole
    display_name: str
    email: Optional[str] = None


# --- Core action constants ---
ACTION_MANAGE_DRAFT = "MANAGE_DRAFT"
ACTION_SUBMIT_CASE = "SUBMIT_CASE"
ACTION_ASSIGN_CASE = "ASSIGN_CASE"
ACTION_ASSIGN_SELF = "ASSIGN_SELF"
ACTION_DECIDE_CASE = "DECIDE_CASE"
ACTION_RECORD_DONATION = "RECORD_DONATION"
ACTION_MANAGE_CHECKERS = "MANAGE_CHECKERS"
ACTION_VIEW_AUDIT = "VIEW_AUDIT"


def allowed_actions(role: UserRole) -> Set[str]:
    """
    Pure RBAC: which actions a role may attempt.
    Ownership / assignment checks happen in the lifecycle on top of this.
    """

    if role == UserRole.FAMILY:
        return {ACTION_MANAGE_DRAFT, ACTION_SUBMIT_CASE, ACTION_VIEW_AUDIT}

    if role == UserRole.DONOR:
        return {ACTION_RECORD_DONATION}

    if role == UserRole.CHECKER:
        return {ACTION_ASSIGN_SELF, ACTION_DECIDE_CASE, ACTION_VIEW_AUDIT}

    if role == UserRole.ADMIN:
        return {
            ACTION_ASSIGN_CASE,
            ACTION_ASSIGN_SELF,
            ACTION_DECIDE_CASE,
            ACTION_RECORD_DONATION,
            ACTION_MANAGE_CHECKERS,
            ACTION_VIEW_AUDIT,
        }

    return set()


def can(principal: Principal, action: str) -> bool:
    return action in allowed_actions(principal.role)


def require_action(principal: Principal, action: str) -> None:
    if not can(principal, action):
        raise AccessDeniedError(
            f"Role {principal.role.value} not permitted for action {action}."
        )
