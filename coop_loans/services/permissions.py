"""Role-based permission checks for loan administration.

These gate which actions a caller is offered; they are not a security
boundary.
"""

from enum import Enum

from coop_loans.exceptions import AuthorizationError
from coop_loans.models.base import Session
from coop_loans.models.enums import Role


class Permission(str, Enum):
    VIEW_LOANS = "view_loans"
    APPROVE_LOANS = "approve_loans"
    REJECT_LOANS = "reject_loans"
    EDIT_LOANS = "edit_loans"
    PROCESS_PAYMENTS = "process_payments"
    MANAGE_ROLES = "manage_roles"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.MEMBER: frozenset(),
    # Support staff can look loans up to answer questions
    Role.CUSTOMER_CARE: frozenset({Permission.VIEW_LOANS}),
    Role.ADMIN: frozenset(p for p in Permission if p != Permission.MANAGE_ROLES),
    Role.SUPER_ADMIN: frozenset(Permission),
}


def has_permission(session: Session | None, permission: Permission) -> bool:
    """Whether the session's role grants ``permission``."""
    if session is None:
        return False
    return permission in ROLE_PERMISSIONS.get(session.role, frozenset())


def require_permission(session: Session | None, permission: Permission) -> None:
    """Raise ``AuthorizationError`` unless the session has ``permission``."""
    if not has_permission(session, permission):
        role = session.role.value if session else "anonymous"
        raise AuthorizationError(f"Role '{role}' lacks permission '{permission.value}'")


def can_access_admin(session: Session | None) -> bool:
    """Whether the session may open the admin loan screens."""
    return session is not None and session.role in (
        Role.CUSTOMER_CARE,
        Role.ADMIN,
        Role.SUPER_ADMIN,
    )
