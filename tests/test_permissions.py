"""Tests for role-based permission checks."""

import pytest

from coop_loans.exceptions import AuthorizationError
from coop_loans.models.base import Session
from coop_loans.models.enums import Role
from coop_loans.services.permissions import (
    Permission,
    can_access_admin,
    has_permission,
    require_permission,
)


def _session(role: Role) -> Session:
    return Session(user_id="u1", email="u1@example.org", role=role)


class TestRolePermissions:
    """Tests for the role to permission matrix."""

    def test_member_has_nothing(self) -> None:
        session = _session(Role.MEMBER)

        assert not any(has_permission(session, p) for p in Permission)

    def test_customer_care_view_only(self) -> None:
        session = _session(Role.CUSTOMER_CARE)

        assert has_permission(session, Permission.VIEW_LOANS)
        assert not has_permission(session, Permission.APPROVE_LOANS)
        assert not has_permission(session, Permission.PROCESS_PAYMENTS)

    def test_admin_cannot_manage_roles(self) -> None:
        session = _session(Role.ADMIN)

        assert has_permission(session, Permission.APPROVE_LOANS)
        assert has_permission(session, Permission.PROCESS_PAYMENTS)
        assert not has_permission(session, Permission.MANAGE_ROLES)

    def test_super_admin_has_everything(self) -> None:
        session = _session(Role.SUPER_ADMIN)

        assert all(has_permission(session, p) for p in Permission)

    def test_no_session(self) -> None:
        assert has_permission(None, Permission.VIEW_LOANS) is False


class TestRequirePermission:
    """Tests for require_permission."""

    def test_allowed(self) -> None:
        require_permission(_session(Role.ADMIN), Permission.REJECT_LOANS)

    def test_denied_names_role(self) -> None:
        with pytest.raises(AuthorizationError, match="customer_care"):
            require_permission(_session(Role.CUSTOMER_CARE), Permission.APPROVE_LOANS)

    def test_anonymous(self) -> None:
        with pytest.raises(AuthorizationError, match="anonymous"):
            require_permission(None, Permission.VIEW_LOANS)


@pytest.mark.parametrize(
    "role,expected",
    [
        (Role.MEMBER, False),
        (Role.CUSTOMER_CARE, True),
        (Role.ADMIN, True),
        (Role.SUPER_ADMIN, True),
    ],
)
def test_can_access_admin(role: Role, expected: bool) -> None:
    assert can_access_admin(_session(role)) is expected


def test_can_access_admin_without_session() -> None:
    assert can_access_admin(None) is False
