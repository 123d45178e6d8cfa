"""Unit tests for admin roles and permissions."""

from hml.admin.roles import (
    MASTER_ADMIN,
    PERMISSIONS,
    ROLE_PERMISSIONS,
    effective_permissions,
    has_permission,
    is_master_admin,
)
from hml.db.models import User


def _admin(role, permissions=None, is_admin=True) -> User:
    return User(email="a@example.com", username="adm", is_admin=is_admin, admin_role=role, admin_permissions=permissions)


class TestRoles:
    def test_master_holds_everything(self):
        admin = _admin(MASTER_ADMIN, permissions=["view_users"])
        assert effective_permissions(admin) == frozenset(PERMISSIONS)
        assert is_master_admin(admin)

    def test_role_defaults(self):
        admin = _admin("payment_manager")
        assert effective_permissions(admin) == ROLE_PERMISSIONS["payment_manager"]
        assert not is_master_admin(admin)

    def test_explicit_permissions_replace_defaults(self):
        admin = _admin("user_manager", permissions=["view_logs"])
        assert effective_permissions(admin) == frozenset({"view_logs"})
        assert not has_permission(admin, "manage_users")

    def test_unknown_explicit_permissions_ignored(self):
        admin = _admin("analytics_viewer", permissions=["launch_rockets"])
        assert effective_permissions(admin) == ROLE_PERMISSIONS["analytics_viewer"]

    def test_non_admin_holds_nothing(self):
        user = _admin(MASTER_ADMIN, is_admin=False)
        assert effective_permissions(user) == frozenset()
        assert not is_master_admin(user)

    def test_unknown_role_holds_nothing(self):
        assert effective_permissions(_admin("janitor")) == frozenset()
