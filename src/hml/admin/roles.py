"""Admin roles, permission ids and the default permission set of each role."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hml.db.models import User

MASTER_ADMIN = "master_admin"

PERMISSIONS: tuple[str, ...] = (
    "view_users",
    "manage_users",
    "ban_users",
    "view_transactions",
    "manage_payments",
    "send_notifications",
    "send_emails",
    "view_analytics",
    "manage_content",
    "view_logs",
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    MASTER_ADMIN: frozenset(PERMISSIONS),
    "user_manager": frozenset({"view_users", "manage_users", "ban_users", "view_analytics"}),
    "payment_manager": frozenset({"view_transactions", "manage_payments"}),
    "notification_manager": frozenset({"view_users", "send_notifications", "send_emails"}),
    "content_manager": frozenset({"manage_content"}),
    "analytics_viewer": frozenset({"view_analytics"}),
}

ROLES: tuple[str, ...] = tuple(ROLE_PERMISSIONS)


def is_master_admin(user: User) -> bool:
    return bool(user.is_admin) and user.admin_role == MASTER_ADMIN


def effective_permissions(user: User) -> frozenset[str]:
    """Permissions an admin actually holds.

    An explicit ``admin_permissions`` list replaces the role defaults; master
    admins always hold everything. Non-admins hold nothing.
    """
    if not user.is_admin:
        return frozenset()
    if user.admin_role == MASTER_ADMIN:
        return ROLE_PERMISSIONS[MASTER_ADMIN]
    explicit = [p for p in (user.admin_permissions or []) if p in PERMISSIONS]
    if explicit:
        return frozenset(explicit)
    return ROLE_PERMISSIONS.get(user.admin_role or "", frozenset())


def has_permission(user: User, permission: str) -> bool:
    return permission in effective_permissions(user)
