"""
Admin operations on users, admin accounts and billing transactions.

Every mutating call writes an ``AdminLog`` row in the same transaction.
Self-protection rules (no self-ban, no self-delete, no dropping one's own
master role) and the master-admin-only rules are enforced here so every
caller gets them.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, or_, select

from hml.admin.audit import log_admin_action, paginate
from hml.admin.roles import MASTER_ADMIN, PERMISSIONS, ROLES, is_master_admin
from hml.auth.service import create_user
from hml.billing.premium import PLAN_MONTHLY, effective_premium_clause, is_effectively_premium, utcnow
from hml.billing.service import TRANSACTION_STATUSES, revoke_premium
from hml.db.models import BillingTransaction, User
from hml.errors import ForbiddenError, NotFoundError, ValidationError
from hml.users.username import ensure_username_available

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

DEFAULT_BAN_REASON = "Your account has been banned. Please contact support for more information."
PREMIUM_PLANS = ("monthly", "lifetime", "promo")


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    return user


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def list_users(
    db: AsyncSession,
    *,
    search: str | None = None,
    banned: bool | None = None,
    premium: bool | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], dict[str, int]]:
    """Users newest first. ``search`` matches name, username or email, case-insensitive."""
    query = select(User)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(User.name.ilike(pattern), User.username.ilike(pattern), User.email.ilike(pattern)))
    if banned is not None:
        query = query.where(User.is_banned.is_(banned))
    if premium is not None:
        clause = effective_premium_clause()
        query = query.where(clause if premium else ~clause)
    query = query.order_by(User.created_at.desc(), User.id.desc())
    return await paginate(db, query, page, limit)


async def admin_create_user(
    db: AsyncSession,
    admin: User,
    *,
    email: str,
    password: str,
    name: str | None = None,
    username: str | None = None,
) -> User:
    user = await create_user(db, email, password, name=name, username=username)
    await log_admin_action(db, admin, "create_user", "user", user.id, {"email": user.email})
    return user


async def admin_update_user(db: AsyncSession, admin: User, user_id: int, changes: dict[str, Any]) -> User:
    """
    Edit profile and premium fields.

    ``username`` is set directly (validated, unique) and marks the handle
    custom. Turning premium on defaults the plan to monthly; turning it off
    clears plan, expiry and subscription.
    """
    user = await get_user_or_404(db, user_id)
    now = utcnow()

    if changes.get("username") and changes["username"].lower() != user.username:
        user.username = await ensure_username_available(db, changes["username"], exclude_user_id=user.id)
        user.username_is_custom = True
    for field in ("name", "bio"):
        if field in changes:
            setattr(user, field, changes[field])

    plan = changes.get("premium_plan_type")
    if plan is not None and plan not in PREMIUM_PLANS:
        msg = f"Plan type must be one of: {', '.join(PREMIUM_PLANS)}"
        raise ValidationError(msg)

    if changes.get("is_premium") is True:
        was_premium = is_effectively_premium(user, now)
        user.is_premium = True
        user.premium_plan_type = plan or user.premium_plan_type or PLAN_MONTHLY
        if not was_premium:
            user.premium_started_at = now
        if "premium_expires_at" in changes:
            user.premium_expires_at = changes["premium_expires_at"]
    elif changes.get("is_premium") is False:
        revoke_premium(user)
    else:
        if plan is not None:
            user.premium_plan_type = plan
        if "premium_expires_at" in changes:
            user.premium_expires_at = changes["premium_expires_at"]

    user.updated_at = now
    await db.flush()
    details = {k: v.isoformat() if isinstance(v, datetime) else v for k, v in changes.items()}
    await log_admin_action(db, admin, "update_user", "user", user.id, details)
    return user


async def admin_delete_user(db: AsyncSession, admin: User, user_id: int) -> None:
    """Delete an account with its links, socials, products and inbox."""
    user = await get_user_or_404(db, user_id)
    if user.id == admin.id:
        msg = "Cannot delete your own account"
        raise ValidationError(msg)
    if user.is_admin and not is_master_admin(admin):
        msg = "Only master admin can delete other admins"
        raise ForbiddenError(msg)
    email = user.email
    await db.delete(user)
    await db.flush()
    await log_admin_action(db, admin, "delete_user", "user", user_id, {"email": email})


async def ban_user(db: AsyncSession, admin: User, user_id: int, reason: str | None = None) -> User:
    """
    Ban an account. Takes effect on the user's next request.

    Raises:
        ValidationError: Banning yourself.
        ForbiddenError: A non-master admin banning another admin.
    """
    user = await get_user_or_404(db, user_id)
    if user.id == admin.id:
        msg = "Cannot ban your own account"
        raise ValidationError(msg)
    if user.is_admin and not is_master_admin(admin):
        msg = "Only master admin can ban other admins"
        raise ForbiddenError(msg)

    user.is_banned = True
    user.ban_reason = (reason or "").strip() or DEFAULT_BAN_REASON
    user.banned_at = utcnow()
    user.banned_by = admin.id
    await db.flush()
    await log_admin_action(db, admin, "ban_user", "user", user.id, {"email": user.email, "reason": user.ban_reason})
    return user


async def unban_user(db: AsyncSession, admin: User, user_id: int) -> User:
    user = await get_user_or_404(db, user_id)
    user.is_banned = False
    user.ban_reason = None
    user.banned_at = None
    user.banned_by = None
    await db.flush()
    await log_admin_action(db, admin, "unban_user", "user", user.id, {"email": user.email})
    return user


# ---------------------------------------------------------------------------
# Admin accounts
# ---------------------------------------------------------------------------


def _check_role(role: str, permissions: list[str] | None) -> list[str] | None:
    if role not in ROLES:
        msg = f"Admin role must be one of: {', '.join(ROLES)}"
        raise ValidationError(msg)
    if permissions is None:
        return None
    unknown = sorted(set(permissions) - set(PERMISSIONS))
    if unknown:
        msg = f"Unknown permissions: {', '.join(unknown)}"
        raise ValidationError(msg)
    return sorted(set(permissions))


async def list_admins(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).where(User.is_admin.is_(True)).order_by(User.admin_created_at, User.id))
    return list(result.scalars().all())


async def grant_admin(
    db: AsyncSession,
    master: User,
    user_id: int,
    role: str,
    permissions: list[str] | None = None,
) -> User:
    permissions = _check_role(role, permissions)
    user = await get_user_or_404(db, user_id)
    if user.is_admin:
        msg = "User is already an admin"
        raise ValidationError(msg)
    user.is_admin = True
    user.admin_role = role
    user.admin_permissions = permissions
    user.admin_created_at = utcnow()
    user.admin_created_by = master.id
    await db.flush()
    await log_admin_action(
        db, master, "create_admin", "user", user.id, {"email": user.email, "role": role, "permissions": permissions}
    )
    return user


async def update_admin(
    db: AsyncSession,
    master: User,
    user_id: int,
    role: str,
    permissions: list[str] | None = None,
) -> User:
    permissions = _check_role(role, permissions)
    if user_id == master.id and role != MASTER_ADMIN:
        msg = "You cannot remove your own master admin status"
        raise ValidationError(msg)
    user = await get_user_or_404(db, user_id)
    if not user.is_admin:
        msg = "User is not an admin"
        raise ValidationError(msg)
    previous = user.admin_role
    user.admin_role = role
    user.admin_permissions = permissions
    await db.flush()
    await log_admin_action(
        db,
        master,
        "update_admin",
        "user",
        user.id,
        {"email": user.email, "previous_role": previous, "role": role, "permissions": permissions},
    )
    return user


async def revoke_admin(db: AsyncSession, master: User, user_id: int) -> User:
    if user_id == master.id:
        msg = "You cannot remove your own admin access"
        raise ValidationError(msg)
    user = await get_user_or_404(db, user_id)
    if not user.is_admin:
        msg = "User is not an admin"
        raise ValidationError(msg)
    previous = user.admin_role
    user.is_admin = False
    user.admin_role = None
    user.admin_permissions = None
    user.admin_created_at = None
    user.admin_created_by = None
    await db.flush()
    await log_admin_action(db, master, "remove_admin", "user", user.id, {"email": user.email, "role": previous})
    return user


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


async def list_transactions(
    db: AsyncSession,
    *,
    search: str | None = None,
    status: str | None = None,
    gateway: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[BillingTransaction], dict[str, int]]:
    """
    Filtered, paginated ledger, newest first.

    ``date_to`` includes that whole day. ``status``/``gateway`` of ``all``
    mean no filter.
    """
    query = select(BillingTransaction)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(BillingTransaction.email.ilike(pattern), BillingTransaction.external_id.ilike(pattern)))
    if status and status != "all":
        if status not in TRANSACTION_STATUSES:
            msg = f"Status must be one of: {', '.join(TRANSACTION_STATUSES)}"
            raise ValidationError(msg)
        query = query.where(BillingTransaction.status == status)
    if gateway and gateway != "all":
        query = query.where(BillingTransaction.gateway == gateway)
    if date_from is not None:
        query = query.where(BillingTransaction.created_at >= _day_start(date_from))
    if date_to is not None:
        query = query.where(BillingTransaction.created_at < _day_start(date_to + timedelta(days=1)))
    query = query.order_by(BillingTransaction.created_at.desc(), BillingTransaction.id.desc())
    return await paginate(db, query, page, limit)


async def users_by_email(db: AsyncSession, emails: set[str]) -> dict[str, User]:
    if not emails:
        return {}
    result = await db.execute(select(User).where(User.email.in_(emails)))
    return {user.email: user for user in result.scalars().all()}


async def get_transaction(db: AsyncSession, transaction_id: int) -> BillingTransaction:
    result = await db.execute(select(BillingTransaction).where(BillingTransaction.id == transaction_id))
    txn = result.scalar_one_or_none()
    if txn is None:
        msg = "Transaction not found"
        raise NotFoundError(msg)
    return txn


async def delete_transaction(db: AsyncSession, admin: User, transaction_id: int) -> None:
    """Administrative removal; the only way a ledger row goes away."""
    txn = await get_transaction(db, transaction_id)
    details = {"email": txn.email, "external_id": txn.external_id, "amount": txn.amount, "status": txn.status}
    await db.delete(txn)
    await db.flush()
    await log_admin_action(db, admin, "delete_transaction", "transaction", transaction_id, details)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


async def _count(db: AsyncSession, *where: Any) -> int:  # noqa: ANN401
    result = await db.execute(select(func.count()).select_from(User).where(*where))
    return result.scalar_one()


async def get_stats(db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
    now = now or utcnow()
    premium = effective_premium_clause(now)
    total_users = await _count(db)
    premium_users = await _count(db, premium)
    revenue = await db.execute(
        select(func.coalesce(func.sum(BillingTransaction.amount), 0)).where(BillingTransaction.status == "succeeded")
    )
    return {
        "total_users": total_users,
        "premium_users": premium_users,
        "free_users": total_users - premium_users,
        "published_users": await _count(db, User.is_published.is_(True)),
        "banned_users": await _count(db, User.is_banned.is_(True)),
        "admins": await _count(db, User.is_admin.is_(True)),
        "active_subscriptions": await _count(
            db, premium, User.premium_plan_type == PLAN_MONTHLY, User.stripe_subscription_id.is_not(None)
        ),
        "total_revenue_cents": int(revenue.scalar_one()),
    }
