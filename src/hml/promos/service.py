"""
Promo code rules, redemption and admin management.

Status is derived on every read from ``is_active``, ``expires_at`` and the
redemption counter; nothing stores it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from hml.admin.audit import log_admin_action
from hml.billing.premium import PLAN_PROMO, as_aware, is_effectively_premium, utcnow
from hml.billing.service import grant_premium
from hml.db.models import PromoCode, PromoRedemption, User
from hml.errors import ConflictError, ForbiddenError, NotFoundError, PromoInvalidError, ValidationError
from hml.promos.codes import generate_unique_promo_code, normalize_promo_code, promo_code_exists

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

STATUS_ACTIVE = "Active"
STATUS_EXPIRED = "Expired"
STATUS_EXHAUSTED = "Exhausted"
STATUS_INACTIVE = "Inactive"


def _is_expired(promo: PromoCode, now: datetime) -> bool:
    expires_at = as_aware(promo.expires_at)
    return expires_at is not None and expires_at <= now


def _is_exhausted(promo: PromoCode) -> bool:
    return promo.max_redemptions is not None and promo.current_redemptions >= promo.max_redemptions


def promo_status(promo: PromoCode, now: datetime | None = None) -> str:
    now = now or utcnow()
    if not promo.is_active:
        return STATUS_INACTIVE
    if _is_expired(promo, now):
        return STATUS_EXPIRED
    if _is_exhausted(promo):
        return STATUS_EXHAUSTED
    return STATUS_ACTIVE


def is_promo_usable(promo: PromoCode, user_id: int, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return (
        promo.is_active
        and not _is_expired(promo, now)
        and not _is_exhausted(promo)
        and (promo.assigned_user_id is None or promo.assigned_user_id == user_id)
    )


def check_promo_usable(promo: PromoCode, user_id: int, now: datetime | None = None) -> None:
    """
    Raise with a human message when ``promo`` cannot be used by ``user_id``.

    Raises:
        PromoInvalidError: Inactive, expired or exhausted code.
        ForbiddenError: Code assigned to another account.
    """
    now = now or utcnow()
    if not promo.is_active:
        msg = "Invalid or inactive promo code"
        raise PromoInvalidError(msg)
    if _is_expired(promo, now):
        msg = "This promo code has expired"
        raise PromoInvalidError(msg)
    if promo.assigned_user_id is not None and promo.assigned_user_id != user_id:
        msg = "This promo code is not available for your account"
        raise ForbiddenError(msg)
    if _is_exhausted(promo):
        msg = "This promo code has reached its redemption limit"
        raise PromoInvalidError(msg)


async def get_promo_by_code(db: AsyncSession, code: str) -> PromoCode | None:
    result = await db.execute(select(PromoCode).where(PromoCode.code == normalize_promo_code(code)))
    return result.scalar_one_or_none()


async def get_promo(db: AsyncSession, promo_id: int) -> PromoCode:
    result = await db.execute(select(PromoCode).where(PromoCode.id == promo_id))
    promo = result.scalar_one_or_none()
    if promo is None:
        msg = "Promo code not found"
        raise NotFoundError(msg)
    return promo


async def _has_redeemed(db: AsyncSession, promo_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(PromoRedemption.id).where(PromoRedemption.promo_code_id == promo_id, PromoRedemption.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Redemption
# ---------------------------------------------------------------------------


async def redeem_promo(db: AsyncSession, user: User, code: str, now: datetime | None = None) -> dict[str, Any]:
    """
    Redeem ``code`` for ``user`` and grant promo premium.

    The counter moves through a conditional UPDATE, so concurrent
    redemptions can never push it past ``max_redemptions``.
    """
    now = now or utcnow()
    if is_effectively_premium(user, now):
        msg = "You already have an active premium subscription. You cannot redeem promo codes while premium."
        raise ValidationError(msg)

    promo = await get_promo_by_code(db, code)
    if promo is None:
        msg = "Invalid or inactive promo code"
        raise NotFoundError(msg)
    check_promo_usable(promo, user.id, now)
    if await _has_redeemed(db, promo.id, user.id):
        msg = "You have already redeemed this promo code"
        raise PromoInvalidError(msg)

    has_slot = PromoCode.max_redemptions.is_(None) | (PromoCode.current_redemptions < PromoCode.max_redemptions)
    result = await db.execute(
        update(PromoCode)
        .where(PromoCode.id == promo.id, PromoCode.is_active.is_(True), has_slot)
        .values(current_redemptions=PromoCode.current_redemptions + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        msg = "This promo code has reached its redemption limit"
        raise PromoInvalidError(msg)

    db.add(
        PromoRedemption(
            promo_code_id=promo.id,
            user_id=user.id,
            premium_duration_days=promo.premium_duration_days,
            created_at=now,
        )
    )
    try:
        await db.flush()
    except IntegrityError as e:
        # Lost a race with a parallel request from the same user
        await db.rollback()
        msg = "You have already redeemed this promo code"
        raise PromoInvalidError(msg) from e

    days = promo.premium_duration_days
    expires_at = now + timedelta(days=days)
    grant_premium(user, PLAN_PROMO, expires_at=expires_at, now=now)
    await db.flush()
    logger.info("promo_redeemed", user_id=user.id, code=promo.code, days=days)
    return {
        "success": True,
        "message": f"Promo code redeemed! You now have premium for {days} days.",
        "premium_duration_days": days,
        "premium_expires_at": expires_at,
    }


# ---------------------------------------------------------------------------
# Admin management
# ---------------------------------------------------------------------------


def _user_summary(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "username": user.username, "email": user.email}


async def list_promos(db: AsyncSession, now: datetime | None = None) -> list[dict[str, Any]]:
    """All codes, newest first, with derived status and creator/assignee summaries."""
    now = now or utcnow()
    result = await db.execute(select(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()))
    promos = list(result.scalars().all())

    user_ids = {p.created_by for p in promos if p.created_by} | {
        p.assigned_user_id for p in promos if p.assigned_user_id
    }
    users: dict[int, User] = {}
    if user_ids:
        user_result = await db.execute(select(User).where(User.id.in_(user_ids)))
        users = {u.id: u for u in user_result.scalars().all()}

    return [
        {
            "promo": promo,
            "status": promo_status(promo, now),
            "creator": _user_summary(users.get(promo.created_by)) if promo.created_by else None,
            "assigned_user": _user_summary(users.get(promo.assigned_user_id)) if promo.assigned_user_id else None,
        }
        for promo in promos
    ]


async def create_promo(
    db: AsyncSession,
    admin: User,
    *,
    premium_duration_days: int,
    code: str | None = None,
    max_redemptions: int | None = None,
    assigned_user_id: int | None = None,
    expires_at: datetime | None = None,
) -> PromoCode:
    """
    Create a code. Without ``code`` a random 8-character one is generated.

    Raises:
        ValidationError: Duration below 1 day or a max redemptions below 1.
        ConflictError: The code already exists.
        NotFoundError: The assigned user does not exist.
    """
    if premium_duration_days < 1:
        msg = "Premium duration must be at least 1 day"
        raise ValidationError(msg)
    if max_redemptions is not None and max_redemptions < 1:
        msg = "Max redemptions must be at least 1 or null for infinite"
        raise ValidationError(msg)

    if code:
        code = normalize_promo_code(code)
        if await promo_code_exists(db, code):
            msg = "Promo code already exists"
            raise ConflictError(msg)
    else:
        code = await generate_unique_promo_code(db)

    if assigned_user_id is not None:
        result = await db.execute(select(User.id).where(User.id == assigned_user_id))
        if result.scalar_one_or_none() is None:
            msg = "Assigned user not found"
            raise NotFoundError(msg)

    now = utcnow()
    promo = PromoCode(
        code=code,
        premium_duration_days=premium_duration_days,
        max_redemptions=max_redemptions,
        current_redemptions=0,
        assigned_user_id=assigned_user_id,
        is_active=True,
        expires_at=expires_at,
        created_by=admin.id,
        created_at=now,
        updated_at=now,
    )
    db.add(promo)
    await db.flush()
    await log_admin_action(
        db,
        admin,
        "create_promo_code",
        "promo_code",
        promo.id,
        {
            "code": code,
            "premium_duration_days": premium_duration_days,
            "max_redemptions": max_redemptions,
            "assigned_user_id": assigned_user_id,
        },
    )
    return promo


async def update_promo(db: AsyncSession, admin: User, promo_id: int, changes: dict[str, Any]) -> PromoCode:
    """Toggle ``is_active`` or move ``expires_at``/``max_redemptions``. The counter is never touched."""
    promo = await get_promo(db, promo_id)
    if "max_redemptions" in changes:
        limit = changes["max_redemptions"]
        if limit is not None and limit < max(promo.current_redemptions, 1):
            msg = "Max redemptions cannot be below the number of redemptions so far"
            raise ValidationError(msg)
        promo.max_redemptions = limit
    if changes.get("is_active") is not None:
        promo.is_active = changes["is_active"]
    if "expires_at" in changes:
        promo.expires_at = changes["expires_at"]
    promo.updated_at = utcnow()
    await db.flush()
    details = {k: v.isoformat() if isinstance(v, datetime) else v for k, v in changes.items()}
    await log_admin_action(db, admin, "update_promo_code", "promo_code", promo.id, {"code": promo.code, **details})
    return promo


async def delete_promo(db: AsyncSession, admin: User, promo_id: int) -> None:
    """Delete a code; its redemption rows go with it."""
    promo = await get_promo(db, promo_id)
    code, redemptions = promo.code, promo.current_redemptions
    await db.delete(promo)
    await db.flush()
    await log_admin_action(
        db, admin, "delete_promo_code", "promo_code", promo_id, {"code": code, "redemptions": redemptions}
    )
