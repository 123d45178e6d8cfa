"""Effective premium state.

The stored ``is_premium`` flag is only half the answer: time-limited plans
(``monthly`` and ``promo``) lapse at ``premium_expires_at`` without anything
rewriting the flag. Every read goes through :func:`is_effectively_premium`.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Depends
from sqlalchemy import ColumnElement, and_, or_

from hml.auth.dependencies import get_current_user
from hml.db.models import User
from hml.errors import PremiumRequiredError

PLAN_MONTHLY = "monthly"
PLAN_LIFETIME = "lifetime"
PLAN_PROMO = "promo"

TIME_LIMITED_PLANS = frozenset({PLAN_MONTHLY, PLAN_PROMO})

# Every other template is premium-only
FREE_TEMPLATES = frozenset({"default"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_effectively_premium(user: User, now: datetime | None = None) -> bool:
    """
    Whether the user currently has premium access.

    False when the flag is off. For time-limited plans, true strictly before
    ``premium_expires_at`` (or when none is recorded) and false from that
    instant on. Lifetime and any other plan are premium while the flag is set.
    """
    if not user.is_premium:
        return False
    if user.premium_plan_type not in TIME_LIMITED_PLANS:
        return True
    expires_at = as_aware(user.premium_expires_at)
    if expires_at is None:
        return True
    return (now or utcnow()) < expires_at


def premium_summary(user: User, now: datetime | None = None) -> dict[str, object]:
    """Stored premium fields plus the derived flag."""
    return {
        "is_premium": is_effectively_premium(user, now),
        "stored_is_premium": user.is_premium,
        "plan_type": user.premium_plan_type,
        "started_at": user.premium_started_at,
        "expires_at": user.premium_expires_at,
        "has_subscription": user.stripe_subscription_id is not None,
    }


def requires_premium(template: str | None = None, background_video: str | None = None) -> bool:
    """Whether an appearance change needs premium."""
    return bool(background_video) or (template is not None and template not in FREE_TEMPLATES)


async def require_premium(user: User = Depends(get_current_user)) -> User:
    """Dependency for premium-only endpoints."""
    if not is_effectively_premium(user):
        raise PremiumRequiredError
    return user


def effective_premium_clause(now: datetime | None = None) -> ColumnElement[bool]:
    """SQL form of :func:`is_effectively_premium` for counts and filters."""
    now = now or utcnow()
    return and_(
        User.is_premium.is_(True),
        or_(
            User.premium_plan_type.is_(None),
            User.premium_plan_type.not_in(sorted(TIME_LIMITED_PLANS)),
            User.premium_expires_at.is_(None),
            User.premium_expires_at > now,
        ),
    )
