"""
Billing business logic.

Checkout, post-checkout verification, cancellation, subscription
reconciliation and the transaction ledger. Gateway calls go through
:class:`hml.billing.gateway.BillingGateway`.
"""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from hml.billing.gateway import PLANS, BillingGateway, Subscription
from hml.billing.premium import (
    PLAN_LIFETIME,
    PLAN_MONTHLY,
    as_aware,
    is_effectively_premium,
    utcnow,
)
from hml.config import get_settings
from hml.db.models import BillingTransaction, User
from hml.errors import ForbiddenError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

TRANSACTION_STATUSES = ("succeeded", "pending", "failed", "refunded")
_STRIPE_ID_PREFIXES = ("ch_", "cs_", "pi_", "in_", "sub_")


def gateway_for_external_id(external_id: str | None) -> str:
    """Which payment gateway issued an id."""
    if not external_id:
        return "unknown"
    if external_id.startswith(_STRIPE_ID_PREFIXES):
        return "stripe"
    if "paypal" in external_id.lower():
        return "paypal"
    return "unknown"


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day (Jan 31 + 1 month = Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


# ---------------------------------------------------------------------------
# Premium grants
# ---------------------------------------------------------------------------


def grant_premium(
    user: User,
    plan_type: str,
    *,
    expires_at: datetime | None,
    now: datetime | None = None,
    subscription_id: str | None = None,
    customer_id: str | None = None,
) -> None:
    user.is_premium = True
    user.premium_plan_type = plan_type
    user.premium_started_at = now or utcnow()
    user.premium_expires_at = expires_at
    if subscription_id is not None:
        user.stripe_subscription_id = subscription_id
    if customer_id is not None:
        user.stripe_customer_id = customer_id


def revoke_premium(user: User) -> None:
    user.is_premium = False
    user.premium_plan_type = None
    user.premium_expires_at = None
    user.stripe_subscription_id = None


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


async def get_transaction_by_external_id(db: AsyncSession, external_id: str) -> BillingTransaction | None:
    result = await db.execute(select(BillingTransaction).where(BillingTransaction.external_id == external_id))
    return result.scalar_one_or_none()


async def record_transaction(
    db: AsyncSession,
    *,
    email: str,
    external_id: str,
    amount: int,
    plan_type: str | None,
    event_type: str,
    user_id: int | None = None,
    currency: str = "usd",
    status: str = "succeeded",
) -> BillingTransaction:
    """Append a transaction; a second call with the same external id returns the existing row."""
    existing = await get_transaction_by_external_id(db, external_id)
    if existing is not None:
        logger.info("transaction_exists", external_id=external_id)
        return existing

    txn = BillingTransaction(
        email=email,
        user_id=user_id,
        plan_type=plan_type,
        amount=amount,
        currency=currency,
        status=status,
        event_type=event_type,
        external_id=external_id,
        gateway=gateway_for_external_id(external_id),
        created_at=utcnow(),
    )
    db.add(txn)
    await db.flush()
    logger.info("transaction_recorded", transaction_id=txn.id, external_id=external_id, status=status, amount=amount)
    return txn


async def list_user_transactions(db: AsyncSession, user: User) -> list[BillingTransaction]:
    result = await db.execute(
        select(BillingTransaction)
        .where((BillingTransaction.user_id == user.id) | (BillingTransaction.email == user.email))
        .order_by(BillingTransaction.created_at.desc(), BillingTransaction.id.desc())
    )
    return list(result.scalars().all())


async def latest_user_transaction(db: AsyncSession, user: User) -> BillingTransaction | None:
    transactions = await list_user_transactions(db, user)
    return transactions[0] if transactions else None


async def get_invoice(db: AsyncSession, user: User, transaction_id: int) -> dict[str, Any]:
    """Invoice view of one of the user's transactions."""
    result = await db.execute(select(BillingTransaction).where(BillingTransaction.id == transaction_id))
    txn = result.scalar_one_or_none()
    if txn is None or (txn.user_id != user.id and txn.email != user.email):
        msg = "Invoice not found"
        raise NotFoundError(msg)
    issued = as_aware(txn.created_at) or utcnow()
    plan = txn.plan_type or "premium"
    return {
        "invoice_number": f"HML-{issued:%Y%m%d}-{txn.id:06d}",
        "date": issued,
        "customer": {"name": user.name, "email": txn.email},
        "items": [
            {
                "description": PLANS.get(plan, {}).get("name", "HereMyLinks Premium"),
                "amount": txn.amount,
            }
        ],
        "amount": txn.amount,
        "currency": txn.currency,
        "plan_type": txn.plan_type,
        "status": txn.status,
        "payment_reference": txn.external_id,
    }


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


async def create_checkout(db: AsyncSession, user: User, plan: str, gateway: BillingGateway) -> dict[str, str | None]:
    """Start a hosted checkout for ``plan``; creates the gateway customer on first use."""
    if plan not in PLANS:
        msg = "Invalid plan type"
        raise ValidationError(msg)
    if plan == PLAN_MONTHLY and is_effectively_premium(user) and user.premium_plan_type == PLAN_LIFETIME:
        msg = "You already have lifetime premium"
        raise ValidationError(msg)

    if not user.stripe_customer_id:
        user.stripe_customer_id = await gateway.create_customer(user.email)
        await db.flush()

    settings = get_settings()
    session = await gateway.create_checkout_session(
        customer_id=user.stripe_customer_id,
        email=user.email,
        plan=plan,
        success_url=f"{settings.frontend_base_url}{settings.checkout_success_path}",
        cancel_url=f"{settings.frontend_base_url}{settings.checkout_cancel_path}",
    )
    logger.info("checkout_session_created", user_id=user.id, plan=plan, session_id=session.id)
    return {"url": session.url, "session_id": session.id}


async def _period_end_or_fallback(gateway: BillingGateway, subscription_id: str | None, now: datetime) -> datetime:
    if subscription_id:
        subscription = await gateway.retrieve_subscription(subscription_id)
        if subscription is not None and subscription.current_period_end is not None:
            return subscription.current_period_end
        logger.warning("subscription_period_end_missing", subscription_id=subscription_id)
    return add_months(now, 1)


async def verify_session(
    db: AsyncSession,
    user: User,
    session_id: str,
    gateway: BillingGateway,
    now: datetime | None = None,
) -> tuple[User, BillingTransaction]:
    """
    Confirm a completed checkout and grant premium.

    Raises:
        ForbiddenError: If the session belongs to a different email.
        ValidationError: If the session is not paid.
    """
    now = now or utcnow()
    session = await gateway.retrieve_checkout_session(session_id)

    if (session.email or "").lower() != user.email.lower():
        logger.warning("checkout_email_mismatch", user_id=user.id, session_id=session_id)
        msg = "Session email mismatch"
        raise ForbiddenError(msg)
    if session.payment_status != "paid":
        msg = f"Payment not completed ({session.payment_status})"
        raise ValidationError(msg)

    plan = PLAN_MONTHLY if session.mode == "subscription" else PLAN_LIFETIME
    expires_at = await _period_end_or_fallback(gateway, session.subscription_id, now) if plan == PLAN_MONTHLY else None
    grant_premium(
        user,
        plan,
        expires_at=expires_at,
        now=now,
        subscription_id=session.subscription_id,
        customer_id=session.customer_id,
    )
    txn = await record_transaction(
        db,
        email=user.email,
        user_id=user.id,
        external_id=session.id,
        amount=session.amount_total,
        currency=session.currency,
        plan_type=plan,
        event_type="checkout.session.verified",
    )
    await db.flush()
    logger.info("premium_granted", user_id=user.id, plan=plan, expires_at=expires_at, source="verify_session")
    return user, txn


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


async def cancel_subscription(db: AsyncSession, user: User, gateway: BillingGateway) -> dict[str, Any]:
    """Cancel at period end. Premium stays until the period end recorded here."""
    if not user.stripe_subscription_id:
        msg = "No active subscription found"
        raise ValidationError(msg)
    if user.premium_plan_type != PLAN_MONTHLY:
        msg = "Only monthly subscriptions can be cancelled"
        raise ValidationError(msg)

    subscription = await gateway.cancel_at_period_end(user.stripe_subscription_id)
    if subscription.current_period_end is not None:
        user.premium_expires_at = subscription.current_period_end
    await db.flush()
    logger.info("subscription_cancel_scheduled", user_id=user.id, expires_at=user.premium_expires_at)
    return {
        "success": True,
        "message": "Subscription will be cancelled at the end of the billing period",
        "expires_at": user.premium_expires_at,
    }


@dataclass
class SubscriptionState:
    status: str
    is_premium: bool
    cancel_at_period_end: bool = False
    current_period_end: datetime | None = None
    cancelled: bool = False
    access_until: datetime | None = None
    subscription_not_found: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def reconcile_subscription(
    db: AsyncSession,
    user: User,
    gateway: BillingGateway,
    now: datetime | None = None,
) -> SubscriptionState:
    """
    Compare the local premium record with the gateway's subscription.

    A cancellation (immediate or scheduled) never revokes access before
    ``premium_expires_at``; the premium flag is always the local derivation.
    """
    now = now or utcnow()
    premium = is_effectively_premium(user, now)

    if not user.stripe_subscription_id:
        return SubscriptionState(status="no_subscription", is_premium=premium)

    subscription: Subscription | None = await gateway.retrieve_subscription(user.stripe_subscription_id)
    if subscription is None:
        if not premium:
            user.stripe_subscription_id = None
            if user.premium_plan_type == PLAN_MONTHLY:
                user.premium_plan_type = None
            await db.flush()
            logger.info("stale_subscription_cleared", user_id=user.id)
        return SubscriptionState(status="canceled", is_premium=premium, subscription_not_found=True)

    cancelled = subscription.status == "canceled" or subscription.cancel_at_period_end
    return SubscriptionState(
        status=subscription.status,
        is_premium=premium,
        cancel_at_period_end=subscription.cancel_at_period_end,
        current_period_end=subscription.current_period_end,
        cancelled=cancelled and premium,
        access_until=as_aware(user.premium_expires_at) if cancelled and premium else None,
    )


async def find_user_for_billing(
    db: AsyncSession,
    *,
    email: str | None = None,
    customer_id: str | None = None,
    subscription_id: str | None = None,
) -> User | None:
    """Resolve the account a gateway object refers to."""
    if subscription_id:
        result = await db.execute(select(User).where(User.stripe_subscription_id == subscription_id))
        user = result.scalar_one_or_none()
        if user is not None:
            return user
    if customer_id:
        result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
        user = result.scalars().first()
        if user is not None:
            return user
    if email:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()
    return None


def renewal_expiry(subscription: Subscription | None, now: datetime) -> datetime:
    if subscription is not None and subscription.current_period_end is not None:
        return subscription.current_period_end
    return add_months(now, 1)
