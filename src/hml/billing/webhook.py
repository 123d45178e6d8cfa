"""
Stripe webhook verification and event handling.

The ``Stripe-Signature`` header is ``t=<unix>,v1=<hex>[,v1=<hex>...]``; the
signed payload is ``"{t}.{raw body}"`` under HMAC-SHA256 with the endpoint
secret.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import TYPE_CHECKING, Any

import structlog

from hml.billing.gateway import BillingGateway, session_from_payload, subscription_from_payload
from hml.billing.premium import PLAN_LIFETIME, PLAN_MONTHLY, is_effectively_premium, utcnow
from hml.billing.service import (
    find_user_for_billing,
    grant_premium,
    record_transaction,
    renewal_expiry,
    revoke_premium,
)
from hml.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class WebhookSignatureError(ValidationError):
    """The webhook payload is unsigned, stale or signed with another secret."""


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def verify_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> dict[str, Any]:
    """
    Verify the signature header and return the decoded event.

    Raises:
        WebhookSignatureError: On a missing/malformed header, a timestamp
            outside the tolerance, or no matching ``v1`` signature.
    """
    if not secret:
        msg = "Webhook secret is not configured"
        raise WebhookSignatureError(msg)
    if not header:
        msg = "Missing signature header"
        raise WebhookSignatureError(msg)

    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        msg = "Malformed signature header"
        raise WebhookSignatureError(msg)

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        msg = "Signature timestamp outside tolerance"
        raise WebhookSignatureError(msg)

    expected = compute_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        msg = "Invalid signature"
        raise WebhookSignatureError(msg)

    try:
        event: dict[str, Any] = json.loads(payload)
    except json.JSONDecodeError as e:
        msg = "Invalid payload"
        raise WebhookSignatureError(msg) from e
    return event


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------


async def _checkout_completed(db: AsyncSession, obj: dict[str, Any], gateway: BillingGateway) -> None:
    session = session_from_payload(obj)
    user = await find_user_for_billing(db, email=session.email, customer_id=session.customer_id)
    if user is None:
        logger.warning("webhook_user_not_found", event="checkout.session.completed", session_id=session.id)
        return
    now = utcnow()
    plan = PLAN_MONTHLY if session.mode == "subscription" else PLAN_LIFETIME
    expires_at = None
    if plan == PLAN_MONTHLY:
        subscription = await gateway.retrieve_subscription(session.subscription_id) if session.subscription_id else None
        expires_at = renewal_expiry(subscription, now)
    grant_premium(
        user,
        plan,
        expires_at=expires_at,
        now=now,
        subscription_id=session.subscription_id,
        customer_id=session.customer_id,
    )
    await record_transaction(
        db,
        email=user.email,
        user_id=user.id,
        external_id=session.id,
        amount=session.amount_total,
        currency=session.currency,
        plan_type=plan,
        event_type="checkout.session.completed",
    )
    logger.info("premium_granted", user_id=user.id, plan=plan, source="webhook")


def _invoice_subscription_id(obj: dict[str, Any]) -> str | None:
    sub = obj.get("subscription")
    if isinstance(sub, dict):
        return sub.get("id")
    if sub is None:
        # Newer API versions nest it under parent.subscription_details
        details = (obj.get("parent") or {}).get("subscription_details") or {}
        return details.get("subscription")
    return sub


async def _invoice_paid(db: AsyncSession, obj: dict[str, Any], gateway: BillingGateway) -> None:
    subscription_id = _invoice_subscription_id(obj)
    customer = obj.get("customer")
    user = await find_user_for_billing(
        db,
        email=obj.get("customer_email"),
        customer_id=customer if isinstance(customer, str) else None,
        subscription_id=subscription_id,
    )
    if user is None:
        logger.warning("webhook_user_not_found", event="invoice.payment_succeeded", invoice_id=obj.get("id"))
        return
    await record_transaction(
        db,
        email=user.email,
        user_id=user.id,
        external_id=obj["id"],
        amount=obj.get("amount_paid") or 0,
        currency=obj.get("currency") or "usd",
        plan_type=PLAN_MONTHLY,
        event_type="invoice.payment_succeeded",
    )
    if subscription_id and obj.get("billing_reason") == "subscription_cycle":
        now = utcnow()
        subscription = await gateway.retrieve_subscription(subscription_id)
        user.is_premium = True
        user.premium_plan_type = PLAN_MONTHLY
        user.premium_expires_at = renewal_expiry(subscription, now)
        user.stripe_subscription_id = subscription_id
        logger.info("subscription_renewed", user_id=user.id, expires_at=user.premium_expires_at)


async def _invoice_failed(db: AsyncSession, obj: dict[str, Any], _gateway: BillingGateway) -> None:
    customer = obj.get("customer")
    user = await find_user_for_billing(
        db,
        email=obj.get("customer_email"),
        customer_id=customer if isinstance(customer, str) else None,
        subscription_id=_invoice_subscription_id(obj),
    )
    email = user.email if user is not None else obj.get("customer_email")
    if not email:
        logger.warning("webhook_user_not_found", event="invoice.payment_failed", invoice_id=obj.get("id"))
        return
    await record_transaction(
        db,
        email=email,
        user_id=user.id if user is not None else None,
        external_id=obj["id"],
        amount=obj.get("amount_due") or 0,
        currency=obj.get("currency") or "usd",
        plan_type=PLAN_MONTHLY,
        event_type="invoice.payment_failed",
        status="failed",
    )


async def _subscription_changed(db: AsyncSession, obj: dict[str, Any], _gateway: BillingGateway) -> None:
    subscription = subscription_from_payload(obj)
    user = await find_user_for_billing(
        db, customer_id=subscription.customer_id, subscription_id=subscription.id
    )
    if user is None:
        logger.warning("webhook_user_not_found", event="customer.subscription", subscription_id=subscription.id)
        return
    if subscription.status in ("active", "trialing"):
        user.is_premium = True
        user.premium_plan_type = PLAN_MONTHLY
        user.premium_expires_at = subscription.current_period_end or user.premium_expires_at
        user.stripe_subscription_id = subscription.id
        logger.info("subscription_active", user_id=user.id, cancel_at_period_end=subscription.cancel_at_period_end)
    elif user.premium_plan_type == PLAN_MONTHLY:
        if is_effectively_premium(user) and user.premium_expires_at is not None:
            # Paid-for time runs out on its own; only the subscription link goes
            user.stripe_subscription_id = None
            logger.info("subscription_ended_access_kept", user_id=user.id, expires_at=user.premium_expires_at)
        else:
            revoke_premium(user)
            logger.info("premium_revoked", user_id=user.id, subscription_status=subscription.status)


_HANDLERS = {
    "checkout.session.completed": _checkout_completed,
    "invoice.payment_succeeded": _invoice_paid,
    "invoice.payment_failed": _invoice_failed,
    "customer.subscription.updated": _subscription_changed,
    "customer.subscription.deleted": _subscription_changed,
}


async def handle_event(db: AsyncSession, event: dict[str, Any], gateway: BillingGateway) -> bool:
    """Apply a verified event. Returns False for event types that are ignored."""
    event_type = event.get("type", "")
    handler = _HANDLERS.get(event_type)
    if handler is None:
        logger.debug("webhook_event_ignored", event_type=event_type)
        return False
    obj = (event.get("data") or {}).get("object") or {}
    await handler(db, obj, gateway)
    await db.flush()
    logger.info("webhook_event_handled", event_type=event_type, event_id=event.get("id"))
    return True
