"""Billing router — /api/billing/* endpoints."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hml.auth.dependencies import get_current_user
from hml.billing.gateway import BillingGateway, provide_billing_gateway
from hml.billing.premium import premium_summary
from hml.billing.schemas import (
    CancelSubscriptionResponse,
    CheckoutRequest,
    CheckoutResponse,
    PaymentStatusResponse,
    PremiumStatusResponse,
    SubscriptionStatusResponse,
    TransactionResponse,
    VerifySessionRequest,
    VerifySessionResponse,
)
from hml.billing.service import (
    cancel_subscription,
    create_checkout,
    get_invoice,
    latest_user_transaction,
    list_user_transactions,
    reconcile_subscription,
    verify_session,
)
from hml.billing.webhook import handle_event, verify_signature
from hml.config import get_settings
from hml.database import get_session
from hml.db.models import User

logger = structlog.get_logger()

router = APIRouter(prefix="/api/billing", tags=["Billing"])


@router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: BillingGateway = Depends(provide_billing_gateway),
) -> CheckoutResponse:
    result = await create_checkout(db, user, body.plan, gateway)
    await db.commit()
    return CheckoutResponse(url=result["url"], session_id=result["session_id"] or "")


@router.post("/verify-session", response_model=VerifySessionResponse)
async def verify_checkout_session(
    body: VerifySessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: BillingGateway = Depends(provide_billing_gateway),
) -> VerifySessionResponse:
    """Confirm a paid checkout after the redirect back from the gateway."""
    user, txn = await verify_session(db, user, body.session_id, gateway)
    await db.commit()
    return VerifySessionResponse(
        premium=PremiumStatusResponse(**premium_summary(user)),
        transaction=TransactionResponse.model_validate(txn),
    )


@router.post("/cancel-subscription", response_model=CancelSubscriptionResponse)
async def cancel(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: BillingGateway = Depends(provide_billing_gateway),
) -> CancelSubscriptionResponse:
    result = await cancel_subscription(db, user, gateway)
    await db.commit()
    return CancelSubscriptionResponse(**result)


@router.get("/subscription-status", response_model=SubscriptionStatusResponse)
async def subscription_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: BillingGateway = Depends(provide_billing_gateway),
) -> SubscriptionStatusResponse:
    state = await reconcile_subscription(db, user, gateway)
    await db.commit()
    return SubscriptionStatusResponse(**state.to_dict())


@router.get("/check-payment-status", response_model=PaymentStatusResponse)
async def check_payment_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> PaymentStatusResponse:
    txn = await latest_user_transaction(db, user)
    return PaymentStatusResponse(
        premium=PremiumStatusResponse(**premium_summary(user)),
        latest_transaction=TransactionResponse.model_validate(txn) if txn else None,
    )


@router.get("/transactions", response_model=list[TransactionResponse])
async def transactions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[TransactionResponse]:
    rows = await list_user_transactions(db, user)
    return [TransactionResponse.model_validate(row) for row in rows]


@router.get("/invoice/{transaction_id}")
async def invoice(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    return await get_invoice(db, user, transaction_id)


@router.post("/webhook")
async def webhook(
    request: Request,
    db: AsyncSession = Depends(get_session),
    gateway: BillingGateway = Depends(provide_billing_gateway),
) -> dict[str, bool]:
    """Gateway event receiver. Authenticated by signature, not by bearer token."""
    settings = get_settings()
    payload = await request.body()
    event = verify_signature(
        payload,
        request.headers.get("Stripe-Signature"),
        settings.stripe_webhook_secret,
        tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )
    handled = await handle_event(db, event, gateway)
    await db.commit()
    return {"received": True, "handled": handled}
