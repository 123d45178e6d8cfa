"""Request/response schemas for billing endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    plan: Literal["monthly", "lifetime"]


class CheckoutResponse(BaseModel):
    url: str | None
    session_id: str


class VerifySessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class TransactionResponse(BaseModel):
    id: int
    email: str
    plan_type: str | None
    amount: int
    currency: str
    status: str
    event_type: str | None
    external_id: str
    gateway: str
    created_at: datetime | None

    model_config = {"from_attributes": True}


class PremiumStatusResponse(BaseModel):
    is_premium: bool
    stored_is_premium: bool
    plan_type: str | None
    started_at: datetime | None
    expires_at: datetime | None
    has_subscription: bool


class VerifySessionResponse(BaseModel):
    success: bool = True
    premium: PremiumStatusResponse
    transaction: TransactionResponse


class PaymentStatusResponse(BaseModel):
    premium: PremiumStatusResponse
    latest_transaction: TransactionResponse | None


class SubscriptionStatusResponse(BaseModel):
    status: str
    is_premium: bool
    cancel_at_period_end: bool
    current_period_end: datetime | None
    cancelled: bool
    access_until: datetime | None
    subscription_not_found: bool


class CancelSubscriptionResponse(BaseModel):
    success: bool
    message: str
    expires_at: datetime | None
