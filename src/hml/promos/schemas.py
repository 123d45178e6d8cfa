"""Promo code request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RedeemRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class RedeemResponse(BaseModel):
    success: bool
    message: str
    premium_duration_days: int
    premium_expires_at: datetime


class PromoCreateRequest(BaseModel):
    code: str | None = Field(None, max_length=64, pattern=r"^[A-Za-z0-9_-]*$")
    premium_duration_days: int
    max_redemptions: int | None = None
    assigned_user_id: int | None = None
    expires_at: datetime | None = None


class PromoUpdateRequest(BaseModel):
    is_active: bool | None = None
    expires_at: datetime | None = None
    max_redemptions: int | None = None


class UserSummary(BaseModel):
    id: int
    name: str | None
    username: str
    email: str


class PromoResponse(BaseModel):
    id: int
    code: str
    premium_duration_days: int
    max_redemptions: int | None
    current_redemptions: int
    assigned_user_id: int | None
    is_active: bool
    expires_at: datetime | None
    created_by: int | None
    created_at: datetime | None
    status: str
    creator: UserSummary | None = None
    assigned_user: UserSummary | None = None
