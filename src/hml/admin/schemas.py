"""Admin request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field


class AdminUserResponse(BaseModel):
    id: int
    email: str
    name: str | None
    username: str
    username_is_custom: bool
    bio: str | None
    profile_image: str | None
    is_published: bool
    is_admin: bool
    admin_role: str | None
    is_banned: bool
    ban_reason: str | None
    banned_at: datetime | None
    banned_by: int | None
    is_premium: bool
    stored_is_premium: bool
    premium_plan_type: str | None
    premium_started_at: datetime | None
    premium_expires_at: datetime | None
    stripe_subscription_id: str | None
    created_at: datetime | None
    last_login: datetime | None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class AdminUserListResponse(BaseModel):
    users: list[AdminUserResponse]
    pagination: Pagination


class AdminUserCreateRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    name: str | None = Field(None, max_length=128)
    username: str | None = None


class AdminUserUpdateRequest(BaseModel):
    name: str | None = Field(None, max_length=128)
    username: str | None = None
    bio: str | None = Field(None, max_length=500)
    is_premium: bool | None = None
    premium_plan_type: str | None = None
    premium_expires_at: datetime | None = None


class BanRequest(BaseModel):
    ban_reason: str | None = Field(None, max_length=1000)


class AdminAccountResponse(BaseModel):
    id: int
    email: str
    name: str | None
    username: str
    admin_role: str | None
    permissions: list[str]
    explicit_permissions: list[str] | None
    admin_created_at: datetime | None
    admin_created_by: int | None


class AdminCreateRequest(BaseModel):
    user_id: int
    admin_role: str
    permissions: list[str] | None = None


class AdminUpdateRequest(BaseModel):
    admin_role: str
    permissions: list[str] | None = None


class TransactionUser(BaseModel):
    id: int
    username: str
    name: str | None
    profile_image: str | None


class AdminTransactionResponse(BaseModel):
    id: int
    email: str
    user_id: int | None
    plan_type: str | None
    amount: int
    currency: str
    status: str
    event_type: str | None
    external_id: str
    gateway: str
    created_at: datetime | None
    user: TransactionUser | None = None


class AdminTransactionListResponse(BaseModel):
    transactions: list[AdminTransactionResponse]
    pagination: Pagination


class AdminLogResponse(BaseModel):
    id: int
    admin_id: int | None
    action: str
    target_type: str | None
    target_id: str | None
    details: dict[str, Any] | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class AdminLogListResponse(BaseModel):
    logs: list[AdminLogResponse]
    pagination: Pagination


class StatsResponse(BaseModel):
    total_users: int
    premium_users: int
    free_users: int
    published_users: int
    banned_users: int
    admins: int
    active_subscriptions: int
    total_revenue_cents: int
