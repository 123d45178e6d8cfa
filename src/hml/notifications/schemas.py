"""Notification request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: str
    link: str | None
    is_read: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int
    unread_count: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    success: bool
    updated: int


class BroadcastRequest(BaseModel):
    target_type: Literal["all", "specific"]
    target_user_id: int | None = None
    title: str = Field(..., min_length=1, max_length=256)
    message: str = Field(..., min_length=1)
    type: Literal["info", "success", "warning", "error"] = "info"
    link: str | None = None
    send_email: bool = False

    @model_validator(mode="after")
    def _target_user_required(self) -> BroadcastRequest:
        if self.target_type == "specific" and self.target_user_id is None:
            msg = "target_user_id is required for specific notifications"
            raise ValueError(msg)
        return self


class DispatchResponse(BaseModel):
    notifications_sent: int
    emails_sent: int
    emails_failed: int
    partial: bool
    failed: bool
    status: str


class BroadcastResponse(BaseModel):
    id: int
    title: str
    message: str
    type: str
    link: str | None
    target_type: str
    target_user_id: int | None
    send_email: bool
    recipients_count: int
    emails_sent: int
    emails_failed: int
    status: str
    created_by: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class BroadcastSendResponse(DispatchResponse):
    broadcast_id: int


class BroadcastListResponse(BaseModel):
    broadcasts: list[BroadcastResponse]
    pagination: dict[str, int]
