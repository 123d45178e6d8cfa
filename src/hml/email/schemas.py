"""Admin email campaign schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, model_validator


class CampaignRequest(BaseModel):
    from_email: EmailStr
    from_name: str | None = Field(None, max_length=128)
    target_type: Literal["all", "specific"]
    target_user_id: int | None = None
    subject: str = Field(..., min_length=1, max_length=512)
    body_html: str = Field(..., min_length=1)
    body_text: str | None = None

    @model_validator(mode="after")
    def _target_user_required(self) -> CampaignRequest:
        if self.target_type == "specific" and self.target_user_id is None:
            msg = "target_user_id is required for specific emails"
            raise ValueError(msg)
        return self


class CampaignSendResponse(BaseModel):
    sent_email_id: int
    recipients_count: int
    sent: int
    failed: int
    partial: bool
    status: str


class CampaignSummary(BaseModel):
    id: int
    from_email: str
    from_name: str | None
    subject: str
    target_type: str
    target_user_id: int | None
    recipients_count: int
    sent_count: int
    failed_count: int
    status: str
    sent_by: int | None
    created_at: datetime | None
    sent_at: datetime | None

    model_config = {"from_attributes": True}


class RecipientResponse(BaseModel):
    user_id: int | None
    user_email: str
    status: str
    sent_at: datetime | None

    model_config = {"from_attributes": True}


class CampaignDetail(CampaignSummary):
    body_html: str
    body_text: str | None
    recipients: list[RecipientResponse]


class CampaignListResponse(BaseModel):
    emails: list[CampaignSummary]
    pagination: dict[str, int]
