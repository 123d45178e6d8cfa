"""Request/response schemas for profile, username and public page endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

_COLOR = r"^#[0-9a-fA-F]{3,8}$"


class ProfileResponse(BaseModel):
    id: int
    username: str
    username_is_custom: bool
    email: str
    name: str | None
    bio: str | None
    profile_image: str | None
    theme_color: str | None
    background_color: str | None
    template: str
    background_image: str | None
    background_video: str | None
    card_background_color: str | None
    custom_text: str | None
    show_products: bool
    is_published: bool
    is_premium: bool

    model_config = {"from_attributes": True}


class ProfileUpdateRequest(BaseModel):
    """Partial update; omitted fields are left alone, explicit nulls clear them."""

    name: str | None = Field(None, max_length=128)
    bio: str | None = Field(None, max_length=500)
    profile_image: str | None = None
    theme_color: str | None = Field(None, pattern=_COLOR)
    background_color: str | None = Field(None, pattern=_COLOR)
    template: str | None = Field(None, max_length=64)
    background_image: str | None = None
    background_video: str | None = None
    card_background_color: str | None = Field(None, pattern=_COLOR)
    custom_text: str | None = Field(None, max_length=2000)
    show_products: bool | None = None
    is_published: bool | None = None
    username: str | None = None


class UsernameClaimRequest(BaseModel):
    username: str


class PublishRequest(BaseModel):
    username: str | None = None


class UsernameCheckResponse(BaseModel):
    available: bool
    username: str
    error: str | None = None


class PublicLink(BaseModel):
    id: int
    title: str
    url: str
    icon: str | None
    image: str | None
    layout: str
    background_color: str | None
    text_color: str | None
    is_transparent: bool
    order: int

    model_config = {"from_attributes": True}


class PublicSocial(BaseModel):
    id: int
    platform: str
    url: str
    icon: str

    model_config = {"from_attributes": True}


class PublicPageResponse(BaseModel):
    username: str
    name: str | None
    bio: str | None
    profile_image: str | None
    theme_color: str | None
    background_color: str | None
    template: str
    background_image: str | None
    background_video: str | None
    card_background_color: str | None
    custom_text: str | None
    show_products: bool
    is_premium: bool
    links: list[PublicLink]
    socials: list[PublicSocial]
    updated_at: datetime | None = None


class TemplateApplyRequest(BaseModel):
    source_username: str = Field(..., min_length=1, max_length=30)
