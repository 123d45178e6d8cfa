"""Request/response schemas for bio links and social links."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

_COLOR = r"^#[0-9a-fA-F]{3,8}$"
LINK_LAYOUTS = ("simple", "featured", "thumbnail", "card")


class LinkCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    url: str = Field(..., min_length=1, max_length=2048)
    icon: str | None = Field(None, max_length=128)
    image: str | None = None
    layout: str = Field("simple", max_length=32)
    background_color: str | None = Field(None, pattern=_COLOR)
    text_color: str | None = Field(None, pattern=_COLOR)
    is_transparent: bool = False
    is_visible: bool = True
    order: int | None = Field(None, ge=0)


class LinkUpdateRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=256)
    url: str | None = Field(None, min_length=1, max_length=2048)
    icon: str | None = Field(None, max_length=128)
    image: str | None = None
    layout: str | None = Field(None, max_length=32)
    background_color: str | None = Field(None, pattern=_COLOR)
    text_color: str | None = Field(None, pattern=_COLOR)
    is_transparent: bool | None = None
    is_visible: bool | None = None
    order: int | None = Field(None, ge=0)


class LinkOrderItem(BaseModel):
    id: int
    order: int = Field(..., ge=0)


class LinkReorderRequest(BaseModel):
    links: list[LinkOrderItem] = Field(..., min_length=1)


class LinkResponse(BaseModel):
    id: int
    title: str
    url: str
    icon: str | None
    image: str | None
    layout: str
    background_color: str | None
    text_color: str | None
    is_transparent: bool
    is_visible: bool
    order: int
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class SocialCreateRequest(BaseModel):
    platform: str = Field(..., min_length=1, max_length=64)
    url: str = Field(..., min_length=1, max_length=2048)
    icon: str = Field(..., min_length=1, max_length=128)


class SocialUpdateRequest(BaseModel):
    platform: str | None = Field(None, min_length=1, max_length=64)
    url: str | None = Field(None, min_length=1, max_length=2048)
    icon: str | None = Field(None, min_length=1, max_length=128)


class SocialResponse(BaseModel):
    id: int
    platform: str
    url: str
    icon: str
    created_at: datetime | None

    model_config = {"from_attributes": True}
