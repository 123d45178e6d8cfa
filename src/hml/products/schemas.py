"""Request/response schemas for the bio page shop."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ProductType = Literal["physical", "digital"]


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    description: str | None = Field(None, max_length=5000)
    price_cents: int = Field(..., ge=0)
    image: str | None = None
    product_type: ProductType = "physical"
    quantity: int | None = Field(None, ge=0)


class ProductUpdateRequest(BaseModel):
    """Partial update; omitted fields are left alone."""

    name: str | None = Field(None, min_length=1, max_length=256)
    description: str | None = Field(None, max_length=5000)
    price_cents: int | None = Field(None, ge=0)
    image: str | None = None
    product_type: ProductType | None = None
    quantity: int | None = Field(None, ge=0)
    is_active: bool | None = None


class ProductResponse(BaseModel):
    id: int
    name: str
    description: str | None
    price_cents: int
    image: str | None
    product_type: str
    quantity: int | None
    position: int
    is_active: bool
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class PublicProduct(BaseModel):
    id: int
    name: str
    description: str | None
    price_cents: int
    image: str | None
    product_type: str
    quantity: int | None
    position: int

    model_config = {"from_attributes": True}


class PublicProductsResponse(BaseModel):
    username: str
    products: list[PublicProduct]
