"""Shop routers — /api/products/* for the owner and the public product listing."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hml.auth.dependencies import get_current_user
from hml.billing.premium import require_premium
from hml.database import get_session
from hml.db.models import User
from hml.products.schemas import (
    ProductCreateRequest,
    ProductResponse,
    ProductUpdateRequest,
    PublicProduct,
    PublicProductsResponse,
)
from hml.products.service import (
    create_product,
    delete_product,
    list_products,
    list_public_products,
    update_product,
)

router = APIRouter(prefix="/api/products", tags=["Products"])
public_products_router = APIRouter(prefix="/api/public", tags=["Public"])


@router.get("", response_model=list[ProductResponse])
async def get_products(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[ProductResponse]:
    return [ProductResponse.model_validate(product) for product in await list_products(db, user)]


@router.post("", response_model=ProductResponse, status_code=201)
async def add_product(
    body: ProductCreateRequest,
    user: User = Depends(require_premium),
    db: AsyncSession = Depends(get_session),
) -> ProductResponse:
    """Adding products is a premium feature. Editing and removing existing ones is not."""
    product = await create_product(db, user, body.model_dump())
    await db.commit()
    return ProductResponse.model_validate(product)


@router.patch("/{product_id}", response_model=ProductResponse)
async def edit_product(
    product_id: int,
    body: ProductUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProductResponse:
    product = await update_product(db, user, product_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}")
async def remove_product(
    product_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await delete_product(db, user, product_id)
    await db.commit()
    return {"success": True}


@public_products_router.get("/{username}/products", response_model=PublicProductsResponse)
async def public_products(
    username: str,
    db: AsyncSession = Depends(get_session),
) -> PublicProductsResponse:
    owner, products = await list_public_products(db, username)
    return PublicProductsResponse(
        username=owner.username,
        products=[PublicProduct.model_validate(product) for product in products],
    )
