"""Bio page shop. Owner queries are scoped to the owning user."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select

from hml.db.models import Product
from hml.errors import NotFoundError
from hml.users.service import get_published_user

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hml.db.models import User

logger = structlog.get_logger()

# Columns that may not be cleared with an explicit null
_REQUIRED_FIELDS = frozenset({"name", "price_cents", "product_type", "is_active"})


async def list_products(db: AsyncSession, user: User) -> list[Product]:
    result = await db.execute(
        select(Product).where(Product.user_id == user.id).order_by(Product.position, Product.id)
    )
    return list(result.scalars().all())


async def get_product(db: AsyncSession, user: User, product_id: int) -> Product:
    result = await db.execute(select(Product).where(Product.id == product_id, Product.user_id == user.id))
    product = result.scalar_one_or_none()
    if product is None:
        msg = "Product not found"
        raise NotFoundError(msg)
    return product


async def create_product(db: AsyncSession, user: User, data: dict[str, Any]) -> Product:
    """Append a product after the current last one."""
    result = await db.execute(select(func.max(Product.position)).where(Product.user_id == user.id))
    current_max = result.scalar_one_or_none()
    position = 0 if current_max is None else current_max + 1

    now = datetime.now(timezone.utc)
    product = Product(user_id=user.id, position=position, created_at=now, updated_at=now, **data)
    db.add(product)
    await db.flush()
    logger.info("product_created", user_id=user.id, product_id=product.id, position=position)
    return product


async def update_product(db: AsyncSession, user: User, product_id: int, changes: dict[str, Any]) -> Product:
    product = await get_product(db, user, product_id)
    for field, value in changes.items():
        if field in _REQUIRED_FIELDS and value is None:
            continue
        setattr(product, field, value)
    product.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return product


async def delete_product(db: AsyncSession, user: User, product_id: int) -> None:
    """Delete one product. Sibling positions are left as they are."""
    product = await get_product(db, user, product_id)
    await db.delete(product)
    await db.flush()
    logger.info("product_deleted", user_id=user.id, product_id=product_id)


async def list_public_products(db: AsyncSession, username: str) -> tuple[User, list[Product]]:
    """
    Active products of a live page, in shop order.

    A page whose owner turned the shop off lists nothing.

    Raises:
        NotFoundError: If the page is missing, unpublished, or banned.
    """
    owner = await get_published_user(db, username)
    if not owner.show_products:
        return owner, []
    result = await db.execute(
        select(Product)
        .where(Product.user_id == owner.id, Product.is_active.is_(True))
        .order_by(Product.position, Product.id)
    )
    return owner, list(result.scalars().all())
