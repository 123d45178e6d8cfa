"""Promo code generation.

Generated codes are 8-character alphanumeric (A-Z, 0-9) from a
cryptographic random source. Admins may also pick a code; every code is
stored uppercase so lookup is case-insensitive.
"""

from __future__ import annotations

import secrets
import string
from typing import TYPE_CHECKING

from sqlalchemy import select

from hml.db.models import PromoCode

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

PROMO_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
PROMO_LENGTH = 8


def generate_promo_code() -> str:
    """Generate a cryptographically random 8-character promo code."""
    return "".join(secrets.choice(PROMO_CHARSET) for _ in range(PROMO_LENGTH))


def normalize_promo_code(code: str) -> str:
    return code.strip().upper()


async def promo_code_exists(db: AsyncSession, code: str) -> bool:
    result = await db.execute(select(PromoCode.id).where(PromoCode.code == normalize_promo_code(code)))
    return result.scalar_one_or_none() is not None


async def generate_unique_promo_code(db: AsyncSession) -> str:
    """Generate a promo code that doesn't already exist in the database."""
    for _ in range(10):
        code = generate_promo_code()
        if not await promo_code_exists(db, code):
            return code
    raise RuntimeError("Failed to generate unique promo code after 10 attempts")
