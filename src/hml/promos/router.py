"""Promo code endpoints — redemption and /api/admin/promos management."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hml.auth.dependencies import get_current_user, require_permission
from hml.database import get_session
from hml.db.models import PromoCode, User
from hml.promos.schemas import PromoCreateRequest, PromoResponse, PromoUpdateRequest, RedeemRequest, RedeemResponse
from hml.promos.service import create_promo, delete_promo, list_promos, promo_status, redeem_promo, update_promo

router = APIRouter(prefix="/api/promos", tags=["Promos"])
admin_router = APIRouter(prefix="/api/admin/promos", tags=["Admin"])


def _promo_response(promo: PromoCode, **extra: Any) -> PromoResponse:  # noqa: ANN401
    return PromoResponse(
        id=promo.id,
        code=promo.code,
        premium_duration_days=promo.premium_duration_days,
        max_redemptions=promo.max_redemptions,
        current_redemptions=promo.current_redemptions,
        assigned_user_id=promo.assigned_user_id,
        is_active=promo.is_active,
        expires_at=promo.expires_at,
        created_by=promo.created_by,
        created_at=promo.created_at,
        status=extra.pop("status", None) or promo_status(promo),
        **extra,
    )


@router.post("/redeem", response_model=RedeemResponse)
async def redeem(
    body: RedeemRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RedeemResponse:
    result = await redeem_promo(db, user, body.code)
    await db.commit()
    return RedeemResponse(**result)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@admin_router.get("", response_model=list[PromoResponse])
async def get_promos(
    _admin: User = Depends(require_permission("manage_content")),
    db: AsyncSession = Depends(get_session),
) -> list[PromoResponse]:
    return [
        _promo_response(row["promo"], status=row["status"], creator=row["creator"], assigned_user=row["assigned_user"])
        for row in await list_promos(db)
    ]


@admin_router.post("", response_model=PromoResponse, status_code=201)
async def add_promo(
    body: PromoCreateRequest,
    admin: User = Depends(require_permission("manage_content")),
    db: AsyncSession = Depends(get_session),
) -> PromoResponse:
    promo = await create_promo(
        db,
        admin,
        code=body.code,
        premium_duration_days=body.premium_duration_days,
        max_redemptions=body.max_redemptions,
        assigned_user_id=body.assigned_user_id,
        expires_at=body.expires_at,
    )
    await db.commit()
    return _promo_response(promo)


@admin_router.patch("/{promo_id}", response_model=PromoResponse)
async def edit_promo(
    promo_id: int,
    body: PromoUpdateRequest,
    admin: User = Depends(require_permission("manage_content")),
    db: AsyncSession = Depends(get_session),
) -> PromoResponse:
    promo = await update_promo(db, admin, promo_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return _promo_response(promo)


@admin_router.delete("/{promo_id}")
async def remove_promo(
    promo_id: int,
    admin: User = Depends(require_permission("manage_content")),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await delete_promo(db, admin, promo_id)
    await db.commit()
    return {"success": True}
