"""User router — profile, username, publish and public page endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hml.auth.dependencies import get_current_user, get_optional_user
from hml.billing.premium import is_effectively_premium, premium_summary, require_premium
from hml.billing.schemas import PremiumStatusResponse
from hml.database import get_session
from hml.db.models import User
from hml.users.schemas import (
    ProfileResponse,
    ProfileUpdateRequest,
    PublicLink,
    PublicPageResponse,
    PublicSocial,
    PublishRequest,
    TemplateApplyRequest,
    UsernameCheckResponse,
    UsernameClaimRequest,
)
from hml.users.service import apply_template, claim_username, get_public_page, publish, update_profile
from hml.users.username import check_username

logger = structlog.get_logger()

router = APIRouter(prefix="/api/user", tags=["Users"])
username_router = APIRouter(prefix="/api/username", tags=["Users"])
public_router = APIRouter(prefix="/api/public", tags=["Public"])
templates_router = APIRouter(prefix="/api/templates", tags=["Users"])


def _profile_response(user: User) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        username=user.username,
        username_is_custom=user.username_is_custom,
        email=user.email,
        name=user.name,
        bio=user.bio,
        profile_image=user.profile_image,
        theme_color=user.theme_color,
        background_color=user.background_color,
        template=user.template or "default",
        background_image=user.background_image,
        background_video=user.background_video,
        card_background_color=user.card_background_color,
        custom_text=user.custom_text,
        show_products=user.show_products,
        is_published=user.is_published,
        is_premium=is_effectively_premium(user),
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(user: User = Depends(get_current_user)) -> ProfileResponse:
    return _profile_response(user)


@router.patch("/profile", response_model=ProfileResponse)
async def patch_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProfileResponse:
    """Partial update. Only the fields present in the body are touched."""
    user = await update_profile(db, user, body.model_dump(exclude_unset=True))
    await db.commit()
    return _profile_response(user)


@router.get("/premium-status", response_model=PremiumStatusResponse)
async def premium_status(user: User = Depends(get_current_user)) -> PremiumStatusResponse:
    return PremiumStatusResponse(**premium_summary(user))


# ---------------------------------------------------------------------------
# Username & publish
# ---------------------------------------------------------------------------


@router.post("/username", response_model=ProfileResponse)
async def claim(
    body: UsernameClaimRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProfileResponse:
    """Set the custom username. Fails with 409 once one has been set."""
    user = await claim_username(db, user, body.username)
    await db.commit()
    return _profile_response(user)


@router.post("/publish", response_model=ProfileResponse)
async def publish_page(
    body: PublishRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProfileResponse:
    user = await publish(db, user, body.username if body else None)
    await db.commit()
    return _profile_response(user)


@username_router.get("/check", response_model=UsernameCheckResponse)
async def check(
    username: str = Query(..., min_length=1),
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> UsernameCheckResponse:
    """Availability check used while typing. The caller's own handle counts as available."""
    result = await check_username(db, username, exclude_user_id=user.id if user else None)
    return UsernameCheckResponse(**result)


# ---------------------------------------------------------------------------
# Public page
# ---------------------------------------------------------------------------


@public_router.get("/{username}", response_model=PublicPageResponse)
async def public_page(
    username: str,
    db: AsyncSession = Depends(get_session),
) -> PublicPageResponse:
    page = await get_public_page(db, username)
    page["links"] = [PublicLink.model_validate(link) for link in page["links"]]
    page["socials"] = [PublicSocial.model_validate(social) for social in page["socials"]]
    return PublicPageResponse(**page)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@templates_router.post("/apply", response_model=ProfileResponse)
async def apply(
    body: TemplateApplyRequest,
    user: User = Depends(require_premium),
    db: AsyncSession = Depends(get_session),
) -> ProfileResponse:
    """Copy another live page's design onto the caller's page. Premium only."""
    user = await apply_template(db, user, body.source_username)
    await db.commit()
    return _profile_response(user)
