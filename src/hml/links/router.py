"""Bio link and social link routers — /api/links/* and /api/socials/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hml.auth.dependencies import get_current_user
from hml.database import get_session
from hml.db.models import User
from hml.links.schemas import (
    LinkCreateRequest,
    LinkReorderRequest,
    LinkResponse,
    LinkUpdateRequest,
    SocialCreateRequest,
    SocialResponse,
    SocialUpdateRequest,
)
from hml.links.service import (
    create_link,
    create_social,
    delete_link,
    delete_social,
    list_links,
    list_socials,
    reorder_links,
    update_link,
    update_social,
)

router = APIRouter(prefix="/api/links", tags=["Links"])
socials_router = APIRouter(prefix="/api/socials", tags=["Links"])


@router.get("", response_model=list[LinkResponse])
async def get_links(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[LinkResponse]:
    return [LinkResponse.model_validate(link) for link in await list_links(db, user)]


@router.post("", response_model=LinkResponse, status_code=201)
async def add_link(
    body: LinkCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LinkResponse:
    link = await create_link(db, user, body.model_dump())
    await db.commit()
    return LinkResponse.model_validate(link)


# Declared before /{link_id} so "reorder" is not parsed as an id
@router.patch("/reorder", response_model=list[LinkResponse])
async def reorder(
    body: LinkReorderRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[LinkResponse]:
    """Idempotent set-order command for the whole list or a subset of it."""
    links = await reorder_links(db, user, [(item.id, item.order) for item in body.links])
    await db.commit()
    return [LinkResponse.model_validate(link) for link in links]


@router.patch("/{link_id}", response_model=LinkResponse)
async def edit_link(
    link_id: int,
    body: LinkUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LinkResponse:
    link = await update_link(db, user, link_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return LinkResponse.model_validate(link)


@router.delete("/{link_id}")
async def remove_link(
    link_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await delete_link(db, user, link_id)
    await db.commit()
    return {"success": True}


@socials_router.get("", response_model=list[SocialResponse])
async def get_socials(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[SocialResponse]:
    return [SocialResponse.model_validate(social) for social in await list_socials(db, user)]


@socials_router.post("", response_model=SocialResponse, status_code=201)
async def add_social(
    body: SocialCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SocialResponse:
    social = await create_social(db, user, body.platform, body.url, body.icon)
    await db.commit()
    return SocialResponse.model_validate(social)


@socials_router.patch("/{social_id}", response_model=SocialResponse)
async def edit_social(
    social_id: int,
    body: SocialUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SocialResponse:
    social = await update_social(db, user, social_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return SocialResponse.model_validate(social)


@socials_router.delete("/{social_id}")
async def remove_social(
    social_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await delete_social(db, user, social_id)
    await db.commit()
    return {"success": True}
