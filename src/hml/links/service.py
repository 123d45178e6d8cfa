"""Bio link and social link CRUD. Every query is scoped to the owning user."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select

from hml.db.models import BioLink, SocialLink
from hml.errors import NotFoundError, ValidationError
from hml.links.schemas import LINK_LAYOUTS

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hml.db.models import User

logger = structlog.get_logger()


def _check_layout(layout: str | None) -> None:
    if layout is not None and layout not in LINK_LAYOUTS:
        msg = f"Layout must be one of: {', '.join(LINK_LAYOUTS)}"
        raise ValidationError(msg)


def _normalize_url(url: str) -> str:
    """Bare hosts get https://; mailto/tel and explicit schemes are kept."""
    url = url.strip()
    if "://" in url or url.startswith(("mailto:", "tel:", "/")):
        return url
    return f"https://{url}"


# ---------------------------------------------------------------------------
# Bio links
# ---------------------------------------------------------------------------


async def list_links(db: AsyncSession, user: User) -> list[BioLink]:
    result = await db.execute(select(BioLink).where(BioLink.user_id == user.id).order_by(BioLink.order, BioLink.id))
    return list(result.scalars().all())


async def get_link(db: AsyncSession, user: User, link_id: int) -> BioLink:
    result = await db.execute(select(BioLink).where(BioLink.id == link_id, BioLink.user_id == user.id))
    link = result.scalar_one_or_none()
    if link is None:
        msg = "Link not found"
        raise NotFoundError(msg)
    return link


async def create_link(db: AsyncSession, user: User, data: dict[str, Any]) -> BioLink:
    """Create a link; without an explicit order it goes after the current last one."""
    _check_layout(data.get("layout"))
    order = data.pop("order", None)
    if order is None:
        result = await db.execute(select(func.max(BioLink.order)).where(BioLink.user_id == user.id))
        current_max = result.scalar_one_or_none()
        order = 0 if current_max is None else current_max + 1

    now = datetime.now(timezone.utc)
    link = BioLink(
        user_id=user.id,
        order=order,
        created_at=now,
        updated_at=now,
        **{**data, "url": _normalize_url(data["url"])},
    )
    db.add(link)
    await db.flush()
    logger.info("link_created", user_id=user.id, link_id=link.id, order=order)
    return link


async def update_link(db: AsyncSession, user: User, link_id: int, changes: dict[str, Any]) -> BioLink:
    link = await get_link(db, user, link_id)
    _check_layout(changes.get("layout"))
    for field, value in changes.items():
        if field in ("title", "url", "layout", "is_transparent", "is_visible", "order") and value is None:
            continue
        if field == "url":
            value = _normalize_url(value)
        setattr(link, field, value)
    link.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return link


async def delete_link(db: AsyncSession, user: User, link_id: int) -> None:
    """Delete one link. Sibling orders are left as they are."""
    link = await get_link(db, user, link_id)
    await db.delete(link)
    await db.flush()
    logger.info("link_deleted", user_id=user.id, link_id=link_id)


async def reorder_links(db: AsyncSession, user: User, items: list[tuple[int, int]]) -> list[BioLink]:
    """
    Set the order of the given links.

    Every id must belong to the user, otherwise nothing changes. Re-sending
    the same order is a no-op; concurrent reorders are last write wins.

    Raises:
        ValidationError: If an id is listed twice.
        NotFoundError: If any id is not one of the user's links.
    """
    ids = [link_id for link_id, _ in items]
    if len(set(ids)) != len(ids):
        msg = "Duplicate link id in reorder request"
        raise ValidationError(msg)

    result = await db.execute(select(BioLink).where(BioLink.user_id == user.id, BioLink.id.in_(ids)))
    links = {link.id: link for link in result.scalars().all()}
    missing = [link_id for link_id in ids if link_id not in links]
    if missing:
        msg = f"Link not found: {missing[0]}"
        raise NotFoundError(msg)

    now = datetime.now(timezone.utc)
    for link_id, order in items:
        link = links[link_id]
        if link.order != order:
            link.order = order
            link.updated_at = now
    await db.flush()
    logger.info("links_reordered", user_id=user.id, count=len(items))
    return await list_links(db, user)


# ---------------------------------------------------------------------------
# Social links
# ---------------------------------------------------------------------------


async def list_socials(db: AsyncSession, user: User) -> list[SocialLink]:
    result = await db.execute(
        select(SocialLink).where(SocialLink.user_id == user.id).order_by(SocialLink.created_at, SocialLink.id)
    )
    return list(result.scalars().all())


async def get_social(db: AsyncSession, user: User, social_id: int) -> SocialLink:
    result = await db.execute(select(SocialLink).where(SocialLink.id == social_id, SocialLink.user_id == user.id))
    social = result.scalar_one_or_none()
    if social is None:
        msg = "Social link not found"
        raise NotFoundError(msg)
    return social


async def create_social(db: AsyncSession, user: User, platform: str, url: str, icon: str) -> SocialLink:
    social = SocialLink(
        user_id=user.id,
        platform=platform,
        url=_normalize_url(url),
        icon=icon,
        created_at=datetime.now(timezone.utc),
    )
    db.add(social)
    await db.flush()
    logger.info("social_created", user_id=user.id, social_id=social.id, platform=platform)
    return social


async def update_social(db: AsyncSession, user: User, social_id: int, changes: dict[str, Any]) -> SocialLink:
    social = await get_social(db, user, social_id)
    for field, value in changes.items():
        if value is None:
            continue
        setattr(social, field, _normalize_url(value) if field == "url" else value)
    await db.flush()
    return social


async def delete_social(db: AsyncSession, user: User, social_id: int) -> None:
    social = await get_social(db, user, social_id)
    await db.delete(social)
    await db.flush()
