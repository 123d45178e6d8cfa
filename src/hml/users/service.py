"""Profile, username claim, publish and public page logic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select

from hml.billing.premium import is_effectively_premium, requires_premium
from hml.db.models import BioLink, SocialLink, User
from hml.errors import NotFoundError, PremiumRequiredError, ValidationError
from hml.users.username import UsernameLockedError, ensure_username_available

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

# Fields a user may set directly through the profile endpoint
PROFILE_FIELDS = (
    "name",
    "bio",
    "profile_image",
    "theme_color",
    "background_color",
    "template",
    "background_image",
    "background_video",
    "card_background_color",
    "custom_text",
    "show_products",
)


# ---------------------------------------------------------------------------
# Username claim & publish
# ---------------------------------------------------------------------------


async def claim_username(db: AsyncSession, user: User, candidate: str) -> User:
    """
    Replace the generated handle with a custom one. Allowed once.

    Raises:
        UsernameLockedError: If the user already has a custom username.
        InvalidUsernameError: If the candidate breaks a format rule.
        UsernameTakenError: If another account holds it (case-insensitive).
    """
    if user.username_is_custom:
        raise UsernameLockedError
    username = await ensure_username_available(db, candidate, exclude_user_id=user.id)
    previous = user.username
    user.username = username
    user.username_is_custom = True
    user.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("username_claimed", user_id=user.id, previous=previous, username=username)
    return user


async def publish(db: AsyncSession, user: User, username: str | None = None) -> User:
    """
    Make the bio page public.

    Without a custom username one must be supplied and is claimed first.
    Publishing an already-published page is a no-op, and a custom username
    is never re-claimed.
    """
    if not user.username_is_custom:
        if not username:
            msg = "Choose a username before publishing"
            raise ValidationError(msg)
        await claim_username(db, user, username)
    if not user.is_published:
        user.is_published = True
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("page_published", user_id=user.id, username=user.username)
    return user


async def unpublish(db: AsyncSession, user: User) -> User:
    if user.is_published:
        user.is_published = False
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("page_unpublished", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


async def update_profile(db: AsyncSession, user: User, changes: dict[str, Any]) -> User:
    """
    Apply a partial profile update.

    ``username`` goes through the claim path and ``is_published`` through
    publish/unpublish. Premium-only appearance requires effective premium.

    Raises:
        PremiumRequiredError: For a premium template or background video without premium.
    """
    if requires_premium(changes.get("template"), changes.get("background_video")) and not is_effectively_premium(
        user
    ):
        raise PremiumRequiredError("Premium is required for this template or a background video")

    username = changes.get("username")
    if username is not None and username.lower() != user.username:
        await claim_username(db, user, username)

    for field in PROFILE_FIELDS:
        if field == "show_products" and changes.get(field) is None:
            continue
        if field in changes:
            setattr(user, field, changes[field])
    if "template" in changes and changes["template"] is None:
        user.template = "default"

    if "is_published" in changes and changes["is_published"] is not None:
        if changes["is_published"]:
            await publish(db, user)
        else:
            await unpublish(db, user)

    user.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Public page
# ---------------------------------------------------------------------------


async def get_published_user(db: AsyncSession, username: str) -> User:
    """The owner of a live page. Missing, unpublished and banned all read as not found."""
    result = await db.execute(select(User).where(func.lower(User.username) == username.lower()))
    user = result.scalar_one_or_none()
    if user is None or not user.is_published or user.is_banned:
        msg = "Page not found"
        raise NotFoundError(msg)
    return user


async def get_public_page(db: AsyncSession, username: str) -> dict[str, Any]:
    user = await get_published_user(db, username)
    links = await db.execute(
        select(BioLink)
        .where(BioLink.user_id == user.id, BioLink.is_visible.is_(True))
        .order_by(BioLink.order, BioLink.id)
    )
    socials = await db.execute(
        select(SocialLink).where(SocialLink.user_id == user.id).order_by(SocialLink.created_at, SocialLink.id)
    )
    premium = is_effectively_premium(user)
    return {
        "username": user.username,
        "name": user.name,
        "bio": user.bio,
        "profile_image": user.profile_image,
        "theme_color": user.theme_color,
        "background_color": user.background_color,
        # Lapsed premium falls back to the free look
        "template": user.template if premium or not requires_premium(user.template) else "default",
        "background_image": user.background_image,
        "background_video": user.background_video if premium else None,
        "card_background_color": user.card_background_color,
        "custom_text": user.custom_text,
        "show_products": user.show_products,
        "is_premium": premium,
        "links": list(links.scalars().all()),
        "socials": list(socials.scalars().all()),
        "updated_at": user.updated_at,
    }


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

# Appearance copied from a source page; personal content stays with the user
DESIGN_FIELDS = (
    "template",
    "theme_color",
    "background_color",
    "background_image",
    "background_video",
    "card_background_color",
)


async def apply_template(db: AsyncSession, user: User, source_username: str) -> User:
    """
    Copy the look of a live page onto the user's own page.

    Only appearance moves over. Name, bio, image, username and content are
    untouched. Callers gate this behind premium.

    Raises:
        NotFoundError: If the source page is missing, unpublished, or banned.
    """
    source = await get_published_user(db, source_username)
    for field in DESIGN_FIELDS:
        setattr(user, field, getattr(source, field))
    user.template = user.template or "default"
    user.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("template_applied", user_id=user.id, source_user_id=source.id)
    return user
