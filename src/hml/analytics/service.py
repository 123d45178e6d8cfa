"""Page-view and link-click tracking with per-owner stats.

Tracking is public and only counts published, non-banned pages. A repeat
page-view from the same visitor inside the live window is a heartbeat: it
moves ``last_seen`` instead of adding a row.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import distinct, func, select

from hml.config import get_settings
from hml.db.models import BioLink, LinkClick, PageView, User
from hml.errors import NotFoundError
from hml.users.service import get_published_user

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def track_page_view(
    db: AsyncSession,
    username: str,
    visitor_id: str,
    referrer: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Record a visit. Returns True for a new view, False for a heartbeat."""
    now = now or _now()
    owner = await get_published_user(db, username)
    window_start = now - timedelta(seconds=get_settings().live_window_seconds)

    result = await db.execute(
        select(PageView)
        .where(PageView.user_id == owner.id, PageView.visitor_id == visitor_id, PageView.last_seen >= window_start)
        .order_by(PageView.last_seen.desc())
        .limit(1)
    )
    view = result.scalar_one_or_none()
    if view is not None:
        view.last_seen = now
        await db.flush()
        return False

    db.add(PageView(user_id=owner.id, visitor_id=visitor_id, referrer=referrer, created_at=now, last_seen=now))
    await db.flush()
    logger.debug("page_view_recorded", user_id=owner.id, referrer=referrer)
    return True


async def track_click(db: AsyncSession, link_id: int, visitor_id: str, now: datetime | None = None) -> None:
    """Record a click on a visible link of a published page."""
    result = await db.execute(
        select(BioLink)
        .join(User, User.id == BioLink.user_id)
        .where(
            BioLink.id == link_id,
            BioLink.is_visible.is_(True),
            User.is_published.is_(True),
            User.is_banned.is_(False),
        )
    )
    link = result.scalar_one_or_none()
    if link is None:
        msg = "Link not found"
        raise NotFoundError(msg)
    db.add(LinkClick(user_id=link.user_id, link_id=link.id, visitor_id=visitor_id, created_at=now or _now()))
    await db.flush()


async def get_stats(db: AsyncSession, user: User, now: datetime | None = None) -> dict[str, Any]:
    """Totals for the owner's page plus per-link click counts, most clicked first."""
    now = now or _now()
    today = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)

    views = await db.execute(
        select(func.count(PageView.id), func.count(distinct(PageView.visitor_id))).where(PageView.user_id == user.id)
    )
    total_views, unique_visitors = views.one()
    views_today = await db.execute(
        select(func.count(PageView.id)).where(PageView.user_id == user.id, PageView.created_at >= today)
    )
    clicks_today = await db.execute(
        select(func.count(LinkClick.id)).where(LinkClick.user_id == user.id, LinkClick.created_at >= today)
    )

    per_link = await db.execute(
        select(
            BioLink.id,
            BioLink.title,
            BioLink.url,
            func.count(LinkClick.id),
            func.count(distinct(LinkClick.visitor_id)),
        )
        .outerjoin(LinkClick, LinkClick.link_id == BioLink.id)
        .where(BioLink.user_id == user.id)
        .group_by(BioLink.id, BioLink.title, BioLink.url)
        .order_by(func.count(LinkClick.id).desc(), BioLink.id)
    )
    links = [
        {"id": link_id, "title": title, "url": url, "clicks": clicks, "unique_visitors": visitors}
        for link_id, title, url, clicks, visitors in per_link.all()
    ]
    return {
        "total_views": total_views,
        "unique_visitors": unique_visitors,
        "views_today": views_today.scalar_one(),
        "total_clicks": sum(link["clicks"] for link in links),
        "clicks_today": clicks_today.scalar_one(),
        "links": links,
    }


async def get_live_visitors(db: AsyncSession, user: User, now: datetime | None = None) -> dict[str, Any]:
    """Distinct visitors seen within the live window. Clients poll this."""
    now = now or _now()
    window = get_settings().live_window_seconds
    result = await db.execute(
        select(func.count(distinct(PageView.visitor_id))).where(
            PageView.user_id == user.id, PageView.last_seen >= now - timedelta(seconds=window)
        )
    )
    return {"live_visitors": result.scalar_one(), "window_seconds": window, "timestamp": now}
