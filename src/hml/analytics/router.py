"""Analytics endpoints — public tracking under /api/track, owner stats under /api/analytics."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from hml.analytics.service import get_live_visitors, get_stats, track_click, track_page_view
from hml.auth.dependencies import get_current_user
from hml.database import get_session
from hml.db.models import User

track_router = APIRouter(prefix="/api/track", tags=["Analytics"])
router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


class PageViewRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=30)
    visitor_id: str = Field(..., min_length=1, max_length=64)
    referrer: str | None = Field(None, max_length=2048)


class ClickRequest(BaseModel):
    link_id: int
    visitor_id: str = Field(..., min_length=1, max_length=64)


class LinkStats(BaseModel):
    id: int
    title: str
    url: str
    clicks: int
    unique_visitors: int


class StatsResponse(BaseModel):
    total_views: int
    unique_visitors: int
    views_today: int
    total_clicks: int
    clicks_today: int
    links: list[LinkStats]


class LiveResponse(BaseModel):
    live_visitors: int
    window_seconds: int
    timestamp: datetime


@track_router.post("/page-view")
async def page_view(body: PageViewRequest, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    created = await track_page_view(db, body.username.lower(), body.visitor_id, body.referrer)
    await db.commit()
    return {"success": True, "new_view": created}


@track_router.post("/click")
async def click(body: ClickRequest, db: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    await track_click(db, body.link_id, body.visitor_id)
    await db.commit()
    return {"success": True}


@router.get("/stats", response_model=StatsResponse)
async def stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> StatsResponse:
    return StatsResponse(**await get_stats(db, user))


@router.get("/live", response_model=LiveResponse)
async def live(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LiveResponse:
    return LiveResponse(**await get_live_visitors(db, user))
