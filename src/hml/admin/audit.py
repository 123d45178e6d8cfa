"""Admin audit trail and the offset pagination shared by admin listings."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import Select, func, select

from hml.db.models import AdminLog

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hml.db.models import User

logger = structlog.get_logger()

MAX_PAGE_SIZE = 100


async def log_admin_action(
    db: AsyncSession,
    admin: User,
    action: str,
    target_type: str | None = None,
    target_id: int | str | None = None,
    details: dict[str, Any] | None = None,
) -> AdminLog:
    """Append an audit row in the caller's transaction."""
    entry = AdminLog(
        admin_id=admin.id,
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        details=details or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.flush()
    logger.info("admin_action", admin_id=admin.id, action=action, target_type=target_type, target_id=target_id)
    return entry


def pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


async def paginate(
    db: AsyncSession,
    query: Select,  # type: ignore[type-arg]
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Any], dict[str, int]]:
    """Run an ordered select for one page; returns (rows, pagination meta)."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    total_result = await db.execute(select(func.count()).select_from(query.order_by(None).subquery()))
    total = total_result.scalar_one()
    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    return list(result.scalars().all()), pagination_meta(page, limit, total)


async def list_admin_logs(db: AsyncSession, page: int = 1, limit: int = 50) -> tuple[list[AdminLog], dict[str, int]]:
    query = select(AdminLog).order_by(AdminLog.created_at.desc(), AdminLog.id.desc())
    return await paginate(db, query, page, limit)
