"""Notification endpoints — the user inbox and admin broadcasts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hml.auth.dependencies import get_current_user, require_permission
from hml.database import get_session
from hml.db.models import User
from hml.email.service import EmailService, provide_email_service
from hml.notifications.schemas import (
    BroadcastListResponse,
    BroadcastRequest,
    BroadcastResponse,
    BroadcastSendResponse,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from hml.notifications.service import (
    get_notifications,
    get_unread_count,
    list_broadcasts,
    mark_all_read,
    mark_as_read,
    send_broadcast,
)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])
admin_router = APIRouter(prefix="/api/admin/notifications", tags=["Admin"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationListResponse:
    notifications, total = await get_notifications(db, user.id, page, per_page, unread_only)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        page=page,
        per_page=per_page,
        unread_count=await get_unread_count(db, user.id),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UnreadCountResponse:
    return UnreadCountResponse(count=await get_unread_count(db, user.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def read_all(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MarkAllReadResponse:
    updated = await mark_all_read(db, user.id)
    await db.commit()
    return MarkAllReadResponse(success=True, updated=updated)


@router.post("/{notification_id}/read")
async def read_one(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await mark_as_read(db, user.id, notification_id)
    await db.commit()
    return {"success": True}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@admin_router.post("/send", response_model=BroadcastSendResponse)
async def send(
    body: BroadcastRequest,
    admin: User = Depends(require_permission("send_notifications")),
    db: AsyncSession = Depends(get_session),
    email_service: EmailService = Depends(provide_email_service),
) -> BroadcastSendResponse:
    """Fan one notification out. Email failures are counted, not raised."""
    broadcast, result = await send_broadcast(
        db,
        admin,
        email_service,
        target_type=body.target_type,
        target_user_id=body.target_user_id,
        title=body.title,
        message=body.message,
        notification_type=body.type,
        link=body.link,
        send_email=body.send_email,
    )
    await db.commit()
    return BroadcastSendResponse(broadcast_id=broadcast.id, **result.to_dict())


@admin_router.get("", response_model=BroadcastListResponse)
async def history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _admin: User = Depends(require_permission("send_notifications")),
    db: AsyncSession = Depends(get_session),
) -> BroadcastListResponse:
    broadcasts, pagination = await list_broadcasts(db, page, limit)
    return BroadcastListResponse(
        broadcasts=[BroadcastResponse.model_validate(b) for b in broadcasts],
        pagination=pagination,
    )
