"""Notification inbox and admin broadcast.

A broadcast:
1. Resolves recipients (every non-banned user, or one user)
2. Writes one inbox row per recipient
3. Optionally emails every recipient through the fan-out
4. Freezes the counts and status on a ``NotificationBroadcast`` row

Types: info, success, warning, error
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select, update

from hml.admin.audit import log_admin_action, paginate
from hml.config import get_settings
from hml.db.models import Notification, NotificationBroadcast
from hml.errors import NotFoundError, ValidationError
from hml.notifications.dispatch import TARGET_SPECIFIC, DispatchResult, fan_out, resolve_recipients

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hml.db.models import User
    from hml.email.service import EmailService

logger = structlog.get_logger()

VALID_TYPES = ("info", "success", "warning", "error")


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page
    where = [Notification.user_id == user_id]
    if unread_only:
        where.append(Notification.is_read.is_(False))

    total_result = await db.execute(select(func.count()).select_from(Notification).where(*where))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*where)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> None:
    """Mark one of the user's notifications as read. Re-marking is a no-op."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
    )
    if result.rowcount == 0:
        msg = "Notification not found"
        raise NotFoundError(msg)


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    """Mark every unread notification as read. Returns how many changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    return result.rowcount


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------


async def send_broadcast(
    db: AsyncSession,
    admin: User,
    email_service: EmailService,
    *,
    target_type: str,
    title: str,
    message: str,
    notification_type: str = "info",
    link: str | None = None,
    send_email: bool = False,
    target_user_id: int | None = None,
) -> tuple[NotificationBroadcast, DispatchResult]:
    """Create inbox rows for every recipient and optionally email them."""
    if notification_type not in VALID_TYPES:
        msg = f"Invalid notification type: {notification_type}. Must be one of {', '.join(VALID_TYPES)}"
        raise ValidationError(msg)

    recipients = await resolve_recipients(db, target_type, target_user_id)
    now = datetime.now(timezone.utc)

    broadcast = NotificationBroadcast(
        title=title,
        message=message,
        type=notification_type,
        link=link,
        target_type=target_type,
        target_user_id=target_user_id if target_type == TARGET_SPECIFIC else None,
        send_email=send_email,
        recipients_count=len(recipients),
        created_by=admin.id,
        created_at=now,
    )
    db.add(broadcast)
    await db.flush()

    inbox = {
        user.id: Notification(
            user_id=user.id,
            broadcast_id=broadcast.id,
            title=title,
            message=message,
            type=notification_type,
            link=link,
            is_read=False,
            email_sent=False,
            created_by=admin.id,
            created_at=now,
        )
        for user in recipients
    }
    db.add_all(inbox.values())
    await db.flush()

    emails_sent = emails_failed = 0
    if send_email:
        context = {"title": title, "message": message, "type": notification_type, "link": link}

        async def _deliver(user: User) -> bool:
            return await email_service.send_template(user.email, "notification", context, rate_limited=False)

        outcomes = await fan_out(recipients, _deliver, get_settings().email_dispatch_concurrency)
        for user, delivered in zip(recipients, outcomes, strict=True):
            inbox[user.id].email_sent = delivered
        emails_sent = sum(outcomes)
        emails_failed = len(outcomes) - emails_sent

    result = DispatchResult(
        notifications_sent=len(recipients),
        emails_sent=emails_sent,
        emails_failed=emails_failed,
        attempted=send_email,
    )
    broadcast.emails_sent = result.emails_sent
    broadcast.emails_failed = result.emails_failed
    broadcast.status = result.status
    await db.flush()

    await log_admin_action(
        db,
        admin,
        "send_notification",
        "notification_broadcast",
        broadcast.id,
        {"title": title, "target_type": target_type, **result.to_dict()},
    )
    logger.info(
        "notification_broadcast_sent",
        broadcast_id=broadcast.id,
        recipients=len(recipients),
        emails_sent=emails_sent,
        emails_failed=emails_failed,
        status=result.status,
    )
    return broadcast, result


async def list_broadcasts(
    db: AsyncSession, page: int = 1, limit: int = 20
) -> tuple[list[NotificationBroadcast], dict[str, Any]]:
    query = select(NotificationBroadcast).order_by(
        NotificationBroadcast.created_at.desc(), NotificationBroadcast.id.desc()
    )
    return await paginate(db, query, page, limit)
