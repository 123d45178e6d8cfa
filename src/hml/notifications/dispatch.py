"""
Bulk fan-out shared by admin notifications and admin emails.

One intent goes to every non-banned user or to one user. Each email is
attempted on its own behind a semaphore; a failed recipient is logged and
counted, never raised, and never stops the others. Nothing is rolled back:
a half-delivered broadcast is reported as ``partial``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from hml.db.models import User
from hml.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

TARGET_ALL = "all"
TARGET_SPECIFIC = "specific"
TARGET_TYPES = (TARGET_ALL, TARGET_SPECIFIC)

STATUS_SENT = "sent"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class DispatchResult:
    """Counts for one dispatch. ``status`` is computed here and stored as-is."""

    notifications_sent: int
    emails_sent: int = 0
    emails_failed: int = 0
    attempted: bool = False

    @property
    def partial(self) -> bool:
        return 0 < self.emails_sent < self.notifications_sent

    @property
    def failed(self) -> bool:
        return self.attempted and self.emails_sent == 0

    @property
    def status(self) -> str:
        if self.failed:
            return STATUS_FAILED
        if self.partial:
            return STATUS_PARTIAL
        return STATUS_SENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "notifications_sent": self.notifications_sent,
            "emails_sent": self.emails_sent,
            "emails_failed": self.emails_failed,
            "partial": self.partial,
            "failed": self.failed,
            "status": self.status,
        }


async def resolve_recipients(db: AsyncSession, target_type: str, target_user_id: int | None = None) -> list[User]:
    """
    Users a dispatch goes to, read at call time.

    ``all`` is every non-banned account; signups racing the dispatch may or
    may not be included. ``specific`` is exactly one account.

    Raises:
        ValidationError: Unknown target type or a missing target user id.
        NotFoundError: The target user does not exist, or nobody matches.
    """
    if target_type not in TARGET_TYPES:
        msg = f"Target type must be one of: {', '.join(TARGET_TYPES)}"
        raise ValidationError(msg)

    if target_type == TARGET_SPECIFIC:
        if target_user_id is None:
            msg = "Target user ID is required for specific dispatch"
            raise ValidationError(msg)
        result = await db.execute(select(User).where(User.id == target_user_id))
        user = result.scalar_one_or_none()
        if user is None:
            msg = "Target user not found"
            raise NotFoundError(msg)
        return [user]

    result = await db.execute(select(User).where(User.is_banned.is_(False)).order_by(User.id))
    users = list(result.scalars().all())
    if not users:
        msg = "No users found"
        raise NotFoundError(msg)
    return users


async def fan_out(
    recipients: Sequence[User],
    deliver: Callable[[User], Awaitable[bool]],
    concurrency: int = 5,
) -> list[bool]:
    """Run ``deliver`` for every recipient, at most ``concurrency`` at a time.

    Returns one outcome per recipient, in recipient order. An exception from
    ``deliver`` counts as a failure for that recipient only.
    """
    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def _one(user: User) -> bool:
        async with semaphore:
            try:
                delivered = await deliver(user)
            except Exception:
                logger.exception("dispatch_delivery_error", user_id=user.id)
                return False
        if not delivered:
            logger.warning("dispatch_delivery_failed", user_id=user.id)
        return delivered

    return list(await asyncio.gather(*(_one(user) for user in recipients)))
