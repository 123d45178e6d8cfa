"""
Admin bulk email campaigns.

The ``SentEmail`` row is written with status ``sending`` before the first
delivery so an interrupted campaign stays visible; counts, per-recipient
rows and the final status are written once the fan-out finishes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from hml.admin.audit import log_admin_action, paginate
from hml.config import get_settings
from hml.db.models import EmailRecipient, SentEmail
from hml.email.templates import html_to_text
from hml.errors import NotFoundError
from hml.notifications.dispatch import TARGET_SPECIFIC, DispatchResult, fan_out, resolve_recipients

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hml.db.models import User
    from hml.email.service import EmailService

logger = structlog.get_logger()


async def send_campaign(
    db: AsyncSession,
    admin: User,
    email_service: EmailService,
    *,
    from_email: str,
    target_type: str,
    subject: str,
    body_html: str,
    body_text: str | None = None,
    from_name: str | None = None,
    target_user_id: int | None = None,
) -> tuple[SentEmail, DispatchResult]:
    recipients = await resolve_recipients(db, target_type, target_user_id)
    now = datetime.now(timezone.utc)

    campaign = SentEmail(
        from_email=from_email,
        from_name=from_name,
        subject=subject,
        body_html=body_html,
        body_text=body_text,
        target_type=target_type,
        target_user_id=target_user_id if target_type == TARGET_SPECIFIC else None,
        recipients_count=len(recipients),
        status="sending",
        sent_by=admin.id,
        created_at=now,
    )
    db.add(campaign)
    await db.flush()
    # Visible as "sending" to other readers while the fan-out runs
    await db.commit()

    text_body = body_text or html_to_text(body_html)
    delivered_at: dict[int, datetime] = {}

    async def _deliver(user: User) -> bool:
        delivered = await email_service.send_email(
            user.email,
            subject,
            body_html,
            text_body,
            from_address=from_email,
            from_name=from_name,
            rate_limited=False,
        )
        if delivered:
            delivered_at[user.id] = datetime.now(timezone.utc)
        return delivered

    outcomes = await fan_out(recipients, _deliver, get_settings().email_dispatch_concurrency)

    db.add_all(
        EmailRecipient(
            sent_email_id=campaign.id,
            user_id=user.id,
            user_email=user.email,
            status="sent" if delivered else "failed",
            sent_at=delivered_at.get(user.id),
        )
        for user, delivered in zip(recipients, outcomes, strict=True)
    )
    sent = sum(outcomes)
    result = DispatchResult(
        notifications_sent=len(recipients),
        emails_sent=sent,
        emails_failed=len(outcomes) - sent,
        attempted=True,
    )
    campaign.sent_count = result.emails_sent
    campaign.failed_count = result.emails_failed
    campaign.status = result.status
    campaign.sent_at = datetime.now(timezone.utc)
    await db.flush()

    await log_admin_action(
        db,
        admin,
        "send_bulk_email",
        "sent_email",
        campaign.id,
        {"subject": subject, "target_type": target_type, **result.to_dict()},
    )
    logger.info(
        "email_campaign_sent",
        sent_email_id=campaign.id,
        recipients=len(recipients),
        sent=result.emails_sent,
        failed=result.emails_failed,
        status=result.status,
    )
    return campaign, result


async def list_campaigns(db: AsyncSession, page: int = 1, limit: int = 20) -> tuple[list[SentEmail], dict[str, Any]]:
    query = select(SentEmail).order_by(SentEmail.created_at.desc(), SentEmail.id.desc())
    return await paginate(db, query, page, limit)


async def get_campaign(db: AsyncSession, sent_email_id: int) -> SentEmail:
    result = await db.execute(
        select(SentEmail).options(selectinload(SentEmail.recipients)).where(SentEmail.id == sent_email_id)
    )
    campaign = result.scalar_one_or_none()
    if campaign is None:
        msg = "Email not found"
        raise NotFoundError(msg)
    return campaign


async def delete_campaign(db: AsyncSession, admin: User, sent_email_id: int) -> None:
    """Remove a campaign and its recipient rows from the history."""
    campaign = await get_campaign(db, sent_email_id)
    subject, from_email = campaign.subject, campaign.from_email
    await db.delete(campaign)
    await db.flush()
    await log_admin_action(
        db, admin, "delete_sent_email", "sent_email", sent_email_id, {"subject": subject, "from_email": from_email}
    )
