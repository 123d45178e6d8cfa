"""Admin bulk email endpoints — /api/admin/emails/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hml.auth.dependencies import require_permission
from hml.database import get_session
from hml.db.models import User
from hml.email.campaigns import delete_campaign, get_campaign, list_campaigns, send_campaign
from hml.email.schemas import CampaignDetail, CampaignListResponse, CampaignRequest, CampaignSendResponse, CampaignSummary
from hml.email.service import EmailService, provide_email_service

admin_router = APIRouter(prefix="/api/admin/emails", tags=["Admin"])


@admin_router.post("/send", response_model=CampaignSendResponse)
async def send(
    body: CampaignRequest,
    admin: User = Depends(require_permission("send_emails")),
    db: AsyncSession = Depends(get_session),
    email_service: EmailService = Depends(provide_email_service),
) -> CampaignSendResponse:
    campaign, result = await send_campaign(
        db,
        admin,
        email_service,
        from_email=str(body.from_email),
        from_name=body.from_name,
        target_type=body.target_type,
        target_user_id=body.target_user_id,
        subject=body.subject,
        body_html=body.body_html,
        body_text=body.body_text,
    )
    await db.commit()
    return CampaignSendResponse(
        sent_email_id=campaign.id,
        recipients_count=campaign.recipients_count,
        sent=result.emails_sent,
        failed=result.emails_failed,
        partial=result.partial,
        status=result.status,
    )


@admin_router.get("", response_model=CampaignListResponse)
async def history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _admin: User = Depends(require_permission("send_emails")),
    db: AsyncSession = Depends(get_session),
) -> CampaignListResponse:
    campaigns, pagination = await list_campaigns(db, page, limit)
    return CampaignListResponse(
        emails=[CampaignSummary.model_validate(c) for c in campaigns],
        pagination=pagination,
    )


@admin_router.get("/{sent_email_id}", response_model=CampaignDetail)
async def detail(
    sent_email_id: int,
    _admin: User = Depends(require_permission("send_emails")),
    db: AsyncSession = Depends(get_session),
) -> CampaignDetail:
    return CampaignDetail.model_validate(await get_campaign(db, sent_email_id))


@admin_router.delete("/{sent_email_id}")
async def remove(
    sent_email_id: int,
    admin: User = Depends(require_permission("send_emails")),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await delete_campaign(db, admin, sent_email_id)
    await db.commit()
    return {"success": True}
