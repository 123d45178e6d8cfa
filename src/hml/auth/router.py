"""Authentication router — /api/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hml.admin.roles import effective_permissions
from hml.auth.dependencies import get_current_user
from hml.auth.jwt import create_access_token
from hml.auth.schemas import (
    AuthUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    ResetTokenRequest,
    ResetTokenStatusResponse,
    TokenResponse,
)
from hml.auth.service import (
    authenticate_user,
    check_reset_token,
    create_reset_token,
    create_user,
    get_user_by_email,
    reset_password,
)
from hml.billing.premium import is_effectively_premium
from hml.config import get_settings
from hml.database import get_session
from hml.db.models import User
from hml.email.service import EmailService, provide_email_service
from hml.errors import ValidationError

logger = structlog.get_logger()

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _user_response(user: User) -> AuthUserResponse:
    return AuthUserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        username=user.username,
        username_is_custom=user.username_is_custom,
        profile_image=user.profile_image,
        is_published=user.is_published,
        is_admin=user.is_admin,
        admin_role=user.admin_role,
        permissions=sorted(effective_permissions(user)),
        is_premium=is_effectively_premium(user),
        created_at=user.created_at,
        last_login=user.last_login,
    )


def _issue_token(user: User) -> TokenResponse:
    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(user.id, user.email),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=_user_response(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
    email_service: EmailService = Depends(provide_email_service),
) -> TokenResponse:
    """Create an account and log it in."""
    user = await create_user(db, email=body.email, password=body.password, name=body.name, username=body.username)
    await db.commit()

    # Welcome mail is best-effort; the account exists either way
    sent = await email_service.send_template(
        to=user.email,
        template_name="welcome",
        context={"name": user.name, "username": user.username},
    )
    if not sent:
        logger.warning("welcome_email_not_sent", user_id=user.id)

    return _issue_token(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    user = await authenticate_user(db, body.email, body.password)
    await db.commit()
    return _issue_token(user)


@router.get("/me", response_model=AuthUserResponse)
async def me(user: User = Depends(get_current_user)) -> AuthUserResponse:
    return _user_response(user)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    email_service: EmailService = Depends(provide_email_service),
) -> MessageResponse:
    """Email a reset link. The answer is the same whether or not the account exists."""
    user = await get_user_by_email(db, body.email)
    if user is not None:
        settings = get_settings()
        raw_token = await create_reset_token(db, user.id, ip_address=request.client.host if request.client else None)
        await db.commit()
        sent = await email_service.send_template(
            to=user.email,
            template_name="password_reset",
            context={"reset_url": f"{settings.frontend_base_url}{settings.password_reset_path}?token={raw_token}"},
        )
        if not sent:
            logger.warning("password_reset_email_not_sent", user_id=user.id)
    return MessageResponse(message="If an account exists with this email, you will receive a password reset link.")


@router.post("/validate-reset-token", response_model=ResetTokenStatusResponse)
async def validate_reset_token(
    body: ResetTokenRequest,
    db: AsyncSession = Depends(get_session),
) -> ResetTokenStatusResponse:
    """Let the reset page tell a dead link apart before the user types a new password."""
    try:
        await check_reset_token(db, body.token)
    except ValidationError as e:
        return ResetTokenStatusResponse(valid=False, error=e.message)
    return ResetTokenStatusResponse(valid=True)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password_with_token(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_session),
    email_service: EmailService = Depends(provide_email_service),
) -> MessageResponse:
    user = await reset_password(db, body.token, body.new_password)
    await db.commit()

    sent = await email_service.send_template(
        to=user.email, template_name="password_changed", context={"name": user.name}
    )
    if not sent:
        logger.warning("password_changed_email_not_sent", user_id=user.id)
    return MessageResponse(message="Password reset successfully")
