"""
Authentication business logic.

Handles account creation, email + password login and password reset tokens.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update

from hml.auth.password import check_needs_rehash, hash_password, validate_password_strength, verify_password
from hml.config import get_settings
from hml.db.models import PasswordResetToken, User
from hml.errors import AccountBannedError, ConflictError, UnauthorizedError, ValidationError
from hml.users.username import ensure_username_available, generate_username

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def create_user(
    db: AsyncSession,
    email: str,
    password: str | None,
    name: str | None = None,
    username: str | None = None,
) -> User:
    """
    Create an account.

    A username supplied here is validated like a claim and marks the handle
    as custom; otherwise a generated handle is assigned.

    Raises:
        PasswordStrengthError: If the password fails the length rules.
        ConflictError: If the email or username is already taken.
    """
    if password is not None:
        validate_password_strength(password)

    email = email.lower().strip()
    if await get_user_by_email(db, email) is not None:
        msg = "Email already registered"
        raise ConflictError(msg)

    if username:
        handle = await ensure_username_available(db, username)
        is_custom = True
    else:
        handle = await generate_username(db, email)
        is_custom = False

    now = datetime.now(timezone.utc)
    user = User(
        email=email,
        password_hash=hash_password(password) if password is not None else None,
        name=name or handle,
        username=handle,
        username_is_custom=is_custom,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, username=handle, custom_username=is_custom)
    return user


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """
    Authenticate with email + password.

    Raises:
        UnauthorizedError: If the credentials are invalid.
        AccountBannedError: If the account is banned (carries the ban reason).
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        msg = "Invalid email or password"
        raise UnauthorizedError(msg)

    if user.is_banned:
        logger.info("banned_login_rejected", user_id=user.id)
        raise AccountBannedError(user.ban_reason)

    if user.password_hash and check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)

    user.last_login = datetime.now(timezone.utc)
    await db.flush()
    logger.info("user_login", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------


def _hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


async def create_reset_token(db: AsyncSession, user_id: int, ip_address: str | None = None) -> str:
    """
    Create a password reset token, retiring any unused one for the user.

    Returns the raw token to put in the emailed link. Only its hash is stored.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    raw_token = secrets.token_urlsafe(48)

    await db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.user_id == user_id)
        .where(PasswordResetToken.used_at.is_(None))
        .values(used_at=now)
    )
    db.add(
        PasswordResetToken(
            user_id=user_id,
            token_hash=_hash_token(raw_token),
            created_at=now,
            expires_at=now + timedelta(minutes=settings.password_reset_token_ttl_minutes),
            ip_address=ip_address,
        )
    )
    await db.flush()
    return raw_token


async def check_reset_token(db: AsyncSession, raw_token: str, now: datetime | None = None) -> PasswordResetToken:
    """
    Look up a reset token without consuming it.

    Raises:
        ValidationError: If the token is unknown, already used, or expired.
    """
    result = await db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == _hash_token(raw_token))
    )
    token = result.scalar_one_or_none()
    if token is None:
        msg = "This reset link is invalid or has expired"
        raise ValidationError(msg)
    if token.used_at is not None:
        msg = "This reset link has already been used"
        raise ValidationError(msg)
    expires_at = token.expires_at
    if expires_at.tzinfo is None:
        # SQLite hands back naive datetimes
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= (now or datetime.now(timezone.utc)):
        msg = "This reset link has expired"
        raise ValidationError(msg)
    return token


async def reset_password(db: AsyncSession, raw_token: str, new_password: str) -> User:
    """
    Set a new password with a reset token and consume the token.

    The password rules are checked first so a weak password does not burn the link.

    Raises:
        PasswordStrengthError: If the new password fails the length rules.
        ValidationError: If the token is unknown, already used, or expired.
    """
    validate_password_strength(new_password)
    token = await check_reset_token(db, raw_token)
    user = await get_user_by_id(db, token.user_id)
    if user is None:
        msg = "This reset link is invalid or has expired"
        raise ValidationError(msg)

    now = datetime.now(timezone.utc)
    token.used_at = now
    user.password_hash = hash_password(new_password)
    user.updated_at = now
    await db.flush()
    logger.info("password_reset_complete", user_id=user.id)
    return user
