"""FastAPI authentication and authorization dependencies."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from hml.admin.roles import has_permission, is_master_admin
from hml.auth.jwt import verify_token
from hml.auth.service import get_user_by_id
from hml.database import get_session
from hml.db.models import User
from hml.errors import AccountBannedError, ForbiddenError, UnauthorizedError

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Extract and verify the bearer token, return the User model.

    Raises 401 without a valid token and 403 (with the ban reason) for banned accounts.
    """
    if credentials is None:
        msg = "Not authenticated"
        raise UnauthorizedError(msg)
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise UnauthorizedError(str(e)) from e

    user = await get_user_by_id(db, int(payload["sub"]))
    if user is None:
        msg = "User not found"
        raise UnauthorizedError(msg)
    if user.is_banned:
        raise AccountBannedError(user.ban_reason)
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        msg = "Admin access required"
        raise ForbiddenError(msg)
    return user


def require_permission(permission: str) -> Callable[..., Awaitable[User]]:
    """Build a dependency that admits admins holding ``permission``."""

    async def _check(admin: User = Depends(get_current_admin)) -> User:
        if not has_permission(admin, permission):
            msg = f"Missing permission: {permission}"
            raise ForbiddenError(msg)
        return admin

    return _check


async def require_master_admin(admin: User = Depends(get_current_admin)) -> User:
    if not is_master_admin(admin):
        msg = "Master admin access required"
        raise ForbiddenError(msg)
    return admin


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Identity for endpoints that also serve anonymous callers; bad tokens read as anonymous."""
    if credentials is None:
        return None
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError:
        return None
    return await get_user_by_id(db, int(payload["sub"]))
