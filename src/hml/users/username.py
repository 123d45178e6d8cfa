"""Username rules, availability checks and auto-generation.

A username is 3-30 characters of ``[A-Za-z0-9_-]`` stored lowercase.
Uniqueness is case-insensitive. Accounts start with a generated handle
(``letters + 4 digits``) and may replace it with a custom one exactly once;
``User.username_is_custom`` records which kind the current handle is.
"""

from __future__ import annotations

import re
import secrets
import string
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from hml.db.models import User
from hml.errors import ConflictError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
_USERNAME_RE = re.compile(r"[a-zA-Z0-9_-]+")

GENERATED_SUFFIX_DIGITS = 4
_GENERATED_PREFIX_MAX = USERNAME_MAX_LENGTH - GENERATED_SUFFIX_DIGITS
_MAX_GENERATE_ATTEMPTS = 10


class InvalidUsernameError(ValidationError):
    """Username failed a length or charset rule."""


class UsernameTakenError(ConflictError):
    def __init__(self) -> None:
        super().__init__("Username is already taken")


class UsernameLockedError(ConflictError):
    def __init__(self) -> None:
        super().__init__("Username has already been set and cannot be changed")


def validate_username(candidate: str) -> str:
    """
    Check length (min, then max) and charset, in that order.

    Returns:
        The lowercased username.

    Raises:
        InvalidUsernameError: with the message of the first rule that fails.
    """
    if len(candidate) < USERNAME_MIN_LENGTH:
        msg = f"Username must be at least {USERNAME_MIN_LENGTH} characters"
        raise InvalidUsernameError(msg)
    if len(candidate) > USERNAME_MAX_LENGTH:
        msg = f"Username must be at most {USERNAME_MAX_LENGTH} characters"
        raise InvalidUsernameError(msg)
    if not _USERNAME_RE.fullmatch(candidate):
        msg = "Username can only contain letters, numbers, dashes, and underscores"
        raise InvalidUsernameError(msg)
    return candidate.lower()


async def username_exists(db: AsyncSession, username: str, exclude_user_id: int | None = None) -> bool:
    """Case-insensitive existence check, optionally ignoring one user."""
    stmt = select(User.id).where(func.lower(User.username) == username.lower())
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    result = await db.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def ensure_username_available(db: AsyncSession, candidate: str, exclude_user_id: int | None = None) -> str:
    """Validate and check uniqueness. Returns the normalized username."""
    username = validate_username(candidate)
    if await username_exists(db, username, exclude_user_id=exclude_user_id):
        raise UsernameTakenError
    return username


async def check_username(
    db: AsyncSession,
    candidate: str,
    exclude_user_id: int | None = None,
) -> dict[str, object]:
    """Availability check for the username field. Format problems are reported, not raised."""
    try:
        username = validate_username(candidate)
    except InvalidUsernameError as e:
        return {"available": False, "username": candidate, "error": e.message}
    taken = await username_exists(db, username, exclude_user_id=exclude_user_id)
    return {"available": not taken, "username": username}


def _generated_prefix(email: str) -> str:
    local = email.split("@", 1)[0]
    letters = "".join(c for c in local.lower() if c in string.ascii_lowercase)
    return letters[:_GENERATED_PREFIX_MAX] or "user"


def generate_candidate(email: str) -> str:
    """``letters-from-email`` + 4 random digits, e.g. ``janedoe4821``."""
    digits = "".join(secrets.choice(string.digits) for _ in range(GENERATED_SUFFIX_DIGITS))
    return _generated_prefix(email) + digits


async def generate_username(db: AsyncSession, email: str) -> str:
    """Generate a username that does not exist yet."""
    for _ in range(_MAX_GENERATE_ATTEMPTS):
        candidate = generate_candidate(email)
        if not await username_exists(db, candidate):
            return candidate
    raise RuntimeError(f"Failed to generate unique username after {_MAX_GENERATE_ATTEMPTS} attempts")
