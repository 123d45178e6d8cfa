"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Email registration. ``username`` is optional; one is generated when omitted."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    name: str | None = Field(None, max_length=128)
    username: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class AuthUserResponse(BaseModel):
    """The authenticated account as the editor sees it."""

    id: int
    email: str
    name: str | None
    username: str
    username_is_custom: bool
    profile_image: str | None
    is_published: bool
    is_admin: bool
    admin_role: str | None
    permissions: list[str]
    is_premium: bool
    created_at: datetime | None
    last_login: datetime | None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AuthUserResponse


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class ForgotPasswordRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class ResetTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=256)


class ResetTokenStatusResponse(BaseModel):
    valid: bool
    error: str | None = None


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=256)
    new_password: str = Field(..., min_length=1, max_length=128)


class MessageResponse(BaseModel):
    message: str
