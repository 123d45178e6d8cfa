"""
Domain exceptions raised by the service layer.

Each exception carries the HTTP status it maps to. Services raise them and
``hml.middleware.error_handler`` renders them as ``{"detail": ...}``, so
routers only translate errors they need to reshape.
"""

from __future__ import annotations

from typing import Any


class HMLError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_content(self) -> dict[str, Any]:
        return {"detail": self.message}


class ValidationError(HMLError, ValueError):
    status_code = 400


class UnauthorizedError(HMLError):
    status_code = 401


class ForbiddenError(HMLError, PermissionError):
    status_code = 403


class AccountBannedError(ForbiddenError):
    """The account is banned. The body carries the stored reason."""

    def __init__(self, ban_reason: str | None) -> None:
        super().__init__("Account is banned")
        self.ban_reason = ban_reason

    def to_content(self) -> dict[str, Any]:
        return {"detail": self.message, "ban_reason": self.ban_reason}


class PremiumRequiredError(ForbiddenError):
    def __init__(self, message: str = "Premium subscription required") -> None:
        super().__init__(message)


class NotFoundError(HMLError, LookupError):
    status_code = 404


class ConflictError(HMLError):
    status_code = 409


class PromoInvalidError(ValidationError):
    """Promo code exists but cannot be redeemed; the message says why."""


class UpstreamError(HMLError):
    """A payment gateway or email provider call failed.

    The message is safe to show to clients; the cause is logged where raised.
    """

    status_code = 502
