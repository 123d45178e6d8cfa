"""
Email service with provider abstraction.

Supports SMTP, Resend API, AWS SES and a logging-only stub.
Provider is selected via configuration.
"""

from __future__ import annotations

import hashlib
import ssl
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from hml.config import get_settings
from hml.email.templates import (
    notification_email,
    password_changed_email,
    password_reset_email,
    welcome_email,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()


class BaseEmailProvider(ABC):
    """Abstract base class for email delivery providers.

    ``send`` never raises: delivery problems are logged and reported as False.
    """

    def __init__(self, from_address: str, from_name: str) -> None:
        self.from_address = from_address
        self.from_name = from_name

    def _sender(self, from_address: str | None, from_name: str | None) -> str:
        return f"{from_name or self.from_name} <{from_address or self.from_address}>"

    @abstractmethod
    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        from_address: str | None = None,
        from_name: str | None = None,
    ) -> bool:
        """Send an email. Returns True on success."""
        ...


class SMTPProvider(BaseEmailProvider):
    """Send emails via SMTP using aiosmtplib."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        use_tls: bool = True,
    ) -> None:
        super().__init__(from_address, from_name)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        from_address: str | None = None,
        from_name: str | None = None,
    ) -> bool:
        import aiosmtplib

        msg = MIMEMultipart("alternative")
        msg["From"] = self._sender(from_address, from_name)
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            tls_context = ssl.create_default_context() if self.use_tls else None
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
                tls_context=tls_context,
            )
            logger.info("email_sent", to=to_email, subject=subject, provider="smtp")
            return True
        except Exception:
            logger.exception("email_send_failed", to=to_email, provider="smtp")
            return False


class ResendProvider(BaseEmailProvider):
    """Send emails via Resend API."""

    API_URL = "https://api.resend.com/emails"

    def __init__(self, api_key: str, from_address: str, from_name: str) -> None:
        super().__init__(from_address, from_name)
        self.api_key = api_key

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        from_address: str | None = None,
        from_name: str | None = None,
    ) -> bool:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.API_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": self._sender(from_address, from_name),
                        "to": [to_email],
                        "subject": subject,
                        "html": html_body,
                        "text": text_body,
                    },
                    timeout=10.0,
                )
                response.raise_for_status()
                logger.info("email_sent", to=to_email, subject=subject, provider="resend")
                return True
        except Exception:
            logger.exception("email_send_failed", to=to_email, provider="resend")
            return False


class SESProvider(BaseEmailProvider):
    """Send emails via AWS SES (needs the ``ses`` extra)."""

    def __init__(self, region: str, from_address: str, from_name: str) -> None:
        super().__init__(from_address, from_name)
        self.region = region

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        from_address: str | None = None,
        from_name: str | None = None,
    ) -> bool:
        try:
            import aioboto3

            session = aioboto3.Session()
            async with session.client("ses", region_name=self.region) as ses:
                await ses.send_email(
                    Source=self._sender(from_address, from_name),
                    Destination={"ToAddresses": [to_email]},
                    Message={
                        "Subject": {"Data": subject, "Charset": "UTF-8"},
                        "Body": {
                            "Text": {"Data": text_body, "Charset": "UTF-8"},
                            "Html": {"Data": html_body, "Charset": "UTF-8"},
                        },
                    },
                )
                logger.info("email_sent", to=to_email, subject=subject, provider="ses")
                return True
        except Exception:
            logger.exception("email_send_failed", to=to_email, provider="ses")
            return False


class StubProvider(BaseEmailProvider):
    """Records messages instead of delivering them (local development and tests)."""

    def __init__(self, from_address: str = "noreply@localhost", from_name: str = "HereMyLinks") -> None:
        super().__init__(from_address, from_name)
        self.outbox: list[dict[str, str]] = []

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        from_address: str | None = None,
        from_name: str | None = None,
    ) -> bool:
        self.outbox.append(
            {
                "to": to_email,
                "from": self._sender(from_address, from_name),
                "subject": subject,
                "html": html_body,
                "text": text_body,
            }
        )
        logger.info("email_stubbed", to=to_email, subject=subject)
        return True


def _create_provider() -> BaseEmailProvider:
    """Create email provider based on configuration."""
    settings = get_settings()
    provider_name = settings.email_provider.lower()

    if provider_name == "smtp":
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            use_tls=settings.smtp_use_tls,
        )
    if provider_name == "resend":
        return ResendProvider(
            api_key=settings.resend_api_key,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
        )
    if provider_name == "ses":
        return SESProvider(
            region=settings.ses_region,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
        )
    if provider_name == "stub":
        return StubProvider(settings.email_from_address, settings.email_from_name)
    msg = f"Unsupported email provider: {provider_name}"
    raise ValueError(msg)


def _render_welcome(context: dict[str, Any]) -> tuple[str, str, str]:
    settings = get_settings()
    return welcome_email(
        context.get("name"),
        context.get("username", ""),
        context.get("dashboard_url", f"{settings.frontend_base_url}/dashboard"),
    )


def _render_notification(context: dict[str, Any]) -> tuple[str, str, str]:
    return notification_email(
        context["title"],
        context["message"],
        context.get("type", "info"),
        context.get("link"),
    )


def _render_password_reset(context: dict[str, Any]) -> tuple[str, str, str]:
    return password_reset_email(
        context["reset_url"],
        context.get("expires_minutes", get_settings().password_reset_token_ttl_minutes),
    )


def _render_password_changed(context: dict[str, Any]) -> tuple[str, str, str]:
    return password_changed_email(context.get("name"))


# Template registry: name -> renderer(context) -> (subject, html, text)
_TEMPLATE_REGISTRY: dict[str, Any] = {
    "welcome": _render_welcome,
    "notification": _render_notification,
    "password_reset": _render_password_reset,
    "password_changed": _render_password_changed,
}


class EmailService:
    """
    High-level email service for HereMyLinks.

    Handles per-address rate limiting and template rendering. Admin bulk
    sends pass ``rate_limited=False``: each recipient gets one message per
    dispatch and the admin chose to send it.
    """

    def __init__(
        self,
        provider: BaseEmailProvider | None = None,
        redis: Redis | None = None,
    ) -> None:
        self.provider = provider or _create_provider()
        self._redis = redis
        self.rate_limit_max = get_settings().email_rate_limit_per_hour

    RATE_LIMIT_WINDOW = 3600

    async def _check_rate_limit(self, email: str) -> bool:
        """Check if we can send another email to this address."""
        if self._redis is None:
            return True
        key = f"email_rate:{hashlib.sha256(email.lower().encode()).hexdigest()}"
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, self.RATE_LIMIT_WINDOW)
        return count <= self.rate_limit_max

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        from_address: str | None = None,
        from_name: str | None = None,
        rate_limited: bool = True,
    ) -> bool:
        """
        Send an email.

        Returns True if sent, False if rate limited or the provider failed.
        """
        if rate_limited and not await self._check_rate_limit(to):
            logger.warning("email_rate_limited", to=to, subject=subject)
            return False
        return await self.provider.send(
            to, subject, html_body, text_body, from_address=from_address, from_name=from_name
        )

    async def send_template(
        self,
        to: str,
        template_name: str,
        context: dict[str, Any],
        *,
        rate_limited: bool = True,
    ) -> bool:
        """
        Render a registered template and send it.

        Raises:
            ValueError: If the template name is unknown.
        """
        render = _TEMPLATE_REGISTRY.get(template_name)
        if render is None:
            msg = f"Unknown template: {template_name}"
            raise ValueError(msg)
        subject, html_body, text_body = render(context)
        return await self.send_email(to, subject, html_body, text_body, rate_limited=rate_limited)


# Module-level singleton
_email_service: EmailService | None = None


def get_email_service(redis: Redis | None = None) -> EmailService:
    """Get or create the email service singleton."""
    global _email_service  # noqa: PLW0603
    if _email_service is None:
        if redis is None:
            from hml.redis_client import get_optional_redis

            redis = get_optional_redis()
        _email_service = EmailService(redis=redis)
    return _email_service


def provide_email_service() -> EmailService:
    """FastAPI dependency; tests override it with a service around a fake provider."""
    return get_email_service()


def set_email_service(service: EmailService) -> None:
    """Install a specific service instance (tests, alternate wiring)."""
    global _email_service  # noqa: PLW0603
    _email_service = service


def reset_email_service() -> None:
    """Reset the email service singleton (for testing)."""
    global _email_service  # noqa: PLW0603
    _email_service = None
