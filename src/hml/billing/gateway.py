"""
Payment gateway adapter.

``BillingGateway`` is the seam the billing service talks to; ``StripeGateway``
implements it against the Stripe REST API with httpx (form-encoded requests,
secret key as basic-auth user). Tests inject a fake through
``provide_billing_gateway``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from hml.config import get_settings
from hml.errors import UpstreamError, ValidationError

logger = structlog.get_logger()

PLANS: dict[str, dict[str, Any]] = {
    "monthly": {"name": "HereMyLinks Premium Monthly", "mode": "subscription"},
    "lifetime": {"name": "HereMyLinks Premium Lifetime", "mode": "payment"},
}


def plan_price_cents(plan: str) -> int:
    settings = get_settings()
    return settings.monthly_price_cents if plan == "monthly" else settings.lifetime_price_cents


@dataclass
class CheckoutSession:
    id: str
    url: str | None = None
    mode: str = "payment"
    payment_status: str = "unpaid"
    customer_id: str | None = None
    subscription_id: str | None = None
    email: str | None = None
    amount_total: int = 0
    currency: str = "usd"
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def plan_type(self) -> str:
        return self.metadata.get("plan_type") or ("monthly" if self.mode == "subscription" else "lifetime")


@dataclass
class Subscription:
    id: str
    status: str
    cancel_at_period_end: bool = False
    current_period_end: datetime | None = None
    customer_id: str | None = None


def _timestamp(value: Any) -> datetime | None:  # noqa: ANN401
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None


def _expandable_id(value: Any) -> str | None:  # noqa: ANN401
    """Stripe returns either an id string or the expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def session_from_payload(data: dict[str, Any]) -> CheckoutSession:
    details = data.get("customer_details") or {}
    metadata = data.get("metadata") or {}
    return CheckoutSession(
        id=data["id"],
        url=data.get("url"),
        mode=data.get("mode", "payment"),
        payment_status=data.get("payment_status", "unpaid"),
        customer_id=_expandable_id(data.get("customer")),
        subscription_id=_expandable_id(data.get("subscription")),
        email=details.get("email") or data.get("customer_email") or metadata.get("user_email"),
        amount_total=data.get("amount_total") or 0,
        currency=data.get("currency") or "usd",
        metadata=dict(metadata),
    )


def subscription_from_payload(data: dict[str, Any]) -> Subscription:
    period_end = data.get("current_period_end")
    if period_end is None:
        # Newer API versions moved the period onto subscription items
        items = (data.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")
    return Subscription(
        id=data["id"],
        status=data.get("status", "unknown"),
        cancel_at_period_end=bool(data.get("cancel_at_period_end")),
        current_period_end=_timestamp(period_end),
        customer_id=_expandable_id(data.get("customer")),
    )


def flatten_form(data: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Encode nested dicts/lists the way Stripe's form API expects (``a[b][0][c]=v``)."""
    flat: dict[str, str] = {}
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_form(value, name))
        elif isinstance(value, list):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    flat.update(flatten_form(item, item_name))
                else:
                    flat[item_name] = str(item)
        elif isinstance(value, bool):
            flat[name] = "true" if value else "false"
        elif value is not None:
            flat[name] = str(value)
    return flat


class BillingGateway(ABC):
    """Operations the billing service needs from a payment provider."""

    @abstractmethod
    async def create_customer(self, email: str) -> str: ...

    @abstractmethod
    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        email: str,
        plan: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession: ...

    @abstractmethod
    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession: ...

    @abstractmethod
    async def retrieve_subscription(self, subscription_id: str) -> Subscription | None:
        """Return None when the gateway no longer knows the subscription."""

    @abstractmethod
    async def cancel_at_period_end(self, subscription_id: str) -> Subscription: ...


class StripeGateway(BillingGateway):
    """Stripe REST API client."""

    def __init__(self, secret_key: str, api_base: str, currency: str = "usd", timeout: float = 15.0) -> None:
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.currency = currency
        self.timeout = timeout

    async def _request(self, method: str, path: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.secret_key:
            msg = "Payment provider is not configured"
            raise UpstreamError(msg)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{self.api_base}/{path}",
                    auth=(self.secret_key, ""),
                    data=flatten_form(data) if data else None,
                )
        except httpx.HTTPError as e:
            logger.exception("stripe_request_failed", path=path)
            msg = "Payment provider unavailable"
            raise UpstreamError(msg) from e

        payload: dict[str, Any] = response.json() if response.content else {}
        if response.status_code >= 400:
            error = payload.get("error") or {}
            if error.get("code") == "resource_missing":
                raise StripeResourceMissingError(error.get("message", "No such resource"))
            logger.error(
                "stripe_request_rejected",
                path=path,
                status=response.status_code,
                error_type=error.get("type"),
                error=error.get("message"),
            )
            msg = "Payment provider request failed"
            raise UpstreamError(msg)
        return payload

    async def create_customer(self, email: str) -> str:
        payload = await self._request("POST", "customers", {"email": email})
        return payload["id"]

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        email: str,
        plan: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        plan_info = PLANS[plan]
        price_data: dict[str, Any] = {
            "currency": self.currency,
            "product_data": {"name": plan_info["name"]},
            "unit_amount": plan_price_cents(plan),
        }
        if plan_info["mode"] == "subscription":
            price_data["recurring"] = {"interval": "month"}
        payload = await self._request(
            "POST",
            "checkout/sessions",
            {
                "mode": plan_info["mode"],
                "customer": customer_id,
                "line_items": [{"price_data": price_data, "quantity": 1}],
                "success_url": success_url,
                "cancel_url": cancel_url,
                "allow_promotion_codes": True,
                "metadata": {"user_email": email, "plan_type": plan},
            },
        )
        return session_from_payload(payload)

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        try:
            payload = await self._request("GET", f"checkout/sessions/{session_id}")
        except StripeResourceMissingError as e:
            msg = "Checkout session not found"
            raise ValidationError(msg) from e
        return session_from_payload(payload)

    async def retrieve_subscription(self, subscription_id: str) -> Subscription | None:
        try:
            payload = await self._request("GET", f"subscriptions/{subscription_id}")
        except StripeResourceMissingError:
            logger.info("stripe_subscription_missing", subscription_id=subscription_id)
            return None
        return subscription_from_payload(payload)

    async def cancel_at_period_end(self, subscription_id: str) -> Subscription:
        payload = await self._request("POST", f"subscriptions/{subscription_id}", {"cancel_at_period_end": True})
        return subscription_from_payload(payload)


class StripeResourceMissingError(UpstreamError):
    """Stripe answered ``resource_missing`` for the requested object."""

    status_code = 404


def provide_billing_gateway() -> BillingGateway:
    """FastAPI dependency returning the configured gateway."""
    settings = get_settings()
    return StripeGateway(settings.stripe_secret_key, settings.stripe_api_base, settings.billing_currency)
