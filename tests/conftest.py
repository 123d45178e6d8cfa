"""Shared test fixtures.

Tests run against in-memory SQLite with the schema built from the ORM
metadata. Redis is left uninitialised, so rate limiting and the per-address
email budget are pass-through unless a test installs its own client.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def _write_test_keys() -> tuple[str, str]:
    """Generate an RSA key pair for RS256 signing in a temp directory."""
    tmpdir = tempfile.mkdtemp(prefix="hml_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with open(private_path, "wb") as fh:
        fh.write(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
    with open(public_path, "wb") as fh:
        fh.write(
            key.public_key().public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )
    return private_path, public_path


_PRIVATE_KEY, _PUBLIC_KEY = _write_test_keys()
os.environ["HML_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["HML_JWT_PRIVATE_KEY_PATH"] = _PRIVATE_KEY
os.environ["HML_JWT_PUBLIC_KEY_PATH"] = _PUBLIC_KEY
os.environ["HML_EMAIL_PROVIDER"] = "stub"
os.environ["HML_STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["HML_UPLOAD_DIR"] = tempfile.mkdtemp(prefix="hml_test_uploads_")
os.environ["HML_LOG_FORMAT"] = "console"

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from hml.auth.jwt import create_access_token, reset_keys  # noqa: E402
from hml.auth.service import create_user  # noqa: E402
from hml.billing.gateway import BillingGateway, CheckoutSession, Subscription, provide_billing_gateway  # noqa: E402
from hml.config import get_settings  # noqa: E402
from hml.database import close_db, get_engine, get_session, init_db  # noqa: E402
from hml.db.base import Base  # noqa: E402
from hml.db.models import User  # noqa: E402
from hml.email.service import EmailService, StubProvider, reset_email_service, set_email_service  # noqa: E402
from hml.main import create_app  # noqa: E402

get_settings.cache_clear()
reset_keys()

DEFAULT_PASSWORD = "Password123"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingProvider(StubProvider):
    """Stub provider that can be told to fail for specific addresses."""

    def __init__(self) -> None:
        super().__init__("notifications@heremylinks.test", "HereMyLinks")
        self.failing: set[str] = set()

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
        if to_email in self.failing:
            return False
        return await super().send(
            to_email, subject, html_body, text_body, from_address=from_address, from_name=from_name
        )


@dataclass
class FakeGateway(BillingGateway):
    """In-memory payment gateway. Tests seed sessions and subscriptions directly."""

    sessions: dict[str, CheckoutSession] = field(default_factory=dict)
    subscriptions: dict[str, Subscription] = field(default_factory=dict)
    customers: list[str] = field(default_factory=list)
    created_sessions: list[dict[str, Any]] = field(default_factory=list)

    async def create_customer(self, email: str) -> str:
        customer_id = f"cus_test{len(self.customers) + 1}"
        self.customers.append(email)
        return customer_id

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        email: str,
        plan: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        session_id = f"cs_test{len(self.created_sessions) + 1}"
        self.created_sessions.append(
            {"customer_id": customer_id, "email": email, "plan": plan, "success_url": success_url}
        )
        session = CheckoutSession(
            id=session_id,
            url=f"https://checkout.test/{session_id}",
            mode="subscription" if plan == "monthly" else "payment",
            customer_id=customer_id,
            email=email,
            metadata={"plan_type": plan, "user_email": email},
        )
        self.sessions[session_id] = session
        return session

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        from hml.errors import ValidationError

        if session_id not in self.sessions:
            msg = "Checkout session not found"
            raise ValidationError(msg)
        return self.sessions[session_id]

    async def retrieve_subscription(self, subscription_id: str) -> Subscription | None:
        return self.subscriptions.get(subscription_id)

    async def cancel_at_period_end(self, subscription_id: str) -> Subscription:
        subscription = self.subscriptions[subscription_id]
        subscription.cancel_at_period_end = True
        return subscription


# ---------------------------------------------------------------------------
# App & database
# ---------------------------------------------------------------------------


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """A standalone session outside any request, closed on exit."""
    sessions = get_session()
    session = await sessions.__anext__()
    try:
        yield session
    finally:
        await sessions.aclose()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema per test."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest.fixture
def email_provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(
    database: None, email_provider: RecordingProvider, gateway: FakeGateway
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to a fresh app with the email provider and gateway faked."""
    set_email_service(EmailService(provider=email_provider, redis=None))
    app = create_app()
    app.dependency_overrides[provide_billing_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    reset_email_service()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async with session_scope() as session:
        yield session


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@dataclass
class Account:
    user: User
    token: str

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


MakeUser = Callable[..., Awaitable[Account]]


@pytest_asyncio.fixture
async def make_user(database: None) -> MakeUser:
    """Factory: create a committed account, optionally overriding model fields."""
    counter = 0

    async def _make(
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        username: str | None = None,
        **fields: Any,  # noqa: ANN401
    ) -> Account:
        nonlocal counter
        counter += 1
        email = email or f"user{counter}@example.com"
        async with session_scope() as db:
            user = await create_user(db, email=email, password=password, username=username)
            for name, value in fields.items():
                setattr(user, name, value)
            await db.commit()
        return Account(user=user, token=create_access_token(user.id, user.email))

    return _make


@pytest_asyncio.fixture
async def make_admin(make_user: MakeUser) -> Callable[..., Awaitable[Account]]:
    """Factory: create an admin with a role and optional explicit permissions."""

    async def _make(
        role: str = "master_admin",
        permissions: list[str] | None = None,
        **kwargs: Any,  # noqa: ANN401
    ) -> Account:
        return await make_user(
            is_admin=True,
            admin_role=role,
            admin_permissions=permissions,
            admin_created_at=datetime(2026, 1, 1),
            **kwargs,
        )

    return _make


@pytest_asyncio.fixture
async def user(make_user: MakeUser) -> Account:
    return await make_user(email="owner@example.com", username="owner")


@pytest_asyncio.fixture
async def master(make_admin: Callable[..., Awaitable[Account]]) -> Account:
    return await make_admin(email="master@example.com")


@pytest.fixture
def fetch_user() -> Callable[[int], Awaitable[User]]:
    """Re-read a user from the database after requests changed it."""

    async def _fetch(user_id: int) -> User:
        async with session_scope() as db:
            user = await db.get(User, user_id)
            assert user is not None
            return user

    return _fetch


@pytest.fixture
def db_scope() -> Callable[[], Any]:
    """``async with db_scope() as db:`` for short-lived sessions inside request tests."""
    return session_scope
