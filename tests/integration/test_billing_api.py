"""Checkout, verification, cancellation, ledger and webhook handling."""

from __future__ import annotations

import json
import time
from datetime import datetime, timedelta, timezone

from httpx import AsyncClient

from hml.billing.gateway import Subscription
from hml.billing.premium import as_aware
from hml.billing.webhook import compute_signature

PERIOD_END = datetime(2030, 1, 15, tzinfo=timezone.utc)


async def _paid_session(client: AsyncClient, gateway, account, plan: str = "lifetime") -> str:
    response = await client.post("/api/billing/create-checkout-session", json={"plan": plan}, headers=account.headers)
    assert response.status_code == 200, response.text
    session_id = response.json()["session_id"]
    session = gateway.sessions[session_id]
    session.payment_status = "paid"
    session.amount_total = 4999 if plan == "lifetime" else 499
    if plan == "monthly":
        session.subscription_id = "sub_test1"
        gateway.subscriptions["sub_test1"] = Subscription(
            id="sub_test1", status="active", current_period_end=PERIOD_END, customer_id=session.customer_id
        )
    return session_id


async def _post_event(client: AsyncClient, event: dict, secret: str = "whsec_test", timestamp: int | None = None):
    payload = json.dumps(event).encode()
    ts = int(time.time()) if timestamp is None else timestamp
    header = f"t={ts},v1={compute_signature(payload, ts, secret)}"
    return await client.post(
        "/api/billing/webhook",
        content=payload,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )


class TestCheckout:
    async def test_creates_customer_once(self, client: AsyncClient, gateway, user, fetch_user):
        first = await client.post("/api/billing/create-checkout-session", json={"plan": "monthly"}, headers=user.headers)
        assert first.status_code == 200
        assert first.json() == {"url": "https://checkout.test/cs_test1", "session_id": "cs_test1"}
        await client.post("/api/billing/create-checkout-session", json={"plan": "lifetime"}, headers=user.headers)

        assert gateway.customers == ["owner@example.com"]
        assert (await fetch_user(user.id)).stripe_customer_id == "cus_test1"
        assert [s["plan"] for s in gateway.created_sessions] == ["monthly", "lifetime"]

    async def test_unknown_plan(self, client: AsyncClient, user):
        response = await client.post("/api/billing/create-checkout-session", json={"plan": "weekly"}, headers=user.headers)
        assert response.status_code == 400

    async def test_lifetime_cannot_buy_monthly(self, client: AsyncClient, make_user):
        lifer = await make_user(is_premium=True, premium_plan_type="lifetime")
        response = await client.post(
            "/api/billing/create-checkout-session", json={"plan": "monthly"}, headers=lifer.headers
        )
        assert response.status_code == 400

    async def test_requires_auth(self, client: AsyncClient, database):
        response = await client.post("/api/billing/create-checkout-session", json={"plan": "monthly"})
        assert response.status_code == 401


class TestVerifySession:
    async def test_lifetime_purchase(self, client: AsyncClient, gateway, user):
        session_id = await _paid_session(client, gateway, user)
        response = await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["premium"]["is_premium"] is True
        assert data["premium"]["plan_type"] == "lifetime"
        assert data["premium"]["expires_at"] is None
        assert data["transaction"]["amount"] == 4999
        assert data["transaction"]["gateway"] == "stripe"

    async def test_monthly_uses_period_end(self, client: AsyncClient, gateway, user, fetch_user):
        session_id = await _paid_session(client, gateway, user, plan="monthly")
        await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)

        stored = await fetch_user(user.id)
        assert stored.premium_plan_type == "monthly"
        assert stored.stripe_subscription_id == "sub_test1"
        assert as_aware(stored.premium_expires_at) == PERIOD_END

    async def test_verifying_twice_records_one_transaction(self, client: AsyncClient, gateway, user):
        session_id = await _paid_session(client, gateway, user)
        await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)
        await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)
        response = await client.get("/api/billing/transactions", headers=user.headers)
        assert len(response.json()) == 1

    async def test_unpaid_session(self, client: AsyncClient, gateway, user):
        session_id = await _paid_session(client, gateway, user)
        gateway.sessions[session_id].payment_status = "unpaid"
        response = await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Payment not completed (unpaid)"

    async def test_email_mismatch(self, client: AsyncClient, gateway, user, make_user):
        other = await make_user()
        session_id = await _paid_session(client, gateway, other)
        response = await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)
        assert response.status_code == 403

    async def test_unknown_session(self, client: AsyncClient, user):
        response = await client.post("/api/billing/verify-session", json={"session_id": "cs_nope"}, headers=user.headers)
        assert response.status_code == 400


class TestSubscription:
    async def test_cancel_without_subscription(self, client: AsyncClient, user):
        response = await client.post("/api/billing/cancel-subscription", headers=user.headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "No active subscription found"

    async def test_cancel_keeps_access_until_period_end(self, client: AsyncClient, gateway, user, fetch_user):
        session_id = await _paid_session(client, gateway, user, plan="monthly")
        await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)

        response = await client.post("/api/billing/cancel-subscription", headers=user.headers)
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert gateway.subscriptions["sub_test1"].cancel_at_period_end is True

        status = (await client.get("/api/billing/subscription-status", headers=user.headers)).json()
        assert status["status"] == "active"
        assert status["is_premium"] is True
        assert status["cancelled"] is True
        assert status["cancel_at_period_end"] is True

        assert (await fetch_user(user.id)).is_premium is True

    async def test_status_without_subscription(self, client: AsyncClient, user):
        data = (await client.get("/api/billing/subscription-status", headers=user.headers)).json()
        assert data["status"] == "no_subscription"
        assert data["is_premium"] is False

    async def test_vanished_subscription_is_cleared_after_lapse(self, client: AsyncClient, make_user, fetch_user):
        lapsed = await make_user(
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=datetime.now(timezone.utc) - timedelta(days=1),
            stripe_subscription_id="sub_gone",
        )
        data = (await client.get("/api/billing/subscription-status", headers=lapsed.headers)).json()
        assert data["subscription_not_found"] is True
        assert data["is_premium"] is False
        assert (await fetch_user(lapsed.id)).stripe_subscription_id is None


class TestLedger:
    async def test_payment_status_and_invoice(self, client: AsyncClient, gateway, user):
        empty = (await client.get("/api/billing/check-payment-status", headers=user.headers)).json()
        assert empty["latest_transaction"] is None

        session_id = await _paid_session(client, gateway, user)
        await client.post("/api/billing/verify-session", json={"session_id": session_id}, headers=user.headers)

        status = (await client.get("/api/billing/check-payment-status", headers=user.headers)).json()
        txn = status["latest_transaction"]
        assert txn["external_id"] == session_id
        assert status["premium"]["is_premium"] is True

        invoice = (await client.get(f"/api/billing/invoice/{txn['id']}", headers=user.headers)).json()
        assert invoice["invoice_number"].startswith("HML-")
        assert invoice["invoice_number"].endswith(f"-{txn['id']:06d}")
        assert invoice["amount"] == 4999
        assert invoice["customer"]["email"] == "owner@example.com"
        assert invoice["items"][0]["description"] == "HereMyLinks Premium Lifetime"

    async def test_invoice_of_other_user(self, client: AsyncClient, gateway, user, make_user):
        other = await make_user()
        session_id = await _paid_session(client, gateway, other)
        verified = await client.post(
            "/api/billing/verify-session", json={"session_id": session_id}, headers=other.headers
        )
        txn_id = verified.json()["transaction"]["id"]
        response = await client.get(f"/api/billing/invoice/{txn_id}", headers=user.headers)
        assert response.status_code == 404


class TestWebhook:
    async def test_rejects_bad_signature(self, client: AsyncClient, database):
        response = await _post_event(client, {"type": "checkout.session.completed"}, secret="whsec_other")
        assert response.status_code == 400

    async def test_rejects_stale_timestamp(self, client: AsyncClient, database):
        response = await _post_event(client, {"type": "ping"}, timestamp=int(time.time()) - 3600)
        assert response.status_code == 400

    async def test_rejects_missing_header(self, client: AsyncClient, database):
        response = await client.post("/api/billing/webhook", content=b"{}")
        assert response.status_code == 400

    async def test_unknown_event_is_acknowledged(self, client: AsyncClient, database):
        response = await _post_event(client, {"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})
        assert response.json() == {"received": True, "handled": False}

    async def test_checkout_completed_grants_lifetime(self, client: AsyncClient, user, fetch_user):
        event = {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_hook1",
                    "mode": "payment",
                    "payment_status": "paid",
                    "customer": "cus_hook",
                    "customer_details": {"email": "Owner@Example.com"},
                    "amount_total": 4999,
                    "currency": "usd",
                }
            },
        }
        response = await _post_event(client, event)
        assert response.json() == {"received": True, "handled": True}

        stored = await fetch_user(user.id)
        assert stored.is_premium is True
        assert stored.premium_plan_type == "lifetime"
        assert stored.stripe_customer_id == "cus_hook"

        # Redelivery does not duplicate the ledger entry
        await _post_event(client, event)
        transactions = (await client.get("/api/billing/transactions", headers=user.headers)).json()
        assert len(transactions) == 1

    async def test_renewal_extends_expiry(self, client: AsyncClient, gateway, make_user, fetch_user):
        subscriber = await make_user(
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=datetime.now(timezone.utc) + timedelta(days=1),
            stripe_subscription_id="sub_renew",
            stripe_customer_id="cus_renew",
        )
        gateway.subscriptions["sub_renew"] = Subscription(id="sub_renew", status="active", current_period_end=PERIOD_END)
        event = {
            "type": "invoice.payment_succeeded",
            "data": {
                "object": {
                    "id": "in_renew1",
                    "subscription": "sub_renew",
                    "customer": "cus_renew",
                    "amount_paid": 499,
                    "billing_reason": "subscription_cycle",
                }
            },
        }
        await _post_event(client, event)
        assert as_aware((await fetch_user(subscriber.id)).premium_expires_at) == PERIOD_END

    async def test_payment_failed_is_recorded(self, client: AsyncClient, user):
        event = {
            "type": "invoice.payment_failed",
            "data": {"object": {"id": "in_fail1", "customer_email": "owner@example.com", "amount_due": 499}},
        }
        await _post_event(client, event)
        transactions = (await client.get("/api/billing/transactions", headers=user.headers)).json()
        assert transactions[0]["status"] == "failed"
        assert transactions[0]["external_id"] == "in_fail1"

    async def test_subscription_deleted_keeps_paid_time(self, client: AsyncClient, make_user, fetch_user):
        subscriber = await make_user(
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=datetime.now(timezone.utc) + timedelta(days=10),
            stripe_subscription_id="sub_del",
        )
        event = {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_del", "status": "canceled"}}}
        await _post_event(client, event)

        stored = await fetch_user(subscriber.id)
        assert stored.is_premium is True
        assert stored.stripe_subscription_id is None

    async def test_subscription_deleted_after_lapse_revokes(self, client: AsyncClient, make_user, fetch_user):
        subscriber = await make_user(
            is_premium=True,
            premium_plan_type="monthly",
            premium_expires_at=datetime.now(timezone.utc) - timedelta(days=1),
            stripe_subscription_id="sub_old",
        )
        event = {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_old", "status": "canceled"}}}
        await _post_event(client, event)

        stored = await fetch_user(subscriber.id)
        assert stored.is_premium is False
        assert stored.premium_plan_type is None
