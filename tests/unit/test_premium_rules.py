"""Unit tests for effective premium and billing helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from hml.billing.premium import (
    PLAN_LIFETIME,
    PLAN_MONTHLY,
    PLAN_PROMO,
    is_effectively_premium,
    premium_summary,
    requires_premium,
)
from hml.billing.service import add_months, gateway_for_external_id, grant_premium, revoke_premium
from hml.db.models import User

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _user(**fields) -> User:
    defaults = {"email": "p@example.com", "username": "premium", "is_premium": False}
    return User(**{**defaults, **fields})


class TestEffectivePremium:
    def test_flag_off_is_never_premium(self):
        user = _user(is_premium=False, premium_plan_type=PLAN_LIFETIME)
        assert is_effectively_premium(user, NOW) is False

    def test_lifetime_ignores_expiry(self):
        user = _user(is_premium=True, premium_plan_type=PLAN_LIFETIME, premium_expires_at=NOW - timedelta(days=1))
        assert is_effectively_premium(user, NOW) is True

    @pytest.mark.parametrize("plan", [PLAN_MONTHLY, PLAN_PROMO])
    def test_time_limited_before_expiry(self, plan):
        user = _user(is_premium=True, premium_plan_type=plan, premium_expires_at=NOW + timedelta(seconds=1))
        assert is_effectively_premium(user, NOW) is True

    @pytest.mark.parametrize("plan", [PLAN_MONTHLY, PLAN_PROMO])
    def test_time_limited_lapses_at_expiry_instant(self, plan):
        user = _user(is_premium=True, premium_plan_type=plan, premium_expires_at=NOW)
        assert is_effectively_premium(user, NOW) is False

    def test_time_limited_without_expiry_is_premium(self):
        user = _user(is_premium=True, premium_plan_type=PLAN_MONTHLY, premium_expires_at=None)
        assert is_effectively_premium(user, NOW) is True

    def test_naive_expiry_treated_as_utc(self):
        user = _user(is_premium=True, premium_plan_type=PLAN_PROMO, premium_expires_at=datetime(2026, 3, 16))
        assert is_effectively_premium(user, NOW) is True

    def test_summary_keeps_stored_flag(self):
        user = _user(is_premium=True, premium_plan_type=PLAN_MONTHLY, premium_expires_at=NOW - timedelta(days=1))
        summary = premium_summary(user, NOW)
        assert summary["is_premium"] is False
        assert summary["stored_is_premium"] is True
        assert summary["has_subscription"] is False


class TestRequiresPremium:
    def test_default_template_is_free(self):
        assert requires_premium(template="default") is False

    def test_other_templates_are_premium(self):
        assert requires_premium(template="neon") is True

    def test_background_video_is_premium(self):
        assert requires_premium(background_video="/uploads/videos/a.mp4") is True

    def test_nothing_requested(self):
        assert requires_premium() is False


class TestGrants:
    def test_grant_then_revoke(self):
        user = _user()
        grant_premium(user, PLAN_MONTHLY, expires_at=NOW + timedelta(days=30), now=NOW, subscription_id="sub_1")
        assert user.is_premium is True
        assert user.premium_started_at == NOW
        assert user.stripe_subscription_id == "sub_1"

        revoke_premium(user)
        assert user.is_premium is False
        assert user.premium_plan_type is None
        assert user.premium_expires_at is None
        assert user.stripe_subscription_id is None


class TestBillingHelpers:
    def test_add_months_clamps_day(self):
        assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
        assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)

    def test_add_months_crosses_year(self):
        assert add_months(datetime(2026, 12, 5), 1) == datetime(2027, 1, 5)

    @pytest.mark.parametrize(
        ("external_id", "gateway"),
        [
            ("cs_test_123", "stripe"),
            ("in_1abc", "stripe"),
            ("sub_9", "stripe"),
            ("PAYPAL-XYZ", "paypal"),
            ("manual-1", "unknown"),
            (None, "unknown"),
        ],
    )
    def test_gateway_for_external_id(self, external_id, gateway):
        assert gateway_for_external_id(external_id) == gateway
