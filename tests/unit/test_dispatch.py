"""Unit tests for bulk dispatch aggregation and fan-out."""

import asyncio

import pytest

from hml.db.models import User
from hml.notifications.dispatch import STATUS_FAILED, STATUS_PARTIAL, STATUS_SENT, DispatchResult, fan_out


def _users(n: int) -> list[User]:
    return [User(id=i, email=f"u{i}@example.com", username=f"user{i}") for i in range(1, n + 1)]


class TestDispatchResult:
    def test_notifications_only(self):
        result = DispatchResult(notifications_sent=5)
        assert result.status == STATUS_SENT
        assert result.partial is False
        assert result.failed is False

    def test_all_emails_delivered(self):
        result = DispatchResult(notifications_sent=3, emails_sent=3, attempted=True)
        assert result.status == STATUS_SENT

    def test_some_emails_delivered(self):
        result = DispatchResult(notifications_sent=3, emails_sent=2, emails_failed=1, attempted=True)
        assert result.partial is True
        assert result.status == STATUS_PARTIAL

    def test_no_emails_delivered(self):
        result = DispatchResult(notifications_sent=3, emails_sent=0, emails_failed=3, attempted=True)
        assert result.failed is True
        assert result.partial is False
        assert result.status == STATUS_FAILED

    def test_to_dict(self):
        data = DispatchResult(notifications_sent=2, emails_sent=1, emails_failed=1, attempted=True).to_dict()
        assert data == {
            "notifications_sent": 2,
            "emails_sent": 1,
            "emails_failed": 1,
            "partial": True,
            "failed": False,
            "status": "partial",
        }


class TestFanOut:
    @pytest.mark.asyncio
    async def test_outcomes_in_recipient_order(self):
        users = _users(4)

        async def deliver(user: User) -> bool:
            await asyncio.sleep(0.001 * (5 - user.id))
            return user.id % 2 == 0

        assert await fan_out(users, deliver) == [False, True, False, True]

    @pytest.mark.asyncio
    async def test_exception_counts_as_failure_only_for_that_recipient(self):
        users = _users(3)

        async def deliver(user: User) -> bool:
            if user.id == 2:
                raise ConnectionError("smtp down")
            return True

        assert await fan_out(users, deliver) == [True, False, True]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        users = _users(12)
        in_flight = 0
        peak = 0

        async def deliver(_user: User) -> bool:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return True

        outcomes = await fan_out(users, deliver, concurrency=3)
        assert all(outcomes)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_empty(self):
        async def deliver(_user: User) -> bool:
            return True

        assert await fan_out([], deliver) == []
