"""Quota enforcement and usage reporting."""

from datetime import datetime, timedelta, timezone

import pytest

from book_editor.core import quota, usage_ledger
from book_editor.core.errors import RateLimitError
from book_editor.models.pydantic_models.core_models import UsageTotals
from book_editor.models.usage import UsageLog
from book_editor.utils import as_utc, parse_leading_int, utcnow


@pytest.mark.parametrize(
    "total,limit,expected",
    [
        (75, 100, 75),
        (150, 100, 100),
        (0, 100, 0),
        (1, 3, 33),
        (1, 8, 13),
        (5, 200, 3),
        (10, -1, None),
        (10, 0, None),
    ],
)
def test_usage_percentage(total, limit, expected):
    assert quota.usage_percentage(total, limit) == expected


def test_usage_window_flags():
    unlimited = quota.usage_window(UsageTotals(input=5, output=5, total=10), -1)
    assert unlimited.is_unlimited and not unlimited.is_restricted
    assert unlimited.percentage is None

    restricted = quota.usage_window(UsageTotals(), 0)
    assert restricted.is_restricted and not restricted.is_unlimited


class TestEnforceQuota:
    @pytest.mark.asyncio
    async def test_unlimited_always_passes(self, db_session, user_factory):
        user = await user_factory(daily_token_limit=-1, monthly_token_limit=-1)
        await usage_ledger.record_usage(db_session, user.user_id, "/api/edit-chunk", 10**9, 0)
        await quota.enforce_quota(db_session, user.user_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("daily,monthly", [(0, -1), (-1, 0), (0, 0)])
    async def test_restricted_rejected_with_zero_usage(
        self, db_session, user_factory, daily, monthly
    ):
        user = await user_factory(daily_token_limit=daily, monthly_token_limit=monthly)
        with pytest.raises(RateLimitError) as exc_info:
            await quota.enforce_quota(db_session, user.user_id)
        assert exc_info.value.code == "QUOTA_RESTRICTED"

    @pytest.mark.asyncio
    async def test_daily_cap_checked_at_admission(self, db_session, user_factory):
        user = await user_factory(daily_token_limit=100)
        await usage_ledger.record_usage(db_session, user.user_id, "/api/edit-chunk", 60, 39)
        # 99 < 100: admitted, and the call may overshoot
        await quota.enforce_quota(db_session, user.user_id)

        await usage_ledger.record_usage(db_session, user.user_id, "/api/edit-chunk", 1, 0)
        with pytest.raises(RateLimitError, match="Daily token limit exceeded"):
            await quota.enforce_quota(db_session, user.user_id)

    @pytest.mark.asyncio
    async def test_monthly_cap(self, db_session, user_factory):
        user = await user_factory(daily_token_limit=-1, monthly_token_limit=50)
        await usage_ledger.record_usage(db_session, user.user_id, "/api/edit-chunk", 50, 0)
        with pytest.raises(RateLimitError) as exc_info:
            await quota.enforce_quota(db_session, user.user_id)
        assert exc_info.value.code == "MONTHLY_LIMIT_EXCEEDED"

    @pytest.mark.asyncio
    async def test_yesterday_does_not_count_toward_today(self, db_session, user_factory):
        user = await user_factory(daily_token_limit=100)
        yesterday = datetime.now(timezone.utc) - timedelta(days=1, hours=1)
        db_session.add(
            UsageLog(
                user_id=user.user_id,
                endpoint="/api/edit-chunk",
                tokens_input=500,
                tokens_output=0,
                created_at=yesterday,
            )
        )
        await db_session.commit()

        await quota.enforce_quota(db_session, user.user_id)

    @pytest.mark.asyncio
    async def test_users_do_not_share_ledgers(self, db_session, user_factory):
        heavy = await user_factory(daily_token_limit=100)
        light = await user_factory(daily_token_limit=100)
        await usage_ledger.record_usage(db_session, heavy.user_id, "/api/edit-chunk", 200, 0)

        with pytest.raises(RateLimitError):
            await quota.enforce_quota(db_session, heavy.user_id)
        await quota.enforce_quota(db_session, light.user_id)

        assert (await usage_ledger.daily_total(db_session, light.user_id)).total == 0

    @pytest.mark.asyncio
    async def test_usage_row_defaults_to_utc_now(self, db_session, user_factory):
        user = await user_factory()
        before = utcnow()
        entry = UsageLog(user_id=user.user_id, endpoint="/api/edit-chunk")
        db_session.add(entry)
        await db_session.flush()

        assert entry.created_at.tzinfo is not None
        assert before <= as_utc(entry.created_at) <= utcnow()


class TestUsageEndpoints:
    @pytest.mark.asyncio
    async def test_usage_summary(self, test_client, db_session, user_factory, headers_for):
        user = await user_factory(daily_token_limit=100, monthly_token_limit=-1)
        await usage_ledger.record_usage(db_session, user.user_id, "/api/edit-chunk", 50, 25)

        resp = await test_client.get("/api/usage", headers=headers_for(user))
        assert resp.status_code == 200
        data = resp.json()
        assert data["daily"]["total"] == 75
        assert data["daily"]["limit"] == 100
        assert data["daily"]["percentage"] == 75
        assert data["daily"]["isUnlimited"] is False
        assert data["monthly"]["isUnlimited"] is True
        assert data["monthly"]["percentage"] is None

    @pytest.mark.asyncio
    async def test_usage_requires_auth(self, test_client):
        assert (await test_client.get("/api/usage")).status_code == 401

    @pytest.mark.asyncio
    async def test_history_newest_first_and_limited(
        self, test_client, db_session, user_factory, headers_for
    ):
        user = await user_factory()
        other = await user_factory()
        base = datetime.now(timezone.utc) - timedelta(minutes=10)
        for i in range(3):
            db_session.add(
                UsageLog(
                    user_id=user.user_id,
                    endpoint="/api/edit-chunk",
                    tokens_input=i + 1,
                    tokens_output=1,
                    created_at=base + timedelta(minutes=i),
                )
            )
        await usage_ledger.record_usage(db_session, other.user_id, "/api/edit-chunk", 99, 0)
        await db_session.commit()

        resp = await test_client.get("/api/usage/history", headers=headers_for(user))
        history = resp.json()["history"]
        assert [h["tokensInput"] for h in history] == [3, 2, 1]
        assert history[0]["tokensTotal"] == 4

        limited = await test_client.get(
            "/api/usage/history?limit=2", headers=headers_for(user)
        )
        assert len(limited.json()["history"]) == 2

    @pytest.mark.parametrize(
        "limit,expected",
        [(None, 50), (0, 1), (-5, 1), (10, 10), (1000, 200)],
    )
    def test_history_limit_clamped(self, limit, expected):
        assert usage_ledger.clamp_history_limit(limit) == expected

    @pytest.mark.asyncio
    async def test_history_non_numeric_limit_uses_default(
        self, test_client, user_factory, headers_for
    ):
        user = await user_factory()
        resp = await test_client.get(
            "/api/usage/history?limit=abc", headers=headers_for(user)
        )
        assert resp.status_code == 200
        assert resp.json()["history"] == []

    @pytest.mark.parametrize(
        "raw,expected",
        [("25", 25), ("2abc", 2), (" 7 ", 7), ("-3", -3), ("abc", 50), ("", 50), (None, 50)],
    )
    def test_history_limit_reads_leading_digits(self, raw, expected):
        assert parse_leading_int(raw, usage_ledger.HISTORY_DEFAULT_LIMIT) == expected

    @pytest.mark.asyncio
    async def test_history_limit_with_trailing_text(
        self, test_client, db_session, user_factory, headers_for
    ):
        user = await user_factory()
        for tokens in (1, 2, 3):
            await usage_ledger.record_usage(
                db_session, user.user_id, "/api/edit-chunk", tokens, 1
            )
        await db_session.commit()

        resp = await test_client.get(
            "/api/usage/history?limit=2abc", headers=headers_for(user)
        )
        assert resp.status_code == 200
        assert len(resp.json()["history"]) == 2
