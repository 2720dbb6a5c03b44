"""
Usage ledger: append-only token accounting per user.

Windows are UTC: "today" starts at 00:00 UTC, "this month" at 00:00 UTC on
the 1st.
"""

import uuid
from datetime import datetime

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.models.pydantic_models.core_models import SystemUsageStats, UsageTotals
from book_editor.models.usage import UsageLog
from book_editor.utils import start_of_day, start_of_month, utcnow

HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 200


async def record_usage(
    db: AsyncSession,
    user_id: uuid.UUID,
    endpoint: str,
    tokens_input: int = 0,
    tokens_output: int = 0,
    model: str | None = None,
    project_id: str | None = None,
) -> UsageLog:
    entry = UsageLog(
        user_id=user_id,
        endpoint=endpoint,
        tokens_input=max(0, int(tokens_input)),
        tokens_output=max(0, int(tokens_output)),
        model=model or None,
        project_id=project_id or None,
        created_at=utcnow(),
    )
    db.add(entry)
    await db.commit()
    return entry


async def _totals_since(
    db: AsyncSession, user_id: uuid.UUID, since: datetime
) -> UsageTotals:
    row = (
        await db.execute(
            select(
                func.coalesce(func.sum(UsageLog.tokens_input), 0),
                func.coalesce(func.sum(UsageLog.tokens_output), 0),
            ).where(UsageLog.user_id == user_id, UsageLog.created_at >= since)
        )
    ).one()
    tokens_in, tokens_out = int(row[0]), int(row[1])
    return UsageTotals(input=tokens_in, output=tokens_out, total=tokens_in + tokens_out)


async def daily_total(
    db: AsyncSession, user_id: uuid.UUID, now: datetime | None = None
) -> UsageTotals:
    return await _totals_since(db, user_id, start_of_day(now or utcnow()))


async def monthly_total(
    db: AsyncSession, user_id: uuid.UUID, now: datetime | None = None
) -> UsageTotals:
    return await _totals_since(db, user_id, start_of_month(now or utcnow()))


def clamp_history_limit(limit: int | None) -> int:
    if limit is None:
        return HISTORY_DEFAULT_LIMIT
    return max(1, min(limit, HISTORY_MAX_LIMIT))


async def history(
    db: AsyncSession, user_id: uuid.UUID, limit: int = HISTORY_DEFAULT_LIMIT
) -> list[UsageLog]:
    result = await db.execute(
        select(UsageLog)
        .where(UsageLog.user_id == user_id)
        .order_by(UsageLog.created_at.desc())
        .limit(clamp_history_limit(limit))
    )
    return list(result.scalars().all())


async def system_stats(db: AsyncSession) -> SystemUsageStats:
    row = (
        await db.execute(
            select(
                func.count(UsageLog.usage_log_id),
                func.coalesce(
                    func.sum(UsageLog.tokens_input + UsageLog.tokens_output), 0
                ),
                func.count(distinct(UsageLog.user_id)),
            )
        )
    ).one()
    return SystemUsageStats(
        total_calls=int(row[0]), total_tokens=int(row[1]), unique_users=int(row[2])
    )


async def _all_totals_since(
    db: AsyncSession, since: datetime
) -> dict[uuid.UUID, UsageTotals]:
    rows = (
        await db.execute(
            select(
                UsageLog.user_id,
                func.coalesce(func.sum(UsageLog.tokens_input), 0),
                func.coalesce(func.sum(UsageLog.tokens_output), 0),
            )
            .where(UsageLog.created_at >= since)
            .group_by(UsageLog.user_id)
        )
    ).all()
    return {
        user_id: UsageTotals(
            input=int(tokens_in),
            output=int(tokens_out),
            total=int(tokens_in) + int(tokens_out),
        )
        for user_id, tokens_in, tokens_out in rows
    }


async def all_daily_totals(db: AsyncSession) -> dict[uuid.UUID, UsageTotals]:
    return await _all_totals_since(db, start_of_day(utcnow()))


async def all_monthly_totals(db: AsyncSession) -> dict[uuid.UUID, UsageTotals]:
    return await _all_totals_since(db, start_of_month(utcnow()))
