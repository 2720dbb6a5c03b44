"""
Quota enforcement against the usage ledger.

Limit semantics: -1 unlimited, 0 restricted, >0 cap in tokens.
"""

import logging
import math
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.core import usage_ledger
from book_editor.core.errors import NotFoundError, RateLimitError
from book_editor.models.iam.users import User
from book_editor.models.pydantic_models.core_models import UsageTotals, UsageWindow

logger = logging.getLogger(__name__)

UNLIMITED = -1
RESTRICTED = 0


def usage_percentage(total: int, limit: int) -> int | None:
    if limit <= 0:
        return None
    # halves round up (12.5 -> 13)
    return max(0, min(100, math.floor(100 * total / limit + 0.5)))


def usage_window(totals: UsageTotals, limit: int) -> UsageWindow:
    return UsageWindow(
        input=totals.input,
        output=totals.output,
        total=totals.total,
        limit=limit,
        percentage=usage_percentage(totals.total, limit),
        is_unlimited=limit == UNLIMITED,
        is_restricted=limit == RESTRICTED,
    )


async def enforce_quota(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Raise ``RateLimitError`` if *user_id* may not spend more tokens now."""
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        raise NotFoundError("User")

    daily_limit = user.daily_token_limit
    monthly_limit = user.monthly_token_limit

    if daily_limit == RESTRICTED or monthly_limit == RESTRICTED:
        logger.info(f"Quota rejected for restricted user {user_id}")
        raise RateLimitError(
            "Your account is restricted from using the AI editor",
            code="QUOTA_RESTRICTED",
        )

    if daily_limit > 0:
        daily = await usage_ledger.daily_total(db, user_id)
        if daily.total >= daily_limit:
            logger.info(f"Daily quota exceeded for user {user_id}: {daily.total}/{daily_limit}")
            raise RateLimitError("Daily token limit exceeded", code="DAILY_LIMIT_EXCEEDED")

    if monthly_limit > 0:
        monthly = await usage_ledger.monthly_total(db, user_id)
        if monthly.total >= monthly_limit:
            logger.info(
                f"Monthly quota exceeded for user {user_id}: {monthly.total}/{monthly_limit}"
            )
            raise RateLimitError(
                "Monthly token limit exceeded", code="MONTHLY_LIMIT_EXCEEDED"
            )
