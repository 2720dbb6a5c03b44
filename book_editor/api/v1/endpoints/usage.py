"""
Token usage reporting for the caller and, for admins, the whole system.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.api.v1.helpers.authentication import (
    AuthenticatedUser,
    require_admin,
    require_auth,
)
from book_editor.core import usage_ledger
from book_editor.core.auth_service import get_user_by_id
from book_editor.core.errors import NotFoundError
from book_editor.core.quota import usage_window
from book_editor.db.session import get_db
from book_editor.models.iam import User
from book_editor.models.pydantic_models.core_models import (
    UsageHistoryEntry,
    UsageSummary,
    UsageTotals,
    UserUsageView,
    UserView,
)
from book_editor.utils import parse_leading_int

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Usage"])


@router.get("/usage", response_model=UsageSummary)
async def get_usage(
    current_user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
):
    """Daily and monthly usage against the caller's limits."""
    user = await get_user_by_id(db, current_user.user_id)
    if user is None:
        raise NotFoundError("User")

    daily = await usage_ledger.daily_total(db, user.user_id)
    monthly = await usage_ledger.monthly_total(db, user.user_id)
    return UsageSummary(
        daily=usage_window(daily, user.daily_token_limit),
        monthly=usage_window(monthly, user.monthly_token_limit),
    )


@router.get("/usage/history")
async def get_usage_history(
    limit: str | None = None,
    current_user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
):
    """Most recent calls first. ``limit`` defaults to 50 and is clamped to 1..200."""
    parsed = parse_leading_int(limit, usage_ledger.HISTORY_DEFAULT_LIMIT)
    rows = await usage_ledger.history(db, current_user.user_id, parsed)
    entries = [
        UsageHistoryEntry(
            id=row.usage_log_id,
            endpoint=row.endpoint,
            tokens_input=row.tokens_input,
            tokens_output=row.tokens_output,
            tokens_total=row.tokens_input + row.tokens_output,
            model=row.model,
            project_id=row.project_id,
            created_at=row.created_at,
        )
        for row in rows
    ]
    return {"history": [e.model_dump(mode="json", by_alias=True) for e in entries]}


async def build_user_usage(db: AsyncSession) -> list[UserUsageView]:
    """Every user with today's and this month's totals, in three queries."""
    users = (
        (await db.execute(select(User).order_by(User.created_at)))
        .scalars()
        .all()
    )
    daily_map = await usage_ledger.all_daily_totals(db)
    monthly_map = await usage_ledger.all_monthly_totals(db)
    empty = UsageTotals()

    rows = []
    for user in users:
        view = UserView.from_user(user)
        rows.append(
            UserUsageView(
                **view.model_dump(),
                daily=usage_window(
                    daily_map.get(user.user_id, empty), user.daily_token_limit
                ),
                monthly=usage_window(
                    monthly_map.get(user.user_id, empty), user.monthly_token_limit
                ),
            )
        )
    return rows


@router.get("/admin/usage")
async def get_system_usage(
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    stats = await usage_ledger.system_stats(db)
    users = await build_user_usage(db)
    return {
        "system": stats.model_dump(mode="json", by_alias=True),
        "users": [u.model_dump(mode="json", by_alias=True) for u in users],
    }
