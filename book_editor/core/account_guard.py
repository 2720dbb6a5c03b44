"""
Failed-login tracking and temporary lockout.

State lives on the User row (``failed_login_attempts``, ``locked_until``).
Callers mutate the row through these helpers and commit themselves.
"""

import math
from datetime import datetime, timedelta

from book_editor.config import settings
from book_editor.core.errors import RateLimitError
from book_editor.utils import as_utc, utcnow


def remaining_lockout_minutes(user, now: datetime | None = None) -> int:
    locked_until = as_utc(user.locked_until)
    if locked_until is None:
        return 0
    now = now or utcnow()
    if locked_until <= now:
        return 0
    return math.ceil((locked_until - now).total_seconds() / 60)


def check_lockout(user, now: datetime | None = None) -> bool:
    """Raise if *user* is inside an active lockout.

    Returns True when an expired lockout was cleared on the row, so the
    caller knows it has a pending write.
    """
    if user.locked_until is None:
        return False

    now = now or utcnow()
    minutes_left = remaining_lockout_minutes(user, now)
    if minutes_left > 0:
        raise RateLimitError(
            f"Account locked. Try again in {minutes_left} minute(s).",
            code="ACCOUNT_LOCKED",
        )

    user.failed_login_attempts = 0
    user.locked_until = None
    return True


def register_failure(user, now: datetime | None = None) -> bool:
    """Count a failed password check. Returns True if this failure locked the account."""
    attempts = (user.failed_login_attempts or 0) + 1
    user.failed_login_attempts = attempts
    if attempts >= settings.max_failed_login_attempts:
        user.locked_until = (now or utcnow()) + timedelta(
            minutes=settings.lockout_duration_minutes
        )
        return True
    return False


def register_success(user) -> None:
    user.failed_login_attempts = 0
    user.locked_until = None
