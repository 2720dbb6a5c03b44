import re
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(timestamp: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on the way back)."""
    if timestamp is None:
        return None
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_leading_int(value, default: int = 0) -> int:
    """Integer at the start of *value* ("25abc" -> 25), or *default* if there is none."""
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(value) if isinstance(value, str) else None
    return int(match.group(1)) if match else default
