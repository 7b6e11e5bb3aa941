"""
Time helpers. All stored timestamps are naive UTC.
"""
import calendar
from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string with an explicit Z suffix."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def from_unix_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Convert a provider unix timestamp (seconds) to naive UTC."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def add_months(value: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def start_of_next_month(value: datetime) -> datetime:
    first = value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return datetime.combine(add_months(first.date(), 1), first.time())
