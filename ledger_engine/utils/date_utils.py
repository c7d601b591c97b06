"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from dateutil.relativedelta import relativedelta


def parse_date(value: Any) -> Optional[date]:
    """Coerce a date, datetime or ISO string (YYYY-MM-DD[...]) into a date.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def add_days(from_date: date, days: int) -> date:
    """Add calendar days to a date"""
    return from_date + timedelta(days=days)


def add_months(from_date: date, months: int, anchor_day: Optional[int] = None) -> date:
    """
    Add calendar months, clamping to the last day of shorter months.

    anchor_day keeps a monthly series on its original day-of-month:
    Jan 31 -> Feb 29 -> Mar 31 rather than drifting to the 29th.
    """
    day = anchor_day or from_date.day
    return from_date + relativedelta(months=months, day=day)


def days_until(target: date, today: date) -> int:
    """Signed number of days from today to target (negative when past)"""
    return (target - today).days


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
