"""
services/schedule_calculator.py
--------------------------------
Computes when a recurring payment is next due.

All arithmetic is done on timezone-aware UTC datetimes, so daylight-saving
transitions of the host clock never shift a schedule.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

from models.recurring import FREQUENCIES

_FIXED_INTERVALS = {
    "every_minute": timedelta(minutes=1),
    "every_5_minutes": timedelta(minutes=5),
    "every_15_minutes": timedelta(minutes=15),
    "every_30_minutes": timedelta(minutes=30),
    "hourly": timedelta(hours=1),
}

DEFAULT_DAY_OF_WEEK = 1  # Monday (0 = Sunday)
DEFAULT_DAY_OF_MONTH = 1


def parse_time_of_day(time_of_day: str) -> tuple[int, int]:
    """
    Parse an "HH:MM" string.

    Raises:
        ValueError: If the string is not a valid 24h time.
    """
    try:
        hours_str, minutes_str = time_of_day.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time of day '{time_of_day}', expected HH:MM") from None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time of day '{time_of_day}', expected HH:MM")
    return hours, minutes


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def calculate_next_run_at(
    frequency: str,
    time_of_day: str,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    from_dt: Optional[datetime] = None,
) -> datetime:
    """
    Return the next execution instant strictly after `from_dt`.

    Args:
        frequency: One of FREQUENCIES.
        time_of_day: "HH:MM" (UTC); ignored by the minute/hour frequencies.
        day_of_week: 0 (Sunday) .. 6 (Saturday); weekly only, defaults to Monday.
        day_of_month: 1 .. 31; monthly only, defaults to 1. Clamped to the
            last day of shorter months.
        from_dt: Anchor instant; defaults to now. Naive values are taken as UTC.

    Raises:
        ValueError: On an unknown frequency or out-of-range parameters.
    """
    if frequency not in FREQUENCIES:
        raise ValueError(f"Invalid frequency '{frequency}'")

    now = _as_utc(from_dt) if from_dt else datetime.now(timezone.utc)

    if frequency in _FIXED_INTERVALS:
        return now + _FIXED_INTERVALS[frequency]

    hours, minutes = parse_time_of_day(time_of_day)
    at_time = {"hour": hours, "minute": minutes, "second": 0, "microsecond": 0}

    if frequency == "daily":
        next_run = now.replace(**at_time)
        if next_run <= now:
            next_run += timedelta(days=1)
        return next_run

    if frequency == "weekly":
        target = DEFAULT_DAY_OF_WEEK if day_of_week is None else day_of_week
        if not 0 <= target <= 6:
            raise ValueError(f"Invalid day of week {target}, expected 0 (Sunday) to 6 (Saturday)")
        next_run = now.replace(**at_time)
        current = (next_run.weekday() + 1) % 7  # datetime counts Monday as 0
        days_until = (target - current) % 7
        if days_until == 0 and next_run <= now:
            days_until = 7
        return next_run + timedelta(days=days_until)

    # monthly: relativedelta clamps `day` to the month's last valid day
    target = DEFAULT_DAY_OF_MONTH if day_of_month is None else day_of_month
    if not 1 <= target <= 31:
        raise ValueError(f"Invalid day of month {target}, expected 1 to 31")
    next_run = now + relativedelta(day=target, **at_time)
    if next_run <= now:
        next_run = now + relativedelta(months=1, day=target, **at_time)
    return next_run
