"""Local-time helpers and the period window arithmetic behind the stats queries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from .exceptions import ValidationError

PERIODS = ("daily", "weekly", "monthly")
ONE_MS = timedelta(milliseconds=1)


@dataclass(frozen=True, slots=True)
class DateRange:
    start: str
    end: str


def local_now(tz_name: str) -> datetime:
    """Current wall-clock time in ``tz_name`` as a naive datetime."""

    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def format_local(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds")


def is_before_nine(moment: datetime) -> bool:
    return moment.hour < 9


def calculate_date_range(
    period: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DateRange:
    """Resolve a period tag to an inclusive ``[start, end]`` window.

    Explicit bounds are returned untouched when both are given. Otherwise the
    window is the day, Monday-start week or calendar month containing ``now``,
    ending on its last millisecond.
    """

    if period not in PERIODS:
        raise ValidationError(f"Unknown period {period!r}; expected one of {', '.join(PERIODS)}")

    if start_date and end_date:
        return DateRange(start=start_date, end=end_date)

    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "daily":
        start = midnight
        end = start + timedelta(days=1) - ONE_MS
    elif period == "weekly":
        start = midnight - timedelta(days=midnight.weekday())
        end = start + timedelta(days=7) - ONE_MS
    else:
        start = midnight.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        end = next_month - ONE_MS

    return DateRange(start=format_local(start), end=format_local(end))


__all__ = [
    "PERIODS",
    "DateRange",
    "local_now",
    "format_local",
    "is_before_nine",
    "calculate_date_range",
]
