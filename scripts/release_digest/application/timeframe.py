"""
Timeframe resolution
--------------------
Turns a HoursBack / DaysBack / OnDate / DateRange descriptor into one
validated DateWindow. `now` is always passed in, so resolve() is a pure
function of its arguments.

The 7-day cap bounds how far back the early-stop scan has to walk and how
many rows a warehouse query can return.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from release_digest.domain.entities import (
    DateRange,
    DateWindow,
    DaysBack,
    HoursBack,
    OnDate,
    Timeframe,
    inclusive_day_span,
)
from release_digest.domain.errors import (
    FutureWindowError,
    InvalidWindowError,
    WindowTooLargeError,
)

MAX_WINDOW_DAYS = 7

# millisecond precision: 23:59:59.999
_END_OF_DAY = time(23, 59, 59, 999000)


def _utc(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def start_of_day(value: datetime | date) -> datetime:
    return datetime.combine(_utc(value).date(), time.min, tzinfo=timezone.utc)


def end_of_day(value: datetime | date) -> datetime:
    return datetime.combine(_utc(value).date(), _END_OF_DAY, tzinfo=timezone.utc)


def _positive(value: int, unit: str) -> int:
    if value <= 0:
        raise InvalidWindowError(f"{unit} must be a positive number, got: {value}")
    return value


def _compute(descriptor: Timeframe, now: datetime) -> tuple[datetime, datetime]:
    if isinstance(descriptor, HoursBack):
        hours = _positive(descriptor.hours, "Hours")
        return now - timedelta(hours=hours), now

    if isinstance(descriptor, DaysBack):
        days = _positive(descriptor.days, "Days")
        anchor = descriptor.end_anchor if descriptor.end_anchor is not None else now
        end = end_of_day(anchor)
        return start_of_day(end - timedelta(days=days - 1)), end

    if isinstance(descriptor, OnDate):
        return start_of_day(descriptor.day), end_of_day(descriptor.day)

    if isinstance(descriptor, DateRange):
        return start_of_day(descriptor.start), end_of_day(descriptor.end)

    raise InvalidWindowError(f"Unknown timeframe type: {type(descriptor).__name__}")


def validate_window(start: datetime, end: datetime, now: datetime) -> None:
    if start > end:
        raise InvalidWindowError("Start date cannot be after end date")

    if start > now:
        raise FutureWindowError("Start date cannot be in the future")

    days = inclusive_day_span(start, end)
    if days > MAX_WINDOW_DAYS:
        raise WindowTooLargeError(days, MAX_WINDOW_DAYS)


def resolve(descriptor: Timeframe, now: datetime) -> DateWindow:
    """
    Build the [start_date, end_date] window for `descriptor` as seen at `now`.

    Raises:
        InvalidWindowError: start after end, or a non-positive size.
        FutureWindowError: the window starts after `now`.
        WindowTooLargeError: more than 7 inclusive calendar days.
    """
    now = _utc(now)
    start, end = _compute(descriptor, now)
    validate_window(start, end, now)
    return DateWindow(start_date=start, end_date=end)


def describe(descriptor: Timeframe) -> str:
    """Short human label for log lines and output headers."""
    if isinstance(descriptor, HoursBack):
        return f"in the last {descriptor.hours} hours"
    if isinstance(descriptor, DaysBack):
        return f"in the last {descriptor.days} days"
    if isinstance(descriptor, OnDate):
        return f"on {descriptor.day.isoformat()}"
    if isinstance(descriptor, DateRange):
        return f"from {descriptor.start.isoformat()} to {descriptor.end.isoformat()}"
    return str(descriptor)
