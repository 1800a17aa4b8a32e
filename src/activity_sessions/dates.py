"""Local-time helpers for millisecond timestamps and calendar dates."""

from __future__ import annotations

from datetime import datetime, timedelta

DATE_FMT = "%Y-%m-%d"


class InvalidDateError(ValueError):
    """Raised for a date string that is not ``YYYY-MM-DD``."""


def to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000)


def to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def now_ms() -> int:
    return to_ms(datetime.now())


def parse_date(value: str) -> datetime:
    """Parse ``YYYY-MM-DD`` into local midnight."""
    try:
        parsed = datetime.strptime(value.strip(), DATE_FMT)
    except (AttributeError, ValueError) as exc:
        raise InvalidDateError(f"Invalid date {value!r}; expected YYYY-MM-DD") from exc
    return _start_of_day(parsed)


def day_window(value: str) -> tuple[int, int]:
    """Return the half-open local ``[00:00, next 00:00)`` window of a date."""
    start = parse_date(value)
    return to_ms(start), to_ms(start + timedelta(days=1))


def format_date(ms: int) -> str:
    return to_datetime(ms).strftime(DATE_FMT)


def format_time_range(start_ms: int, end_ms: int) -> str:
    if start_ms <= 0 or end_ms <= start_ms:
        return ""
    return f"{to_datetime(start_ms):%H:%M}-{to_datetime(end_ms):%H:%M}"


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
