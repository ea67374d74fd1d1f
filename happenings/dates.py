"""Date key helpers anchored to the America/Denver civil calendar.

A date key is a ``YYYY-MM-DD`` string naming a Denver-local calendar day. All
arithmetic is done on :class:`datetime.date`, which has no notion of DST, so
stepping across a daylight-saving boundary never shifts a key.
"""

from __future__ import annotations

import calendar
import re
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

DENVER_TZ = ZoneInfo("America/Denver")

DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_date_key_pattern = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class InvalidDateKeyError(ValueError):
    """Raised when a value is not a real ``YYYY-MM-DD`` calendar date."""


def is_valid_date_key(value: object) -> bool:
    """Return True for a strict ``YYYY-MM-DD`` string naming a real day."""
    if not isinstance(value, str) or not _date_key_pattern.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_date_key(value: object) -> date:
    """Parse a date key, raising :class:`InvalidDateKeyError` when malformed."""
    if not isinstance(value, str) or not _date_key_pattern.match(value):
        raise InvalidDateKeyError(f"Invalid date key {value!r}; expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidDateKeyError(f"Invalid date key {value!r}: {exc}") from exc


def to_date_key(value: date) -> str:
    return value.isoformat()


def add_days(date_key: str, days: int) -> str:
    return to_date_key(parse_date_key(date_key) + timedelta(days=days))


def days_between(start_key: str, end_key: str) -> int:
    """Return the signed number of days from ``start_key`` to ``end_key``."""
    return (parse_date_key(end_key) - parse_date_key(start_key)).days


def weekday_of(value: date) -> int:
    """Return the weekday index with 0 = Sunday."""
    return (value.weekday() + 1) % 7


def weekday_index(date_key: str) -> int:
    return weekday_of(parse_date_key(date_key))


def day_name_from_date_key(date_key: str) -> str:
    return DAY_NAMES[weekday_index(date_key)]


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> str | None:
    """Return the ``n``-th ``weekday`` (0 = Sunday) of a month as a date key.

    ``month`` is 1-based and may overflow (13 is January of the next year).
    ``n`` counts from the start of the month, or from the end when negative
    (-1 = last). Returns None when the month has no such day, e.g. a 5th
    Tuesday in a four-Tuesday month.
    """
    if n == 0:
        return None
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    last_day = calendar.monthrange(year, month)[1]

    if n > 0:
        first = date(year, month, 1)
        offset = (weekday - weekday_of(first)) % 7
        day = 1 + offset + (n - 1) * 7
    else:
        last = date(year, month, last_day)
        offset = (weekday_of(last) - weekday) % 7
        day = last_day - offset - (abs(n) - 1) * 7

    if day < 1 or day > last_day:
        return None
    return to_date_key(date(year, month, day))


def ordinal_in_month(date_key: str) -> int:
    """Return which occurrence of its weekday ``date_key`` is (1 = first)."""
    return (parse_date_key(date_key).day - 1) // 7 + 1


def date_key_from_datetime(moment: datetime) -> str:
    """Return the Denver calendar date of an instant.

    Naive datetimes are treated as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return to_date_key(moment.astimezone(DENVER_TZ).date())


def today_key(now: datetime | None = None) -> str:
    """Return today's Denver date key; the only place the clock is read."""
    return date_key_from_datetime(now or datetime.now(UTC))


def format_date_key_for_display(date_key: str) -> str:
    """Format a key as ``"Sunday, January 18, 2026"``."""
    value = parse_date_key(date_key)
    return (
        f"{DAY_NAMES[weekday_of(value)]}, {MONTH_NAMES[value.month - 1]} "
        f"{value.day}, {value.year}"
    )


def format_date_key_short(date_key: str) -> str:
    """Format a key as ``"Sun, Jan 18"``."""
    value = parse_date_key(date_key)
    return (
        f"{DAY_NAMES[weekday_of(value)][:3]}, {MONTH_NAMES[value.month - 1][:3]} "
        f"{value.day}"
    )


def format_date_key_for_email(date_key: str) -> str:
    """Format a key as ``"01-18-2026"``."""
    value = parse_date_key(date_key)
    return f"{value.month:02d}-{value.day:02d}-{value.year}"
