"""iCalendar (.ics) export for expanded occurrences."""

from __future__ import annotations

import html
import re
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from .dates import DENVER_TZ, parse_date_key
from .occurrences import Occurrence
from .recurrence import event_field

DEFAULT_DURATION = timedelta(hours=2)

_tag_pattern = re.compile(r"<[^>]+>")
_time_pattern = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def _format_utc(dt: datetime) -> str:
    """Format an aware datetime as an RFC5545 UTC timestamp."""

    return dt.astimezone(UTC).replace(microsecond=0).strftime("%Y%m%dT%H%M%SZ")


def _parse_wall_time(value: Any) -> time | None:
    """Parse ``HH:MM`` or ``HH:MM:SS``; anything else counts as no time."""

    if not isinstance(value, str):
        return None
    match = _time_pattern.match(value.strip())
    if not match:
        return None
    hour, minute, second = (int(part or 0) for part in match.groups())
    if hour > 23 or minute > 59 or second > 59:
        return None
    return time(hour, minute, second)


def _escape_text(value: str | None) -> str:
    """Escape text for ICS fields and strip any HTML tags."""

    if not value:
        return ""
    stripped = _tag_pattern.sub("", html.unescape(value))
    normalized = stripped.replace("\r\n", "\n").replace("\r", "\n")
    return (
        normalized.replace("\\", "\\\\")
        .replace(";", r"\;")
        .replace(",", r"\,")
        .replace("\n", r"\n")
    )


def _location(event: Any) -> str | None:
    venue = event_field(event, "venue")
    if venue is not None and event_field(venue, "name"):
        return event_field(venue, "name")
    return event_field(event, "location") or event_field(event, "custom_location_name")


def _timing_lines(day: date, start: time | None, end: time | None) -> list[str]:
    if start is None:
        return [
            f"DTSTART;VALUE=DATE:{day:%Y%m%d}",
            f"DTEND;VALUE=DATE:{day + timedelta(days=1):%Y%m%d}",
        ]
    # Wall-clock times are Denver local; zoneinfo resolves the DST offset per day.
    starts_at = datetime.combine(day, start, tzinfo=DENVER_TZ)
    if end is not None:
        ends_at = datetime.combine(day, end, tzinfo=DENVER_TZ)
        if ends_at <= starts_at:
            ends_at += timedelta(days=1)
    else:
        ends_at = starts_at + DEFAULT_DURATION
    return [f"DTSTART:{_format_utc(starts_at)}", f"DTEND:{_format_utc(ends_at)}"]


def generate_occurrences_ics(
    event: Any,
    occurrences: Iterable[Occurrence],
    *,
    now: datetime | None = None,
) -> str:
    """Return ICS text with one VEVENT per occurrence of ``event``."""

    dtstamp = _format_utc(now or datetime.now(UTC))
    event_id = event_field(event, "id")
    start = _parse_wall_time(event_field(event, "start_time"))
    end = _parse_wall_time(event_field(event, "end_time"))
    summary = _escape_text(event_field(event, "title"))
    description = _escape_text(event_field(event, "description"))
    location = _escape_text(_location(event))

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Happenings//EN",
        "CALSCALE:GREGORIAN",
    ]
    for occurrence in occurrences:
        day = parse_date_key(occurrence.date_key)
        lines.extend(
            [
                "BEGIN:VEVENT",
                f"UID:{event_id}-{occurrence.date_key}@happenings",
                f"DTSTAMP:{dtstamp}",
                *_timing_lines(day, start, end),
                f"SUMMARY:{summary}",
                f"DESCRIPTION:{description}",
                f"LOCATION:{location}",
                "END:VEVENT",
            ]
        )
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"
