"""Data for the weekly happenings digest.

Covers the seven days starting on the send day, drops cancelled occurrences
and schedules too vague to list, and groups the rest by date. Rendering the
email is left to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .dates import DAY_NAMES, MONTH_NAMES, add_days, parse_date_key, weekday_of
from .occurrences import (
    OccurrenceOverride,
    build_override_key,
    build_override_map,
    expand_occurrences_for_event,
)
from .recurrence import event_field, interpret_recurrence

logger = logging.getLogger(__name__)

DIGEST_WINDOW_DAYS = 7


@dataclass(frozen=True)
class HappeningOccurrence:
    event: Any
    date_key: str
    display_date: str
    override: OccurrenceOverride | None = None

    @property
    def start_time(self) -> str | None:
        if self.override and self.override.override_start_time:
            return self.override.override_start_time
        return event_field(self.event, "start_time")


@dataclass
class HappeningsDigest:
    start_key: str
    end_key: str
    by_date: dict[str, list[HappeningOccurrence]] = field(default_factory=dict)
    total_count: int = 0
    venue_count: int = 0


def get_digest_date_range(today_key: str) -> tuple[str, str]:
    """Return the inclusive ``(start, end)`` keys of the digest week."""
    return today_key, add_days(today_key, DIGEST_WINDOW_DAYS - 1)


def format_day_header(date_key: str) -> str:
    """Format a key as ``"MONDAY, JANUARY 27"``."""
    value = parse_date_key(date_key)
    return f"{DAY_NAMES[weekday_of(value)]}, {MONTH_NAMES[value.month - 1]} {value.day}".upper()


def format_time_display(time: str | None) -> str:
    """Format ``"19:00:00"`` as ``"7:00 PM"``; empty input gives ``""``."""
    if not time:
        return ""
    hours, _, rest = time.partition(":")
    hour = int(hours)
    minute = rest[:2] or "00"
    display_hour = 12 if hour % 12 == 0 else hour % 12
    return f"{display_hour}:{minute} {'PM' if hour >= 12 else 'AM'}"


def _venue_id(event: Any) -> str | None:
    venue = event_field(event, "venue")
    if venue is not None:
        venue_id = event_field(venue, "id")
        if venue_id:
            return venue_id
    return event_field(event, "venue_id")


def build_happenings_digest(
    events: Sequence[Any],
    *,
    today_key: str,
    overrides: Iterable[OccurrenceOverride] = (),
) -> HappeningsDigest:
    start_key, end_key = get_digest_date_range(today_key)
    override_map = build_override_map(overrides)
    digest = HappeningsDigest(start_key=start_key, end_key=end_key)
    venues: set[str] = set()

    for event in events:
        if not interpret_recurrence(event).is_confident:
            logger.debug("Skipping event %s with unclear schedule", event_field(event, "id"))
            continue
        event_id = event_field(event, "id")
        for occurrence in expand_occurrences_for_event(
            event, start_key=start_key, end_key=end_key
        ):
            override = override_map.get(build_override_key(event_id, occurrence.date_key))
            if override and override.is_cancelled:
                continue
            digest.by_date.setdefault(occurrence.date_key, []).append(
                HappeningOccurrence(
                    event=event,
                    date_key=occurrence.date_key,
                    display_date=format_day_header(occurrence.date_key),
                    override=override,
                )
            )
            digest.total_count += 1
            venue_id = _venue_id(event)
            if venue_id:
                venues.add(venue_id)

    digest.by_date = {
        date_key: sorted(
            digest.by_date[date_key],
            key=lambda item: item.start_time or "23:59:59",
        )
        for date_key in sorted(digest.by_date)
    }
    digest.venue_count = len(venues)
    return digest
