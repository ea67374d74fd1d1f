"""Occurrence expansion for happenings.

Expands an event's recurrence into concrete Denver date keys inside a closed
``[start_key, end_key]`` window, and groups many events by date for listing
pages and digests. Every function takes "today" or the window explicitly;
nothing here reads the clock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Literal

from .dates import (
    add_days,
    format_date_key_short,
    nth_weekday_of_month,
    parse_date_key,
    to_date_key,
    weekday_of,
)
from .recurrence import (
    RecurrenceDescriptor,
    build_rrule,
    check_recurrence_invariant,
    event_field,
    interpret_recurrence,
)

logger = logging.getLogger(__name__)

MAX_EVENTS = 200
MAX_TOTAL_OCCURRENCES = 500
MAX_OCCURRENCES_PER_EVENT = 40
DEFAULT_WINDOW_DAYS = 90
NEXT_OCCURRENCE_LOOKAHEAD_DAYS = 93

OccurrenceStatus = Literal["normal", "cancelled"]


@dataclass(frozen=True)
class Occurrence:
    date_key: str


@dataclass(frozen=True)
class NextOccurrence:
    date_key: str
    is_today: bool
    is_tomorrow: bool
    is_confident: bool


def _expand_weekly(weekday: int, step_days: int, start: date, end: date) -> list[str]:
    current = start + timedelta(days=(weekday - weekday_of(start)) % 7)
    keys: list[str] = []
    while current <= end:
        keys.append(to_date_key(current))
        current += timedelta(days=step_days)
    return keys


def _expand_monthly(
    weekday: int, ordinals: Iterable[int], start: date, end: date
) -> list[str]:
    start_key, end_key = to_date_key(start), to_date_key(end)
    keys: set[str] = set()
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        for ordinal in ordinals:
            key = nth_weekday_of_month(year, month, weekday, ordinal)
            if key and start_key <= key <= end_key:
                keys.add(key)
        month += 1
        if month > 12:
            month = 1
            year += 1
    return sorted(keys)


def _expand_descriptor(
    descriptor: RecurrenceDescriptor, start: date, end: date
) -> list[str]:
    start_key, end_key = to_date_key(start), to_date_key(end)

    if descriptor.frequency == "custom":
        return [
            key for key in descriptor.custom_dates or () if start_key <= key <= end_key
        ]

    if not descriptor.is_recurring:
        explicit = descriptor.explicit_date
        if explicit and start_key <= explicit <= end_key:
            return [explicit]
        return []

    weekday = descriptor.day_of_week_index
    if weekday is None or not descriptor.is_confident:
        return []

    if descriptor.rrule_text:
        anchor = parse_date_key(descriptor.explicit_date) if descriptor.explicit_date else start
        rule = build_rrule(
            descriptor.rrule_text, anchor, weekdays=descriptor.weekday_indexes
        )
        moments = rule.between(
            datetime.combine(start, time.min), datetime.combine(end, time.min), inc=True
        )
        return [to_date_key(moment.date()) for moment in moments]

    if descriptor.frequency == "monthly":
        return _expand_monthly(weekday, descriptor.ordinals or (), start, end)
    return _expand_weekly(weekday, 7 * descriptor.interval, start, end)


def expand_occurrences_for_event(
    event: Any,
    *,
    start_key: str,
    end_key: str,
    max_occurrences: int | None = None,
) -> list[Occurrence]:
    """Return the event's occurrences inside ``[start_key, end_key]``.

    The result is ascending and free of duplicates; an empty list is a
    normal outcome. A recurring pattern always wins over ``event_date``, so a
    weekly event never collapses to its anchor date. Raises
    :class:`~happenings.dates.InvalidDateKeyError` for malformed keys.
    """
    start = parse_date_key(start_key)
    end = parse_date_key(end_key)
    descriptor = interpret_recurrence(event)
    if descriptor.end_date:
        end = min(end, parse_date_key(descriptor.end_date))
    if start > end:
        return []

    keys = _expand_descriptor(descriptor, start, end)
    check_recurrence_invariant(
        descriptor,
        len(keys),
        event_id=event_field(event, "id"),
        window_days=(end - start).days,
        start_key=to_date_key(start),
        end_key=to_date_key(end),
    )
    if max_occurrences is not None:
        keys = keys[:max_occurrences]
    return [Occurrence(date_key=key) for key in keys]


def compute_next_occurrence(event: Any, *, today_key: str) -> NextOccurrence:
    """Return the next date (on or after ``today_key``) the event happens.

    One-time events report their own date even when it has passed. When no
    date can be computed, ``today_key`` is returned with ``is_confident``
    set to False.
    """
    descriptor = interpret_recurrence(event)
    tomorrow_key = add_days(today_key, 1)
    date_key: str | None = None
    confident = True

    if descriptor.frequency == "custom":
        dates = descriptor.custom_dates or ()
        upcoming = [key for key in dates if key >= today_key]
        date_key = upcoming[0] if upcoming else (dates[-1] if dates else None)
    elif not descriptor.is_recurring:
        date_key = descriptor.explicit_date
        confident = descriptor.frequency == "one-time"
    else:
        occurrences = expand_occurrences_for_event(
            event,
            start_key=today_key,
            end_key=add_days(today_key, NEXT_OCCURRENCE_LOOKAHEAD_DAYS),
            max_occurrences=1,
        )
        date_key = occurrences[0].date_key if occurrences else None

    if date_key is None:
        return NextOccurrence(
            date_key=today_key, is_today=True, is_tomorrow=False, is_confident=False
        )
    return NextOccurrence(
        date_key=date_key,
        is_today=date_key == today_key,
        is_tomorrow=date_key == tomorrow_key,
        is_confident=confident,
    )


@dataclass(frozen=True)
class OccurrenceOverride:
    """Per-date adjustments for one occurrence of a series."""

    event_id: str
    date_key: str
    status: OccurrenceStatus = "normal"
    override_start_time: str | None = None
    override_notes: str | None = None
    override_cover_image_url: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"


OverrideMap = dict[str, OccurrenceOverride]


def build_override_key(event_id: str, date_key: str) -> str:
    return f"{event_id}:{date_key}"


def build_override_map(overrides: Iterable[OccurrenceOverride]) -> OverrideMap:
    return {
        build_override_key(override.event_id, override.date_key): override
        for override in overrides
    }


@dataclass(frozen=True)
class OccurrenceEntry:
    event: Any
    date_key: str
    override: OccurrenceOverride | None = None

    @property
    def is_cancelled(self) -> bool:
        return bool(self.override and self.override.is_cancelled)

    @property
    def start_time(self) -> str | None:
        if self.override and self.override.override_start_time:
            return self.override.override_start_time
        return event_field(self.event, "start_time")


@dataclass
class ExpansionMetrics:
    events_processed: int = 0
    events_skipped: int = 0
    total_occurrences: int = 0
    cancelled_count: int = 0
    was_capped: bool = False


@dataclass
class ExpansionResult:
    grouped_events: dict[str, list[OccurrenceEntry]] = field(default_factory=dict)
    cancelled_occurrences: list[OccurrenceEntry] = field(default_factory=list)
    unknown_events: list[Any] = field(default_factory=list)
    metrics: ExpansionMetrics = field(default_factory=ExpansionMetrics)


def _start_time_sort_key(entry: OccurrenceEntry) -> str:
    return entry.start_time or "99:99"


def expand_and_group_events(
    events: Sequence[Any],
    *,
    start_key: str,
    end_key: str | None = None,
    max_occurrences: int = MAX_OCCURRENCES_PER_EVENT,
    max_events: int = MAX_EVENTS,
    max_total_occurrences: int = MAX_TOTAL_OCCURRENCES,
    override_map: OverrideMap | None = None,
) -> ExpansionResult:
    """Expand many events and group every occurrence by date key.

    Dates are ordered ascending and entries within a date by their effective
    start time. Cancelled occurrences are kept apart so callers can offer a
    "show cancelled" toggle. Events whose schedule cannot be interpreted
    with confidence are listed in ``unknown_events``.
    """
    end_key = end_key or add_days(start_key, DEFAULT_WINDOW_DAYS)
    override_map = override_map or {}
    result = ExpansionResult()
    metrics = result.metrics
    grouped: dict[str, list[OccurrenceEntry]] = {}

    to_process = list(events[:max_events])
    metrics.events_skipped = len(events) - len(to_process)
    metrics.was_capped = metrics.events_skipped > 0

    for event in to_process:
        if metrics.total_occurrences >= max_total_occurrences:
            metrics.was_capped = True
            break
        metrics.events_processed += 1

        occurrences = expand_occurrences_for_event(
            event,
            start_key=start_key,
            end_key=end_key,
            max_occurrences=max_occurrences,
        )
        if not occurrences:
            if not interpret_recurrence(event).is_confident:
                result.unknown_events.append(event)
            continue

        event_id = event_field(event, "id")
        for occurrence in occurrences:
            if metrics.total_occurrences >= max_total_occurrences:
                metrics.was_capped = True
                break
            metrics.total_occurrences += 1
            entry = OccurrenceEntry(
                event=event,
                date_key=occurrence.date_key,
                override=override_map.get(
                    build_override_key(event_id, occurrence.date_key)
                ),
            )
            if entry.is_cancelled:
                metrics.cancelled_count += 1
                result.cancelled_occurrences.append(entry)
            else:
                grouped.setdefault(occurrence.date_key, []).append(entry)

    result.grouped_events = {
        date_key: sorted(grouped[date_key], key=_start_time_sort_key)
        for date_key in sorted(grouped)
    }
    result.cancelled_occurrences.sort(key=lambda entry: entry.date_key)

    if metrics.was_capped:
        logger.warning(
            "Occurrence expansion capped: processed %d of %d events, %d occurrences",
            metrics.events_processed,
            len(events),
            metrics.total_occurrences,
        )
    logger.debug(
        "Expanded %d events into %d occurrences (%d cancelled) for %s..%s",
        metrics.events_processed,
        metrics.total_occurrences,
        metrics.cancelled_count,
        start_key,
        end_key,
    )
    return result


def format_date_group_header(date_key: str, today_key: str) -> str:
    """Return "Today", "Tomorrow", or a short date such as "Fri, Jan 3"."""
    if date_key == today_key:
        return "Today"
    if date_key == add_days(today_key, 1):
        return "Tomorrow"
    return format_date_key_short(date_key)
