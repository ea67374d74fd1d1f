"""Recurrence contract shared by the occurrence generator and the label path.

Both :func:`happenings.occurrences.expand_occurrences_for_event` and
:func:`label_from_recurrence` consume the same :class:`RecurrenceDescriptor`,
so a label can never describe a schedule the generator does not produce.

``day_of_week`` + ``recurrence_rule`` are the authoritative pattern.
``event_date`` only matters for one-time events, or as a fallback source for
the weekday/ordinal of legacy rows that lack one.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from typing import Any, Literal

from dateutil.rrule import MONTHLY, WEEKLY, rrule, rrulestr

from .dates import (
    DAY_NAMES,
    InvalidDateKeyError,
    ordinal_in_month,
    parse_date_key,
    to_date_key,
    weekday_index,
)

logger = logging.getLogger(__name__)

Frequency = Literal["one-time", "weekly", "biweekly", "monthly", "custom", "unknown"]

LEGACY_ORDINAL_TO_NUMBER: dict[str, int] = {
    "1st": 1,
    "2nd": 2,
    "3rd": 3,
    "4th": 4,
    "5th": 5,
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "last": -1,
}
NUMBER_TO_ORDINAL: dict[int, str] = {
    1: "1st",
    2: "2nd",
    3: "3rd",
    4: "4th",
    5: "5th",
    -1: "last",
}

_NON_ORDINAL_RULES = {"", "none", "weekly", "biweekly", "monthly", "custom"}
_BIWEEKLY_RULES = {"biweekly", "every other week", "every-other-week"}

_ordinal_split_pattern = re.compile(r"[/&,\s]+|\band\b")
_day_lookup: dict[str, int] = {
    alias: index
    for index, name in enumerate(DAY_NAMES)
    for alias in (name.lower(), f"{name.lower()}s", name[:3].lower())
}


@dataclass(frozen=True)
class RecurrenceDescriptor:
    """Normalized recurrence, decoupled from the stored field shapes."""

    is_recurring: bool
    frequency: Frequency
    day_name: str | None = None
    day_of_week_index: int | None = None
    interval: int = 1
    ordinals: tuple[int, ...] | None = None
    explicit_date: str | None = None
    custom_dates: tuple[str, ...] | None = None
    end_date: str | None = None
    is_confident: bool = True
    weekday_indexes: tuple[int, ...] | None = None
    rrule_text: str | None = None


def event_field(event: Any, name: str) -> Any:
    """Read a field from a storage row mapping or an attribute-style object."""
    if isinstance(event, Mapping):
        return event.get(name)
    return getattr(event, name, None)


def _optional_date_key(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return to_date_key(parse_date_key(value))


def _custom_date_keys(value: Any) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Iterable):
        raise InvalidDateKeyError(f"custom_dates must be a list of date keys, got {value!r}")
    return tuple(sorted({to_date_key(parse_date_key(item)) for item in value}))


def _day_index(value: Any) -> int | None:
    if not isinstance(value, str):
        return None
    return _day_lookup.get(value.strip().lower())


def _earliest(*keys: str | None) -> str | None:
    present = [key for key in keys if key]
    return min(present) if present else None


def parse_ordinals_from_recurrence_rule(rule: str | None) -> list[int]:
    """Return the numeric ordinals of a monthly rule such as ``"2nd and 4th"``.

    Returns an empty list for non-ordinal rules or when any token is not an
    ordinal word (so stray text never turns into a schedule).
    """
    if not rule:
        return []
    lowered = rule.strip().lower()
    if lowered in _NON_ORDINAL_RULES:
        return []
    ordinals: list[int] = []
    for part in _ordinal_split_pattern.split(lowered):
        if not part:
            continue
        ordinal = LEGACY_ORDINAL_TO_NUMBER.get(part)
        if ordinal is None:
            return []
        if ordinal not in ordinals:
            ordinals.append(ordinal)
    return ordinals


def order_ordinals(ordinals: Iterable[int]) -> tuple[int, ...]:
    """Deduplicate ordinals ascending, with ``last`` (-1) at the end."""
    unique = set(ordinals)
    return tuple(sorted(unique - {-1})) + ((-1,) if -1 in unique else ())


def build_recurrence_rule_from_ordinals(ordinals: Iterable[int]) -> str:
    """Return the stored rule for ordinals, e.g. ``[3, -1, 1] -> "1st/3rd/last"``."""
    return "/".join(NUMBER_TO_ORDINAL.get(o, f"{o}th") for o in order_ordinals(ordinals))


def _one_time(event_date: str) -> RecurrenceDescriptor:
    index = weekday_index(event_date)
    return RecurrenceDescriptor(
        is_recurring=False,
        frequency="one-time",
        day_name=DAY_NAMES[index],
        day_of_week_index=index,
        explicit_date=event_date,
    )


def _unknown(event_date: str | None) -> RecurrenceDescriptor:
    return RecurrenceDescriptor(
        is_recurring=False,
        frequency="unknown",
        explicit_date=event_date,
        is_confident=False,
    )


def _weekly(day: int | None, *, interval: int, end_date: str | None) -> RecurrenceDescriptor:
    return RecurrenceDescriptor(
        is_recurring=True,
        frequency="biweekly" if interval == 2 else "weekly",
        day_name=DAY_NAMES[day] if day is not None else None,
        day_of_week_index=day,
        interval=interval,
        end_date=end_date,
        is_confident=day is not None,
    )


def _monthly(
    day: int | None,
    ordinals: Iterable[int],
    *,
    event_date: str | None,
    end_date: str | None,
) -> RecurrenceDescriptor:
    ordinals = order_ordinals(ordinals)
    if not ordinals and event_date and day is not None and weekday_index(event_date) == day:
        ordinals = (ordinal_in_month(event_date),)
    return RecurrenceDescriptor(
        is_recurring=True,
        frequency="monthly",
        day_name=DAY_NAMES[day] if day is not None else None,
        day_of_week_index=day,
        ordinals=ordinals or None,
        end_date=end_date,
        is_confident=bool(ordinals) and day is not None,
    )


def _to_date_weekday(rrule_weekday: int) -> int:
    # dateutil counts weekdays from Monday, date keys from Sunday.
    return (rrule_weekday + 1) % 7


def _to_rrule_weekday(index: int) -> int:
    return (index - 1) % 7


def build_rrule(
    text: str,
    anchor: date | None = None,
    *,
    weekdays: Iterable[int] | None = None,
) -> rrule:
    """Parse an RRULE string with :func:`dateutil.rrule.rrulestr`.

    ``anchor`` becomes a naive midnight ``DTSTART``; ``weekdays`` (Sunday is
    0) fills in a weekly rule that carries no ``BYDAY``. Raises ValueError
    when dateutil cannot parse the text or it holds more than one rule.
    """
    dtstart = datetime.combine(anchor, time.min) if anchor else None
    parsed = rrulestr(text, dtstart=dtstart, ignoretz=True)
    if not isinstance(parsed, rrule):
        raise ValueError(f"expected a single RRULE, got {text!r}")
    if weekdays and parsed._freq == WEEKLY and "BYDAY" not in text.upper():
        parsed = parsed.replace(
            byweekday=[_to_rrule_weekday(index) for index in weekdays]
        )
    return parsed


def _from_rrule(
    text: str,
    *,
    day: int | None,
    event_date: str | None,
    end_date: str | None,
) -> RecurrenceDescriptor:
    anchor = parse_date_key(event_date) if event_date else None
    try:
        parsed = build_rrule(text, anchor)
    except ValueError as exc:
        logger.debug("Unparseable RRULE %r (%s); treating schedule as unknown", text, exc)
        return _unknown(event_date)

    if parsed._freq not in (WEEKLY, MONTHLY):
        logger.debug("Unsupported RRULE frequency in %r; treating schedule as unknown", text)
        return _unknown(event_date)

    if parsed._until is not None:
        end_date = _earliest(end_date, to_date_key(parsed._until.date()))

    if parsed._freq == WEEKLY:
        if "BYDAY" in text.upper():
            weekdays = tuple(sorted(_to_date_weekday(w) for w in parsed._byweekday or ()))
        elif day is not None:
            weekdays = (day,)
        elif event_date:
            weekdays = (weekday_index(event_date),)
        else:
            weekdays = ()
        descriptor = _weekly(
            weekdays[0] if weekdays else None,
            interval=parsed._interval,
            end_date=end_date,
        )
        descriptor = replace(descriptor, weekday_indexes=weekdays or None)
    else:
        nth = parsed._bynweekday or ()
        days = {_to_date_weekday(weekday) for weekday, _ in nth}
        single_day = len(days) == 1
        descriptor = _monthly(
            days.pop() if single_day else None,
            [ordinal for _, ordinal in nth],
            event_date=None,
            end_date=end_date,
        )
        unlabelled = any(ordinal not in NUMBER_TO_ORDINAL for _, ordinal in nth)
        if not single_day or unlabelled or parsed._byweekday or parsed._interval != 1:
            logger.debug("RRULE %r is not an ordinal-weekday schedule; not expanding it", text)
            descriptor = replace(descriptor, is_confident=False)

    descriptor = replace(descriptor, explicit_date=event_date, rrule_text=text)
    if parsed._count is None:
        return descriptor
    if anchor is None:
        logger.debug("RRULE %r has COUNT but no event_date to count from", text)
        return _unknown(None)
    series = list(build_rrule(text, anchor, weekdays=descriptor.weekday_indexes))
    if not series:
        return _unknown(event_date)
    last_key = to_date_key(series[-1].date())
    return replace(descriptor, end_date=_earliest(descriptor.end_date, last_key))


def interpret_recurrence(event: Any) -> RecurrenceDescriptor:
    """Interpret raw event fields into a :class:`RecurrenceDescriptor`.

    ``event`` may be a mapping (a storage row) or any object exposing
    ``event_date``, ``day_of_week``, ``recurrence_rule``, ``custom_dates``
    and ``recurrence_end_date``. Malformed rules degrade to ``unknown``;
    malformed date strings raise :class:`InvalidDateKeyError`.
    """
    event_date = _optional_date_key(event_field(event, "event_date"))
    end_date = _optional_date_key(event_field(event, "recurrence_end_date"))
    custom_dates = _custom_date_keys(event_field(event, "custom_dates"))
    day = _day_index(event_field(event, "day_of_week"))
    raw_rule = event_field(event, "recurrence_rule")
    rule = raw_rule.strip() if isinstance(raw_rule, str) else ""
    lowered = rule.lower()

    if lowered in ("", "none"):
        if day is not None:
            return _weekly(day, interval=1, end_date=end_date)
        if event_date:
            return _one_time(event_date)
        return _unknown(None)

    if "=" in rule:
        return _from_rrule(rule, day=day, event_date=event_date, end_date=end_date)

    if lowered == "custom":
        return RecurrenceDescriptor(
            is_recurring=True,
            frequency="custom",
            custom_dates=custom_dates or (),
            end_date=end_date,
        )

    # Legacy rows saved without day_of_week: take the weekday from the anchor.
    if day is None and event_date:
        day = weekday_index(event_date)

    if lowered == "weekly":
        return _weekly(day, interval=1, end_date=end_date)
    if lowered in _BIWEEKLY_RULES:
        return _weekly(day, interval=2, end_date=end_date)
    if lowered == "monthly":
        return _monthly(day, (), event_date=event_date, end_date=end_date)

    ordinals = parse_ordinals_from_recurrence_rule(lowered)
    if ordinals:
        return _monthly(day, ordinals, event_date=event_date, end_date=end_date)

    logger.debug("Unrecognized recurrence_rule %r; treating schedule as unknown", rule)
    return _unknown(event_date)


def label_from_recurrence(descriptor: RecurrenceDescriptor) -> str:
    """Return the human-readable schedule for a descriptor."""
    if not descriptor.is_recurring:
        return "One-time" if descriptor.frequency == "one-time" else "Schedule TBD"

    day_name = descriptor.day_name
    if descriptor.weekday_indexes and len(descriptor.weekday_indexes) > 1:
        names = [DAY_NAMES[index] for index in descriptor.weekday_indexes]
        day_name = f"{', '.join(names[:-1])} & {names[-1]}"
    if descriptor.frequency == "weekly":
        if not day_name:
            return "Weekly"
        if descriptor.interval > 1:
            return f"Every {descriptor.interval} Weeks on {day_name}"
        return f"Every {day_name}"

    if descriptor.frequency == "biweekly":
        return f"Every Other {day_name}" if day_name else "Every Other Week"

    if descriptor.frequency == "monthly":
        if descriptor.ordinals and day_name:
            words = [
                NUMBER_TO_ORDINAL.get(o, f"{o}th").capitalize()
                for o in order_ordinals(descriptor.ordinals)
            ]
            if len(words) == 1:
                return f"{words[0]} {day_name} of the Month"
            return f"{' & '.join(words)} {day_name}s"
        return f"{day_name} (Monthly)" if day_name else "Monthly"

    if descriptor.frequency == "custom":
        return "Custom Schedule"

    return f"Every {day_name}" if day_name else "Recurring"


def should_expand_to_multiple(descriptor: RecurrenceDescriptor) -> bool:
    return descriptor.is_recurring and descriptor.is_confident


def _minimum_window_days(descriptor: RecurrenceDescriptor) -> int | None:
    # Smallest window guaranteed to hold two occurrences; None when no such window.
    if descriptor.frequency == "monthly":
        if descriptor.ordinals and set(descriptor.ordinals) <= {5}:
            return None
        return 70
    return 6 + 7 * descriptor.interval


def check_recurrence_invariant(
    descriptor: RecurrenceDescriptor,
    occurrence_count: int,
    *,
    event_id: str | None = None,
    window_days: int | None = None,
    start_key: str | None = None,
    end_key: str | None = None,
) -> bool:
    """Log a warning when a recurring pattern produced a single occurrence.

    Bounded series, custom date lists, and windows too short to be sure of
    two occurrences are exempt. Returns True when a violation was logged.
    """
    if descriptor.end_date or descriptor.frequency == "custom":
        return False
    minimum_window = _minimum_window_days(descriptor)
    if minimum_window is None:
        return False
    if window_days is not None and window_days < minimum_window:
        return False
    if should_expand_to_multiple(descriptor) and occurrence_count == 1:
        logger.warning(
            "Recurrence invariant violated: event %s is %s but produced 1 occurrence "
            "in %s..%s (%s days)",
            event_id or "unknown",
            descriptor.frequency,
            start_key or "?",
            end_key or "?",
            window_days if window_days is not None else "?",
        )
        return True
    return False
