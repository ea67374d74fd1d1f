from __future__ import annotations

from datetime import UTC, datetime

from happenings.ics import generate_occurrences_ics
from happenings.occurrences import Occurrence, expand_occurrences_for_event

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_ics_has_one_vevent_per_occurrence():
    event = {
        "id": "mic",
        "title": "Open Mic, Songwriters; All Welcome",
        "description": "<p>Line one</p>\nLine two",
        "day_of_week": "Monday",
        "recurrence_rule": "weekly",
        "start_time": "19:00:00",
        "venue": {"id": "v1", "name": "Dazzle"},
    }
    occurrences = expand_occurrences_for_event(
        event, start_key="2026-01-05", end_key="2026-01-19"
    )
    body = generate_occurrences_ics(event, occurrences, now=NOW)

    assert body.startswith("BEGIN:VCALENDAR\r\n")
    assert body.endswith("END:VCALENDAR\r\n")
    assert body.count("BEGIN:VEVENT") == 3
    assert "UID:mic-2026-01-05@happenings" in body
    assert "UID:mic-2026-01-19@happenings" in body
    assert "DTSTAMP:20260101T120000Z" in body
    assert "SUMMARY:Open Mic\\, Songwriters\\; All Welcome" in body
    assert "DESCRIPTION:Line one\\nLine two" in body
    assert "LOCATION:Dazzle" in body
    assert "\n" not in body.replace("\r\n", "")


def test_ics_converts_denver_wall_clock_to_utc_across_dst():
    event = {"id": "jam", "title": "Jam", "start_time": "19:00", "end_time": "21:30"}
    body = generate_occurrences_ics(
        event,
        [Occurrence("2026-03-07"), Occurrence("2026-03-08")],
        now=NOW,
    )
    # MST (UTC-7) before the switch, MDT (UTC-6) after.
    assert "DTSTART:20260308T020000Z" in body
    assert "DTEND:20260308T043000Z" in body
    assert "DTSTART:20260309T010000Z" in body
    assert "DTEND:20260309T033000Z" in body


def test_ics_defaults_to_two_hours():
    event = {"id": "e1", "title": "Show", "start_time": "20:00:00"}
    body = generate_occurrences_ics(event, [Occurrence("2026-07-04")], now=NOW)
    assert "DTSTART:20260705T020000Z" in body
    assert "DTEND:20260705T040000Z" in body


def test_ics_without_start_time_is_all_day():
    event = {"id": "fair", "title": "Street Fair", "location": "Larimer Square"}
    body = generate_occurrences_ics(event, [Occurrence("2026-01-31")], now=NOW)
    assert "DTSTART;VALUE=DATE:20260131" in body
    assert "DTEND;VALUE=DATE:20260201" in body
    assert "LOCATION:Larimer Square" in body
