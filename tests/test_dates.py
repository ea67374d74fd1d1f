from __future__ import annotations

from datetime import UTC, datetime

import pytest

from happenings.dates import (
    InvalidDateKeyError,
    add_days,
    date_key_from_datetime,
    day_name_from_date_key,
    days_between,
    format_date_key_for_display,
    format_date_key_for_email,
    format_date_key_short,
    is_valid_date_key,
    nth_weekday_of_month,
    ordinal_in_month,
    parse_date_key,
    today_key,
    weekday_index,
)


def test_is_valid_date_key_is_strict():
    assert is_valid_date_key("2026-01-05")
    assert not is_valid_date_key("2026-02-30")
    assert not is_valid_date_key("20260105")
    assert not is_valid_date_key("2026-1-5")
    assert not is_valid_date_key(None)


@pytest.mark.parametrize("value", ["", "2026-13-01", "not a date", "2026-01-05T00:00", 20260105])
def test_parse_date_key_rejects_malformed_values(value):
    with pytest.raises(InvalidDateKeyError):
        parse_date_key(value)


def test_add_days_crosses_dst_boundaries_without_drift():
    # US DST starts 2026-03-08 and ends 2026-11-01 in Denver.
    assert add_days("2026-03-07", 1) == "2026-03-08"
    assert add_days("2026-03-08", 1) == "2026-03-09"
    assert add_days("2026-10-31", 2) == "2026-11-02"
    assert add_days("2026-01-31", 29) == "2026-03-01"
    assert days_between("2026-03-01", "2026-04-01") == 31
    assert days_between("2026-04-01", "2026-03-01") == -31


def test_weekday_index_counts_from_sunday():
    assert weekday_index("2026-01-04") == 0
    assert weekday_index("2026-01-05") == 1
    assert weekday_index("2026-01-10") == 6
    assert day_name_from_date_key("2026-01-06") == "Tuesday"


def test_nth_weekday_of_month():
    # January 2026 starts on a Thursday.
    assert nth_weekday_of_month(2026, 1, 4, 1) == "2026-01-01"
    assert nth_weekday_of_month(2026, 1, 2, 2) == "2026-01-13"
    assert nth_weekday_of_month(2026, 1, 5, -1) == "2026-01-30"
    assert nth_weekday_of_month(2026, 1, 4, 5) == "2026-01-29"
    assert nth_weekday_of_month(2026, 2, 1, 5) is None
    assert nth_weekday_of_month(2026, 1, 1, 0) is None
    assert nth_weekday_of_month(2025, 13, 4, 1) == "2026-01-01"


def test_ordinal_in_month():
    assert ordinal_in_month("2026-01-13") == 2
    assert ordinal_in_month("2026-01-01") == 1
    assert ordinal_in_month("2026-01-29") == 5


def test_date_key_from_datetime_uses_denver_calendar():
    # 03:00 UTC on Jan 6 is still the evening of Jan 5 in Denver.
    assert date_key_from_datetime(datetime(2026, 1, 6, 3, 0, tzinfo=UTC)) == "2026-01-05"
    assert date_key_from_datetime(datetime(2026, 1, 6, 3, 0)) == "2026-01-05"
    assert date_key_from_datetime(datetime(2026, 7, 6, 7, 0, tzinfo=UTC)) == "2026-07-06"
    assert today_key(datetime(2026, 1, 6, 3, 0, tzinfo=UTC)) == "2026-01-05"


def test_display_formats_are_locale_independent():
    assert format_date_key_for_display("2026-01-18") == "Sunday, January 18, 2026"
    assert format_date_key_short("2026-01-18") == "Sun, Jan 18"
    assert format_date_key_for_email("2026-01-18") == "01-18-2026"
