from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from errors import FormatError  # noqa: E402
from timeutil import (  # noqa: E402
    TimeOfDay,
    TimeRange,
    date_for_day,
    duration_hours,
    format_time,
    format_week_label,
    is_before,
    parse_range,
    parse_ranges,
    parse_time,
    week_start_for,
)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("00:00", TimeOfDay(0, 0)),
        ("09:00", TimeOfDay(9, 0)),
        ("23:59", TimeOfDay(23, 59)),
        ("17:30", TimeOfDay(17, 30)),
    ],
)
def test_parse_time_accepts_zero_padded_labels(label, expected) -> None:
    assert parse_time(label) == expected
    assert format_time(parse_time(label)) == label


@pytest.mark.parametrize(
    "label",
    ["9:00", "24:00", "12:60", "0900", "09:00:00", "ab:cd", " 9:00", "", "09:0", "-1:00", "١٢:٠٠"],
)
def test_parse_time_rejects_malformed_labels(label) -> None:
    with pytest.raises(FormatError):
        parse_time(label)


def test_parse_time_rejects_non_strings() -> None:
    with pytest.raises(FormatError):
        parse_time(900)
    with pytest.raises(FormatError):
        parse_time(None)


def test_format_error_is_a_value_error() -> None:
    with pytest.raises(ValueError) as excinfo:
        parse_time("9:00")
    assert "9:00" in str(excinfo.value)


def test_is_before_is_strict() -> None:
    assert is_before("09:00", "17:00")
    assert not is_before("17:00", "09:00")
    assert not is_before("12:00", "12:00")
    assert is_before("00:00", "00:01")


def test_duration_hours_has_no_wraparound() -> None:
    assert duration_hours("09:00", "17:00") == 8.0
    assert duration_hours("17:00", "09:00") == -8.0
    assert duration_hours("09:00", "12:30") == 3.5
    assert duration_hours("10:00", "10:00") == 0.0


def test_time_of_day_orders_by_minute() -> None:
    assert TimeOfDay(9, 59) < TimeOfDay(10, 0)
    assert TimeOfDay(13, 5).minute_of_day == 785
    assert str(TimeOfDay(7, 5)) == "07:05"


def test_parse_ranges_accepts_mappings_pairs_and_ranges() -> None:
    existing = parse_range("18:00", "21:00")
    ranges = parse_ranges([{"start": "09:00", "end": "12:00"}, ("13:00", "17:00"), existing])

    assert ranges == [
        TimeRange(TimeOfDay(9, 0), TimeOfDay(12, 0)),
        TimeRange(TimeOfDay(13, 0), TimeOfDay(17, 0)),
        existing,
    ]
    assert ranges[0].hours == 3.0
    assert ranges[1].as_dict() == {"start": "13:00", "end": "17:00"}


def test_parse_ranges_propagates_format_errors() -> None:
    with pytest.raises(FormatError):
        parse_ranges([{"start": "9:00", "end": "12:00"}])


@pytest.mark.parametrize("entries", [[5], [None], [("09:00", "12:00", "15:00")], 5])
def test_parse_ranges_rejects_entries_that_are_not_ranges(entries) -> None:
    with pytest.raises(FormatError):
        parse_ranges(entries)


def test_week_start_for_returns_monday() -> None:
    assert week_start_for(datetime.date(2024, 4, 3)) == datetime.date(2024, 4, 1)
    assert week_start_for(datetime.date(2024, 4, 7)) == datetime.date(2024, 4, 1)
    assert week_start_for(datetime.date(2024, 4, 1)) == datetime.date(2024, 4, 1)
    assert week_start_for(datetime.datetime(2024, 4, 8, 15, 30)) == datetime.date(2024, 4, 8)


def test_date_for_day_maps_monday_zero() -> None:
    monday = datetime.date(2024, 4, 1)
    assert date_for_day(monday, 0) == monday
    assert date_for_day(monday, 6) == datetime.date(2024, 4, 7)
    with pytest.raises(ValueError):
        date_for_day(monday, 7)


def test_format_week_label_spans_year_boundary() -> None:
    assert format_week_label(datetime.date(2024, 4, 1)) == "2024 W14 (Apr 01 - Apr 07)"
    assert format_week_label(datetime.date(2024, 12, 30)) == "2025 W01 (Dec 30 2024 - Jan 05 2025)"
