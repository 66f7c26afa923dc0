from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping

from errors import FormatError

WEEKDAY_TOKENS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """Wall-clock time in the shop's local time. No timezone, no date."""

    hour: int
    minute: int

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute

    def __str__(self) -> str:
        return format_time(self)


@dataclass(frozen=True)
class TimeRange:
    start: TimeOfDay
    end: TimeOfDay

    @property
    def hours(self) -> float:
        return duration_hours(self.start, self.end)

    def as_dict(self) -> dict[str, str]:
        return {"start": format_time(self.start), "end": format_time(self.end)}


def parse_time(value: Any) -> TimeOfDay:
    if isinstance(value, TimeOfDay):
        return value
    if not isinstance(value, str):
        raise FormatError(value)
    parts = value.split(":")
    if len(parts) != 2:
        raise FormatError(value)
    hour_raw, minute_raw = parts
    # str.isdigit() accepts non-ASCII digits, so check the characters explicitly.
    for field in (hour_raw, minute_raw):
        if len(field) != 2 or any(char not in "0123456789" for char in field):
            raise FormatError(value)
    hour = int(hour_raw)
    minute = int(minute_raw)
    if hour > 23 or minute > 59:
        raise FormatError(value)
    return TimeOfDay(hour, minute)


def format_time(value: TimeOfDay) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def minute_of_day(value: Any) -> int:
    return parse_time(value).minute_of_day


def is_before(a: Any, b: Any) -> bool:
    """True iff ``a`` is strictly earlier in the day than ``b``."""
    return minute_of_day(a) < minute_of_day(b)


def duration_hours(start: Any, end: Any) -> float:
    """Hours from start to end. Negative when end precedes start (no overnight wraparound)."""
    return (minute_of_day(end) - minute_of_day(start)) / 60


def parse_range(start: Any, end: Any) -> TimeRange:
    return TimeRange(parse_time(start), parse_time(end))


def parse_ranges(entries: Iterable[Any]) -> List[TimeRange]:
    ranges: List[TimeRange] = []
    if entries is not None and not isinstance(entries, Iterable):
        raise FormatError(entries)
    for entry in entries or []:
        if isinstance(entry, TimeRange):
            ranges.append(entry)
        elif isinstance(entry, Mapping):
            ranges.append(parse_range(entry.get("start"), entry.get("end")))
        else:
            try:
                start, end = entry
            except (TypeError, ValueError) as exc:
                raise FormatError(entry) from exc
            ranges.append(parse_range(start, end))
    return ranges


def week_start_for(date_value: datetime.date) -> datetime.date:
    """Return the Monday for the provided date."""
    if isinstance(date_value, datetime.datetime):
        date_value = date_value.date()
    return date_value - datetime.timedelta(days=date_value.weekday())


def date_for_day(week_start: datetime.date, day_of_week: int) -> datetime.date:
    if not 0 <= int(day_of_week) <= 6:
        raise ValueError(f"day_of_week must be 0 (Mon) - 6 (Sun), got {day_of_week}.")
    return week_start_for(week_start) + datetime.timedelta(days=int(day_of_week))


def format_week_label(week_start: datetime.date) -> str:
    iso_year, iso_week, _ = week_start.isocalendar()
    end = week_start + datetime.timedelta(days=6)
    start_str = week_start.strftime("%b %d")
    end_str = end.strftime("%b %d")
    if week_start.year != end.year:
        start_str = week_start.strftime("%b %d %Y")
        end_str = end.strftime("%b %d %Y")
    return f"{iso_year} W{iso_week:02d} ({start_str} - {end_str})"
