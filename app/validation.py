"""Shift and availability checks run before a shift is committed.

All functions here are pure: they take already-loaded values (time labels, ranges,
shift-like objects exposing ``id``, ``start`` and ``end``) and either return a result
or raise the matching ``ScheduleError`` subclass. Nothing is read from or written
to the database.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from errors import AvailabilityMismatchError, OperatingHoursError, OrderingError, OverlapError
from timeutil import TimeRange, format_time, is_before, parse_range, parse_ranges, parse_time


def is_within_operating_hours(start: Any, end: Any, hours: Any) -> bool:
    """True when start >= open and end <= close."""
    return not is_before(start, hours.open) and not is_before(hours.close, end)


def check_operating_hours(start: Any, end: Any, hours: Any) -> None:
    if not is_within_operating_hours(start, end, hours):
        raise OperatingHoursError(format_time(parse_time(hours.open)), format_time(parse_time(hours.close)))


def check_ordering(start: Any, end: Any) -> None:
    if not is_before(start, end):
        raise OrderingError(format_time(parse_time(start)), format_time(parse_time(end)))


def is_within_availability(start: Any, end: Any, ranges: Iterable[Any]) -> bool:
    """True iff some range fully contains start-end (boundaries inclusive)."""
    for window in parse_ranges(ranges):
        if not is_before(start, window.start) and not is_before(window.end, end):
            return True
    return False


def check_availability(start: Any, end: Any, ranges: Iterable[Any]) -> None:
    if not is_within_availability(start, end, ranges):
        raise AvailabilityMismatchError()


def overlaps(candidate: Any, existing: Any) -> bool:
    """Half-open interval test; shifts that only touch at a boundary do not overlap."""
    return is_before(candidate.start, existing.end) and is_before(existing.start, candidate.end)


def find_overlaps(candidate: Any, shifts: Iterable[Any], *, exclude_id: Optional[int] = None) -> List[Any]:
    conflicts: List[Any] = []
    for shift in shifts:
        if exclude_id is not None and getattr(shift, "id", None) == exclude_id:
            continue
        if overlaps(candidate, shift):
            conflicts.append(shift)
    return conflicts


def check_overlap(candidate: Any, shifts: Iterable[Any], *, exclude_id: Optional[int] = None) -> None:
    conflicts = find_overlaps(candidate, shifts, exclude_id=exclude_id)
    if conflicts:
        raise OverlapError(getattr(shift, "id", None) for shift in conflicts)


def validate_shift_proposal(
    start: Any,
    end: Any,
    *,
    hours: Any,
    availability: Iterable[Any],
    existing: Iterable[Any] = (),
    exclude_id: Optional[int] = None,
) -> TimeRange:
    """Run every shift gate in order and return the parsed range.

    Order: format, operating hours, ordering, availability containment, overlap.
    The first failure is raised; nothing is partially applied.
    """
    candidate = parse_range(start, end)
    check_operating_hours(candidate.start, candidate.end, hours)
    check_ordering(candidate.start, candidate.end)
    check_availability(candidate.start, candidate.end, availability)
    check_overlap(candidate, existing, exclude_id=exclude_id)
    return candidate


def validate_availability_ranges(ranges: Iterable[Any], hours: Any) -> List[TimeRange]:
    parsed = parse_ranges(ranges)
    for window in parsed:
        check_ordering(window.start, window.end)
        check_operating_hours(window.start, window.end, hours)
    return parsed
