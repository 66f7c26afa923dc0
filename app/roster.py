from __future__ import annotations

import datetime
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from database import (
    Shift,
    StaffMember,
    commit_shift_if_no_conflict,
    delete_shift,
    get_availability,
    get_day_availability,
    get_shift,
    list_shifts_for_day,
    list_shifts_for_week,
    list_submitted_availability,
    list_timesheets_for_week,
    record_audit_log,
    replace_availability,
    shift_to_dict,
)
from errors import FormatError
from policy import ShopHours, load_active_policy, shop_hours
from roles import STAFF, normalize_role
from timeutil import TimeRange, WEEKDAY_TOKENS, format_time, is_before, parse_range, week_start_for
from validation import (
    find_overlaps,
    is_within_availability,
    is_within_operating_hours,
    validate_availability_ranges,
    validate_shift_proposal,
)

# The edit dialog falls back to the whole day when the staff member has no availability on file.
WHOLE_DAY = [parse_range("00:00", "23:59")]


def _resolve_hours(session, hours: Optional[ShopHours]) -> ShopHours:
    if hours is not None:
        return hours
    return shop_hours(load_active_policy(session))


def _require_staff(session, staff_id: int) -> StaffMember:
    member = session.get(StaffMember, staff_id)
    if member is None:
        raise LookupError(f"Staff member {staff_id} was not found.")
    if normalize_role(member.role) != STAFF:
        raise ValueError("Shifts can only be assigned to staff accounts.")
    if not member.is_active:
        raise ValueError(f"{member.name} is inactive and cannot be rostered.")
    return member


def approve_shift(
    session,
    *,
    staff_id: int,
    shift_date: datetime.date,
    start: Any,
    end: Any,
    admin_id: int,
    hours: Optional[ShopHours] = None,
) -> Shift:
    """Validate a proposed shift against availability and the roster, then commit it."""
    member = _require_staff(session, staff_id)
    hours = _resolve_hours(session, hours)
    availability = get_day_availability(session, staff_id, shift_date)
    existing = list_shifts_for_day(session, shift_date, staff_id=staff_id)
    candidate = validate_shift_proposal(start, end, hours=hours, availability=availability, existing=existing)
    now = datetime.datetime.now(datetime.timezone.utc)
    shift = Shift(
        staff_id=staff_id,
        shift_date=shift_date,
        week_start_date=week_start_for(shift_date),
        start_time=format_time(candidate.start),
        end_time=format_time(candidate.end),
        status="APPROVED",
        rate_snapshot=float(member.hourly_rate or 0.0),
        approved_by=admin_id,
        approved_at=now,
        updated_by=admin_id,
    )
    shift = commit_shift_if_no_conflict(session, shift)
    record_audit_log(
        session,
        user_id=str(admin_id),
        action="APPROVE",
        target_type="Shift",
        target_id=shift.id,
        payload={"new": shift_to_dict(shift)},
        staff_id=staff_id,
    )
    return shift


def edit_shift(
    session,
    shift_id: int,
    *,
    start: Any,
    end: Any,
    admin_id: int,
    hours: Optional[ShopHours] = None,
) -> Shift:
    shift = get_shift(session, shift_id)
    if shift is None:
        raise LookupError(f"Shift {shift_id} was not found.")
    hours = _resolve_hours(session, hours)
    availability = get_day_availability(session, shift.staff_id, shift.shift_date) or WHOLE_DAY
    existing = list_shifts_for_day(session, shift.shift_date, staff_id=shift.staff_id)
    candidate = validate_shift_proposal(
        start,
        end,
        hours=hours,
        availability=availability,
        existing=existing,
        exclude_id=shift.id,
    )
    previous = shift_to_dict(shift)
    shift.start_time = format_time(candidate.start)
    shift.end_time = format_time(candidate.end)
    shift.updated_by = admin_id
    shift = commit_shift_if_no_conflict(session, shift, exclude_id=shift.id)
    record_audit_log(
        session,
        user_id=str(admin_id),
        action="EDIT",
        target_type="Shift",
        target_id=shift.id,
        payload={"previous": previous, "new": shift_to_dict(shift)},
        staff_id=shift.staff_id,
    )
    return shift


def remove_shift(session, shift_id: int, *, admin_id: int) -> Dict[str, Any]:
    shift = get_shift(session, shift_id)
    if shift is None:
        raise LookupError(f"Shift {shift_id} was not found.")
    previous = shift_to_dict(shift)
    delete_shift(session, shift_id)
    record_audit_log(
        session,
        user_id=str(admin_id),
        action="REMOVE",
        target_type="Shift",
        target_id=shift_id,
        payload={"previous": previous},
        staff_id=previous["staff_id"],
    )
    return previous


def submit_availability(
    session,
    staff_id: int,
    week_start: datetime.date,
    days: Mapping[int, Iterable[Any]],
    *,
    is_recurring: bool = False,
    hours: Optional[ShopHours] = None,
) -> Dict[int, List[TimeRange]]:
    """Validate and store a full week of availability, replacing any earlier submission."""
    hours = _resolve_hours(session, hours)
    parsed: Dict[int, List[TimeRange]] = {}
    for day_of_week, ranges in (days or {}).items():
        day_index = int(day_of_week)
        if not 0 <= day_index <= 6:
            raise ValueError(f"day_of_week must be 0 (Mon) - 6 (Sun), got {day_of_week}.")
        windows = validate_availability_ranges(ranges, hours)
        if windows:
            parsed[day_index] = windows
    replace_availability(session, staff_id, week_start, parsed, is_recurring=is_recurring)
    return get_availability(session, staff_id, week_start)


def copy_previous_week_availability(session, staff_id: int, week_start: datetime.date) -> Dict[int, List[TimeRange]]:
    """Return last week's ranges for the staff member so they can be resubmitted."""
    previous = week_start_for(week_start) - datetime.timedelta(days=7)
    return get_availability(session, staff_id, previous)


def validate_week_roster(session, week_start: datetime.date, *, hours: Optional[ShopHours] = None) -> Dict[str, Any]:
    """Return findings for the approved shifts already stored for a week."""
    normalized = week_start_for(week_start)
    hours = _resolve_hours(session, hours)
    shifts = list_shifts_for_week(session, normalized)
    availability: Dict[tuple, List[TimeRange]] = defaultdict(list)
    for entry in list_submitted_availability(session, normalized):
        availability[(entry.staff_id, entry.day_of_week)].extend(entry.time_ranges)

    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    by_staff_day: Dict[tuple, List[Shift]] = defaultdict(list)
    for shift in shifts:
        by_staff_day[(shift.staff_id, shift.shift_date)].append(shift)
        day = WEEKDAY_TOKENS[shift.shift_date.weekday()]
        label = f"{shift.start_time}-{shift.end_time}"
        try:
            candidate = parse_range(shift.start_time, shift.end_time)
        except FormatError as exc:
            issues.append(_finding("format", "error", shift, day, str(exc)))
            continue
        if not is_before(candidate.start, candidate.end):
            issues.append(_finding("ordering", "error", shift, day, f"Shift {label} ends before it starts."))
        if not is_within_operating_hours(candidate.start, candidate.end, hours):
            issues.append(
                _finding(
                    "hours",
                    "error",
                    shift,
                    day,
                    f"Shift {label} falls outside {hours.open_label}-{hours.close_label}.",
                )
            )
        ranges = availability.get((shift.staff_id, shift.shift_date.weekday()), [])
        if not is_within_availability(candidate.start, candidate.end, ranges):
            warnings.append(
                _finding("availability", "warning", shift, day, f"Shift {label} is outside submitted availability.")
            )

    for (_staff_id, _date), day_shifts in by_staff_day.items():
        for index, shift in enumerate(day_shifts):
            later = day_shifts[index + 1:]
            try:
                conflicts = find_overlaps(parse_range(shift.start_time, shift.end_time), later)
            except FormatError:
                continue
            for other in conflicts:
                day = WEEKDAY_TOKENS[shift.shift_date.weekday()]
                issues.append(
                    _finding(
                        "overlap",
                        "error",
                        shift,
                        day,
                        f"Shift {shift.start_time}-{shift.end_time} overlaps shift "
                        f"{other.start_time}-{other.end_time} (#{other.id}).",
                    )
                )

    for timesheet in list_timesheets_for_week(session, normalized, status="APPROVED"):
        try:
            ordered = is_before(timesheet.worked_start, timesheet.worked_end)
        except FormatError:
            ordered = False
        if not ordered:
            warnings.append(
                {
                    "type": "timesheet",
                    "severity": "warning",
                    "timesheet_id": timesheet.id,
                    "staff_id": timesheet.staff_id,
                    "day": WEEKDAY_TOKENS[timesheet.shift_date.weekday()],
                    "message": f"Approved timesheet {timesheet.worked_start}-{timesheet.worked_end} "
                    "is not a valid worked range.",
                }
            )

    return {
        "week_start": normalized.isoformat(),
        "shift_count": len(shifts),
        "issues": issues,
        "warnings": warnings,
    }


def _finding(kind: str, severity: str, shift: Shift, day: str, message: str) -> Dict[str, Any]:
    return {
        "type": kind,
        "severity": severity,
        "shift_id": shift.id,
        "staff_id": shift.staff_id,
        "day": day,
        "message": message,
    }
