from __future__ import annotations

import datetime
from typing import Any, Optional

from database import (
    TimeRecord,
    Timesheet,
    get_active_time_record,
    get_shift,
    get_timesheet,
    get_timesheet_for_shift,
    record_audit_log,
)
from errors import TimesheetError
from policy import allow_resubmit_rejected, load_active_policy
from timeutil import format_time, parse_range
from validation import check_ordering

REVIEW_STATUSES = {"APPROVED", "REJECTED"}
UTC = datetime.timezone.utc


def _parse_worked(start: Any, end: Any):
    worked = parse_range(start, end)
    check_ordering(worked.start, worked.end)
    return worked


def submit_timesheet(session, *, shift_id: int, staff_id: int, worked_start: Any, worked_end: Any) -> Timesheet:
    """Record what a staff member actually worked against one of their approved shifts."""
    shift = get_shift(session, shift_id)
    if shift is None:
        raise LookupError(f"Shift {shift_id} was not found.")
    if shift.staff_id != staff_id:
        raise PermissionError("Timesheets can only be submitted for your own shifts.")
    worked = _parse_worked(worked_start, worked_end)

    existing = get_timesheet_for_shift(session, shift_id)
    if existing is not None:
        if existing.status != "REJECTED" or not allow_resubmit_rejected(load_active_policy(session)):
            raise TimesheetError("A timesheet has already been submitted for this shift.")
        timesheet = existing
    else:
        timesheet = Timesheet(
            shift_id=shift.id,
            staff_id=staff_id,
            shift_date=shift.shift_date,
            week_start_date=shift.week_start_date,
        )
        session.add(timesheet)
    timesheet.approved_shift_start = shift.start_time
    timesheet.approved_shift_end = shift.end_time
    timesheet.worked_start = format_time(worked.start)
    timesheet.worked_end = format_time(worked.end)
    timesheet.rate_snapshot = shift.rate_snapshot
    timesheet.status = "PENDING"
    timesheet.reviewed_by = None
    timesheet.reviewed_at = None
    session.commit()
    session.refresh(timesheet)
    return timesheet


def review_timesheet(
    session,
    timesheet_id: int,
    *,
    status: str,
    admin_id: int,
    worked_start: Optional[Any] = None,
    worked_end: Optional[Any] = None,
) -> Timesheet:
    """Approve or reject a timesheet, optionally adjusting the worked range first."""
    normalized = (status or "").strip().upper()
    if normalized not in REVIEW_STATUSES:
        raise ValueError(f"Unsupported timesheet status '{status}'.")
    timesheet = get_timesheet(session, timesheet_id)
    if timesheet is None:
        raise LookupError(f"Timesheet {timesheet_id} was not found.")
    previous = {"status": timesheet.status, "worked_start": timesheet.worked_start, "worked_end": timesheet.worked_end}
    if worked_start is not None or worked_end is not None:
        worked = _parse_worked(
            worked_start if worked_start is not None else timesheet.worked_start,
            worked_end if worked_end is not None else timesheet.worked_end,
        )
        timesheet.worked_start = format_time(worked.start)
        timesheet.worked_end = format_time(worked.end)
    timesheet.status = normalized
    timesheet.reviewed_by = admin_id
    timesheet.reviewed_at = datetime.datetime.now(UTC)
    session.commit()
    session.refresh(timesheet)
    record_audit_log(
        session,
        user_id=str(admin_id),
        action=f"TIMESHEET_{normalized}",
        target_type="Timesheet",
        target_id=timesheet.id,
        payload={
            "previous": previous,
            "new": {"status": timesheet.status, "worked_start": timesheet.worked_start, "worked_end": timesheet.worked_end},
        },
        staff_id=timesheet.staff_id,
    )
    return timesheet


def clock_in(session, staff_id: int, now: Optional[datetime.datetime] = None) -> TimeRecord:
    if get_active_time_record(session, staff_id) is not None:
        raise TimesheetError("Already clocked in.")
    stamp = now or datetime.datetime.now(UTC)
    record = TimeRecord(staff_id=staff_id, clock_in_time=stamp, clock_out_time=None, hours_worked=None)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def clock_out(session, staff_id: int, now: Optional[datetime.datetime] = None) -> TimeRecord:
    record = get_active_time_record(session, staff_id)
    if record is None:
        raise TimesheetError("Not clocked in.")
    stamp = now or datetime.datetime.now(UTC)
    clock_in_time = record.clock_in_time
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if clock_in_time.tzinfo is None and stamp.tzinfo is not None:
        clock_in_time = clock_in_time.replace(tzinfo=UTC)
    elif clock_in_time.tzinfo is not None and stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=UTC)
    record.clock_out_time = stamp
    record.hours_worked = (stamp - clock_in_time).total_seconds() / 3600
    session.commit()
    session.refresh(record)
    return record
