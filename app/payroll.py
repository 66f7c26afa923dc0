from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from database import (
    get_staff,
    get_staff_rates,
    list_shifts_for_week,
    list_staff,
    list_timesheets_for_week,
)
from errors import FormatError
from policy import PayRatePolicy, load_active_policy, rate_policy
from roles import STAFF
from timeutil import duration_hours, format_week_label, week_start_for

APPROVED = "APPROVED"


@dataclass
class StaffHours:
    staff_id: int
    name: str = ""
    hourly_rate: float = 0.0
    hours: float = 0.0
    gross_pay: float = 0.0
    timesheets: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "staff_id": self.staff_id,
            "name": self.name,
            "hourly_rate": round(self.hourly_rate, 2),
            "hours": round(self.hours, 2),
            "gross_pay": round(self.gross_pay, 2),
            "timesheets": self.timesheets,
        }


def worked_hours(timesheet: Any) -> float:
    """Worked duration of one timesheet; unparseable labels count as zero."""
    try:
        return duration_hours(timesheet.worked_start, timesheet.worked_end)
    except FormatError:
        return 0.0


def timesheet_variance(timesheet: Any) -> float:
    """Worked minus rostered hours for one timesheet."""
    try:
        rostered = duration_hours(timesheet.approved_shift_start, timesheet.approved_shift_end)
    except FormatError:
        rostered = 0.0
    return worked_hours(timesheet) - rostered


def _current_rate(rates: Mapping[int, float], staff_id: int, fallback: Any = None) -> float:
    value = rates.get(staff_id)
    if value is None:
        value = getattr(fallback, "hourly_rate", None)
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0


def aggregate_hours(
    timesheets: Iterable[Any],
    rates: Mapping[int, float],
    *,
    roster: Iterable[Any] = (),
    policy: PayRatePolicy = PayRatePolicy.CURRENT,
) -> Dict[int, StaffHours]:
    """Fold approved timesheets into per-staff hours and gross pay.

    Only APPROVED timesheets count. ``roster`` entries (staff ids or staff records)
    always appear, with zero totals when nothing was approved. Under
    ``PayRatePolicy.CURRENT`` summed hours are multiplied by the staff member's rate
    from ``rates``; under ``SNAPSHOT_AT_APPROVAL`` each timesheet is priced at its
    ``rate_snapshot`` when present. Negative durations are summed as-is.
    """
    report: Dict[int, StaffHours] = {}
    snapshot_pay: Dict[int, float] = {}
    for member in roster:
        staff_id = getattr(member, "id", member)
        report[staff_id] = StaffHours(
            staff_id=staff_id,
            name=getattr(member, "name", "") or "",
            hourly_rate=_current_rate(rates, staff_id, member),
        )
    for timesheet in timesheets:
        if (getattr(timesheet, "status", "") or "").upper() != APPROVED:
            continue
        staff_id = timesheet.staff_id
        entry = report.get(staff_id)
        if entry is None:
            entry = report[staff_id] = StaffHours(staff_id=staff_id, hourly_rate=_current_rate(rates, staff_id))
        hours = worked_hours(timesheet)
        entry.hours += hours
        entry.timesheets += 1
        if policy == PayRatePolicy.SNAPSHOT_AT_APPROVAL:
            snapshot = getattr(timesheet, "rate_snapshot", None)
            rate = entry.hourly_rate if snapshot is None else float(snapshot)
            snapshot_pay[staff_id] = snapshot_pay.get(staff_id, 0.0) + hours * rate
    for staff_id, entry in report.items():
        if policy == PayRatePolicy.SNAPSHOT_AT_APPROVAL:
            entry.gross_pay = snapshot_pay.get(staff_id, 0.0)
        else:
            entry.gross_pay = entry.hours * entry.hourly_rate
    return report


def payroll_totals(report: Mapping[int, StaffHours]) -> Dict[str, float]:
    hours = 0.0
    pay = 0.0
    for entry in report.values():
        hours += entry.hours
        pay += entry.gross_pay
    return {"hours": round(hours, 2), "gross_pay": round(pay, 2)}


def weekly_payroll(
    session,
    week_start: datetime.date,
    *,
    policy: Optional[PayRatePolicy] = None,
) -> Dict[str, Any]:
    """Payroll report for every active staff member plus anyone with approved hours."""
    normalized = week_start_for(week_start)
    if policy is None:
        policy = rate_policy(load_active_policy(session))
    roster = list_staff(session, role=STAFF, only_active=True)
    timesheets = list_timesheets_for_week(session, normalized, status=APPROVED)
    staff_ids = {member.id for member in roster} | {item.staff_id for item in timesheets}
    rates = get_staff_rates(session, staff_ids)
    report = aggregate_hours(timesheets, rates, roster=roster, policy=policy)
    for staff_id, entry in report.items():
        if not entry.name:
            member = get_staff(session, staff_id)
            entry.name = member.name if member else f"Staff {staff_id}"
    rows = sorted(report.values(), key=lambda item: (item.name.lower(), item.staff_id))
    return {
        "week_start": normalized.isoformat(),
        "week_label": format_week_label(normalized),
        "rate_policy": policy.value,
        "staff": [entry.as_dict() for entry in rows],
        "totals": payroll_totals(report),
    }


def staff_week_hours(
    session,
    staff_id: int,
    week_start: datetime.date,
    *,
    policy: Optional[PayRatePolicy] = None,
) -> Dict[str, Any]:
    """Per-shift breakdown of rostered vs approved worked hours for one staff member.

    Pay is priced the same way as ``weekly_payroll`` so both views agree.
    """
    normalized = week_start_for(week_start)
    if policy is None:
        policy = rate_policy(load_active_policy(session))
    member = get_staff(session, staff_id)
    if member is None:
        raise LookupError(f"Staff member {staff_id} was not found.")
    shifts = list_shifts_for_week(session, normalized, staff_id=staff_id)
    timesheets = list_timesheets_for_week(session, normalized, staff_id=staff_id)
    by_shift = {item.shift_id: item for item in timesheets if item.shift_id is not None}
    rate = float(member.hourly_rate or 0.0)
    rows: List[Dict[str, Any]] = []
    rostered_total = 0.0
    for shift in shifts:
        rostered = duration_hours(shift.start_time, shift.end_time)
        rostered_total += rostered
        timesheet = by_shift.get(shift.id)
        status = timesheet.status if timesheet else None
        approved_hours = worked_hours(timesheet) if timesheet and status == APPROVED else 0.0
        row_rate = rate
        if policy == PayRatePolicy.SNAPSHOT_AT_APPROVAL and timesheet and timesheet.rate_snapshot is not None:
            row_rate = float(timesheet.rate_snapshot)
        rows.append(
            {
                "shift_id": shift.id,
                "date": shift.shift_date.isoformat(),
                "start_time": shift.start_time,
                "end_time": shift.end_time,
                "rostered_hours": round(rostered, 2),
                "timesheet_status": status,
                "worked_hours": round(approved_hours, 2),
                "pay": round(approved_hours * row_rate, 2),
            }
        )
    report = aggregate_hours(timesheets, {staff_id: rate}, roster=[member], policy=policy)
    entry = report[staff_id]
    return {
        "week_start": normalized.isoformat(),
        "staff_id": staff_id,
        "name": member.name,
        "hourly_rate": round(rate, 2),
        "rate_policy": policy.value,
        "shifts": rows,
        "rostered_hours": round(rostered_total, 2),
        "approved_hours": round(entry.hours, 2),
        "gross_pay": round(entry.gross_pay, 2),
    }
