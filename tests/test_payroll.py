from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from payroll import aggregate_hours, payroll_totals, timesheet_variance, worked_hours  # noqa: E402
from policy import PayRatePolicy  # noqa: E402


def _timesheet(staff_id, start, end, status="APPROVED", rate_snapshot=None, approved=("09:00", "17:00")):
    return SimpleNamespace(
        staff_id=staff_id,
        worked_start=start,
        worked_end=end,
        status=status,
        rate_snapshot=rate_snapshot,
        approved_shift_start=approved[0],
        approved_shift_end=approved[1],
    )


def test_only_approved_hours_are_paid() -> None:
    timesheets = [
        _timesheet(1, "09:00", "13:00"),
        _timesheet(1, "14:00", "17:30"),
        _timesheet(1, "09:00", "17:00", status="REJECTED"),
    ]

    report = aggregate_hours(timesheets, {1: 20.0})

    assert report[1].hours == 7.5
    assert report[1].gross_pay == 150.0
    assert report[1].timesheets == 2


def test_pending_timesheets_are_excluded() -> None:
    report = aggregate_hours([_timesheet(2, "09:00", "17:00", status="PENDING")], {2: 18.0})
    assert report == {}


def test_roster_members_appear_with_zero_totals() -> None:
    members = [SimpleNamespace(id=5, name="Jordan", hourly_rate=19.5)]

    report = aggregate_hours([], {}, roster=members)

    assert report[5].as_dict() == {
        "staff_id": 5,
        "name": "Jordan",
        "hourly_rate": 19.5,
        "hours": 0.0,
        "gross_pay": 0.0,
        "timesheets": 0,
    }


def test_aggregation_is_repeatable() -> None:
    timesheets = [_timesheet(1, "09:00", "12:00"), _timesheet(2, "10:00", "15:00")]
    rates = {1: 20.0, 2: 25.0}

    first = {key: value.as_dict() for key, value in aggregate_hours(timesheets, rates).items()}
    second = {key: value.as_dict() for key, value in aggregate_hours(timesheets, rates).items()}

    assert first == second
    assert payroll_totals(aggregate_hours(timesheets, rates)) == {"hours": 8.0, "gross_pay": 185.0}


def test_negative_durations_are_summed_as_is() -> None:
    timesheets = [_timesheet(1, "17:00", "09:00"), _timesheet(1, "09:00", "19:00")]

    report = aggregate_hours(timesheets, {1: 10.0})

    assert report[1].hours == 2.0
    assert report[1].gross_pay == 20.0


def test_unparseable_worked_times_count_as_zero() -> None:
    timesheets = [_timesheet(1, "9:00", "17:00"), _timesheet(1, "09:00", "11:00")]

    report = aggregate_hours(timesheets, {1: 15.0})

    assert report[1].hours == 2.0
    assert report[1].timesheets == 2
    assert worked_hours(timesheets[0]) == 0.0


def test_current_rate_policy_ignores_snapshots() -> None:
    timesheets = [_timesheet(1, "09:00", "13:00", rate_snapshot=15.0)]

    report = aggregate_hours(timesheets, {1: 20.0}, policy=PayRatePolicy.CURRENT)

    assert report[1].gross_pay == 80.0


def test_snapshot_policy_prices_each_timesheet_at_approval_rate() -> None:
    timesheets = [
        _timesheet(1, "09:00", "13:00", rate_snapshot=15.0),
        _timesheet(1, "13:00", "15:00", rate_snapshot=None),
    ]

    report = aggregate_hours(timesheets, {1: 20.0}, policy=PayRatePolicy.SNAPSHOT_AT_APPROVAL)

    assert report[1].hours == 6.0
    assert report[1].gross_pay == pytest.approx(4 * 15.0 + 2 * 20.0)


def test_unknown_staff_without_rate_is_paid_zero() -> None:
    report = aggregate_hours([_timesheet(9, "09:00", "10:00")], {})
    assert report[9].hours == 1.0
    assert report[9].gross_pay == 0.0


def test_timesheet_variance_compares_worked_to_rostered() -> None:
    assert timesheet_variance(_timesheet(1, "09:15", "17:30")) == pytest.approx(0.25)
    assert timesheet_variance(_timesheet(1, "10:00", "16:00")) == pytest.approx(-2.0)
