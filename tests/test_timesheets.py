from __future__ import annotations

import datetime
import json
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import (  # noqa: E402
    Base,
    create_staff,
    get_active_time_record,
    list_audit_logs,
    update_staff,
    upsert_policy,
)
from errors import FormatError, OrderingError, TimesheetError  # noqa: E402
from payroll import staff_week_hours, weekly_payroll  # noqa: E402
from policy import PayRatePolicy, build_default_policy  # noqa: E402
from roles import ADMIN  # noqa: E402
from roster import approve_shift, submit_availability  # noqa: E402
from timesheets import clock_in, clock_out, review_timesheet, submit_timesheet  # noqa: E402

MONDAY = datetime.date(2024, 4, 1)
UTC = datetime.timezone.utc


@pytest.fixture()
def roster_db():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False, future=True)()
    admin = create_staff(session, name="Manager", email="manager@example.com", role=ADMIN)
    staff = create_staff(session, name="Alex", email="alex@example.com", hourly_rate=20.0)
    other = create_staff(session, name="Maya", email="maya@example.com", hourly_rate=25.0)
    for member in (staff, other):
        submit_availability(session, member.id, MONDAY, {0: [{"start": "09:00", "end": "21:00"}]})
    try:
        yield {"session": session, "admin": admin, "staff": staff, "other": other}
    finally:
        session.close()
        engine.dispose()


def _approve(ctx, start="09:00", end="13:00", member=None):
    member = member or ctx["staff"]
    return approve_shift(
        ctx["session"],
        staff_id=member.id,
        shift_date=MONDAY,
        start=start,
        end=end,
        admin_id=ctx["admin"].id,
    )


def _submit(ctx, shift, start, end, member=None):
    member = member or ctx["staff"]
    return submit_timesheet(ctx["session"], shift_id=shift.id, staff_id=member.id, worked_start=start, worked_end=end)


def test_submit_copies_the_approved_shift(roster_db) -> None:
    shift = _approve(roster_db)

    timesheet = _submit(roster_db, shift, "09:05", "13:10")

    assert timesheet.status == "PENDING"
    assert timesheet.shift_id == shift.id
    assert (timesheet.approved_shift_start, timesheet.approved_shift_end) == ("09:00", "13:00")
    assert (timesheet.worked_start, timesheet.worked_end) == ("09:05", "13:10")
    assert timesheet.week_start_date == MONDAY
    assert timesheet.rate_snapshot == 20.0


def test_submit_rejects_other_staff_and_bad_ranges(roster_db) -> None:
    shift = _approve(roster_db)

    with pytest.raises(PermissionError):
        _submit(roster_db, shift, "09:00", "13:00", member=roster_db["other"])
    with pytest.raises(OrderingError):
        _submit(roster_db, shift, "13:00", "09:00")
    with pytest.raises(FormatError):
        _submit(roster_db, shift, "9:00", "13:00")
    with pytest.raises(LookupError):
        submit_timesheet(roster_db["session"], shift_id=999, staff_id=roster_db["staff"].id, worked_start="09:00", worked_end="10:00")


def test_one_timesheet_per_shift(roster_db) -> None:
    shift = _approve(roster_db)
    _submit(roster_db, shift, "09:00", "13:00")

    with pytest.raises(TimesheetError):
        _submit(roster_db, shift, "09:00", "12:00")


def test_review_approves_with_adjustment_and_audits(roster_db) -> None:
    session = roster_db["session"]
    shift = _approve(roster_db)
    timesheet = _submit(roster_db, shift, "09:00", "14:00")

    reviewed = review_timesheet(
        session, timesheet.id, status="approved", admin_id=roster_db["admin"].id, worked_end="13:30"
    )

    assert reviewed.status == "APPROVED"
    assert (reviewed.worked_start, reviewed.worked_end) == ("09:00", "13:30")
    assert reviewed.reviewed_by == roster_db["admin"].id
    assert reviewed.reviewed_at is not None
    logs = list_audit_logs(session, target_type="Timesheet", target_id=timesheet.id)
    assert [log.action for log in logs] == ["TIMESHEET_APPROVED"]
    payload = json.loads(logs[0].payloadJSON)
    assert payload["previous"]["worked_end"] == "14:00"
    assert payload["new"]["worked_end"] == "13:30"


def test_review_rejects_unknown_status_and_bad_adjustment(roster_db) -> None:
    session = roster_db["session"]
    shift = _approve(roster_db)
    timesheet = _submit(roster_db, shift, "09:00", "13:00")

    with pytest.raises(ValueError):
        review_timesheet(session, timesheet.id, status="PENDING", admin_id=roster_db["admin"].id)
    with pytest.raises(OrderingError):
        review_timesheet(session, timesheet.id, status="APPROVED", admin_id=roster_db["admin"].id, worked_start="14:00")
    with pytest.raises(LookupError):
        review_timesheet(session, 999, status="APPROVED", admin_id=roster_db["admin"].id)


def test_rejected_timesheet_resubmission_follows_policy(roster_db) -> None:
    session = roster_db["session"]
    shift = _approve(roster_db)
    timesheet = _submit(roster_db, shift, "09:00", "15:00")
    review_timesheet(session, timesheet.id, status="REJECTED", admin_id=roster_db["admin"].id)

    with pytest.raises(TimesheetError):
        _submit(roster_db, shift, "09:00", "13:00")

    params = build_default_policy()
    params["timesheets"] = {"allow_resubmit_rejected": True}
    upsert_policy(session, "Resubmit", params, edited_by="tests")

    resubmitted = _submit(roster_db, shift, "09:00", "13:00")
    assert resubmitted.id == timesheet.id
    assert resubmitted.status == "PENDING"
    assert resubmitted.reviewed_by is None


def test_weekly_payroll_uses_approved_timesheets_only(roster_db) -> None:
    session = roster_db["session"]
    morning = _approve(roster_db, "09:00", "13:00")
    evening = _approve(roster_db, "14:00", "17:30")
    other_shift = _approve(roster_db, "10:00", "18:00", member=roster_db["other"])
    for shift, end in ((morning, "13:00"), (evening, "17:30")):
        ts = _submit(roster_db, shift, shift.start_time, end)
        review_timesheet(session, ts.id, status="APPROVED", admin_id=roster_db["admin"].id)
    rejected = _submit(roster_db, other_shift, "10:00", "18:00", member=roster_db["other"])
    review_timesheet(session, rejected.id, status="REJECTED", admin_id=roster_db["admin"].id)

    report = weekly_payroll(session, MONDAY)

    assert report["rate_policy"] == "current"
    rows = {row["name"]: row for row in report["staff"]}
    assert set(rows) == {"Alex", "Maya"}
    assert rows["Alex"]["hours"] == 7.5
    assert rows["Alex"]["gross_pay"] == 150.0
    assert rows["Maya"]["hours"] == 0.0
    assert report["totals"] == {"hours": 7.5, "gross_pay": 150.0}


def test_weekly_payroll_rate_policies_after_raise(roster_db) -> None:
    session = roster_db["session"]
    shift = _approve(roster_db, "09:00", "13:00")
    ts = _submit(roster_db, shift, "09:00", "13:00")
    review_timesheet(session, ts.id, status="APPROVED", admin_id=roster_db["admin"].id)
    update_staff(session, roster_db["staff"].id, hourly_rate=30.0)

    current = weekly_payroll(session, MONDAY, policy=PayRatePolicy.CURRENT)
    snapshot = weekly_payroll(session, MONDAY, policy=PayRatePolicy.SNAPSHOT_AT_APPROVAL)

    alex_current = next(row for row in current["staff"] if row["name"] == "Alex")
    alex_snapshot = next(row for row in snapshot["staff"] if row["name"] == "Alex")
    assert alex_current["gross_pay"] == 120.0
    assert alex_snapshot["gross_pay"] == 80.0


def test_staff_week_hours_breaks_down_each_shift(roster_db) -> None:
    session = roster_db["session"]
    approved = _approve(roster_db, "09:00", "13:00")
    pending = _approve(roster_db, "14:00", "18:00")
    ts = _submit(roster_db, approved, "09:00", "12:30")
    review_timesheet(session, ts.id, status="APPROVED", admin_id=roster_db["admin"].id)
    _submit(roster_db, pending, "14:00", "18:00")

    summary = staff_week_hours(session, roster_db["staff"].id, MONDAY)

    assert summary["rostered_hours"] == 8.0
    assert summary["approved_hours"] == 3.5
    assert summary["gross_pay"] == 70.0
    assert [row["timesheet_status"] for row in summary["shifts"]] == ["APPROVED", "PENDING"]
    assert [row["worked_hours"] for row in summary["shifts"]] == [3.5, 0.0]
    with pytest.raises(LookupError):
        staff_week_hours(session, 999, MONDAY)


def test_staff_week_hours_matches_payroll_under_stored_snapshot_policy(roster_db) -> None:
    session = roster_db["session"]
    upsert_policy(session, "Snapshot Pay", {"payroll": {"rate_policy": "snapshot_at_approval"}}, edited_by="tests")
    shift = _approve(roster_db, "09:00", "13:00")
    ts = _submit(roster_db, shift, "09:00", "13:00")
    review_timesheet(session, ts.id, status="APPROVED", admin_id=roster_db["admin"].id)
    update_staff(session, roster_db["staff"].id, hourly_rate=30.0)

    payroll = weekly_payroll(session, MONDAY)
    mine = staff_week_hours(session, roster_db["staff"].id, MONDAY)

    alex = next(row for row in payroll["staff"] if row["name"] == "Alex")
    assert mine["rate_policy"] == "snapshot_at_approval"
    assert mine["gross_pay"] == alex["gross_pay"] == 80.0
    assert mine["shifts"][0]["pay"] == 80.0
    assert staff_week_hours(session, roster_db["staff"].id, MONDAY, policy=PayRatePolicy.CURRENT)["gross_pay"] == 120.0


def test_clock_in_and_out(roster_db) -> None:
    session = roster_db["session"]
    staff_id = roster_db["staff"].id
    start = datetime.datetime(2024, 4, 1, 9, 0, tzinfo=UTC)

    record = clock_in(session, staff_id, now=start)
    assert get_active_time_record(session, staff_id).id == record.id
    with pytest.raises(TimesheetError):
        clock_in(session, staff_id, now=start)

    closed = clock_out(session, staff_id, now=start + datetime.timedelta(hours=4, minutes=30))
    assert closed.hours_worked == pytest.approx(4.5)
    assert get_active_time_record(session, staff_id) is None
    with pytest.raises(TimesheetError):
        clock_out(session, staff_id)
