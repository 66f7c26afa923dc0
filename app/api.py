"""FastAPI surface for rosters, timesheets and payroll.

Callers identify themselves with the ``X-Staff-Id`` header; sign-in itself is handled
by whatever sits in front of this service. Every route is gated on the STAFF or
ADMIN role of that staff record.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import FileResponse, JSONResponse

# Ensure flat absolute imports (e.g., "import database") resolve when served from the repo root.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from audit import audit_logger  # noqa: E402
from database import (  # noqa: E402
    SessionLocal,
    StaffMember,
    audit_log_to_dict,
    availability_to_dict,
    create_staff,
    get_active_policy,
    get_availability,
    get_active_time_record,
    get_policies,
    get_staff,
    init_database,
    list_audit_logs,
    list_shifts_for_day,
    list_shifts_for_week,
    list_staff,
    list_submitted_availability,
    list_timesheets_for_day,
    list_timesheets_for_week,
    policy_to_dict,
    record_audit_log,
    shift_to_dict,
    staff_to_dict,
    time_record_to_dict,
    timesheet_to_dict,
    update_staff,
    upsert_policy,
)
from errors import AvailabilityMismatchError, OperatingHoursError, OverlapError, TimesheetError  # noqa: E402
from exporter import export_payroll_csv  # noqa: E402
from payroll import staff_week_hours, timesheet_variance, weekly_payroll  # noqa: E402
from policy import PayRatePolicy, ensure_default_policy, load_active_policy, validate_policy  # noqa: E402
from roles import ADMIN, STAFF, is_admin, require_role  # noqa: E402
from roster import (  # noqa: E402
    approve_shift,
    copy_previous_week_availability,
    edit_shift,
    remove_shift,
    submit_availability,
    validate_week_roster,
)
from timesheets import clock_in, clock_out, review_timesheet, submit_timesheet  # noqa: E402
from timeutil import week_start_for  # noqa: E402

DOMAIN_ERRORS = (ValueError, LookupError, PermissionError)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_database()
    ensure_default_policy(SessionLocal)
    yield


app = FastAPI(title="Shift Ledger API", version="0.1", lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_member(
    x_staff_id: Optional[int] = Header(None),
    db=Depends(get_db),
) -> Optional[StaffMember]:
    if x_staff_id is None:
        return None
    return get_staff(db, x_staff_id)


def _gate(*roles: str):
    def dependency(member: Optional[StaffMember] = Depends(get_current_member)) -> StaffMember:
        denied: Optional[PermissionError] = None
        for role in roles:
            try:
                return require_role(member, role)
            except PermissionError as exc:
                denied = exc
        audit_logger.log(
            "ACCESS_DENIED",
            getattr(member, "id", None),
            role=getattr(member, "role", None),
            details={"required": " or ".join(roles), "reason": str(denied)},
        )
        status = 401 if member is None else 403
        raise HTTPException(status_code=status, detail=str(denied)) from denied

    return dependency


require_admin = _gate(ADMIN)
require_staff = _gate(STAFF)
require_member = _gate(STAFF, ADMIN)


def _scope_staff_id(member: StaffMember, requested: Optional[int]) -> Optional[int]:
    """Admins may look at anyone; staff only ever see their own rows."""
    if is_admin(member):
        return requested
    return member.id


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (OperatingHoursError, AvailabilityMismatchError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, OverlapError):
        return HTTPException(status_code=409, detail={"message": str(exc), "conflicts": exc.conflicting_ids})
    if isinstance(exc, TimesheetError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc).strip("'\""))
    return HTTPException(status_code=400, detail=str(exc))


def _parse_date(value: str, field: str = "date") -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be YYYY-MM-DD")


def _parse_week_start(value: str) -> datetime.date:
    return week_start_for(_parse_date(value, "weekStart"))


def _serialize_days(days: Dict[int, Any]) -> Dict[str, Any]:
    return {str(day): [item.as_dict() for item in ranges] for day, ranges in sorted(days.items())}


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Staff


@app.get("/api/v1/staff")
def staff_list(
    role: Optional[str] = Query(None),
    active: bool = Query(False),
    db=Depends(get_db),
    _admin=Depends(require_admin),
) -> JSONResponse:
    members = list_staff(db, role=role, only_active=active)
    return JSONResponse(content=jsonable_encoder({"staff": [staff_to_dict(member) for member in members]}))


@app.post("/api/v1/staff")
def staff_create(payload: Dict[str, Any], db=Depends(get_db), admin=Depends(require_admin)) -> JSONResponse:
    try:
        member = create_staff(
            db,
            name=payload.get("name") or "",
            email=payload.get("email") or "",
            hourly_rate=payload.get("hourly_rate", 0.0),
            role=payload.get("role") or STAFF,
        )
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    record_audit_log(db, user_id=str(admin.id), action="STAFF_CREATE", target_type="Staff", target_id=member.id)
    return JSONResponse(status_code=201, content=jsonable_encoder(staff_to_dict(member)))


@app.patch("/api/v1/staff/{staff_id}")
def staff_update(
    staff_id: int,
    payload: Dict[str, Any],
    db=Depends(get_db),
    admin=Depends(require_admin),
) -> JSONResponse:
    try:
        member = update_staff(
            db,
            staff_id,
            name=payload.get("name"),
            hourly_rate=payload.get("hourly_rate"),
            is_active=payload.get("is_active"),
        )
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    record_audit_log(
        db,
        user_id=str(admin.id),
        action="STAFF_UPDATE",
        target_type="Staff",
        target_id=member.id,
        payload={key: payload.get(key) for key in ("name", "hourly_rate", "is_active") if key in payload},
    )
    return JSONResponse(content=jsonable_encoder(staff_to_dict(member)))


# ---------------------------------------------------------------------------
# Availability


@app.get("/api/v1/availability/{week_start}")
def my_availability(week_start: str, db=Depends(get_db), member=Depends(require_staff)) -> JSONResponse:
    start_date = _parse_week_start(week_start)
    days = get_availability(db, member.id, start_date)
    return JSONResponse(content={"week_start": start_date.isoformat(), "days": _serialize_days(days)})


@app.put("/api/v1/availability/{week_start}")
def put_availability(
    week_start: str,
    payload: Dict[str, Any],
    db=Depends(get_db),
    member=Depends(require_staff),
) -> JSONResponse:
    start_date = _parse_week_start(week_start)
    days_raw = payload.get("days") or {}
    if not isinstance(days_raw, dict):
        raise HTTPException(status_code=400, detail="days must be an object keyed by day_of_week")
    try:
        days = submit_availability(
            db,
            member.id,
            start_date,
            {int(day): ranges for day, ranges in days_raw.items()},
            is_recurring=bool(payload.get("is_recurring", False)),
        )
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(content={"week_start": start_date.isoformat(), "days": _serialize_days(days)})


@app.get("/api/v1/availability/{week_start}/previous")
def previous_availability(week_start: str, db=Depends(get_db), member=Depends(require_staff)) -> JSONResponse:
    start_date = _parse_week_start(week_start)
    days = copy_previous_week_availability(db, member.id, start_date)
    return JSONResponse(content={"week_start": start_date.isoformat(), "days": _serialize_days(days)})


@app.get("/api/v1/weeks/{week_start}/availability")
def submitted_availability(
    week_start: str,
    day_of_week: Optional[int] = Query(None),
    db=Depends(get_db),
    _admin=Depends(require_admin),
) -> JSONResponse:
    start_date = _parse_week_start(week_start)
    entries = list_submitted_availability(db, start_date, day_of_week=day_of_week)
    return JSONResponse(
        content=jsonable_encoder(
            {"week_start": start_date.isoformat(), "availability": [availability_to_dict(item) for item in entries]}
        )
    )


# ---------------------------------------------------------------------------
# Roster


@app.get("/api/v1/weeks/{week_start}/shifts")
def week_shifts(
    week_start: str,
    staff_id: Optional[int] = Query(None),
    db=Depends(get_db),
    member=Depends(require_member),
) -> JSONResponse:
    staff_id = _scope_staff_id(member, staff_id)
    start_date = _parse_week_start(week_start)
    shifts = list_shifts_for_week(db, start_date, staff_id=staff_id)
    return JSONResponse(
        content=jsonable_encoder(
            {"week_start": start_date.isoformat(), "shifts": [shift_to_dict(item, item.staff) for item in shifts]}
        )
    )


@app.get("/api/v1/days/{shift_date}/shifts")
def day_shifts(shift_date: str, db=Depends(get_db), _admin=Depends(require_admin)) -> JSONResponse:
    day = _parse_date(shift_date)
    shifts = list_shifts_for_day(db, day)
    timesheets = {item.shift_id: item for item in list_timesheets_for_day(db, day) if item.shift_id is not None}
    payload = []
    for shift in shifts:
        entry = shift_to_dict(shift, shift.staff)
        timesheet = timesheets.get(shift.id)
        entry["timesheet"] = timesheet_to_dict(timesheet) if timesheet else None
        if timesheet:
            entry["timesheet"]["variance_hours"] = round(timesheet_variance(timesheet), 2)
        payload.append(entry)
    return JSONResponse(content=jsonable_encoder({"date": day.isoformat(), "shifts": payload}))


@app.post("/api/v1/shifts")
def create_shift(payload: Dict[str, Any], db=Depends(get_db), admin=Depends(require_admin)) -> JSONResponse:
    if payload.get("staff_id") is None or not payload.get("date"):
        raise HTTPException(status_code=400, detail="staff_id and date are required")
    shift_date = _parse_date(str(payload.get("date")))
    try:
        shift = approve_shift(
            db,
            staff_id=int(payload["staff_id"]),
            shift_date=shift_date,
            start=payload.get("start_time"),
            end=payload.get("end_time"),
            admin_id=admin.id,
        )
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(status_code=201, content=jsonable_encoder(shift_to_dict(shift, shift.staff)))


@app.put("/api/v1/shifts/{shift_id}")
def update_shift(
    shift_id: int,
    payload: Dict[str, Any],
    db=Depends(get_db),
    admin=Depends(require_admin),
) -> JSONResponse:
    try:
        shift = edit_shift(
            db,
            shift_id,
            start=payload.get("start_time"),
            end=payload.get("end_time"),
            admin_id=admin.id,
        )
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(content=jsonable_encoder(shift_to_dict(shift, shift.staff)))


@app.delete("/api/v1/shifts/{shift_id}")
def delete_shift_endpoint(shift_id: int, db=Depends(get_db), admin=Depends(require_admin)) -> JSONResponse:
    try:
        removed = remove_shift(db, shift_id, admin_id=admin.id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(content=jsonable_encoder({"removed": removed}))


@app.get("/api/v1/weeks/{week_start}/validate")
def validate_week_endpoint(week_start: str, db=Depends(get_db), _admin=Depends(require_admin)) -> JSONResponse:
    start_date = _parse_week_start(week_start)
    report = validate_week_roster(db, start_date)
    return JSONResponse(content=jsonable_encoder(report))


# ---------------------------------------------------------------------------
# Timesheets and clock


@app.post("/api/v1/shifts/{shift_id}/timesheet")
def submit_timesheet_endpoint(
    shift_id: int,
    payload: Dict[str, Any],
    db=Depends(get_db),
    member=Depends(require_staff),
) -> JSONResponse:
    try:
        timesheet = submit_timesheet(
            db,
            shift_id=shift_id,
            staff_id=member.id,
            worked_start=payload.get("worked_start"),
            worked_end=payload.get("worked_end"),
        )
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(status_code=201, content=jsonable_encoder(timesheet_to_dict(timesheet)))


@app.get("/api/v1/weeks/{week_start}/timesheets")
def week_timesheets(
    week_start: str,
    status: Optional[str] = Query(None),
    db=Depends(get_db),
    member=Depends(require_member),
) -> JSONResponse:
    staff_id = _scope_staff_id(member, None)
    start_date = _parse_week_start(week_start)
    try:
        timesheets = list_timesheets_for_week(db, start_date, staff_id=staff_id, status=status)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    payload = []
    for timesheet in timesheets:
        entry = timesheet_to_dict(timesheet)
        entry["variance_hours"] = round(timesheet_variance(timesheet), 2)
        payload.append(entry)
    return JSONResponse(content=jsonable_encoder({"week_start": start_date.isoformat(), "timesheets": payload}))


@app.post("/api/v1/timesheets/{timesheet_id}/review")
def review_timesheet_endpoint(
    timesheet_id: int,
    payload: Dict[str, Any],
    db=Depends(get_db),
    admin=Depends(require_admin),
) -> JSONResponse:
    try:
        timesheet = review_timesheet(
            db,
            timesheet_id,
            status=payload.get("status") or "",
            admin_id=admin.id,
            worked_start=payload.get("worked_start"),
            worked_end=payload.get("worked_end"),
        )
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(content=jsonable_encoder(timesheet_to_dict(timesheet)))


@app.get("/api/v1/clock")
def clock_status(db=Depends(get_db), member=Depends(require_staff)) -> JSONResponse:
    record = get_active_time_record(db, member.id)
    return JSONResponse(content=jsonable_encoder({"active": time_record_to_dict(record) if record else None}))


@app.post("/api/v1/clock/in")
def clock_in_endpoint(db=Depends(get_db), member=Depends(require_staff)) -> JSONResponse:
    try:
        record = clock_in(db, member.id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(status_code=201, content=jsonable_encoder(time_record_to_dict(record)))


@app.post("/api/v1/clock/out")
def clock_out_endpoint(db=Depends(get_db), member=Depends(require_staff)) -> JSONResponse:
    try:
        record = clock_out(db, member.id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return JSONResponse(content=jsonable_encoder(time_record_to_dict(record)))


# ---------------------------------------------------------------------------
# Hours and payroll


def _rate_policy_param(value: Optional[str]) -> Optional[PayRatePolicy]:
    if not value:
        return None
    try:
        return PayRatePolicy(value.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unsupported rate_policy '{value}'")


@app.get("/api/v1/weeks/{week_start}/payroll")
def payroll_report(
    week_start: str,
    rate_policy: Optional[str] = Query(None),
    db=Depends(get_db),
    _admin=Depends(require_admin),
) -> JSONResponse:
    start_date = _parse_week_start(week_start)
    report = weekly_payroll(db, start_date, policy=_rate_policy_param(rate_policy))
    return JSONResponse(content=jsonable_encoder(report))


@app.get("/api/v1/weeks/{week_start}/payroll.csv")
def payroll_export(
    week_start: str,
    rate_policy: Optional[str] = Query(None),
    db=Depends(get_db),
    _admin=Depends(require_admin),
) -> FileResponse:
    start_date = _parse_week_start(week_start)
    report = weekly_payroll(db, start_date, policy=_rate_policy_param(rate_policy))
    path = export_payroll_csv(report)
    return FileResponse(path, media_type="text/csv", filename=path.name)


@app.get("/api/v1/weeks/{week_start}/hours/me")
def my_hours(week_start: str, db=Depends(get_db), member=Depends(require_staff)) -> JSONResponse:
    start_date = _parse_week_start(week_start)
    return JSONResponse(content=jsonable_encoder(staff_week_hours(db, member.id, start_date)))


# ---------------------------------------------------------------------------
# Policy


@app.get("/api/v1/policy/active")
def active_policy(db=Depends(get_db), _member=Depends(require_member)) -> JSONResponse:
    policy = get_active_policy(db)
    payload = {
        "id": policy.id if policy else None,
        "name": policy.name if policy else None,
        "params": load_active_policy(db),
        "lastEditedBy": policy.lastEditedBy if policy else None,
        "lastEditedAt": policy.lastEditedAt.isoformat() if policy and policy.lastEditedAt else None,
    }
    return JSONResponse(content=jsonable_encoder(payload))


@app.put("/api/v1/policy/active")
def set_active_policy(payload: Dict[str, Any], db=Depends(get_db), admin=Depends(require_admin)) -> JSONResponse:
    name = payload.get("name")
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    try:
        params = validate_policy(payload.get("params") or {})
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    policy = upsert_policy(db, name=name, params_dict=params, edited_by=str(admin.id))
    record_audit_log(
        db, user_id=str(admin.id), action="POLICY_EDIT", target_type="Policy", target_id=policy.id, payload={"name": name}
    )
    return JSONResponse(content=jsonable_encoder(policy_to_dict(policy)))


@app.get("/api/v1/policy/history")
def policy_history(db=Depends(get_db), _admin=Depends(require_admin)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder({"policies": [policy_to_dict(item) for item in get_policies(db)]}))


# ---------------------------------------------------------------------------
# Audit trail


@app.get("/api/v1/audit")
def audit_trail(
    target_type: Optional[str] = Query(None),
    target_id: Optional[int] = Query(None),
    db=Depends(get_db),
    _admin=Depends(require_admin),
) -> JSONResponse:
    logs = list_audit_logs(db, target_type=target_type, target_id=target_id)
    return JSONResponse(content=jsonable_encoder({"entries": [audit_log_to_dict(item) for item in logs]}))
