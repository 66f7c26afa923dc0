from __future__ import annotations

import datetime
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, selectinload, sessionmaker

from errors import OverlapError
from roles import STAFF, defined_roles, normalize_role
from timeutil import TimeRange, date_for_day, format_time, parse_range, week_start_for
from validation import find_overlaps


DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.environ.get("SHIFT_LEDGER_DATABASE_URL") or f"sqlite:///{(DATA_DIR / 'shift_ledger.db').as_posix()}"

AVAILABILITY_STATUS_CHOICES = {"DRAFT", "SUBMITTED"}
SHIFT_STATUS_APPROVED = "APPROVED"
TIMESHEET_STATUS_CHOICES = {"PENDING", "APPROVED", "REJECTED"}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class StaffMember(Base):
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(12), nullable=False, default=STAFF)
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class Availability(Base):
    __tablename__ = "availability"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    staff_id: Mapped[int] = mapped_column(ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Monday
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default="DRAFT")
    submitted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    ranges: Mapped[List["AvailabilityRange"]] = relationship(
        back_populates="availability", cascade="all, delete-orphan", order_by="AvailabilityRange.position"
    )

    __table_args__ = (
        UniqueConstraint("staff_id", "week_start_date", "day_of_week", name="uq_availability_staff_week_day"),
    )

    @property
    def time_ranges(self) -> List[TimeRange]:
        return [parse_range(entry.start_time, entry.end_time) for entry in self.ranges]


class AvailabilityRange(Base):
    __tablename__ = "availability_ranges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    availability_id: Mapped[int] = mapped_column(ForeignKey("availability.id", ondelete="CASCADE"))
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    availability: Mapped[Availability] = relationship(back_populates="ranges")


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    staff_id: Mapped[int] = mapped_column(ForeignKey("staff.id"), nullable=False)
    shift_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default=SHIFT_STATUS_APPROVED)
    rate_snapshot: Mapped[float | None] = mapped_column(Float, nullable=True)
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    staff: Mapped[StaffMember] = relationship()

    @property
    def start(self) -> str:
        return self.start_time

    @property
    def end(self) -> str:
        return self.end_time


class Timesheet(Base):
    __tablename__ = "timesheets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shift_id: Mapped[int | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    staff_id: Mapped[int] = mapped_column(ForeignKey("staff.id"), nullable=False)
    shift_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    approved_shift_start: Mapped[str] = mapped_column(String(5), nullable=False)
    approved_shift_end: Mapped[str] = mapped_column(String(5), nullable=False)
    worked_start: Mapped[str] = mapped_column(String(5), nullable=False)
    worked_end: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default="PENDING")
    rate_snapshot: Mapped[float | None] = mapped_column(Float, nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class TimeRecord(Base):
    __tablename__ = "time_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    staff_id: Mapped[int] = mapped_column(ForeignKey("staff.id"), nullable=False)
    clock_in_time: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out_time: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    hours_worked: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("name", name="uq_policies_name"),
    )

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
        return {}


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Shift")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    staff_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(4000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)


def init_database() -> None:
    Base.metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Staff


def create_staff(
    session,
    *,
    name: str,
    email: str,
    hourly_rate: float = 0.0,
    role: str = STAFF,
    is_active: bool = True,
) -> StaffMember:
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name or not email:
        raise ValueError("Name and email are required.")
    normalized_role = normalize_role(role)
    if normalized_role not in defined_roles():
        raise ValueError(f"Unsupported role '{role}'.")
    member = StaffMember(
        name=name,
        email=email,
        role=normalized_role,
        hourly_rate=_coerce_rate(hourly_rate),
        is_active=bool(is_active),
    )
    session.add(member)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ValueError("A staff member with that email already exists.") from exc
    session.refresh(member)
    return member


def update_staff(
    session,
    staff_id: int,
    *,
    name: Optional[str] = None,
    hourly_rate: Optional[float] = None,
    is_active: Optional[bool] = None,
) -> StaffMember:
    member = session.get(StaffMember, staff_id)
    if not member:
        raise LookupError(f"Staff member {staff_id} was not found.")
    if name is not None and name.strip():
        member.name = name.strip()
    if hourly_rate is not None:
        member.hourly_rate = _coerce_rate(hourly_rate)
    if is_active is not None:
        member.is_active = bool(is_active)
    session.commit()
    session.refresh(member)
    return member


def _coerce_rate(value: Any) -> float:
    try:
        rate = round(float(value), 2)
    except (TypeError, ValueError) as exc:
        raise ValueError("Hourly rate must be a number.") from exc
    if rate < 0:
        raise ValueError("Hourly rate cannot be negative.")
    return rate


def get_staff(session, staff_id: int) -> Optional[StaffMember]:
    return session.get(StaffMember, staff_id)


def list_staff(session, *, role: Optional[str] = None, only_active: bool = False) -> List[StaffMember]:
    stmt = select(StaffMember)
    if role:
        stmt = stmt.where(StaffMember.role == normalize_role(role))
    if only_active:
        stmt = stmt.where(StaffMember.is_active.is_(True))
    stmt = stmt.order_by(StaffMember.name.asc(), StaffMember.id.asc())
    return list(session.scalars(stmt))


def get_staff_rates(session, staff_ids: Optional[Iterable[int]] = None) -> Dict[int, float]:
    stmt = select(StaffMember.id, StaffMember.hourly_rate)
    ids = list(staff_ids or [])
    if ids:
        stmt = stmt.where(StaffMember.id.in_(ids))
    return {row[0]: float(row[1] or 0.0) for row in session.execute(stmt)}


def staff_to_dict(member: StaffMember) -> Dict[str, Any]:
    return {
        "id": member.id,
        "name": member.name,
        "email": member.email,
        "role": member.role,
        "hourly_rate": member.hourly_rate,
        "is_active": member.is_active,
    }


# ---------------------------------------------------------------------------
# Availability


def replace_availability(
    session,
    staff_id: int,
    week_start: datetime.date,
    day_ranges: Dict[int, List[TimeRange]],
    *,
    is_recurring: bool = False,
    status: str = "SUBMITTED",
) -> List[Availability]:
    """Replace a staff member's availability for the week wholesale."""
    status = (status or "").upper()
    if status not in AVAILABILITY_STATUS_CHOICES:
        raise ValueError(f"Unsupported availability status '{status}'.")
    normalized = week_start_for(week_start)
    stale = session.scalars(
        select(Availability).where(
            Availability.staff_id == staff_id,
            Availability.week_start_date == normalized,
        )
    ).all()
    for entry in stale:
        session.delete(entry)
    session.flush()
    submitted_at = _utcnow() if status == "SUBMITTED" else None
    created: List[Availability] = []
    for day_of_week in sorted(day_ranges):
        ranges = day_ranges[day_of_week]
        if not ranges:
            continue
        entry = Availability(
            staff_id=staff_id,
            week_start_date=normalized,
            day_of_week=int(day_of_week),
            is_recurring=bool(is_recurring),
            status=status,
            submitted_at=submitted_at,
        )
        entry.ranges = [
            AvailabilityRange(position=index, start_time=format_time(item.start), end_time=format_time(item.end))
            for index, item in enumerate(ranges)
        ]
        session.add(entry)
        created.append(entry)
    session.commit()
    return created


def get_availability(session, staff_id: int, week_start: datetime.date) -> Dict[int, List[TimeRange]]:
    stmt = (
        select(Availability)
        .options(selectinload(Availability.ranges))
        .where(
            Availability.staff_id == staff_id,
            Availability.week_start_date == week_start_for(week_start),
        )
        .order_by(Availability.day_of_week)
    )
    return {entry.day_of_week: entry.time_ranges for entry in session.scalars(stmt)}


def get_day_availability(session, staff_id: int, shift_date: datetime.date) -> List[TimeRange]:
    """Submitted availability ranges for one staff member on one calendar date."""
    stmt = (
        select(Availability)
        .options(selectinload(Availability.ranges))
        .where(
            Availability.staff_id == staff_id,
            Availability.week_start_date == week_start_for(shift_date),
            Availability.day_of_week == shift_date.weekday(),
            Availability.status == "SUBMITTED",
        )
    )
    ranges: List[TimeRange] = []
    for entry in session.scalars(stmt):
        ranges.extend(entry.time_ranges)
    return ranges


def list_submitted_availability(
    session, week_start: datetime.date, *, day_of_week: Optional[int] = None
) -> List[Availability]:
    stmt = (
        select(Availability)
        .options(selectinload(Availability.ranges))
        .where(
            Availability.week_start_date == week_start_for(week_start),
            Availability.status == "SUBMITTED",
        )
    )
    if day_of_week is not None:
        stmt = stmt.where(Availability.day_of_week == int(day_of_week))
    stmt = stmt.order_by(Availability.day_of_week, Availability.staff_id)
    return list(session.scalars(stmt))


def availability_to_dict(entry: Availability) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "staff_id": entry.staff_id,
        "week_start_date": entry.week_start_date.isoformat(),
        "day_of_week": entry.day_of_week,
        "date": date_for_day(entry.week_start_date, entry.day_of_week).isoformat(),
        "time_ranges": [item.as_dict() for item in entry.time_ranges],
        "is_recurring": entry.is_recurring,
        "status": entry.status,
        "submitted_at": entry.submitted_at.isoformat() if entry.submitted_at else None,
    }


# ---------------------------------------------------------------------------
# Shifts


def get_shift(session, shift_id: int) -> Optional[Shift]:
    return session.get(Shift, shift_id)


def list_shifts_for_day(
    session, shift_date: datetime.date, *, staff_id: Optional[int] = None
) -> List[Shift]:
    stmt = select(Shift).where(
        Shift.shift_date == shift_date,
        Shift.status == SHIFT_STATUS_APPROVED,
    )
    if staff_id:
        stmt = stmt.where(Shift.staff_id == staff_id)
    stmt = stmt.order_by(Shift.start_time, Shift.end_time, Shift.id)
    return list(session.scalars(stmt))


def list_shifts_for_week(
    session, week_start: datetime.date, *, staff_id: Optional[int] = None
) -> List[Shift]:
    stmt = select(Shift).where(
        Shift.week_start_date == week_start_for(week_start),
        Shift.status == SHIFT_STATUS_APPROVED,
    )
    if staff_id:
        stmt = stmt.where(Shift.staff_id == staff_id)
    stmt = stmt.order_by(Shift.shift_date, Shift.start_time, Shift.id)
    return list(session.scalars(stmt))


def commit_shift_if_no_conflict(session, shift: Shift, *, exclude_id: Optional[int] = None) -> Shift:
    """Persist ``shift`` only if no approved shift for the same staff/date overlaps it.

    The conflict read and the write happen in one transaction. Rows are locked with
    SELECT ... FOR UPDATE where the backend supports it; SQLite serializes writers.
    """
    try:
        stmt = (
            select(Shift)
            .where(
                Shift.staff_id == shift.staff_id,
                Shift.shift_date == shift.shift_date,
                Shift.status == SHIFT_STATUS_APPROVED,
            )
            .with_for_update()
        )
        if exclude_id is not None:
            stmt = stmt.where(Shift.id != exclude_id)
        with session.no_autoflush:
            existing = list(session.scalars(stmt))
        conflicts = find_overlaps(parse_range(shift.start_time, shift.end_time), existing, exclude_id=exclude_id)
        if conflicts:
            raise OverlapError(item.id for item in conflicts)
        session.add(shift)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(shift)
    return shift


def delete_shift(session, shift_id: int) -> Optional[Shift]:
    """Delete a shift; any timesheet already submitted against it is kept and detached."""
    shift = session.get(Shift, shift_id)
    if not shift:
        return None
    session.execute(update(Timesheet).where(Timesheet.shift_id == shift_id).values(shift_id=None))
    session.delete(shift)
    session.commit()
    return shift


def shift_to_dict(shift: Shift, staff: Optional[StaffMember] = None) -> Dict[str, Any]:
    return {
        "id": shift.id,
        "staff_id": shift.staff_id,
        "staff_name": staff.name if staff else None,
        "date": shift.shift_date.isoformat(),
        "week_start_date": shift.week_start_date.isoformat(),
        "start_time": shift.start_time,
        "end_time": shift.end_time,
        "status": shift.status,
        "approved_by": shift.approved_by,
        "approved_at": shift.approved_at.isoformat() if shift.approved_at else None,
        "updated_by": shift.updated_by,
    }


# ---------------------------------------------------------------------------
# Timesheets and clock records


def get_timesheet(session, timesheet_id: int) -> Optional[Timesheet]:
    return session.get(Timesheet, timesheet_id)


def get_timesheet_for_shift(session, shift_id: int) -> Optional[Timesheet]:
    return session.scalars(select(Timesheet).where(Timesheet.shift_id == shift_id)).first()


def list_timesheets_for_week(
    session,
    week_start: datetime.date,
    *,
    staff_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[Timesheet]:
    stmt = select(Timesheet).where(Timesheet.week_start_date == week_start_for(week_start))
    if staff_id:
        stmt = stmt.where(Timesheet.staff_id == staff_id)
    if status and status.upper() != "ALL":
        if status.upper() not in TIMESHEET_STATUS_CHOICES:
            raise ValueError(f"Unsupported timesheet status '{status}'.")
        stmt = stmt.where(Timesheet.status == status.upper())
    stmt = stmt.order_by(Timesheet.shift_date, Timesheet.approved_shift_start, Timesheet.id)
    return list(session.scalars(stmt))


def list_timesheets_for_day(session, shift_date: datetime.date) -> List[Timesheet]:
    stmt = (
        select(Timesheet)
        .where(Timesheet.shift_date == shift_date)
        .order_by(Timesheet.approved_shift_start, Timesheet.id)
    )
    return list(session.scalars(stmt))


def timesheet_to_dict(timesheet: Timesheet) -> Dict[str, Any]:
    return {
        "id": timesheet.id,
        "shift_id": timesheet.shift_id,
        "staff_id": timesheet.staff_id,
        "date": timesheet.shift_date.isoformat(),
        "week_start_date": timesheet.week_start_date.isoformat(),
        "approved_shift_start": timesheet.approved_shift_start,
        "approved_shift_end": timesheet.approved_shift_end,
        "worked_start": timesheet.worked_start,
        "worked_end": timesheet.worked_end,
        "status": timesheet.status,
        "reviewed_by": timesheet.reviewed_by,
        "reviewed_at": timesheet.reviewed_at.isoformat() if timesheet.reviewed_at else None,
    }


def get_active_time_record(session, staff_id: int) -> Optional[TimeRecord]:
    stmt = (
        select(TimeRecord)
        .where(TimeRecord.staff_id == staff_id, TimeRecord.clock_out_time.is_(None))
        .order_by(TimeRecord.clock_in_time.desc())
    )
    return session.scalars(stmt).first()


def time_record_to_dict(record: TimeRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "staff_id": record.staff_id,
        "clock_in_time": record.clock_in_time.isoformat() if record.clock_in_time else None,
        "clock_out_time": record.clock_out_time.isoformat() if record.clock_out_time else None,
        "hours_worked": record.hours_worked,
    }


# ---------------------------------------------------------------------------
# Policy and audit


def get_policies(session) -> List[Policy]:
    stmt = select(Policy).order_by(Policy.name.asc(), Policy.id.asc())
    return list(session.scalars(stmt))


def upsert_policy(session, name: str, params_dict: Dict, *, edited_by: str = "system") -> Policy:
    existing: Optional[Policy] = session.execute(
        select(Policy).where(Policy.name == name)
    ).scalars().first()
    payload = params_dict if isinstance(params_dict, dict) else {}
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        session.commit()
        session.refresh(existing)
        return existing
    policy = Policy(
        name=name,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(policy)
    session.commit()
    session.refresh(policy)
    return policy


def get_active_policy(session) -> Optional[Policy]:
    stmt = select(Policy).order_by(Policy.lastEditedAt.desc(), Policy.id.desc())
    return session.scalars(stmt).first()


def policy_to_dict(policy: Policy) -> Dict[str, Any]:
    return {
        "id": policy.id,
        "name": policy.name,
        "params": policy.params_dict(),
        "lastEditedBy": policy.lastEditedBy,
        "lastEditedAt": policy.lastEditedAt.isoformat() if policy.lastEditedAt else None,
    }


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Shift",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
    *,
    staff_id: Optional[int] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=str(user_id),
        action=action,
        target_type=target_type,
        target_id=target_id,
        staff_id=staff_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log


def list_audit_logs(session, *, target_type: Optional[str] = None, target_id: Optional[int] = None) -> List[AuditLog]:
    stmt = select(AuditLog)
    if target_type:
        stmt = stmt.where(AuditLog.target_type == target_type)
    if target_id is not None:
        stmt = stmt.where(AuditLog.target_id == target_id)
    return list(session.scalars(stmt.order_by(AuditLog.id)))


def audit_log_to_dict(log: AuditLog) -> Dict[str, Any]:
    return {
        "id": log.id,
        "user_id": log.user_id,
        "action": log.action,
        "target_type": log.target_type,
        "target_id": log.target_id,
        "staff_id": log.staff_id,
        "payload": json.loads(log.payloadJSON or "{}"),
        "created_at": log.created_at.isoformat() if log.created_at else None,
    }
