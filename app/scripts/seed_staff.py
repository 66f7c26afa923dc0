from __future__ import annotations

import datetime
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from database import SessionLocal, StaffMember, init_database, replace_availability
from policy import ensure_default_policy
from roles import ADMIN, STAFF, normalize_role
from timeutil import parse_range, week_start_for


DAY_INDEX = {
    "Mon": 0,
    "Tue": 1,
    "Wed": 2,
    "Thu": 3,
    "Fri": 4,
    "Sat": 5,
    "Sun": 6,
}


def build_week_ranges(rows: Dict[str, List[Tuple[str, str]]]):
    ranges = {}
    for day_name, windows in rows.items():
        if day_name not in DAY_INDEX:
            print(f"[seed] Skipping unknown day '{day_name}'.")
            continue
        ranges[DAY_INDEX[day_name]] = [parse_range(start, end) for start, end in windows]
    return ranges


SAMPLE_STAFF: List[Dict] = [
    {
        "name": "Store Manager",
        "email": "manager@example.com",
        "role": ADMIN,
        "hourly_rate": 0.0,
    },
    {
        "name": "Alex Nguyen",
        "email": "alex@example.com",
        "hourly_rate": 22.5,
        "availability": {"Mon": [("09:00", "17:00")], "Wed": [("12:00", "21:00")], "Sat": [("09:00", "15:00")]},
    },
    {
        "name": "Maya Thompson",
        "email": "maya@example.com",
        "hourly_rate": 24.0,
        "availability": {"Tue": [("09:00", "13:00"), ("16:00", "21:00")], "Thu": [("09:00", "21:00")]},
    },
    {
        "name": "Jordan Ellis",
        "email": "jordan@example.com",
        "hourly_rate": 20.0,
        "availability": {"Fri": [("13:00", "21:00")], "Sun": [("10:00", "18:00")]},
    },
    {
        "name": "Sofia Ramirez",
        "email": "sofia@example.com",
        "hourly_rate": 21.75,
        "availability": {"Mon": [("12:00", "21:00")], "Fri": [("09:00", "14:00")]},
    },
    {
        "name": "Logan Patel",
        "email": "logan@example.com",
        "hourly_rate": 23.0,
        "availability": {"Wed": [("09:00", "15:00")], "Sat": [("12:00", "21:00")]},
    },
]


def seed_staff(week_start: Optional[datetime.date] = None) -> None:
    init_database()
    ensure_default_policy(SessionLocal)
    target_week = week_start_for(week_start or datetime.date.today())
    created = 0
    refreshed = 0
    with SessionLocal() as session:
        for entry in SAMPLE_STAFF:
            role = normalize_role(entry.get("role", STAFF))
            if not role:
                print(f"[seed] Skipping {entry['name']} because role '{entry.get('role')}' is undefined.")
                continue

            stmt = select(StaffMember).where(StaffMember.email == entry["email"])
            member = session.scalars(stmt).first()
            if not member:
                member = StaffMember(
                    name=entry["name"],
                    email=entry["email"],
                    role=role,
                    hourly_rate=entry.get("hourly_rate", 0.0),
                    is_active=True,
                )
                session.add(member)
                session.flush()
                created += 1
            else:
                member.name = entry["name"]
                member.role = role
                member.hourly_rate = entry.get("hourly_rate", 0.0)
                refreshed += 1
            session.commit()

            if entry.get("availability"):
                replace_availability(session, member.id, target_week, build_week_ranges(entry["availability"]))
    print(
        f"Seed complete. Created {created} staff, refreshed {refreshed} profiles, "
        f"availability stored for week of {target_week.isoformat()}."
    )


if __name__ == "__main__":
    seed_staff()
