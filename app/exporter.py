from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Dict, Optional


DATA_DIR = Path(__file__).resolve().parent / "data" / "exports"
DATA_DIR.mkdir(parents=True, exist_ok=True)
PAYROLL_COLUMNS = ["staff_id", "name", "hourly_rate", "hours", "gross_pay", "timesheets"]


def export_payroll_csv(report: Dict[str, Any], target: Optional[Path] = None) -> Path:
    """Write a weekly payroll report (see payroll.weekly_payroll) as CSV and return its path."""
    if target is None:
        target = DATA_DIR / f"payroll_{report.get('week_start', 'week')}.csv"
    target.parent.mkdir(parents=True, exist_ok=True)
    totals = report.get("totals") or {}
    with target.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=PAYROLL_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for row in report.get("staff") or []:
            writer.writerow({key: row.get(key, "") for key in PAYROLL_COLUMNS})
        writer.writerow(
            {
                "staff_id": "",
                "name": "TOTAL",
                "hourly_rate": "",
                "hours": f"{float(totals.get('hours', 0.0)):.2f}",
                "gross_pay": f"{float(totals.get('gross_pay', 0.0)):.2f}",
                "timesheets": sum(int(row.get("timesheets", 0) or 0) for row in report.get("staff") or []),
            }
        )
    return target
