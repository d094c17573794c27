from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select

from .database import (
    DEFAULT_MAX_HOURS,
    EXPORT_DIR,
    SHIFT_STATUS_CHOICES,
    Employee,
    Schedule,
    Shift,
    ensure_week_unlocked,
    get_company,
    get_schedule,
    get_shifts_for_week,
    list_employees,
    load_schedule_data,
    store_schedule_data,
)
from .errors import NotFoundError
from .timegrid import format_week_label, normalize_time, week_start_for

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def _week_info_from_date(week_start: datetime.date) -> Dict[str, int | str]:
    iso_year, iso_week, _ = week_start.isocalendar()
    return {
        "iso_year": iso_year,
        "iso_week": iso_week,
        "label": format_week_label(week_start),
        "week_start": week_start.isoformat(),
    }


def _target_dir(output_dir: Optional[Path]) -> Path:
    target = output_dir or EXPORT_DIR
    target.mkdir(parents=True, exist_ok=True)
    return target


# ---------------------------------------------------------------------------
# Employee import/export


def employees_payload(session, company_id: int) -> Dict[str, Any]:
    company = get_company(session, company_id)
    payload: List[Dict[str, Any]] = []
    for employee in list_employees(session, company_id, only_active=False):
        payload.append(
            {
                "name": employee["name"],
                "role": employee["role"],
                "max_hours_per_week": employee["maxHoursPerWeek"],
                "hourly_rate": employee["hourlyRate"],
                "email": employee["email"],
                "phone": employee["phone"],
                "notes": employee["notes"],
                "is_active": employee["isActive"],
            }
        )
    return {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "company": company.name,
        "employees": payload,
    }


def export_employees(session, company_id: int, *, output_dir: Optional[Path] = None) -> Path:
    data = employees_payload(session, company_id)
    filename = _target_dir(output_dir) / f"employees_{company_id}_{_timestamp()}.json"
    filename.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return filename


def import_employees_data(
    session,
    company_id: int,
    data: Dict[str, Any],
    *,
    update_existing: bool = True,
) -> Tuple[int, int]:
    """Create or update employees by name. Returns ``(created, updated)``.

    With ``update_existing=False`` employees that already exist are left as
    they are and only missing names are created.
    """
    get_company(session, company_id)
    created = 0
    updated = 0
    for entry in data.get("employees", []):
        name = (entry.get("name") or "").strip()
        if not name:
            continue
        stmt = select(Employee).where(Employee.company_id == company_id, Employee.name == name)
        employee = session.scalars(stmt).first()
        if not employee:
            employee = Employee(company_id=company_id, name=name)
            session.add(employee)
            created += 1
        elif not update_existing:
            continue
        else:
            updated += 1
        employee.role = entry.get("role") or ""
        try:
            employee.max_hours_per_week = int(entry.get("max_hours_per_week") or DEFAULT_MAX_HOURS)
        except (TypeError, ValueError):
            employee.max_hours_per_week = DEFAULT_MAX_HOURS
        rate = entry.get("hourly_rate")
        employee.hourly_rate = float(rate) if isinstance(rate, (int, float)) else None
        employee.email = entry.get("email") or ""
        employee.phone = entry.get("phone") or ""
        employee.notes = entry.get("notes") or ""
        employee.is_active = 1 if entry.get("is_active", True) else 0
    session.commit()
    return created, updated


def import_employees(session, company_id: int, file_path: Path) -> Tuple[int, int]:
    data = json.loads(Path(file_path).read_text(encoding="utf-8"))
    return import_employees_data(session, company_id, data)


# ---------------------------------------------------------------------------
# Week schedule import/export


def week_payload(session, company_id: int, week_start: datetime.date) -> Dict[str, Any]:
    get_company(session, company_id)
    week_start = week_start_for(week_start)
    shifts = get_shifts_for_week(session, company_id, week_start)
    return {
        "week": _week_info_from_date(week_start),
        "shifts": [
            {
                "day_offset": (datetime.date.fromisoformat(shift["date"]) - week_start).days,
                "employee_name": shift["employeeName"],
                "start_time": shift["startTime"],
                "end_time": shift["endTime"],
                "notes": shift["notes"],
                "status": shift["status"],
            }
            for shift in shifts
        ],
    }


def export_week_schedule(
    session,
    company_id: int,
    week_start: datetime.date,
    *,
    output_dir: Optional[Path] = None,
) -> Path:
    week_start = week_start_for(week_start)
    data = week_payload(session, company_id, week_start)
    iso_year, iso_week, _ = week_start.isocalendar()
    filename = _target_dir(output_dir) / f"week_{iso_year}W{iso_week:02d}_shifts_{_timestamp()}.json"
    filename.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return filename


def import_week_data(
    session,
    company_id: int,
    week_start: datetime.date,
    data: Dict[str, Any],
    *,
    replace: bool = True,
) -> Tuple[int, int]:
    """Load week data into ``week_start``. Returns ``(added, skipped)``.

    Shifts are matched to employees by name. Rows naming an unknown employee,
    a day outside the week, an off-grid time or an unknown status are skipped.
    """
    get_company(session, company_id)
    week_start = week_start_for(week_start)
    ensure_week_unlocked(session, company_id, week_start)
    name_to_id = {
        employee.name: employee.id
        for employee in session.scalars(select(Employee).where(Employee.company_id == company_id))
    }
    if replace:
        session.execute(
            delete(Shift).where(
                Shift.company_id == company_id,
                Shift.date >= week_start,
                Shift.date <= week_start + datetime.timedelta(days=6),
            )
        )
    added = 0
    skipped = 0
    rows = data.get("shifts", [])
    for entry in rows:
        employee_id = name_to_id.get(entry.get("employee_name"))
        try:
            offset = int(entry["day_offset"])
            start = normalize_time(entry["start_time"])
            end = normalize_time(entry["end_time"], end_of_range=True)
            status = str(entry.get("status") or "scheduled").strip().lower()
        except (KeyError, TypeError, ValueError):
            skipped += 1
            continue
        if employee_id is None or not 0 <= offset <= 6 or status not in SHIFT_STATUS_CHOICES:
            skipped += 1
            continue
        session.add(
            Shift(
                employee_id=employee_id,
                company_id=company_id,
                date=week_start + datetime.timedelta(days=offset),
                start_time=start,
                end_time=end,
                notes=entry.get("notes") or "",
                status=status,
            )
        )
        added += 1
    session.commit()
    if skipped:
        logger.info("Skipped %s of %s shifts importing week %s", skipped, len(rows), week_start.isoformat())
    return added, skipped


def import_week_schedule(
    session,
    company_id: int,
    week_start: datetime.date,
    file_path: Path,
    *,
    replace: bool = True,
) -> Tuple[int, int]:
    data = json.loads(Path(file_path).read_text(encoding="utf-8"))
    return import_week_data(session, company_id, week_start, data, replace=replace)


def copy_week_schedule(
    session,
    company_id: int,
    source_week: datetime.date,
    target_week: datetime.date,
) -> Dict[str, int]:
    data = week_payload(session, company_id, source_week)
    added, skipped = import_week_data(session, company_id, target_week, data, replace=True)
    return {"shifts": added, "skipped": skipped}


# ---------------------------------------------------------------------------
# Saved schedules


def save_schedule_snapshot(session, schedule_id: int, week_start: Optional[datetime.date] = None) -> Schedule:
    """Store the staff list and one week of shifts under a saved schedule.

    ``week_start`` defaults to the schedule's own start date.
    """
    schedule = get_schedule(session, schedule_id)
    week = week_start or schedule.start_date
    if week is None:
        raise ValueError("weekStartDate is required to save a schedule without a start date.")
    data = week_payload(session, schedule.company_id, week)
    data["employees"] = employees_payload(session, schedule.company_id)["employees"]
    return store_schedule_data(session, schedule.id, data, week)


def restore_schedule_snapshot(
    session,
    schedule_id: int,
    week_start: Optional[datetime.date] = None,
) -> Dict[str, int]:
    """Write a saved schedule back into a week, replacing that week's shifts.

    Employees missing from the company are recreated; existing ones keep
    their current profile.
    """
    schedule = get_schedule(session, schedule_id)
    data = load_schedule_data(session, schedule_id)
    if data is None:
        raise NotFoundError(f"Schedule {schedule_id} has no saved data.")
    week = week_start or schedule.start_date
    if week is None:
        raise ValueError("weekStartDate is required to restore this schedule.")
    ensure_week_unlocked(session, schedule.company_id, week)
    created, _ = import_employees_data(session, schedule.company_id, data, update_existing=False)
    added, skipped = import_week_data(session, schedule.company_id, week, data, replace=True)
    logger.info("Restored schedule %s into week of %s", schedule.name, week_start_for(week).isoformat())
    return {"employees": created, "shifts": added, "skipped": skipped}
