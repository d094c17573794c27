"""Fill an empty database with a demo company, staff and a week of shifts.

Run with ``python -m shiftboard.scripts.seed_demo``. Re-running refreshes the
employee profiles and leaves existing shifts alone.
"""

from __future__ import annotations

import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select

from ..auth import register_user
from ..database import (
    Company,
    Employee,
    SessionLocal,
    assign_employee_to_week,
    create_company,
    create_shift,
    get_user_by_login,
    init_database,
    is_week_locked,
    list_shifts,
    lock_week,
    upsert_daily_sales,
)
from ..timegrid import week_days, week_start_for

DEMO_COMPANY = "Harbor Street Cafe"
DEMO_ADMIN = ("admin", "admin@example.com", "changeme123")

SAMPLE_EMPLOYEES: List[Dict] = [
    {"name": "Avery Brooks", "role": "Barista", "max_hours": 38, "rate": 16.5},
    {"name": "Jordan Patel", "role": "Barista", "max_hours": 30, "rate": 15.0},
    {"name": "Morgan Lee", "role": "Cashier", "max_hours": 25, "rate": 14.0},
    {"name": "Nadia Lopez", "role": "Cashier", "max_hours": 34, "rate": 14.5},
    {"name": "Priya Desai", "role": "Kitchen", "max_hours": 40, "rate": 18.0},
    {"name": "Ramon Ortiz", "role": "Kitchen", "max_hours": 36, "rate": 17.0},
    {"name": "Tessa Wright", "role": "Shift Lead", "max_hours": 40, "rate": 21.0},
]

# (start, end) per employee index, repeated Monday to Friday
WEEKDAY_PATTERN: Dict[int, Tuple[str, str]] = {
    0: ("07:00", "15:00"),
    1: ("15:00", "23:00"),
    2: ("11:00", "15:30"),
    4: ("10:00", "18:00"),
    6: ("16:00", "00:30"),
}

DAILY_SALES = [2400.0, 2300.0, 2500.0, 2700.0, 3600.0, 4100.0, 3200.0]


def ensure_admin(session):
    username, email, password = DEMO_ADMIN
    user = get_user_by_login(session, username)
    if user is None:
        user = register_user(session, username, email, password, full_name="Demo Admin")
        print(f"[seed] Created admin account '{username}' (password: {password}).")
    return user


def ensure_company(session, owner) -> Company:
    company = session.scalars(select(Company).where(Company.name == DEMO_COMPANY)).first()
    if company is None:
        company = create_company(
            session,
            {"name": DEMO_COMPANY, "address": "12 Harbor Street", "startHour": 7, "endHour": 25},
            owner=owner,
        )
    return company


def seed_employees(session, company_id: int) -> Tuple[List[Employee], int, int]:
    created = 0
    refreshed = 0
    employees: List[Employee] = []
    for entry in SAMPLE_EMPLOYEES:
        stmt = select(Employee).where(Employee.company_id == company_id, Employee.name == entry["name"])
        employee = session.scalars(stmt).first()
        if not employee:
            employee = Employee(company_id=company_id, name=entry["name"])
            session.add(employee)
            created += 1
        else:
            refreshed += 1
        employee.role = entry["role"]
        employee.max_hours_per_week = entry["max_hours"]
        employee.hourly_rate = entry["rate"]
        employee.notes = f"Demo profile, up to {entry['max_hours']} hrs/week."
        employees.append(employee)
    session.commit()
    return employees, created, refreshed


def seed_week(session, company_id: int, employees: List[Employee], week_start: datetime.date) -> int:
    if list_shifts(session, company_id=company_id, start_date=week_start, end_date=week_start + datetime.timedelta(days=6)):
        return 0
    added = 0
    for offset, day in enumerate(week_days(week_start)):
        upsert_daily_sales(session, company_id, day, DAILY_SALES[offset], 16.0)
        if offset > 4:
            continue
        for index, (start, end) in WEEKDAY_PATTERN.items():
            create_shift(
                session,
                {
                    "employeeId": employees[index].id,
                    "date": day.isoformat(),
                    "startTime": start,
                    "endTime": end,
                },
            )
            added += 1
    return added


def seed_demo(session_factory=SessionLocal, today: Optional[datetime.date] = None) -> Dict[str, int]:
    """Seed the demo data; the previous week is locked once it has shifts."""
    init_database()
    week_start = week_start_for(today or datetime.date.today())
    previous_week = week_start - datetime.timedelta(days=7)
    with session_factory() as session:
        admin = ensure_admin(session)
        company = ensure_company(session, admin)
        employees, created, refreshed = seed_employees(session, company.id)
        for employee in employees:
            assign_employee_to_week(session, employee.id, week_start)
        added = seed_week(session, company.id, employees, week_start)
        previous_added = 0
        if not is_week_locked(session, company.id, previous_week):
            previous_added = seed_week(session, company.id, employees, previous_week)
            lock_week(session, company.id, previous_week, locked_by=admin.id)
    return {
        "company": company.id,
        "created": created,
        "refreshed": refreshed,
        "shifts": added + previous_added,
    }


if __name__ == "__main__":
    summary = seed_demo()
    print(
        f"Seed complete. Created {summary['created']} employees, refreshed {summary['refreshed']} profiles, "
        f"added {summary['shifts']} shifts."
    )
