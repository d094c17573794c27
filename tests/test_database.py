from __future__ import annotations

import datetime

import pytest

from shiftboard import database as db
from shiftboard.errors import NotFoundError, WeekLockedError

WEEK_START = datetime.date(2024, 4, 1)
TUESDAY = WEEK_START + datetime.timedelta(days=1)


def _shift(employee, day=TUESDAY, start="09:00", end="13:00", **extra):
    return {"employeeId": employee.id, "date": day.isoformat(), "startTime": start, "endTime": end, **extra}


def test_init_database_is_idempotent(memory_db):
    db.init_database()
    db.init_database()
    assert db.list_companies(memory_db["session"]) == []


def test_company_hours_are_clamped(memory_db):
    session = memory_db["session"]
    company = db.create_company(session, {"name": "Night Owl", "startHour": 20, "endHour": 50})
    assert (company.start_hour, company.end_hour) == (20, 44)
    with pytest.raises(ValueError):
        db.create_company(session, {"name": "  "})


def test_shift_crud_and_listing(company_setup):
    session = company_setup["session"]
    alex, blair, _ = company_setup["employees"]
    first = db.create_shift(session, _shift(alex))
    db.create_shift(session, _shift(blair, start="07:00", end="09:00"))
    db.create_shift(session, _shift(alex, day=TUESDAY + datetime.timedelta(days=7)))

    rows = db.list_shifts(session, company_id=company_setup["company"].id, date_value=TUESDAY)
    assert [row["employeeName"] for row in rows] == ["Blair Young", "Alex Kim"]
    assert len(db.get_shifts_for_week(session, company_setup["company"].id, TUESDAY)) == 2

    updated = db.update_shift(session, first.id, {"endTime": "14:00", "status": "completed", "notes": "inventory"})
    assert (updated.end_time, updated.status, updated.notes) == ("14:00", "completed", "inventory")

    db.delete_shift(session, first.id)
    with pytest.raises(NotFoundError):
        db.get_shift(session, first.id)


def test_midnight_end_is_stored_as_zero(company_setup):
    session = company_setup["session"]
    alex = company_setup["employees"][0]
    shift = db.create_shift(session, _shift(alex, start="20:00", end="24:00"))
    assert shift.end_time == "00:00"


@pytest.mark.parametrize(
    "start,end",
    [("09:00", "09:00"), ("09:10", "10:00"), ("24:00", "02:00"), ("", "10:00"), ("nine", "10:00"), ("09:00", "10:000")],
)
def test_invalid_shift_times(company_setup, start, end):
    alex = company_setup["employees"][0]
    with pytest.raises(ValueError):
        db.create_shift(company_setup["session"], _shift(alex, start=start, end=end))


def test_invalid_status_and_date(company_setup):
    session = company_setup["session"]
    alex = company_setup["employees"][0]
    with pytest.raises(ValueError):
        db.create_shift(session, _shift(alex, status="maybe"))
    with pytest.raises(ValueError):
        db.create_shift(session, {**_shift(alex), "date": "04/02/2024"})


def test_employee_from_other_company_is_rejected(company_setup):
    session = company_setup["session"]
    other = db.create_company(session, {"name": "Elsewhere"})
    stranger = db.create_employee(session, {"companyId": other.id, "name": "Drew"})
    shift = db.create_shift(session, _shift(company_setup["employees"][0]))
    with pytest.raises(ValueError):
        db.update_shift(session, shift.id, {"employeeId": stranger.id})


def test_locked_week_blocks_every_mutation(company_setup):
    session = company_setup["session"]
    company = company_setup["company"]
    alex = company_setup["employees"][0]
    shift = db.create_shift(session, _shift(alex))

    row = db.lock_week(session, company.id, TUESDAY)
    assert row.week_start_date == WEEK_START
    assert db.lock_week(session, company.id, WEEK_START).id == row.id
    assert db.is_week_locked(session, company.id, WEEK_START + datetime.timedelta(days=6))

    with pytest.raises(WeekLockedError) as excinfo:
        db.create_shift(session, _shift(alex, start="15:00", end="16:00"))
    assert excinfo.value.week_start == WEEK_START
    with pytest.raises(WeekLockedError):
        db.update_shift(session, shift.id, {"notes": "late"})
    with pytest.raises(WeekLockedError):
        db.delete_shift(session, shift.id)

    # moving a shift out of an unlocked week into a locked one is refused too
    later = db.create_shift(session, _shift(alex, day=TUESDAY + datetime.timedelta(days=7)))
    with pytest.raises(WeekLockedError):
        db.update_shift(session, later.id, {"date": TUESDAY.isoformat()})

    db.unlock_week(session, company.id, WEEK_START)
    assert not db.is_week_locked(session, company.id, WEEK_START)
    db.delete_shift(session, shift.id)
    with pytest.raises(NotFoundError):
        db.unlock_week(session, company.id, WEEK_START)


def test_week_filter_falls_back_to_everyone(company_setup):
    session = company_setup["session"]
    company = company_setup["company"]
    alex, _, casey = company_setup["employees"]

    assert len(db.list_employees(session, company.id, week_start=WEEK_START)) == 3
    db.assign_employee_to_week(session, alex.id, TUESDAY)
    again = db.assign_employee_to_week(session, alex.id, WEEK_START)
    db.assign_employee_to_week(session, casey.id, WEEK_START)
    names = [row["name"] for row in db.list_employees(session, company.id, week_start=WEEK_START)]
    assert names == ["Alex Kim", "Casey Diaz"]
    assert len(db.list_weekly_employees(session, company.id, WEEK_START)) == 2

    db.remove_weekly_employee(session, again.id)
    names = [row["name"] for row in db.list_employees(session, company.id, week_start=WEEK_START)]
    assert names == ["Casey Diaz"]


def test_inactive_employees_are_hidden(company_setup):
    session = company_setup["session"]
    casey = company_setup["employees"][2]
    db.update_employee(session, casey.id, {"isActive": False})
    company_id = company_setup["company"].id
    assert len(db.list_employees(session, company_id)) == 2
    assert len(db.list_employees(session, company_id, only_active=False)) == 3
    with pytest.raises(ValueError):
        db.update_employee(session, casey.id, {"maxHoursPerWeek": 200})


def test_daily_sales_upsert(company_setup):
    session = company_setup["session"]
    company_id = company_setup["company"].id
    row, created = db.upsert_daily_sales(session, company_id, TUESDAY, "1200")
    assert created and row.estimated_sales == 1200.0
    assert row.hourly_employee_cost == db.DEFAULT_HOURLY_COST

    row, created = db.upsert_daily_sales(session, company_id, TUESDAY, 900, 18.5)
    assert not created
    assert (row.estimated_sales, row.hourly_employee_cost) == (900.0, 18.5)
    assert len(db.list_daily_sales(session, company_id, TUESDAY, TUESDAY)) == 1

    with pytest.raises(ValueError):
        db.upsert_daily_sales(session, company_id, TUESDAY, -5)
    with pytest.raises(ValueError):
        db.upsert_daily_sales(session, company_id, TUESDAY, None)


def test_delete_company_removes_children(company_setup):
    session = company_setup["session"]
    company = company_setup["company"]
    alex = company_setup["employees"][0]
    db.create_shift(session, _shift(alex))
    db.upsert_daily_sales(session, company.id, TUESDAY, 500)
    db.lock_week(session, company.id, WEEK_START + datetime.timedelta(days=7))
    db.create_schedule(session, {"companyId": company.id, "name": "Base week"})

    db.delete_company(session, company.id)
    with pytest.raises(NotFoundError):
        db.get_company(session, company.id)
    assert db.list_shifts(session, company_id=company.id) == []
    assert db.list_locked_weeks(session, company.id) == []
    assert db.list_schedules(session, company.id) == []


def test_schedule_fields_are_validated(company_setup):
    session = company_setup["session"]
    company = company_setup["company"]
    with pytest.raises(ValueError):
        db.create_schedule(session, {"name": "No company"})
    with pytest.raises(ValueError):
        db.create_schedule(session, {"companyId": company.id, "name": "  "})
    with pytest.raises(ValueError):
        db.create_schedule(
            session,
            {"companyId": company.id, "name": "Backwards", "startDate": "2024-04-07", "endDate": "2024-04-01"},
        )
    with pytest.raises(NotFoundError):
        db.create_schedule(session, {"companyId": 999, "name": "Elsewhere"})

    schedule = db.create_schedule(session, {"companyId": company.id, "name": "Summer", "status": "Published"})
    assert db.schedule_to_dict(schedule)["status"] == "published"
    assert db.load_schedule_data(session, schedule.id) is None
    db.store_schedule_data(session, schedule.id, {"shifts": []}, TUESDAY)
    assert (schedule.start_date, schedule.end_date) == (WEEK_START, WEEK_START + datetime.timedelta(days=6))
    assert db.load_schedule_data(session, schedule.id) == {"shifts": []}
    db.delete_schedule(session, schedule.id)
    with pytest.raises(NotFoundError):
        db.get_schedule(session, schedule.id)
