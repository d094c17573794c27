from __future__ import annotations

import datetime

from shiftboard import database as db
from shiftboard.hours import weekly_hours
from shiftboard.scripts.seed_demo import SAMPLE_EMPLOYEES, seed_demo

TODAY = datetime.date(2024, 4, 3)
WEEK_START = datetime.date(2024, 4, 1)
PREVIOUS_WEEK = datetime.date(2024, 3, 25)


def test_seed_demo_populates_two_weeks(memory_db):
    summary = seed_demo(session_factory=memory_db["factory"], today=TODAY)
    assert summary["created"] == len(SAMPLE_EMPLOYEES)
    assert summary["refreshed"] == 0
    assert summary["shifts"] == 50

    session = memory_db["session"]
    company_id = summary["company"]
    assert db.is_week_locked(session, company_id, PREVIOUS_WEEK)
    assert not db.is_week_locked(session, company_id, WEEK_START)
    assert len(db.list_weekly_employees(session, company_id, WEEK_START)) == len(SAMPLE_EMPLOYEES)
    assert len(db.list_daily_sales(session, company_id, WEEK_START, WEEK_START + datetime.timedelta(days=6))) == 7

    rows = weekly_hours(db.list_employees(session, company_id), db.get_shifts_for_week(session, company_id, WEEK_START))
    by_name = {row["name"]: row for row in rows}
    assert by_name["Tessa Wright"]["workedHours"] == 42.5
    assert by_name["Tessa Wright"]["overBudget"]
    assert by_name["Morgan Lee"]["workedHours"] == 22.5


def test_seed_demo_is_rerunnable(memory_db):
    first = seed_demo(session_factory=memory_db["factory"], today=TODAY)
    again = seed_demo(session_factory=memory_db["factory"], today=TODAY)
    assert again == {"company": first["company"], "created": 0, "refreshed": len(SAMPLE_EMPLOYEES), "shifts": 0}
    assert db.count_users(memory_db["session"]) == 1
