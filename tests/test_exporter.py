from __future__ import annotations

import csv
import datetime
import io

from shiftboard.exporter import render_day_pdf, render_week_csv, render_week_pdf
from shiftboard.timegrid import TimeGrid

WEEK_START = datetime.date(2024, 4, 1)
COMPANY = {"id": 3, "name": "Corner Bistro & Bar"}
EMPLOYEES = [
    {"id": 1, "name": "Alex Kim", "maxHoursPerWeek": 10},
    {"id": 2, "name": "Blair <Young>", "maxHoursPerWeek": 40},
]
SHIFTS = [
    {"employeeId": 1, "employeeName": "Alex Kim", "date": "2024-04-02", "startTime": "09:00", "endTime": "13:00", "notes": ""},
    {"employeeId": 1, "employeeName": "Alex Kim", "date": "2024-04-02", "startTime": "17:00", "endTime": "19:30", "notes": "close"},
    {"employeeId": 2, "employeeName": "Blair <Young>", "date": "2024-04-05", "startTime": "22:00", "endTime": "00:00", "notes": "a & b"},
]


def test_week_pdf_is_a_pdf():
    content = render_week_pdf(COMPANY, EMPLOYEES, SHIFTS, WEEK_START + datetime.timedelta(days=2))
    assert content.startswith(b"%PDF")


def test_week_pdf_without_employees():
    assert render_week_pdf(COMPANY, [], [], WEEK_START).startswith(b"%PDF")


def test_day_pdf_with_and_without_sales():
    grid = TimeGrid.build(8, 24)
    day = datetime.date(2024, 4, 2)
    sales = {"estimatedSales": 800.0, "hourlyEmployeeCost": 16.0}
    assert render_day_pdf(COMPANY, SHIFTS[:2], day, grid, sales).startswith(b"%PDF")
    assert render_day_pdf(COMPANY, [], day, grid).startswith(b"%PDF")


def test_week_csv_rows():
    rows = list(csv.reader(io.StringIO(render_week_csv(EMPLOYEES, SHIFTS, WEEK_START))))
    assert rows[0] == ["employee"] + [f"2024-04-0{day}" for day in range(1, 8)] + ["total_hours"]
    assert rows[1][0] == "Alex Kim"
    assert rows[1][2] == "09:00 - 13:00; 17:00 - 19:30"
    assert rows[1][-1] == "6.5"
    assert rows[2][5] == "22:00 - 00:00"
    assert rows[2][-1] == "2"
