from __future__ import annotations

import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from shiftboard import auth
from shiftboard import database as db
from shiftboard.api import app

WEEK_START = datetime.date(2024, 4, 1)
DAY = "2024-04-02"
PASSWORD = "secret-pass"


@pytest.fixture()
def client(memory_db):
    with TestClient(app) as test_client:
        yield test_client


def _register(client, username):
    response = client.post(
        "/api/register",
        json={"username": username, "email": f"{username}@example.com", "password": PASSWORD},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture()
def owner(client):
    headers = _register(client, "owner")
    company = client.post(
        "/api/companies",
        json={"name": "Corner Bistro", "startHour": 9, "endHour": 11},
        headers=headers,
    ).json()
    employee = client.post(
        "/api/employees",
        json={"companyId": company["id"], "name": "Alex Kim", "role": "Barista", "maxHoursPerWeek": 10},
        headers=headers,
    )
    assert employee.status_code == 201
    return {"headers": headers, "company": company, "employee": employee.json()}


def _shift(owner, start="09:00", end="11:00", date=DAY):
    return {"employeeId": owner["employee"]["id"], "date": date, "startTime": start, "endTime": end, "notes": ""}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_login_logout_and_current_user(client):
    _register(client, "owner")
    response = client.post("/api/login", json={"username": "owner", "password": PASSWORD})
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.json()['token']}"}
    me = client.get("/api/user", headers=headers).json()
    assert me["role"] == "admin"
    assert me["companies"] == []

    assert client.post("/api/logout", headers=headers).status_code == 204
    assert client.get("/api/user", headers=headers).status_code == 401


def test_bad_credentials_and_lockout(client):
    _register(client, "owner")
    for _ in range(4):
        assert client.post("/api/login", json={"username": "owner", "password": "nope-nope"}).status_code == 401
    assert client.post("/api/login", json={"username": "owner", "password": "nope-nope"}).status_code == 423
    assert client.post("/api/login", json={"username": "owner", "password": PASSWORD}).status_code == 423


def test_routes_require_token(client):
    assert client.get("/api/companies").status_code == 401
    assert client.get("/api/companies", headers={"Authorization": "Basic abc"}).status_code == 401


def test_registration_errors_are_bad_requests(client):
    response = client.post("/api/register", json={"username": "x", "email": "x@example.com", "password": "short"})
    assert response.status_code == 400


def test_member_can_read_but_not_edit(client, owner):
    company_id = owner["company"]["id"]
    member = _register(client, "clerk")
    assert client.get(f"/api/companies/{company_id}", headers=member).status_code == 403

    added = client.post(
        f"/api/companies/{company_id}/users",
        json={"username": "clerk", "role": "member"},
        headers=owner["headers"],
    )
    assert added.status_code == 201
    assert client.get("/api/shifts", params={"companyId": company_id}, headers=member).status_code == 200
    assert client.post("/api/shifts", json=_shift(owner), headers=member).status_code == 403
    assert client.put(f"/api/companies/{company_id}", json={"name": "Mine"}, headers=member).status_code == 403

    users = client.get(f"/api/companies/{company_id}/users", headers=owner["headers"]).json()
    assert {(row["username"], row["companyRole"]) for row in users} == {("owner", "owner"), ("clerk", "member")}


def test_shift_lifecycle_and_week_lock(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    created = client.post("/api/shifts", json=_shift(owner), headers=headers)
    assert created.status_code == 201
    shift = created.json()
    assert shift["employeeName"] == "Alex Kim"

    listed = client.get("/api/shifts", params={"companyId": company_id, "date": DAY}, headers=headers).json()
    assert [row["id"] for row in listed] == [shift["id"]]

    edited = client.put(f"/api/shifts/{shift['id']}", json={"endTime": "10:30"}, headers=headers)
    assert edited.json()["endTime"] == "10:30"

    locked = client.post(
        f"/api/companies/{company_id}/locked-weeks", json={"weekStartDate": "2024-04-03"}, headers=headers
    )
    assert locked.status_code == 201
    assert locked.json()["weekStartDate"] == WEEK_START.isoformat()
    check = client.get(
        f"/api/companies/{company_id}/locked-weeks/check", params={"weekStartDate": DAY}, headers=headers
    )
    assert check.json() == {"weekStartDate": WEEK_START.isoformat(), "isLocked": True}

    blocked = client.post("/api/shifts", json=_shift(owner, start="10:00"), headers=headers)
    assert blocked.status_code == 423
    assert blocked.json()["weekStartDate"] == WEEK_START.isoformat()
    assert client.delete(f"/api/shifts/{shift['id']}", headers=headers).status_code == 423

    unlock_url = f"/api/companies/{company_id}/locked-weeks/{WEEK_START.isoformat()}"
    assert client.delete(unlock_url, headers=headers).status_code == 204
    assert client.delete(unlock_url, headers=headers).status_code == 404
    assert client.delete(f"/api/shifts/{shift['id']}", headers=headers).status_code == 204
    assert client.delete(f"/api/shifts/{shift['id']}", headers=headers).status_code == 404


def test_invalid_input(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    assert client.post("/api/shifts", json=_shift(owner, date="02/04/2024"), headers=headers).status_code == 400
    assert client.post("/api/shifts", json=_shift(owner, start="09:05"), headers=headers).status_code == 400
    assert client.post("/api/shifts", json=_shift(owner, start="09:150"), headers=headers).status_code == 400
    assert client.post("/api/shifts", json=_shift(owner, end="11:00xyz"), headers=headers).status_code == 400
    assert client.get("/api/shifts", params={"companyId": company_id}, headers=headers).json() == []
    assert client.post("/api/shifts", json={"date": DAY}, headers=headers).status_code == 400
    check = client.get(
        f"/api/companies/{company_id}/locked-weeks/check", params={"weekStartDate": "soon"}, headers=headers
    )
    assert check.status_code == 400
    assert client.get("/api/companies/999", headers=headers).status_code == 404


def test_sales_labor_cost_and_weekly_hours(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    client.post("/api/shifts", json=_shift(owner), headers=headers)

    unsaved = client.get(f"/api/companies/{company_id}/labor-cost", params={"date": DAY}, headers=headers).json()
    assert unsaved["hourlyEmployeeCost"] == 15.0
    assert unsaved["totalCost"] == 30.0
    assert unsaved["laborCostPercentage"] is None

    sales_url = f"/api/companies/{company_id}/daily-sales"
    first = client.post(sales_url, json={"date": DAY, "estimatedSales": 150, "hourlyEmployeeCost": 15}, headers=headers)
    assert first.status_code == 201
    second = client.post(sales_url, json={"date": DAY, "estimatedSales": 150}, headers=headers)
    assert second.status_code == 200
    assert second.json()["hourlyEmployeeCost"] == 15.0

    cost = client.get(f"/api/companies/{company_id}/labor-cost", params={"date": DAY}, headers=headers).json()
    assert cost["laborCostPercentage"] == 20.0
    assert cost["band"] == "low"
    assert cost["slots"][0] == {"time": "09:00", "staff": 1, "cost": 3.75, "percentage": 22.5, "band": "medium"}

    hours = client.get(
        f"/api/companies/{company_id}/weekly-hours", params={"weekStartDate": WEEK_START.isoformat()}, headers=headers
    ).json()
    assert hours[0]["workedHours"] == 2.0
    assert hours[0]["remainingHours"] == 8.0


def test_weekly_employee_assignment(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    other = client.post("/api/employees", json={"companyId": company_id, "name": "Blair Young"}, headers=headers).json()
    assigned = client.post(
        "/api/weekly-employees",
        json={"employeeId": other["id"], "weekStartDate": WEEK_START.isoformat()},
        headers=headers,
    )
    assert assigned.status_code == 201
    names = [
        row["name"]
        for row in client.get(
            "/api/employees",
            params={"companyId": company_id, "weekStartDate": WEEK_START.isoformat()},
            headers=headers,
        ).json()
    ]
    assert names == ["Blair Young"]
    assert client.delete(f"/api/weekly-employees/{assigned.json()['id']}", headers=headers).status_code == 204
    assert len(client.get("/api/employees", params={"companyId": company_id}, headers=headers).json()) == 2


def test_exports(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    client.post("/api/shifts", json=_shift(owner), headers=headers)
    base = f"/api/companies/{company_id}/exports"

    week_pdf = client.get(f"{base}/week.pdf", params={"weekStartDate": DAY}, headers=headers)
    assert week_pdf.status_code == 200
    assert week_pdf.headers["content-type"] == "application/pdf"
    assert week_pdf.content.startswith(b"%PDF")
    assert "schedule-2024-04-01.pdf" in week_pdf.headers["content-disposition"]

    day_pdf = client.get(f"{base}/day.pdf", params={"date": DAY}, headers=headers)
    assert day_pdf.content.startswith(b"%PDF")

    sheet = client.get(f"{base}/week.csv", params={"weekStartDate": WEEK_START.isoformat()}, headers=headers)
    assert sheet.headers["content-type"].startswith("text/csv")
    lines = sheet.text.strip().splitlines()
    assert lines[1].startswith("Alex Kim,,09:00 - 11:00,")


def test_company_update_and_delete(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    updated = client.put(f"/api/companies/{company_id}", json={"endHour": 22}, headers=headers).json()
    assert (updated["startHour"], updated["endHour"]) == (9, 22)
    assert client.delete(f"/api/companies/{company_id}", headers=headers).status_code == 204
    assert client.get("/api/companies", headers=headers).json() == []


def test_change_password_issues_new_token(client):
    headers = _register(client, "owner")
    url = "/api/user/password"
    wrong = client.post(url, json={"currentPassword": "nope-nope", "newPassword": "brand-new-pass"}, headers=headers)
    assert wrong.status_code == 403
    short = client.post(url, json={"currentPassword": PASSWORD, "newPassword": "short"}, headers=headers)
    assert short.status_code == 400

    changed = client.post(url, json={"currentPassword": PASSWORD, "newPassword": "brand-new-pass"}, headers=headers)
    assert changed.status_code == 200
    assert client.get("/api/user", headers=headers).status_code == 401
    fresh = {"Authorization": f"Bearer {changed.json()['token']}"}
    assert client.get("/api/user", headers=fresh).json()["username"] == "owner"
    assert client.post("/api/login", json={"username": "owner", "password": "brand-new-pass"}).status_code == 200


def test_expired_tokens_are_purged_on_startup(memory_db):
    session = memory_db["session"]
    user = auth.register_user(session, "ann", "ann@example.com", PASSWORD)
    auth.issue_token(session, user, ttl_hours=-1)
    live = auth.issue_token(session, user)
    with TestClient(app) as test_client:
        assert len(session.scalars(select(db.ApiToken)).all()) == 1
        assert test_client.get("/api/user", headers={"Authorization": f"Bearer {live}"}).status_code == 200


def test_copy_export_and_import_week(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    client.post("/api/shifts", json=_shift(owner), headers=headers)
    weeks = f"/api/companies/{company_id}/weeks"

    copied = client.post(f"{weeks}/2024-04-10/copy", headers=headers)
    assert copied.status_code == 200
    assert copied.json() == {"sourceWeekStartDate": "2024-04-01", "weekStartDate": "2024-04-08", "shifts": 1, "skipped": 0}
    listed = client.get("/api/shifts", params={"companyId": company_id, "date": "2024-04-09"}, headers=headers).json()
    assert [(row["startTime"], row["endTime"]) for row in listed] == [("09:00", "11:00")]
    same = client.post(f"{weeks}/2024-04-08/copy", json={"sourceWeekStartDate": "2024-04-09"}, headers=headers)
    assert same.status_code == 400

    exported = client.get(f"{weeks}/2024-04-08/export", headers=headers).json()
    assert exported["week"]["week_start"] == "2024-04-08"
    assert exported["shifts"][0]["employee_name"] == "Alex Kim"
    exported["shifts"].append({**exported["shifts"][0], "status": "bogus"})
    imported = client.post(f"{weeks}/2024-04-15/import", json=exported, headers=headers)
    assert imported.json() == {"weekStartDate": "2024-04-15", "shifts": 1, "skipped": 1}
    assert client.post(f"{weeks}/2024-04-15/import", json={"shifts": "nope"}, headers=headers).status_code == 400

    client.post(f"/api/companies/{company_id}/locked-weeks", json={"weekStartDate": "2024-04-15"}, headers=headers)
    assert client.post(f"{weeks}/2024-04-15/copy", headers=headers).status_code == 423


def test_employee_export_and_import(client, owner):
    headers = owner["headers"]
    base = f"/api/companies/{owner['company']['id']}/employees"
    exported = client.get(f"{base}/export", headers=headers).json()
    assert [row["name"] for row in exported["employees"]] == ["Alex Kim"]
    exported["employees"].append({"name": "Blair Young", "role": "Cashier"})
    assert client.post(f"{base}/import", json=exported, headers=headers).json() == {"created": 1, "updated": 1}
    assert client.post(f"{base}/import", json={}, headers=headers).status_code == 400


def test_saved_schedules(client, owner):
    headers = owner["headers"]
    company_id = owner["company"]["id"]
    client.post("/api/shifts", json=_shift(owner), headers=headers)

    created = client.post("/api/schedules", json={"companyId": company_id, "name": "Base week"}, headers=headers)
    assert created.status_code == 201
    schedule = created.json()
    assert (schedule["status"], schedule["hasData"]) == ("draft", False)
    bad_status = client.post("/api/schedules", json={"companyId": company_id, "name": "X", "status": "bogus"}, headers=headers)
    assert bad_status.status_code == 400
    url = f"/api/schedules/{schedule['id']}"
    assert client.get(f"{url}/load", headers=headers).status_code == 404
    assert client.post(f"{url}/save", headers=headers).status_code == 400

    saved = client.post(f"{url}/save", json={"weekStartDate": DAY}, headers=headers).json()
    assert (saved["employees"], saved["shifts"]) == (1, 1)
    assert saved["schedule"]["startDate"] == WEEK_START.isoformat()

    loaded = client.get(f"{url}/load", headers=headers).json()
    assert loaded["shifts"][0]["start_time"] == "09:00"
    assert loaded["schedule"]["hasData"] is True

    restored = client.post(f"{url}/restore", json={"weekStartDate": "2024-04-24"}, headers=headers)
    assert restored.json() == {"weekStartDate": "2024-04-22", "employees": 0, "shifts": 1, "skipped": 0}

    listed = client.get("/api/schedules", params={"companyId": company_id}, headers=headers).json()
    assert [row["name"] for row in listed] == ["Base week"]
    stranger = _register(client, "clerk")
    assert client.get("/api/schedules", params={"companyId": company_id}, headers=stranger).status_code == 403
    assert client.delete(url, headers=stranger).status_code == 403
    assert client.delete(url, headers=headers).status_code == 204
    assert client.get(f"{url}/load", headers=headers).status_code == 404
