"""REST API for companies, employees, shifts, sales, locks, saved schedules and exports.

Every route except ``/health``, register and login expects an
``Authorization: Bearer <token>`` header issued by ``/api/login``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
import uvicorn
from sqlalchemy.orm import Session

from . import __version__, database
from .auth import (
    change_password,
    issue_token,
    purge_expired_tokens,
    register_user,
    resolve_token,
    revoke_token,
    verify_credentials,
)
from .data_exchange import (
    copy_week_schedule,
    employees_payload,
    import_employees_data,
    import_week_data,
    restore_schedule_snapshot,
    save_schedule_snapshot,
    week_payload,
)
from .database import (
    Company,
    Schedule,
    User,
    WeeklyEmployee,
    assign_employee_to_week,
    assign_user_to_company,
    company_to_dict,
    create_company,
    create_employee,
    create_schedule,
    create_shift,
    daily_sales_to_dict,
    delete_company,
    delete_employee,
    delete_schedule,
    delete_shift,
    employee_to_dict,
    get_company,
    get_daily_sales,
    get_employee,
    get_membership_role,
    get_schedule,
    get_shift,
    get_shifts_for_week,
    get_user_by_login,
    is_week_locked,
    list_companies,
    list_company_users,
    list_daily_sales,
    list_employees,
    list_locked_weeks,
    list_schedules,
    list_shifts,
    list_weekly_employees,
    load_schedule_data,
    lock_week,
    locked_week_to_dict,
    record_audit_log,
    remove_user_from_company,
    remove_weekly_employee,
    schedule_to_dict,
    shift_to_dict,
    unlock_week,
    update_company,
    update_employee,
    update_shift,
    upsert_daily_sales,
    user_to_dict,
    weekly_employee_to_dict,
)
from .errors import AccountLockedError, NotFoundError, WeekLockedError
from .exporter import render_day_pdf, render_week_csv, render_week_pdf
from .hours import labor_cost, weekly_hours
from .roles import can_edit_company, can_manage_company, can_read_company
from .timegrid import TimeGrid, parse_api_date, week_start_for

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    database.init_database()
    with database.SessionLocal() as db:
        purged = purge_expired_tokens(db)
    if purged:
        logger.info("Purged %s expired API tokens", purged)
    yield


app = FastAPI(title="Shiftboard API", version=__version__, lifespan=lifespan)


@app.exception_handler(WeekLockedError)
async def _week_locked_handler(_: Request, exc: WeekLockedError) -> JSONResponse:
    return JSONResponse(
        status_code=423,
        content={"detail": str(exc), "weekStartDate": exc.week_start.isoformat()},
    )


@app.exception_handler(NotFoundError)
async def _not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PermissionError)
async def _forbidden_handler(_: Request, exc: PermissionError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc) or "Forbidden"})


@app.exception_handler(ValueError)
async def _bad_request_handler(_: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def get_db():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    user = resolve_token(db, _bearer_token(authorization))
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def _parse_date(value: Optional[str], field: str = "date") -> datetime.date:
    if not value:
        raise HTTPException(status_code=400, detail=f"{field} is required")
    try:
        return parse_api_date(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be YYYY-MM-DD")


def _parse_optional_date(value: Optional[str], field: str) -> Optional[datetime.date]:
    if not value:
        return None
    return _parse_date(value, field)


def _company_access(db: Session, user: User, company_id: int, *, write: bool = False, manage: bool = False) -> Company:
    company = get_company(db, company_id)
    role = get_membership_role(db, user.id, company_id)
    if manage:
        allowed = can_manage_company(user.role, role)
    elif write:
        allowed = can_edit_company(user.role, role)
    else:
        allowed = can_read_company(user.role, role)
    if not allowed:
        raise HTTPException(status_code=403, detail="Insufficient permissions for this company")
    return company


def _audit(
    db: Session,
    user: Optional[User],
    action: str,
    target_type: str,
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    record_audit_log(
        db,
        user_id=user.id if user else None,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payload=payload,
    )


def _json(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def _company_grid(company: Company, start_hour: Optional[int] = None, end_hour: Optional[int] = None) -> TimeGrid:
    if start_hour is None or end_hour is None:
        return TimeGrid.build(company.start_hour, company.end_hour)
    return TimeGrid.build(start_hour, end_hour)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Auth


def _session_payload(db: Session, user: User) -> Dict[str, Any]:
    return {"user": user_to_dict(user), "token": issue_token(db, user)}


@app.post("/api/register")
def register(payload: Dict[str, Any], db: Session = Depends(get_db)) -> JSONResponse:
    user = register_user(
        db,
        username=payload.get("username") or "",
        email=payload.get("email") or "",
        password=payload.get("password") or "",
        full_name=payload.get("fullName") or "",
    )
    return _json(_session_payload(db, user), status_code=201)


@app.post("/api/login")
def login(payload: Dict[str, Any], db: Session = Depends(get_db)) -> JSONResponse:
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    try:
        user = verify_credentials(db, username, password)
    except AccountLockedError as exc:
        raise HTTPException(status_code=423, detail=f"Account locked until {exc.until.isoformat()}") from exc
    if not user:
        logger.info("Failed login for %s", username)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    _audit(db, user, "LOGIN_SUCCESS", "User", user.id)
    return _json(_session_payload(db, user))


@app.post("/api/logout", status_code=204)
def logout(
    authorization: Optional[str] = Header(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    revoke_token(db, _bearer_token(authorization))
    _audit(db, user, "LOGOUT", "User", user.id)
    return Response(status_code=204)


@app.get("/api/user")
def current_user(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> JSONResponse:
    payload = user_to_dict(user)
    payload["companies"] = [
        {**company_to_dict(company), "companyRole": get_membership_role(db, user.id, company.id)}
        for company in list_companies(db, user)
    ]
    return _json(payload)


@app.post("/api/user/password")
def update_password(
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    """Change the caller's password; every token is revoked and a fresh one returned."""
    change_password(db, user, payload.get("currentPassword") or "", payload.get("newPassword") or "")
    return _json(_session_payload(db, user))


# ---------------------------------------------------------------------------
# Companies


@app.get("/api/companies")
def companies(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> JSONResponse:
    payload = []
    for company in list_companies(db, user):
        entry = company_to_dict(company)
        entry["companyRole"] = get_membership_role(db, user.id, company.id)
        payload.append(entry)
    return _json(payload)


@app.post("/api/companies")
def add_company(
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    company = create_company(db, payload, owner=user)
    _audit(db, user, "COMPANY_CREATE", "Company", company.id, {"name": company.name})
    return _json(company_to_dict(company), status_code=201)


@app.get("/api/companies/{company_id}")
def company_detail(company_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> JSONResponse:
    company = _company_access(db, user, company_id)
    return _json(company_to_dict(company))


@app.put("/api/companies/{company_id}")
def edit_company(
    company_id: int,
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id, manage=True)
    company = update_company(db, company_id, payload)
    _audit(db, user, "COMPANY_UPDATE", "Company", company_id, payload)
    return _json(company_to_dict(company))


@app.delete("/api/companies/{company_id}", status_code=204)
def remove_company(company_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Response:
    _company_access(db, user, company_id, manage=True)
    delete_company(db, company_id)
    _audit(db, user, "COMPANY_DELETE", "Company", company_id)
    return Response(status_code=204)


@app.get("/api/companies/{company_id}/users")
def company_users(company_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> JSONResponse:
    _company_access(db, user, company_id)
    return _json(list_company_users(db, company_id))


@app.post("/api/companies/{company_id}/users")
def add_company_user(
    company_id: int,
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id, manage=True)
    target_id = payload.get("userId")
    if target_id is None:
        target = get_user_by_login(db, payload.get("username") or payload.get("email") or "")
        if not target:
            raise HTTPException(status_code=404, detail="User not found")
        target_id = target.id
    membership = assign_user_to_company(db, int(target_id), company_id, payload.get("role") or "member")
    _audit(db, user, "MEMBER_ASSIGN", "Company", company_id, {"userId": membership.user_id, "role": membership.role})
    return _json({"userId": membership.user_id, "companyId": company_id, "role": membership.role}, status_code=201)


@app.delete("/api/companies/{company_id}/users/{user_id}", status_code=204)
def remove_company_user(
    company_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    _company_access(db, user, company_id, manage=True)
    remove_user_from_company(db, user_id, company_id)
    _audit(db, user, "MEMBER_REMOVE", "Company", company_id, {"userId": user_id})
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Employees


@app.get("/api/employees")
def employees(
    company_id: int = Query(..., alias="companyId"),
    week_start_date: Optional[str] = Query(None, alias="weekStartDate"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id)
    week_start = _parse_optional_date(week_start_date, "weekStartDate")
    return _json(list_employees(db, company_id, week_start=week_start, only_active=not include_inactive))


@app.post("/api/employees")
def add_employee(
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    if payload.get("companyId") is None:
        raise HTTPException(status_code=400, detail="companyId is required")
    _company_access(db, user, int(payload["companyId"]), write=True)
    employee = create_employee(db, payload)
    _audit(db, user, "EMP_CREATE", "Employee", employee.id, {"name": employee.name})
    return _json(employee_to_dict(employee), status_code=201)


@app.put("/api/employees/{employee_id}")
def edit_employee(
    employee_id: int,
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    employee = get_employee(db, employee_id)
    _company_access(db, user, employee.company_id, write=True)
    employee = update_employee(db, employee_id, payload)
    _audit(db, user, "EMP_UPDATE", "Employee", employee_id, payload)
    return _json(employee_to_dict(employee))


@app.delete("/api/employees/{employee_id}", status_code=204)
def remove_employee(employee_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Response:
    employee = get_employee(db, employee_id)
    _company_access(db, user, employee.company_id, write=True)
    delete_employee(db, employee_id)
    _audit(db, user, "EMP_DELETE", "Employee", employee_id)
    return Response(status_code=204)


@app.get("/api/weekly-employees")
def weekly_employees(
    company_id: int = Query(..., alias="companyId"),
    week_start_date: str = Query(..., alias="weekStartDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id)
    week_start = _parse_date(week_start_date, "weekStartDate")
    return _json([weekly_employee_to_dict(row) for row in list_weekly_employees(db, company_id, week_start)])


@app.post("/api/weekly-employees")
def add_weekly_employee(
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    if payload.get("employeeId") is None:
        raise HTTPException(status_code=400, detail="employeeId is required")
    employee = get_employee(db, int(payload["employeeId"]))
    _company_access(db, user, employee.company_id, write=True)
    week_start = _parse_date(payload.get("weekStartDate"), "weekStartDate")
    row = assign_employee_to_week(db, employee.id, week_start)
    return _json(weekly_employee_to_dict(row), status_code=201)


@app.delete("/api/weekly-employees/{assignment_id}", status_code=204)
def delete_weekly_employee(
    assignment_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    assignment = db.get(WeeklyEmployee, assignment_id)
    if not assignment:
        raise HTTPException(status_code=404, detail="Weekly assignment not found")
    _company_access(db, user, assignment.company_id, write=True)
    remove_weekly_employee(db, assignment_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Shifts


@app.get("/api/shifts")
def shifts(
    company_id: Optional[int] = Query(None, alias="companyId"),
    date: Optional[str] = Query(None),
    employee_id: Optional[int] = Query(None, alias="employeeId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    if company_id is None:
        if employee_id is None:
            raise HTTPException(status_code=400, detail="companyId or employeeId is required")
        company_id = get_employee(db, employee_id).company_id
    _company_access(db, user, company_id)
    result = list_shifts(
        db,
        company_id=company_id,
        date_value=_parse_optional_date(date, "date"),
        employee_id=employee_id,
        start_date=_parse_optional_date(start_date, "startDate"),
        end_date=_parse_optional_date(end_date, "endDate"),
    )
    return _json(result)


@app.post("/api/shifts")
def add_shift(
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    if payload.get("employeeId") is None:
        raise HTTPException(status_code=400, detail="employeeId is required")
    employee = get_employee(db, int(payload["employeeId"]))
    _company_access(db, user, employee.company_id, write=True)
    shift = create_shift(db, payload)
    _audit(db, user, "SHIFT_CREATE", "Shift", shift.id, payload)
    return _json(shift_to_dict(shift, employee), status_code=201)


@app.put("/api/shifts/{shift_id}")
def edit_shift(
    shift_id: int,
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    shift = get_shift(db, shift_id)
    _company_access(db, user, shift.company_id, write=True)
    shift = update_shift(db, shift_id, payload)
    _audit(db, user, "SHIFT_UPDATE", "Shift", shift_id, payload)
    return _json(shift_to_dict(shift, get_employee(db, shift.employee_id)))


@app.delete("/api/shifts/{shift_id}", status_code=204)
def remove_shift(shift_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Response:
    shift = get_shift(db, shift_id)
    _company_access(db, user, shift.company_id, write=True)
    delete_shift(db, shift_id)
    _audit(db, user, "SHIFT_DELETE", "Shift", shift_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Sales, labor cost and weekly hours


@app.get("/api/companies/{company_id}/daily-sales")
def daily_sales(
    company_id: int,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id)
    rows = list_daily_sales(
        db,
        company_id,
        _parse_optional_date(start_date, "startDate"),
        _parse_optional_date(end_date, "endDate"),
    )
    return _json([daily_sales_to_dict(row) for row in rows])


@app.post("/api/companies/{company_id}/daily-sales")
def save_daily_sales(
    company_id: int,
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id, write=True)
    day = _parse_date(payload.get("date"), "date")
    row, created = upsert_daily_sales(
        db,
        company_id,
        day,
        payload.get("estimatedSales"),
        payload.get("hourlyEmployeeCost"),
    )
    _audit(db, user, "SALES_UPSERT", "DailySales", row.id, payload)
    return _json(daily_sales_to_dict(row), status_code=201 if created else 200)


@app.get("/api/companies/{company_id}/labor-cost")
def company_labor_cost(
    company_id: int,
    date: str = Query(...),
    start_hour: Optional[int] = Query(None, alias="startHour"),
    end_hour: Optional[int] = Query(None, alias="endHour"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    company = _company_access(db, user, company_id)
    day = _parse_date(date, "date")
    grid = _company_grid(company, start_hour, end_hour)
    sales_row = get_daily_sales(db, company_id, day)
    estimated = sales_row.estimated_sales if sales_row else 0.0
    hourly = sales_row.hourly_employee_cost if sales_row else database.DEFAULT_HOURLY_COST
    summary = labor_cost(list_shifts(db, company_id=company_id, date_value=day), grid, estimated, hourly)
    summary["date"] = day.isoformat()
    return _json(summary)


@app.get("/api/companies/{company_id}/weekly-hours")
def company_weekly_hours(
    company_id: int,
    week_start_date: str = Query(..., alias="weekStartDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id)
    week_start = week_start_for(_parse_date(week_start_date, "weekStartDate"))
    rows = weekly_hours(
        list_employees(db, company_id, week_start=week_start),
        get_shifts_for_week(db, company_id, week_start),
    )
    return _json(rows)


# ---------------------------------------------------------------------------
# Locked weeks


@app.get("/api/companies/{company_id}/locked-weeks")
def locked_weeks(company_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> JSONResponse:
    _company_access(db, user, company_id)
    return _json([locked_week_to_dict(row) for row in list_locked_weeks(db, company_id)])


@app.get("/api/companies/{company_id}/locked-weeks/check")
def locked_week_check(
    company_id: int,
    week_start_date: str = Query(..., alias="weekStartDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id)
    week_start = week_start_for(_parse_date(week_start_date, "weekStartDate"))
    return _json({"weekStartDate": week_start.isoformat(), "isLocked": is_week_locked(db, company_id, week_start)})


@app.post("/api/companies/{company_id}/locked-weeks")
def add_locked_week(
    company_id: int,
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id, write=True)
    week_start = _parse_date(payload.get("weekStartDate"), "weekStartDate")
    row = lock_week(db, company_id, week_start, locked_by=user.id)
    _audit(db, user, "WEEK_LOCK", "LockedWeek", row.id, {"weekStartDate": row.week_start_date.isoformat()})
    return _json(locked_week_to_dict(row), status_code=201)


@app.delete("/api/companies/{company_id}/locked-weeks/{week_start_date}", status_code=204)
def remove_locked_week(
    company_id: int,
    week_start_date: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    _company_access(db, user, company_id, write=True)
    week_start = _parse_date(week_start_date, "weekStartDate")
    unlock_week(db, company_id, week_start)
    _audit(db, user, "WEEK_UNLOCK", "LockedWeek", None, {"weekStartDate": week_start_for(week_start).isoformat()})
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Week copy, import and export


@app.post("/api/companies/{company_id}/weeks/{week_start_date}/copy")
def copy_week(
    company_id: int,
    week_start_date: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    """Replace a week's shifts with those of another week, the previous one by default."""
    _company_access(db, user, company_id, write=True)
    target = week_start_for(_parse_date(week_start_date, "weekStartDate"))
    source_value = (payload or {}).get("sourceWeekStartDate")
    if source_value:
        source = week_start_for(_parse_date(source_value, "sourceWeekStartDate"))
    else:
        source = target - datetime.timedelta(days=7)
    if source == target:
        raise HTTPException(status_code=400, detail="Source and target week are the same")
    result = copy_week_schedule(db, company_id, source, target)
    _audit(
        db,
        user,
        "WEEK_COPY",
        "Company",
        company_id,
        {"sourceWeekStartDate": source.isoformat(), "weekStartDate": target.isoformat()},
    )
    return _json({"sourceWeekStartDate": source.isoformat(), "weekStartDate": target.isoformat(), **result})


@app.get("/api/companies/{company_id}/weeks/{week_start_date}/export")
def export_week_data(
    company_id: int,
    week_start_date: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id)
    return _json(week_payload(db, company_id, _parse_date(week_start_date, "weekStartDate")))


@app.post("/api/companies/{company_id}/weeks/{week_start_date}/import")
def import_week(
    company_id: int,
    week_start_date: str,
    payload: Dict[str, Any],
    replace: bool = Query(True),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id, write=True)
    week_start = week_start_for(_parse_date(week_start_date, "weekStartDate"))
    if not isinstance(payload.get("shifts"), list):
        raise HTTPException(status_code=400, detail="shifts must be a list")
    added, skipped = import_week_data(db, company_id, week_start, payload, replace=replace)
    _audit(db, user, "WEEK_IMPORT", "Company", company_id, {"weekStartDate": week_start.isoformat(), "added": added})
    return _json({"weekStartDate": week_start.isoformat(), "shifts": added, "skipped": skipped})


@app.get("/api/companies/{company_id}/employees/export")
def export_employee_data(company_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> JSONResponse:
    _company_access(db, user, company_id)
    return _json(employees_payload(db, company_id))


@app.post("/api/companies/{company_id}/employees/import")
def import_employee_data(
    company_id: int,
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id, write=True)
    if not isinstance(payload.get("employees"), list):
        raise HTTPException(status_code=400, detail="employees must be a list")
    created, updated = import_employees_data(db, company_id, payload)
    _audit(db, user, "EMP_IMPORT", "Company", company_id, {"created": created, "updated": updated})
    return _json({"created": created, "updated": updated})


# ---------------------------------------------------------------------------
# Saved schedules


def _schedule_access(db: Session, user: User, schedule_id: int, *, write: bool = False) -> Schedule:
    schedule = get_schedule(db, schedule_id)
    _company_access(db, user, schedule.company_id, write=write)
    return schedule


def _optional_week(payload: Optional[Dict[str, Any]]) -> Optional[datetime.date]:
    return _parse_optional_date((payload or {}).get("weekStartDate"), "weekStartDate")


@app.get("/api/schedules")
def schedules(
    company_id: int = Query(..., alias="companyId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    _company_access(db, user, company_id)
    return _json([schedule_to_dict(row) for row in list_schedules(db, company_id)])


@app.post("/api/schedules")
def add_schedule(
    payload: Dict[str, Any],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    if payload.get("companyId") is None:
        raise HTTPException(status_code=400, detail="companyId is required")
    _company_access(db, user, int(payload["companyId"]), write=True)
    schedule = create_schedule(db, payload, created_by=user.id)
    _audit(db, user, "SCHEDULE_CREATE", "Schedule", schedule.id, {"name": schedule.name})
    return _json(schedule_to_dict(schedule), status_code=201)


@app.post("/api/schedules/{schedule_id}/save")
def save_schedule(
    schedule_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    """Snapshot the staff list and one week of shifts into the schedule."""
    _schedule_access(db, user, schedule_id, write=True)
    schedule = save_schedule_snapshot(db, schedule_id, _optional_week(payload))
    data = load_schedule_data(db, schedule_id) or {}
    _audit(db, user, "SCHEDULE_SAVE", "Schedule", schedule_id, {"weekStartDate": schedule.start_date.isoformat()})
    return _json(
        {
            "message": "Schedule data saved successfully",
            "schedule": schedule_to_dict(schedule),
            "employees": len(data.get("employees", [])),
            "shifts": len(data.get("shifts", [])),
        }
    )


@app.get("/api/schedules/{schedule_id}/load")
def load_schedule(schedule_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> JSONResponse:
    schedule = _schedule_access(db, user, schedule_id)
    data = load_schedule_data(db, schedule_id)
    if data is None:
        raise HTTPException(status_code=404, detail="No data found for this schedule")
    return _json({**data, "schedule": schedule_to_dict(schedule)})


@app.post("/api/schedules/{schedule_id}/restore")
def restore_schedule(
    schedule_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> JSONResponse:
    """Write the saved shifts into a week, the schedule's own week by default."""
    schedule = _schedule_access(db, user, schedule_id, write=True)
    week_start = _optional_week(payload) or schedule.start_date
    result = restore_schedule_snapshot(db, schedule_id, week_start)
    target = week_start_for(week_start).isoformat() if week_start else None
    _audit(db, user, "SCHEDULE_RESTORE", "Schedule", schedule_id, {"weekStartDate": target})
    return _json({"weekStartDate": target, **result})


@app.delete("/api/schedules/{schedule_id}", status_code=204)
def remove_schedule(schedule_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Response:
    _schedule_access(db, user, schedule_id, write=True)
    delete_schedule(db, schedule_id)
    _audit(db, user, "SCHEDULE_DELETE", "Schedule", schedule_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Exports


def _week_export_data(db: Session, company_id: int, week_start: datetime.date) -> tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    return (
        list_employees(db, company_id, week_start=week_start),
        get_shifts_for_week(db, company_id, week_start),
    )


@app.get("/api/companies/{company_id}/exports/week.pdf")
def export_week_pdf(
    company_id: int,
    week_start_date: str = Query(..., alias="weekStartDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    company = _company_access(db, user, company_id)
    week_start = week_start_for(_parse_date(week_start_date, "weekStartDate"))
    employees_rows, shift_rows = _week_export_data(db, company_id, week_start)
    content = render_week_pdf(company_to_dict(company), employees_rows, shift_rows, week_start)
    filename = f"schedule-{week_start.isoformat()}.pdf"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/companies/{company_id}/exports/day.pdf")
def export_day_pdf(
    company_id: int,
    date: str = Query(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    company = _company_access(db, user, company_id)
    day = _parse_date(date, "date")
    sales_row = get_daily_sales(db, company_id, day)
    content = render_day_pdf(
        company_to_dict(company),
        list_shifts(db, company_id=company_id, date_value=day),
        day,
        _company_grid(company),
        daily_sales_to_dict(sales_row) if sales_row else None,
    )
    filename = f"schedule-{day.isoformat()}.pdf"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/companies/{company_id}/exports/week.csv")
def export_week_csv(
    company_id: int,
    week_start_date: str = Query(..., alias="weekStartDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    _company_access(db, user, company_id)
    week_start = week_start_for(_parse_date(week_start_date, "weekStartDate"))
    employees_rows, shift_rows = _week_export_data(db, company_id, week_start)
    filename = f"schedule-{week_start.isoformat()}.csv"
    return Response(
        content=render_week_csv(employees_rows, shift_rows, week_start),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def main() -> None:
    logging.basicConfig(level=os.environ.get("SHIFTBOARD_LOG_LEVEL", "INFO"))
    uvicorn.run(
        "shiftboard.api:app",
        host=os.environ.get("SHIFTBOARD_API_HOST", "127.0.0.1"),
        port=int(os.environ.get("SHIFTBOARD_API_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
