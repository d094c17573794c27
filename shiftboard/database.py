from __future__ import annotations

import datetime
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from .errors import NotFoundError, WeekLockedError
from .hours import DEFAULT_HOURLY_COST, DEFAULT_MAX_HOURS
from .roles import COMPANY_ROLE_MEMBER, normalize_company_role
from .timegrid import (
    DEFAULT_END_HOUR,
    DEFAULT_START_HOUR,
    clamp_hour_range,
    normalize_time,
    parse_api_date,
    shift_sort_key,
    time_to_minutes,
    week_start_for,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("SHIFTBOARD_DATA_DIR") or Path(__file__).resolve().parent / "data")
DATA_DIR.mkdir(parents=True, exist_ok=True)
EXPORT_DIR = DATA_DIR / "exports"
DATABASE_URL = os.environ.get("SHIFTBOARD_DATABASE_URL") or f"sqlite:///{(DATA_DIR / 'shiftboard.db').as_posix()}"
SHIFT_STATUS_CHOICES = {"scheduled", "completed", "cancelled"}
SCHEDULE_STATUS_CHOICES = ("draft", "published", "active", "archived")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    address: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(40), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    start_hour: Mapped[int] = mapped_column(Integer, default=DEFAULT_START_HOUR, nullable=False)
    end_hour: Mapped[int] = mapped_column(Integer, default=DEFAULT_END_HOUR, nullable=False)
    is_active: Mapped[bool] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    employees: Mapped[List["Employee"]] = relationship(back_populates="company", cascade="all, delete-orphan")
    memberships: Mapped[List["UserCompany"]] = relationship(back_populates="company", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    password_salt: Mapped[str] = mapped_column(String(64), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    locked_until: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    memberships: Mapped[List["UserCompany"]] = relationship(back_populates="user", cascade="all, delete-orphan")
    tokens: Mapped[List["ApiToken"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class UserCompany(Base):
    __tablename__ = "user_companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=COMPANY_ROLE_MEMBER, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user: Mapped[User] = relationship(back_populates="memberships")
    company: Mapped[Company] = relationship(back_populates="memberships")

    __table_args__ = (UniqueConstraint("user_id", "company_id", name="uq_user_company"),)


class ApiToken(Base):
    __tablename__ = "api_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user: Mapped[User] = relationship(back_populates="tokens")


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[str] = mapped_column(String(80), default="", nullable=False)
    max_hours_per_week: Mapped[int] = mapped_column(Integer, default=DEFAULT_MAX_HOURS, nullable=False)
    hourly_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    email: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(40), default="", nullable=False)
    notes: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    is_active: Mapped[bool] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    company: Mapped[Company] = relationship(back_populates="employees")
    shifts: Mapped[List["Shift"]] = relationship(back_populates="employee", cascade="all, delete-orphan")
    week_assignments: Mapped[List["WeeklyEmployee"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan"
    )


class WeeklyEmployee(Base):
    __tablename__ = "weekly_employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)

    employee: Mapped[Employee] = relationship(back_populates="week_assignments")

    __table_args__ = (UniqueConstraint("employee_id", "week_start_date", name="uq_weekly_employee_week"),)


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    notes: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="scheduled", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    employee: Mapped[Employee] = relationship(back_populates="shifts")


class DailySales(Base):
    __tablename__ = "daily_sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    estimated_sales: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    hourly_employee_cost: Mapped[float] = mapped_column(Float, default=DEFAULT_HOURLY_COST, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (UniqueConstraint("company_id", "date", name="uq_daily_sales_company_date"),)


class LockedWeek(Base):
    __tablename__ = "locked_weeks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    locked_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    locked_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (UniqueConstraint("company_id", "week_start_date", name="uq_locked_week_company_week"),)


class Schedule(Base):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    start_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    data_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(40), default="Shift", nullable=False)
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payload_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"future": True, "connect_args": {"check_same_thread": False}}
    return {"future": True}


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)


def _table_columns(conn, table: str) -> Dict[str, bool]:
    return {row[1]: True for row in conn.execute(text(f"PRAGMA table_info({table})"))}


def init_database() -> None:
    Base.metadata.create_all(engine)
    if engine.dialect.name != "sqlite":
        return
    with engine.begin() as conn:
        columns = _table_columns(conn, "companies")
        if "start_hour" not in columns:
            conn.execute(text(f"ALTER TABLE companies ADD COLUMN start_hour INTEGER NOT NULL DEFAULT {DEFAULT_START_HOUR}"))
        if "end_hour" not in columns:
            conn.execute(text(f"ALTER TABLE companies ADD COLUMN end_hour INTEGER NOT NULL DEFAULT {DEFAULT_END_HOUR}"))
        columns = _table_columns(conn, "employees")
        if "hourly_rate" not in columns:
            conn.execute(text("ALTER TABLE employees ADD COLUMN hourly_rate FLOAT"))
        columns = _table_columns(conn, "shifts")
        if "status" not in columns:
            conn.execute(text("ALTER TABLE shifts ADD COLUMN status VARCHAR(20) NOT NULL DEFAULT 'scheduled'"))
    logger.debug("Database ready at %s", engine.url)


def _coerce_date(value, field_name: str = "date") -> datetime.date:
    try:
        return parse_api_date(value)
    except ValueError:
        raise ValueError(f"Invalid {field_name} '{value}'. Expected YYYY-MM-DD.")


def _coerce_optional_float(value, field_name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be a number.")
    if number < 0:
        raise ValueError(f"{field_name} cannot be negative.")
    return round(number, 2)


# ---------------------------------------------------------------------------
# Serialisation


def company_to_dict(company: Company) -> Dict[str, Any]:
    return {
        "id": company.id,
        "name": company.name,
        "description": company.description,
        "address": company.address,
        "phone": company.phone,
        "email": company.email,
        "startHour": company.start_hour,
        "endHour": company.end_hour,
        "isActive": bool(company.is_active),
    }


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "fullName": user.full_name,
        "role": user.role,
    }


def employee_to_dict(employee: Employee) -> Dict[str, Any]:
    return {
        "id": employee.id,
        "companyId": employee.company_id,
        "name": employee.name,
        "role": employee.role,
        "maxHoursPerWeek": employee.max_hours_per_week if employee.max_hours_per_week is not None else DEFAULT_MAX_HOURS,
        "hourlyRate": employee.hourly_rate,
        "email": employee.email,
        "phone": employee.phone,
        "notes": employee.notes,
        "isActive": bool(employee.is_active),
    }


def shift_to_dict(shift: Shift, employee: Optional[Employee] = None) -> Dict[str, Any]:
    return {
        "id": shift.id,
        "employeeId": shift.employee_id,
        "employeeName": employee.name if employee else None,
        "companyId": shift.company_id,
        "date": shift.date.isoformat(),
        "startTime": shift.start_time,
        "endTime": shift.end_time,
        "notes": shift.notes,
        "status": shift.status,
    }


def daily_sales_to_dict(row: DailySales) -> Dict[str, Any]:
    return {
        "id": row.id,
        "companyId": row.company_id,
        "date": row.date.isoformat(),
        "estimatedSales": row.estimated_sales,
        "hourlyEmployeeCost": row.hourly_employee_cost,
    }


def locked_week_to_dict(row: LockedWeek) -> Dict[str, Any]:
    return {
        "id": row.id,
        "companyId": row.company_id,
        "weekStartDate": row.week_start_date.isoformat(),
        "lockedBy": row.locked_by,
        "lockedAt": row.locked_at.isoformat() if row.locked_at else None,
    }


def weekly_employee_to_dict(row: WeeklyEmployee) -> Dict[str, Any]:
    return {
        "id": row.id,
        "companyId": row.company_id,
        "employeeId": row.employee_id,
        "weekStartDate": row.week_start_date.isoformat(),
    }


def schedule_to_dict(row: Schedule) -> Dict[str, Any]:
    return {
        "id": row.id,
        "companyId": row.company_id,
        "name": row.name,
        "description": row.description,
        "startDate": row.start_date.isoformat() if row.start_date else None,
        "endDate": row.end_date.isoformat() if row.end_date else None,
        "status": row.status,
        "createdBy": row.created_by,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
        "hasData": row.data_json is not None,
    }


# ---------------------------------------------------------------------------
# Companies and membership


def _apply_company_fields(company: Company, data: Dict[str, Any]) -> None:
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValueError("Company name is required.")
        company.name = name
    for key in ("description", "address", "phone", "email"):
        if key in data:
            setattr(company, key, (data.get(key) or "").strip())
    if "startHour" in data or "endHour" in data:
        start, end = clamp_hour_range(
            data.get("startHour", company.start_hour),
            data.get("endHour", company.end_hour),
        )
        company.start_hour = start
        company.end_hour = end
    if "isActive" in data:
        company.is_active = 1 if data.get("isActive") else 0


def get_company(session, company_id: int) -> Company:
    company = session.get(Company, company_id)
    if not company:
        raise NotFoundError(f"Company {company_id} was not found.")
    return company


def list_companies(session, user: Optional[User] = None) -> List[Company]:
    stmt = select(Company).order_by(Company.name.asc())
    if user is not None and user.role != "admin":
        stmt = stmt.join(UserCompany, UserCompany.company_id == Company.id).where(UserCompany.user_id == user.id)
    return list(session.scalars(stmt))


def create_company(session, data: Dict[str, Any], owner: Optional[User] = None) -> Company:
    if not (data.get("name") or "").strip():
        raise ValueError("Company name is required.")
    company = Company(name="", start_hour=DEFAULT_START_HOUR, end_hour=DEFAULT_END_HOUR)
    _apply_company_fields(company, data)
    session.add(company)
    session.flush()
    if owner is not None:
        session.add(UserCompany(user_id=owner.id, company_id=company.id, role="owner"))
    session.commit()
    session.refresh(company)
    return company


def update_company(session, company_id: int, data: Dict[str, Any]) -> Company:
    company = get_company(session, company_id)
    _apply_company_fields(company, data)
    session.commit()
    session.refresh(company)
    return company


def delete_company(session, company_id: int) -> None:
    company = get_company(session, company_id)
    for model in (Shift, WeeklyEmployee, DailySales, LockedWeek, Schedule):
        session.execute(delete(model).where(model.company_id == company_id))
    session.delete(company)
    session.commit()


def get_membership_role(session, user_id: int, company_id: int) -> Optional[str]:
    stmt = select(UserCompany.role).where(UserCompany.user_id == user_id, UserCompany.company_id == company_id)
    return session.scalars(stmt).first()


def assign_user_to_company(session, user_id: int, company_id: int, role: str = COMPANY_ROLE_MEMBER) -> UserCompany:
    get_company(session, company_id)
    if not session.get(User, user_id):
        raise NotFoundError(f"User {user_id} was not found.")
    role = normalize_company_role(role)
    stmt = select(UserCompany).where(UserCompany.user_id == user_id, UserCompany.company_id == company_id)
    membership = session.scalars(stmt).first()
    if membership:
        membership.role = role
    else:
        membership = UserCompany(user_id=user_id, company_id=company_id, role=role)
        session.add(membership)
    session.commit()
    session.refresh(membership)
    return membership


def remove_user_from_company(session, user_id: int, company_id: int) -> None:
    result = session.execute(
        delete(UserCompany).where(UserCompany.user_id == user_id, UserCompany.company_id == company_id)
    )
    if not result.rowcount:
        raise NotFoundError(f"User {user_id} is not a member of company {company_id}.")
    session.commit()


def list_company_users(session, company_id: int) -> List[Dict[str, Any]]:
    stmt = (
        select(User, UserCompany.role)
        .join(UserCompany, UserCompany.user_id == User.id)
        .where(UserCompany.company_id == company_id)
        .order_by(User.username.asc())
    )
    payload = []
    for user, role in session.execute(stmt):
        entry = user_to_dict(user)
        entry["companyRole"] = role
        payload.append(entry)
    return payload


# ---------------------------------------------------------------------------
# Users


def get_user_by_login(session, login: str) -> Optional[User]:
    value = (login or "").strip()
    if not value:
        return None
    stmt = select(User).where((User.username == value) | (User.email == value.lower()))
    return session.scalars(stmt).first()


def count_users(session) -> int:
    return session.scalar(select(func.count(User.id))) or 0


# ---------------------------------------------------------------------------
# Employees


def _apply_employee_fields(employee: Employee, data: Dict[str, Any]) -> None:
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValueError("Employee name is required.")
        employee.name = name
    for key in ("role", "email", "phone", "notes"):
        if key in data:
            setattr(employee, key, (data.get(key) or "").strip())
    if "maxHoursPerWeek" in data:
        value = data.get("maxHoursPerWeek")
        if value is None or value == "":
            employee.max_hours_per_week = DEFAULT_MAX_HOURS
        else:
            try:
                hours = int(value)
            except (TypeError, ValueError):
                raise ValueError("maxHoursPerWeek must be a whole number.")
            if hours < 0 or hours > 168:
                raise ValueError("maxHoursPerWeek must be between 0 and 168.")
            employee.max_hours_per_week = hours
    if "hourlyRate" in data:
        employee.hourly_rate = _coerce_optional_float(data.get("hourlyRate"), "hourlyRate")
    if "isActive" in data:
        employee.is_active = 1 if data.get("isActive") else 0


def get_employee(session, employee_id: int) -> Employee:
    employee = session.get(Employee, employee_id)
    if not employee:
        raise NotFoundError(f"Employee {employee_id} was not found.")
    return employee


def list_employees(
    session,
    company_id: int,
    *,
    week_start: Optional[datetime.date] = None,
    only_active: bool = True,
) -> List[Dict[str, Any]]:
    """Employees of a company.

    With ``week_start`` the list is narrowed to the employees assigned to
    that week; a week without assignments falls back to every employee.
    """
    stmt = select(Employee).where(Employee.company_id == company_id)
    if only_active:
        stmt = stmt.where(Employee.is_active == 1)
    stmt = stmt.order_by(Employee.name.asc())
    employees = list(session.scalars(stmt))
    if week_start is not None:
        assigned = {
            row.employee_id
            for row in session.scalars(
                select(WeeklyEmployee).where(
                    WeeklyEmployee.company_id == company_id,
                    WeeklyEmployee.week_start_date == week_start_for(week_start),
                )
            )
        }
        if assigned:
            employees = [employee for employee in employees if employee.id in assigned]
    return [employee_to_dict(employee) for employee in employees]


def create_employee(session, data: Dict[str, Any]) -> Employee:
    company_id = data.get("companyId")
    if company_id is None:
        raise ValueError("companyId is required.")
    get_company(session, int(company_id))
    if not (data.get("name") or "").strip():
        raise ValueError("Employee name is required.")
    employee = Employee(company_id=int(company_id), name="", max_hours_per_week=DEFAULT_MAX_HOURS)
    _apply_employee_fields(employee, data)
    session.add(employee)
    session.commit()
    session.refresh(employee)
    return employee


def update_employee(session, employee_id: int, data: Dict[str, Any]) -> Employee:
    employee = get_employee(session, employee_id)
    _apply_employee_fields(employee, data)
    session.commit()
    session.refresh(employee)
    return employee


def delete_employee(session, employee_id: int) -> None:
    employee = get_employee(session, employee_id)
    session.execute(delete(Shift).where(Shift.employee_id == employee_id))
    session.execute(delete(WeeklyEmployee).where(WeeklyEmployee.employee_id == employee_id))
    session.delete(employee)
    session.commit()


def list_weekly_employees(session, company_id: int, week_start: datetime.date) -> List[WeeklyEmployee]:
    stmt = (
        select(WeeklyEmployee)
        .where(
            WeeklyEmployee.company_id == company_id,
            WeeklyEmployee.week_start_date == week_start_for(week_start),
        )
        .order_by(WeeklyEmployee.id.asc())
    )
    return list(session.scalars(stmt))


def assign_employee_to_week(session, employee_id: int, week_start: datetime.date) -> WeeklyEmployee:
    employee = get_employee(session, employee_id)
    normalized = week_start_for(week_start)
    stmt = select(WeeklyEmployee).where(
        WeeklyEmployee.employee_id == employee_id,
        WeeklyEmployee.week_start_date == normalized,
    )
    existing = session.scalars(stmt).first()
    if existing:
        return existing
    row = WeeklyEmployee(company_id=employee.company_id, employee_id=employee_id, week_start_date=normalized)
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def remove_weekly_employee(session, assignment_id: int) -> WeeklyEmployee:
    row = session.get(WeeklyEmployee, assignment_id)
    if not row:
        raise NotFoundError(f"Weekly assignment {assignment_id} was not found.")
    session.delete(row)
    session.commit()
    return row


# ---------------------------------------------------------------------------
# Locked weeks


def is_week_locked(session, company_id: int, date_value: datetime.date) -> bool:
    stmt = select(LockedWeek.id).where(
        LockedWeek.company_id == company_id,
        LockedWeek.week_start_date == week_start_for(date_value),
    )
    return session.scalars(stmt).first() is not None


def ensure_week_unlocked(session, company_id: int, date_value: datetime.date) -> None:
    if is_week_locked(session, company_id, date_value):
        raise WeekLockedError(company_id, week_start_for(date_value))


def list_locked_weeks(session, company_id: int) -> List[LockedWeek]:
    stmt = select(LockedWeek).where(LockedWeek.company_id == company_id).order_by(LockedWeek.week_start_date.asc())
    return list(session.scalars(stmt))


def lock_week(session, company_id: int, week_start: datetime.date, locked_by: Optional[int] = None) -> LockedWeek:
    get_company(session, company_id)
    normalized = week_start_for(week_start)
    stmt = select(LockedWeek).where(LockedWeek.company_id == company_id, LockedWeek.week_start_date == normalized)
    existing = session.scalars(stmt).first()
    if existing:
        return existing
    row = LockedWeek(company_id=company_id, week_start_date=normalized, locked_by=locked_by)
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info("Locked week %s for company %s", normalized.isoformat(), company_id)
    return row


def unlock_week(session, company_id: int, week_start: datetime.date) -> None:
    normalized = week_start_for(week_start)
    result = session.execute(
        delete(LockedWeek).where(LockedWeek.company_id == company_id, LockedWeek.week_start_date == normalized)
    )
    if not result.rowcount:
        raise NotFoundError(f"Week {normalized.isoformat()} is not locked.")
    session.commit()
    logger.info("Unlocked week %s for company %s", normalized.isoformat(), company_id)


# ---------------------------------------------------------------------------
# Shifts


def _normalize_shift_times(start, end) -> Tuple[str, str]:
    if start in (None, "") or end in (None, ""):
        raise ValueError("startTime and endTime are required.")
    start_label = normalize_time(start)
    end_label = normalize_time(end, end_of_range=True)
    if start_label == end_label and time_to_minutes(end) != 24 * 60:
        raise ValueError("Shift end time must differ from its start time.")
    return start_label, end_label


def get_shift(session, shift_id: int) -> Shift:
    shift = session.get(Shift, shift_id)
    if not shift:
        raise NotFoundError(f"Shift {shift_id} was not found.")
    return shift


def list_shifts(
    session,
    *,
    company_id: Optional[int] = None,
    date_value: Optional[datetime.date] = None,
    employee_id: Optional[int] = None,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
) -> List[Dict[str, Any]]:
    stmt = select(Shift, Employee).join(Employee, Employee.id == Shift.employee_id)
    if company_id is not None:
        stmt = stmt.where(Shift.company_id == company_id)
    if date_value is not None:
        stmt = stmt.where(Shift.date == date_value)
    if employee_id is not None:
        stmt = stmt.where(Shift.employee_id == employee_id)
    if start_date is not None:
        stmt = stmt.where(Shift.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Shift.date <= end_date)
    payload = [shift_to_dict(shift, employee) for shift, employee in session.execute(stmt)]
    payload.sort(key=shift_sort_key)
    return payload


def get_shifts_for_week(session, company_id: int, week_start: datetime.date) -> List[Dict[str, Any]]:
    start = week_start_for(week_start)
    return list_shifts(
        session,
        company_id=company_id,
        start_date=start,
        end_date=start + datetime.timedelta(days=6),
    )


def create_shift(session, data: Dict[str, Any]) -> Shift:
    employee_id = data.get("employeeId")
    if employee_id is None:
        raise ValueError("employeeId is required.")
    employee = get_employee(session, int(employee_id))
    company_id = int(data.get("companyId") or employee.company_id)
    if company_id != employee.company_id:
        raise ValueError("Employee does not belong to this company.")
    shift_date = _coerce_date(data.get("date"))
    start, end = _normalize_shift_times(data.get("startTime"), data.get("endTime"))
    ensure_week_unlocked(session, company_id, shift_date)
    status = (data.get("status") or "scheduled").strip().lower()
    if status not in SHIFT_STATUS_CHOICES:
        raise ValueError(f"Unsupported shift status '{status}'.")
    shift = Shift(
        employee_id=employee.id,
        company_id=company_id,
        date=shift_date,
        start_time=start,
        end_time=end,
        notes=(data.get("notes") or ""),
        status=status,
    )
    session.add(shift)
    session.commit()
    session.refresh(shift)
    return shift


def update_shift(session, shift_id: int, changes: Dict[str, Any]) -> Shift:
    shift = get_shift(session, shift_id)
    ensure_week_unlocked(session, shift.company_id, shift.date)
    if "employeeId" in changes and changes["employeeId"] is not None:
        employee = get_employee(session, int(changes["employeeId"]))
        if employee.company_id != shift.company_id:
            raise ValueError("Employee does not belong to this company.")
        shift.employee_id = employee.id
    if "date" in changes:
        new_date = _coerce_date(changes.get("date"))
        ensure_week_unlocked(session, shift.company_id, new_date)
        shift.date = new_date
    if "startTime" in changes or "endTime" in changes:
        start, end = _normalize_shift_times(
            changes.get("startTime", shift.start_time),
            changes.get("endTime", shift.end_time),
        )
        shift.start_time = start
        shift.end_time = end
    if "notes" in changes:
        shift.notes = changes.get("notes") or ""
    if "status" in changes:
        status = (changes.get("status") or "").strip().lower()
        if status not in SHIFT_STATUS_CHOICES:
            raise ValueError(f"Unsupported shift status '{status}'.")
        shift.status = status
    session.commit()
    session.refresh(shift)
    return shift


def delete_shift(session, shift_id: int) -> Shift:
    shift = get_shift(session, shift_id)
    ensure_week_unlocked(session, shift.company_id, shift.date)
    session.delete(shift)
    session.commit()
    return shift


# ---------------------------------------------------------------------------
# Daily sales


def get_daily_sales(session, company_id: int, date_value: datetime.date) -> Optional[DailySales]:
    stmt = select(DailySales).where(DailySales.company_id == company_id, DailySales.date == date_value)
    return session.scalars(stmt).first()


def list_daily_sales(
    session,
    company_id: int,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
) -> List[DailySales]:
    stmt = select(DailySales).where(DailySales.company_id == company_id)
    if start_date is not None:
        stmt = stmt.where(DailySales.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(DailySales.date <= end_date)
    return list(session.scalars(stmt.order_by(DailySales.date.asc())))


def upsert_daily_sales(
    session,
    company_id: int,
    date_value: datetime.date,
    estimated_sales,
    hourly_employee_cost=None,
) -> Tuple[DailySales, bool]:
    get_company(session, company_id)
    sales = _coerce_optional_float(estimated_sales, "estimatedSales")
    if sales is None:
        raise ValueError("estimatedSales is required.")
    cost = _coerce_optional_float(hourly_employee_cost, "hourlyEmployeeCost")
    row = get_daily_sales(session, company_id, date_value)
    created = row is None
    if created:
        row = DailySales(
            company_id=company_id,
            date=date_value,
            hourly_employee_cost=DEFAULT_HOURLY_COST if cost is None else cost,
        )
        session.add(row)
    elif cost is not None:
        row.hourly_employee_cost = cost
    row.estimated_sales = sales
    session.commit()
    session.refresh(row)
    return row, created


# ---------------------------------------------------------------------------
# Saved schedules


def _apply_schedule_fields(row: Schedule, data: Dict[str, Any]) -> None:
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValueError("Schedule name is required.")
        row.name = name
    if "description" in data:
        row.description = (data.get("description") or "").strip()
    for key, attr in (("startDate", "start_date"), ("endDate", "end_date")):
        if key in data:
            value = data.get(key)
            setattr(row, attr, _coerce_date(value, key) if value else None)
    if "status" in data:
        status = (data.get("status") or "draft").strip().lower()
        if status not in SCHEDULE_STATUS_CHOICES:
            raise ValueError(f"Unsupported schedule status '{status}'.")
        row.status = status
    if row.start_date and row.end_date and row.end_date < row.start_date:
        raise ValueError("endDate cannot be before startDate.")


def get_schedule(session, schedule_id: int) -> Schedule:
    row = session.get(Schedule, schedule_id)
    if not row:
        raise NotFoundError(f"Schedule {schedule_id} was not found.")
    return row


def list_schedules(session, company_id: int) -> List[Schedule]:
    stmt = (
        select(Schedule)
        .where(Schedule.company_id == company_id)
        .order_by(Schedule.created_at.desc(), Schedule.id.desc())
    )
    return list(session.scalars(stmt))


def create_schedule(session, data: Dict[str, Any], created_by: Optional[int] = None) -> Schedule:
    if data.get("companyId") is None:
        raise ValueError("companyId is required.")
    if not (data.get("name") or "").strip():
        raise ValueError("Schedule name is required.")
    company = get_company(session, int(data["companyId"]))
    row = Schedule(company_id=company.id, name="", created_by=created_by)
    _apply_schedule_fields(row, data)
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def delete_schedule(session, schedule_id: int) -> None:
    row = get_schedule(session, schedule_id)
    session.delete(row)
    session.commit()


def store_schedule_data(session, schedule_id: int, data: Dict[str, Any], week_start: datetime.date) -> Schedule:
    """Replace the snapshot held by a schedule; its date range becomes ``week_start``'s week."""
    row = get_schedule(session, schedule_id)
    week_start = week_start_for(week_start)
    row.data_json = json.dumps(data)
    row.start_date = week_start
    row.end_date = week_start + datetime.timedelta(days=6)
    row.updated_at = _utcnow()
    session.commit()
    session.refresh(row)
    return row


def load_schedule_data(session, schedule_id: int) -> Optional[Dict[str, Any]]:
    row = get_schedule(session, schedule_id)
    if row.data_json is None:
        return None
    return json.loads(row.data_json)


# ---------------------------------------------------------------------------
# Audit


def record_audit_log(
    session,
    user_id: Optional[int],
    action: str,
    target_type: str = "Shift",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payload_json=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log


def list_audit_log(session, *, target_type: Optional[str] = None, limit: int = 100) -> List[AuditLog]:
    stmt = select(AuditLog)
    if target_type:
        stmt = stmt.where(AuditLog.target_type == target_type)
    return list(session.scalars(stmt.order_by(AuditLog.id.desc()).limit(limit)))
