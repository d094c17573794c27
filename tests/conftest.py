from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shiftboard import auth, data_exchange
from shiftboard import database as db



@pytest.fixture()
def memory_db(monkeypatch, tmp_path):
    """In-memory engine patched into the database module so API routes and helpers share it."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "SessionLocal", Session)
    # Keep exports in a temp folder to avoid polluting the repo.
    monkeypatch.setattr(db, "EXPORT_DIR", tmp_path)
    monkeypatch.setattr(data_exchange, "EXPORT_DIR", tmp_path)
    # Full-strength hashing makes the auth tests slow.
    monkeypatch.setattr(auth, "PBKDF2_ITERATIONS", 1_000)
    db.init_database()

    session = Session()
    try:
        yield {"session": session, "factory": Session, "engine": engine, "tmp": tmp_path}
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def company_setup(memory_db):
    """One company with three employees."""
    session = memory_db["session"]
    company = db.create_company(session, {"name": "Corner Bistro", "startHour": 8, "endHour": 24})
    employees = [
        db.create_employee(session, {"companyId": company.id, "name": name, "role": role, "maxHoursPerWeek": hours})
        for name, role, hours in (
            ("Alex Kim", "Barista", 10),
            ("Blair Young", "Cashier", 40),
            ("Casey Diaz", "Kitchen", 30),
        )
    ]
    return {**memory_db, "company": company, "employees": employees}
