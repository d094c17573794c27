"""Saving grid selections as shifts through a shift store.

A store is anything with the async ``create_shift`` / ``update_shift`` /
``delete_shift`` methods of :class:`ShiftStore`. :class:`ShiftApiClient` is
the HTTP implementation used by the desktop client.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

import httpx

from .consolidate import ShiftRange
from .timegrid import TimeGrid, calculate_hours_between, format_date_for_api

logger = logging.getLogger(__name__)

API_URL = os.environ.get("SHIFTBOARD_API_URL", "http://127.0.0.1:8000")
REQUEST_TIMEOUT = 10.0

T = TypeVar("T")


class ShiftApiError(Exception):
    """Raised when the shift store rejects a request or cannot be reached."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}" if status_code else detail)
        self.status_code = status_code
        self.detail = detail

    @property
    def is_locked(self) -> bool:
        return self.status_code == 423


class ShiftStore(Protocol):
    async def create_shift(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def update_shift(self, shift_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def delete_shift(self, shift_id: int) -> None:
        ...


class ShiftStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingShift:
    """A shift the client has asked the store to create."""

    payload: Dict[str, Any]
    status: ShiftStatus = ShiftStatus.PENDING
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def confirmed(self, record: Dict[str, Any]) -> "PendingShift":
        return replace(self, status=ShiftStatus.CONFIRMED, record=record, error=None)

    def failed(self, error: str) -> "PendingShift":
        return replace(self, status=ShiftStatus.FAILED, error=error)

    @property
    def is_pending(self) -> bool:
        return self.status is ShiftStatus.PENDING


@dataclass
class PersistReport:
    added: int = 0
    errors: int = 0
    total: int = 0
    failures: List[Tuple[Dict[str, Any], str]] = field(default_factory=list)
    results: List[PendingShift] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.errors == 0

    @property
    def created(self) -> List[Dict[str, Any]]:
        return [item.record for item in self.results if item.status is ShiftStatus.CONFIRMED and item.record]

    def as_dict(self) -> Dict[str, int]:
        return {"added": self.added, "errors": self.errors, "total": self.total}

    def message(self) -> str:
        if self.total == 0:
            return "Nothing to save."
        if self.ok:
            return f"Saved {self.added} shift(s)."
        return f"Saved {self.added} of {self.total} shift(s); {self.errors} failed."


def build_shift_payloads(
    employee_id: int,
    date,
    pairs: Iterable[ShiftRange],
    notes: str = "",
) -> List[Dict[str, Any]]:
    date_str = format_date_for_api(date)
    return [
        {
            "employeeId": employee_id,
            "date": date_str,
            "startTime": start,
            "endTime": end,
            "notes": notes,
        }
        for start, end in pairs
    ]


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, ShiftApiError):
        return exc.detail
    return str(exc) or exc.__class__.__name__


async def persist_selections(
    store: ShiftStore,
    date,
    pairs_by_employee: Mapping[int, Sequence[ShiftRange]],
) -> PersistReport:
    """Create one shift per range concurrently. Failures are counted, not rolled back."""
    pending: List[PendingShift] = []
    for employee_id, pairs in pairs_by_employee.items():
        pending.extend(PendingShift(payload) for payload in build_shift_payloads(employee_id, date, pairs))

    report = PersistReport(total=len(pending))
    if not pending:
        return report

    outcomes = await asyncio.gather(
        *(store.create_shift(item.payload) for item in pending),
        return_exceptions=True,
    )
    for item, outcome in zip(pending, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, Exception):
            message = _error_text(outcome)
            logger.warning("Shift create failed for %s: %s", item.payload, message)
            report.errors += 1
            report.failures.append((item.payload, message))
            report.results.append(item.failed(message))
        else:
            report.added += 1
            report.results.append(item.confirmed(outcome))
    logger.info("Persisted selections: %s", report.as_dict())
    return report


def persist_selections_sync(
    store_factory: Callable[[], Any],
    date,
    pairs_by_employee: Mapping[int, Sequence[ShiftRange]],
) -> PersistReport:
    """Run :func:`persist_selections` to completion from synchronous code.

    ``store_factory`` returns either a store or an async context manager
    yielding one (such as :class:`ShiftApiClient`).
    """

    async def _run() -> PersistReport:
        store = store_factory()
        if hasattr(store, "__aenter__"):
            async with store as entered:
                return await persist_selections(entered, date, pairs_by_employee)
        return await persist_selections(store, date, pairs_by_employee)

    return asyncio.run(_run())


async def update_shift(store: ShiftStore, shift_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    return await store.update_shift(shift_id, changes)


async def delete_shift(store: ShiftStore, shift_id: int) -> None:
    await store.delete_shift(shift_id)


def moved_shift_times(shift: Mapping[str, Any], new_start: str, grid: TimeGrid) -> Tuple[str, str]:
    """Start/end for ``shift`` moved to ``new_start``, keeping its length.

    The end is clamped to the last grid label.
    """
    start_index = grid.index_of(new_start)
    if start_index is None:
        raise ValueError(f"Start time {new_start} is not on the grid.")
    if start_index >= len(grid) - 1:
        raise ValueError("A shift cannot start on the last grid slot.")
    hours = calculate_hours_between(shift["startTime"], shift["endTime"])
    length = max(1, int(round(hours * 60 / grid.increment)))
    end_index = min(start_index + length, len(grid) - 1)
    return grid.slots[start_index], grid.slots[end_index]


async def move_shift(
    store: ShiftStore,
    shift: Mapping[str, Any],
    new_employee_id: int,
    new_start: str,
    grid: TimeGrid,
) -> Dict[str, Any]:
    start, end = moved_shift_times(shift, new_start, grid)
    return await store.update_shift(
        shift["id"],
        {"employeeId": new_employee_id, "startTime": start, "endTime": end},
    )


class ShiftApiClient:
    """Async REST client for the shiftboard API.

    Use it as an async context manager; the underlying ``httpx.AsyncClient``
    lives for the duration of the ``async with`` block.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or API_URL).rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ShiftApiClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("ShiftApiClient must be used inside 'async with'.")
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ShiftApiError(0, f"Could not reach server: {exc}") from exc
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ShiftApiError(response.status_code, str(detail))
        return response

    async def _json(self, method: str, path: str, **kwargs) -> Any:
        response = await self._send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # auth
    async def register(self, username: str, email: str, password: str, full_name: str = "") -> Dict[str, Any]:
        body = {"username": username, "email": email, "password": password, "fullName": full_name}
        data = await self._json("POST", "/api/register", json=body)
        self.token = data.get("token")
        return data

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        data = await self._json("POST", "/api/login", json={"username": username, "password": password})
        self.token = data.get("token")
        return data

    async def logout(self) -> None:
        await self._json("POST", "/api/logout")
        self.token = None

    async def current_user(self) -> Dict[str, Any]:
        return await self._json("GET", "/api/user")

    async def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        body = {"currentPassword": current_password, "newPassword": new_password}
        data = await self._json("POST", "/api/user/password", json=body)
        self.token = data.get("token")
        return data

    # companies and employees
    async def list_companies(self) -> List[Dict[str, Any]]:
        return await self._json("GET", "/api/companies")

    async def get_company(self, company_id: int) -> Dict[str, Any]:
        return await self._json("GET", f"/api/companies/{company_id}")

    async def create_company(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/api/companies", json=data)

    async def list_employees(self, company_id: int, week_start: Optional[datetime.date] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"companyId": company_id}
        if week_start is not None:
            params["weekStartDate"] = format_date_for_api(week_start)
        return await self._json("GET", "/api/employees", params=params)

    # shifts
    async def list_shifts(self, company_id: int, date=None, employee_id: Optional[int] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"companyId": company_id}
        if date is not None:
            params["date"] = format_date_for_api(date)
        if employee_id is not None:
            params["employeeId"] = employee_id
        return await self._json("GET", "/api/shifts", params=params)

    async def create_shift(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/api/shifts", json=payload)

    async def update_shift(self, shift_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("PUT", f"/api/shifts/{shift_id}", json=changes)

    async def delete_shift(self, shift_id: int) -> None:
        await self._json("DELETE", f"/api/shifts/{shift_id}")

    # sales, hours and locks
    async def get_daily_sales(self, company_id: int, date) -> Optional[Dict[str, Any]]:
        day = format_date_for_api(date)
        rows = await self._json(
            "GET",
            f"/api/companies/{company_id}/daily-sales",
            params={"startDate": day, "endDate": day},
        )
        return rows[0] if rows else None

    async def save_daily_sales(
        self,
        company_id: int,
        date,
        estimated_sales: float,
        hourly_employee_cost: Optional[float] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"date": format_date_for_api(date), "estimatedSales": estimated_sales}
        if hourly_employee_cost is not None:
            body["hourlyEmployeeCost"] = hourly_employee_cost
        return await self._json("POST", f"/api/companies/{company_id}/daily-sales", json=body)

    async def labor_cost(self, company_id: int, date, start_hour: Optional[int] = None, end_hour: Optional[int] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"date": format_date_for_api(date)}
        if start_hour is not None and end_hour is not None:
            params.update({"startHour": start_hour, "endHour": end_hour})
        return await self._json("GET", f"/api/companies/{company_id}/labor-cost", params=params)

    async def weekly_hours(self, company_id: int, week_start) -> List[Dict[str, Any]]:
        return await self._json(
            "GET",
            f"/api/companies/{company_id}/weekly-hours",
            params={"weekStartDate": format_date_for_api(week_start)},
        )

    async def is_week_locked(self, company_id: int, week_start) -> bool:
        data = await self._json(
            "GET",
            f"/api/companies/{company_id}/locked-weeks/check",
            params={"weekStartDate": format_date_for_api(week_start)},
        )
        return bool(data and data.get("isLocked"))

    async def lock_week(self, company_id: int, week_start) -> Dict[str, Any]:
        return await self._json(
            "POST",
            f"/api/companies/{company_id}/locked-weeks",
            json={"weekStartDate": format_date_for_api(week_start)},
        )

    async def unlock_week(self, company_id: int, week_start) -> None:
        await self._json("DELETE", f"/api/companies/{company_id}/locked-weeks/{format_date_for_api(week_start)}")

    # week copy and saved schedules
    async def copy_week(self, company_id: int, week_start, source_week=None) -> Dict[str, Any]:
        body = {"sourceWeekStartDate": format_date_for_api(source_week)} if source_week else None
        return await self._json(
            "POST",
            f"/api/companies/{company_id}/weeks/{format_date_for_api(week_start)}/copy",
            json=body,
        )

    async def export_week_data(self, company_id: int, week_start) -> Dict[str, Any]:
        return await self._json("GET", f"/api/companies/{company_id}/weeks/{format_date_for_api(week_start)}/export")

    async def import_week_data(self, company_id: int, week_start, data: Dict[str, Any], replace: bool = True) -> Dict[str, Any]:
        return await self._json(
            "POST",
            f"/api/companies/{company_id}/weeks/{format_date_for_api(week_start)}/import",
            json=data,
            params={"replace": str(replace).lower()},
        )

    async def list_schedules(self, company_id: int) -> List[Dict[str, Any]]:
        return await self._json("GET", "/api/schedules", params={"companyId": company_id})

    async def create_schedule(self, company_id: int, name: str, description: str = "") -> Dict[str, Any]:
        return await self._json(
            "POST",
            "/api/schedules",
            json={"companyId": company_id, "name": name, "description": description},
        )

    async def save_schedule(self, schedule_id: int, week_start=None) -> Dict[str, Any]:
        body = {"weekStartDate": format_date_for_api(week_start)} if week_start else None
        return await self._json("POST", f"/api/schedules/{schedule_id}/save", json=body)

    async def load_schedule(self, schedule_id: int) -> Dict[str, Any]:
        return await self._json("GET", f"/api/schedules/{schedule_id}/load")

    async def restore_schedule(self, schedule_id: int, week_start=None) -> Dict[str, Any]:
        body = {"weekStartDate": format_date_for_api(week_start)} if week_start else None
        return await self._json("POST", f"/api/schedules/{schedule_id}/restore", json=body)

    async def delete_schedule(self, schedule_id: int) -> None:
        await self._json("DELETE", f"/api/schedules/{schedule_id}")

    async def download_export(self, company_id: int, name: str, params: Dict[str, Any]) -> bytes:
        response = await self._send("GET", f"/api/companies/{company_id}/exports/{name}", params=params)
        return response.content


def run_with_client(
    operation: Callable[[ShiftApiClient], Awaitable[T]],
    *,
    base_url: Optional[str] = None,
    token: Optional[str] = None,
) -> T:
    """Open a client, run one coroutine against it and close it again."""

    async def _run() -> T:
        async with ShiftApiClient(base_url, token=token) as client:
            return await operation(client)

    return asyncio.run(_run())
