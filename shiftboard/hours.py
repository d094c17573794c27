"""Derived numbers shown next to the grid: weekly hour budgets and labor cost."""

from __future__ import annotations

import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .timegrid import TimeGrid, calculate_hours_between, is_time_between, week_days

DEFAULT_MAX_HOURS = 40
DEFAULT_HOURLY_COST = 15.0
SLOT_HOURS = 0.25
LOW_BAND_MAX = 20.0
MEDIUM_BAND_MAX = 30.0
COUNTED_STATUSES = {"scheduled", "completed"}


def shift_hours(shift: Mapping[str, Any]) -> float:
    return calculate_hours_between(shift["startTime"], shift["endTime"])


def _counted(shift: Mapping[str, Any]) -> bool:
    return (shift.get("status") or "scheduled") in COUNTED_STATUSES


def cost_band(percentage: Optional[float]) -> str:
    if percentage is None:
        return "none"
    if percentage <= LOW_BAND_MAX:
        return "low"
    if percentage <= MEDIUM_BAND_MAX:
        return "medium"
    return "high"


def weekly_hours(
    employees: Iterable[Mapping[str, Any]],
    shifts: Iterable[Mapping[str, Any]],
    pending_hours: Optional[Mapping[int, float]] = None,
) -> List[Dict[str, Any]]:
    """Worked, pending and remaining hours per employee for one week.

    ``shifts`` must already be limited to the week. ``pending_hours`` carries
    the hours of the unsaved selection so the budget updates while dragging.
    """
    worked: Dict[int, float] = {}
    for shift in shifts:
        if not _counted(shift):
            continue
        worked[shift["employeeId"]] = worked.get(shift["employeeId"], 0.0) + shift_hours(shift)
    pending_hours = pending_hours or {}

    rows: List[Dict[str, Any]] = []
    for employee in employees:
        employee_id = employee["id"]
        max_hours = employee.get("maxHoursPerWeek")
        if max_hours is None:
            max_hours = DEFAULT_MAX_HOURS
        done = round(worked.get(employee_id, 0.0), 2)
        pending = round(float(pending_hours.get(employee_id, 0.0)), 2)
        total = round(done + pending, 2)
        rows.append(
            {
                "employeeId": employee_id,
                "name": employee.get("name"),
                "workedHours": done,
                "pendingHours": pending,
                "totalHours": total,
                "maxHours": max_hours,
                "remainingHours": round(max_hours - total, 2),
                "overBudget": total > max_hours,
            }
        )
    return rows


def with_pending_hours(rows: Iterable[Mapping[str, Any]], pending_hours: Mapping[int, float]) -> List[Dict[str, Any]]:
    """Re-total rows from :func:`weekly_hours` (or the API) with a new pending map."""
    updated = []
    for row in rows:
        pending = round(float(pending_hours.get(row["employeeId"], 0.0)), 2)
        total = round(row["workedHours"] + pending, 2)
        updated.append(
            dict(
                row,
                pendingHours=pending,
                totalHours=total,
                remainingHours=round(row["maxHours"] - total, 2),
                overBudget=total > row["maxHours"],
            )
        )
    return updated


def slot_staffing(shifts: Iterable[Mapping[str, Any]], grid: TimeGrid) -> Dict[str, int]:
    counts = {label: 0 for label in grid}
    for shift in shifts:
        if not _counted(shift):
            continue
        for label in grid:
            if is_time_between(label, shift["startTime"], shift["endTime"]):
                counts[label] += 1
    return counts


def labor_cost(
    shifts: Sequence[Mapping[str, Any]],
    grid: TimeGrid,
    estimated_sales: float,
    hourly_cost: float,
) -> Dict[str, Any]:
    """Daily labor cost against estimated sales, overall and per 15-minute slot.

    Sales are spread evenly over the grid, so each slot's percentage is
    ``staff * hourly_cost * 0.25 / (sales / slot_count) * 100``.
    """
    sales = max(float(estimated_sales or 0.0), 0.0)
    hourly_cost = max(float(hourly_cost or 0.0), 0.0)
    counted = [shift for shift in shifts if _counted(shift)]
    total_hours = round(sum(shift_hours(shift) for shift in counted), 2)
    total_cost = round(total_hours * hourly_cost, 2)
    percentage = round(total_cost / sales * 100, 2) if sales > 0 else None

    sales_per_slot = sales / len(grid) if len(grid) else 0.0
    slots = []
    for label, staff in slot_staffing(counted, grid).items():
        cost = staff * hourly_cost * SLOT_HOURS
        slot_pct = round(cost / sales_per_slot * 100, 2) if sales_per_slot > 0 else None
        slots.append(
            {
                "time": label,
                "staff": staff,
                "cost": round(cost, 2),
                "percentage": slot_pct,
                "band": cost_band(slot_pct),
            }
        )
    return {
        "totalHours": total_hours,
        "totalCost": total_cost,
        "estimatedSales": round(sales, 2),
        "hourlyEmployeeCost": hourly_cost,
        "laborCostPercentage": percentage,
        "band": cost_band(percentage),
        "slots": slots,
    }


def sales_form_values(
    sales: Optional[Mapping[str, Any]],
    summary: Optional[Mapping[str, Any]] = None,
) -> Tuple[float, float]:
    """Estimated sales and hourly cost to show for one day.

    A day without saved sales shows the hourly cost its labor summary used,
    so saving the form keeps that cost instead of storing zero.
    """
    if sales:
        hourly = sales.get("hourlyEmployeeCost")
        return float(sales.get("estimatedSales") or 0.0), float(DEFAULT_HOURLY_COST if hourly is None else hourly)
    hourly = (summary or {}).get("hourlyEmployeeCost")
    return 0.0, float(DEFAULT_HOURLY_COST if hourly is None else hourly)


def week_matrix(
    employees: Iterable[Mapping[str, Any]],
    shifts: Iterable[Mapping[str, Any]],
    week_start: datetime.date,
) -> List[Dict[str, Any]]:
    """Employee x day table used by the weekly exports."""
    days = [day.isoformat() for day in week_days(week_start)]
    by_key: Dict[tuple, List[Mapping[str, Any]]] = {}
    for shift in shifts:
        if not _counted(shift):
            continue
        by_key.setdefault((shift["employeeId"], shift["date"]), []).append(shift)

    rows = []
    for employee in employees:
        cells = []
        total = 0.0
        for day in days:
            day_shifts = sorted(by_key.get((employee["id"], day), []), key=lambda item: item["startTime"])
            hours = round(sum(shift_hours(shift) for shift in day_shifts), 2)
            total += hours
            cells.append(
                {
                    "date": day,
                    "hours": hours,
                    "ranges": [f"{shift['startTime']} - {shift['endTime']}" for shift in day_shifts],
                }
            )
        rows.append({"employee": employee, "days": cells, "totalHours": round(total, 2)})
    return rows
