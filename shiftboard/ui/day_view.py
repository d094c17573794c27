from __future__ import annotations

import asyncio
import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from PySide6.QtCore import QDate
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QDateEdit,
    QDoubleSpinBox,
    QFileDialog,
    QGroupBox,
    QHBoxLayout,
    QInputDialog,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMessageBox,
    QPushButton,
    QScrollArea,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from ..consolidate import consolidate_selection, selection_hours
from ..hours import sales_form_values, with_pending_hours
from ..persistence import (
    ShiftApiClient,
    ShiftApiError,
    move_shift,
    persist_selections_sync,
    run_with_client,
)
from ..roles import can_edit_company, grouped_by_role
from ..timegrid import (
    TimeGrid,
    format_hours,
    format_week_label,
    next_day,
    previous_day,
    week_start_for,
)
from .day_grid import DayGridWidget
from .edit_shift import EditShiftDialog

SUCCESS_COLOR = "#66d9a6"
INFO_COLOR = "#a8aec6"
ERROR_COLOR = "#ff7a7a"
WARNING_COLOR = "#f5b942"
BAND_TEXT_COLORS = {"low": SUCCESS_COLOR, "medium": WARNING_COLOR, "high": ERROR_COLOR, "none": INFO_COLOR}


class DaySchedulePage(QWidget):
    """One company day: the selection grid, labor cost and weekly hour budgets."""

    def __init__(
        self,
        company: Dict[str, Any],
        user: Dict[str, Any],
        *,
        token: Optional[str],
        api_url: Optional[str] = None,
        on_back: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__()
        self.company = company
        self.user = user
        self.token = token
        self.api_url = api_url
        self.on_back = on_back
        self.can_edit = can_edit_company(user.get("role"), company.get("companyRole"))
        self.current_date = datetime.date.today()
        self.grid = TimeGrid.build(company.get("startHour"), company.get("endHour"))
        self.employees: List[Dict] = []
        self.shifts: List[Dict] = []
        self.weekly_rows: List[Dict] = []
        self.locked = False
        self._build_ui()
        self.refresh()

    @property
    def week_start(self) -> datetime.date:
        return week_start_for(self.current_date)

    # ------------------------------------------------------------------
    # Layout

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setSpacing(10)
        layout.addLayout(self._build_header())
        layout.addLayout(self._build_sales_row())

        body = QHBoxLayout()
        self.grid_widget = DayGridWidget(self.grid)
        self.grid_widget.selectionChanged.connect(self._on_selection_changed)
        self.grid_widget.shiftActivated.connect(self._open_shift)
        self.grid_widget.shiftMoved.connect(self._move_shift)
        scroll = QScrollArea()
        scroll.setWidget(self.grid_widget)
        scroll.setWidgetResizable(False)
        body.addWidget(scroll, 4)

        hours_box = QGroupBox("Weekly hours")
        hours_layout = QVBoxLayout(hours_box)
        self.hours_list = QListWidget()
        self.hours_list.setSelectionMode(QListWidget.NoSelection)
        hours_layout.addWidget(self.hours_list)
        body.addWidget(hours_box, 1)
        layout.addLayout(body, 1)

        actions = QHBoxLayout()
        self.save_button = QPushButton("Save selection")
        self.save_button.clicked.connect(self.save_selection)
        self.clear_button = QPushButton("Clear selection")
        self.clear_button.clicked.connect(self.grid_widget.clear_selection)
        self.selection_label = QLabel()
        self.selection_label.setStyleSheet(f"color:{INFO_COLOR};")
        actions.addWidget(self.save_button)
        actions.addWidget(self.clear_button)
        actions.addWidget(self.selection_label)
        self.copy_week_button = QPushButton("Copy previous week")
        self.copy_week_button.clicked.connect(self.copy_previous_week)
        self.save_week_button = QPushButton("Save week as...")
        self.save_week_button.clicked.connect(self.save_week_as_schedule)
        self.restore_week_button = QPushButton("Restore saved...")
        self.restore_week_button.clicked.connect(self.restore_saved_schedule)
        actions.addWidget(self.copy_week_button)
        actions.addWidget(self.save_week_button)
        actions.addWidget(self.restore_week_button)
        actions.addStretch()
        for title, name in (("Week PDF", "week.pdf"), ("Week CSV", "week.csv"), ("Day PDF", "day.pdf")):
            button = QPushButton(title)
            button.clicked.connect(lambda _checked=False, export=name: self.export(export))
            actions.addWidget(button)
        layout.addLayout(actions)

        self.feedback_label = QLabel()
        self.feedback_label.setWordWrap(True)
        layout.addWidget(self.feedback_label)

    def _build_header(self) -> QHBoxLayout:
        header = QHBoxLayout()
        if self.on_back:
            back_button = QPushButton("Companies")
            back_button.clicked.connect(self.on_back)
            header.addWidget(back_button)
        title = QLabel(f"<h2 style='color:#f5b942;'>{self.company.get('name', '')}</h2>")
        header.addWidget(title)
        header.addStretch()

        prev_button = QPushButton("<")
        prev_button.clicked.connect(lambda: self.set_date(previous_day(self.current_date)))
        self.date_edit = QDateEdit()
        self.date_edit.setCalendarPopup(True)
        self.date_edit.setDisplayFormat("ddd dd MMM yyyy")
        self.date_edit.setDate(QDate(self.current_date.year, self.current_date.month, self.current_date.day))
        self.date_edit.dateChanged.connect(self._on_date_edited)
        next_button = QPushButton(">")
        next_button.clicked.connect(lambda: self.set_date(next_day(self.current_date)))
        today_button = QPushButton("Today")
        today_button.clicked.connect(lambda: self.set_date(datetime.date.today()))
        for widget in (prev_button, self.date_edit, next_button, today_button):
            header.addWidget(widget)

        header.addSpacing(16)
        header.addWidget(QLabel("Hours"))
        self.start_hour_spin = QSpinBox()
        self.start_hour_spin.setRange(0, 46)
        self.start_hour_spin.setValue(self.grid.start_hour)
        self.end_hour_spin = QSpinBox()
        self.end_hour_spin.setRange(1, 47)
        self.end_hour_spin.setValue(self.grid.end_hour)
        self.start_hour_spin.valueChanged.connect(self._on_hours_changed)
        self.end_hour_spin.valueChanged.connect(self._on_hours_changed)
        header.addWidget(self.start_hour_spin)
        header.addWidget(self.end_hour_spin)

        header.addSpacing(16)
        self.week_label = QLabel()
        self.week_label.setStyleSheet(f"color:{INFO_COLOR};")
        self.lock_label = QLabel()
        self.lock_button = QPushButton()
        self.lock_button.clicked.connect(self.toggle_lock)
        header.addWidget(self.week_label)
        header.addWidget(self.lock_label)
        header.addWidget(self.lock_button)
        return header

    def _build_sales_row(self) -> QHBoxLayout:
        row = QHBoxLayout()
        row.addWidget(QLabel("Estimated sales"))
        self.sales_input = QDoubleSpinBox()
        self.sales_input.setRange(0, 10_000_000)
        self.sales_input.setDecimals(2)
        self.sales_input.setButtonSymbols(QDoubleSpinBox.NoButtons)
        row.addWidget(self.sales_input)
        row.addWidget(QLabel("Hourly cost"))
        self.hourly_input = QDoubleSpinBox()
        self.hourly_input.setRange(0, 1000)
        self.hourly_input.setDecimals(2)
        self.hourly_input.setButtonSymbols(QDoubleSpinBox.NoButtons)
        row.addWidget(self.hourly_input)
        self.save_sales_button = QPushButton("Save sales")
        self.save_sales_button.clicked.connect(self.save_sales)
        row.addWidget(self.save_sales_button)
        row.addSpacing(16)
        self.labor_label = QLabel()
        row.addWidget(self.labor_label)
        row.addStretch()
        return row

    # ------------------------------------------------------------------
    # Helpers

    def _set_feedback(self, message: str, color: str = INFO_COLOR) -> None:
        if not message:
            self.feedback_label.clear()
            return
        self.feedback_label.setText(f"<span style='color:{color};'>{message}</span>")

    def _call(self, operation: Callable[[ShiftApiClient], Awaitable[Any]]) -> Any:
        """Run one client coroutine; errors end up in the feedback label and return ``None``."""
        try:
            return run_with_client(operation, base_url=self.api_url, token=self.token)
        except ShiftApiError as exc:
            self._set_feedback(exc.detail, ERROR_COLOR)
            if exc.is_locked:
                self._apply_locked(True)
            return None

    def _apply_locked(self, locked: bool) -> None:
        self.locked = locked
        self.grid_widget.set_locked(locked or not self.can_edit)
        editable = self.can_edit and not locked
        for widget in (
            self.save_button,
            self.clear_button,
            self.save_sales_button,
            self.sales_input,
            self.hourly_input,
            self.copy_week_button,
            self.restore_week_button,
        ):
            widget.setEnabled(editable)
        self.save_week_button.setEnabled(self.can_edit)
        if locked:
            self.lock_label.setText(f"<span style='color:{ERROR_COLOR};'>Week locked</span>")
            self.lock_button.setText("Unlock week")
        else:
            self.lock_label.setText(f"<span style='color:{SUCCESS_COLOR};'>Week open</span>")
            self.lock_button.setText("Lock week")
        self.lock_button.setEnabled(self.can_edit)

    def _ordered_employees(self, employees: List[Dict]) -> List[Dict]:
        ordered: List[Dict] = []
        for entries in grouped_by_role(employees).values():
            ordered.extend(entries)
        return ordered

    # ------------------------------------------------------------------
    # Loading

    def set_date(self, value: datetime.date) -> None:
        self.date_edit.blockSignals(True)
        self.date_edit.setDate(QDate(value.year, value.month, value.day))
        self.date_edit.blockSignals(False)
        if value == self.current_date:
            return
        self.current_date = value
        self.grid_widget.clear_selection()
        self.refresh()

    def _on_date_edited(self, qdate: QDate) -> None:
        self.set_date(datetime.date(qdate.year(), qdate.month(), qdate.day()))

    def _on_hours_changed(self) -> None:
        grid = TimeGrid.build(self.start_hour_spin.value(), self.end_hour_spin.value())
        if grid == self.grid:
            return
        self.grid = grid
        self.grid_widget.set_grid(grid)
        self.grid_widget.set_shifts(self.shifts)
        self._refresh_labor()

    def refresh(self) -> None:
        company_id = self.company["id"]
        day = self.current_date
        week_start = self.week_start

        async def load(client: ShiftApiClient) -> Dict[str, Any]:
            employees, shifts, sales, weekly, locked = await asyncio.gather(
                client.list_employees(company_id, week_start),
                client.list_shifts(company_id, day),
                client.get_daily_sales(company_id, day),
                client.weekly_hours(company_id, week_start),
                client.is_week_locked(company_id, week_start),
            )
            return {"employees": employees, "shifts": shifts, "sales": sales, "weekly": weekly, "locked": locked}

        data = self._call(load)
        if data is None:
            return
        self.employees = self._ordered_employees(data["employees"])
        self.shifts = data["shifts"]
        self.weekly_rows = data["weekly"]
        self.grid_widget.set_employees(self.employees)
        self.grid_widget.set_shifts(self.shifts)
        self.week_label.setText(format_week_label(week_start))
        self._apply_locked(bool(data["locked"]))
        summary = self._refresh_labor()
        estimated, hourly = sales_form_values(data["sales"], summary)
        self.sales_input.setValue(estimated)
        self.hourly_input.setValue(hourly)
        self._refresh_hours()

    def _refresh_labor(self) -> Optional[Dict[str, Any]]:
        company_id = self.company["id"]
        summary = self._call(
            lambda client: client.labor_cost(company_id, self.current_date, self.grid.start_hour, self.grid.end_hour)
        )
        if summary is None:
            return None
        self.grid_widget.set_labor_bands(summary.get("slots") or [])
        pct = summary.get("laborCostPercentage")
        color = BAND_TEXT_COLORS.get(summary.get("band") or "none", INFO_COLOR)
        pct_text = "-" if pct is None else f"{pct:.1f}%"
        self.labor_label.setText(
            f"{format_hours(summary['totalHours'])} | cost {summary['totalCost']:.2f} | "
            f"<span style='color:{color};'>{pct_text} of sales</span>"
        )
        return summary

    def _refresh_hours(self) -> None:
        pending = selection_hours(self.grid_widget.selection, self.grid)
        self.hours_list.clear()
        for row in with_pending_hours(self.weekly_rows, pending):
            text = f"{row['name']}: {format_hours(row['totalHours'])} / {format_hours(row['maxHours'])}"
            if row["pendingHours"]:
                text += f" (+{format_hours(row['pendingHours'])} unsaved)"
            item = QListWidgetItem(text)
            if row["overBudget"]:
                item.setForeground(QColor(ERROR_COLOR))
            self.hours_list.addItem(item)

    def _on_selection_changed(self) -> None:
        state = self.grid_widget.selection
        if state.has_selection:
            hours = sum(selection_hours(state, self.grid).values())
            self.selection_label.setText(f"{state.count()} slot(s) selected, {format_hours(hours)}")
        else:
            self.selection_label.clear()
        self._refresh_hours()

    # ------------------------------------------------------------------
    # Actions

    def save_selection(self) -> None:
        pairs = consolidate_selection(self.grid_widget.selection, self.grid)
        if not pairs:
            self._set_feedback("Select one or more slots first.", WARNING_COLOR)
            return
        report = persist_selections_sync(
            lambda: ShiftApiClient(self.api_url, token=self.token),
            self.current_date,
            pairs,
        )
        if report.ok:
            self.grid_widget.clear_selection()
            self._set_feedback(report.message(), SUCCESS_COLOR)
        else:
            first_error = report.failures[0][1] if report.failures else ""
            self._set_feedback(f"{report.message()} {first_error}", ERROR_COLOR)
        self.refresh()

    def save_sales(self) -> None:
        company_id = self.company["id"]
        sales = self.sales_input.value()
        hourly = self.hourly_input.value()
        saved = self._call(lambda client: client.save_daily_sales(company_id, self.current_date, sales, hourly))
        if saved is None:
            return
        self._set_feedback("Sales saved.", SUCCESS_COLOR)
        self._refresh_labor()

    def toggle_lock(self) -> None:
        company_id = self.company["id"]
        week_start = self.week_start
        if self.locked:
            operation = lambda client: client.unlock_week(company_id, week_start)
        else:
            operation = lambda client: client.lock_week(company_id, week_start)
        self._call(operation)
        self.refresh()

    def _open_shift(self, shift: Dict) -> None:
        read_only = self.locked or not self.can_edit
        dialog = EditShiftDialog(
            employees=self.employees,
            grid=self.grid,
            shift=shift,
            existing_shifts=self.shifts,
            read_only=read_only,
            on_save=self._update_shift,
            on_delete=None if read_only else self._delete_shift,
            parent=self,
        )
        dialog.exec()

    def _update_shift(self, shift_id: int, changes: Dict) -> None:
        if self._call(lambda client: client.update_shift(shift_id, changes)) is not None:
            self._set_feedback("Shift updated.", SUCCESS_COLOR)
        self.refresh()

    def _delete_shift(self, shift_id: int) -> None:
        self._call(lambda client: client.delete_shift(shift_id))
        self.refresh()

    def _move_shift(self, shift: Dict, employee_id: int, new_start: str) -> None:
        try:
            moved = self._call(lambda client: move_shift(client, shift, employee_id, new_start, self.grid))
        except ValueError as exc:
            self._set_feedback(str(exc), WARNING_COLOR)
            return
        if moved is not None:
            self._set_feedback(f"Moved shift to {moved['startTime']} - {moved['endTime']}.", SUCCESS_COLOR)
        self.refresh()

    def export(self, name: str) -> None:
        company_id = self.company["id"]
        if name == "day.pdf":
            params = {"date": self.current_date.isoformat()}
            suggested = f"schedule_{self.current_date.isoformat()}.pdf"
        else:
            params = {"weekStartDate": self.week_start.isoformat()}
            suggested = f"schedule_week_{self.week_start.isoformat()}.{name.split('.')[-1]}"
        content = self._call(lambda client: client.download_export(company_id, name, params))
        if content is None:
            return
        path, _ = QFileDialog.getSaveFileName(self, "Save export", suggested)
        if not path:
            return
        Path(path).write_bytes(content)
        self._set_feedback(f"Exported to {path}", SUCCESS_COLOR)

    def copy_previous_week(self) -> None:
        week_start = self.week_start
        confirm = QMessageBox.question(
            self,
            "Copy previous week",
            f"Replace every shift in {format_week_label(week_start)} with last week's shifts?",
        )
        if confirm != QMessageBox.Yes:
            return
        company_id = self.company["id"]
        result = self._call(lambda client: client.copy_week(company_id, week_start))
        if result is not None:
            message = f"Copied {result['shifts']} shift(s) from the week of {result['sourceWeekStartDate']}."
            if result["skipped"]:
                message += f" {result['skipped']} skipped."
            self._set_feedback(message, SUCCESS_COLOR)
        self.refresh()

    def save_week_as_schedule(self) -> None:
        default_name = format_week_label(self.week_start)
        name, ok = QInputDialog.getText(self, "Save week", "Schedule name", QLineEdit.Normal, default_name)
        name = name.strip()
        if not ok or not name:
            return
        company_id = self.company["id"]
        week_start = self.week_start

        async def save(client: ShiftApiClient) -> Dict[str, Any]:
            schedule = await client.create_schedule(company_id, name)
            return await client.save_schedule(schedule["id"], week_start)

        saved = self._call(save)
        if saved is not None:
            self._set_feedback(f"Saved '{name}' with {saved['shifts']} shift(s).", SUCCESS_COLOR)

    def restore_saved_schedule(self) -> None:
        company_id = self.company["id"]
        schedules = self._call(lambda client: client.list_schedules(company_id))
        if schedules is None:
            return
        saved = [row for row in schedules if row.get("hasData")]
        if not saved:
            self._set_feedback("No saved schedules yet.", WARNING_COLOR)
            return
        labels = [f"{row['name']} ({row['startDate']})" for row in saved]
        choice, ok = QInputDialog.getItem(self, "Restore schedule", "Schedule", labels, 0, False)
        if not ok:
            return
        schedule = saved[labels.index(choice)]
        week_start = self.week_start
        result = self._call(lambda client: client.restore_schedule(schedule["id"], week_start))
        if result is not None:
            self._set_feedback(
                f"Restored '{schedule['name']}': {result['shifts']} shift(s), {result['employees']} employee(s) added.",
                SUCCESS_COLOR,
            )
        self.refresh()
