from __future__ import annotations

from typing import Callable, Dict, List, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
)

from ..roles import palette_for_role
from ..timegrid import TimeGrid, calculate_hours_between, format_hours, ranges_overlap

STATUS_CHOICES = ["scheduled", "completed", "cancelled"]


class EditShiftDialog(QDialog):
    """Edit or delete one persisted shift. Changes go through ``on_save``."""

    def __init__(
        self,
        *,
        employees: List[Dict],
        grid: TimeGrid,
        shift: Dict,
        existing_shifts: Optional[List[Dict]] = None,
        read_only: bool = False,
        on_save: Optional[Callable[[int, Dict], None]] = None,
        on_delete: Optional[Callable[[int], None]] = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self.setModal(True)
        self.employees = employees
        self.grid = grid
        self.shift = shift
        self.existing_shifts = existing_shifts or []
        self.read_only = read_only
        self.on_save = on_save
        self.on_delete = on_delete
        self.setWindowTitle("View shift" if read_only else "Edit shift")
        self._build_ui()
        self._load_shift(shift)

    def _time_choices(self) -> List[str]:
        choices = list(self.grid.slots)
        tail = self.grid.next_label(self.grid.last_label)
        if tail not in choices:
            choices.append(tail)
        for label in (self.shift.get("startTime"), self.shift.get("endTime")):
            if label and label not in choices:
                choices.append(label)
        return choices

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        self.feedback_label = QLabel()
        self.feedback_label.setStyleSheet("color:#ff7a7a;")

        form = QFormLayout()

        self.employee_combo = QComboBox()
        self.employee_combo.setEditable(True)
        self.employee_combo.setInsertPolicy(QComboBox.NoInsert)
        for employee in self.employees:
            index = self.employee_combo.count()
            self.employee_combo.addItem(employee["name"], employee["id"])
            self.employee_combo.setItemData(index, QColor(palette_for_role(employee.get("role"))), Qt.DecorationRole)
        if self.employee_combo.completer():
            self.employee_combo.completer().setCaseSensitivity(Qt.CaseInsensitive)
        form.addRow("Employee", self.employee_combo)

        self.date_label = QLabel(self.shift.get("date") or "")
        form.addRow("Date", self.date_label)

        time_row = QHBoxLayout()
        choices = self._time_choices()
        self.start_combo = QComboBox()
        self.start_combo.addItems(choices)
        self.start_combo.currentIndexChanged.connect(self._update_duration)
        time_row.addWidget(self.start_combo)
        self.end_combo = QComboBox()
        self.end_combo.addItems(choices)
        self.end_combo.currentIndexChanged.connect(self._update_duration)
        time_row.addWidget(self.end_combo)
        self.duration_label = QLabel()
        time_row.addWidget(self.duration_label)
        form.addRow("Time", time_row)

        self.status_combo = QComboBox()
        self.status_combo.addItems(STATUS_CHOICES)
        form.addRow("Status", self.status_combo)

        self.notes_input = QPlainTextEdit()
        self.notes_input.setPlaceholderText("Optional notes visible in the grid.")
        form.addRow("Notes", self.notes_input)

        layout.addLayout(form)
        layout.addWidget(self.feedback_label)

        buttons = QDialogButtonBox.Close if self.read_only else QDialogButtonBox.Save | QDialogButtonBox.Cancel
        button_box = QDialogButtonBox(buttons)
        button_box.accepted.connect(self._handle_save)
        button_box.rejected.connect(self.reject)

        self.delete_button = QPushButton("Delete")
        self.delete_button.setVisible(not self.read_only and self.on_delete is not None)
        self.delete_button.clicked.connect(self._handle_delete)

        action_row = QHBoxLayout()
        action_row.addWidget(button_box)
        action_row.addWidget(self.delete_button)
        action_row.addStretch()
        layout.addLayout(action_row)

        for widget in (self.employee_combo, self.start_combo, self.end_combo, self.status_combo, self.notes_input):
            widget.setEnabled(not self.read_only)

    def _load_shift(self, shift: Dict) -> None:
        index = self.employee_combo.findData(shift.get("employeeId"), Qt.UserRole)
        if index >= 0:
            self.employee_combo.setCurrentIndex(index)
        self.start_combo.setCurrentText(shift.get("startTime") or self.grid.first_label)
        self.end_combo.setCurrentText(shift.get("endTime") or self.grid.last_label)
        self.status_combo.setCurrentText(shift.get("status") or "scheduled")
        self.notes_input.setPlainText(shift.get("notes") or "")
        self._update_duration()

    def _update_duration(self) -> None:
        start = self.start_combo.currentText()
        end = self.end_combo.currentText()
        if not start or not end:
            self.duration_label.clear()
            return
        self.duration_label.setText(format_hours(calculate_hours_between(start, end)))

    def _handle_save(self) -> None:
        start = self.start_combo.currentText()
        end = self.end_combo.currentText()
        if start == end:
            self.feedback_label.setText("End time must differ from start time.")
            return
        employee_id = self.employee_combo.currentData()
        if employee_id is None:
            self.feedback_label.setText("Select an employee for this shift.")
            return

        overlap_warning = self._overlap_message(employee_id, start, end)
        if overlap_warning:
            proceed = QMessageBox.question(
                self,
                "Potential overlap",
                overlap_warning + "\n\nContinue anyway?",
                QMessageBox.Yes | QMessageBox.No,
                QMessageBox.No,
            )
            if proceed != QMessageBox.Yes:
                return

        changes = {
            "employeeId": employee_id,
            "startTime": start,
            "endTime": end,
            "status": self.status_combo.currentText(),
            "notes": self.notes_input.toPlainText().strip(),
        }
        if self.on_save:
            self.on_save(self.shift["id"], changes)
        self.accept()

    def _handle_delete(self) -> None:
        if not self.on_delete:
            return
        confirm = QMessageBox.question(
            self,
            "Delete shift",
            "Remove this shift? This cannot be undone.",
        )
        if confirm != QMessageBox.Yes:
            return
        self.on_delete(self.shift["id"])
        self.accept()

    def _overlap_message(self, employee_id: int, start: str, end: str) -> Optional[str]:
        for existing in self.existing_shifts:
            if existing.get("id") == self.shift.get("id"):
                continue
            if existing.get("employeeId") != employee_id or existing.get("date") != self.shift.get("date"):
                continue
            if ranges_overlap((start, end), (existing["startTime"], existing["endTime"])):
                name = next((emp["name"] for emp in self.employees if emp["id"] == employee_id), "Employee")
                return f"{name} already has a shift from {existing['startTime']} to {existing['endTime']}."
        return None
