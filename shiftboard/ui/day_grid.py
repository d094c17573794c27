"""Painted employee x time-slot grid for one day.

The widget keeps no selection logic of its own: every gesture goes through
the reducers in :mod:`shiftboard.selection` and the hit table built from the
current layout.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from PySide6.QtCore import QRectF, QSize, Qt, Signal
from PySide6.QtGui import QColor, QFont, QPainter, QPen
from PySide6.QtWidgets import QSizePolicy, QWidget

from ..roles import palette_for_role
from ..selection import (
    Cell,
    CellState,
    GestureTracker,
    HitTestTable,
    SelectionState,
    assigned_cells,
    begin_drag,
    clear,
    end_drag,
    extend_drag,
)
from ..timegrid import TimeGrid, is_time_between

NAME_WIDTH = 160
HEADER_HEIGHT = 28
FOOTER_HEIGHT = 18
CELL_WIDTH = 22
ROW_HEIGHT = 34

BACKGROUND = QColor("#111217")
GRID_LINE = QColor("#1c1d23")
HOUR_LINE = QColor("#3a3c48")
TEXT_COLOR = QColor("#f5f6fa")
MUTED_TEXT = QColor("#a8aec6")
SELECTED_COLOR = QColor("#f5b942")
LOCKED_OVERLAY = QColor(9, 10, 14, 120)
BAND_COLORS = {
    "low": QColor("#2f6b4f"),
    "medium": QColor("#8a6a1f"),
    "high": QColor("#8c3434"),
    "none": QColor("#1c1d23"),
}


class DayGridWidget(QWidget):
    selectionChanged = Signal()
    shiftActivated = Signal(dict)
    shiftMoved = Signal(dict, int, str)

    def __init__(self, grid: Optional[TimeGrid] = None, parent=None) -> None:
        super().__init__(parent)
        self.grid = grid or TimeGrid.build()
        self.employees: List[Dict] = []
        self.shifts: List[Dict] = []
        self.assigned = frozenset()
        self.shift_at: Dict[Cell, Dict] = {}
        self.selection = SelectionState()
        self.locked = False
        self.bands: Dict[str, str] = {}
        self.tracker = GestureTracker()
        self._moving: Optional[Dict] = None
        self._move_anchor: Optional[Cell] = None
        self._move_target: Optional[Cell] = None
        self._hit = HitTestTable.build([], self.grid)
        self.setFocusPolicy(Qt.StrongFocus)
        self.setSizePolicy(QSizePolicy.Fixed, QSizePolicy.Fixed)
        self._relayout()

    # ------------------------------------------------------------------
    # Data

    def set_grid(self, grid: TimeGrid) -> None:
        self.grid = grid
        self.selection = SelectionState()
        self._rebuild_assignments()
        self._relayout()
        self.selectionChanged.emit()

    def set_employees(self, employees: List[Dict]) -> None:
        self.employees = list(employees)
        known = {employee["id"] for employee in self.employees}
        kept = {emp: labels for emp, labels in self.selection.cells.items() if emp in known}
        self.selection = SelectionState(cells=kept)
        self._relayout()
        self.selectionChanged.emit()

    def set_shifts(self, shifts: List[Dict]) -> None:
        self.shifts = list(shifts)
        self._rebuild_assignments()
        # cells that were just saved are no longer free
        kept = {}
        for employee_id, labels in self.selection.cells.items():
            free = frozenset(label for label in labels if (employee_id, label) not in self.assigned)
            if free:
                kept[employee_id] = free
        self.selection = SelectionState(cells=kept)
        self.update()
        self.selectionChanged.emit()

    def set_locked(self, locked: bool) -> None:
        self.locked = locked
        if locked:
            self.tracker.cancel()
            self._moving = None
            self._move_target = None
        self.update()

    def set_labor_bands(self, slots: List[Mapping]) -> None:
        self.bands = {slot["time"]: slot.get("band") or "none" for slot in slots}
        self.update()

    def clear_selection(self) -> None:
        self.tracker.cancel()
        self.selection = clear(self.selection)
        self.update()
        self.selectionChanged.emit()

    def _rebuild_assignments(self) -> None:
        self.assigned = assigned_cells(self.shifts, self.grid)
        self.shift_at = {}
        for shift in self.shifts:
            for label in self.grid:
                if is_time_between(label, shift["startTime"], shift["endTime"]):
                    self.shift_at[(shift["employeeId"], label)] = shift

    def _relayout(self) -> None:
        self._hit = HitTestTable.build(
            [employee["id"] for employee in self.employees],
            self.grid,
            origin_x=NAME_WIDTH,
            origin_y=HEADER_HEIGHT,
            cell_width=CELL_WIDTH,
            cell_height=ROW_HEIGHT,
        )
        self.setFixedSize(self.sizeHint())
        self.update()

    def sizeHint(self) -> QSize:
        width = NAME_WIDTH + len(self.grid) * CELL_WIDTH + 1
        height = HEADER_HEIGHT + max(len(self.employees), 1) * ROW_HEIGHT + FOOTER_HEIGHT + 1
        return QSize(width, height)

    # ------------------------------------------------------------------
    # Painting

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.fillRect(self.rect(), BACKGROUND)
        self._paint_header(painter)
        for row, employee in enumerate(self.employees):
            self._paint_row(painter, row, employee)
        self._paint_footer(painter)
        if self.locked:
            painter.fillRect(
                QRectF(NAME_WIDTH, HEADER_HEIGHT, len(self.grid) * CELL_WIDTH, len(self.employees) * ROW_HEIGHT),
                LOCKED_OVERLAY,
            )
        painter.end()

    def _paint_header(self, painter: QPainter) -> None:
        font = QFont(painter.font())
        font.setPointSize(8)
        painter.setFont(font)
        painter.setPen(MUTED_TEXT)
        for column, label in enumerate(self.grid):
            if not label.endswith(":00"):
                continue
            x = NAME_WIDTH + column * CELL_WIDTH
            painter.drawText(QRectF(x + 2, 0, CELL_WIDTH * 4, HEADER_HEIGHT), Qt.AlignVCenter | Qt.AlignLeft, label)

    def _paint_row(self, painter: QPainter, row: int, employee: Dict) -> None:
        employee_id = employee["id"]
        top = HEADER_HEIGHT + row * ROW_HEIGHT
        role_color = QColor(palette_for_role(employee.get("role")))
        painter.fillRect(QRectF(0, top + 4, 4, ROW_HEIGHT - 8), role_color)
        painter.setPen(TEXT_COLOR)
        painter.drawText(
            QRectF(10, top, NAME_WIDTH - 14, ROW_HEIGHT),
            Qt.AlignVCenter | Qt.AlignLeft,
            employee.get("name") or f"#{employee_id}",
        )

        move_labels = set()
        if self._moving is not None and self._move_target is not None and self._move_target[0] == employee_id:
            move_labels = set(self._preview_labels())

        for column, label in enumerate(self.grid):
            rect = QRectF(NAME_WIDTH + column * CELL_WIDTH, top, CELL_WIDTH, ROW_HEIGHT)
            state = CellState.for_cell(self.selection, self.assigned, employee_id, label)
            if state.is_assigned:
                shift = self.shift_at.get((employee_id, label)) or {}
                color = QColor(role_color)
                if shift.get("status") == "cancelled":
                    color.setAlpha(70)
                elif self._moving is not None and shift.get("id") == self._moving.get("id"):
                    color.setAlpha(110)
                painter.fillRect(rect.adjusted(0, 3, 0, -3), color)
            elif state.is_selected:
                painter.fillRect(rect.adjusted(1, 3, -1, -3), SELECTED_COLOR)
            if label in move_labels:
                painter.setPen(QPen(SELECTED_COLOR, 2, Qt.DashLine))
                painter.drawRect(rect.adjusted(1, 3, -1, -3))
            painter.setPen(HOUR_LINE if label.endswith(":00") else GRID_LINE)
            painter.drawLine(rect.topLeft(), rect.bottomLeft())

        painter.setPen(GRID_LINE)
        painter.drawLine(0, top + ROW_HEIGHT, NAME_WIDTH + len(self.grid) * CELL_WIDTH, top + ROW_HEIGHT)

        for shift in self.shifts:
            if shift["employeeId"] != employee_id or not shift.get("notes"):
                continue
            column = self.grid.index_of(shift["startTime"])
            if column is None:
                continue
            painter.setPen(TEXT_COLOR)
            painter.drawText(
                QRectF(NAME_WIDTH + column * CELL_WIDTH + 3, top, CELL_WIDTH * 6, ROW_HEIGHT),
                Qt.AlignVCenter | Qt.AlignLeft | Qt.TextSingleLine,
                shift["notes"],
            )

    def _paint_footer(self, painter: QPainter) -> None:
        top = HEADER_HEIGHT + max(len(self.employees), 1) * ROW_HEIGHT
        for column, label in enumerate(self.grid):
            band = self.bands.get(label, "none")
            painter.fillRect(
                QRectF(NAME_WIDTH + column * CELL_WIDTH, top + 4, CELL_WIDTH, FOOTER_HEIGHT - 6),
                BAND_COLORS.get(band, BAND_COLORS["none"]),
            )
        painter.setPen(MUTED_TEXT)
        painter.drawText(QRectF(10, top, NAME_WIDTH - 14, FOOTER_HEIGHT), Qt.AlignVCenter | Qt.AlignLeft, "Labor cost")

    # ------------------------------------------------------------------
    # Gestures

    def _preview_start(self) -> Optional[str]:
        """Start label the moved shift would get at the current pointer."""
        if self._moving is None or self._move_target is None or self._move_anchor is None:
            return None
        original = self.grid.index_of(self._moving["startTime"])
        anchor = self.grid.index_of(self._move_anchor[1])
        target = self.grid.index_of(self._move_target[1])
        if original is None or anchor is None or target is None:
            return None
        index = min(max(original + target - anchor, 0), len(self.grid) - 2)
        return self.grid.slots[index]

    def _preview_labels(self) -> List[str]:
        start = self._preview_start()
        if start is None:
            return []
        length = len(self.grid.labels_for_shift(self._moving["startTime"], self._moving["endTime"]))
        index = self.grid.index_of(start)
        return list(self.grid.slots[index : index + max(length, 1)])

    def _event_cell(self, event) -> Optional[Cell]:
        point = event.position()
        return self._hit.cell_at(point.x(), point.y())

    def _pinned_cell(self, event) -> Optional[Cell]:
        """During a selection drag the pointer is pinned to the anchor row."""
        drag = self.selection.drag
        if drag is None:
            return self._event_cell(event)
        label = self._hit.label_at(event.position().x())
        if label is None:
            return None
        return drag.employee_id, label

    def mousePressEvent(self, event) -> None:
        if event.button() != Qt.LeftButton:
            super().mousePressEvent(event)
            return
        cell = self._event_cell(event)
        if cell is None:
            return
        shift = self.shift_at.get(cell)
        if self.locked:
            if shift is not None:
                self.shiftActivated.emit(shift)
            return
        self.tracker.press(cell)
        if shift is not None:
            self._moving = shift
            self._move_anchor = cell
            self._move_target = None
        else:
            self.selection = begin_drag(self.selection, cell[0], cell[1], self.grid, self.assigned)
        self.update()

    def mouseMoveEvent(self, event) -> None:
        if not self.tracker.active:
            return
        cell = self._pinned_cell(event)
        applied = self.tracker.move(cell)
        if applied is None:
            return
        if self._moving is not None:
            self._move_target = applied
        else:
            self.selection = extend_drag(self.selection, applied[1], self.grid, self.assigned)
            self.selectionChanged.emit()
        self.update()

    def mouseReleaseEvent(self, event) -> None:
        if event.button() != Qt.LeftButton or not self.tracker.active:
            return
        result = self.tracker.release(self._pinned_cell(event))
        if self._moving is not None:
            shift = self._moving
            if result.final is not None:
                self._move_target = result.final
            new_start = self._preview_start() if result.is_drag else None
            target = self._move_target
            self._moving = None
            self._move_target = None
            self._move_anchor = None
            self.update()
            if new_start is None or target is None:
                self.shiftActivated.emit(shift)
            elif target[0] != shift["employeeId"] or new_start != shift["startTime"]:
                self.shiftMoved.emit(shift, target[0], new_start)
            return
        final_label = result.final[1] if result.final is not None else None
        self.selection = end_drag(self.selection, self.grid, self.assigned, final_label)
        self.update()
        self.selectionChanged.emit()

    def keyPressEvent(self, event) -> None:
        if event.key() == Qt.Key_Escape:
            self._moving = None
            self._move_target = None
            self.clear_selection()
            return
        super().keyPressEvent(event)
