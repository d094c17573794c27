"""Cell selection for the day grid.

Everything here is pure: reducers take a :class:`SelectionState` and return a
new one. The widget owns the current state and swaps it after each event.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Container, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from .timegrid import TimeGrid, is_time_between

Cell = Tuple[int, str]
NO_ASSIGNMENTS: FrozenSet[Cell] = frozenset()


@dataclass(frozen=True)
class DragState:
    employee_id: int
    anchor: str
    current: str
    base: FrozenSet[str]


@dataclass(frozen=True)
class SelectionState:
    cells: Mapping[int, FrozenSet[str]] = field(default_factory=dict)
    drag: Optional[DragState] = None

    def selected(self, employee_id: int) -> FrozenSet[str]:
        return self.cells.get(employee_id, frozenset())

    def is_selected(self, employee_id: int, label: str) -> bool:
        return label in self.selected(employee_id)

    @property
    def has_selection(self) -> bool:
        return any(self.cells.values())

    @property
    def dragging(self) -> bool:
        return self.drag is not None

    def employee_ids(self) -> List[int]:
        return [employee_id for employee_id, labels in self.cells.items() if labels]

    def count(self) -> int:
        return sum(len(labels) for labels in self.cells.values())


def _with_cells(state: SelectionState, employee_id: int, labels: Iterable[str]) -> SelectionState:
    cells = dict(state.cells)
    labels = frozenset(labels)
    if labels:
        cells[employee_id] = labels
    else:
        cells.pop(employee_id, None)
    return replace(state, cells=cells)


def toggle(
    state: SelectionState,
    employee_id: int,
    label: str,
    grid: TimeGrid,
    assigned: Container[Cell] = NO_ASSIGNMENTS,
) -> SelectionState:
    if label not in grid or (employee_id, label) in assigned:
        return state
    current = state.selected(employee_id)
    if label in current:
        return _with_cells(state, employee_id, current - {label})
    return _with_cells(state, employee_id, current | {label})


def set_range(
    state: SelectionState,
    employee_id: int,
    from_label: str,
    to_label: str,
    grid: TimeGrid,
    assigned: Container[Cell] = NO_ASSIGNMENTS,
    base: FrozenSet[str] = frozenset(),
) -> SelectionState:
    """Replace the employee's selection with ``base`` plus the anchored range."""
    covered = grid.labels_between(from_label, to_label)
    if not covered:
        return state
    free = {label for label in covered if (employee_id, label) not in assigned}
    return _with_cells(state, employee_id, set(base) | free)


def clear(state: SelectionState, employee_id: Optional[int] = None) -> SelectionState:
    if employee_id is None:
        return SelectionState()
    cleared = _with_cells(state, employee_id, ())
    if state.drag is not None and state.drag.employee_id == employee_id:
        cleared = replace(cleared, drag=None)
    return cleared


def begin_drag(
    state: SelectionState,
    employee_id: int,
    label: str,
    grid: TimeGrid,
    assigned: Container[Cell] = NO_ASSIGNMENTS,
) -> SelectionState:
    if label not in grid or (employee_id, label) in assigned:
        return state
    drag = DragState(employee_id=employee_id, anchor=label, current=label, base=state.selected(employee_id))
    return replace(state, drag=drag)


def extend_drag(
    state: SelectionState,
    label: str,
    grid: TimeGrid,
    assigned: Container[Cell] = NO_ASSIGNMENTS,
) -> SelectionState:
    drag = state.drag
    if drag is None or label not in grid or label == drag.current:
        return state
    moved = replace(state, drag=replace(drag, current=label))
    if label == drag.anchor:
        # back on the anchor: nothing is covered beyond the pre-drag selection
        return _with_cells(moved, drag.employee_id, drag.base)
    return set_range(moved, drag.employee_id, drag.anchor, label, grid, assigned, base=drag.base)


def end_drag(
    state: SelectionState,
    grid: TimeGrid,
    assigned: Container[Cell] = NO_ASSIGNMENTS,
    final_label: Optional[str] = None,
) -> SelectionState:
    """Finish the gesture. One covered cell toggles, a longer range is added."""
    drag = state.drag
    if drag is None:
        return state
    current = final_label if final_label in grid else drag.current
    covered = grid.labels_between(drag.anchor, current)
    restored = replace(_with_cells(state, drag.employee_id, drag.base), drag=None)
    if len(covered) <= 1:
        return toggle(restored, drag.employee_id, drag.anchor, grid, assigned)
    return set_range(restored, drag.employee_id, drag.anchor, current, grid, assigned, base=drag.base)


def assigned_cells(shifts: Iterable[Mapping], grid: TimeGrid) -> FrozenSet[Cell]:
    """Cells already covered by persisted shifts, keyed by employee id."""
    cells = set()
    for shift in shifts:
        employee_id = shift.get("employeeId")
        for label in grid:
            if is_time_between(label, shift["startTime"], shift["endTime"]):
                cells.add((employee_id, label))
    return frozenset(cells)


# ---------------------------------------------------------------------------
# Cell display state


class SelectionMark(str, Enum):
    UNSELECTED = "unselected"
    SELECTED = "selected"


class ShiftMark(str, Enum):
    NO_SHIFT = "no_shift"
    HAS_SHIFT = "has_shift"


@dataclass(frozen=True)
class CellState:
    selected: SelectionMark = SelectionMark.UNSELECTED
    has_shift: ShiftMark = ShiftMark.NO_SHIFT

    @classmethod
    def for_cell(cls, state: SelectionState, assigned: Container[Cell], employee_id: int, label: str) -> "CellState":
        if (employee_id, label) in assigned:
            return cls(SelectionMark.UNSELECTED, ShiftMark.HAS_SHIFT)
        if state.is_selected(employee_id, label):
            return cls(SelectionMark.SELECTED, ShiftMark.NO_SHIFT)
        return cls()

    @property
    def is_selected(self) -> bool:
        return self.selected is SelectionMark.SELECTED

    @property
    def is_assigned(self) -> bool:
        return self.has_shift is ShiftMark.HAS_SHIFT


# ---------------------------------------------------------------------------
# Hit testing


@dataclass(frozen=True)
class HitTestTable:
    """Maps widget coordinates to ``(employee_id, label)`` for a uniform grid."""

    employee_ids: Tuple[int, ...]
    slots: Tuple[str, ...]
    origin_x: float
    origin_y: float
    cell_width: float
    cell_height: float

    @classmethod
    def build(
        cls,
        employee_ids: Sequence[int],
        grid: TimeGrid,
        *,
        origin_x: float = 0.0,
        origin_y: float = 0.0,
        cell_width: float = 24.0,
        cell_height: float = 32.0,
    ) -> "HitTestTable":
        return cls(tuple(employee_ids), tuple(grid.slots), origin_x, origin_y, cell_width, cell_height)

    def cell_at(self, x: float, y: float) -> Optional[Cell]:
        if self.cell_width <= 0 or self.cell_height <= 0:
            return None
        column = int((x - self.origin_x) // self.cell_width)
        row = int((y - self.origin_y) // self.cell_height)
        if x < self.origin_x or y < self.origin_y:
            return None
        if row >= len(self.employee_ids) or column >= len(self.slots):
            return None
        return self.employee_ids[row], self.slots[column]

    def label_at(self, x: float) -> Optional[str]:
        """Column lookup only, used while a drag is pinned to its row."""
        if x < self.origin_x or self.cell_width <= 0:
            return None
        column = int((x - self.origin_x) // self.cell_width)
        if column >= len(self.slots):
            return self.slots[-1] if self.slots else None
        return self.slots[column]

    def rect_for(self, employee_id: int, label: str) -> Optional[Tuple[float, float, float, float]]:
        try:
            row = self.employee_ids.index(employee_id)
            column = self.slots.index(label)
        except ValueError:
            return None
        return (
            self.origin_x + column * self.cell_width,
            self.origin_y + row * self.cell_height,
            self.cell_width,
            self.cell_height,
        )

    def row_rect(self, employee_id: int) -> Optional[Tuple[float, float, float, float]]:
        if employee_id not in self.employee_ids:
            return None
        row = self.employee_ids.index(employee_id)
        return (
            self.origin_x,
            self.origin_y + row * self.cell_height,
            self.cell_width * len(self.slots),
            self.cell_height,
        )


# ---------------------------------------------------------------------------
# Gesture timing


@dataclass(frozen=True)
class GestureResult:
    is_drag: bool
    anchor: Optional[Cell]
    final: Optional[Cell]


class GestureTracker:
    """Tells a tap from a drag and rate-limits move updates.

    A press starts tracking. Moves are only reported once the pointer has left
    its start cell and ``drag_delay_ms`` has elapsed, and then at most once per
    ``throttle_ms``. ``release`` always reports the last known cell so the
    caller can apply the final position even if the last move was throttled.
    """

    def __init__(
        self,
        *,
        drag_delay_ms: float = 120.0,
        throttle_ms: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.drag_delay_ms = drag_delay_ms
        self.throttle_ms = throttle_ms
        self._clock = clock
        self._reset()

    def _reset(self) -> None:
        self._anchor: Optional[Cell] = None
        self._last: Optional[Cell] = None
        self._pressed_at = 0.0
        self._last_emit = 0.0
        self._dragging = False

    def _now_ms(self, now: Optional[float]) -> float:
        return (self._clock() if now is None else now) * 1000.0

    @property
    def active(self) -> bool:
        return self._anchor is not None

    @property
    def dragging(self) -> bool:
        return self._dragging

    def press(self, cell: Cell, now: Optional[float] = None) -> None:
        self._reset()
        self._anchor = cell
        self._last = cell
        self._pressed_at = self._now_ms(now)

    def move(self, cell: Optional[Cell], now: Optional[float] = None) -> Optional[Cell]:
        """Return the cell to apply now, or ``None`` while debounced/throttled."""
        if self._anchor is None or cell is None:
            return None
        self._last = cell
        stamp = self._now_ms(now)
        if not self._dragging:
            if cell == self._anchor or stamp - self._pressed_at < self.drag_delay_ms:
                return None
            self._dragging = True
            self._last_emit = stamp
            return cell
        if stamp - self._last_emit < self.throttle_ms:
            return None
        self._last_emit = stamp
        return cell

    def release(self, cell: Optional[Cell] = None, now: Optional[float] = None) -> GestureResult:
        if self._anchor is None:
            return GestureResult(False, None, None)
        if cell is not None:
            self._last = cell
        anchor, final = self._anchor, self._last
        is_drag = self._dragging or final != anchor
        self._reset()
        return GestureResult(is_drag, anchor, final)

    def cancel(self) -> None:
        self._reset()


def selection_summary(state: SelectionState) -> Dict[int, int]:
    return {employee_id: len(labels) for employee_id, labels in state.cells.items() if labels}
