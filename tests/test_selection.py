from __future__ import annotations

import unittest

from shiftboard.selection import (
    CellState,
    GestureResult,
    GestureTracker,
    HitTestTable,
    SelectionState,
    assigned_cells,
    begin_drag,
    clear,
    end_drag,
    extend_drag,
    selection_summary,
    set_range,
    toggle,
)
from shiftboard.timegrid import TimeGrid

GRID = TimeGrid.build(8, 14)


class ToggleTests(unittest.TestCase):
    def test_toggle_adds_and_removes(self) -> None:
        state = toggle(SelectionState(), 1, "09:00", GRID)
        self.assertEqual(state.selected(1), {"09:00"})
        state = toggle(state, 1, "09:00", GRID)
        self.assertFalse(state.has_selection)
        self.assertEqual(state.employee_ids(), [])

    def test_toggle_on_persisted_shift_is_noop(self) -> None:
        assigned = assigned_cells([{"employeeId": 1, "startTime": "09:00", "endTime": "10:00"}], GRID)
        state = SelectionState()
        self.assertIs(toggle(state, 1, "09:30", GRID, assigned), state)
        # other employees are unaffected
        self.assertTrue(toggle(state, 2, "09:30", GRID, assigned).is_selected(2, "09:30"))

    def test_toggle_off_grid_is_noop(self) -> None:
        state = SelectionState()
        self.assertIs(toggle(state, 1, "07:00", GRID), state)

    def test_clear_one_employee(self) -> None:
        state = toggle(toggle(SelectionState(), 1, "09:00", GRID), 2, "10:00", GRID)
        state = clear(state, 1)
        self.assertEqual(state.employee_ids(), [2])
        self.assertFalse(clear(state).has_selection)


class RangeTests(unittest.TestCase):
    def test_range_reversal_keeps_only_anchor_side(self) -> None:
        state = set_range(SelectionState(), 1, "10:00", "11:00", GRID)
        state = set_range(state, 1, "10:00", "09:00", GRID)
        self.assertEqual(state.selected(1), {"09:00", "09:15", "09:30", "09:45", "10:00"})

    def test_drag_back_and_forth_matches_range(self) -> None:
        state = begin_drag(SelectionState(), 1, "10:00", GRID)
        state = extend_drag(state, "11:00", GRID)
        state = extend_drag(state, "09:00", GRID)
        self.assertEqual(state.selected(1), {"09:00", "09:15", "09:30", "09:45", "10:00"})
        state = end_drag(state, GRID)
        self.assertFalse(state.dragging)
        self.assertEqual(state.count(), 5)

    def test_drag_keeps_earlier_selection(self) -> None:
        state = toggle(SelectionState(), 1, "13:00", GRID)
        state = begin_drag(state, 1, "09:00", GRID)
        state = extend_drag(state, "09:30", GRID)
        state = end_drag(state, GRID)
        self.assertEqual(state.selected(1), {"09:00", "09:15", "09:30", "13:00"})

    def test_return_to_anchor_restores_pre_drag_selection(self) -> None:
        state = toggle(SelectionState(), 1, "13:00", GRID)
        state = begin_drag(state, 1, "09:00", GRID)
        state = extend_drag(state, "10:00", GRID)
        state = extend_drag(state, "09:00", GRID)
        self.assertEqual(state.selected(1), {"13:00"})

    def test_range_skips_assigned_cells(self) -> None:
        assigned = frozenset({(1, "09:15")})
        state = set_range(SelectionState(), 1, "09:00", "09:30", GRID, assigned)
        self.assertEqual(state.selected(1), {"09:00", "09:30"})

    def test_tap_toggles_anchor(self) -> None:
        state = end_drag(begin_drag(SelectionState(), 1, "10:00", GRID), GRID, final_label="10:00")
        self.assertEqual(state.selected(1), {"10:00"})
        state = end_drag(begin_drag(state, 1, "10:00", GRID), GRID, final_label="10:00")
        self.assertFalse(state.has_selection)

    def test_drag_cannot_start_on_assigned_cell(self) -> None:
        assigned = frozenset({(1, "10:00")})
        state = begin_drag(SelectionState(), 1, "10:00", GRID, assigned)
        self.assertFalse(state.dragging)

    def test_end_drag_applies_final_label(self) -> None:
        state = begin_drag(SelectionState(), 2, "11:00", GRID)
        state = end_drag(state, GRID, final_label="11:45")
        self.assertEqual(state.selected(2), {"11:00", "11:15", "11:30", "11:45"})
        self.assertEqual(selection_summary(state), {2: 4})


class CellStateTests(unittest.TestCase):
    def test_assigned_wins_over_selection(self) -> None:
        assigned = frozenset({(1, "09:00")})
        state = SelectionState(cells={1: frozenset({"09:15"})})
        self.assertTrue(CellState.for_cell(state, assigned, 1, "09:00").is_assigned)
        self.assertTrue(CellState.for_cell(state, assigned, 1, "09:15").is_selected)
        blank = CellState.for_cell(state, assigned, 1, "09:30")
        self.assertFalse(blank.is_selected or blank.is_assigned)

    def test_assigned_cells_cover_half_open_range(self) -> None:
        cells = assigned_cells([{"employeeId": 3, "startTime": "13:00", "endTime": "14:00"}], GRID)
        self.assertEqual(cells, {(3, "13:00"), (3, "13:15"), (3, "13:30"), (3, "13:45")})


class HitTestTableTests(unittest.TestCase):
    def setUp(self) -> None:
        self.table = HitTestTable.build([1, 2], GRID, origin_x=100, origin_y=20, cell_width=10, cell_height=30)

    def test_cell_lookup(self) -> None:
        self.assertEqual(self.table.cell_at(105, 25), (1, "08:00"))
        self.assertEqual(self.table.cell_at(115, 55), (2, "08:15"))
        self.assertIsNone(self.table.cell_at(50, 25))
        self.assertIsNone(self.table.cell_at(105, 81))

    def test_label_lookup_clamps_to_last_slot(self) -> None:
        self.assertEqual(self.table.label_at(10_000), "14:00")
        self.assertIsNone(self.table.label_at(10))

    def test_rects(self) -> None:
        self.assertEqual(self.table.rect_for(2, "08:15"), (110, 50, 10, 30))
        self.assertIsNone(self.table.rect_for(3, "08:15"))
        self.assertEqual(self.table.row_rect(1), (100, 20, 10 * len(GRID), 30))


class GestureTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tracker = GestureTracker(drag_delay_ms=100, throttle_ms=50)

    def test_drag_is_debounced_then_throttled(self) -> None:
        self.tracker.press((1, "09:00"), now=0.0)
        self.assertIsNone(self.tracker.move((1, "09:15"), now=0.05))
        self.assertEqual(self.tracker.move((1, "09:30"), now=0.15), (1, "09:30"))
        self.assertTrue(self.tracker.dragging)
        self.assertIsNone(self.tracker.move((1, "09:45"), now=0.17))
        result = self.tracker.release((1, "10:00"), now=0.18)
        self.assertEqual(result, GestureResult(True, (1, "09:00"), (1, "10:00")))
        self.assertFalse(self.tracker.active)

    def test_tap(self) -> None:
        self.tracker.press((1, "09:00"), now=0.0)
        self.assertIsNone(self.tracker.move((1, "09:00"), now=0.5))
        result = self.tracker.release((1, "09:00"), now=0.6)
        self.assertFalse(result.is_drag)
        self.assertEqual(result.anchor, result.final)

    def test_fast_release_on_other_cell_counts_as_drag(self) -> None:
        self.tracker.press((1, "09:00"), now=0.0)
        self.tracker.move((1, "09:45"), now=0.01)
        result = self.tracker.release(now=0.02)
        self.assertTrue(result.is_drag)
        self.assertEqual(result.final, (1, "09:45"))

    def test_release_without_press(self) -> None:
        self.assertEqual(self.tracker.release((1, "09:00")), GestureResult(False, None, None))

    def test_cancel(self) -> None:
        self.tracker.press((1, "09:00"), now=0.0)
        self.tracker.cancel()
        self.assertFalse(self.tracker.active)
        self.assertIsNone(self.tracker.move((1, "10:00"), now=1.0))


if __name__ == "__main__":
    unittest.main()
