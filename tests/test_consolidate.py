from __future__ import annotations

import unittest

from shiftboard.consolidate import consolidate, consolidate_selection, ranges_hours, selection_hours
from shiftboard.selection import SelectionState
from shiftboard.timegrid import TimeGrid

DAY_GRID = TimeGrid.build(8, 14)
LATE_GRID = TimeGrid.build(22, 26)


class ConsolidateTests(unittest.TestCase):
    def test_contiguous_run_collapses_to_one_range(self) -> None:
        self.assertEqual(consolidate({"09:00", "09:15", "09:30"}, DAY_GRID), [("09:00", "09:45")])

    def test_gap_splits_runs(self) -> None:
        labels = {"09:00", "09:15", "10:00", "10:15", "10:30"}
        self.assertEqual(consolidate(labels, DAY_GRID), [("09:00", "09:30"), ("10:00", "10:45")])

    def test_run_across_midnight_stays_whole(self) -> None:
        self.assertEqual(consolidate({"23:45", "00:00"}, LATE_GRID), [("23:45", "00:15")])
        self.assertEqual(
            consolidate({"23:30", "23:45", "00:00", "00:15", "01:00"}, LATE_GRID),
            [("23:30", "00:30"), ("01:00", "01:15")],
        )

    def test_single_and_empty(self) -> None:
        self.assertEqual(consolidate(set(), DAY_GRID), [])
        self.assertEqual(consolidate({"11:30"}, DAY_GRID), [("11:30", "11:45")])

    def test_last_grid_label_gets_arithmetic_end(self) -> None:
        self.assertEqual(consolidate({"13:45", "14:00"}, DAY_GRID), [("13:45", "14:15")])
        self.assertEqual(consolidate({"14:00"}, DAY_GRID), [("14:00", "14:15")])

    def test_labels_outside_grid_are_ignored(self) -> None:
        with self.assertLogs("shiftboard.consolidate", level="DEBUG"):
            ranges = consolidate({"06:00", "09:00", "nope"}, DAY_GRID)
        self.assertEqual(ranges, [("09:00", "09:15")])

    def test_ranges_never_overlap(self) -> None:
        labels = {"08:00", "08:15", "09:00", "12:00", "12:15", "12:30", "13:45"}
        ranges = consolidate(labels, DAY_GRID)
        for (_, end), (next_start, _) in zip(ranges, ranges[1:]):
            self.assertLess(DAY_GRID.index_of(end), DAY_GRID.index_of(next_start))


class SelectionConsolidationTests(unittest.TestCase):
    def test_per_employee_ranges_and_hours(self) -> None:
        state = SelectionState(
            cells={
                4: frozenset({"09:00", "09:15", "09:30", "09:45"}),
                7: frozenset({"12:00", "13:00", "13:15"}),
                9: frozenset(),
            }
        )
        self.assertEqual(
            consolidate_selection(state, DAY_GRID),
            {4: [("09:00", "10:00")], 7: [("12:00", "12:15"), ("13:00", "13:30")]},
        )
        self.assertEqual(selection_hours(state, DAY_GRID), {4: 1.0, 7: 0.75})

    def test_ranges_hours_handles_midnight(self) -> None:
        self.assertEqual(ranges_hours([("23:45", "00:15"), ("01:00", "01:15")]), 0.75)


if __name__ == "__main__":
    unittest.main()
