from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from .selection import SelectionState
from .timegrid import TimeGrid, calculate_hours_between

logger = logging.getLogger(__name__)

ShiftRange = Tuple[str, str]


def _continues_run(grid: TimeGrid, previous: str, current: str) -> bool:
    prev_index = grid.index_of(previous)
    cur_index = grid.index_of(current)
    if cur_index - prev_index == 1:
        return True
    return previous == grid.day_last_label and current == grid.day_first_label


def consolidate(labels: Iterable[str], grid: TimeGrid) -> List[ShiftRange]:
    """Collapse selected slot labels into contiguous ``(start, end)`` ranges.

    ``end`` is exclusive: it is the label following the last selected slot,
    so ``{09:00, 09:15, 09:30}`` becomes ``[("09:00", "09:45")]``.
    """
    labels = set(labels)
    ordered = grid.sort_labels(labels)
    if len(ordered) != len(labels):
        logger.debug("Ignoring %d labels outside the grid", len(labels) - len(ordered))
    if not ordered:
        return []

    ranges: List[ShiftRange] = []
    run_start = ordered[0]
    previous = ordered[0]
    for label in ordered[1:]:
        if _continues_run(grid, previous, label):
            previous = label
            continue
        ranges.append((run_start, grid.next_label(previous)))
        run_start = label
        previous = label
    ranges.append((run_start, grid.next_label(previous)))
    return ranges


def consolidate_selection(state: SelectionState, grid: TimeGrid) -> Dict[int, List[ShiftRange]]:
    result: Dict[int, List[ShiftRange]] = {}
    for employee_id, labels in state.cells.items():
        ranges = consolidate(labels, grid)
        if ranges:
            result[employee_id] = ranges
    return result


def ranges_hours(ranges: Iterable[ShiftRange]) -> float:
    return round(sum(calculate_hours_between(start, end) for start, end in ranges), 2)


def selection_hours(state: SelectionState, grid: TimeGrid) -> Dict[int, float]:
    """Hours each employee would gain if the current selection were saved."""
    return {employee_id: ranges_hours(ranges) for employee_id, ranges in consolidate_selection(state, grid).items()}
