"""Time labels, the 15-minute day grid and the date helpers shared by API and UI.

Labels are zero-padded ``HH:MM`` strings. A grid may run past midnight
(``end_hour`` up to 47), in which case the labels wrap to ``00:00`` while the
sequence order keeps following the clock.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

SLOT_MINUTES = 15
MINUTES_PER_DAY = 24 * 60
DEFAULT_START_HOUR = 9
DEFAULT_END_HOUR = 23
MAX_HOUR = 47
MAX_SPAN_HOURS = 24
MIDNIGHT = "00:00"
END_OF_DAY = "24:00"

TIME_LABEL_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")

DateLike = Union[datetime.date, datetime.datetime, str, None]


def _coerce_hour(value, fallback: int) -> int:
    try:
        hour = int(value)
    except (TypeError, ValueError):
        return fallback
    return min(max(hour, 0), MAX_HOUR)


def clamp_hour_range(start_hour, end_hour) -> Tuple[int, int]:
    """Return a usable ``(start_hour, end_hour)`` pair, never raising."""
    start = _coerce_hour(start_hour, DEFAULT_START_HOUR)
    end = _coerce_hour(end_hour, DEFAULT_END_HOUR)
    if start >= 24:
        start -= 24
        end -= 24
    if start >= end:
        logger.warning(
            "Invalid grid hours %r-%r, falling back to %s-%s",
            start_hour,
            end_hour,
            DEFAULT_START_HOUR,
            DEFAULT_END_HOUR,
        )
        return DEFAULT_START_HOUR, DEFAULT_END_HOUR
    return start, min(end, start + MAX_SPAN_HOURS)


def minutes_to_time(minutes: int) -> str:
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_to_minutes(value: str) -> int:
    """Minutes since midnight; ``24:00`` maps to 1440."""
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    match = TIME_LABEL_RE.match(str(value).strip()) if value is not None else None
    if not match:
        raise ValueError(f"Invalid time label '{value}'. Expected HH:MM.")
    hours = int(match.group(1))
    minutes = int(match.group(2))
    if minutes < 0 or minutes > 59 or hours < 0 or hours > 24 or (hours == 24 and minutes):
        raise ValueError(f"Invalid time label '{value}'. Expected HH:MM.")
    return hours * 60 + minutes


def normalize_time(value, end_of_range: bool = False) -> str:
    """Canonical ``HH:MM`` for storage.

    ``24:00`` is only meaningful as the end of a range and is stored as
    ``00:00``.
    """
    minutes = time_to_minutes(value)
    if minutes == MINUTES_PER_DAY and not end_of_range:
        raise ValueError("24:00 is only valid as an end time.")
    if minutes % SLOT_MINUTES:
        raise ValueError(f"Time '{value}' is not on a {SLOT_MINUTES}-minute boundary.")
    return minutes_to_time(minutes)


def generate_time_slots(start_hour, end_hour, increment: int = SLOT_MINUTES) -> List[str]:
    """Labels from ``start_hour:00`` to ``end_hour:00`` inclusive, one per increment."""
    start, end = clamp_hour_range(start_hour, end_hour)
    if not isinstance(increment, int) or increment <= 0 or 60 % increment:
        increment = SLOT_MINUTES
    slots: List[str] = []
    seen = set()
    for absolute in range(start * 60, end * 60 + 1, increment):
        label = minutes_to_time(absolute)
        if label in seen:
            continue
        seen.add(label)
        slots.append(label)
    return slots


def calculate_hours_between(start_time: str, end_time: str) -> float:
    start = time_to_minutes(start_time) % MINUTES_PER_DAY
    end = time_to_minutes(end_time)
    if end <= start:
        end += MINUTES_PER_DAY
    return round((end - start) / 60, 2)


def is_time_between(time_label: str, start_time: str, end_time: str) -> bool:
    """Half-open ``[start, end)`` membership that understands midnight crossings."""
    value = time_to_minutes(time_label) % MINUTES_PER_DAY
    start = time_to_minutes(start_time) % MINUTES_PER_DAY
    end = time_to_minutes(end_time)
    if end == MINUTES_PER_DAY:
        return value >= start
    if end > start:
        return start <= value < end
    return value >= start or value < end


def _span(start_time: str, end_time: str) -> Tuple[int, int]:
    start = time_to_minutes(start_time) % MINUTES_PER_DAY
    end = time_to_minutes(end_time)
    if end <= start:
        end += MINUTES_PER_DAY
    return start, end


def ranges_overlap(first: Tuple[str, str], second: Tuple[str, str]) -> bool:
    """True when two ranges starting on the same date share any minute."""
    a_start, a_end = _span(*first)
    b_start, b_end = _span(*second)
    return a_start < b_end and b_start < a_end


@dataclass(frozen=True)
class TimeGrid:
    """One generated label sequence plus the lookups the selection code needs."""

    start_hour: int
    end_hour: int
    increment: int = SLOT_MINUTES
    slots: Tuple[str, ...] = field(default=(), compare=False)
    _index: Dict[str, int] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def build(cls, start_hour=DEFAULT_START_HOUR, end_hour=DEFAULT_END_HOUR, increment: int = SLOT_MINUTES) -> "TimeGrid":
        start, end = clamp_hour_range(start_hour, end_hour)
        slots = tuple(generate_time_slots(start, end, increment))
        return cls(
            start_hour=start,
            end_hour=end,
            increment=increment,
            slots=slots,
            _index={label: idx for idx, label in enumerate(slots)},
        )

    def __len__(self) -> int:
        return len(self.slots)

    def __iter__(self):
        return iter(self.slots)

    def __contains__(self, label: object) -> bool:
        return label in self._index

    def index_of(self, label: str) -> Optional[int]:
        return self._index.get(label)

    @property
    def first_label(self) -> str:
        return self.slots[0]

    @property
    def last_label(self) -> str:
        return self.slots[-1]

    @property
    def day_first_label(self) -> str:
        return MIDNIGHT

    @property
    def day_last_label(self) -> str:
        return minutes_to_time(MINUTES_PER_DAY - self.increment)

    @property
    def crosses_midnight(self) -> bool:
        return self.end_hour > 24 or (self.end_hour == 24 and self.start_hour > 0)

    def next_label(self, label: str) -> str:
        """Label after ``label``; the last slot gets its arithmetic successor."""
        index = self._index.get(label)
        if index is not None and index + 1 < len(self.slots):
            return self.slots[index + 1]
        return minutes_to_time(time_to_minutes(label) + self.increment)

    def labels_between(self, first: str, second: str) -> List[str]:
        """Inclusive slice between two labels in grid order, whichever comes first."""
        a = self._index.get(first)
        b = self._index.get(second)
        if a is None or b is None:
            return []
        low, high = min(a, b), max(a, b)
        return list(self.slots[low : high + 1])

    def sort_labels(self, labels: Iterable[str]) -> List[str]:
        return sorted((label for label in labels if label in self._index), key=self._index.__getitem__)

    def labels_for_shift(self, start_time: str, end_time: str) -> List[str]:
        return [label for label in self.slots if is_time_between(label, start_time, end_time)]


# ---------------------------------------------------------------------------
# Dates


def format_date_for_api(value: DateLike) -> str:
    """ISO date string; malformed input falls back to today's date."""
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.date.fromisoformat(text).isoformat()
        except ValueError:
            pass
        try:
            return datetime.datetime.fromisoformat(text).date().isoformat()
        except ValueError:
            pass
    fallback = datetime.date.today()
    logger.warning("Malformed date %r, using %s", value, fallback.isoformat())
    return fallback.isoformat()


def parse_api_date(value: DateLike) -> datetime.date:
    """Strict counterpart of :func:`format_date_for_api`; raises ``ValueError``."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str):
        raise ValueError("Date must be YYYY-MM-DD")
    try:
        return datetime.date.fromisoformat(value.strip())
    except ValueError:
        raise ValueError(f"Invalid date '{value}'. Expected YYYY-MM-DD.")


def previous_day(value: datetime.date) -> datetime.date:
    return value - datetime.timedelta(days=1)


def next_day(value: datetime.date) -> datetime.date:
    return value + datetime.timedelta(days=1)


def week_start_for(value: datetime.date) -> datetime.date:
    """Return the Monday of the week containing ``value``."""
    if isinstance(value, datetime.datetime):
        value = value.date()
    return value - datetime.timedelta(days=value.weekday())


def week_days(value: datetime.date) -> List[datetime.date]:
    start = week_start_for(value)
    return [start + datetime.timedelta(days=offset) for offset in range(7)]


def format_hours(hours: float) -> str:
    return f"{round(float(hours), 2):g}h"


def format_week_label(week_start: datetime.date) -> str:
    iso_year, iso_week, _ = week_start.isocalendar()
    end = week_start + datetime.timedelta(days=6)
    start_str = week_start.strftime("%b %d")
    end_str = end.strftime("%b %d")
    if week_start.year != end.year:
        start_str = week_start.strftime("%b %d %Y")
        end_str = end.strftime("%b %d %Y")
    return f"{iso_year} W{iso_week:02d} ({start_str} - {end_str})"


def shift_sort_key(shift: Dict) -> Tuple[str, int]:
    return (shift.get("date") or "", time_to_minutes(shift.get("startTime") or MIDNIGHT))
