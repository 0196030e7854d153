"""Clock and calendar arithmetic used by the planner."""
import datetime as dt
from typing import Iterable, Iterator, List, Optional, Tuple

MINUTES_PER_DAY = 24 * 60

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def to_minutes(value: dt.time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> dt.time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return dt.time(minutes // 60, minutes % 60)


def add_minutes(value: dt.time, minutes: int) -> Optional[dt.time]:
    """Shift a clock time; None when the result would leave the day."""
    total = to_minutes(value) + minutes
    if not 0 <= total < MINUTES_PER_DAY:
        return None
    return from_minutes(total)


def parse_clock(value) -> dt.time:
    """Parse "HH:MM" (or "HH:MM:SS") into a time."""
    if isinstance(value, dt.time):
        return value
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return dt.time(int(parts[0]), int(parts[1]))


def intervals_overlap(a_start: dt.time, a_end: dt.time, b_start: dt.time, b_end: dt.time) -> bool:
    """Half-open overlap test: touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def weekday_number(name: str) -> int:
    """Monday=0 ... Sunday=6, matching date.weekday()."""
    key = name.strip().lower()
    if key not in WEEKDAY_NAMES:
        raise ValueError(f"Unknown weekday: {name!r}")
    return WEEKDAY_NAMES.index(key)


def iter_dates(start: dt.date, end: dt.date) -> Iterator[dt.date]:
    """Every date in [start, end]; stops at date.max."""
    current = start
    while current <= end:
        yield current
        if current == dt.date.max:
            return
        current += dt.timedelta(days=1)


def add_days(day: dt.date, days: int) -> dt.date:
    """day + days, clamped to date.max."""
    if (dt.date.max - day).days <= days:
        return dt.date.max
    return day + dt.timedelta(days=days)


def eligible_dates(start: dt.date, end: dt.date, weekdays: Optional[Iterable[int]]) -> List[dt.date]:
    """Dates in [start, end] whose weekday is in weekdays (all days when weekdays is empty)."""
    allowed = set(weekdays or range(7))
    return [day for day in iter_dates(start, end) if day.weekday() in allowed]


def window_slots(
    window_start: dt.time, window_end: dt.time, duration_minutes: int, step_minutes: int = 30
) -> List[Tuple[dt.time, dt.time]]:
    """Candidate (start, end) pairs inside a window, stepping start by step_minutes.

    Candidates whose end would pass window_end are skipped.
    """
    if duration_minutes <= 0 or step_minutes <= 0:
        raise ValueError("duration_minutes and step_minutes must be positive")
    slots = []
    first = to_minutes(window_start)
    last_end = to_minutes(window_end)
    start = first
    while start + duration_minutes <= last_end:
        end_time = add_minutes(window_start, start - first + duration_minutes)
        if end_time is None:
            break
        slots.append((from_minutes(start), end_time))
        start += step_minutes
    return slots
