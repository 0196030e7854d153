"""Search for conflict-free alternatives to sessions that failed validation."""
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .conflicts import ConflictChecker
from .models import ConflictRecord, PlannedSession
from .timeutils import add_days, intervals_overlap, iter_dates, window_slots

_logger = logging.getLogger("planner")

STEP_MINUTES = 30
HORIZON_DAYS = 14


@dataclass
class RepairResult:
    alternatives: List[PlannedSession] = field(default_factory=list)
    resolved: Dict[int, PlannedSession] = field(default_factory=dict)  # session_index -> alternative
    unresolved: List[ConflictRecord] = field(default_factory=list)


class SlotRepairer:
    """Finds a free slot for each conflicting session, one conflict at a time.

    Search order per conflict:
    1. the conflict's own day, window start to window end in STEP_MINUTES steps;
    2. each following preferred weekday up to horizon_days (or horizon_end),
       trying only the window's start slot unless full_scan is set.

    Candidates must be free in the calendar and must not overlap sessions
    already accepted in the same batch, including alternatives found for
    earlier conflicts.
    """

    def __init__(
        self,
        checker: ConflictChecker,
        horizon_days: int = HORIZON_DAYS,
        step_minutes: int = STEP_MINUTES,
        full_scan: bool = False,
    ):
        self.checker = checker
        self.horizon_days = horizon_days
        self.step_minutes = step_minutes
        self.full_scan = full_scan

    def repair(
        self,
        user_id: int,
        conflicts: Sequence[ConflictRecord],
        original_sessions: Sequence[PlannedSession],
        preferred_start_time: dt.time,
        preferred_end_time: dt.time,
        session_duration_minutes: int,
        preferred_weekdays: Optional[Iterable[int]],
        horizon_start: dt.date,
        horizon_end: dt.date,
        subject_id: int,
        grade_id: int,
        accepted: Iterable[PlannedSession] = (),
    ) -> RepairResult:
        result = RepairResult()
        taken = list(accepted)
        weekdays = set(preferred_weekdays or range(7))
        slots = window_slots(preferred_start_time, preferred_end_time,
                             session_duration_minutes, self.step_minutes)

        for conflict in conflicts:
            original = original_sessions[conflict.session_index]
            found = self._find_slot(user_id, subject_id, grade_id, conflict.date, slots,
                                    weekdays, horizon_start, horizon_end, taken)
            if found is None:
                _logger.warning(f"REPAIR: No alternative for '{conflict.title}' on {conflict.date} "
                                f"{conflict.start_time:%H:%M} (blocked by {conflict.conflict_with}); dropping session")
                result.unresolved.append(conflict)
                continue

            day, start_time, end_time = found
            alternative = original.model_copy(update={"date": day, "start_time": start_time, "end_time": end_time})
            _logger.info(f"REPAIR: Moved '{original.title}' from {original.date} {original.start_time:%H:%M} "
                         f"to {day} {start_time:%H:%M}")
            result.alternatives.append(alternative)
            result.resolved[conflict.session_index] = alternative
            taken.append(alternative)

        return result

    def _find_slot(
        self,
        user_id: int,
        subject_id: int,
        grade_id: int,
        conflict_day: dt.date,
        slots: List[Tuple[dt.time, dt.time]],
        weekdays: set,
        horizon_start: dt.date,
        horizon_end: dt.date,
        taken: List[PlannedSession],
    ) -> Optional[Tuple[dt.date, dt.time, dt.time]]:
        if not slots:
            return None

        def eligible(day: dt.date) -> bool:
            return day.weekday() in weekdays and horizon_start <= day <= horizon_end

        if eligible(conflict_day):
            for start_time, end_time in slots:
                if self._is_free(user_id, subject_id, grade_id, conflict_day, start_time, end_time, taken):
                    return conflict_day, start_time, end_time

        if conflict_day == dt.date.max:
            return None
        last_day = min(add_days(conflict_day, self.horizon_days), horizon_end)
        day_slots = slots if self.full_scan else slots[:1]
        for day in iter_dates(conflict_day + dt.timedelta(days=1), last_day):
            if eligible(day):
                for start_time, end_time in day_slots:
                    if self._is_free(user_id, subject_id, grade_id, day, start_time, end_time, taken):
                        return day, start_time, end_time
        return None

    def _is_free(self, user_id, subject_id, grade_id, day, start_time, end_time, taken) -> bool:
        for session in taken:
            if session.date == day and intervals_overlap(start_time, end_time, session.start_time, session.end_time):
                return False
        info = self.checker.check(user_id, subject_id, grade_id, day, start_time, end_time)
        return not info.has_conflict
