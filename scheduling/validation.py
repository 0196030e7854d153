"""Bulk validation of a complete proposed schedule."""
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from database.calendar_store import CalendarReadError
from .conflicts import find_overlaps
from .models import ConflictRecord, PlannedSession
from .timeutils import intervals_overlap

_logger = logging.getLogger("planner")


@dataclass
class ValidationResult:
    valid_sessions: List[PlannedSession] = field(default_factory=list)
    conflicts: List[ConflictRecord] = field(default_factory=list)

    @property
    def conflict_indices(self) -> set:
        return {c.session_index for c in self.conflicts}


class BulkValidator:
    """Validates every proposed session against the calendar with one read.

    Applies exactly the ConflictChecker overlap rule; the single range query is
    only a batching of the per-session lookups.
    """

    def __init__(self, store, fail_open: bool = False):
        self.store = store
        self.fail_open = fail_open

    def validate(
        self,
        user_id: int,
        planned_sessions: Sequence[PlannedSession],
        subject_id: int,
        grade_id: int,
    ) -> ValidationResult:
        result = ValidationResult()
        if not planned_sessions:
            return result

        first_day = min(s.date for s in planned_sessions)
        last_day = max(s.date for s in planned_sessions)
        try:
            events = self.store.events_between(user_id, first_day, last_day)
        except CalendarReadError as e:
            if not self.fail_open:
                raise
            _logger.warning(f"VALIDATION: Calendar read failed, accepting all {len(planned_sessions)} sessions: {e}")
            events = []

        by_date = {}
        for event in events:
            by_date.setdefault(event.event_date, []).append(event)

        for index, session in enumerate(planned_sessions):
            overlaps = find_overlaps(by_date.get(session.date, []), session.date,
                                     session.start_time, session.end_time)
            if not overlaps:
                result.valid_sessions.append(session)
                continue
            result.conflicts.append(
                ConflictRecord(
                    session_index=index,
                    date=session.date,
                    start_time=session.start_time,
                    end_time=session.end_time,
                    title=session.title,
                    conflict_with=overlaps[0].describe(),
                )
            )

        _logger.info(f"VALIDATION: {len(planned_sessions)} planned, {len(result.valid_sessions)} valid, "
                     f"{len(result.conflicts)} conflicts (range {first_day}..{last_day})")
        return result


def reject_batch_overlaps(
    planned_sessions: Sequence[PlannedSession], result: ValidationResult
) -> ValidationResult:
    """Turn sessions that overlap an earlier accepted session of the same batch into conflicts.

    The batch shares one subject and grade, so two of its sessions may never
    overlap. Sessions are walked in submission order; the first one keeps the slot.
    """
    rejected = result.conflict_indices
    accepted: List[PlannedSession] = []
    conflicts = list(result.conflicts)

    for index, session in enumerate(planned_sessions):
        if index in rejected:
            continue
        clash = next(
            (other for other in accepted
             if other.date == session.date
             and intervals_overlap(session.start_time, session.end_time, other.start_time, other.end_time)),
            None,
        )
        if clash is None:
            accepted.append(session)
            continue
        _logger.warning(f"VALIDATION: '{session.title}' on {session.date} overlaps '{clash.title}' in the same plan")
        conflicts.append(
            ConflictRecord(
                session_index=index,
                date=session.date,
                start_time=session.start_time,
                end_time=session.end_time,
                title=session.title,
                conflict_with=f"{clash.title} ({clash.start_time:%H:%M}-{clash.end_time:%H:%M})",
            )
        )

    conflicts.sort(key=lambda c: c.session_index)
    return ValidationResult(valid_sessions=accepted, conflicts=conflicts)
