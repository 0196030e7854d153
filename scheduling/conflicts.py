"""Single-slot conflict checks against a user's calendar."""
import datetime as dt
import logging
from typing import Iterable, List

from database.calendar_store import CalendarEntry, CalendarReadError
from .models import ConflictDetail, ConflictInfo
from .timeutils import intervals_overlap

_logger = logging.getLogger("planner")

SAME_SUBJECT_SUGGESTION = "Same subject session exists - consider replacing or rescheduling"
OTHER_SUBJECT_SUGGESTION = "Try a different time on this day or choose another day"


def find_overlaps(
    events: Iterable[CalendarEntry], day: dt.date, start_time: dt.time, end_time: dt.time
) -> List[CalendarEntry]:
    """Events on `day` overlapping [start_time, end_time), in the order given."""
    return [
        event for event in events
        if event.event_date == day
        and intervals_overlap(start_time, end_time, event.start_time, event.end_time)
    ]


def build_conflict_info(
    overlaps: List[CalendarEntry], subject_id: int, grade_id: int
) -> ConflictInfo:
    conflicts = [
        ConflictDetail(
            event_id=event.id,
            title=event.title,
            start_time=event.start_time.strftime("%H:%M"),
            end_time=event.end_time.strftime("%H:%M"),
            subject=event.subject_name,
            is_same_subject=event.subject_id == subject_id and event.grade_id == grade_id,
        )
        for event in overlaps
    ]

    suggestion = ""
    if conflicts:
        if any(c.is_same_subject for c in conflicts):
            suggestion = SAME_SUBJECT_SUGGESTION
        else:
            suggestion = OTHER_SUBJECT_SUGGESTION

    return ConflictInfo(
        has_conflict=bool(conflicts),
        conflict_count=len(conflicts),
        conflicts=conflicts,
        suggestion=suggestion,
    )


class ConflictChecker:
    """Checks whether a candidate slot overlaps existing events.

    With fail_open=False (the default) a calendar read failure propagates as
    CalendarReadError. fail_open=True logs the failure and reports the slot as
    free.
    """

    def __init__(self, store, fail_open: bool = False):
        self.store = store
        self.fail_open = fail_open

    def check(
        self,
        user_id: int,
        subject_id: int,
        grade_id: int,
        day: dt.date,
        start_time: dt.time,
        end_time: dt.time,
    ) -> ConflictInfo:
        try:
            events = self.store.events_on(user_id, day)
        except CalendarReadError as e:
            if not self.fail_open:
                raise
            _logger.warning(f"CONFLICTS: Calendar read failed, treating {day} "
                            f"{start_time:%H:%M}-{end_time:%H:%M} as free: {e}")
            return ConflictInfo()

        return build_conflict_info(find_overlaps(events, day, start_time, end_time), subject_id, grade_id)
