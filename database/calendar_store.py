"""Read access to a user's calendar of study plan events."""
import datetime as dt
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import connection
from .models import StudyPlanEvent, StudyPlanSchedule, Subject

_logger = logging.getLogger("planner")


class CalendarReadError(RuntimeError):
    """Raised when existing events cannot be read from the calendar store."""


@dataclass(frozen=True)
class CalendarEntry:
    """An existing event as seen by the conflict checks."""

    id: int
    user_id: int
    subject_id: int
    grade_id: int
    event_date: dt.date
    start_time: dt.time
    end_time: dt.time
    title: str
    subject_name: str = "Unknown"

    def describe(self) -> str:
        return f"{self.title} ({self.start_time:%H:%M}-{self.end_time:%H:%M})"


class SqlCalendarStore:
    """Calendar reads backed by the study_plan_events table.

    Pass an open session to read inside an existing transaction (used when
    re-validating right before persisting a plan).
    """

    def __init__(self, session: Optional[Session] = None):
        self._session = session

    @contextmanager
    def _db(self) -> Iterator[Session]:
        if self._session is not None:
            yield self._session
        else:
            with connection.get_db_session() as db:
                yield db

    def events_between(self, user_id: int, start: dt.date, end: dt.date) -> List[CalendarEntry]:
        """All events for user_id whose date lies in [start, end], ordered by date and time."""
        try:
            with self._db() as db:
                rows = (
                    db.query(StudyPlanEvent, StudyPlanSchedule.subject_id, StudyPlanSchedule.grade_id, Subject.name)
                    .join(StudyPlanSchedule, StudyPlanEvent.schedule_id == StudyPlanSchedule.id)
                    .outerjoin(Subject, StudyPlanSchedule.subject_id == Subject.id)
                    .filter(
                        StudyPlanEvent.user_id == user_id,
                        StudyPlanEvent.event_date >= start,
                        StudyPlanEvent.event_date <= end,
                    )
                    .order_by(StudyPlanEvent.event_date, StudyPlanEvent.start_time)
                    .all()
                )
                return [
                    CalendarEntry(
                        id=event.id,
                        user_id=event.user_id,
                        subject_id=subject_id,
                        grade_id=grade_id,
                        event_date=event.event_date,
                        start_time=event.start_time,
                        end_time=event.end_time,
                        title=event.title,
                        subject_name=subject_name or "Unknown",
                    )
                    for event, subject_id, grade_id, subject_name in rows
                ]
        except SQLAlchemyError as e:
            _logger.error(f"CALENDAR: Failed to read events for user {user_id} ({start}..{end}): {e}")
            raise CalendarReadError(f"Could not read calendar for user {user_id}: {e}") from e

    def events_on(self, user_id: int, day: dt.date) -> List[CalendarEntry]:
        return self.events_between(user_id, day, day)
