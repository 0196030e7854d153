"""Database package for the study planner."""
from .models import (
    Base,
    User,
    Subject,
    GradeLevel,
    SyllabusChapter,
    StudyPlanSchedule,
    StudyPlanEvent,
    ScheduleStatus,
    EventStatus,
)
from .connection import (
    get_db_session,
    init_db,
    get_db_path,
)
from .calendar_store import CalendarEntry, CalendarReadError, SqlCalendarStore

__all__ = [
    "Base",
    "User",
    "Subject",
    "GradeLevel",
    "SyllabusChapter",
    "StudyPlanSchedule",
    "StudyPlanEvent",
    "ScheduleStatus",
    "EventStatus",
    "get_db_session",
    "init_db",
    "get_db_path",
    "CalendarEntry",
    "CalendarReadError",
    "SqlCalendarStore",
]
