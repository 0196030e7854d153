"""Calendar density overview used to bias date choice."""
import datetime as dt
import logging
from typing import Dict, Iterable, List, Optional

from database.calendar_store import CalendarReadError
from .models import BusyPeriod, TimeSlot

_logger = logging.getLogger("planner")


class CalendarSurveyor:
    """Summarizes existing events into per-day busy periods."""

    def __init__(self, store, fail_open: bool = False):
        self.store = store
        self.fail_open = fail_open

    def survey(
        self,
        user_id: int,
        start_date: dt.date,
        end_date: dt.date,
        preferred_weekdays: Optional[Iterable[int]] = None,
    ) -> List[BusyPeriod]:
        """Busy days in [start_date, end_date], least busy first.

        Only days that already hold events appear. When preferred_weekdays is
        given (Monday=0), other weekdays are dropped before sorting.
        """
        try:
            events = self.store.events_between(user_id, start_date, end_date)
        except CalendarReadError as e:
            if not self.fail_open:
                raise
            _logger.warning(f"SURVEY: Calendar read failed, returning empty overview: {e}")
            return []

        by_date: Dict[dt.date, List[TimeSlot]] = {}
        for event in events:
            by_date.setdefault(event.event_date, []).append(
                TimeSlot(start=event.start_time.strftime("%H:%M"), end=event.end_time.strftime("%H:%M"))
            )

        allowed = set(preferred_weekdays) if preferred_weekdays is not None else None
        periods = [
            BusyPeriod(date=day, event_count=len(slots), time_slots=slots)
            for day, slots in sorted(by_date.items())
            if allowed is None or day.weekday() in allowed
        ]
        periods.sort(key=lambda p: p.event_count)
        return periods
