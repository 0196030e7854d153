"""Calendar conflict detection, density survey, bulk validation and slot repair."""
from .models import BusyPeriod, ConflictDetail, ConflictInfo, ConflictRecord, PlannedSession, TimeSlot
from .conflicts import ConflictChecker, find_overlaps
from .survey import CalendarSurveyor
from .validation import BulkValidator, ValidationResult, reject_batch_overlaps
from .repair import RepairResult, SlotRepairer

__all__ = [
    "BusyPeriod",
    "ConflictDetail",
    "ConflictInfo",
    "ConflictRecord",
    "PlannedSession",
    "TimeSlot",
    "ConflictChecker",
    "find_overlaps",
    "CalendarSurveyor",
    "BulkValidator",
    "ValidationResult",
    "reject_batch_overlaps",
    "RepairResult",
    "SlotRepairer",
]
