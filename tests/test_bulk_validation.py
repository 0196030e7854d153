"""Bulk validation must partition exactly like one ConflictChecker call per session."""
import datetime as dt
import random

import pytest

from conftest import InMemoryCalendar
from database.calendar_store import CalendarReadError
from scheduling import BulkValidator, ConflictChecker, PlannedSession, reject_batch_overlaps
from scheduling.timeutils import from_minutes

MONDAY = dt.date(2026, 11, 2)


def _session(day, start, end, index=1):
    return PlannedSession(
        date=day,
        start_time=start,
        end_time=end,
        title=f"Mathematics - Chapter 1: Session {index}",
        chapter_number=1,
        session_number=index,
        topics=["Fractions"],
    )


def test_bulk_partition_equals_per_session_checks():
    rng = random.Random(7)
    for _ in range(40):
        calendar = InMemoryCalendar()
        for _ in range(rng.randint(0, 12)):
            day = MONDAY + dt.timedelta(days=rng.randint(0, 9))
            start = rng.randrange(6 * 60, 21 * 60, 30)
            calendar.add(day, from_minutes(start), from_minutes(start + rng.choice([30, 60, 90])),
                         subject_id=rng.choice([1, 2]))

        sessions = []
        for index in range(rng.randint(1, 10)):
            day = MONDAY + dt.timedelta(days=rng.randint(0, 9))
            start = rng.randrange(6 * 60, 21 * 60, 30)
            sessions.append(_session(day, from_minutes(start), from_minutes(start + 60), index + 1))

        result = BulkValidator(calendar).validate(1, sessions, 1, 1)

        checker = ConflictChecker(calendar)
        expected_valid = [
            s for s in sessions
            if not checker.check(1, 1, 1, s.date, s.start_time, s.end_time).has_conflict
        ]
        assert result.valid_sessions == expected_valid
        assert [c.session_index for c in result.conflicts] == [
            i for i, s in enumerate(sessions) if s not in expected_valid
        ]


def test_single_range_read_for_whole_plan():
    calendar = InMemoryCalendar()
    sessions = [_session(MONDAY + dt.timedelta(days=d), "09:00", "10:00", d + 1) for d in range(0, 10, 2)]

    BulkValidator(calendar).validate(1, sessions, 1, 1)

    assert calendar.reads == 1


def test_conflict_record_describes_first_overlap():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "08:30", "09:15", title="Chemistry lab")
    calendar.add(MONDAY, "09:30", "10:30", title="Football")
    sessions = [_session(MONDAY, "09:00", "10:00"), _session(MONDAY, "10:30", "11:30", 2)]

    result = BulkValidator(calendar).validate(1, sessions, 1, 1)

    assert [s.session_number for s in result.valid_sessions] == [2]
    assert len(result.conflicts) == 1
    record = result.conflicts[0]
    assert record.session_index == 0
    assert record.conflict_with == "Chemistry lab (08:30-09:15)"
    assert record.model_dump(mode="json")["start_time"] == "09:00"


def test_empty_plan_does_not_read_calendar():
    calendar = InMemoryCalendar()

    result = BulkValidator(calendar).validate(1, [], 1, 1)

    assert result.valid_sessions == [] and result.conflicts == []
    assert calendar.reads == 0


def test_read_failure_fails_validation_by_default():
    sessions = [_session(MONDAY, "09:00", "10:00")]

    with pytest.raises(CalendarReadError):
        BulkValidator(InMemoryCalendar(fail=True)).validate(1, sessions, 1, 1)

    result = BulkValidator(InMemoryCalendar(fail=True), fail_open=True).validate(1, sessions, 1, 1)
    assert result.valid_sessions == sessions


def test_sessions_sharing_a_slot_keep_only_the_first():
    calendar = InMemoryCalendar()
    sessions = [
        _session(MONDAY, "09:00", "10:00", 1),
        _session(MONDAY, "09:00", "10:00", 2),
        _session(MONDAY, "09:30", "10:30", 3),
        _session(MONDAY, "10:00", "11:00", 4),
        _session(MONDAY + dt.timedelta(days=1), "09:00", "10:00", 5),
    ]

    result = reject_batch_overlaps(sessions, BulkValidator(calendar).validate(1, sessions, 1, 1))

    assert [s.session_number for s in result.valid_sessions] == [1, 4, 5]
    assert [c.session_index for c in result.conflicts] == [1, 2]
    assert result.conflicts[0].conflict_with == "Mathematics - Chapter 1: Session 1 (09:00-10:00)"


def test_batch_overlaps_merge_with_calendar_conflicts_in_order():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "10:00", title="Chemistry lab")
    sessions = [
        _session(MONDAY, "09:00", "10:00", 1),
        _session(MONDAY, "11:00", "12:00", 2),
        _session(MONDAY, "11:30", "12:30", 3),
    ]

    result = reject_batch_overlaps(sessions, BulkValidator(calendar).validate(1, sessions, 1, 1))

    assert [c.session_index for c in result.conflicts] == [0, 2]
    assert result.conflicts[0].conflict_with == "Chemistry lab (09:00-10:00)"
    assert [s.session_number for s in result.valid_sessions] == [2]
