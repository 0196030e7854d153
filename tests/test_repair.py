"""Repair search: ordering, constraints and the in-batch double-booking guard."""
import datetime as dt
import random

from conftest import InMemoryCalendar
from scheduling import BulkValidator, ConflictChecker, PlannedSession, SlotRepairer
from scheduling.timeutils import from_minutes, intervals_overlap, to_minutes

MONDAY = dt.date(2026, 11, 2)
WEDNESDAY = MONDAY + dt.timedelta(days=2)
FRIDAY = MONDAY + dt.timedelta(days=4)
MWF = [0, 2, 4]


def _session(day, start="09:00", end="10:00", number=1):
    return PlannedSession(
        date=day,
        start_time=start,
        end_time=end,
        title=f"Mathematics - Chapter 1: Session {number}",
        chapter_number=1,
        session_number=number,
        topics=["Algebra"],
    )


def _repair(calendar, sessions, window=("09:00", "10:00"), duration=60, weekdays=MWF,
            horizon_end=MONDAY + dt.timedelta(days=27), **repairer_kwargs):
    validation = BulkValidator(calendar).validate(1, sessions, 1, 1)
    repairer = SlotRepairer(ConflictChecker(calendar), **repairer_kwargs)
    result = repairer.repair(
        1,
        validation.conflicts,
        sessions,
        dt.time.fromisoformat(window[0]),
        dt.time.fromisoformat(window[1]),
        duration,
        weekdays,
        MONDAY,
        horizon_end,
        1,
        1,
        accepted=validation.valid_sessions,
    )
    return validation, result


def test_same_day_search_takes_first_free_half_hour_step():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "10:00")

    _, result = _repair(calendar, [_session(MONDAY)], window=("09:00", "12:00"))

    assert len(result.alternatives) == 1
    moved = result.alternatives[0]
    assert (moved.date, moved.start_time, moved.end_time) == (MONDAY, dt.time(10, 0), dt.time(11, 0))
    assert moved.title == "Mathematics - Chapter 1: Session 1"
    assert result.resolved == {0: moved}


def test_later_days_only_try_window_start():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "11:00")
    calendar.add(WEDNESDAY, "09:00", "10:00")

    _, result = _repair(calendar, [_session(MONDAY)], window=("09:00", "11:00"))

    moved = result.alternatives[0]
    assert (moved.date, moved.start_time) == (FRIDAY, dt.time(9, 0))


def test_full_scan_tries_whole_window_on_later_days():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "11:00")
    calendar.add(WEDNESDAY, "09:00", "10:00")

    _, result = _repair(calendar, [_session(MONDAY)], window=("09:00", "11:00"), full_scan=True)

    moved = result.alternatives[0]
    assert (moved.date, moved.start_time) == (WEDNESDAY, dt.time(10, 0))


def test_non_preferred_weekdays_are_skipped():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "10:00")

    _, result = _repair(calendar, [_session(MONDAY)])

    # Tuesday is free but not a preferred day
    assert result.alternatives[0].date == WEDNESDAY


def test_accepted_sessions_block_candidates():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "10:00")
    sessions = [_session(MONDAY, number=1), _session(WEDNESDAY, number=2)]

    validation, result = _repair(calendar, sessions)

    assert [s.session_number for s in validation.valid_sessions] == [2]
    assert result.alternatives[0].date == FRIDAY


def test_alternatives_for_earlier_conflicts_block_later_ones():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "10:00")
    calendar.add(MONDAY, "09:30", "10:30", subject_id=2)
    sessions = [_session(MONDAY, number=1), _session(MONDAY, "09:30", "10:30", number=2)]

    _, result = _repair(calendar, sessions, window=("09:00", "12:00"))

    first, second = result.alternatives
    assert (first.date, first.start_time) == (MONDAY, dt.time(10, 30))
    # 11:00 would overlap the 10:30 alternative, so the second session moves to Wednesday
    assert (second.date, second.start_time) == (WEDNESDAY, dt.time(9, 0))


def test_unrepairable_conflict_is_reported_not_raised():
    calendar = InMemoryCalendar()
    for offset in range(0, 28):
        calendar.add(MONDAY + dt.timedelta(days=offset), "09:00", "10:00")

    _, result = _repair(calendar, [_session(MONDAY)])

    assert result.alternatives == []
    assert [c.session_index for c in result.unresolved] == [0]


def test_search_stops_at_horizon_days():
    calendar = InMemoryCalendar()
    for offset in range(0, 15):
        calendar.add(MONDAY + dt.timedelta(days=offset), "09:00", "10:00")

    _, short = _repair(calendar, [_session(MONDAY)], horizon_days=14)
    _, longer = _repair(calendar, [_session(MONDAY)], horizon_days=21)

    assert short.unresolved and not short.alternatives
    assert longer.alternatives[0].date == MONDAY + dt.timedelta(days=16)  # Wednesday, two weeks on


def test_search_stops_at_plan_end_date():
    calendar = InMemoryCalendar()
    calendar.add(MONDAY, "09:00", "10:00")

    _, result = _repair(calendar, [_session(MONDAY)], horizon_end=MONDAY + dt.timedelta(days=1))

    assert result.unresolved and not result.alternatives


def test_alternatives_respect_window_duration_weekdays_and_calendar():
    rng = random.Random(99)
    for _ in range(30):
        calendar = InMemoryCalendar()
        for _ in range(rng.randint(5, 25)):
            day = MONDAY + dt.timedelta(days=rng.randint(0, 20))
            start = rng.randrange(8 * 60, 18 * 60, 30)
            calendar.add(day, from_minutes(start), from_minutes(start + rng.choice([30, 60, 120])),
                         subject_id=rng.choice([1, 2]))
        weekdays = sorted(rng.sample(range(7), rng.randint(1, 4)))
        duration = rng.choice([30, 45, 60, 90])
        window = ("08:00", "12:00")
        sessions = []
        for number in range(1, rng.randint(2, 8)):
            day = MONDAY + dt.timedelta(days=rng.randint(0, 13))
            sessions.append(_session(day, "09:00", from_minutes(9 * 60 + duration), number))

        validation, result = _repair(calendar, sessions, window=window, duration=duration,
                                     weekdays=weekdays, full_scan=rng.random() < 0.5)

        checker = ConflictChecker(calendar)
        placed = list(validation.valid_sessions)
        for alt in result.alternatives:
            assert alt.start_time >= dt.time(8, 0)
            assert alt.end_time <= dt.time(12, 0)
            assert to_minutes(alt.end_time) - to_minutes(alt.start_time) == duration
            assert alt.date.weekday() in weekdays
            assert not checker.check(1, 1, 1, alt.date, alt.start_time, alt.end_time).has_conflict
            for other in placed:
                assert not (other.date == alt.date and intervals_overlap(
                    alt.start_time, alt.end_time, other.start_time, other.end_time))
            placed.append(alt)
        assert len(result.alternatives) + len(result.unresolved) == len(validation.conflicts)


def test_search_at_end_of_calendar_reports_unresolved():
    last = dt.date.max
    calendar = InMemoryCalendar()
    calendar.add(last - dt.timedelta(days=1), "09:00", "10:00")
    calendar.add(last, "09:00", "10:00")
    sessions = [_session(last - dt.timedelta(days=1), number=1), _session(last, number=2)]

    validation = BulkValidator(calendar).validate(1, sessions, 1, 1)
    result = SlotRepairer(ConflictChecker(calendar)).repair(
        1, validation.conflicts, sessions, dt.time(9), dt.time(10), 60, None,
        last - dt.timedelta(days=5), last, 1, 1,
    )

    assert result.alternatives == []
    assert [c.session_index for c in result.unresolved] == [0, 1]
