from __future__ import annotations

import threading
from datetime import date, datetime, time, timezone

import pytest

from src.worktime.worktime.attendance.model import AttendanceRecord
from src.worktime.worktime.attendance.tracker import SessionTracker
from src.worktime.worktime.core.enums import AttendanceStatus, SessionStatus, WorkLocation
from src.worktime.worktime.core.exceptions import (
    AlreadyActiveSession,
    BreakInProgress,
    NoActiveBreak,
    NoActiveSession,
    RecordFinalized,
    SessionLimitReached,
    ValidationError,
)
from src.worktime.worktime.shifts.model import ShiftPolicy

DAY = date(2026, 1, 21)


def at(hh, mm=0, day=21):
    return datetime(2026, 1, day, hh, mm, tzinfo=timezone.utc)


def test_start_and_end_session_records_worked_minutes(world):
    started = world.tracker.start_session(1, "office", now=at(9, 0))
    assert started.status == AttendanceStatus.IN_PROGRESS
    assert started.late_minutes == 0
    assert started.active_session.work_location == WorkLocation.OFFICE

    ended = world.tracker.end_session(1, now=at(17, 30))
    assert ended.status == AttendanceStatus.COMPLETED
    assert ended.worked_minutes == 510
    assert ended.early_departure_minutes == 30
    assert ended.clock_in == at(9, 0)
    assert ended.clock_out == at(17, 30)
    assert world.attendance.get(1, DAY).version == 2


def test_late_minutes_count_from_end_of_grace(world):
    record = world.tracker.start_session(1, "wfh", now=at(9, 25))

    assert record.late_minutes == 15
    assert record.is_late


def test_break_is_excluded_from_worked_time(world):
    world.tracker.start_session(1, "office", now=at(9, 0))
    on_break = world.tracker.start_break(1, now=at(12, 0))
    assert on_break.status == AttendanceStatus.ON_BREAK
    assert on_break.active_session.status == SessionStatus.ON_BREAK

    with pytest.raises(BreakInProgress):
        world.tracker.end_session(1, now=at(12, 30))
    with pytest.raises(BreakInProgress):
        world.tracker.start_break(1, now=at(12, 30))

    resumed = world.tracker.end_break(1, now=at(12, 45))
    assert resumed.status == AttendanceStatus.IN_PROGRESS

    with pytest.raises(NoActiveBreak):
        world.tracker.end_break(1, now=at(13, 0))

    done = world.tracker.end_session(1, now=at(18, 0))
    assert done.break_minutes == 45
    assert done.worked_minutes == 495


def test_second_start_while_active_is_rejected(world):
    world.tracker.start_session(1, "office", now=at(9, 0))

    with pytest.raises(AlreadyActiveSession):
        world.tracker.start_session(1, "office", now=at(9, 5))


def test_end_without_start_is_rejected(world):
    with pytest.raises(NoActiveSession):
        world.tracker.end_session(1, now=at(17, 0))
    with pytest.raises(NoActiveSession):
        world.tracker.start_break(1, now=at(12, 0))
    assert world.attendance.get(1, DAY) is None


def test_multiple_sessions_accumulate(world):
    world.tracker.start_session(1, "office", now=at(9, 0))
    world.tracker.end_session(1, now=at(12, 0))
    world.tracker.start_session(1, "wfh", now=at(13, 0))
    record = world.tracker.end_session(1, now=at(18, 0))

    assert len(record.sessions) == 2
    assert record.worked_minutes == 480
    assert record.status == AttendanceStatus.COMPLETED


def test_single_session_mode_blocks_second_session(world):
    tracker = SessionTracker(world.attendance, world.shifts, allow_multiple_sessions=False)
    tracker.start_session(1, "office", now=at(9, 0))
    tracker.end_session(1, now=at(12, 0))

    with pytest.raises(SessionLimitReached):
        tracker.start_session(1, "office", now=at(13, 0))


def test_client_site_requires_details(world):
    with pytest.raises(ValidationError):
        world.tracker.start_session(1, "client_site", now=at(9, 0))
    with pytest.raises(ValidationError):
        world.tracker.start_session(1, "moon", now=at(9, 0))

    record = world.tracker.start_session(1, "client_site", "ACME HQ", now=at(9, 0))
    assert record.active_session.location_details == "ACME HQ"


def test_finalized_day_rejects_clock_events(world):
    world.attendance.put(
        AttendanceRecord(employee_id=1, work_date=DAY, status=AttendanceStatus.ABSENT, finalized=True, finalized_at=at(19))
    )

    with pytest.raises(RecordFinalized):
        world.tracker.start_session(1, "office", now=at(20, 0))


def test_clock_out_before_clock_in_is_rejected(world):
    world.tracker.start_session(1, "office", now=at(9, 0))

    with pytest.raises(ValidationError):
        world.tracker.end_session(1, now=at(8, 59))


def test_overnight_session_closes_on_previous_day(world):
    world.shifts.policies[1] = ShiftPolicy(
        shift_id=3,
        shift_name="Night",
        shift_start_time=time(22, 0),
        shift_end_time=time(6, 0),
        grace_period_minutes=10,
    )
    world.tracker.start_session(1, "office", now=at(22, 5))

    with pytest.raises(AlreadyActiveSession):
        world.tracker.start_session(1, "office", now=at(1, 0, day=22))

    record = world.tracker.end_session(1, now=at(6, 0, day=22))

    assert record.work_date == DAY
    assert record.worked_minutes == 475
    assert record.late_minutes == 0
    assert record.early_departure_minutes == 0
    assert world.attendance.get(1, date(2026, 1, 22)) is None


def test_night_shift_clock_in_past_grace_is_late(world):
    world.shifts.policies[1] = ShiftPolicy(
        shift_id=3,
        shift_name="Night",
        shift_start_time=time(22, 0),
        shift_end_time=time(6, 0),
        grace_period_minutes=10,
    )

    record = world.tracker.start_session(1, "office", now=at(22, 30))

    assert record.work_date == DAY
    assert record.late_minutes == 20


def test_breaks_stay_within_their_session(world):
    world.tracker.start_session(1, "office", now=at(9, 0))
    world.tracker.start_break(1, now=at(10, 0))
    world.tracker.end_break(1, now=at(10, 15))
    world.tracker.start_break(1, now=at(12, 0))
    world.tracker.end_break(1, now=at(13, 0))
    world.tracker.end_session(1, now=at(17, 0))
    world.tracker.start_session(1, "wfh", now=at(17, 30))
    world.tracker.start_break(1, now=at(17, 40))
    world.tracker.end_break(1, now=at(17, 50))
    record = world.tracker.end_session(1, now=at(18, 0))

    for session in record.sessions:
        span = (session.check_out - session.check_in).total_seconds() // 60
        assert session.break_minutes <= span
    assert record.break_minutes == 85
    assert record.worked_minutes == 425


def test_concurrent_starts_create_exactly_one_session(world):
    barrier = threading.Barrier(2)
    outcomes = []

    def clock_in():
        barrier.wait()
        try:
            world.tracker.start_session(1, "office", now=at(9, 0))
            outcomes.append("ok")
        except AlreadyActiveSession:
            outcomes.append("rejected")

    threads = [threading.Thread(target=clock_in) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "rejected"]
    assert len(world.attendance.get(1, DAY).sessions) == 1


def test_get_day_without_record_is_not_started(world):
    record = world.tracker.get_day(1, DAY)

    assert record.record_id is None
    assert record.status == AttendanceStatus.NOT_STARTED


def test_history_rejects_inverted_range(world):
    world.tracker.start_session(1, "office", now=at(9, 0))

    assert [r.work_date for r in world.tracker.history(1, DAY, DAY)] == [DAY]
    with pytest.raises(ValidationError):
        world.tracker.history(1, DAY, date(2026, 1, 1))


def test_finalization_status_tracks_shift_end(world):
    world.tracker.start_session(1, "office", now=at(9, 0))

    during = world.tracker.finalization_status(1, DAY, now=at(10, 0))
    assert during.status == AttendanceStatus.IN_PROGRESS
    assert during.can_clock_out and not during.can_clock_in
    assert not during.shift_ended

    world.tracker.end_session(1, now=at(18, 0))
    after = world.tracker.finalization_status(1, DAY, now=at(18, 20))
    assert after.shift_ended
    assert after.shift_end == at(18, 0)
    assert after.can_clock_in and not after.can_clock_out
