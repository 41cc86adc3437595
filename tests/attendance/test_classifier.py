from datetime import date, datetime, time, timezone

import pytest

from src.worktime.worktime.attendance.classifier import ILLEGAL_EVENTS, LIVE_TRANSITIONS, live_status, next_live_state
from src.worktime.worktime.attendance.model import AttendanceRecord, Break, Session
from src.worktime.worktime.core.enums import AttendanceStatus, LiveEvent, SessionStatus, WorkLocation
from src.worktime.worktime.core.exceptions import (
    AlreadyActiveSession,
    BreakInProgress,
    InvariantViolation,
    NoActiveBreak,
    NoActiveSession,
    RecordFinalized,
)

S = AttendanceStatus
E = LiveEvent


def ts(hh, mm=0):
    return datetime(2026, 1, 21, hh, mm, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "current,event,expected",
    [
        (S.NOT_STARTED, E.START_SESSION, S.IN_PROGRESS),
        (S.IN_PROGRESS, E.START_BREAK, S.ON_BREAK),
        (S.ON_BREAK, E.END_BREAK, S.IN_PROGRESS),
        (S.IN_PROGRESS, E.END_SESSION, S.COMPLETED),
        (S.COMPLETED, E.START_SESSION, S.IN_PROGRESS),
    ],
)
def test_legal_transitions(current, event, expected):
    assert next_live_state(current, event) == expected


@pytest.mark.parametrize(
    "current,event,error",
    [
        (S.IN_PROGRESS, E.START_SESSION, AlreadyActiveSession),
        (S.NOT_STARTED, E.END_SESSION, NoActiveSession),
        (S.ON_BREAK, E.END_SESSION, BreakInProgress),
        (S.IN_PROGRESS, E.END_BREAK, NoActiveBreak),
        (S.PRESENT, E.START_SESSION, RecordFinalized),
        (S.PENDING_CORRECTION, E.END_SESSION, RecordFinalized),
    ],
)
def test_illegal_transitions(current, event, error):
    with pytest.raises(error):
        next_live_state(current, event)


def test_every_live_state_event_pair_is_covered():
    live = [s for s in S if s.is_live]
    for status in live:
        for event in E:
            assert (status, event) in LIVE_TRANSITIONS or (status, event) in ILLEGAL_EVENTS


def test_live_status_reads_sessions():
    day = AttendanceRecord(employee_id=1, work_date=date(2026, 1, 21))
    assert live_status(day) == S.NOT_STARTED

    on_break = Session(
        session_id="a",
        check_in=ts(9),
        work_location=WorkLocation.OFFICE,
        status=SessionStatus.ON_BREAK,
        breaks=(Break(break_id="b", start_time=ts(12)),),
    )
    assert live_status(day.with_sessions((on_break,))) == S.ON_BREAK

    legacy = AttendanceRecord(employee_id=1, work_date=date(2026, 1, 21), clock_in=ts(9), clock_out=ts(17))
    assert live_status(legacy) == S.COMPLETED


def test_two_open_sessions_violate_invariants():
    open_a = Session(session_id="a", check_in=ts(9), work_location=WorkLocation.OFFICE)
    open_b = Session(session_id="b", check_in=ts(10), work_location=WorkLocation.WFH)
    record = AttendanceRecord(employee_id=1, work_date=date(2026, 1, 21), sessions=(open_a, open_b))

    with pytest.raises(InvariantViolation):
        record.check_invariants()


def test_final_status_requires_finalized_flag():
    record = AttendanceRecord(employee_id=1, work_date=date(2026, 1, 21), status=S.PRESENT)

    with pytest.raises(InvariantViolation):
        record.check_invariants()


def test_break_longer_than_session_is_rejected():
    session = Session(
        session_id="a",
        check_in=ts(9),
        check_out=ts(10),
        work_location=WorkLocation.OFFICE,
        status=SessionStatus.COMPLETED,
        breaks=(Break(break_id="b", start_time=ts(9, 30), end_time=ts(10, 30)),),
    )

    with pytest.raises(InvariantViolation):
        session.check_invariants()
