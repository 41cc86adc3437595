from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest

from src.worktime.worktime.attendance.model import Break, Session
from src.worktime.worktime.core.enums import AttendanceStatus, CorrectionStatus, IssueType, SessionStatus, WorkLocation
from src.worktime.worktime.core.exceptions import (
    AuthorizationError,
    CollaboratorUnavailable,
    NotFoundError,
    StaleRecordConflict,
    ValidationError,
)
from src.worktime.worktime.corrections.model import NewCorrectionRequest
from src.worktime.worktime.corrections.service import apply_corrected_times
from src.worktime.worktime.shifts.model import ShiftPolicy

WED = date(2026, 1, 21)
MIDNIGHT = datetime(2026, 1, 22, 0, 0, tzinfo=timezone.utc)
LATER = MIDNIGHT + timedelta(hours=1)
APPROVER = 99


def at(hh, mm=0):
    return datetime(2026, 1, 21, hh, mm, tzinfo=timezone.utc)


def test_missed_clock_out_is_corrected_to_present(world):
    world.tracker.start_session(3, "office", now=at(9, 0))
    world.finalization.sweep(now=MIDNIGHT)
    [auto] = world.corrections.list_for_employee(3)

    decided = world.correction_service.decide(
        auto.request_id, APPROVER, True, "Confirmed with lead", corrected_clock_out="17:30", now=LATER
    )

    assert decided.status == CorrectionStatus.CORRECTED
    assert decided.processed_by == APPROVER
    assert decided.original_clock_in == at(9, 0)
    assert decided.original_clock_out is None
    assert decided.corrected_clock_out == at(17, 30)

    record = world.attendance.get(3, WED)
    assert record.finalized
    assert record.status == AttendanceStatus.PRESENT
    assert record.worked_minutes == 510
    assert record.early_departure_minutes == 30
    assert record.overtime_minutes == 30
    assert record.correction_revision == 1
    assert record.active_session is None


def test_request_filed_before_day_end_holds_pending_then_corrects(world):
    world.tracker.start_session(1, "office", now=at(9, 0))
    world.tracker.end_session(1, now=at(12, 0))
    req = world.correction_service.submit(
        1, WED, None, "18:00", "Clock-out button failed", "system_error", now=at(12, 30)
    )

    world.finalization.sweep(now=MIDNIGHT)
    held = world.attendance.get(1, WED)
    assert held.status == AttendanceStatus.PENDING_CORRECTION
    assert held.status_reason == "Correction request pending"

    world.correction_service.decide(req.request_id, APPROVER, True, now=LATER)

    record = world.attendance.get(1, WED)
    assert record.status == AttendanceStatus.PRESENT
    assert record.worked_minutes == 540


def test_absent_day_corrected_from_nothing(world):
    world.finalization.sweep(now=MIDNIGHT)
    assert world.attendance.get(2, WED).status == AttendanceStatus.ABSENT

    req = world.correction_service.submit(2, WED, "09:00", "18:00", "Forgot to clock in", "missed_punch", now=LATER)
    assert req.base_revision == 0
    assert req.attendance_record_id == world.attendance.get(2, WED).record_id

    world.correction_service.decide(req.request_id, APPROVER, True, now=LATER)

    record = world.attendance.get(2, WED)
    assert record.status == AttendanceStatus.PRESENT
    assert len(record.sessions) == 1
    assert record.clock_in == at(9, 0)
    assert record.clock_out == at(18, 0)


def test_rejecting_missed_clock_out_refinalizes_with_closed_time_only(world):
    world.tracker.start_session(3, "office", now=at(9, 0))
    world.finalization.sweep(now=MIDNIGHT)
    [auto] = world.corrections.list_for_employee(3)

    rejected = world.correction_service.decide(auto.request_id, APPROVER, False, "No evidence", now=LATER)

    assert rejected.status == CorrectionStatus.REJECTED
    assert rejected.admin_remarks == "No evidence"
    record = world.attendance.get(3, WED)
    assert record.finalized
    assert record.status == AttendanceStatus.ABSENT
    assert record.status_reason == "Insufficient hours (0 of 240 minutes)"


def test_reject_during_calendar_outage_leaves_day_for_the_sweep(world):
    world.tracker.start_session(3, "office", now=at(9, 0))
    world.finalization.sweep(now=MIDNIGHT)
    [auto] = world.corrections.list_for_employee(3)
    world.calendar.failure = CollaboratorUnavailable("calendar service is down")

    rejected = world.correction_service.decide(auto.request_id, APPROVER, False, "No evidence", now=LATER)

    assert rejected.status == CorrectionStatus.REJECTED
    reopened = world.attendance.get(3, WED)
    assert not reopened.finalized
    assert reopened.status == AttendanceStatus.IN_PROGRESS

    world.calendar.failure = None
    world.finalization.sweep(now=LATER + timedelta(hours=1))

    record = world.attendance.get(3, WED)
    assert record.finalized
    assert record.status == AttendanceStatus.ABSENT
    assert [r.status for r in world.corrections.list_for_employee(3)] == [CorrectionStatus.REJECTED]


def test_cancelling_own_request_refinalizes(world):
    world.tracker.start_session(3, "office", now=at(9, 0))
    world.finalization.sweep(now=MIDNIGHT)
    [auto] = world.corrections.list_for_employee(3)

    with pytest.raises(AuthorizationError):
        world.correction_service.cancel(auto.request_id, 1, now=LATER)

    cancelled = world.correction_service.cancel(auto.request_id, 3, now=LATER)

    assert cancelled.status == CorrectionStatus.CANCELLED
    assert world.attendance.get(3, WED).status == AttendanceStatus.ABSENT
    with pytest.raises(ValidationError):
        world.correction_service.cancel(auto.request_id, 3, now=LATER)


def test_stale_request_is_not_applied(world):
    world.finalization.sweep(now=MIDNIGHT)
    first = world.correction_service.submit(2, WED, "09:00", "18:00", "Forgot to clock in", "missed_punch", now=LATER)
    world.correction_service.decide(first.request_id, APPROVER, True, now=LATER)
    before = world.attendance.get(2, WED)

    stale = world.corrections.create(
        NewCorrectionRequest(
            employee_id=2,
            work_date=WED,
            reason="Left early for a client visit",
            issue_type=IssueType.WRONG_TIME,
            requested_clock_out=at(17, 0),
            base_revision=0,
        ),
        now=LATER,
    )

    with pytest.raises(StaleRecordConflict):
        world.correction_service.decide(stale.request_id, APPROVER, True, now=LATER)

    assert world.corrections.get(stale.request_id).status == CorrectionStatus.PENDING
    assert world.attendance.get(2, WED) == before


def test_approval_must_close_open_session(world):
    world.tracker.start_session(3, "office", now=at(9, 0))
    world.finalization.sweep(now=MIDNIGHT)
    [auto] = world.corrections.list_for_employee(3)
    before = world.attendance.get(3, WED)

    with pytest.raises(ValidationError):
        world.correction_service.decide(auto.request_id, APPROVER, True, now=LATER)

    assert world.corrections.get(auto.request_id).status == CorrectionStatus.PENDING
    assert world.attendance.get(3, WED) == before


def test_approval_without_shift_policy_waits_for_the_sweep(world):
    world.finalization.sweep(now=MIDNIGHT)
    req = world.correction_service.submit(2, WED, "09:00", "18:00", "Forgot to clock in", "missed_punch", now=LATER)
    policy = world.shifts.policies.pop(2)

    decided = world.correction_service.decide(req.request_id, APPROVER, True, now=LATER)

    assert decided.status == CorrectionStatus.APPROVED
    reopened = world.attendance.get(2, WED)
    assert not reopened.finalized
    assert reopened.status == AttendanceStatus.COMPLETED
    assert reopened.correction_revision == 1

    world.shifts.policies[2] = policy
    world.finalization.sweep(now=LATER + timedelta(hours=1))

    assert world.attendance.get(2, WED).status == AttendanceStatus.PRESENT
    assert world.corrections.get(req.request_id).status == CorrectionStatus.CORRECTED


def test_only_pending_requests_can_be_decided(world):
    world.finalization.sweep(now=MIDNIGHT)
    req = world.correction_service.submit(2, WED, "09:00", "18:00", "Forgot to clock in", "missed_punch", now=LATER)
    world.correction_service.decide(req.request_id, APPROVER, False, now=LATER)

    with pytest.raises(ValidationError):
        world.correction_service.decide(req.request_id, APPROVER, True, now=LATER)
    with pytest.raises(NotFoundError):
        world.correction_service.decide(12345, APPROVER, True, now=LATER)


@pytest.mark.parametrize(
    "clock_in,clock_out,reason,issue,work_date",
    [
        ("09:00", "18:00", "   ", "other", WED),
        ("09:00", "18:00", "Late bus", "nope", WED),
        ("09:00", "18:00", "Late bus", "other", date(2026, 1, 23)),
        (None, None, "Late bus", "other", WED),
        ("10:00", "09:00", "Late bus", "other", WED),
        ("banana", None, "Late bus", "other", WED),
    ],
)
def test_submit_validation(world, clock_in, clock_out, reason, issue, work_date):
    with pytest.raises(ValidationError):
        world.correction_service.submit(1, work_date, clock_in, clock_out, reason, issue, now=MIDNIGHT)


def test_one_pending_request_per_day(world):
    world.correction_service.submit(1, WED, "09:00", None, "Late bus", "other", now=MIDNIGHT)

    with pytest.raises(ValidationError):
        world.correction_service.submit(1, WED, None, "18:00", "Forgot", "other", now=MIDNIGHT)


def test_requested_times_are_read_in_employee_zone(world):
    world.shifts.policies[1] = ShiftPolicy(
        shift_id=2,
        shift_name="General IST",
        shift_start_time=time(9, 0),
        shift_end_time=time(18, 0),
        timezone="Asia/Kolkata",
    )

    req = world.correction_service.submit(
        1, WED, "09:05", "2026-01-21T18:00Z", "Times were off", "wrong_time", now=MIDNIGHT
    )

    assert req.requested_clock_in == datetime(2026, 1, 21, 3, 35, tzinfo=timezone.utc)
    assert req.requested_clock_out == datetime(2026, 1, 21, 12, 30, tzinfo=timezone.utc)


def test_listing(world):
    world.correction_service.submit(1, WED, "09:00", None, "Late bus", "other", now=MIDNIGHT)

    assert len(world.correction_service.list_for_employee(1)) == 1
    assert len(world.correction_service.list_by_status("pending")) == 1
    assert world.correction_service.list_by_status("rejected") == []
    with pytest.raises(ValidationError):
        world.correction_service.list_by_status("bogus")


def test_corrected_window_clips_sessions_and_breaks():
    sessions = (
        Session(
            session_id="a",
            check_in=at(8, 0),
            check_out=at(12, 0),
            work_location=WorkLocation.OFFICE,
            status=SessionStatus.COMPLETED,
            breaks=(Break(break_id="b1", start_time=at(8, 15), end_time=at(8, 45)),),
        ),
        Session(
            session_id="c",
            check_in=at(13, 0),
            check_out=at(19, 0),
            work_location=WorkLocation.OFFICE,
            status=SessionStatus.COMPLETED,
            breaks=(Break(break_id="b2", start_time=at(17, 30), end_time=at(18, 30)),),
        ),
    )

    corrected = apply_corrected_times(sessions, at(8, 30), at(18, 0))

    assert corrected[0].check_in == at(8, 30)
    assert corrected[0].breaks[0].start_time == at(8, 30)
    assert corrected[0].breaks[0].end_time == at(8, 45)
    assert corrected[-1].check_out == at(18, 0)
    assert corrected[-1].breaks[0].end_time == at(18, 0)
    assert sum(s.worked_minutes for s in corrected) == 465
