from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from ..common.datetime_utils import utc_now, zone_for
from ..core.constants import DEFAULT_FINALIZATION_BUFFER_MINUTES, DEFAULT_HISTORY_DAYS, DEFAULT_TIMEZONE
from ..core.enums import AttendanceStatus, LiveEvent, SessionStatus, WorkLocation
from ..core.exceptions import AlreadyActiveSession, ValidationError
from ..common.validators import require_choice
from ..shifts.repository import ShiftRepository
from .classifier import StatusClassifier, live_status, measure_day, next_live_state
from .model import AttendanceRecord, Break, Session, new_id
from .repository import AttendanceRepository
from .time_normalizer import local_date, shift_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizationStatus:
    work_date: date
    status: AttendanceStatus
    finalized: bool
    shift_end: Optional[datetime]
    shift_ended: bool
    can_clock_in: bool
    can_clock_out: bool


class SessionTracker:
    """Live clock-in/out and break tracking for one employee-day at a time."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        shifts: ShiftRepository,
        classifier: StatusClassifier | None = None,
        *,
        allow_multiple_sessions: bool = True,
        default_timezone: str = DEFAULT_TIMEZONE,
        finalization_buffer_minutes: int = DEFAULT_FINALIZATION_BUFFER_MINUTES,
    ):
        self._attendance = attendance
        self._shifts = shifts
        self._classifier = classifier or StatusClassifier()
        self._allow_multiple_sessions = bool(allow_multiple_sessions)
        self._default_timezone = default_timezone
        self._buffer = timedelta(minutes=int(finalization_buffer_minutes))

    def zone_for_employee(self, employee_id: int) -> ZoneInfo:
        return zone_for(self._shifts.get_employee_timezone(int(employee_id)) or self._default_timezone)

    def work_date_for(self, employee_id: int, now: datetime) -> date:
        return local_date(now, self.zone_for_employee(employee_id))

    @staticmethod
    def _current(record: Optional[AttendanceRecord]) -> AttendanceStatus:
        if record is None:
            return AttendanceStatus.NOT_STARTED
        if record.finalized:
            return record.status
        return live_status(record)

    def _refresh(self, record: AttendanceRecord, status: AttendanceStatus) -> AttendanceRecord:
        record = replace(record, status=status, status_reason=None, half_day_type=None)
        policy = self._shifts.get_policy(record.employee_id, record.work_date)
        if policy is None or not record.sessions:
            return record
        timings = measure_day(record, policy)
        return replace(
            record,
            late_minutes=timings.late_minutes,
            early_departure_minutes=timings.early_departure_minutes,
        )

    def _open_day(self, employee_id: int, now: datetime) -> date:
        """Today, or yesterday when yesterday's session is still open."""
        today = self.work_date_for(employee_id, now)
        for day in (today, today - timedelta(days=1)):
            record = self._attendance.get(employee_id, day)
            if record is not None and not record.finalized and any(s.is_open for s in record.effective_sessions()):
                return day
        return today

    def start_session(
        self,
        employee_id: int,
        work_location: str | WorkLocation,
        location_details: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> AttendanceRecord:
        now = now or utc_now()
        location = work_location if isinstance(work_location, WorkLocation) else require_choice(work_location, WorkLocation, "work_location")
        details = (location_details or "").strip() or None
        if location == WorkLocation.CLIENT_SITE and not details:
            raise ValidationError("location_details is required for client_site")

        work_date = self.work_date_for(employee_id, now)
        yesterday = self._attendance.get(employee_id, work_date - timedelta(days=1))
        if yesterday is not None and not yesterday.finalized and yesterday.active_session is not None:
            raise AlreadyActiveSession("A session from the previous day is still active")

        with self._attendance.lock_for_update(employee_id, work_date, create=True) as tx:
            record = tx.record
            nxt = next_live_state(self._current(record), LiveEvent.START_SESSION, allow_multiple_sessions=self._allow_multiple_sessions)

            session = Session(session_id=new_id(), check_in=now, work_location=location, location_details=details)
            updated = record.with_sessions(record.effective_sessions() + (session,))
            saved = tx.save(self._refresh(updated, nxt))

        logger.info("Employee %s started session %s on %s", employee_id, session.session_id, work_date)
        return saved

    def end_session(self, employee_id: int, *, now: datetime | None = None) -> AttendanceRecord:
        now = now or utc_now()
        work_date = self._open_day(employee_id, now)

        with self._attendance.lock_for_update(employee_id, work_date) as tx:
            record = tx.record
            nxt = next_live_state(self._current(record), LiveEvent.END_SESSION)

            sessions = record.effective_sessions()
            active = next(s for s in sessions if s.is_open)
            if now < active.check_in:
                raise ValidationError("Clock-out cannot be earlier than clock-in")
            closed = replace(active, check_out=now, status=SessionStatus.COMPLETED)
            updated = record.with_sessions(tuple(closed if s.session_id == active.session_id else s for s in sessions))
            saved = tx.save(self._refresh(updated, nxt))

        logger.info("Employee %s ended session %s on %s", employee_id, active.session_id, work_date)
        return saved

    def start_break(self, employee_id: int, *, now: datetime | None = None) -> AttendanceRecord:
        now = now or utc_now()
        work_date = self._open_day(employee_id, now)

        with self._attendance.lock_for_update(employee_id, work_date) as tx:
            record = tx.record
            nxt = next_live_state(self._current(record), LiveEvent.START_BREAK)

            sessions = record.effective_sessions()
            active = next(s for s in sessions if s.is_open)
            if now < active.check_in:
                raise ValidationError("Break cannot start before the session")
            on_break = replace(
                active,
                status=SessionStatus.ON_BREAK,
                breaks=active.breaks + (Break(break_id=new_id(), start_time=now),),
            )
            updated = record.with_sessions(tuple(on_break if s.session_id == active.session_id else s for s in sessions))
            return tx.save(self._refresh(updated, nxt))

    def end_break(self, employee_id: int, *, now: datetime | None = None) -> AttendanceRecord:
        now = now or utc_now()
        work_date = self._open_day(employee_id, now)

        with self._attendance.lock_for_update(employee_id, work_date) as tx:
            record = tx.record
            nxt = next_live_state(self._current(record), LiveEvent.END_BREAK)

            sessions = record.effective_sessions()
            active = next(s for s in sessions if s.is_open)
            open_break = active.open_break
            if now < open_break.start_time:
                raise ValidationError("Break cannot end before it starts")
            breaks = tuple(replace(b, end_time=now) if b.break_id == open_break.break_id else b for b in active.breaks)
            resumed = replace(active, status=SessionStatus.ACTIVE, breaks=breaks)
            updated = record.with_sessions(tuple(resumed if s.session_id == active.session_id else s for s in sessions))
            return tx.save(self._refresh(updated, nxt))

    def get_day(self, employee_id: int, work_date: date | None = None, *, now: datetime | None = None) -> AttendanceRecord:
        """The stored record, or an unsaved ``not_started`` one."""
        if work_date is None:
            work_date = self.work_date_for(employee_id, now or utc_now())
        record = self._attendance.get(employee_id, work_date)
        return record or AttendanceRecord(employee_id=int(employee_id), work_date=work_date)

    def history(
        self,
        employee_id: int,
        start: date | None = None,
        end: date | None = None,
        *,
        now: datetime | None = None,
    ) -> Sequence[AttendanceRecord]:
        if end is None:
            end = self.work_date_for(employee_id, now or utc_now())
        if start is None:
            start = end - timedelta(days=DEFAULT_HISTORY_DAYS - 1)
        if end < start:
            raise ValidationError("end must not be before start")
        return self._attendance.list_for_employee(employee_id, start, end)

    def finalization_status(self, employee_id: int, work_date: date | None = None, *, now: datetime | None = None) -> FinalizationStatus:
        now = now or utc_now()
        record = self.get_day(employee_id, work_date, now=now)
        status = self._current(record) if record.record_id is not None else AttendanceStatus.NOT_STARTED

        shift_end = None
        shift_ended = False
        policy = self._shifts.get_policy(employee_id, record.work_date)
        if policy is not None:
            _, shift_end = shift_window(record.work_date, policy)
            shift_ended = now >= shift_end + self._buffer

        open_session = any(s.is_open for s in record.effective_sessions())
        return FinalizationStatus(
            work_date=record.work_date,
            status=status,
            finalized=record.finalized,
            shift_end=shift_end,
            shift_ended=shift_ended,
            can_clock_in=not record.finalized and not open_session and (self._allow_multiple_sessions or not record.sessions),
            can_clock_out=not record.finalized and open_session,
        )
