from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

from ..common.datetime_utils import floor_minutes
from ..core.enums import AttendanceStatus, HalfDayType, SessionStatus, WorkLocation
from ..core.exceptions import InvariantViolation


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Break:
    """A break inside a work session. Open while ``end_time`` is None."""

    break_id: str
    start_time: datetime
    end_time: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration_minutes(self) -> int:
        if self.end_time is None:
            return 0
        return max(0, floor_minutes(self.end_time - self.start_time))


@dataclass(frozen=True)
class Session:
    """One clock-in/clock-out span of an attendance day."""

    session_id: str
    check_in: datetime
    work_location: WorkLocation
    status: SessionStatus = SessionStatus.ACTIVE
    check_out: Optional[datetime] = None
    breaks: Tuple[Break, ...] = ()
    location_details: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in (SessionStatus.ACTIVE, SessionStatus.ON_BREAK)

    @property
    def open_break(self) -> Optional[Break]:
        return next((b for b in self.breaks if b.is_open), None)

    @property
    def break_minutes(self) -> int:
        return sum(b.duration_minutes for b in self.breaks)

    @property
    def worked_minutes(self) -> int:
        if self.check_out is None:
            return 0
        paused = timedelta(0)
        for b in self.breaks:
            if b.end_time is not None:
                paused += b.end_time - b.start_time
        return max(0, floor_minutes(self.check_out - self.check_in - paused))

    def check_invariants(self) -> None:
        open_breaks = [b for b in self.breaks if b.is_open]
        if len(open_breaks) > 1:
            raise InvariantViolation(f"Session {self.session_id} has more than one open break")
        if open_breaks and self.status != SessionStatus.ON_BREAK:
            raise InvariantViolation(f"Session {self.session_id} has an open break but is {self.status.value}")
        if self.status == SessionStatus.ON_BREAK and not open_breaks:
            raise InvariantViolation(f"Session {self.session_id} is on break without an open break")

        for b in self.breaks:
            if b.start_time < self.check_in:
                raise InvariantViolation(f"Break {b.break_id} starts before its session")
            if b.end_time is not None and b.end_time < b.start_time:
                raise InvariantViolation(f"Break {b.break_id} ends before it starts")

        if self.status == SessionStatus.COMPLETED:
            if self.check_out is None:
                raise InvariantViolation(f"Completed session {self.session_id} has no check-out")
            if self.check_out < self.check_in:
                raise InvariantViolation(f"Session {self.session_id} checks out before it checks in")
            for b in self.breaks:
                if b.end_time is None or b.end_time > self.check_out:
                    raise InvariantViolation(f"Break {b.break_id} extends past its session")
            if self.break_minutes > floor_minutes(self.check_out - self.check_in):
                raise InvariantViolation(f"Session {self.session_id} has more break than work span")
        elif self.check_out is not None:
            raise InvariantViolation(f"Open session {self.session_id} has a check-out")


@dataclass(frozen=True)
class AttendanceRecord:
    """One employee's attendance for one calendar date."""

    employee_id: int
    work_date: date
    record_id: Optional[int] = None
    sessions: Tuple[Session, ...] = ()
    status: AttendanceStatus = AttendanceStatus.NOT_STARTED
    status_reason: Optional[str] = None
    half_day_type: Optional[HalfDayType] = None
    finalized: bool = False
    finalized_at: Optional[datetime] = None

    # Pre-session rows only carry these two; kept in sync for older readers.
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None

    worked_minutes: int = 0
    break_minutes: int = 0
    late_minutes: int = 0
    early_departure_minutes: int = 0
    overtime_minutes: int = 0

    correction_revision: int = 0
    version: int = 0

    @property
    def is_late(self) -> bool:
        return self.late_minutes > 0

    @property
    def active_session(self) -> Optional[Session]:
        return next((s for s in self.sessions if s.is_open), None)

    def effective_sessions(self) -> Tuple[Session, ...]:
        """Sessions, or one synthesized from the legacy clock fields."""
        if self.sessions or self.clock_in is None:
            return self.sessions
        legacy_id = f"legacy-{self.record_id or 0}"
        if self.clock_out is None:
            return (Session(session_id=legacy_id, check_in=self.clock_in, work_location=WorkLocation.OFFICE),)
        return (
            Session(
                session_id=legacy_id,
                check_in=self.clock_in,
                check_out=self.clock_out,
                work_location=WorkLocation.OFFICE,
                status=SessionStatus.COMPLETED,
            ),
        )

    def with_sessions(self, sessions: Tuple[Session, ...]) -> "AttendanceRecord":
        """Replace sessions and resync the legacy fields and totals."""
        closed = [s for s in sessions if s.check_out is not None]
        return replace(
            self,
            sessions=tuple(sessions),
            clock_in=sessions[0].check_in if sessions else None,
            clock_out=closed[-1].check_out if closed and not any(s.is_open for s in sessions) else None,
            worked_minutes=sum(s.worked_minutes for s in sessions),
            break_minutes=sum(s.break_minutes for s in sessions),
        )

    def replace_session(self, session: Session) -> "AttendanceRecord":
        sessions = tuple(session if s.session_id == session.session_id else s for s in self.sessions)
        return self.with_sessions(sessions)

    def check_invariants(self) -> None:
        open_sessions = [s for s in self.sessions if s.is_open]
        if len(open_sessions) > 1:
            raise InvariantViolation(
                f"Record {self.employee_id}/{self.work_date} has {len(open_sessions)} open sessions"
            )
        for s in self.sessions:
            s.check_invariants()
        if self.finalized and not self.status.is_final:
            raise InvariantViolation(f"Finalized record carries LIVE status {self.status.value}")
        if not self.finalized and self.status.is_final:
            raise InvariantViolation(f"Unfinalized record carries FINAL status {self.status.value}")


@dataclass(frozen=True)
class RecordKey:
    employee_id: int
    work_date: date


@dataclass
class RecordTransaction:
    """Handle yielded by ``AttendanceRepository.lock_for_update``.

    ``record`` is the locked row (None if it does not exist). Call ``save``
    to stage the new value; it is written when the block exits cleanly.
    """

    record: Optional[AttendanceRecord]
    pending: Optional[AttendanceRecord] = field(default=None)

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        record.check_invariants()
        self.pending = record
        return record
