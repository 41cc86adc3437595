from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple, Type

from ..core.enums import AttendanceStatus, LiveEvent, SessionStatus
from ..core.exceptions import (
    AlreadyActiveSession,
    BreakInProgress,
    NoActiveBreak,
    NoActiveSession,
    RecordFinalized,
    SequencingError,
    SessionLimitReached,
)
from ..shifts.model import ShiftPolicy
from .factory import VerdictStrategyFactory
from .lateness import anchor_shift_end, anchor_shift_start, compute_early_departure, compute_late
from .model import AttendanceRecord, Session
from .strategies.base import DayFacts, StatusDecision
from .time_normalizer import resolve_local, to_local

S = AttendanceStatus
E = LiveEvent

LIVE_TRANSITIONS: Dict[Tuple[AttendanceStatus, LiveEvent], AttendanceStatus] = {
    (S.NOT_STARTED, E.START_SESSION): S.IN_PROGRESS,
    (S.COMPLETED, E.START_SESSION): S.IN_PROGRESS,
    (S.IN_PROGRESS, E.START_BREAK): S.ON_BREAK,
    (S.ON_BREAK, E.END_BREAK): S.IN_PROGRESS,
    (S.IN_PROGRESS, E.END_SESSION): S.COMPLETED,
}

ILLEGAL_EVENTS: Dict[Tuple[AttendanceStatus, LiveEvent], Type[SequencingError]] = {
    (S.IN_PROGRESS, E.START_SESSION): AlreadyActiveSession,
    (S.ON_BREAK, E.START_SESSION): AlreadyActiveSession,
    (S.NOT_STARTED, E.END_SESSION): NoActiveSession,
    (S.COMPLETED, E.END_SESSION): NoActiveSession,
    (S.ON_BREAK, E.END_SESSION): BreakInProgress,
    (S.ON_BREAK, E.START_BREAK): BreakInProgress,
    (S.NOT_STARTED, E.START_BREAK): NoActiveSession,
    (S.COMPLETED, E.START_BREAK): NoActiveSession,
    (S.IN_PROGRESS, E.END_BREAK): NoActiveBreak,
    (S.NOT_STARTED, E.END_BREAK): NoActiveSession,
    (S.COMPLETED, E.END_BREAK): NoActiveSession,
}

_MESSAGES = {
    AlreadyActiveSession: "A session is already active for this day",
    NoActiveSession: "No active session",
    BreakInProgress: "A break is in progress",
    NoActiveBreak: "No active break",
}


@dataclass(frozen=True)
class DayTimings:
    first_clock_in_local: Optional[datetime] = None
    last_clock_out_local: Optional[datetime] = None
    shift_midpoint_local: Optional[datetime] = None
    late_minutes: int = 0
    early_departure_minutes: int = 0


def live_status(record: AttendanceRecord) -> AttendanceStatus:
    sessions = record.effective_sessions()
    if not sessions:
        return S.NOT_STARTED
    active = next((s for s in sessions if s.is_open), None)
    if active is None:
        return S.COMPLETED
    if active.status == SessionStatus.ON_BREAK:
        return S.ON_BREAK
    return S.IN_PROGRESS


def next_live_state(
    current: AttendanceStatus, event: LiveEvent, *, allow_multiple_sessions: bool = True
) -> AttendanceStatus:
    """LIVE state after ``event``; raises the matching sequencing error if illegal."""
    if current.is_final:
        raise RecordFinalized(f"Attendance is already finalized as {current.value}")
    if current == S.COMPLETED and event == E.START_SESSION and not allow_multiple_sessions:
        raise SessionLimitReached("Only one session per day is allowed")

    nxt = LIVE_TRANSITIONS.get((current, event))
    if nxt is not None:
        return nxt
    error = ILLEGAL_EVENTS.get((current, event), SequencingError)
    raise error(_MESSAGES.get(error, f"Cannot {event.value} while {current.value}"))


def _local(session: Session, value: datetime, zone) -> datetime:
    # Pre-session rows were written by older clients and may be double-converted.
    if session.session_id.startswith("legacy-"):
        return resolve_local(value, zone)
    return to_local(value, zone)


def measure_day(record: AttendanceRecord, policy: ShiftPolicy) -> DayTimings:
    sessions = record.effective_sessions()
    if not sessions:
        return DayTimings()

    zone = policy.zone()
    first = sessions[0]
    first_in = _local(first, first.check_in, zone)

    closed = [s for s in sessions if s.check_out is not None]
    last_out = None
    if closed and not any(s.is_open for s in sessions):
        last = closed[-1]
        last_out = _local(last, last.check_out, zone)

    shift_start = anchor_shift_start(first_in, policy.shift_start_time)
    shift_end = anchor_shift_end(shift_start.date(), policy.shift_start_time, policy.shift_end_time)
    midpoint = shift_start + (shift_end - shift_start) / 2

    return DayTimings(
        first_clock_in_local=first_in,
        last_clock_out_local=last_out,
        shift_midpoint_local=midpoint,
        late_minutes=compute_late(first_in, shift_start, policy.grace_period_minutes),
        early_departure_minutes=compute_early_departure(last_out, shift_end) if last_out else 0,
    )


def worked_minutes(record: AttendanceRecord) -> int:
    return sum(s.worked_minutes for s in record.effective_sessions())


class StatusClassifier:
    def __init__(self, strategy_factory: VerdictStrategyFactory | None = None):
        self._factory = strategy_factory or VerdictStrategyFactory()

    live_status = staticmethod(live_status)
    next_live_state = staticmethod(next_live_state)

    def build_facts(
        self,
        record: AttendanceRecord,
        policy: ShiftPolicy,
        *,
        has_open_correction: bool = False,
        is_holiday: bool = False,
        is_on_leave: bool = False,
        timings: DayTimings | None = None,
    ) -> DayFacts:
        timings = timings or measure_day(record, policy)
        sessions = record.effective_sessions()
        return DayFacts(
            policy=policy,
            worked_minutes=worked_minutes(record),
            has_clock_in=bool(sessions),
            has_open_session=any(s.is_open for s in sessions),
            has_open_correction=has_open_correction,
            is_holiday=is_holiday,
            is_on_leave=is_on_leave,
            first_clock_in_local=timings.first_clock_in_local,
            shift_midpoint_local=timings.shift_midpoint_local,
        )

    def final_decision(self, facts: DayFacts) -> StatusDecision:
        strategy = self._factory.for_day(facts)
        return strategy.decide(facts)
