from __future__ import annotations

import logging
import os
import socket
import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from ..attendance.classifier import StatusClassifier, live_status, measure_day
from ..attendance.lateness import compute_overtime
from ..attendance.model import AttendanceRecord, RecordKey
from ..attendance.repository import AttendanceRepository
from ..attendance.time_normalizer import local_date, shift_window
from ..calendar.repository import CalendarRepository
from ..common.datetime_utils import iter_dates, utc_now, zone_for
from ..core.constants import (
    DEFAULT_FINALIZATION_BUFFER_MINUTES,
    DEFAULT_FINALIZATION_LOOKBACK_DAYS,
    DEFAULT_LEASE_TTL_SECONDS,
    DEFAULT_MAX_CONSECUTIVE_COLLABORATOR_FAILURES,
    DEFAULT_TIMEZONE,
    FINALIZATION_LEASE_NAME,
    REASON_AUTO_MISSED_PUNCH,
)
from ..core.enums import AttendanceStatus, IssueType
from ..core.exceptions import (
    CollaboratorTimeout,
    CollaboratorUnavailable,
    ConflictError,
    InvariantViolation,
    MissingShiftPolicy,
    ResolutionError,
    ValidationError,
)
from ..corrections.model import NewCorrectionRequest
from ..corrections.repository import CorrectionRepository
from ..employees.model import Employee
from ..employees.repository import EmployeeDirectory
from ..shifts.model import ShiftPolicy
from ..shifts.repository import ShiftRepository
from .collaborators import BoundedCaller
from .lease import LeaseRepository

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    skipped: bool = False
    aborted: bool = False
    materialized: int = 0
    examined: int = 0
    finalized: int = 0
    not_due: int = 0
    failed: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def count(self, status: AttendanceStatus) -> None:
        self.finalized += 1
        self.by_status[status.value] = self.by_status.get(status.value, 0) + 1

    def as_dict(self) -> dict:
        return asdict(self)


class FinalizationService:
    """Turns LIVE employee-days whose shift is over into FINAL verdicts."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        shifts: ShiftRepository,
        calendar: CalendarRepository,
        corrections: CorrectionRepository,
        employees: EmployeeDirectory,
        leases: LeaseRepository,
        *,
        classifier: StatusClassifier | None = None,
        caller: BoundedCaller | None = None,
        buffer_minutes: int = DEFAULT_FINALIZATION_BUFFER_MINUTES,
        lookback_days: int = DEFAULT_FINALIZATION_LOOKBACK_DAYS,
        lease_ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_COLLABORATOR_FAILURES,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self._attendance = attendance
        self._shifts = shifts
        self._calendar = calendar
        self._corrections = corrections
        self._employees = employees
        self._leases = leases
        self._classifier = classifier or StatusClassifier()
        self._caller = caller or BoundedCaller()
        self._buffer = timedelta(minutes=int(buffer_minutes))
        self._lookback_days = int(lookback_days)
        self._lease_ttl = int(lease_ttl_seconds)
        self._max_failures = max(1, int(max_consecutive_failures))
        self._default_timezone = default_timezone

    # ---- entry points ----

    def sweep(self, *, now: datetime | None = None) -> SweepResult:
        """Finalize every eligible unfinalized record up to ``now``."""
        now = now or utc_now()
        return self._locked_run(now, start=None, end=None)

    def backfill(self, start: date, end: date, *, now: datetime | None = None) -> SweepResult:
        """Re-run materialization and finalization for an explicit date range."""
        if end < start:
            raise ValidationError("end must not be before start")
        now = now or utc_now()
        return self._locked_run(now, start=start, end=end)

    def finalize_now(
        self,
        employee_id: int,
        work_date: date,
        *,
        now: datetime | None = None,
        exclude_request_id: Optional[int] = None,
        auto_file: bool = True,
        only_pending_correction: bool = False,
    ) -> Optional[AttendanceRecord]:
        """Finalize one record regardless of the shift-end check.

        With ``only_pending_correction`` only a record already finalized as
        ``pending_correction`` with no other open request is re-decided.
        Returns None when there was nothing to do.
        """
        now = now or utc_now()
        with self._attendance.lock_for_update(employee_id, work_date) as tx:
            record = tx.record
            if record is None:
                return None
            if only_pending_correction:
                if not (record.finalized and record.status == AttendanceStatus.PENDING_CORRECTION):
                    return None
                if self._corrections.has_pending(employee_id, work_date, exclude_request_id=exclude_request_id):
                    return None
            elif record.finalized:
                return None
            final = self.decide(record, now=now, exclude_request_id=exclude_request_id, auto_file=auto_file)
            return tx.save(final)

    def decide(
        self,
        record: AttendanceRecord,
        *,
        now: datetime,
        policy: ShiftPolicy | None = None,
        exclude_request_id: Optional[int] = None,
        auto_file: bool = True,
    ) -> AttendanceRecord:
        """The FINAL form of ``record``. Callers hold the record lock and save it."""
        employee_id, work_date = record.employee_id, record.work_date
        policy = policy or self._resolve_policy(employee_id, work_date)

        is_holiday = self._caller.call("holiday lookup", self._calendar.is_holiday, work_date)
        is_on_leave = self._caller.call("leave lookup", self._calendar.is_on_approved_leave, employee_id, work_date)
        has_open_correction = self._corrections.has_pending(employee_id, work_date, exclude_request_id=exclude_request_id)

        timings = measure_day(record, policy)
        facts = self._classifier.build_facts(
            record,
            policy,
            has_open_correction=has_open_correction,
            is_holiday=is_holiday,
            is_on_leave=is_on_leave,
            timings=timings,
        )
        if auto_file and facts.has_open_session and not has_open_correction:
            if self._corrections.was_contested(employee_id, work_date, revision=record.correction_revision):
                auto_file = False
        if not auto_file and facts.has_open_session:
            # Missed clock-out already contested and closed: count what was closed.
            facts = replace(facts, has_open_session=False)
        decision = self._classifier.final_decision(facts)

        if auto_file and facts.has_open_session and not has_open_correction:
            self._file_missed_punch(record, now)
        # Approved requests whose times were applied without a policy are settled here.
        if self._corrections.mark_applied(employee_id, work_date, now=now):
            logger.info("Settled approved corrections for %s/%s", employee_id, work_date)

        return replace(
            record,
            status=decision.status,
            status_reason=decision.reason,
            half_day_type=decision.half_day_type,
            finalized=True,
            finalized_at=now,
            worked_minutes=facts.worked_minutes,
            late_minutes=timings.late_minutes,
            early_departure_minutes=timings.early_departure_minutes,
            overtime_minutes=compute_overtime(facts.worked_minutes, policy.full_day_threshold),
        )

    def release_to_sweep(
        self, employee_id: int, work_date: date, *, exclude_request_id: Optional[int] = None
    ) -> Optional[AttendanceRecord]:
        """Unfinalize a ``pending_correction`` day that nothing holds any more.

        Used when re-deciding it right away failed; the next sweep picks it up.
        """
        with self._attendance.lock_for_update(employee_id, work_date) as tx:
            record = tx.record
            if record is None or not record.finalized or record.status != AttendanceStatus.PENDING_CORRECTION:
                return None
            if self._corrections.has_pending(employee_id, work_date, exclude_request_id=exclude_request_id):
                return None
            reopened = replace(
                record,
                status=live_status(record),
                status_reason=None,
                half_day_type=None,
                finalized=False,
                finalized_at=None,
                overtime_minutes=0,
            )
            logger.info("Returned %s/%s to the sweep", employee_id, work_date)
            return tx.save(reopened)

    # ---- internals ----

    def _resolve_policy(self, employee_id: int, work_date: date) -> ShiftPolicy:
        policy = self._caller.call("shift lookup", self._shifts.get_policy, employee_id, work_date)
        if policy is None:
            raise MissingShiftPolicy(f"No shift policy for employee {employee_id} on {work_date}")
        return policy

    def _is_due(self, employee_id: int, work_date: date, now: datetime) -> Optional[ShiftPolicy]:
        """The day's policy once its shift end plus the buffer has passed, else None."""
        policy = self._resolve_policy(employee_id, work_date)
        _, shift_end = shift_window(work_date, policy)
        if now < shift_end + self._buffer:
            return None
        return policy

    def _employee_zone(self, employee_id: int) -> ZoneInfo:
        tz = self._caller.call("timezone lookup", self._shifts.get_employee_timezone, employee_id)
        return zone_for(tz or self._default_timezone)

    def _file_missed_punch(self, record: AttendanceRecord, now: datetime) -> None:
        sessions = record.effective_sessions()
        self._corrections.create(
            NewCorrectionRequest(
                employee_id=record.employee_id,
                work_date=record.work_date,
                reason=REASON_AUTO_MISSED_PUNCH,
                issue_type=IssueType.MISSED_PUNCH,
                attendance_record_id=record.record_id,
                requested_clock_in=sessions[0].check_in if sessions else None,
                base_revision=record.correction_revision,
            ),
            now=now,
        )
        logger.info("Filed missed clock-out correction for employee %s on %s", record.employee_id, record.work_date)

    def _locked_run(self, now: datetime, *, start: Optional[date], end: Optional[date]) -> SweepResult:
        run = _Run(holder=f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}", now=now)
        if not self._leases.acquire(FINALIZATION_LEASE_NAME, run.holder, now=now, ttl_seconds=self._lease_ttl):
            logger.info("Finalization skipped: another instance holds the lease")
            return SweepResult(skipped=True)

        result = SweepResult()
        completed = False
        try:
            logger.info("Finalization run started (range=%s..%s)", start or "-", end or "now")
            lease = self._leases.get(FINALIZATION_LEASE_NAME)
            since = lease.last_completed_at if lease else None
            self._materialize(run, result, since=since, start=start, end=end)
            if not result.aborted:
                self._finalize_due(run, result, start=start, end=end)
            completed = not result.aborted and start is None
        finally:
            self._leases.release(FINALIZATION_LEASE_NAME, run.holder, completed_at=now if completed else None)

        logger.info(
            "Finalization run done: materialized=%s examined=%s finalized=%s not_due=%s failed=%s aborted=%s by_status=%s",
            result.materialized,
            result.examined,
            result.finalized,
            result.not_due,
            result.failed,
            result.aborted,
            result.by_status,
        )
        return result

    def _keep_lease(self, run: _Run, result: SweepResult) -> bool:
        if self._leases.renew(FINALIZATION_LEASE_NAME, run.holder, now=run.clock(), ttl_seconds=self._lease_ttl):
            return True
        logger.error("Finalization lease lost to another instance, stopping run")
        result.aborted = True
        return False

    def _failed(self, run: _Run, result: SweepResult, where: str, error: Exception) -> None:
        """Count a per-record failure. A streak of timeouts aborts the run."""
        result.failed += 1
        result.errors.append(f"{where}: {error}")
        if isinstance(error, CollaboratorTimeout):
            run.timeouts += 1
            logger.warning("Timeout at %s: %s", where, error)
            if run.timeouts >= self._max_failures:
                logger.error("%s consecutive collaborator timeouts, aborting run", run.timeouts)
                result.aborted = True
            return
        run.timeouts = 0
        logger.warning("Could not finalize %s: %s", where, error)

    def _materialize(
        self,
        run: _Run,
        result: SweepResult,
        *,
        since: Optional[datetime],
        start: Optional[date],
        end: Optional[date],
    ) -> None:
        """Create ``not_started`` rows for due working days nobody clocked in on."""
        now = run.now
        try:
            employees: Sequence[Employee] = self._employees.list_active()
        except CollaboratorUnavailable as e:
            logger.error("Employee directory unavailable, aborting run: %s", e)
            result.aborted = True
            return

        for emp in employees:
            if not self._keep_lease(run, result):
                return
            try:
                zone = self._employee_zone(emp.employee_id)
            except CollaboratorUnavailable as e:
                logger.error("Shift service unavailable, aborting run: %s", e)
                result.aborted = True
                return
            except ResolutionError as e:
                self._failed(run, result, f"{emp.employee_id}", e)
                if result.aborted:
                    return
                continue

            today = local_date(now, zone)
            last = min(end, today) if end else today
            if start is not None:
                first = start
            elif since is not None:
                first = local_date(since, zone)
            else:
                first = today - timedelta(days=self._lookback_days)
            if emp.employed_since and emp.employed_since > first:
                first = emp.employed_since

            for day in iter_dates(first, last):
                if not self._calendar.is_working_day(day) or self._attendance.get(emp.employee_id, day) is not None:
                    continue
                try:
                    due = self._is_due(emp.employee_id, day, now)
                except CollaboratorUnavailable as e:
                    logger.error("Shift service unavailable, aborting run: %s", e)
                    result.aborted = True
                    return
                except ResolutionError as e:
                    self._failed(run, result, f"{emp.employee_id}/{day}", e)
                    if result.aborted:
                        return
                    continue
                run.timeouts = 0
                if due is not None and self._attendance.ensure_record(emp.employee_id, day):
                    result.materialized += 1

    def _finalize_due(self, run: _Run, result: SweepResult, *, start: Optional[date], end: Optional[date]) -> None:
        # Local dates can run a day ahead of UTC.
        up_to = end or (run.now + timedelta(days=1)).date()
        keys: List[RecordKey] = [k for k in self._attendance.list_unfinalized(up_to) if start is None or k.work_date >= start]

        for key in keys:
            if not self._keep_lease(run, result):
                return
            result.examined += 1
            where = f"{key.employee_id}/{key.work_date}"
            try:
                record = self._finalize_if_due(key, run.now)
            except CollaboratorUnavailable as e:
                logger.error("Collaborator unavailable at %s, aborting run: %s", where, e)
                result.errors.append(f"{where}: {e}")
                result.aborted = True
                return
            except (ResolutionError, InvariantViolation, ConflictError) as e:
                self._failed(run, result, where, e)
                if result.aborted:
                    return
                continue
            except Exception as e:
                run.timeouts = 0
                result.failed += 1
                result.errors.append(f"{where}: {e}")
                logger.exception("Unexpected error finalizing %s", where)
                continue

            run.timeouts = 0
            if record is None:
                result.not_due += 1
            else:
                result.count(record.status)

    def _finalize_if_due(self, key: RecordKey, now: datetime) -> Optional[AttendanceRecord]:
        policy = self._is_due(key.employee_id, key.work_date, now)
        if policy is None:
            return None

        with self._attendance.lock_for_update(key.employee_id, key.work_date) as tx:
            record = tx.record
            if record is None or record.finalized:
                return None
            return tx.save(self.decide(record, now=now, policy=policy))


@dataclass
class _Run:
    """Bookkeeping for one locked run."""

    holder: str
    now: datetime
    started: float = field(default_factory=time.monotonic)
    timeouts: int = 0

    def clock(self) -> datetime:
        """``now`` moved forward by the time the run has taken so far."""
        return self.now + timedelta(seconds=time.monotonic() - self.started)
