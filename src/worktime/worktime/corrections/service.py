from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from ..attendance.classifier import live_status
from ..attendance.model import AttendanceRecord, Break, Session, new_id
from ..attendance.repository import AttendanceRepository
from ..attendance.time_normalizer import combine_local, local_date, resolve_local, to_utc
from ..common.datetime_utils import parse_hhmm, utc_now, zone_for
from ..common.validators import require_choice, require_non_empty
from ..core.constants import DEFAULT_TIMEZONE
from ..core.enums import CorrectionStatus, IssueType, SessionStatus, WorkLocation
from ..core.exceptions import (
    AuthorizationError,
    CollaboratorUnavailable,
    ConflictError,
    MissingShiftPolicy,
    NotFoundError,
    ResolutionError,
    StaleRecordConflict,
    ValidationError,
)
from ..finalization.service import FinalizationService
from ..shifts.repository import ShiftRepository
from .model import CorrectionRequest, NewCorrectionRequest
from .repository import CorrectionRepository

logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^\d{1,2}:\d{2}$")


def _clip_breaks(breaks: Tuple[Break, ...], lo: datetime, hi: Optional[datetime]) -> Tuple[Break, ...]:
    clipped: List[Break] = []
    for b in breaks:
        start = max(b.start_time, lo)
        end = b.end_time if b.end_time is not None else hi
        if hi is not None and end is not None:
            end = min(end, hi)
        if end is not None and end <= start:
            continue
        if hi is not None and start >= hi:
            continue
        clipped.append(replace(b, start_time=start, end_time=end))
    return tuple(clipped)


def apply_corrected_times(
    sessions: Tuple[Session, ...],
    clock_in: Optional[datetime],
    clock_out: Optional[datetime],
) -> Tuple[Session, ...]:
    """Move the day's first check-in and last check-out, clipping whatever falls outside."""
    if not sessions:
        if clock_in is None:
            raise ValidationError("A clock-in time is required for a day without sessions")
        return (
            Session(
                session_id=new_id(),
                check_in=clock_in,
                check_out=clock_out,
                work_location=WorkLocation.OFFICE,
                status=SessionStatus.COMPLETED if clock_out else SessionStatus.ACTIVE,
            ),
        )

    lo = clock_in or sessions[0].check_in
    out: List[Session] = []
    for idx, s in enumerate(sessions):
        is_last = idx == len(sessions) - 1
        check_in = max(s.check_in, lo) if idx > 0 else lo
        check_out = s.check_out
        if is_last and clock_out is not None:
            check_out = clock_out
        elif clock_out is not None and check_out is not None:
            check_out = min(check_out, clock_out)

        if clock_out is not None and check_in >= clock_out:
            continue
        if check_out is not None and check_out <= check_in:
            continue

        breaks = _clip_breaks(s.breaks, check_in, check_out)
        status = SessionStatus.COMPLETED if check_out is not None else s.status
        if status == SessionStatus.ON_BREAK and not any(b.end_time is None for b in breaks):
            status = SessionStatus.ACTIVE
        out.append(replace(s, check_in=check_in, check_out=check_out, status=status, breaks=breaks))

    if not out:
        if clock_in is None or clock_out is None:
            raise ValidationError("Corrected times leave no valid session")
        return apply_corrected_times((), clock_in, clock_out)
    return tuple(out)


class CorrectionService:
    def __init__(
        self,
        corrections: CorrectionRepository,
        attendance: AttendanceRepository,
        shifts: ShiftRepository,
        finalization: FinalizationService,
        *,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self._corrections = corrections
        self._attendance = attendance
        self._shifts = shifts
        self._finalization = finalization
        self._default_timezone = default_timezone

    def _zone(self, employee_id: int):
        return zone_for(self._shifts.get_employee_timezone(int(employee_id)) or self._default_timezone)

    def _parse_time(self, value, work_date: date, zone) -> Optional[datetime]:
        """HH:MM on the work date, or a full timestamp; returned as UTC."""
        if value is None:
            return None
        if isinstance(value, str):
            v = value.strip()
            if not v:
                return None
            if _HHMM.match(v):
                return combine_local(work_date, parse_hhmm(v), zone)
        try:
            return to_utc(resolve_local(value, zone), zone)
        except ResolutionError as e:
            raise ValidationError(str(e)) from e

    def submit(
        self,
        employee_id: int,
        work_date: date,
        requested_clock_in=None,
        requested_clock_out=None,
        reason: str = "",
        issue_type: str | IssueType = IssueType.OTHER,
        *,
        now: datetime | None = None,
    ) -> CorrectionRequest:
        now = now or utc_now()
        reason = require_non_empty(reason, "reason")
        issue = issue_type if isinstance(issue_type, IssueType) else require_choice(issue_type, IssueType, "issue_type")

        zone = self._zone(employee_id)
        if work_date > local_date(now, zone):
            raise ValidationError("Cannot request a correction for a future date")

        clock_in = self._parse_time(requested_clock_in, work_date, zone)
        clock_out = self._parse_time(requested_clock_out, work_date, zone)
        if clock_in is None and clock_out is None:
            raise ValidationError("At least one of clock-in or clock-out is required")
        if clock_in is not None and clock_out is not None and clock_out <= clock_in:
            raise ValidationError("Clock-out must be after clock-in")

        if self._corrections.has_pending(employee_id, work_date):
            raise ValidationError("A pending correction request already exists for this date")

        record = self._attendance.get(employee_id, work_date)
        created = self._corrections.create(
            NewCorrectionRequest(
                employee_id=int(employee_id),
                work_date=work_date,
                reason=reason,
                issue_type=issue,
                attendance_record_id=record.record_id if record else None,
                requested_clock_in=clock_in,
                requested_clock_out=clock_out,
                base_revision=record.correction_revision if record else 0,
            ),
            now=now,
        )
        logger.info("Correction request %s filed by employee %s for %s", created.request_id, employee_id, work_date)
        return created

    def _get_pending(self, request_id: int) -> CorrectionRequest:
        req = self._corrections.get(int(request_id))
        if req is None:
            raise NotFoundError(f"Correction request {request_id} not found")
        if req.status != CorrectionStatus.PENDING:
            raise ValidationError(f"Correction request {request_id} is already {req.status.value}")
        return req

    def decide(
        self,
        request_id: int,
        approver_id: int,
        approve: bool,
        remarks: str = "",
        *,
        corrected_clock_in=None,
        corrected_clock_out=None,
        now: datetime | None = None,
    ) -> CorrectionRequest:
        now = now or utc_now()
        req = self._get_pending(request_id)
        remarks = (remarks or "").strip() or None

        if not approve:
            rejected = replace(
                req,
                status=CorrectionStatus.REJECTED,
                processed_by=int(approver_id),
                processed_at=now,
                admin_remarks=remarks,
            )
            if not self._corrections.transition(rejected, expected=CorrectionStatus.PENDING):
                raise ConflictError(f"Correction request {request_id} was processed concurrently")
            logger.info("Correction request %s rejected by %s", request_id, approver_id)
            self._refinalize_after_close(rejected, now)
            return rejected

        zone = self._zone(req.employee_id)
        clock_in = self._parse_time(corrected_clock_in, req.work_date, zone) or req.requested_clock_in
        clock_out = self._parse_time(corrected_clock_out, req.work_date, zone) or req.requested_clock_out
        if clock_in is not None and clock_out is not None and clock_out <= clock_in:
            raise ValidationError("Clock-out must be after clock-in")

        with self._attendance.lock_for_update(req.employee_id, req.work_date, create=True) as tx:
            record = tx.record
            if record.correction_revision != req.base_revision:
                raise StaleRecordConflict(
                    f"Attendance for {req.work_date} changed since request {request_id} was filed; please re-file"
                )

            sessions = record.effective_sessions()
            closed = [s for s in sessions if s.check_out is not None]
            original_in = sessions[0].check_in if sessions else None
            original_out = closed[-1].check_out if closed else None

            corrected = apply_corrected_times(sessions, clock_in, clock_out)
            if any(s.is_open for s in corrected):
                raise ValidationError("A clock-out time is required to close the open session")

            reopened = self._reopen(record.with_sessions(corrected), record)
            try:
                final = self._finalization.decide(
                    reopened, now=now, exclude_request_id=req.request_id, auto_file=False
                )
                outcome = CorrectionStatus.CORRECTED
            except MissingShiftPolicy:
                logger.warning("No shift policy for %s/%s; correction left for the sweep", req.employee_id, req.work_date)
                final = reopened
                outcome = CorrectionStatus.APPROVED
            tx.save(final)

            decided = replace(
                req,
                status=outcome,
                attendance_record_id=record.record_id,
                processed_by=int(approver_id),
                processed_at=now,
                admin_remarks=remarks,
                original_clock_in=original_in,
                original_clock_out=original_out,
                corrected_clock_in=corrected[0].check_in,
                corrected_clock_out=corrected[-1].check_out,
            )
            if not self._corrections.transition(decided, expected=CorrectionStatus.PENDING):
                raise ConflictError(f"Correction request {request_id} was processed concurrently")

        logger.info(
            "Correction request %s approved by %s: %s/%s is now %s",
            request_id,
            approver_id,
            req.employee_id,
            req.work_date,
            final.status.value,
        )
        return decided

    @staticmethod
    def _reopen(record: AttendanceRecord, previous: AttendanceRecord) -> AttendanceRecord:
        return replace(
            record,
            status=live_status(record),
            status_reason=None,
            half_day_type=None,
            finalized=False,
            finalized_at=None,
            overtime_minutes=0,
            correction_revision=previous.correction_revision + 1,
        )

    def cancel(self, request_id: int, employee_id: int, *, now: datetime | None = None) -> CorrectionRequest:
        now = now or utc_now()
        req = self._corrections.get(int(request_id))
        if req is None:
            raise NotFoundError(f"Correction request {request_id} not found")
        if req.employee_id != int(employee_id):
            raise AuthorizationError("You can only cancel your own requests")
        if req.status != CorrectionStatus.PENDING:
            raise ValidationError("Only pending requests can be cancelled")

        cancelled = replace(req, status=CorrectionStatus.CANCELLED, processed_at=now)
        if not self._corrections.transition(cancelled, expected=CorrectionStatus.PENDING):
            raise ConflictError(f"Correction request {request_id} was processed concurrently")
        self._refinalize_after_close(cancelled, now)
        return cancelled

    def _refinalize_after_close(self, req: CorrectionRequest, now: datetime) -> None:
        try:
            self._finalization.finalize_now(
                req.employee_id,
                req.work_date,
                now=now,
                exclude_request_id=req.request_id,
                auto_file=False,
                only_pending_correction=True,
            )
        except (ResolutionError, CollaboratorUnavailable) as e:
            logger.warning(
                "Could not re-finalize %s/%s after closing request %s, leaving it for the sweep: %s",
                req.employee_id,
                req.work_date,
                req.request_id,
                e,
            )
            self._finalization.release_to_sweep(req.employee_id, req.work_date, exclude_request_id=req.request_id)

    def list_for_employee(self, employee_id: int) -> Sequence[CorrectionRequest]:
        return self._corrections.list_for_employee(int(employee_id))

    def list_by_status(self, status: str | CorrectionStatus = CorrectionStatus.PENDING) -> Sequence[CorrectionRequest]:
        if not isinstance(status, CorrectionStatus):
            status = require_choice(status, CorrectionStatus, "status")
        return self._corrections.list_by_status(status)
