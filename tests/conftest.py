from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, time, timedelta
from types import SimpleNamespace

import pytest

from src.worktime.worktime.attendance.classifier import StatusClassifier
from src.worktime.worktime.attendance.model import AttendanceRecord, RecordKey, RecordTransaction
from src.worktime.worktime.attendance.tracker import SessionTracker
from src.worktime.worktime.core.enums import CorrectionStatus, IssueType
from src.worktime.worktime.core.exceptions import ConcurrentModification, ValidationError
from src.worktime.worktime.corrections.model import CorrectionRequest
from src.worktime.worktime.corrections.service import CorrectionService
from src.worktime.worktime.employees.model import Employee
from src.worktime.worktime.finalization.lease import Lease
from src.worktime.worktime.finalization.service import FinalizationService
from src.worktime.worktime.shifts.model import ShiftPolicy

WED = date(2026, 1, 21)

GENERAL = ShiftPolicy(
    shift_id=1,
    shift_name="General",
    shift_start_time=time(9, 0),
    shift_end_time=time(18, 0),
    grace_period_minutes=10,
    timezone="UTC",
    break_minutes=60,
)


class InMemoryAttendanceRepo:
    def __init__(self):
        self._records: dict[tuple[int, date], AttendanceRecord] = {}
        self._locks: dict[tuple[int, date], threading.Lock] = {}
        self._guard = threading.Lock()
        self._next_id = 1

    def _lock(self, key):
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def _insert(self, employee_id, work_date) -> bool:
        key = (int(employee_id), work_date)
        with self._guard:
            if key in self._records:
                return False
            self._records[key] = AttendanceRecord(employee_id=int(employee_id), work_date=work_date, record_id=self._next_id)
            self._next_id += 1
            return True

    @contextmanager
    def lock_for_update(self, employee_id, work_date, *, create=False):
        key = (int(employee_id), work_date)
        with self._lock(key):
            created = self._insert(employee_id, work_date) if create else False
            tx = RecordTransaction(record=self._records.get(key))
            try:
                yield tx
            except BaseException:
                if created:
                    del self._records[key]
                raise
            if tx.pending is not None:
                current = self._records[key]
                if current.version != tx.pending.version:
                    raise ConcurrentModification(f"Record {key} changed underneath")
                self._records[key] = replace(tx.pending, version=current.version + 1)

    def get(self, employee_id, work_date):
        return self._records.get((int(employee_id), work_date))

    def get_by_id(self, record_id):
        return next((r for r in self._records.values() if r.record_id == record_id), None)

    def list_for_employee(self, employee_id, start, end):
        rows = [r for (e, d), r in self._records.items() if e == int(employee_id) and start <= d <= end]
        return sorted(rows, key=lambda r: r.work_date, reverse=True)

    def list_unfinalized(self, up_to):
        keys = [RecordKey(e, d) for (e, d), r in self._records.items() if not r.finalized and d <= up_to]
        return sorted(keys, key=lambda k: (k.work_date, k.employee_id))

    def ensure_record(self, employee_id, work_date):
        return self._insert(employee_id, work_date)

    # test helper
    def put(self, record: AttendanceRecord) -> AttendanceRecord:
        if record.record_id is None:
            record = replace(record, record_id=self._next_id)
            self._next_id += 1
        self._records[(record.employee_id, record.work_date)] = record
        return record


class InMemoryShiftRepo:
    def __init__(self, policies=None, timezones=None):
        self.policies: dict[int, ShiftPolicy] = dict(policies or {})
        self.timezones: dict[int, str] = dict(timezones or {})
        self.overrides: dict[tuple[int, date], ShiftPolicy] = {}

    def get_policy(self, employee_id, work_date):
        return self.overrides.get((int(employee_id), work_date)) or self.policies.get(int(employee_id))

    def get_employee_timezone(self, employee_id):
        tz = self.timezones.get(int(employee_id))
        if tz:
            return tz
        policy = self.policies.get(int(employee_id))
        return policy.timezone if policy else None


class InMemoryCalendar:
    def __init__(self):
        self.holidays: set[date] = set()
        self.leave: set[tuple[int, date]] = set()
        self.working_weekdays = (0, 1, 2, 3, 4)
        self.failure: Exception | None = None
        self.calls = 0

    def _maybe_fail(self):
        self.calls += 1
        if self.failure is not None:
            raise self.failure

    def is_holiday(self, work_date):
        self._maybe_fail()
        return work_date in self.holidays

    def is_on_approved_leave(self, employee_id, work_date):
        self._maybe_fail()
        return (int(employee_id), work_date) in self.leave

    def is_working_day(self, work_date):
        return work_date.weekday() in self.working_weekdays


class InMemoryCorrectionRepo:
    def __init__(self):
        self._items: dict[int, CorrectionRequest] = {}
        self._next_id = 1

    def create(self, new, *, now):
        if self.has_pending(new.employee_id, new.work_date):
            raise ValidationError("A pending correction request already exists for this date")
        rid = self._next_id
        self._next_id += 1
        self._items[rid] = CorrectionRequest(
            request_id=rid,
            employee_id=new.employee_id,
            work_date=new.work_date,
            reason=new.reason,
            issue_type=new.issue_type,
            status=CorrectionStatus.PENDING,
            created_at=now,
            attendance_record_id=new.attendance_record_id,
            requested_clock_in=new.requested_clock_in,
            requested_clock_out=new.requested_clock_out,
            base_revision=new.base_revision,
        )
        return self._items[rid]

    def get(self, request_id):
        return self._items.get(int(request_id))

    def has_pending(self, employee_id, work_date, *, exclude_request_id=None):
        return any(
            r.employee_id == int(employee_id)
            and r.work_date == work_date
            and r.status == CorrectionStatus.PENDING
            and r.request_id != exclude_request_id
            for r in self._items.values()
        )

    def was_contested(self, employee_id, work_date, *, revision):
        return any(
            r.employee_id == int(employee_id)
            and r.work_date == work_date
            and r.issue_type == IssueType.MISSED_PUNCH
            and r.base_revision == revision
            and r.status in (CorrectionStatus.REJECTED, CorrectionStatus.CANCELLED)
            for r in self._items.values()
        )

    def mark_applied(self, employee_id, work_date, *, now):
        settled = 0
        for rid, r in list(self._items.items()):
            if r.employee_id == int(employee_id) and r.work_date == work_date and r.status == CorrectionStatus.APPROVED:
                self._items[rid] = replace(r, status=CorrectionStatus.CORRECTED, processed_at=r.processed_at or now)
                settled += 1
        return settled

    def transition(self, request, *, expected):
        current = self._items.get(request.request_id)
        if current is None or current.status != expected:
            return False
        self._items[request.request_id] = request
        return True

    def list_for_employee(self, employee_id, *, limit=200):
        return [r for r in self._items.values() if r.employee_id == int(employee_id)][:limit]

    def list_by_status(self, status, *, limit=500):
        return [r for r in self._items.values() if r.status == status][:limit]


class InMemoryEmployees:
    def __init__(self, employees=()):
        self.employees = list(employees)

    def get_by_id(self, employee_id):
        return next((e for e in self.employees if e.employee_id == int(employee_id)), None)

    def list_active(self):
        return [e for e in self.employees if e.is_active]


class InMemoryLeases:
    def __init__(self):
        self._leases: dict[str, Lease] = {}

    def acquire(self, name, holder, *, now, ttl_seconds):
        lease = self._leases.get(name) or Lease(name=name, holder=None, expires_at=None)
        if lease.holder is not None and lease.holder != holder and lease.expires_at and lease.expires_at >= now:
            return False
        self._leases[name] = replace(lease, holder=holder, expires_at=now + timedelta(seconds=ttl_seconds))
        return True

    def renew(self, name, holder, *, now, ttl_seconds):
        lease = self._leases.get(name)
        if lease is None or lease.holder != holder:
            return False
        self._leases[name] = replace(lease, expires_at=now + timedelta(seconds=ttl_seconds))
        return True

    def release(self, name, holder, *, completed_at=None):
        lease = self._leases.get(name)
        if lease is None or lease.holder != holder:
            return
        self._leases[name] = replace(
            lease, holder=None, expires_at=None, last_completed_at=completed_at or lease.last_completed_at
        )

    def get(self, name):
        return self._leases.get(name)


class InlineCaller:
    """Runs collaborator calls on the calling thread."""

    def call(self, description, fn, *args):
        return fn(*args)


@pytest.fixture
def world():
    attendance = InMemoryAttendanceRepo()
    shifts = InMemoryShiftRepo(policies={1: GENERAL, 2: GENERAL, 3: GENERAL})
    calendar = InMemoryCalendar()
    corrections = InMemoryCorrectionRepo()
    employees = InMemoryEmployees(
        [Employee(employee_id=i, full_name=f"Employee {i}", employed_since=WED) for i in (1, 2, 3)]
    )
    leases = InMemoryLeases()
    classifier = StatusClassifier()

    tracker = SessionTracker(attendance, shifts, classifier)
    finalization = FinalizationService(
        attendance,
        shifts,
        calendar,
        corrections,
        employees,
        leases,
        classifier=classifier,
        caller=InlineCaller(),
        buffer_minutes=15,
        max_consecutive_failures=3,
    )
    correction_service = CorrectionService(corrections, attendance, shifts, finalization)

    return SimpleNamespace(
        attendance=attendance,
        shifts=shifts,
        calendar=calendar,
        corrections=corrections,
        employees=employees,
        leases=leases,
        classifier=classifier,
        tracker=tracker,
        finalization=finalization,
        correction_service=correction_service,
    )
