from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import date
from typing import Optional, Protocol, Sequence

from .model import AttendanceRecord, RecordKey, RecordTransaction


class AttendanceRepository(Protocol):
    def lock_for_update(
        self, employee_id: int, work_date: date, *, create: bool = False
    ) -> AbstractContextManager[RecordTransaction]:
        """Open a transaction holding the record's row lock.

        With ``create=True`` a ``not_started`` row is inserted first when the
        day has none. The staged ``save`` is written when the block exits
        without error; ``ConcurrentModification`` is raised if the row's
        version moved underneath.
        """

        raise NotImplementedError

    def get(self, employee_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_by_id(self, record_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def list_for_employee(self, employee_id: int, start: date, end: date) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_unfinalized(self, up_to: date) -> Sequence[RecordKey]:
        raise NotImplementedError

    def ensure_record(self, employee_id: int, work_date: date) -> bool:
        """Insert a ``not_started`` row if none exists. True when one was created."""

        raise NotImplementedError
