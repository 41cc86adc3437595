from __future__ import annotations

from datetime import date
from typing import Protocol


class CalendarRepository(Protocol):
    """Holiday and approved-leave lookups, consulted only when a day is finalized."""

    def is_holiday(self, work_date: date) -> bool:
        raise NotImplementedError

    def is_on_approved_leave(self, employee_id: int, work_date: date) -> bool:
        raise NotImplementedError

    def is_working_day(self, work_date: date) -> bool:
        raise NotImplementedError
