from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from .model import ShiftPolicy


class ShiftRepository(Protocol):
    def get_policy(self, employee_id: int, work_date: date) -> Optional[ShiftPolicy]:
        """Per-date schedule override, then the employee's shift, then the department's."""

        raise NotImplementedError

    def get_employee_timezone(self, employee_id: int) -> Optional[str]:
        raise NotImplementedError
