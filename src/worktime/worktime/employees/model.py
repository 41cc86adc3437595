from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Employee:
    """Directory entry. Identity and profile data are owned upstream."""

    employee_id: int
    full_name: str
    dept_id: Optional[int] = None
    shift_id: Optional[int] = None
    timezone: Optional[str] = None
    is_active: bool = True
    employed_since: Optional[date] = None
