from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceStatus, HalfDayType
from ...shifts.model import ShiftPolicy


@dataclass(frozen=True)
class StatusDecision:
    status: AttendanceStatus
    reason: Optional[str] = None
    half_day_type: Optional[HalfDayType] = None


@dataclass(frozen=True)
class DayFacts:
    """Everything the final verdict for one employee-day depends on."""

    policy: ShiftPolicy
    worked_minutes: int
    has_clock_in: bool
    has_open_session: bool = False
    has_open_correction: bool = False
    is_holiday: bool = False
    is_on_leave: bool = False
    first_clock_in_local: Optional[datetime] = None
    shift_midpoint_local: Optional[datetime] = None


class VerdictStrategy(ABC):
    """Strategy Pattern: encapsulate how a day-end verdict is decided."""

    @abstractmethod
    def decide(self, facts: DayFacts) -> StatusDecision:
        raise NotImplementedError
