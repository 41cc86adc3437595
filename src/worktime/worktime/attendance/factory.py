from __future__ import annotations

from dataclasses import dataclass

from .strategies.base import DayFacts, VerdictStrategy
from .strategies.day_off_strategy import DayOffStrategy
from .strategies.pending_correction_strategy import PendingCorrectionStrategy
from .strategies.worked_hours_strategy import WorkedHoursStrategy


@dataclass
class VerdictStrategyFactory:
    """Factory Pattern: choose the verdict strategy for a finished day."""

    def for_day(self, facts: DayFacts) -> VerdictStrategy:
        if facts.has_open_correction or facts.has_open_session:
            return PendingCorrectionStrategy()

        below_half_day = facts.worked_minutes < facts.policy.half_day_threshold
        if below_half_day and (facts.is_holiday or facts.is_on_leave):
            return DayOffStrategy()
        return WorkedHoursStrategy()
