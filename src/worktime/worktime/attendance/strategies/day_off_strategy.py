from __future__ import annotations

from ...core.enums import AttendanceStatus
from .base import DayFacts, StatusDecision, VerdictStrategy


class DayOffStrategy(VerdictStrategy):
    """Holiday or approved leave instead of absent. Holiday wins."""

    def decide(self, facts: DayFacts) -> StatusDecision:
        if facts.is_holiday:
            return StatusDecision(status=AttendanceStatus.HOLIDAY, reason="Holiday")
        return StatusDecision(status=AttendanceStatus.LEAVE, reason="Approved leave")
