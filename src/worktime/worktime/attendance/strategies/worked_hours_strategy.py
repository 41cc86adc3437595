from __future__ import annotations

from ...core.constants import REASON_NO_CLOCK_IN
from ...core.enums import AttendanceStatus, HalfDayType
from .base import DayFacts, StatusDecision, VerdictStrategy


class WorkedHoursStrategy(VerdictStrategy):
    """Numeric verdict from worked minutes against the shift thresholds."""

    def decide(self, facts: DayFacts) -> StatusDecision:
        worked = facts.worked_minutes
        policy = facts.policy

        if worked >= policy.full_day_threshold:
            return StatusDecision(status=AttendanceStatus.PRESENT, half_day_type=HalfDayType.FULL_DAY)

        if worked >= policy.half_day_threshold:
            return StatusDecision(
                status=AttendanceStatus.HALF_DAY,
                reason=f"Worked {worked} of {policy.full_day_threshold} minutes",
                half_day_type=self._which_half(facts),
            )

        if not facts.has_clock_in:
            return StatusDecision(status=AttendanceStatus.ABSENT, reason=REASON_NO_CLOCK_IN)
        return StatusDecision(
            status=AttendanceStatus.ABSENT,
            reason=f"Insufficient hours ({worked} of {policy.half_day_threshold} minutes)",
        )

    @staticmethod
    def _which_half(facts: DayFacts) -> HalfDayType:
        if facts.first_clock_in_local is None or facts.shift_midpoint_local is None:
            return HalfDayType.FIRST_HALF
        if facts.first_clock_in_local < facts.shift_midpoint_local:
            return HalfDayType.FIRST_HALF
        return HalfDayType.SECOND_HALF
