from __future__ import annotations

from ...core.constants import REASON_MISSED_CLOCK_OUT
from ...core.enums import AttendanceStatus
from .base import DayFacts, StatusDecision, VerdictStrategy


class PendingCorrectionStrategy(VerdictStrategy):
    """Open correction request, or a session nobody clocked out of."""

    def decide(self, facts: DayFacts) -> StatusDecision:
        if facts.has_open_session:
            return StatusDecision(status=AttendanceStatus.PENDING_CORRECTION, reason=REASON_MISSED_CLOCK_OUT)
        return StatusDecision(status=AttendanceStatus.PENDING_CORRECTION, reason="Correction request pending")
