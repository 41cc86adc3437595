from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from ..common.datetime_utils import floor_minutes, zone_for


@dataclass(frozen=True)
class ShiftPolicy:
    """The shift an employee works on a given date."""

    shift_id: int
    shift_name: str
    shift_start_time: time
    shift_end_time: time
    grace_period_minutes: int = 0
    timezone: str = "UTC"
    break_minutes: int = 0
    full_day_minutes: Optional[int] = None
    half_day_minutes: Optional[int] = None

    def zone(self) -> ZoneInfo:
        return zone_for(self.timezone)

    @property
    def is_overnight(self) -> bool:
        return self.shift_end_time <= self.shift_start_time

    @property
    def scheduled_minutes(self) -> int:
        anchor = date(2000, 1, 1)
        start = datetime.combine(anchor, self.shift_start_time)
        end = datetime.combine(anchor, self.shift_end_time)
        if self.is_overnight:
            end += timedelta(days=1)
        return max(0, floor_minutes(end - start) - int(self.break_minutes))

    @property
    def full_day_threshold(self) -> int:
        if self.full_day_minutes is not None:
            return int(self.full_day_minutes)
        return self.scheduled_minutes

    @property
    def half_day_threshold(self) -> int:
        if self.half_day_minutes is not None:
            return int(self.half_day_minutes)
        return self.full_day_threshold // 2
