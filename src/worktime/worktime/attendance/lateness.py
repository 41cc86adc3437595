from __future__ import annotations

from datetime import date, datetime, time, timedelta

from ..common.datetime_utils import floor_minutes

# Night shifts start at or after this hour; clock-ins before the morning cutoff belong to the previous day's shift.
NIGHT_SHIFT_START_HOUR = 18
MORNING_CUTOFF_HOUR = 6


def compute_late(clock_in_local: datetime, shift_start: datetime, grace_minutes: int) -> int:
    threshold = shift_start + timedelta(minutes=int(grace_minutes or 0))
    return max(0, floor_minutes(clock_in_local - threshold))


def compute_early_departure(clock_out_local: datetime, shift_end: datetime) -> int:
    return max(0, floor_minutes(shift_end - clock_out_local))


def anchor_shift_start(clock_in_local: datetime, start_time: time) -> datetime:
    day = clock_in_local.date()
    if start_time.hour >= NIGHT_SHIFT_START_HOUR and clock_in_local.hour < MORNING_CUTOFF_HOUR:
        day -= timedelta(days=1)
    return datetime.combine(day, start_time)


def anchor_shift_end(shift_day: date, start_time: time, end_time: time) -> datetime:
    end = datetime.combine(shift_day, end_time)
    if end_time <= start_time:
        end += timedelta(days=1)
    return end


def compute_overtime(worked_minutes: int, full_day_minutes: int) -> int:
    return max(0, int(worked_minutes) - int(full_day_minutes))
