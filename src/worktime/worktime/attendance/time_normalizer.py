"""Resolve incoming timestamps into the wall-clock time a shift is compared with.

Instants recorded by the tracker are trusted UTC and are simply converted.
Timestamps that arrive from outside (correction forms, pre-session rows)
may carry a browser-local wall-clock time that was serialized as UTC by
mistake. ``resolve_local`` undoes that when the value looks double-converted.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple, Union
from zoneinfo import ZoneInfo

from ..core.exceptions import UnresolvableTimestamp
from ..shifts.model import ShiftPolicy

# Double-conversion policy. Observed behaviour, not a principled rule.
MIN_HOUR_GAP = 5
SUSPECT_UTC_HOURS = range(8, 19)

RawTimestamp = Union[str, datetime]


def parse_timestamp(raw: RawTimestamp) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise UnresolvableTimestamp(f"Cannot resolve timestamp {raw!r}")
    text = raw.strip()
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise UnresolvableTimestamp(f"Cannot resolve timestamp {raw!r}")


def is_utc_tagged(value: datetime) -> bool:
    return value.tzinfo is not None and value.utcoffset() == timedelta(0)


def looks_double_converted(value: datetime, zone: ZoneInfo) -> bool:
    """True when a UTC-tagged value is probably a local time mislabelled as UTC."""
    if not is_utc_tagged(value):
        return False
    utc_hour = value.hour
    local_hour = value.astimezone(zone).hour
    return abs(utc_hour - local_hour) >= MIN_HOUR_GAP and utc_hour in SUSPECT_UTC_HOURS


def resolve_local(raw: RawTimestamp, zone: ZoneInfo) -> datetime:
    """Naive local wall-clock time for ``raw`` in ``zone``.

    Naive input is taken to be local already.
    """
    value = parse_timestamp(raw)
    if value.tzinfo is None:
        return value
    if looks_double_converted(value, zone):
        return value.replace(tzinfo=None)
    return value.astimezone(zone).replace(tzinfo=None)


def to_local(instant: datetime, zone: ZoneInfo) -> datetime:
    """Plain conversion of a trusted instant. Naive instants are UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(zone).replace(tzinfo=None)


def to_utc(local: datetime, zone: ZoneInfo) -> datetime:
    """Attach ``zone`` to a naive local time and return the UTC instant."""
    if local.tzinfo is not None:
        return local.astimezone(timezone.utc)
    return local.replace(tzinfo=zone).astimezone(timezone.utc)


def local_date(instant: datetime, zone: ZoneInfo) -> date:
    return to_local(instant, zone).date()


def combine_local(work_date: date, clock: time, zone: ZoneInfo) -> datetime:
    return to_utc(datetime.combine(work_date, clock), zone)


def shift_window(work_date: date, policy: ShiftPolicy) -> Tuple[datetime, datetime]:
    """UTC start and end of the shift that begins on ``work_date``."""
    zone = policy.zone()
    start = datetime.combine(work_date, policy.shift_start_time)
    end = datetime.combine(work_date, policy.shift_end_time)
    if policy.is_overnight:
        end += timedelta(days=1)
    return to_utc(start, zone), to_utc(end, zone)
