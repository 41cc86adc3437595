from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Roles asserted by the upstream gateway."""

    EMPLOYEE = "employee"
    APPROVER = "approver"


class AttendanceStatus(str, Enum):
    """Persisted attendance status.

    Values are stored as-is in ``attendance_records.status``; renaming one
    requires a data migration (see ``database/bootstrap.py``).
    """

    # LIVE
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ON_BREAK = "on_break"
    COMPLETED = "completed"

    # FINAL
    PRESENT = "present"
    HALF_DAY = "half_day"
    ABSENT = "absent"
    LEAVE = "leave"
    HOLIDAY = "holiday"
    PENDING_CORRECTION = "pending_correction"

    @property
    def is_final(self) -> bool:
        return self in FINAL_STATUSES

    @property
    def is_live(self) -> bool:
        return not self.is_final


FINAL_STATUSES = frozenset(
    {
        AttendanceStatus.PRESENT,
        AttendanceStatus.HALF_DAY,
        AttendanceStatus.ABSENT,
        AttendanceStatus.LEAVE,
        AttendanceStatus.HOLIDAY,
        AttendanceStatus.PENDING_CORRECTION,
    }
)


class HalfDayType(str, Enum):
    FIRST_HALF = "first_half"
    SECOND_HALF = "second_half"
    FULL_DAY = "full_day"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ON_BREAK = "on_break"
    COMPLETED = "completed"


class WorkLocation(str, Enum):
    OFFICE = "office"
    WFH = "wfh"
    CLIENT_SITE = "client_site"


class LiveEvent(str, Enum):
    """Clock events that drive the LIVE state machine."""

    START_SESSION = "start_session"
    END_SESSION = "end_session"
    START_BREAK = "start_break"
    END_BREAK = "end_break"


class CorrectionStatus(str, Enum):
    """Correction request lifecycle. Terminal: rejected, cancelled, corrected."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CORRECTED = "corrected"
    CANCELLED = "cancelled"


class IssueType(str, Enum):
    MISSED_PUNCH = "missed_punch"
    WRONG_TIME = "wrong_time"
    SYSTEM_ERROR = "system_error"
    OTHER = "other"
