from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..core.enums import CorrectionStatus, IssueType


@dataclass(frozen=True)
class CorrectionRequest:
    """An employee's contest of the times recorded for one day.

    ``base_revision`` is the record's ``correction_revision`` when the request
    was filed; approving against a newer revision is a stale conflict.
    """

    request_id: int
    employee_id: int
    work_date: date
    reason: str
    issue_type: IssueType
    status: CorrectionStatus
    created_at: datetime
    attendance_record_id: Optional[int] = None
    requested_clock_in: Optional[datetime] = None
    requested_clock_out: Optional[datetime] = None
    base_revision: int = 0
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    admin_remarks: Optional[str] = None
    original_clock_in: Optional[datetime] = None
    original_clock_out: Optional[datetime] = None
    corrected_clock_in: Optional[datetime] = None
    corrected_clock_out: Optional[datetime] = None


@dataclass(frozen=True)
class NewCorrectionRequest:
    employee_id: int
    work_date: date
    reason: str
    issue_type: IssueType
    attendance_record_id: Optional[int] = None
    requested_clock_in: Optional[datetime] = None
    requested_clock_out: Optional[datetime] = None
    base_revision: int = 0
