from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import CorrectionStatus
from .model import CorrectionRequest, NewCorrectionRequest


class CorrectionRepository(Protocol):
    def create(self, new: NewCorrectionRequest, *, now: datetime) -> CorrectionRequest:
        """Insert a ``pending`` request.

        Raises ``ValidationError`` when the employee already has a pending
        request for the same date.
        """

        raise NotImplementedError

    def get(self, request_id: int) -> Optional[CorrectionRequest]:
        raise NotImplementedError

    def has_pending(self, employee_id: int, work_date: date, *, exclude_request_id: Optional[int] = None) -> bool:
        raise NotImplementedError

    def was_contested(self, employee_id: int, work_date: date, *, revision: int) -> bool:
        """Whether a ``missed_punch`` request filed against ``revision`` was rejected or cancelled."""

        raise NotImplementedError

    def mark_applied(self, employee_id: int, work_date: date, *, now: datetime) -> int:
        """Move ``approved`` requests for the date to ``corrected``; returns how many."""

        raise NotImplementedError

    def transition(self, request: CorrectionRequest, *, expected: CorrectionStatus) -> bool:
        """Write ``request``'s decision fields if the stored status is still ``expected``."""

        raise NotImplementedError

    def list_for_employee(self, employee_id: int, *, limit: int = 200) -> Sequence[CorrectionRequest]:
        raise NotImplementedError

    def list_by_status(self, status: CorrectionStatus, *, limit: int = 500) -> Sequence[CorrectionRequest]:
        raise NotImplementedError
