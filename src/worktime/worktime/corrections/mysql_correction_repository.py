from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional, Sequence

import mysql.connector
from mysql.connector import errorcode

from ..core.enums import CorrectionStatus, IssueType
from ..core.exceptions import ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_db_utc, to_db_utc
from .model import CorrectionRequest, NewCorrectionRequest
from .repository import CorrectionRepository

_COLUMNS = """
    request_id, employee_id, work_date, attendance_record_id, requested_clock_in, requested_clock_out,
    reason, issue_type, status, base_revision, processed_by, processed_at, admin_remarks,
    original_clock_in, original_clock_out, corrected_clock_in, corrected_clock_out, created_at
"""


def _row_to_request(r: Dict[str, Any]) -> CorrectionRequest:
    return CorrectionRequest(
        request_id=int(r["request_id"]),
        employee_id=int(r["employee_id"]),
        work_date=r["work_date"],
        attendance_record_id=r.get("attendance_record_id"),
        requested_clock_in=from_db_utc(r.get("requested_clock_in")),
        requested_clock_out=from_db_utc(r.get("requested_clock_out")),
        reason=r["reason"],
        issue_type=IssueType(r["issue_type"]),
        status=CorrectionStatus(r["status"]),
        base_revision=int(r.get("base_revision") or 0),
        processed_by=r.get("processed_by"),
        processed_at=from_db_utc(r.get("processed_at")),
        admin_remarks=r.get("admin_remarks"),
        original_clock_in=from_db_utc(r.get("original_clock_in")),
        original_clock_out=from_db_utc(r.get("original_clock_out")),
        corrected_clock_in=from_db_utc(r.get("corrected_clock_in")),
        corrected_clock_out=from_db_utc(r.get("corrected_clock_out")),
        created_at=from_db_utc(r["created_at"]),
    )


class MySQLCorrectionRepository(CorrectionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, new: NewCorrectionRequest, *, now: datetime) -> CorrectionRequest:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO correction_requests(
                        employee_id, work_date, attendance_record_id, requested_clock_in, requested_clock_out,
                        reason, issue_type, status, base_revision, created_at
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        int(new.employee_id),
                        new.work_date,
                        new.attendance_record_id,
                        to_db_utc(new.requested_clock_in),
                        to_db_utc(new.requested_clock_out),
                        new.reason,
                        new.issue_type.value,
                        CorrectionStatus.PENDING.value,
                        int(new.base_revision),
                        to_db_utc(now),
                    ),
                )
                request_id = int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            # uq_correction_pending: one pending request per employee and date
            if e.errno == errorcode.ER_DUP_ENTRY:
                raise ValidationError("A pending correction request already exists for this date") from e
            raise

        return CorrectionRequest(
            request_id=request_id,
            employee_id=int(new.employee_id),
            work_date=new.work_date,
            attendance_record_id=new.attendance_record_id,
            requested_clock_in=new.requested_clock_in,
            requested_clock_out=new.requested_clock_out,
            reason=new.reason,
            issue_type=new.issue_type,
            status=CorrectionStatus.PENDING,
            base_revision=int(new.base_revision),
            created_at=now,
        )

    def get(self, request_id: int) -> Optional[CorrectionRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM correction_requests WHERE request_id=%s", (int(request_id),))
            r = fetchone(cur)
            return _row_to_request(r) if r else None

    def has_pending(self, employee_id: int, work_date: date, *, exclude_request_id: Optional[int] = None) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT request_id FROM correction_requests
                WHERE employee_id=%s AND work_date=%s AND status=%s AND request_id <> %s
                LIMIT 1
                """,
                (int(employee_id), work_date, CorrectionStatus.PENDING.value, int(exclude_request_id or 0)),
            )
            return bool(fetchall(cur))

    def was_contested(self, employee_id: int, work_date: date, *, revision: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT request_id FROM correction_requests
                WHERE employee_id=%s AND work_date=%s AND issue_type=%s AND base_revision=%s
                  AND status IN (%s, %s)
                LIMIT 1
                """,
                (
                    int(employee_id),
                    work_date,
                    IssueType.MISSED_PUNCH.value,
                    int(revision),
                    CorrectionStatus.REJECTED.value,
                    CorrectionStatus.CANCELLED.value,
                ),
            )
            return bool(fetchall(cur))

    def mark_applied(self, employee_id: int, work_date: date, *, now: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE correction_requests
                SET status=%s, processed_at=COALESCE(processed_at, %s)
                WHERE employee_id=%s AND work_date=%s AND status=%s
                """,
                (
                    CorrectionStatus.CORRECTED.value,
                    to_db_utc(now),
                    int(employee_id),
                    work_date,
                    CorrectionStatus.APPROVED.value,
                ),
            )
            return cur.rowcount

    def transition(self, request: CorrectionRequest, *, expected: CorrectionStatus) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE correction_requests
                SET status=%s, processed_by=%s, processed_at=%s, admin_remarks=%s,
                    original_clock_in=%s, original_clock_out=%s, corrected_clock_in=%s, corrected_clock_out=%s
                WHERE request_id=%s AND status=%s
                """,
                (
                    request.status.value,
                    request.processed_by,
                    to_db_utc(request.processed_at),
                    request.admin_remarks,
                    to_db_utc(request.original_clock_in),
                    to_db_utc(request.original_clock_out),
                    to_db_utc(request.corrected_clock_in),
                    to_db_utc(request.corrected_clock_out),
                    int(request.request_id),
                    expected.value,
                ),
            )
            return cur.rowcount == 1

    def list_for_employee(self, employee_id: int, *, limit: int = 200) -> Sequence[CorrectionRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM correction_requests
                WHERE employee_id=%s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (int(employee_id), int(limit)),
            )
            return [_row_to_request(r) for r in fetchall(cur)]

    def list_by_status(self, status: CorrectionStatus, *, limit: int = 500) -> Sequence[CorrectionRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM correction_requests
                WHERE status=%s
                ORDER BY created_at
                LIMIT %s
                """,
                (status.value, int(limit)),
            )
            return [_row_to_request(r) for r in fetchall(cur)]
