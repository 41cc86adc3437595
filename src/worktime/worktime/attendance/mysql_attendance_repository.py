from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..core.enums import AttendanceStatus, HalfDayType, SessionStatus, WorkLocation
from ..core.exceptions import ConcurrentModification
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, from_db_utc, to_db_utc
from .model import AttendanceRecord, Break, RecordKey, RecordTransaction, Session
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = """
    record_id, employee_id, work_date, status, status_reason, half_day_type, finalized, finalized_at,
    clock_in, clock_out, worked_minutes, break_minutes, late_minutes, early_departure_minutes, overtime_minutes,
    correction_revision, version
"""


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @contextmanager
    def lock_for_update(self, employee_id: int, work_date: date, *, create: bool = False) -> Iterator[RecordTransaction]:
        with db_cursor(self._conn_factory) as (_, cur):
            if create:
                self._insert_ignore(cur, employee_id, work_date)
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE employee_id=%s AND work_date=%s
                FOR UPDATE
                """,
                (int(employee_id), work_date),
            )
            rows = fetchall(cur)
            records = self._hydrate(cur, rows)
            tx = RecordTransaction(record=records[0] if records else None)
            yield tx
            if tx.pending is not None:
                self._write(cur, tx.pending)

    def get(self, employee_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE employee_id=%s AND work_date=%s
                """,
                (int(employee_id), work_date),
            )
            records = self._hydrate(cur, fetchall(cur))
            return records[0] if records else None

    def get_by_id(self, record_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM attendance_records WHERE record_id=%s",
                (int(record_id),),
            )
            records = self._hydrate(cur, fetchall(cur))
            return records[0] if records else None

    def list_for_employee(self, employee_id: int, start: date, end: date) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE employee_id=%s AND work_date BETWEEN %s AND %s
                ORDER BY work_date DESC
                """,
                (int(employee_id), start, end),
            )
            return self._hydrate(cur, fetchall(cur))

    def list_unfinalized(self, up_to: date) -> Sequence[RecordKey]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT employee_id, work_date
                FROM attendance_records
                WHERE finalized=0 AND work_date <= %s
                ORDER BY work_date, employee_id
                """,
                (up_to,),
            )
            return [RecordKey(employee_id=int(r["employee_id"]), work_date=r["work_date"]) for r in fetchall(cur)]

    def ensure_record(self, employee_id: int, work_date: date) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._insert_ignore(cur, employee_id, work_date)

    @staticmethod
    def _insert_ignore(cur, employee_id: int, work_date: date) -> bool:
        cur.execute(
            """
            INSERT IGNORE INTO attendance_records (employee_id, work_date, status, finalized)
            VALUES (%s, %s, %s, 0)
            """,
            (int(employee_id), work_date, AttendanceStatus.NOT_STARTED.value),
        )
        return cur.rowcount == 1

    def _hydrate(self, cur, rows: List[Dict[str, Any]]) -> List[AttendanceRecord]:
        if not rows:
            return []
        ids = [int(r["record_id"]) for r in rows]
        placeholders = ", ".join(["%s"] * len(ids))

        cur.execute(
            f"""
            SELECT session_id, record_id, check_in, check_out, work_location, location_details, status
            FROM attendance_sessions
            WHERE record_id IN ({placeholders})
            ORDER BY record_id, seq
            """,
            tuple(ids),
        )
        session_rows = fetchall(cur)

        breaks_by_session: Dict[str, List[Break]] = {}
        if session_rows:
            cur.execute(
                f"""
                SELECT b.break_id, b.session_id, b.start_time, b.end_time
                FROM attendance_breaks b
                JOIN attendance_sessions s ON s.session_id = b.session_id
                WHERE s.record_id IN ({placeholders})
                ORDER BY b.session_id, b.seq
                """,
                tuple(ids),
            )
            for b in fetchall(cur):
                breaks_by_session.setdefault(b["session_id"], []).append(
                    Break(break_id=b["break_id"], start_time=from_db_utc(b["start_time"]), end_time=from_db_utc(b.get("end_time")))
                )

        sessions_by_record: Dict[int, List[Session]] = {}
        for s in session_rows:
            sessions_by_record.setdefault(int(s["record_id"]), []).append(
                Session(
                    session_id=s["session_id"],
                    check_in=from_db_utc(s["check_in"]),
                    check_out=from_db_utc(s.get("check_out")),
                    work_location=WorkLocation(s["work_location"]),
                    location_details=s.get("location_details"),
                    status=SessionStatus(s["status"]),
                    breaks=tuple(breaks_by_session.get(s["session_id"], [])),
                )
            )

        return [self._row_to_record(r, tuple(sessions_by_record.get(int(r["record_id"]), []))) for r in rows]

    @staticmethod
    def _row_to_record(r: Dict[str, Any], sessions) -> AttendanceRecord:
        return AttendanceRecord(
            record_id=int(r["record_id"]),
            employee_id=int(r["employee_id"]),
            work_date=r["work_date"],
            sessions=sessions,
            status=AttendanceStatus(r["status"]),
            status_reason=r.get("status_reason"),
            half_day_type=HalfDayType(r["half_day_type"]) if r.get("half_day_type") else None,
            finalized=bool(r["finalized"]),
            finalized_at=from_db_utc(r.get("finalized_at")),
            clock_in=from_db_utc(r.get("clock_in")),
            clock_out=from_db_utc(r.get("clock_out")),
            worked_minutes=int(r.get("worked_minutes") or 0),
            break_minutes=int(r.get("break_minutes") or 0),
            late_minutes=int(r.get("late_minutes") or 0),
            early_departure_minutes=int(r.get("early_departure_minutes") or 0),
            overtime_minutes=int(r.get("overtime_minutes") or 0),
            correction_revision=int(r.get("correction_revision") or 0),
            version=int(r.get("version") or 0),
        )

    def _write(self, cur, record: AttendanceRecord) -> None:
        cur.execute(
            """
            UPDATE attendance_records
            SET status=%s, status_reason=%s, half_day_type=%s, finalized=%s, finalized_at=%s,
                clock_in=%s, clock_out=%s, worked_minutes=%s, break_minutes=%s, late_minutes=%s,
                early_departure_minutes=%s, overtime_minutes=%s, correction_revision=%s, version=version + 1
            WHERE record_id=%s AND version=%s
            """,
            (
                record.status.value,
                record.status_reason,
                record.half_day_type.value if record.half_day_type else None,
                1 if record.finalized else 0,
                to_db_utc(record.finalized_at),
                to_db_utc(record.clock_in),
                to_db_utc(record.clock_out),
                int(record.worked_minutes),
                int(record.break_minutes),
                int(record.late_minutes),
                int(record.early_departure_minutes),
                int(record.overtime_minutes),
                int(record.correction_revision),
                int(record.record_id),
                int(record.version),
            ),
        )
        if cur.rowcount != 1:
            logger.warning("Version conflict on attendance record %s (version %s)", record.record_id, record.version)
            raise ConcurrentModification(f"Attendance record {record.record_id} was modified concurrently")

        cur.execute(
            """
            DELETE b FROM attendance_breaks b
            JOIN attendance_sessions s ON s.session_id = b.session_id
            WHERE s.record_id=%s
            """,
            (int(record.record_id),),
        )
        cur.execute("DELETE FROM attendance_sessions WHERE record_id=%s", (int(record.record_id),))

        if not record.sessions:
            return
        cur.executemany(
            """
            INSERT INTO attendance_sessions
                (session_id, record_id, seq, check_in, check_out, work_location, location_details, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (
                    s.session_id,
                    int(record.record_id),
                    seq,
                    to_db_utc(s.check_in),
                    to_db_utc(s.check_out),
                    s.work_location.value,
                    s.location_details,
                    s.status.value,
                )
                for seq, s in enumerate(record.sessions)
            ],
        )
        break_rows = [
            (b.break_id, s.session_id, seq, to_db_utc(b.start_time), to_db_utc(b.end_time))
            for s in record.sessions
            for seq, b in enumerate(s.breaks)
        ]
        if break_rows:
            cur.executemany(
                """
                INSERT INTO attendance_breaks (break_id, session_id, seq, start_time, end_time)
                VALUES (%s, %s, %s, %s, %s)
                """,
                break_rows,
            )
