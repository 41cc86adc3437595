from __future__ import annotations

from datetime import date
from typing import Optional

from ..core.constants import DEFAULT_TIMEZONE
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, normalize_mysql_time
from .model import ShiftPolicy
from .repository import ShiftRepository


class MySQLShiftRepository(ShiftRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_policy(self, employee_id: int, work_date: date) -> Optional[ShiftPolicy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT s.shift_id, s.shift_name, s.start_time, s.end_time, s.grace_period_minutes,
                       s.break_minutes, s.full_day_minutes, s.half_day_minutes,
                       COALESCE(e.timezone, s.timezone) AS timezone
                FROM employees e
                LEFT JOIN departments d ON d.dept_id = e.dept_id
                LEFT JOIN schedules sc ON sc.employee_id = e.employee_id AND sc.work_date = %s
                JOIN shifts s ON s.shift_id = COALESCE(sc.shift_id, e.shift_id, d.shift_id)
                WHERE e.employee_id = %s
                """,
                (work_date, int(employee_id)),
            )
            r = fetchone(cur)
            if not r:
                return None
            return ShiftPolicy(
                shift_id=int(r["shift_id"]),
                shift_name=r["shift_name"],
                shift_start_time=normalize_mysql_time(r["start_time"]),
                shift_end_time=normalize_mysql_time(r["end_time"]),
                grace_period_minutes=int(r.get("grace_period_minutes") or 0),
                timezone=r.get("timezone") or DEFAULT_TIMEZONE,
                break_minutes=int(r.get("break_minutes") or 0),
                full_day_minutes=r.get("full_day_minutes"),
                half_day_minutes=r.get("half_day_minutes"),
            )

    def get_employee_timezone(self, employee_id: int) -> Optional[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COALESCE(e.timezone, s.timezone) AS timezone
                FROM employees e
                LEFT JOIN departments d ON d.dept_id = e.dept_id
                LEFT JOIN shifts s ON s.shift_id = COALESCE(e.shift_id, d.shift_id)
                WHERE e.employee_id = %s
                """,
                (int(employee_id),),
            )
            r = fetchone(cur)
            return r.get("timezone") if r else None
