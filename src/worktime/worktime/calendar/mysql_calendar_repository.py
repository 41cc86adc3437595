from __future__ import annotations

from datetime import date
from typing import Iterable

import mysql.connector

from ..core.constants import DEFAULT_WORKING_WEEKDAYS
from ..core.exceptions import CollaboratorUnavailable
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall
from .repository import CalendarRepository


class MySQLCalendarRepository(CalendarRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, working_weekdays: Iterable[int] = DEFAULT_WORKING_WEEKDAYS):
        self._conn_factory = conn_factory
        self._working_weekdays = frozenset(int(d) for d in working_weekdays)

    def is_holiday(self, work_date: date) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute("SELECT holiday_id FROM holidays WHERE holiday_date=%s LIMIT 1", (work_date,))
                return bool(fetchall(cur))
        except mysql.connector.Error as e:
            raise CollaboratorUnavailable(f"Holiday lookup failed: {e}") from e

    def is_on_approved_leave(self, employee_id: int, work_date: date) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    SELECT leave_id
                    FROM leave_requests
                    WHERE employee_id=%s AND status='approved' AND %s BETWEEN start_date AND end_date
                    LIMIT 1
                    """,
                    (int(employee_id), work_date),
                )
                return bool(fetchall(cur))
        except mysql.connector.Error as e:
            raise CollaboratorUnavailable(f"Leave lookup failed: {e}") from e

    def is_working_day(self, work_date: date) -> bool:
        return work_date.weekday() in self._working_weekdays
