from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .attendance.classifier import StatusClassifier
from .attendance.factory import VerdictStrategyFactory
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.tracker import SessionTracker
from .calendar.mysql_calendar_repository import MySQLCalendarRepository
from .core import constants
from .corrections.mysql_correction_repository import MySQLCorrectionRepository
from .corrections.service import CorrectionService
from .database.connection import DBConfig, DatabaseConnection
from .employees.mysql_employee_repository import MySQLEmployeeDirectory
from .finalization.collaborators import BoundedCaller
from .finalization.lease import MySQLLeaseRepository
from .finalization.service import FinalizationService
from .shifts.mysql_shift_repository import MySQLShiftRepository


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    attendance_repo: MySQLAttendanceRepository
    shifts_repo: MySQLShiftRepository
    calendar_repo: MySQLCalendarRepository
    corrections_repo: MySQLCorrectionRepository
    employees_repo: MySQLEmployeeDirectory
    leases_repo: MySQLLeaseRepository

    session_tracker: SessionTracker
    finalization_service: FinalizationService
    correction_service: CorrectionService


def build_container(*, db_config: dict, settings: Any = None) -> Container:
    def setting(name: str, default):
        return getattr(settings, name, default) if settings is not None else default

    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
    default_tz = setting("DEFAULT_TIMEZONE", constants.DEFAULT_TIMEZONE)

    attendance_repo = MySQLAttendanceRepository(conn)
    shifts_repo = MySQLShiftRepository(conn)
    calendar_repo = MySQLCalendarRepository(
        conn, working_weekdays=setting("WORKING_WEEKDAYS", constants.DEFAULT_WORKING_WEEKDAYS)
    )
    corrections_repo = MySQLCorrectionRepository(conn)
    employees_repo = MySQLEmployeeDirectory(conn)
    leases_repo = MySQLLeaseRepository(conn)

    classifier = StatusClassifier(VerdictStrategyFactory())
    buffer_minutes = setting("FINALIZATION_BUFFER_MINUTES", constants.DEFAULT_FINALIZATION_BUFFER_MINUTES)

    session_tracker = SessionTracker(
        attendance_repo,
        shifts_repo,
        classifier,
        allow_multiple_sessions=setting("ALLOW_MULTIPLE_SESSIONS", True),
        default_timezone=default_tz,
        finalization_buffer_minutes=buffer_minutes,
    )
    finalization_service = FinalizationService(
        attendance_repo,
        shifts_repo,
        calendar_repo,
        corrections_repo,
        employees_repo,
        leases_repo,
        classifier=classifier,
        caller=BoundedCaller(setting("COLLABORATOR_TIMEOUT_SECONDS", constants.DEFAULT_COLLABORATOR_TIMEOUT_SECONDS)),
        buffer_minutes=buffer_minutes,
        lookback_days=setting("FINALIZATION_LOOKBACK_DAYS", constants.DEFAULT_FINALIZATION_LOOKBACK_DAYS),
        lease_ttl_seconds=setting("LEASE_TTL_SECONDS", constants.DEFAULT_LEASE_TTL_SECONDS),
        max_consecutive_failures=setting(
            "MAX_CONSECUTIVE_COLLABORATOR_FAILURES", constants.DEFAULT_MAX_CONSECUTIVE_COLLABORATOR_FAILURES
        ),
        default_timezone=default_tz,
    )
    correction_service = CorrectionService(
        corrections_repo,
        attendance_repo,
        shifts_repo,
        finalization_service,
        default_timezone=default_tz,
    )

    return Container(
        conn=conn,
        attendance_repo=attendance_repo,
        shifts_repo=shifts_repo,
        calendar_repo=calendar_repo,
        corrections_repo=corrections_repo,
        employees_repo=employees_repo,
        leases_repo=leases_repo,
        session_tracker=session_tracker,
        finalization_service=finalization_service,
        correction_service=correction_service,
    )
