from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from mysql.connector import errorcode
from mysql.connector import errors as mysql_errors

from ..core.exceptions import ConcurrentModification
from .connection import DatabaseConnection

logger = logging.getLogger(__name__)

# Lost lock races on attendance rows; the caller may simply retry.
_LOCK_CONFLICTS = {errorcode.ER_LOCK_DEADLOCK, errorcode.ER_LOCK_WAIT_TIMEOUT}


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    """One transaction: commit when the block exits cleanly, otherwise roll back."""
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except mysql_errors.DatabaseError as e:
        conn.rollback()
        if e.errno in _LOCK_CONFLICTS:
            logger.warning("Transaction lost a lock race (errno=%s), rolled back", e.errno)
            raise ConcurrentModification(f"Record is busy, try again ({e.msg})") from e
        raise
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    return list(cur.fetchall() or [])


def normalize_mysql_time(value: Any) -> Optional[time]:
    """Shift start/end columns come back as TIME; the connector maps them to timedelta."""
    if value is None:
        return None
    if isinstance(value, time):
        return value
    if isinstance(value, timedelta):
        minutes = (int(value.total_seconds()) // 60) % (24 * 60)
        return time(hour=minutes // 60, minute=minutes % 60)
    if isinstance(value, str):
        return datetime.strptime(value.strip()[:5], "%H:%M").time()
    raise TypeError(f"Unsupported MySQL TIME value type: {type(value)!r}")


def to_db_utc(value: Optional[datetime]) -> Optional[datetime]:
    """DATETIME columns hold naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)
