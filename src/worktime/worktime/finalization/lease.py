from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, from_db_utc, to_db_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Lease:
    name: str
    holder: Optional[str]
    expires_at: Optional[datetime]
    last_completed_at: Optional[datetime] = None


class LeaseRepository(Protocol):
    """Cluster-wide mutual exclusion for the finalization sweep."""

    def acquire(self, name: str, holder: str, *, now: datetime, ttl_seconds: int) -> bool:
        """Take the lease if it is free, expired, or already ours."""

        raise NotImplementedError

    def renew(self, name: str, holder: str, *, now: datetime, ttl_seconds: int) -> bool:
        """Push our lease's expiry forward. False when ``holder`` no longer owns it."""

        raise NotImplementedError

    def release(self, name: str, holder: str, *, completed_at: Optional[datetime] = None) -> None:
        """Drop the lease. ``completed_at`` advances the last completed sweep."""

        raise NotImplementedError

    def get(self, name: str) -> Optional[Lease]:
        raise NotImplementedError


class MySQLLeaseRepository(LeaseRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def acquire(self, name: str, holder: str, *, now: datetime, ttl_seconds: int) -> bool:
        expires = now + timedelta(seconds=int(ttl_seconds))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "INSERT IGNORE INTO scheduler_leases (name, holder, expires_at) VALUES (%s, NULL, NULL)",
                (name,),
            )
            cur.execute(
                """
                UPDATE scheduler_leases
                SET holder=%s, expires_at=%s
                WHERE name=%s AND (holder IS NULL OR holder=%s OR expires_at IS NULL OR expires_at < %s)
                """,
                (holder, to_db_utc(expires), name, holder, to_db_utc(now)),
            )
            acquired = cur.rowcount == 1
        if not acquired:
            logger.info("Lease %s is held by another instance", name)
        return acquired

    def renew(self, name: str, holder: str, *, now: datetime, ttl_seconds: int) -> bool:
        expires = now + timedelta(seconds=int(ttl_seconds))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE scheduler_leases SET expires_at=%s WHERE name=%s AND holder=%s",
                (to_db_utc(expires), name, holder),
            )
            # rowcount is 0 when the stored expiry did not change, so read the holder back.
            cur.execute("SELECT holder FROM scheduler_leases WHERE name=%s", (name,))
            r = fetchone(cur)
        return bool(r) and r.get("holder") == holder

    def release(self, name: str, holder: str, *, completed_at: Optional[datetime] = None) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE scheduler_leases
                SET holder=NULL, expires_at=NULL, last_completed_at=COALESCE(%s, last_completed_at)
                WHERE name=%s AND holder=%s
                """,
                (to_db_utc(completed_at), name, holder),
            )

    def get(self, name: str) -> Optional[Lease]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT name, holder, expires_at, last_completed_at FROM scheduler_leases WHERE name=%s",
                (name,),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Lease(
                name=r["name"],
                holder=r.get("holder"),
                expires_at=from_db_utc(r.get("expires_at")),
                last_completed_at=from_db_utc(r.get("last_completed_at")),
            )
