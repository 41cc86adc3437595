"""Schema, seed and data-migration helpers used at startup and by ``scripts/``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List

import mysql.connector

from ..core.constants import REASON_MISSED_CLOCK_OUT
from .connection import DBConfig

logger = logging.getLogger(__name__)

_SKIPPED_PREFIXES = ("CREATE DATABASE", "USE ")


def _server_connection(cfg: DBConfig, *, with_database: bool = True):
    kwargs = dict(host=cfg.host, port=cfg.port, user=cfg.user, password=cfg.password, time_zone="+00:00")
    if with_database:
        kwargs["database"] = cfg.database
    return mysql.connector.connect(**kwargs)


def split_sql(sql: str) -> Iterator[str]:
    """Statements of a schema/seed file.

    Statements end with ``;`` at end of line. ``--`` comment lines are
    dropped, and so are ``CREATE DATABASE`` / ``USE`` so the configured
    database name wins.
    """
    buf: List[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("--"):
            continue
        buf.append(line)
        if stripped.endswith(";"):
            stmt = "\n".join(buf).strip().rstrip(";").strip()
            buf = []
            if not stmt.upper().startswith(_SKIPPED_PREFIXES):
                yield stmt
    tail = "\n".join(buf).strip()
    if tail:
        yield tail


def ensure_database_exists(db_config: dict) -> None:
    cfg = DBConfig.from_dict(db_config)
    conn = _server_connection(cfg, with_database=False)
    try:
        cur = conn.cursor()
        cur.execute(f"CREATE DATABASE IF NOT EXISTS `{cfg.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
        conn.commit()
    finally:
        conn.close()


def _run_file(db_config: dict, path: str | Path) -> int:
    conn = _server_connection(DBConfig.from_dict(db_config))
    count = 0
    try:
        cur = conn.cursor()
        for stmt in split_sql(Path(path).read_text(encoding="utf-8")):
            cur.execute(stmt)
            count += 1
        conn.commit()
    except mysql.connector.Error:
        conn.rollback()
        logger.exception("Failed applying %s after %s statements", path, count)
        raise
    finally:
        conn.close()
    return count


def apply_schema(db_config: dict, *, schema_path: str | Path) -> None:
    ensure_database_exists(db_config)
    count = _run_file(db_config, schema_path)
    logger.info("Schema applied from %s (%s statements)", schema_path, count)


def apply_seed_sql(db_config: dict, *, seed_path: str | Path) -> None:
    count = _run_file(db_config, seed_path)
    logger.info("Seed applied from %s (%s statements)", seed_path, count)


# Pre-session status values and what they mean now. Finalized rows keep their verdict.
LEGACY_STATUS_UPDATES = (
    (
        "UPDATE attendance_records SET status='in_progress' "
        "WHERE status='incomplete' AND clock_out IS NULL AND finalized=0",
        (),
    ),
    (
        "UPDATE attendance_records SET status='completed' "
        "WHERE status='incomplete' AND clock_out IS NOT NULL AND finalized=0",
        (),
    ),
    (
        "UPDATE attendance_records SET status='pending_correction', status_reason=COALESCE(status_reason, %s) "
        "WHERE status='incomplete' AND finalized=1",
        (REASON_MISSED_CLOCK_OUT,),
    ),
    ("UPDATE attendance_records SET status='holiday', finalized=1 WHERE status='weekend'", ()),
)


def migrate_legacy_statuses(db_config: dict) -> int:
    """Rewrite rows still carrying retired status values. Returns rows changed."""
    conn = _server_connection(DBConfig.from_dict(db_config))
    changed = 0
    try:
        cur = conn.cursor()
        for stmt, params in LEGACY_STATUS_UPDATES:
            cur.execute(stmt, params)
            changed += max(cur.rowcount, 0)
        conn.commit()
    finally:
        conn.close()
    if changed:
        logger.info("Migrated %s attendance rows from legacy statuses", changed)
    return changed


def list_tables(db_config: dict) -> List[str]:
    conn = _server_connection(DBConfig.from_dict(db_config))
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]
    finally:
        conn.close()
