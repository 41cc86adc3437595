"""Settings shared by every environment. Values come from the environment (.env)."""

import os


def _bool(name: str, default: str) -> bool:
    return bool(int(os.getenv(name, default)))


def _weekdays(raw: str) -> tuple:
    # Monday=0 ... Sunday=6
    return tuple(int(p) for p in raw.split(",") if p.strip())


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
WORKING_WEEKDAYS = _weekdays(os.getenv("WORKING_WEEKDAYS", "0,1,2,3,4"))
ALLOW_MULTIPLE_SESSIONS = _bool("ALLOW_MULTIPLE_SESSIONS", "1")

FINALIZATION_SCHEDULER_ENABLED = _bool("FINALIZATION_SCHEDULER_ENABLED", "1")
FINALIZATION_INTERVAL_MINUTES = int(os.getenv("FINALIZATION_INTERVAL_MINUTES", "15"))
FINALIZATION_BUFFER_MINUTES = int(os.getenv("FINALIZATION_BUFFER_MINUTES", "15"))
FINALIZATION_LOOKBACK_DAYS = int(os.getenv("FINALIZATION_LOOKBACK_DAYS", "7"))
LEASE_TTL_SECONDS = int(os.getenv("LEASE_TTL_SECONDS", "600"))
COLLABORATOR_TIMEOUT_SECONDS = float(os.getenv("COLLABORATOR_TIMEOUT_SECONDS", "5"))
MAX_CONSECUTIVE_COLLABORATOR_FAILURES = int(os.getenv("MAX_CONSECUTIVE_COLLABORATOR_FAILURES", "3"))
