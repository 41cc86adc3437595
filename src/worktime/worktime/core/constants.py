"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_TIMEZONE = "UTC"
DEFAULT_HISTORY_DAYS = 31

# Finalization sweep
DEFAULT_FINALIZATION_INTERVAL_MINUTES = 15
DEFAULT_FINALIZATION_BUFFER_MINUTES = 15
DEFAULT_FINALIZATION_LOOKBACK_DAYS = 7
DEFAULT_LEASE_TTL_SECONDS = 600
DEFAULT_COLLABORATOR_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_CONSECUTIVE_COLLABORATOR_FAILURES = 3
FINALIZATION_LEASE_NAME = "attendance-finalization"

# Monday=0 ... Sunday=6
DEFAULT_WORKING_WEEKDAYS = (0, 1, 2, 3, 4)

# Reasons written by the system
REASON_NO_CLOCK_IN = "No clock-in recorded"
REASON_MISSED_CLOCK_OUT = "Missed clock-out - requires correction"
REASON_AUTO_MISSED_PUNCH = "Auto-detected missed clock-out"
