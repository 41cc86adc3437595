"""worktime package.

Real-time work sessions and breaks, and the daily attendance verdict derived
from them. Organized by feature modules (attendance, finalization,
corrections, ...) with a thin Flask controller layer over service and
repository layers.
"""
