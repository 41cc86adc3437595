from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from ..core.constants import DEFAULT_FINALIZATION_INTERVAL_MINUTES
from .service import FinalizationService

logger = logging.getLogger(__name__)

JOB_ID = "attendance-finalization"


def _run_sweep(service: FinalizationService) -> None:
    try:
        service.sweep()
    except Exception:
        # Keep the scheduler thread alive; the next interval retries everything.
        logger.exception("Finalization sweep crashed")


def start_finalization_scheduler(
    service: FinalizationService,
    *,
    interval_minutes: int = DEFAULT_FINALIZATION_INTERVAL_MINUTES,
    scheduler: Optional[BackgroundScheduler] = None,
) -> BackgroundScheduler:
    """Register the recurring sweep and start the scheduler.

    Cross-process exclusivity comes from the sweep's lease, so every
    instance may run this.
    """
    scheduler = scheduler or BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": int(interval_minutes) * 60,
        },
    )
    scheduler.add_job(
        _run_sweep,
        "interval",
        minutes=int(interval_minutes),
        args=[service],
        id=JOB_ID,
        replace_existing=True,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info("Finalization scheduler started (every %s minutes)", interval_minutes)
    return scheduler
