"""In-process scheduling of the attendance jobs (APScheduler, asyncio flavour).

Cron fields are evaluated in the operational timezone:
  - auto step-out  every 30 minutes
  - auto step-in   at the top of every hour (acts only at shift starts)
"""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from laborhub.attendance.shifts import LOCAL_TZ
from laborhub.automation.jobs import run_job
from laborhub.common.constants import AUTO_CLOSE_INTERVAL_MINUTES

logger = logging.getLogger(__name__)

AUTO_CLOSE_JOB_ID = "attendance-auto-close"
AUTO_OPEN_JOB_ID = "attendance-auto-open"

_scheduler: Optional[AsyncIOScheduler] = None


def build_scheduler() -> AsyncIOScheduler:
    """Create a scheduler with both jobs registered (not started)."""
    scheduler = AsyncIOScheduler(timezone=LOCAL_TZ)

    scheduler.add_job(
        run_job,
        CronTrigger(minute=f"*/{AUTO_CLOSE_INTERVAL_MINUTES}", timezone=LOCAL_TZ),
        args=["auto_close"],
        id=AUTO_CLOSE_JOB_ID,
        name="Auto step-out of long-open attendance",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        run_job,
        CronTrigger(minute=0, timezone=LOCAL_TZ),
        args=["auto_open"],
        id=AUTO_OPEN_JOB_ID,
        name="Auto step-in at shift start",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler


def start_scheduler() -> AsyncIOScheduler:
    """Start the process-wide scheduler; a second call is a no-op."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    _scheduler = build_scheduler()
    _scheduler.start()
    for job in _scheduler.get_jobs():
        logger.info("Scheduled %s (%s), next run %s", job.id, job.trigger, job.next_run_time)
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Attendance scheduler stopped")
    _scheduler = None
