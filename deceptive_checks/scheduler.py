"""Interval scheduling of check runs using APScheduler."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger(__name__)


class JobScheduler:
    """Thin wrapper over AsyncIOScheduler for the periodic check trigger."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.running = False

    def start(self):
        if self.running:
            logger.warning("Scheduler already running")
            return
        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started")

    def stop(self):
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Job scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable,
        minutes: int,
        first_run_delay_seconds: Optional[float] = None,
        description: Optional[str] = None,
    ):
        """Add an interval job, optionally firing once shortly after startup."""
        if job_id in self.jobs:
            logger.warning("Job already exists, replacing", job_id=job_id)
            self.remove_job(job_id)

        kwargs: Dict[str, Any] = {}
        if first_run_delay_seconds is not None:
            kwargs["next_run_time"] = datetime.now(timezone.utc) + timedelta(seconds=first_run_delay_seconds)

        job = self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(minutes=minutes),
            id=job_id,
            name=description or job_id,
            # Overlapping triggers reach the coordinator, whose run gate turns them into a logged skip.
            max_instances=2,
            coalesce=True,
            **kwargs,
        )

        self.jobs[job_id] = {
            "job": job,
            "minutes": minutes,
            "description": description,
            "added_at": datetime.now(timezone.utc),
        }
        logger.info("Added interval job", job_id=job_id, interval_minutes=minutes, description=description)

    def remove_job(self, job_id: str) -> bool:
        if job_id not in self.jobs:
            logger.warning("Job not found", job_id=job_id)
            return False
        try:
            self.scheduler.remove_job(job_id)
        except Exception as e:
            logger.error("Failed to remove job", job_id=job_id, error=str(e))
            return False
        del self.jobs[job_id]
        logger.info("Removed job", job_id=job_id)
        return True

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        if job_id not in self.jobs:
            return None
        scheduler_job = self.scheduler.get_job(job_id)
        if scheduler_job is None:
            return None
        next_run = getattr(scheduler_job, "next_run_time", None)
        return {
            "job_id": job_id,
            "name": scheduler_job.name,
            "interval_minutes": self.jobs[job_id]["minutes"],
            "next_run": next_run.isoformat() if next_run else None,
            "description": self.jobs[job_id].get("description"),
        }
