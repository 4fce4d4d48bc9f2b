"""Background task scheduler for periodic sync cycles."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler as APScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("pocketsync.scheduler")


class SyncScheduler:
    """Thin wrapper over APScheduler's background scheduler.

    Jobs run on APScheduler's worker threads. A single instance can be shared
    by several engines; ``shutdown`` is left to whoever created it.
    """

    def __init__(self, scheduler: Optional[APScheduler] = None) -> None:
        self.scheduler = scheduler or APScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self) -> None:
        """Start the background scheduler if it is not running yet."""
        with self._lock:
            if self.scheduler.running:
                return
            self.scheduler.start()
            logger.info("Background scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background scheduler gracefully."""
        with self._lock:
            if not self.scheduler.running:
                return
            self.scheduler.shutdown(wait=wait)
            logger.info("Background scheduler stopped")

    def add_interval_job(
        self,
        func: Callable[..., Any],
        *,
        seconds: float,
        job_id: str,
        name: str | None = None,
    ) -> None:
        """Run ``func`` every ``seconds``; an existing job with the same id is replaced."""
        self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=name or job_id,
            replace_existing=True,
        )
        logger.info(f"Scheduled job {job_id} every {seconds:g}s")

    def run_soon(self, func: Callable[..., Any], *, job_id: str, name: str | None = None) -> None:
        """Run ``func`` once, as soon as a worker thread is free."""
        self.scheduler.add_job(
            func=func,
            trigger=DateTrigger(run_date=datetime.now(timezone.utc)),
            id=job_id,
            name=name or job_id,
            replace_existing=True,
        )

    def get_job(self, job_id: str):
        return self.scheduler.get_job(job_id)

    def remove_job(self, job_id: str) -> None:
        """Remove a job; unknown ids are ignored."""
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return
        logger.info(f"Removed job: {job_id}")


__all__ = ["SyncScheduler"]
