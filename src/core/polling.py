"""Fixed-interval polling with explicit cancellation.

Thin wrapper over APScheduler's AsyncIOScheduler: every subscription is one
interval job, and cancelling it removes the job.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


class PollingSubscription:
    """Handle for a running poll; cancel() stops it."""

    def __init__(self, scheduler: AsyncIOScheduler, job_id: str) -> None:
        self._scheduler = scheduler
        self.job_id = job_id
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        if self._scheduler.get_job(self.job_id) is not None:
            self._scheduler.remove_job(self.job_id)
        self.cancelled = True
        logger.info("Polling '%s' cancelled", self.job_id)


class Poller:
    """Owns the scheduler that drives all polling subscriptions."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def subscribe(
        self,
        callback: Callable[[], Awaitable[object]],
        interval_seconds: int,
        name: str,
        run_immediately: bool = False,
    ) -> PollingSubscription:
        """Run callback every interval_seconds until the subscription is cancelled."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        kwargs = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            callback,
            "interval",
            seconds=interval_seconds,
            id=name,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **kwargs,
        )
        if not self._scheduler.running:
            self._scheduler.start()

        logger.info("Polling '%s' every %ds", name, interval_seconds)
        return PollingSubscription(self._scheduler, name)

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
