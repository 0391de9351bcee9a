"""Background collector scheduler using APScheduler.

Runs the Oura collector at a fixed interval for long-lived deployments.
One-shot deployments (cron, Kubernetes CronJob) call the collector directly
instead.

Usage:
    scheduler = CollectorScheduler(run_collection, interval_minutes=60)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from oura_health_server.core.errors import AppError
from oura_health_server.services.collector import CollectionResult

if TYPE_CHECKING:
    from apscheduler.job import Job

logger = structlog.get_logger()


class CollectorScheduler:
    """Periodically trigger collector runs.

    Attributes:
        run_collection: Coroutine factory performing one collector run
        interval_minutes: Minutes between runs
        scheduler: APScheduler instance
        is_running: Whether scheduler is currently running
        last_run_at: Timestamp of last run
        last_run_stats: Stats from last run
    """

    def __init__(
        self,
        run_collection: Callable[[], Awaitable[CollectionResult]],
        interval_minutes: int = 60,
        run_on_start: bool = True,
    ) -> None:
        """Initialize collector scheduler.

        Args:
            run_collection: Performs one run and returns its result
            interval_minutes: Minutes between runs
            run_on_start: Fire the first run immediately instead of after one interval
        """
        self.run_collection = run_collection
        self.interval_minutes = interval_minutes
        self.run_on_start = run_on_start
        self.scheduler = AsyncIOScheduler()
        self.is_running = False
        self.last_run_at: datetime | None = None
        self.last_run_stats: dict[str, object] | None = None
        self._job: Job | None = None
        self.logger = logger.bind(component="collector_scheduler")

    async def start(self) -> None:
        """Start the background scheduler."""
        if self.is_running:
            self.logger.warning("Scheduler already running")
            return

        self.logger.info(
            "Starting collector scheduler",
            interval_minutes=self.interval_minutes,
            run_on_start=self.run_on_start,
        )

        # APScheduler treats an explicit next_run_time=None as "paused"
        first_run = {"next_run_time": datetime.now(UTC)} if self.run_on_start else {}
        self._job = self.scheduler.add_job(
            self._run_cycle,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="collect_oura_data",
            name="Collect Oura data",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            **first_run,
        )

        self.scheduler.start()
        self.is_running = True

        self.logger.info("Collector scheduler started")

    async def stop(self) -> None:
        """Stop the background scheduler gracefully."""
        if not self.is_running:
            return

        self.logger.info("Stopping collector scheduler")

        self.scheduler.shutdown(wait=True)
        self.is_running = False

        self.logger.info("Collector scheduler stopped")

    async def _run_cycle(self) -> None:
        """Execute one collector run.

        Run failures are recorded in last_run_stats; the schedule keeps going
        so a later run can succeed once the token is re-authorized.
        """
        self.logger.info("Starting scheduled collection")

        try:
            result = await self.run_collection()
        except AppError as e:
            self.logger.error("Scheduled collection failed", code=e.code, error=e.message)
            self.last_run_stats = {
                "error": e.message,
                "code": e.code,
                "timestamp": datetime.now(UTC).isoformat(),
            }
            return
        finally:
            self.last_run_at = datetime.now(UTC)

        self.last_run_stats = result.to_dict()

    def get_status(self) -> dict[str, object]:
        """Get scheduler status for monitoring.

        Returns:
            Dict with scheduler state and stats
        """
        next_run = None
        if self._job and self.is_running:
            next_run_time = self._job.next_run_time
            if next_run_time:
                next_run = next_run_time.isoformat()

        return {
            "is_running": self.is_running,
            "interval_minutes": self.interval_minutes,
            "next_run_at": next_run,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_stats": self.last_run_stats,
        }
