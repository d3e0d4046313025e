"""Recurring job scheduler with operator controls.

Wraps APScheduler so every firing goes through ``JobScheduler.run``:
paused jobs are skipped, outcomes land in the ``JobRegistry``, and
exceptions from a job body stop at this boundary so the trigger keeps
firing on its normal cadence.

Firings of the same job may overlap (``max_instances``); job bodies are
expected to be idempotent at the storage boundary.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from marketsync.core.constants import DEFAULT_RECENT_FAILURES_LIMIT
from marketsync.core.logging import get_logger

if TYPE_CHECKING:
    from apscheduler.triggers.base import BaseTrigger

    from marketsync.jobs.models import JobRecord, MetricRow
    from marketsync.jobs.registry import JobRegistry

logger = get_logger(__name__)

JobBody = Callable[[], Awaitable[int | None]]


class FailureStore(Protocol):
    async def recent_failures(self, limit: int = 20) -> list[MetricRow]: ...


def create_scheduler(timezone: str = "Asia/Kolkata") -> AsyncIOScheduler:
    """Create a new scheduler instance."""
    return AsyncIOScheduler(timezone=timezone)


class JobScheduler:
    """Binds named job bodies to triggers and records every outcome.

    Usage:
        jobs = JobScheduler(registry)
        jobs.register("candlesticks", CronTrigger(hour=16, minute=30), sync_candles)
        jobs.start()
        await jobs.trigger_now("candlesticks")
    """

    def __init__(
        self,
        registry: JobRegistry,
        scheduler: AsyncIOScheduler | None = None,
        max_instances: int = 3,
        failure_store: FailureStore | None = None,
    ) -> None:
        self._registry = registry
        self._scheduler = scheduler or create_scheduler()
        self._max_instances = max_instances
        self._failure_store = failure_store
        self._bodies: dict[str, JobBody] = {}

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def register(
        self,
        name: str,
        trigger: BaseTrigger,
        body: JobBody,
        schedule: str = "",
        alert_on_failure: bool = True,
    ) -> None:
        """Register a job body under ``name`` and attach it to ``trigger``."""
        self._registry.register(
            name, schedule=schedule or str(trigger), alert_on_failure=alert_on_failure
        )
        self._bodies[name] = body
        self._scheduler.add_job(
            self.run,
            trigger,
            args=[name],
            id=name,
            name=name,
            max_instances=self._max_instances,
            misfire_grace_time=None,
            replace_existing=True,
        )
        logger.debug("Job registered", job=name, trigger=str(trigger))

    async def run(self, name: str) -> int | None:
        """Execute one firing of ``name``. Never raises for job-body errors."""
        body = self._bodies[name]
        if self._registry.is_paused(name):
            logger.info("Skipping paused job", job=name)
            return None

        started_at = self._registry.mark_started(name)
        start = time.perf_counter()
        try:
            rows = await body()
        except Exception as e:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.exception("Job failed", job=name, duration_ms=duration_ms, error=str(e))
            await self._registry.mark_failure(name, e, duration_ms, started_at=started_at)
            return None

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        await self._registry.mark_success(name, duration_ms, rows, started_at=started_at)
        logger.info("Job completed", job=name, duration_ms=duration_ms, rows_affected=rows)
        return rows

    # -------------------------------------------------------------------------
    # Operator controls
    # -------------------------------------------------------------------------

    async def trigger_now(self, name: str, wait: bool = False) -> bool:
        """Run ``name`` outside its schedule. Returns False if the job is paused.

        With ``wait=False`` and a running scheduler the run is handed to
        APScheduler and this returns immediately.
        """
        self._registry.get(name)
        if self._registry.is_paused(name):
            logger.info("Manual trigger ignored for paused job", job=name)
            return False
        if wait or not self.running:
            await self.run(name)
        else:
            self._scheduler.add_job(
                self.run,
                args=[name],
                id=f"{name}_manual",
                replace_existing=True,
                misfire_grace_time=None,
            )
        logger.info("Job triggered manually", job=name, wait=wait)
        return True

    def pause(self, name: str) -> JobRecord:
        return self._registry.pause(name).model_copy()

    def resume(self, name: str) -> JobRecord:
        return self._registry.resume(name).model_copy()

    def get_status(self) -> list[JobRecord]:
        return self._registry.snapshot()

    def next_run_times(self) -> dict[str, datetime | None]:
        times: dict[str, datetime | None] = {}
        for name in self._bodies:
            job = self._scheduler.get_job(name)
            times[name] = getattr(job, "next_run_time", None) if job else None
        return times

    async def get_recent_failures(
        self, limit: int = DEFAULT_RECENT_FAILURES_LIMIT
    ) -> list[MetricRow]:
        """Failed runs, newest first: from the store, or this process's memory."""
        if self._failure_store is not None:
            try:
                return await self._failure_store.recent_failures(limit)
            except Exception as e:
                logger.warning("Failed to read job failures from store", error=str(e))
        return self._registry.recent_failures(limit)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        if not self.running:
            self._scheduler.start()
            logger.info("Scheduler started", jobs=list(self._bodies))

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.debug("Scheduler stopped")
