"""Job health registry.

Tracks run/success/failure counters, durations, and pause flags for every
recurring job, and appends a ``MetricRow`` per outcome to a durable sink.
Counters live in memory and reset on restart; metric rows survive.

Persisting a metric row is best-effort: a sink failure is logged and never
propagates into the job that produced it.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from marketsync.core.constants import RECENT_FAILURES_MAX
from marketsync.core.exceptions import UnknownJobError
from marketsync.core.logging import get_logger
from marketsync.jobs.models import JobRecord, MetricRow

logger = get_logger(__name__)


class MetricsSink(Protocol):
    async def append_metric(self, row: MetricRow) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobRegistry:
    """In-memory health records for named jobs."""

    def __init__(
        self,
        metrics_sink: MetricsSink | None = None,
        alert_threshold: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if alert_threshold < 1:
            raise ValueError("alert_threshold must be >= 1")
        self._sink = metrics_sink
        self._alert_threshold = alert_threshold
        self._clock = clock
        self._jobs: dict[str, JobRecord] = {}
        self._alerted: set[str] = set()
        self._failures: deque[MetricRow] = deque(maxlen=RECENT_FAILURES_MAX)

    @property
    def alert_threshold(self) -> int:
        return self._alert_threshold

    def set_metrics_sink(self, sink: MetricsSink | None) -> None:
        self._sink = sink

    def register(self, name: str, schedule: str = "", alert_on_failure: bool = True) -> JobRecord:
        """Create the record for ``name``. Re-registering returns the existing record."""
        record = self._jobs.get(name)
        if record is None:
            record = JobRecord(name=name, schedule=schedule, alert_on_failure=alert_on_failure)
            self._jobs[name] = record
        return record

    def get(self, name: str) -> JobRecord:
        try:
            return self._jobs[name]
        except KeyError:
            raise UnknownJobError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def names(self) -> list[str]:
        return list(self._jobs)

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def mark_started(self, name: str) -> datetime:
        """Count a run and return its start time."""
        record = self.get(name)
        now = self._clock()
        record.runs += 1
        record.last_run = now
        return now

    async def mark_success(
        self,
        name: str,
        duration_ms: float,
        rows_affected: int | None = None,
        started_at: datetime | None = None,
    ) -> None:
        record = self.get(name)
        now = self._clock()
        record.successes += 1
        record.last_success = now
        record.last_error = None
        record.last_duration_ms = duration_ms
        record.total_duration_ms += duration_ms
        record.average_duration_ms = round(record.total_duration_ms / record.successes, 2)
        if rows_affected is not None:
            record.last_rows_affected = rows_affected
        record.consecutive_failures = 0
        self._alerted.discard(name)

        await self._persist(
            MetricRow(
                job_name=name,
                started_at=started_at or record.last_run or now,
                duration_ms=duration_ms,
                success=True,
                rows_affected=rows_affected,
            )
        )

    async def mark_failure(
        self,
        name: str,
        error: BaseException | str,
        duration_ms: float | None = None,
        started_at: datetime | None = None,
    ) -> None:
        """Record a failure. Never pauses the job; see ``needs_alert``."""
        record = self.get(name)
        now = self._clock()
        message = str(error) or type(error).__name__
        record.failures += 1
        record.consecutive_failures += 1
        record.last_error = message
        if duration_ms is not None:
            record.last_duration_ms = duration_ms
            record.total_duration_ms += duration_ms
            if record.successes:
                record.average_duration_ms = round(
                    record.total_duration_ms / record.successes, 2
                )

        if self.needs_alert(name) and name not in self._alerted:
            self._alerted.add(name)
            logger.error(
                "Job failing repeatedly",
                job=name,
                consecutive_failures=record.consecutive_failures,
                threshold=self._alert_threshold,
                last_error=message,
            )

        row = MetricRow(
            job_name=name,
            started_at=started_at or record.last_run or now,
            duration_ms=duration_ms,
            success=False,
            error_message=message,
        )
        self._failures.append(row)
        await self._persist(row)

    async def _persist(self, row: MetricRow) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.append_metric(row)
        except Exception as e:
            logger.warning("Failed to persist job metric", job=row.job_name, error=str(e))

    # -------------------------------------------------------------------------
    # Operator state
    # -------------------------------------------------------------------------

    def pause(self, name: str) -> JobRecord:
        record = self.get(name)
        record.paused = True
        logger.info("Job paused", job=name)
        return record

    def resume(self, name: str) -> JobRecord:
        """Unpause and start a fresh failure streak."""
        record = self.get(name)
        record.paused = False
        record.consecutive_failures = 0
        self._alerted.discard(name)
        logger.info("Job resumed", job=name)
        return record

    def is_paused(self, name: str) -> bool:
        return self.get(name).paused

    def needs_alert(self, name: str) -> bool:
        record = self.get(name)
        return record.alert_on_failure and record.consecutive_failures >= self._alert_threshold

    def alerting(self) -> list[JobRecord]:
        return [r.model_copy() for r in self._jobs.values() if self.needs_alert(r.name)]

    def snapshot(self) -> list[JobRecord]:
        """Copies of every record, in registration order."""
        return [r.model_copy() for r in self._jobs.values()]

    def recent_failures(self, limit: int = 20) -> list[MetricRow]:
        """Failures seen by this process, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._failures))[:limit]
