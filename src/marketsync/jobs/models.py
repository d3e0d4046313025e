"""Pydantic models for job health tracking."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class JobRecord(BaseModel):
    """Health counters for one recurring job. In-memory only."""

    name: str
    schedule: str = ""
    alert_on_failure: bool = True
    runs: int = 0
    successes: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_run: datetime | None = None
    last_success: datetime | None = None
    last_error: str | None = None
    last_duration_ms: float | None = None
    average_duration_ms: float | None = None
    total_duration_ms: float = 0.0
    last_rows_affected: int | None = None
    paused: bool = False


class MetricRow(BaseModel):
    """One persisted run outcome, appended per success or failure."""

    job_name: str
    started_at: datetime
    duration_ms: float | None = None
    success: bool
    error_message: str | None = None
    rows_affected: int | None = None
