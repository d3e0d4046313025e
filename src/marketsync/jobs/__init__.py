"""Recurring jobs: health registry, scheduler, and job definitions."""

from marketsync.jobs.models import JobRecord, MetricRow
from marketsync.jobs.registry import JobRegistry
from marketsync.jobs.scheduler import JobScheduler, create_scheduler

__all__ = ["JobRecord", "JobRegistry", "JobScheduler", "MetricRow", "create_scheduler"]
