"""Job status and operator control endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query

from marketsync.core.constants import DEFAULT_RECENT_FAILURES_LIMIT, RECENT_FAILURES_MAX
from marketsync.core.dependencies import JobSchedulerDep
from marketsync.core.exceptions import UnknownJobError
from marketsync.core.logging import get_logger
from marketsync.jobs.models import JobRecord

logger = get_logger(__name__)

router = APIRouter()


def _unknown(name: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Unknown job: {name}")


@router.get("")
async def list_jobs(jobs: JobSchedulerDep) -> dict[str, Any]:
    """Health record and next firing time for every registered job."""
    next_runs = jobs.next_run_times()
    items = []
    for record in jobs.get_status():
        next_run = next_runs.get(record.name)
        items.append(
            {
                **record.model_dump(mode="json"),
                "next_run_time": next_run.isoformat() if next_run else None,
            }
        )
    return {"jobs": items, "count": len(items)}


@router.get("/alerts")
async def list_alerts(jobs: JobSchedulerDep) -> dict[str, Any]:
    """Jobs whose consecutive failures reached the alert threshold."""
    alerting = jobs.registry.alerting()
    return {
        "threshold": jobs.registry.alert_threshold,
        "jobs": [r.model_dump(mode="json") for r in alerting],
        "count": len(alerting),
    }


@router.get("/failures")
async def list_failures(
    jobs: JobSchedulerDep,
    limit: Annotated[int, Query(ge=1, le=RECENT_FAILURES_MAX)] = DEFAULT_RECENT_FAILURES_LIMIT,
) -> dict[str, Any]:
    failures = await jobs.get_recent_failures(limit)
    return {"failures": [f.model_dump(mode="json") for f in failures], "count": len(failures)}


@router.post("/{name}/run")
async def run_job(name: str, jobs: JobSchedulerDep, wait: bool = False) -> dict[str, Any]:
    """Trigger a job outside its schedule.

    By default the run is queued on the scheduler and this returns at once;
    ``wait=true`` runs it inline and returns the updated record.
    """
    try:
        triggered = await jobs.trigger_now(name, wait=wait)
    except UnknownJobError:
        raise _unknown(name) from None
    if not triggered:
        raise HTTPException(status_code=409, detail=f"Job is paused: {name}")
    if not wait:
        return {"status": "triggered", "job": name}
    record = jobs.registry.get(name)
    return {
        "status": "failed" if record.last_error else "completed",
        "job": name,
        "record": record.model_dump(mode="json"),
    }


@router.post("/{name}/pause")
async def pause_job(name: str, jobs: JobSchedulerDep) -> JobRecord:
    try:
        return jobs.pause(name)
    except UnknownJobError:
        raise _unknown(name) from None


@router.post("/{name}/resume")
async def resume_job(name: str, jobs: JobSchedulerDep) -> JobRecord:
    try:
        return jobs.resume(name)
    except UnknownJobError:
        raise _unknown(name) from None
