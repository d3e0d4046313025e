"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from marketsync.config import Settings, get_settings
from marketsync.engine import EngineState
from marketsync.jobs.scheduler import JobScheduler

# Type aliases for cleaner dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_engine_state(request: Request) -> EngineState:
    """Get EngineState from app.state (set during lifespan)."""
    return request.app.state.engine  # type: ignore[no-any-return]


async def get_job_scheduler(
    state: Annotated[EngineState, Depends(get_engine_state)],
) -> JobScheduler:
    return state.jobs


# Annotated dependencies for use in route handlers
EngineStateDep = Annotated[EngineState, Depends(get_engine_state)]
JobSchedulerDep = Annotated[JobScheduler, Depends(get_job_scheduler)]
