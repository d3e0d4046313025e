"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from marketsync.api import api_router
from marketsync.config import get_settings
from marketsync.core.dependencies import EngineStateDep
from marketsync.core.logging import get_logger, setup_logging
from marketsync.engine import engine_lifespan

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: runs the sync engine alongside the HTTP server."""
    settings = get_settings()
    setup_logging(settings)

    async with engine_lifespan(settings) as state:
        app.state.engine = state
        logger.info("marketsync ready", env=settings.env)
        yield


app = FastAPI(
    title="marketsync",
    description="NSE market data sync and job scheduling engine",
    version="0.1.0",
    lifespan=lifespan,
)

# Infrastructure (no prefix, not versioned)


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: always ok if process is running."""
    return {"status": "ok"}


@app.get("/ready")
async def ready(state: EngineStateDep) -> dict[str, str]:
    """Readiness check: verifies infrastructure is connected."""
    checks: dict[str, str] = {}
    try:
        await state.redis.ping()  # type: ignore[misc]
        checks["redis"] = "ok"
    except Exception:
        checks["redis"] = "error"
    try:
        await state.db.fetchval("SELECT 1")
        checks["db"] = "ok"
    except Exception:
        checks["db"] = "error"
    checks["scheduler"] = "ok" if state.jobs.running else "error"
    status = "ready" if all(v != "error" for v in checks.values()) else "not_ready"
    return {"status": status, **checks}


# Domain API
app.include_router(api_router, prefix="/api/v1")
