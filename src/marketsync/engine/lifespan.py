"""Engine lifecycle used by the FastAPI server.

Provides ``engine_lifespan()``, an async context manager that connects
storage, builds the sync components, registers the recurring jobs and
starts the scheduler and live price poller. The FastAPI app calls this from
its own lifespan.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from marketsync.core.constants import JOB_LIVE_PRICE
from marketsync.core.logging import get_logger
from marketsync.jobs.definitions import SyncComponents, build_jobs
from marketsync.jobs.registry import JobRegistry
from marketsync.jobs.scheduler import JobScheduler, create_scheduler
from marketsync.market.poller import LivePricePoller
from marketsync.market.session import MarketSession
from marketsync.providers.extraction import HttpDocumentExtractor
from marketsync.providers.nse import NSEClient
from marketsync.results.comparison import QuarterlyComparisonEngine
from marketsync.results.financials import QuarterlyFinancialsSync
from marketsync.results.monitor import ResultsMonitor
from marketsync.storage.database import close_database, init_database
from marketsync.storage.redis import EodMarkerStore, close_redis, init_redis

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from marketsync.config import Settings
    from marketsync.storage.database import Database

logger = get_logger(__name__)


def _is_paused(registry: JobRegistry, name: str) -> bool:
    return name in registry and registry.is_paused(name)


@dataclass
class EngineState:
    """Holds references to all running engine resources."""

    settings: Settings
    redis: Redis
    db: Database
    session: MarketSession
    jobs: JobScheduler
    poller: LivePricePoller
    monitor: ResultsMonitor


@asynccontextmanager
async def engine_lifespan(settings: Settings) -> AsyncIterator[EngineState]:
    """Start storage, jobs and the poller; tear everything down on exit."""
    client: NSEClient | None = None
    extractor: HttpDocumentExtractor | None = None
    jobs: JobScheduler | None = None
    poller: LivePricePoller | None = None

    try:
        # 1. Storage
        redis = await init_redis(settings.redis_url)
        db = await init_database(settings.database_url)

        # 2. Upstream collaborators
        client = NSEClient(
            base_url=settings.nse_base_url,
            min_interval=settings.nse_min_request_interval,
            session_ttl=settings.nse_session_ttl_minutes * 60,
            timeout=settings.nse_timeout,
        )
        if settings.extractor_url:
            extractor = HttpDocumentExtractor(settings.extractor_url, settings.extractor_timeout)
        else:
            logger.warning("EXTRACTOR_URL not set, results publications will not be processed")

        # 3. Sync components
        registry = JobRegistry(metrics_sink=db, alert_threshold=settings.failure_alert_threshold)
        session = MarketSession.from_settings(settings)
        poller = LivePricePoller(
            session,
            client,
            db,
            eod_markers=EodMarkerStore(redis),
            cache_ttl=settings.quote_cache_ttl,
            poll_interval=settings.live_poll_interval,
            concurrency=settings.fetch_concurrency,
            batch_delay=settings.batch_delay,
            stale_after=timedelta(hours=settings.eod_stale_hours),
            should_poll=lambda: not _is_paused(registry, JOB_LIVE_PRICE),
        )
        engine = QuarterlyComparisonEngine(db)
        monitor = ResultsMonitor(
            client,
            db,
            engine,
            extractor,
            lookback_days=settings.results_lookback_days,
            min_confidence=settings.min_extraction_confidence,
            fiscal_start_month=settings.fiscal_year_start_month,
            quarter_fallback=settings.results_quarter_fallback,
        )
        financials = QuarterlyFinancialsSync(
            client,
            db,
            engine,
            request_delay=settings.financials_request_delay,
            fiscal_start_month=settings.fiscal_year_start_month,
        )

        # 4. Jobs
        jobs = JobScheduler(
            registry,
            create_scheduler(settings.market_timezone),
            max_instances=settings.scheduler_max_instances,
            failure_store=db,
        )
        components = SyncComponents(
            session=session,
            store=db,
            history=client,
            poller=poller,
            monitor=monitor,
            financials=financials,
        )
        build_jobs(jobs, components, settings)
        jobs.start()

        # 5. Pick up the current session and catch up stale quotes
        await poller.start()

        logger.info(
            "Engine ready",
            jobs=registry.names(),
            market_open=session.is_open(),
            extraction_enabled=extractor is not None,
        )

        yield EngineState(
            settings=settings,
            redis=redis,
            db=db,
            session=session,
            jobs=jobs,
            poller=poller,
            monitor=monitor,
        )

    finally:
        # Graceful shutdown
        logger.info("Shutting down engine...")

        if jobs:
            jobs.shutdown()
        if poller:
            await poller.stop()
        if extractor:
            await extractor.close()
        if client:
            await client.close()

        await close_database()
        await close_redis()
        logger.info("Engine shutdown complete")
