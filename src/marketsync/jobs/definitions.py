"""Recurring job bodies and their triggers.

All cron triggers run in the exchange timezone:

    live_price            every 30s, 09:00-15:59 Mon-Fri   session check / EOD capture
    price_refresh         every 30 min                     stale keepalive, no alerting
    results_calendar      every 30 min, 09:00-20:59 Mon-Fri
    candlesticks          16:30 Mon-Fri
    delivery              16:35 Mon-Fri
    quarterly_financials  17:00 Mon-Fri
    metrics_purge         02:10 daily
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import partial
from typing import TYPE_CHECKING

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from marketsync.core.constants import (
    JOB_CANDLESTICKS,
    JOB_DELIVERY,
    JOB_LIVE_PRICE,
    JOB_METRICS_PURGE,
    JOB_PRICE_REFRESH,
    JOB_QUARTERLY_FINANCIALS,
    JOB_RESULTS_CALENDAR,
)
from marketsync.core.logging import get_logger
from marketsync.sync.candles import sync_candles
from marketsync.sync.delivery import sync_delivery

if TYPE_CHECKING:
    from marketsync.config import Settings
    from marketsync.jobs.scheduler import JobScheduler
    from marketsync.market.poller import LivePricePoller
    from marketsync.market.session import MarketSession
    from marketsync.providers.base import HistorySource
    from marketsync.results.financials import QuarterlyFinancialsSync
    from marketsync.results.monitor import ResultsMonitor
    from marketsync.storage.base import MarketStore

logger = get_logger(__name__)


@dataclass
class SyncComponents:
    """Everything the job bodies operate on."""

    session: MarketSession
    store: MarketStore
    history: HistorySource
    poller: LivePricePoller
    monitor: ResultsMonitor
    financials: QuarterlyFinancialsSync


async def live_price_job(components: SyncComponents) -> int:
    """Apply market open/close transitions; returns instruments updated at EOD."""
    return await components.poller.check_session()


async def price_refresh_job(components: SyncComponents) -> int:
    return await components.poller.refresh_if_stale()


async def results_calendar_job(components: SyncComponents) -> int:
    return await components.monitor.scan(components.session.today())


async def candlesticks_job(components: SyncComponents, settings: Settings) -> int:
    return await sync_candles(
        components.history,
        components.store,
        components.session.today(),
        settings.window_default_days,
        settings.window_max_days,
    )


async def delivery_job(components: SyncComponents, settings: Settings) -> int:
    return await sync_delivery(
        components.history,
        components.store,
        components.session.today(),
        settings.window_default_days,
        settings.window_max_days,
    )


async def quarterly_financials_job(components: SyncComponents) -> int:
    return await components.financials.run()


async def metrics_purge_job(components: SyncComponents, settings: Settings) -> int:
    """Delete job metric rows past the retention period."""
    cutoff = datetime.now(UTC) - timedelta(days=settings.metrics_retention_days)
    deleted = await components.store.purge_metrics(cutoff)
    if deleted:
        logger.info("Purged old job metrics", deleted=deleted, before=cutoff.isoformat())
    return deleted


def build_jobs(jobs: JobScheduler, components: SyncComponents, settings: Settings) -> None:
    """Register every recurring job on ``jobs``."""
    tz = settings.market_timezone
    weekdays = "mon-fri"

    jobs.register(
        JOB_LIVE_PRICE,
        CronTrigger(day_of_week=weekdays, hour="9-15", second="*/30", timezone=tz),
        partial(live_price_job, components),
        schedule="every 30s, 09:00-15:59 Mon-Fri",
    )
    jobs.register(
        JOB_PRICE_REFRESH,
        IntervalTrigger(minutes=30, timezone=tz),
        partial(price_refresh_job, components),
        schedule="every 30 min",
        alert_on_failure=False,
    )
    jobs.register(
        JOB_RESULTS_CALENDAR,
        CronTrigger(day_of_week=weekdays, hour="9-20", minute="*/30", timezone=tz),
        partial(results_calendar_job, components),
        schedule="every 30 min, 09:00-20:59 Mon-Fri",
    )
    jobs.register(
        JOB_CANDLESTICKS,
        CronTrigger(day_of_week=weekdays, hour=16, minute=30, timezone=tz),
        partial(candlesticks_job, components, settings),
        schedule="16:30 Mon-Fri",
    )
    jobs.register(
        JOB_DELIVERY,
        CronTrigger(day_of_week=weekdays, hour=16, minute=35, timezone=tz),
        partial(delivery_job, components, settings),
        schedule="16:35 Mon-Fri",
    )
    jobs.register(
        JOB_QUARTERLY_FINANCIALS,
        CronTrigger(day_of_week=weekdays, hour=17, minute=0, timezone=tz),
        partial(quarterly_financials_job, components),
        schedule="17:00 Mon-Fri",
    )
    jobs.register(
        JOB_METRICS_PURGE,
        CronTrigger(hour=2, minute=10, timezone=tz),
        partial(metrics_purge_job, components, settings),
        schedule="02:10 daily",
    )
    logger.debug("Recurring jobs registered", jobs=jobs.registry.names())
