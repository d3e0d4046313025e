"""Shared per-instrument loop for incremental daily-series syncs."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, TypeVar

from marketsync.core.exceptions import MarketSyncError, SyncError
from marketsync.core.logging import get_logger
from marketsync.sync.window import DEFAULT_WINDOW_DAYS, MAX_WINDOW_DAYS, plan_window

if TYPE_CHECKING:
    from marketsync.storage.base import MarketStore

logger = get_logger(__name__)

RowT = TypeVar("RowT")

Fetcher = Callable[[str, date, date], Awaitable[Sequence[RowT]]]
Inserter = Callable[[RowT], Awaitable[bool]]


async def sync_daily_series(
    store: MarketStore,
    series: str,
    fetch: Fetcher[RowT],
    insert: Inserter[RowT],
    today: date,
    default_days: int = DEFAULT_WINDOW_DAYS,
    max_days: int = MAX_WINDOW_DAYS,
) -> int:
    """Fetch and insert the planned window for every instrument.

    Returns the number of rows inserted. Upstream and data-shape errors skip
    the instrument; if every attempted instrument fails the run raises
    ``SyncError``. Storage errors outside row inserts propagate.
    """
    instruments = await store.list_instruments()
    inserted = attempted = failed = 0

    for instrument in instruments:
        symbol = instrument.symbol
        window = await plan_window(store, symbol, series, today, default_days, max_days)
        if window.is_empty:
            logger.debug("Series up to date", series=series, symbol=symbol)
            continue

        attempted += 1
        try:
            rows = await fetch(symbol, window.start, window.end)
        except MarketSyncError as e:
            failed += 1
            logger.warning(
                "Series fetch failed",
                series=series,
                symbol=symbol,
                days=window.days,
                error=str(e),
            )
            continue

        count = 0
        for row in rows:
            try:
                if await insert(row):
                    count += 1
            except Exception as e:
                logger.debug("Row insert skipped", series=series, symbol=symbol, error=str(e))
        inserted += count

        await store.mark_series_updated(symbol, series, datetime.now(UTC))
        logger.debug(
            "Series synced",
            series=series,
            symbol=symbol,
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            fetched=len(rows),
            inserted=count,
        )

    if attempted and failed == attempted:
        raise SyncError(f"{series} sync failed for all {attempted} instruments")

    logger.info(
        "Series sync complete",
        series=series,
        instruments=len(instruments),
        attempted=attempted,
        failed=failed,
        inserted=inserted,
    )
    return inserted
