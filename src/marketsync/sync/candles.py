"""Daily candlestick sync."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from marketsync.core.constants import SERIES_CANDLES
from marketsync.sync.series import sync_daily_series
from marketsync.sync.window import DEFAULT_WINDOW_DAYS, MAX_WINDOW_DAYS

if TYPE_CHECKING:
    from marketsync.providers.base import HistorySource
    from marketsync.storage.base import MarketStore


async def sync_candles(
    source: HistorySource,
    store: MarketStore,
    today: date,
    default_days: int = DEFAULT_WINDOW_DAYS,
    max_days: int = MAX_WINDOW_DAYS,
) -> int:
    """Fetch missing daily candles for every instrument. Returns rows inserted."""
    return await sync_daily_series(
        store,
        SERIES_CANDLES,
        source.fetch_candles,
        store.insert_candle,
        today,
        default_days,
        max_days,
    )
