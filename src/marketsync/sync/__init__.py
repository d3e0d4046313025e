"""Incremental daily-series sync (candles, delivery volume)."""

from marketsync.sync.candles import sync_candles
from marketsync.sync.delivery import sync_delivery
from marketsync.sync.window import FetchWindow, compute_window, plan_window

__all__ = ["FetchWindow", "compute_window", "plan_window", "sync_candles", "sync_delivery"]
