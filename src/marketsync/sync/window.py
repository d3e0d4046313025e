"""Incremental fetch windows for daily series.

The window covers the days since the latest stored trade date, including
that date so a partially written day is refetched. Conflicting rows are
ignored on insert.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from marketsync.storage.base import MarketStore

DEFAULT_WINDOW_DAYS = 7
MAX_WINDOW_DAYS = 30


@dataclass(frozen=True)
class FetchWindow:
    """Inclusive ``start..end`` range of ``days`` calendar days ending at ``end``."""

    days: int
    end: date

    @property
    def start(self) -> date:
        return self.end - timedelta(days=max(self.days - 1, 0))

    @property
    def is_empty(self) -> bool:
        return self.days <= 0


def compute_window(
    latest: date | None,
    today: date,
    default_days: int = DEFAULT_WINDOW_DAYS,
    max_days: int = MAX_WINDOW_DAYS,
) -> FetchWindow:
    """Number of days to fetch given the latest stored date.

    >>> compute_window(None, date(2025, 1, 10)).days
    7
    >>> compute_window(date(2025, 1, 10), date(2025, 1, 10)).days
    0
    >>> compute_window(date(2024, 11, 26), date(2025, 1, 10)).days
    30
    """
    if latest is None:
        return FetchWindow(days=default_days, end=today)
    if latest >= today:
        return FetchWindow(days=0, end=today)
    return FetchWindow(days=min((today - latest).days + 1, max_days), end=today)


async def plan_window(
    store: MarketStore,
    symbol: str,
    series: str,
    today: date,
    default_days: int = DEFAULT_WINDOW_DAYS,
    max_days: int = MAX_WINDOW_DAYS,
) -> FetchWindow:
    latest = await store.latest_date(symbol, series)
    return compute_window(latest, today, default_days, max_days)
