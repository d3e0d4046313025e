"""Quarter-over-quarter and year-over-year comparison of reported figures."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from marketsync.core.logging import get_logger
from marketsync.results.models import METRIC_FIELDS, QuarterlyFigures, QuarterlyMetricsRecord
from marketsync.results.quarters import percent_change, previous_quarter, year_ago_quarter

if TYPE_CHECKING:
    from marketsync.results.quarters import QuarterKey
    from marketsync.storage.base import MarketStore

logger = get_logger(__name__)


def build_record(
    symbol: str,
    key: QuarterKey,
    figures: QuarterlyFigures,
    previous: QuarterlyMetricsRecord | None,
    year_ago: QuarterlyMetricsRecord | None,
    published_at: datetime | None = None,
    source: str = "announcement",
) -> QuarterlyMetricsRecord:
    """Denormalize current figures with their comparison quarters.

    A missing comparison quarter leaves its values and deltas as None.
    """
    data: dict[str, Any] = {
        "symbol": symbol,
        "quarter": key.quarter_label,
        "fiscal_year": key.fiscal_label,
        "published_at": published_at,
        "source": source,
    }
    for name in METRIC_FIELDS:
        current = getattr(figures, name)
        prev = getattr(previous, name) if previous else None
        year_ago_value = getattr(year_ago, name) if year_ago else None
        data[name] = current
        data[f"prev_{name}"] = prev
        data[f"year_ago_{name}"] = year_ago_value
        data[f"{name}_qoq"] = percent_change(current, prev)
        data[f"{name}_yoy"] = percent_change(current, year_ago_value)
    return QuarterlyMetricsRecord(**data)


class QuarterlyComparisonEngine:
    """Builds and stores one comparison record per (symbol, quarter).

    Stored records are never recomputed: once a quarter exists for a symbol,
    later publications of the same quarter are skipped.
    """

    def __init__(self, store: MarketStore) -> None:
        self._store = store

    async def exists(self, symbol: str, key: QuarterKey) -> bool:
        return await self._store.get_quarterly(symbol, key) is not None

    async def process(
        self,
        symbol: str,
        key: QuarterKey,
        figures: QuarterlyFigures,
        published_at: datetime | None = None,
        source: str = "announcement",
    ) -> QuarterlyMetricsRecord | None:
        """Store the comparison record for ``key``. Returns None if it already existed."""
        if await self.exists(symbol, key):
            logger.debug("Quarter already recorded", symbol=symbol, quarter=key.label)
            return None

        prev_key = previous_quarter(key)
        year_ago_key = year_ago_quarter(key)
        previous = await self._store.get_quarterly(symbol, prev_key)
        year_ago = await self._store.get_quarterly(symbol, year_ago_key)

        record = build_record(symbol, key, figures, previous, year_ago, published_at, source)
        if not await self._store.insert_quarterly(record):
            logger.debug("Quarter inserted concurrently", symbol=symbol, quarter=key.label)
            return None

        logger.info(
            "Quarterly results recorded",
            symbol=symbol,
            quarter=key.label,
            source=source,
            has_previous=previous is not None,
            has_year_ago=year_ago is not None,
            revenue_qoq=str(record.revenue_qoq) if record.revenue_qoq is not None else None,
            profit_yoy=str(record.profit_yoy) if record.profit_yoy is not None else None,
        )
        return record
