"""Quarterly financials sync from the exchange's results listing.

Complements the announcement monitor: for each tracked instrument the newest
row of the upstream quarterly financials listing is mapped to figures and
fed through the comparison engine, which ignores quarters already stored.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from marketsync.core.exceptions import MarketSyncError, SyncError
from marketsync.core.logging import get_logger
from marketsync.providers.nse.client import parse_nse_date, parse_nse_datetime
from marketsync.results.models import QuarterlyFigures
from marketsync.results.quarters import (
    DEFAULT_FISCAL_START_MONTH,
    QuarterKey,
    classify_quarter,
    quarter_for_date,
)

if TYPE_CHECKING:
    from marketsync.providers.base import FinancialsSource
    from marketsync.results.comparison import QuarterlyComparisonEngine
    from marketsync.storage.base import MarketStore

logger = get_logger(__name__)

_ALIASES: dict[str, tuple[str, ...]] = {
    "revenue": ("revenue", "totalIncome", "sales", "income", "re_total_inc"),
    "profit": ("netProfit", "profit", "pat", "profitAfterTax", "re_net_profit"),
    "eps": ("eps", "earningsPerShare", "basicEps", "re_basic_eps"),
    "operating_profit": ("operatingProfit", "ebit", "operatingIncome"),
    "operating_profit_margin": ("operatingProfitMargin", "opm"),
}
_END_DATE_KEYS = ("toDate", "to_date", "periodEnded", "re_to_dt")
_PUBLISHED_KEYS = ("broadcastDate", "filingDate", "re_create_dt")


def _pick(row: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = row.get(key)
        if value not in (None, "", "-"):
            return value
    return None


def row_quarter(
    row: dict[str, Any], fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH
) -> QuarterKey | None:
    """Quarter named by a listing row: explicit labels, a period string, or the end date."""
    quarter = row.get("quarter")
    fiscal_year = row.get("fiscalYear") or row.get("fiscal_year")
    if quarter and fiscal_year:
        try:
            return QuarterKey.from_labels(str(quarter), str(fiscal_year))
        except ValueError:
            pass

    period = row.get("period")
    if isinstance(period, str) and period.strip():
        try:
            return QuarterKey.parse(period)
        except ValueError:
            key = classify_quarter(period, fiscal_start_month)
            if key is not None:
                return key

    end = parse_nse_date(_pick(row, _END_DATE_KEYS))
    if end is not None:
        return quarter_for_date(end, fiscal_start_month)
    return None


def row_figures(row: dict[str, Any]) -> QuarterlyFigures:
    return QuarterlyFigures(**{field: _pick(row, keys) for field, keys in _ALIASES.items()})


class QuarterlyFinancialsSync:
    """Pulls the newest quarterly financials row per instrument into the store."""

    def __init__(
        self,
        source: FinancialsSource,
        store: MarketStore,
        engine: QuarterlyComparisonEngine,
        request_delay: float = 0.5,
        fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH,
    ) -> None:
        self._source = source
        self._store = store
        self._engine = engine
        self._request_delay = request_delay
        self._fiscal_start_month = fiscal_start_month

    async def sync_symbol(self, symbol: str) -> bool:
        """Record the newest quarter for ``symbol``. Returns True if a record was added."""
        rows = await self._source.fetch_financial_results(symbol)
        if not rows:
            logger.debug("No quarterly financials listed", symbol=symbol)
            return False

        newest = rows[0]
        key = row_quarter(newest, self._fiscal_start_month)
        if key is None:
            logger.debug("Quarter not recognized in financials row", symbol=symbol)
            return False
        figures = row_figures(newest)
        if figures.is_empty():
            logger.debug("No figures in financials row", symbol=symbol, quarter=key.label)
            return False

        record = await self._engine.process(
            symbol,
            key,
            figures,
            published_at=parse_nse_datetime(_pick(newest, _PUBLISHED_KEYS)),
            source="financials",
        )
        return record is not None

    async def run(self) -> int:
        """Sync every instrument. Returns how many new quarters were recorded."""
        instruments = await self._store.list_instruments()
        added = failed = 0
        for i, instrument in enumerate(instruments):
            if i and self._request_delay > 0:
                await asyncio.sleep(self._request_delay)
            try:
                if await self.sync_symbol(instrument.symbol):
                    added += 1
            except MarketSyncError as e:
                failed += 1
                logger.warning(
                    "Quarterly financials sync failed", symbol=instrument.symbol, error=str(e)
                )

        if instruments and failed == len(instruments):
            raise SyncError(f"Quarterly financials failed for all {failed} instruments")
        logger.info(
            "Quarterly financials sync complete",
            instruments=len(instruments),
            added=added,
            failed=failed,
        )
        return added
