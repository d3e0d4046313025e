"""Pytest fixtures and configuration."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from marketsync.jobs.models import MetricRow
from marketsync.providers.nse.models import Candle, DeliveryRow, Quote
from marketsync.results.models import QuarterlyMetricsRecord
from marketsync.results.quarters import QuarterKey
from marketsync.storage.models import Instrument


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests by default unless -m integration is specified."""
    # Check if user explicitly requested integration tests
    markexpr = config.getoption("-m", default="")
    if "integration" in markexpr:
        # User wants integration tests, don't skip
        return

    # Skip integration tests by default
    skip_integration = pytest.mark.skip(reason="Integration test - run with: pytest -m integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio for async tests."""
    return "asyncio"


# ─────────────────────────────────────────────────────────────
# In-memory store
# ─────────────────────────────────────────────────────────────


class InMemoryStore:
    """Dict-backed stand-in for ``Database`` with the same conflict semantics."""

    def __init__(self, symbols: list[str] | None = None) -> None:
        self.instruments: dict[str, Instrument] = {
            s: Instrument(symbol=s, company_name=f"{s} Ltd") for s in symbols or []
        }
        self.quotes: dict[str, Quote] = {}
        self.candles: dict[tuple[str, date], Candle] = {}
        self.delivery: dict[tuple[str, date], DeliveryRow] = {}
        self.series_updates: dict[tuple[str, str], datetime] = {}
        self.quarterly: dict[tuple[str, str, str], QuarterlyMetricsRecord] = {}
        self.metrics: list[MetricRow] = []
        self.latest_dates: dict[tuple[str, str], date] = {}

    async def list_instruments(self) -> list[Instrument]:
        return [self.instruments[s] for s in sorted(self.instruments)]

    async def get_instrument(self, symbol: str) -> Instrument | None:
        return self.instruments.get(symbol)

    async def update_live_quote(self, quote: Quote) -> None:
        self.quotes[quote.symbol] = quote
        if quote.symbol in self.instruments:
            self.instruments[quote.symbol].last_live_update = quote.fetched_at

    async def latest_live_update(self) -> datetime | None:
        stamps = [i.last_live_update for i in self.instruments.values() if i.last_live_update]
        return max(stamps) if stamps else None

    async def latest_date(self, symbol: str, series: str) -> date | None:
        table = self.candles if series == "candles" else self.delivery
        dates = [d for (s, d) in table if s == symbol]
        seeded = self.latest_dates.get((symbol, series))
        if seeded:
            dates.append(seeded)
        return max(dates) if dates else None

    async def insert_candle(self, candle: Candle) -> bool:
        key = (candle.symbol, candle.trade_date)
        if key in self.candles:
            return False
        self.candles[key] = candle
        return True

    async def insert_delivery(self, row: DeliveryRow) -> bool:
        key = (row.symbol, row.trade_date)
        if key in self.delivery:
            return False
        self.delivery[key] = row
        return True

    async def mark_series_updated(self, symbol: str, series: str, at: datetime) -> None:
        self.series_updates[(symbol, series)] = at

    async def get_quarterly(self, symbol: str, key: QuarterKey) -> QuarterlyMetricsRecord | None:
        return self.quarterly.get((symbol, key.quarter_label, key.fiscal_label))

    async def insert_quarterly(self, record: QuarterlyMetricsRecord) -> bool:
        key = (record.symbol, record.quarter, record.fiscal_year)
        if key in self.quarterly:
            return False
        self.quarterly[key] = record
        return True

    async def append_metric(self, row: MetricRow) -> None:
        self.metrics.append(row)

    async def recent_failures(self, limit: int = 20) -> list[MetricRow]:
        failures = sorted(
            (m for m in self.metrics if not m.success), key=lambda m: m.started_at, reverse=True
        )
        return failures[:limit]

    async def purge_metrics(self, before: datetime) -> int:
        kept = [m for m in self.metrics if m.started_at >= before]
        deleted = len(self.metrics) - len(kept)
        self.metrics = kept
        return deleted


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(["FOO", "BAR"])


@pytest.fixture
def make_store() -> type[InMemoryStore]:
    return InMemoryStore
