"""Storage protocol the sync components depend on.

``Database`` implements it against PostgreSQL; tests use an in-memory fake.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from marketsync.jobs.models import MetricRow
    from marketsync.providers.nse.models import Candle, DeliveryRow, Quote
    from marketsync.results.models import QuarterlyMetricsRecord
    from marketsync.results.quarters import QuarterKey
    from marketsync.storage.models import Instrument


class MarketStore(Protocol):
    async def list_instruments(self) -> list[Instrument]: ...

    async def get_instrument(self, symbol: str) -> Instrument | None: ...

    async def update_live_quote(self, quote: Quote) -> None: ...

    async def latest_live_update(self) -> datetime | None: ...

    async def latest_date(self, symbol: str, series: str) -> date | None: ...

    async def insert_candle(self, candle: Candle) -> bool: ...

    async def insert_delivery(self, row: DeliveryRow) -> bool: ...

    async def mark_series_updated(self, symbol: str, series: str, at: datetime) -> None: ...

    async def get_quarterly(
        self, symbol: str, key: QuarterKey
    ) -> QuarterlyMetricsRecord | None: ...

    async def insert_quarterly(self, record: QuarterlyMetricsRecord) -> bool: ...

    async def append_metric(self, row: MetricRow) -> None: ...

    async def recent_failures(self, limit: int = 20) -> list[MetricRow]: ...

    async def purge_metrics(self, before: datetime) -> int: ...
