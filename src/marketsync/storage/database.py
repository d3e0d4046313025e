"""PostgreSQL database connection using raw asyncpg."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, cast

import asyncpg

from marketsync.core.constants import SERIES_CANDLES, SERIES_DELIVERY
from marketsync.core.exceptions import DatabaseConnectionError
from marketsync.core.logging import get_logger
from marketsync.jobs.models import MetricRow
from marketsync.results.models import QuarterlyMetricsRecord
from marketsync.storage.models import Instrument

if TYPE_CHECKING:
    from datetime import date, datetime

    from marketsync.providers.nse.models import Candle, DeliveryRow, Quote
    from marketsync.results.quarters import QuarterKey

logger = get_logger(__name__)

_SERIES_TABLES: dict[str, tuple[str, str]] = {
    SERIES_CANDLES: ("candlesticks", "last_candle_update"),
    SERIES_DELIVERY: ("delivery_volume", "last_delivery_update"),
}

_QUARTERLY_COLUMNS: tuple[str, ...] = tuple(
    name for name in QuarterlyMetricsRecord.model_fields if name not in ("symbol",)
)


class Database:
    """Async PostgreSQL database wrapper using asyncpg."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: asyncpg.Pool[asyncpg.Record] | None = None

    async def connect(self) -> None:
        """Create connection pool."""
        # Convert SQLAlchemy-style DSN to asyncpg format
        dsn = self._dsn.replace("postgresql+asyncpg://", "postgresql://")

        async def init_connection(conn: asyncpg.Connection[asyncpg.Record]) -> None:
            await conn.execute("SET search_path TO marketsync, public")

        try:
            self._pool = await asyncpg.create_pool(
                dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                init=init_connection,
            )
        except (OSError, asyncpg.PostgresError) as e:
            raise DatabaseConnectionError(f"Could not connect to PostgreSQL: {e}") from e
        logger.debug("Database pool created", min_size=self._min_size, max_size=self._max_size)

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            logger.debug("Database pool closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection from the pool."""
        if not self._pool:
            raise RuntimeError("Database not connected. Call connect() first.")
        async with self._pool.acquire() as conn:
            yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query and return status."""
        async with self.acquire() as conn:
            result = await conn.execute(query, *args)
            return cast(str, result)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Fetch multiple rows."""
        async with self.acquire() as conn:
            result = await conn.fetch(query, *args)
            return list(result)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        """Fetch a single row."""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        """Fetch a single value."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    # -------------------------------------------------------------------------
    # Instruments and live quotes
    # -------------------------------------------------------------------------

    async def list_instruments(self) -> list[Instrument]:
        rows = await self.fetch(
            """
            SELECT symbol, company_name, last_live_update,
                   last_candle_update, last_delivery_update
            FROM stocks
            ORDER BY symbol
            """
        )
        return [Instrument(**dict(row)) for row in rows]

    async def get_instrument(self, symbol: str) -> Instrument | None:
        row = await self.fetchrow(
            """
            SELECT symbol, company_name, last_live_update,
                   last_candle_update, last_delivery_update
            FROM stocks
            WHERE symbol = $1
            """,
            symbol,
        )
        return Instrument(**dict(row)) if row else None

    async def update_live_quote(self, quote: Quote) -> None:
        """Write a quote into the instrument's live fields."""
        await self.execute(
            """
            UPDATE stocks SET
                current_price = $2,
                percent_change = $3,
                previous_close = $4,
                open_price = $5,
                day_high = $6,
                day_low = $7,
                year_high = $8,
                year_low = $9,
                total_traded_volume = $10,
                total_traded_value = $11,
                average_price = $12,
                total_buy_quantity = $13,
                total_sell_quantity = $14,
                last_traded_quantity = $15,
                last_traded_time = $16,
                last_live_update = $17
            WHERE symbol = $1
            """,
            quote.symbol,
            quote.last_price,
            quote.change_percent,
            quote.previous_close,
            quote.open_price,
            quote.day_high,
            quote.day_low,
            quote.year_high,
            quote.year_low,
            quote.total_traded_volume,
            quote.total_traded_value,
            quote.average_price,
            quote.total_buy_quantity,
            quote.total_sell_quantity,
            quote.last_traded_quantity,
            quote.last_traded_time,
            quote.fetched_at,
        )

    async def latest_live_update(self) -> datetime | None:
        """Most recent live-quote write across all instruments."""
        value = await self.fetchval("SELECT max(last_live_update) FROM stocks")
        return cast("datetime | None", value)

    # -------------------------------------------------------------------------
    # Daily series (candles, delivery)
    # -------------------------------------------------------------------------

    async def latest_date(self, symbol: str, series: str) -> date | None:
        """Latest stored trade date for ``symbol`` in ``series``."""
        table, _ = _SERIES_TABLES[series]
        return cast(
            "date | None",
            await self.fetchval(f"SELECT max(trade_date) FROM {table} WHERE symbol = $1", symbol),
        )

    async def insert_candle(self, candle: Candle) -> bool:
        """Insert one candle. Returns False when the (symbol, date) row already exists."""
        inserted = await self.fetchval(
            """
            INSERT INTO candlesticks (symbol, trade_date, open, high, low, close, volume)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (symbol, trade_date) DO NOTHING
            RETURNING trade_date
            """,
            candle.symbol,
            candle.trade_date,
            candle.open,
            candle.high,
            candle.low,
            candle.close,
            candle.volume,
        )
        return inserted is not None

    async def insert_delivery(self, row: DeliveryRow) -> bool:
        """Insert one delivery row. Returns False when it already exists."""
        inserted = await self.fetchval(
            """
            INSERT INTO delivery_volume (
                symbol, trade_date, delivery_quantity, traded_quantity, delivery_percentage
            )
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (symbol, trade_date) DO NOTHING
            RETURNING trade_date
            """,
            row.symbol,
            row.trade_date,
            row.delivery_quantity,
            row.traded_quantity,
            row.delivery_percentage,
        )
        return inserted is not None

    async def mark_series_updated(self, symbol: str, series: str, at: datetime) -> None:
        _, column = _SERIES_TABLES[series]
        await self.execute(f"UPDATE stocks SET {column} = $2 WHERE symbol = $1", symbol, at)

    # -------------------------------------------------------------------------
    # Quarterly results
    # -------------------------------------------------------------------------

    async def get_quarterly(self, symbol: str, key: QuarterKey) -> QuarterlyMetricsRecord | None:
        row = await self.fetchrow(
            """
            SELECT * FROM quarterly_results
            WHERE symbol = $1 AND quarter = $2 AND fiscal_year = $3
            """,
            symbol,
            key.quarter_label,
            key.fiscal_label,
        )
        if row is None:
            return None
        data = {k: v for k, v in dict(row).items() if k in QuarterlyMetricsRecord.model_fields}
        return QuarterlyMetricsRecord(**data)

    async def insert_quarterly(self, record: QuarterlyMetricsRecord) -> bool:
        """Insert a quarterly record if absent. Existing rows are never overwritten."""
        columns = ("symbol", *_QUARTERLY_COLUMNS)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        query = f"""
            INSERT INTO quarterly_results ({", ".join(columns)})
            VALUES ({placeholders})
            ON CONFLICT (symbol, quarter, fiscal_year) DO NOTHING
            RETURNING symbol
        """
        inserted = await self.fetchval(query, *(getattr(record, c) for c in columns))
        return inserted is not None

    # -------------------------------------------------------------------------
    # Job metrics
    # -------------------------------------------------------------------------

    async def append_metric(self, row: MetricRow) -> None:
        await self.execute(
            """
            INSERT INTO job_metrics (
                job_name, started_at, duration_ms, success, error_message, rows_affected
            )
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            row.job_name,
            row.started_at,
            row.duration_ms,
            row.success,
            row.error_message,
            row.rows_affected,
        )

    async def recent_failures(self, limit: int = 20) -> list[MetricRow]:
        rows = await self.fetch(
            """
            SELECT job_name, started_at, duration_ms, success, error_message, rows_affected
            FROM job_metrics
            WHERE NOT success
            ORDER BY started_at DESC
            LIMIT $1
            """,
            limit,
        )
        return [MetricRow(**dict(row)) for row in rows]

    async def purge_metrics(self, before: datetime) -> int:
        """Delete metric rows older than ``before``. Returns rows deleted."""
        status = await self.execute("DELETE FROM job_metrics WHERE started_at < $1", before)
        # asyncpg status string: "DELETE <n>"
        try:
            return int(status.split()[-1])
        except (IndexError, ValueError):
            return 0


# Global database instance (initialized in lifespan)
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db


async def init_database(dsn: str) -> Database:
    """Initialize the global database instance."""
    global _db
    _db = Database(dsn)
    await _db.connect()
    return _db


async def close_database() -> None:
    """Close the global database instance."""
    global _db
    if _db:
        await _db.disconnect()
        _db = None
