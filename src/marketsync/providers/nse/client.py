"""NSE India HTTP client.

The NSE JSON endpoints only answer requests that carry the cookies set by a
prior visit to the public website, and they throttle aggressively. This
client keeps one cookie session alive for a bounded lifetime, spaces
requests out by a minimum interval, and maps failures onto the
``UpstreamError`` hierarchy. It never retries: the next scheduled run is the
retry.

Endpoints used:
- ``/api/quote-equity?symbol=``                      live quote
- ``/api/historical/cm/equity``                      daily OHLCV
- ``/api/historical/securityArchives``               delivery volumes
- ``/api/corporate-announcements?index=equities``    announcements
- ``/api/corporates-financial-info``                 quarterly financials
"""

from __future__ import annotations

import asyncio
import math
from datetime import date, datetime
from typing import Any

import httpx
import orjson
from pydantic import ValidationError

from marketsync.core.constants import (
    NSE_ANNOUNCEMENTS_PATH,
    NSE_BOOTSTRAP_PAGE,
    NSE_DATE_FORMAT,
    NSE_DELIVERY_PATH,
    NSE_FINANCIALS_PATH,
    NSE_HISTORICAL_PATH,
    NSE_QUOTE_PATH,
    NSE_USER_AGENT,
)
from marketsync.core.exceptions import (
    DataShapeError,
    UpstreamError,
    UpstreamRateLimitError,
    UpstreamSessionError,
)
from marketsync.core.logging import get_logger
from marketsync.providers.nse.models import Announcement, Candle, DeliveryRow, Quote

logger = get_logger(__name__)

_DATE_FORMATS = ("%Y-%m-%d", "%d-%b-%Y", "%d-%m-%Y", "%d %b %Y", "%d/%m/%Y")
_DATETIME_FORMATS = ("%d-%b-%Y %H:%M:%S", "%d-%b-%Y %H:%M", "%Y-%m-%d %H:%M:%S")


class RequestThrottle:
    """Enforces a minimum gap between consecutive upstream requests.

    Callers queue on a lock, so parallel fetches are serialized at the wire
    while their parsing and storage work still overlaps.
    """

    def __init__(self, min_interval: float) -> None:
        self._min_interval = min_interval
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            if self._last is not None:
                wait = self._min_interval - (now - self._last)
                if wait > 0:
                    await asyncio.sleep(wait)
                    now = loop.time()
            self._last = now


class NSEClient:
    """Cookie-session client for the NSE India JSON API.

    Usage:
        client = NSEClient()
        quote = await client.fetch_quote("RELIANCE")
        await client.close()
    """

    def __init__(
        self,
        base_url: str = "https://www.nseindia.com",
        min_interval: float = 0.5,
        session_ttl: float = 1800.0,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session_ttl = session_ttl
        self._timeout = timeout
        self._throttle = RequestThrottle(min_interval)
        self._http_client: httpx.AsyncClient | None = None
        self._session_started: float | None = None
        self._session_lock = asyncio.Lock()

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                follow_redirects=True,
                headers={
                    "User-Agent": NSE_USER_AGENT,
                    "Accept": "application/json, text/plain, */*",
                    "Accept-Language": "en-US,en;q=0.9",
                    "Referer": f"{self._base_url}/",
                    "X-Requested-With": "XMLHttpRequest",
                },
            )
        return self._http_client

    def _session_valid(self) -> bool:
        if self._session_started is None:
            return False
        age = asyncio.get_running_loop().time() - self._session_started
        return age < self._session_ttl

    def invalidate_session(self) -> None:
        """Force the next request to re-bootstrap cookies."""
        self._session_started = None
        if self._http_client is not None:
            self._http_client.cookies.clear()

    async def _ensure_session(self) -> None:
        if self._session_valid():
            return
        async with self._session_lock:
            if self._session_valid():
                return
            client = self._get_http_client()
            client.cookies.clear()
            try:
                resp = await client.get("/", headers={"Accept": "text/html"})
                resp.raise_for_status()
                # The filings page sets the remaining cookies the API checks
                await client.get(NSE_BOOTSTRAP_PAGE, headers={"Accept": "text/html"})
            except httpx.HTTPError as e:
                raise UpstreamSessionError(f"NSE session bootstrap failed: {e}") from e
            self._session_started = asyncio.get_running_loop().time()
            logger.debug("NSE session established", cookies=len(client.cookies))

    async def get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET a JSON endpoint, raising ``UpstreamError`` on any failure."""
        await self._ensure_session()
        await self._throttle.acquire()
        client = self._get_http_client()
        try:
            resp = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"NSE request timed out: {path}") from e
        except httpx.TransportError as e:
            self.invalidate_session()
            raise UpstreamError(f"NSE connection failed: {path}: {e}") from e

        if resp.status_code in (401, 403):
            self.invalidate_session()
            raise UpstreamSessionError(f"NSE rejected session ({resp.status_code}): {path}")
        if resp.status_code == 429:
            raise UpstreamRateLimitError(f"NSE rate limit hit: {path}")
        if resp.status_code >= 400:
            raise UpstreamError(f"NSE returned {resp.status_code}: {path}")

        try:
            return orjson.loads(resp.content)
        except orjson.JSONDecodeError as e:
            raise DataShapeError(f"NSE returned non-JSON body for {path}") from e

    # -------------------------------------------------------------------------
    # Typed endpoints
    # -------------------------------------------------------------------------

    async def fetch_quote(self, symbol: str) -> Quote:
        data = await self.get_json(NSE_QUOTE_PATH, {"symbol": symbol})
        return parse_quote(symbol, data)

    async def fetch_candles(self, symbol: str, start: date, end: date) -> list[Candle]:
        data = await self.get_json(
            NSE_HISTORICAL_PATH,
            {
                "symbol": symbol,
                "series": '["EQ"]',
                "from": start.strftime(NSE_DATE_FORMAT),
                "to": end.strftime(NSE_DATE_FORMAT),
            },
        )
        return parse_candles(symbol, data)

    async def fetch_delivery(self, symbol: str, start: date, end: date) -> list[DeliveryRow]:
        data = await self.get_json(
            NSE_DELIVERY_PATH,
            {
                "symbol": symbol,
                "series": "EQ",
                "dataType": "priceVolumeDeliverable",
                "from": start.strftime(NSE_DATE_FORMAT),
                "to": end.strftime(NSE_DATE_FORMAT),
            },
        )
        return parse_delivery(symbol, data)

    async def fetch_announcements(self, start: date, end: date) -> list[Announcement]:
        data = await self.get_json(
            NSE_ANNOUNCEMENTS_PATH,
            {
                "index": "equities",
                "from_date": start.strftime(NSE_DATE_FORMAT),
                "to_date": end.strftime(NSE_DATE_FORMAT),
            },
        )
        return parse_announcements(data)

    async def fetch_financial_results(self, symbol: str) -> list[dict[str, Any]]:
        """Quarterly financial rows, newest first, as returned by NSE."""
        data = await self.get_json(
            NSE_FINANCIALS_PATH, {"symbol": symbol, "section": "quarterly_results"}
        )
        return [row for row in _rows(data) if isinstance(row, dict)]

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        self._session_started = None


# =============================================================================
# Payload parsing
# =============================================================================


def _rows(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []


def _first(row: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value not in (None, "", "-"):
            return value
    return None


def _parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(str(value).replace(",", ""))
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _parse_int(value: Any) -> int | None:
    parsed = _parse_float(value)
    return int(parsed) if parsed is not None else None


def parse_nse_datetime(value: Any) -> datetime | None:
    """Parse an announcement timestamp (``17-Oct-2025 19:45:12``, ISO, or a bare date)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in (*_DATETIME_FORMATS, *_DATE_FORMATS):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_nse_date(value: Any) -> date | None:
    """Parse ISO, ``dd-Mon-yyyy`` and ``dd-mm-yyyy`` dates (time parts ignored)."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_nse_datetime(value)
    return parsed.date() if parsed else None


def parse_quote(symbol: str, data: Any) -> Quote:
    if not isinstance(data, dict) or not isinstance(data.get("priceInfo"), dict):
        raise DataShapeError(f"No priceInfo in quote for {symbol}")
    info: dict[str, Any] = data["priceInfo"]
    metadata: dict[str, Any] = data.get("metadata") or {}
    intraday: dict[str, Any] = info.get("intraDayHighLow") or {}
    week: dict[str, Any] = info.get("weekHighLow") or {}

    last_price = _parse_float(_first(info, "lastPrice", "ltp"))
    if last_price is None:
        raise DataShapeError(f"No lastPrice in quote for {symbol}")
    previous_close = _parse_float(_first(info, "previousClose", "close"))
    volume = _parse_int(info.get("totalTradedVolume")) or 0
    value = _parse_float(info.get("totalTradedValue")) or 0.0

    change_percent = _parse_float(info.get("pChange"))
    if change_percent is None:
        change_percent = (
            round((last_price - previous_close) / previous_close * 100, 2)
            if previous_close
            else 0.0
        )

    return Quote(
        symbol=symbol,
        last_price=last_price,
        change_percent=round(change_percent, 2),
        previous_close=previous_close,
        open_price=_parse_float(info.get("open")),
        day_high=_parse_float(_first(intraday, "max") or info.get("dayHigh")),
        day_low=_parse_float(_first(intraday, "min") or info.get("dayLow")),
        year_high=_parse_float(_first(week, "max") or metadata.get("52WeekHigh")),
        year_low=_parse_float(_first(week, "min") or metadata.get("52WeekLow")),
        total_traded_volume=volume,
        total_traded_value=value,
        average_price=_parse_float(info.get("vwap"))
        or (round(value / volume, 2) if volume else None),
        total_buy_quantity=_parse_int(info.get("totalBuyQuantity")) or 0,
        total_sell_quantity=_parse_int(info.get("totalSellQuantity")) or 0,
        last_traded_quantity=_parse_int(_first(info, "lastUpdateQuantity", "lastQuantity")) or 0,
        last_traded_time=_first(info, "lastUpdateTime") or metadata.get("lastUpdateTime"),
    )


def parse_candles(symbol: str, data: Any) -> list[Candle]:
    """Map historical rows to candles, skipping rows with missing or inconsistent prices."""
    candles: list[Candle] = []
    for row in _rows(data):
        if not isinstance(row, dict):
            continue
        trade_date = parse_nse_date(_first(row, "CH_TIMESTAMP", "mTIMESTAMP", "TIMESTAMP"))
        try:
            candles.append(
                Candle(
                    symbol=symbol,
                    trade_date=trade_date,  # type: ignore[arg-type]
                    open=_parse_float(row.get("CH_OPENING_PRICE")),  # type: ignore[arg-type]
                    high=_parse_float(row.get("CH_TRADE_HIGH_PRICE")),  # type: ignore[arg-type]
                    low=_parse_float(row.get("CH_TRADE_LOW_PRICE")),  # type: ignore[arg-type]
                    close=_parse_float(row.get("CH_CLOSING_PRICE")),  # type: ignore[arg-type]
                    volume=_parse_int(row.get("CH_TOT_TRADED_QTY")) or 0,
                )
            )
        except ValidationError as e:
            logger.debug(
                "Skipping malformed candle row",
                symbol=symbol,
                date=str(trade_date),
                error=str(e.errors()[0]["msg"]),
            )
    return candles


def parse_delivery(symbol: str, data: Any) -> list[DeliveryRow]:
    """Map security-archive rows to delivery rows, skipping unusable rows."""
    rows: list[DeliveryRow] = []
    for row in _rows(data):
        if not isinstance(row, dict):
            continue
        trade_date = parse_nse_date(_first(row, "CH_DATE", "CH_TIMESTAMP", "mTIMESTAMP", "date"))
        delivered = _parse_int(_first(row, "CH_DELIV_QTY", "COP_DELIV_QTY", "deliveryQuantity"))
        traded = _parse_int(_first(row, "CH_TOT_TRADED_QTY", "totalTradedQuantity"))
        percentage = _parse_float(
            _first(row, "CH_DELIV_PERC", "COP_DELIV_PERC", "deliveryToTradedQuantity")
        )
        if percentage is None and delivered is not None and traded:
            percentage = round(delivered / traded * 100, 2)
        try:
            rows.append(
                DeliveryRow(
                    symbol=symbol,
                    trade_date=trade_date,  # type: ignore[arg-type]
                    delivery_quantity=delivered,  # type: ignore[arg-type]
                    traded_quantity=traded,  # type: ignore[arg-type]
                    delivery_percentage=percentage,  # type: ignore[arg-type]
                )
            )
        except ValidationError as e:
            logger.debug(
                "Skipping malformed delivery row",
                symbol=symbol,
                date=str(trade_date),
                error=str(e.errors()[0]["msg"]),
            )
    return rows


def parse_announcements(data: Any) -> list[Announcement]:
    announcements: list[Announcement] = []
    for row in _rows(data):
        if not isinstance(row, dict):
            continue
        symbol = str(row.get("symbol") or "").strip().upper()
        if not symbol:
            continue
        announcements.append(
            Announcement(
                symbol=symbol,
                company_name=str(_first(row, "sm_name", "companyName") or ""),
                announced_at=parse_nse_datetime(_first(row, "an_dt", "sort_date", "exchdisstime")),
                description=str(row.get("desc") or ""),
                attachment_url=_first(row, "attchmntFile"),
                attachment_text=str(row.get("attchmntText") or ""),
                has_xbrl=bool(row.get("hasXbrl")),
            )
        )
    return announcements
