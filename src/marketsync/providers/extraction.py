"""Results-document extraction adapter.

Extraction of figures from filing PDFs runs in a separate service; this
module holds the result models and the HTTP adapter that calls it.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx
import orjson
from pydantic import BaseModel, Field, ValidationError, field_validator

from marketsync.core.exceptions import ExtractionError
from marketsync.core.logging import get_logger
from marketsync.results.models import QuarterlyFigures
from marketsync.results.quarters import QuarterKey, to_decimal

logger = get_logger(__name__)


class ExtractedMetrics(BaseModel):
    """Figures extracted from one results document."""

    revenue: Decimal | None = None
    profit: Decimal | None = Field(default=None, alias="net_profit")
    eps: Decimal | None = None
    operating_profit: Decimal | None = None
    operating_profit_margin: Decimal | None = None
    quarter: str | None = None
    fiscal_year: str | None = None
    confidence: float = Field(default=0.0, ge=0, le=100)

    model_config = {"populate_by_name": True}

    @field_validator(
        "revenue", "profit", "eps", "operating_profit", "operating_profit_margin", mode="before"
    )
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal | None:
        return to_decimal(v)

    def figures(self) -> QuarterlyFigures:
        return QuarterlyFigures(
            revenue=self.revenue,
            profit=self.profit,
            eps=self.eps,
            operating_profit=self.operating_profit,
            operating_profit_margin=self.operating_profit_margin,
        )

    def quarter_key(self) -> QuarterKey | None:
        """The quarter named by the document, or None if absent or unparseable."""
        if not self.quarter or not self.fiscal_year:
            return None
        try:
            return QuarterKey.from_labels(self.quarter, self.fiscal_year)
        except ValueError:
            return None


class ExtractionResult(BaseModel):
    success: bool
    metrics: ExtractedMetrics | None = None
    errors: list[str] = Field(default_factory=list)


class HttpDocumentExtractor:
    """Calls an extraction service: ``POST {base_url}/parse {symbol, url}``.

    Usage:
        extractor = HttpDocumentExtractor("http://extractor:8080")
        result = await extractor.parse("TCS", "https://nsearchives.nseindia.com/...pdf")
        await extractor.close()
    """

    def __init__(self, base_url: str, timeout: float = 120.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def parse(self, symbol: str, document_url: str) -> ExtractionResult:
        client = self._get_http_client()
        try:
            resp = await client.post("/parse", json={"symbol": symbol, "url": document_url})
            resp.raise_for_status()
            return ExtractionResult.model_validate(orjson.loads(resp.content))
        except httpx.HTTPError as e:
            raise ExtractionError(f"Extraction service call failed for {symbol}: {e}") from e
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise ExtractionError(f"Extraction service returned bad payload for {symbol}") from e

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
