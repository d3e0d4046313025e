"""Protocols for the upstream collaborators the sync engine depends on.

The engine only needs narrow slices of the upstream API, so each consumer
depends on the smallest protocol that covers it. ``NSEClient`` implements
all of them; tests substitute ``AsyncMock`` objects.

Protocols:
- QuoteSource: live quote per symbol
- HistorySource: daily candles and delivery rows for a date range
- AnnouncementSource: corporate announcements for a date range
- FinancialsSource: raw quarterly financial rows per symbol
- DocumentExtractor: turns a results document into figures + confidence
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from marketsync.providers.extraction import ExtractionResult
    from marketsync.providers.nse.models import Announcement, Candle, DeliveryRow, Quote


@runtime_checkable
class QuoteSource(Protocol):
    async def fetch_quote(self, symbol: str) -> Quote:
        """Fetch a live quote; raises ``UpstreamError`` or ``DataShapeError``."""
        ...


@runtime_checkable
class HistorySource(Protocol):
    async def fetch_candles(self, symbol: str, start: date, end: date) -> list[Candle]:
        """Daily OHLCV rows for ``start..end`` inclusive."""
        ...

    async def fetch_delivery(self, symbol: str, start: date, end: date) -> list[DeliveryRow]:
        """Delivery-volume rows for ``start..end`` inclusive."""
        ...


@runtime_checkable
class AnnouncementSource(Protocol):
    async def fetch_announcements(self, start: date, end: date) -> list[Announcement]:
        ...


@runtime_checkable
class FinancialsSource(Protocol):
    async def fetch_financial_results(self, symbol: str) -> list[dict[str, Any]]:
        ...


@runtime_checkable
class DocumentExtractor(Protocol):
    """Protocol for results-document extraction.

    Implementations must never return partial figures with ``success=True``
    unless ``metrics.confidence`` reflects that.
    """

    async def parse(self, symbol: str, document_url: str) -> ExtractionResult:
        """Extract quarterly figures from the document at ``document_url``.

        Args:
            symbol: Exchange symbol the document belongs to
            document_url: Absolute URL of the PDF/HTML filing

        Returns:
            ExtractionResult with success flag, metrics and error messages
        """
        ...

    async def close(self) -> None:
        """Clean up resources."""
        ...
