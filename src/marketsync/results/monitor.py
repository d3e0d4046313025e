"""Results publication monitor.

Scans recent corporate announcements for quarterly results filings,
extracts figures from the attached document, and hands them to the
comparison engine:

    detect()  ->  [ResultsPublication]  ->  process(pub)  ->  completed | skipped | failed

Outcomes of completed or skipped publications are remembered for the
lookback period so later scans do not re-run extraction for them. Failed
publications are retried on the next scan, never within the same one.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Literal

from marketsync.core.logging import get_logger
from marketsync.market.cache import ExpiringCache
from marketsync.results.models import PublicationStatus, ResultsPublication
from marketsync.results.quarters import (
    DEFAULT_FISCAL_START_MONTH,
    classify_quarter,
    previous_quarter,
    quarter_for_date,
)

if TYPE_CHECKING:
    from marketsync.providers.base import AnnouncementSource, DocumentExtractor
    from marketsync.providers.nse.models import Announcement
    from marketsync.results.comparison import QuarterlyComparisonEngine
    from marketsync.results.quarters import QuarterKey
    from marketsync.storage.base import MarketStore

logger = get_logger(__name__)

_DESCRIPTION_KEYWORDS = ("outcome of board meeting", "financial result")
_ATTACHMENT_KEYWORDS = ("financial result", "quarterly result")
UNKNOWN_INSTRUMENT = "unknown instrument"

QuarterFallback = Literal["none", "previous"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def is_results_announcement(announcement: Announcement) -> bool:
    """Board-meeting or results announcement with a results attachment."""
    if not announcement.attachment_url:
        return False
    description = announcement.description.lower()
    attachment = announcement.attachment_text.lower()
    return any(k in description for k in _DESCRIPTION_KEYWORDS) and any(
        k in attachment for k in _ATTACHMENT_KEYWORDS
    )


class ResultsMonitor:
    """Detects results publications and records their quarterly comparisons."""

    def __init__(
        self,
        source: AnnouncementSource,
        store: MarketStore,
        engine: QuarterlyComparisonEngine,
        extractor: DocumentExtractor | None = None,
        lookback_days: int = 7,
        min_confidence: float = 60.0,
        fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH,
        quarter_fallback: QuarterFallback = "none",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._store = store
        self._engine = engine
        self._extractor = extractor
        self._lookback_days = lookback_days
        self._min_confidence = min_confidence
        self._fiscal_start_month = fiscal_start_month
        self._quarter_fallback = quarter_fallback
        self._clock = clock
        self._handled: ExpiringCache[tuple[str, str], PublicationStatus] = ExpiringCache(
            ttl=timedelta(days=lookback_days + 1).total_seconds()
        )

    @property
    def extraction_enabled(self) -> bool:
        return self._extractor is not None

    async def detect(self, today: date | None = None) -> list[ResultsPublication]:
        """Results publications announced in the lookback window, de-duplicated."""
        today = today or self._clock().date()
        start = today - timedelta(days=self._lookback_days)
        announcements = await self._source.fetch_announcements(start, today)

        seen: set[tuple[str, str]] = set()
        publications: list[ResultsPublication] = []
        for ann in announcements:
            if not is_results_announcement(ann):
                continue
            assert ann.attachment_url is not None
            key = (ann.symbol, ann.attachment_url)
            if key in seen:
                continue
            seen.add(key)
            publications.append(
                ResultsPublication(
                    symbol=ann.symbol,
                    company_name=ann.company_name,
                    announced_at=ann.announced_at,
                    description=ann.description,
                    attachment_url=ann.attachment_url,
                    quarter_hint=classify_quarter(
                        f"{ann.description} {ann.attachment_text}", self._fiscal_start_month
                    ),
                    detected_at=self._clock(),
                )
            )

        logger.debug(
            "Results announcements scanned",
            announcements=len(announcements),
            publications=len(publications),
        )
        return publications

    def _fallback_quarter(self, pub: ResultsPublication) -> QuarterKey | None:
        if self._quarter_fallback != "previous":
            return None
        announced = (pub.announced_at or self._clock()).date()
        return previous_quarter(quarter_for_date(announced, self._fiscal_start_month))

    async def process(self, pub: ResultsPublication) -> PublicationStatus:
        """Move one publication to a terminal status. Storage errors propagate."""
        pub.mark(PublicationStatus.PROCESSING)

        if await self._store.get_instrument(pub.symbol) is None:
            return self._finish(pub, PublicationStatus.SKIPPED, UNKNOWN_INSTRUMENT)

        if pub.quarter_hint and await self._engine.exists(pub.symbol, pub.quarter_hint):
            return self._finish(pub, PublicationStatus.SKIPPED, "quarter already recorded")

        if not pub.attachment_url:
            return self._finish(pub, PublicationStatus.FAILED, "no attachment")

        if self._extractor is None:
            return self._finish(pub, PublicationStatus.FAILED, "extraction disabled")

        try:
            result = await self._extractor.parse(pub.symbol, pub.attachment_url)
        except Exception as e:
            return self._finish(pub, PublicationStatus.FAILED, f"extraction error: {e}")

        metrics = result.metrics
        if not result.success or metrics is None:
            reason = "; ".join(result.errors) or "extraction unsuccessful"
            return self._finish(pub, PublicationStatus.FAILED, reason)

        if metrics.confidence < self._min_confidence:
            return self._finish(
                pub,
                PublicationStatus.FAILED,
                f"confidence {metrics.confidence:g} below {self._min_confidence:g}",
            )

        key = metrics.quarter_key() or pub.quarter_hint or self._fallback_quarter(pub)
        if key is None:
            return self._finish(pub, PublicationStatus.FAILED, "quarter not recognized")

        figures = metrics.figures()
        if figures.is_empty():
            return self._finish(pub, PublicationStatus.FAILED, "no figures extracted")

        record = await self._engine.process(
            pub.symbol, key, figures, published_at=pub.announced_at, source="announcement"
        )
        if record is None:
            return self._finish(pub, PublicationStatus.SKIPPED, "quarter already recorded")
        return self._finish(pub, PublicationStatus.COMPLETED)

    def _finish(
        self, pub: ResultsPublication, status: PublicationStatus, reason: str | None = None
    ) -> PublicationStatus:
        pub.mark(status, reason)
        if status is PublicationStatus.FAILED:
            logger.warning("Results publication failed", symbol=pub.symbol, reason=reason)
        else:
            logger.info(
                "Results publication processed",
                symbol=pub.symbol,
                status=status.value,
                reason=reason,
            )
        return status

    async def scan(self, today: date | None = None) -> int:
        """Detect and process publications. Returns how many completed."""
        if self._extractor is None:
            logger.debug("Results extraction disabled, skipping scan")
            return 0

        publications = await self.detect(today)
        completed = 0
        for pub in publications:
            assert pub.attachment_url is not None
            key = (pub.symbol, pub.attachment_url)
            if key in self._handled:
                continue
            status = await self.process(pub)
            if status is PublicationStatus.COMPLETED:
                completed += 1
            # Failures and unknown symbols are retried once the cause clears
            if status is not PublicationStatus.FAILED and pub.reason != UNKNOWN_INSTRUMENT:
                self._handled.set(key, status)

        logger.info(
            "Results scan complete", publications=len(publications), completed=completed
        )
        return completed
