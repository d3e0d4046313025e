"""Session-aware live price poller.

Two states:

    IDLE ──(market open observed)──▶ POLLING ──(market close observed)──▶ IDLE
                                                      │
                                                      └─▶ one EOD capture per session date

While POLLING, a background task refreshes every tracked instrument every
``poll_interval`` seconds through a short-TTL quote cache, in batches of
``concurrency`` with ``batch_delay`` between batches. On the close
transition the loop stops and a cache-bypassing end-of-day capture runs.

The EOD claim is taken synchronously (before the first await) so duplicate
close signals interleaving on the event loop cannot both capture. A Redis
marker carries the claim across restarts.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from marketsync.core.logging import get_logger
from marketsync.market.cache import ExpiringCache

if TYPE_CHECKING:
    from marketsync.market.session import MarketSession
    from marketsync.providers.base import QuoteSource
    from marketsync.providers.nse.models import Quote
    from marketsync.storage.base import MarketStore
    from marketsync.storage.redis import EodMarkerStore

logger = get_logger(__name__)


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LivePricePoller:
    """Fetches live quotes only while the market is open, plus one EOD capture."""

    def __init__(
        self,
        session: MarketSession,
        quotes: QuoteSource,
        store: MarketStore,
        eod_markers: EodMarkerStore | None = None,
        cache_ttl: float = 120.0,
        poll_interval: float = 5.0,
        concurrency: int = 5,
        batch_delay: float = 0.5,
        stale_after: timedelta = timedelta(hours=6),
        clock: Callable[[], datetime] = _utcnow,
        cache: ExpiringCache[str, Quote] | None = None,
        should_poll: Callable[[], bool] | None = None,
    ) -> None:
        self._session = session
        self._quotes = quotes
        self._store = store
        self._eod_markers = eod_markers
        self._cache: ExpiringCache[str, Quote] = cache or ExpiringCache(cache_ttl)
        self._poll_interval = poll_interval
        self._concurrency = max(1, concurrency)
        self._batch_delay = batch_delay
        self._stale_after = stale_after
        self._clock = clock
        self._should_poll = should_poll

        self._state = PollerState.IDLE
        self._loop_task: asyncio.Task[None] | None = None
        self._refreshing = False
        self._eod_session: str | None = None
        # Last session date captured by this process; kept across session rolls
        self._last_captured: str | None = None
        self._last_refresh: datetime | None = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def cache(self) -> ExpiringCache[str, Quote]:
        return self._cache

    @property
    def eod_session(self) -> str | None:
        """Session date whose EOD capture this process has claimed."""
        return self._eod_session

    @property
    def polling(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # -------------------------------------------------------------------------
    # Session transitions
    # -------------------------------------------------------------------------

    async def check_session(self, now: datetime | None = None) -> int:
        """Observe the market session and apply any open/close transition.

        Returns the number of instruments updated by an EOD capture, else 0.
        """
        now = now or self._clock()
        is_open = self._session.is_open(now)
        self._roll_session_date(self._session.session_date(now))

        if is_open and self._state is PollerState.IDLE:
            self._state = PollerState.POLLING
            self._eod_session = None
            logger.info("Market open, starting live price polling", interval=self._poll_interval)
            self._start_loop()
            return 0

        if not is_open and self._state is PollerState.POLLING:
            self._state = PollerState.IDLE
            logger.info("Market closed, stopping live price polling")
            await self._stop_loop()
            return await self.capture_eod(now)

        return 0

    def _roll_session_date(self, session_date: str) -> None:
        if self._eod_session is not None and self._eod_session != session_date:
            logger.debug("New session date, clearing EOD flag", previous=self._eod_session)
            self._eod_session = None

    async def capture_eod(
        self, now: datetime | None = None, session_date: str | None = None
    ) -> int:
        """Forced refresh of every instrument, at most once per session date.

        ``session_date`` defaults to the calendar date of ``now``.
        """
        now = now or self._clock()
        session_date = session_date or self._session.session_date(now)
        if self._eod_session == session_date or self._last_captured == session_date:
            logger.info("EOD capture already done for session", session_date=session_date)
            return 0
        self._eod_session = session_date

        try:
            if self._eod_markers is not None and not await self._claim_marker(session_date):
                logger.info("EOD capture already recorded for session", session_date=session_date)
                return 0
            updated = await self.refresh(use_cache=False)
        except Exception:
            # Allow a later close check to retry
            self._eod_session = None
            await self._release_marker(session_date)
            raise

        self._last_captured = session_date
        logger.info("EOD capture complete", session_date=session_date, updated=updated)
        return updated

    async def _claim_marker(self, session_date: str) -> bool:
        assert self._eod_markers is not None
        try:
            return await self._eod_markers.claim(session_date)
        except Exception as e:
            logger.warning("EOD marker unavailable, capturing anyway", error=str(e))
            return True

    async def _release_marker(self, session_date: str) -> None:
        if self._eod_markers is None:
            return
        try:
            await self._eod_markers.release(session_date)
        except Exception as e:
            logger.warning("Failed to release EOD marker", session_date=session_date, error=str(e))

    async def eod_captured(self, session_date: str) -> bool:
        if session_date in (self._eod_session, self._last_captured):
            return True
        if self._eod_markers is None:
            return False
        try:
            return await self._eod_markers.exists(session_date)
        except Exception as e:
            logger.warning("EOD marker lookup failed", error=str(e))
            return False

    # -------------------------------------------------------------------------
    # Refreshing
    # -------------------------------------------------------------------------

    async def refresh(self, symbols: list[str] | None = None, use_cache: bool = True) -> int:
        """Refresh live quotes in batches. Returns how many instruments were written.

        A failed fetch leaves that instrument's stored values untouched.
        """
        if symbols is None:
            symbols = [i.symbol for i in await self._store.list_instruments()]

        updated = 0
        first_error: BaseException | None = None
        for start in range(0, len(symbols), self._concurrency):
            batch = symbols[start : start + self._concurrency]
            results = await asyncio.gather(
                *(self._refresh_symbol(s, use_cache) for s in batch),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    first_error = first_error or result
                elif result:
                    updated += 1
            if start + self._concurrency < len(symbols) and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)

        if first_error is not None:
            raise first_error
        self._last_refresh = self._clock()
        logger.debug("Live prices refreshed", total=len(symbols), updated=updated)
        return updated

    async def _refresh_symbol(self, symbol: str, use_cache: bool) -> bool:
        if use_cache and self._cache.get(symbol) is not None:
            return False
        try:
            quote = await self._quotes.fetch_quote(symbol)
        except Exception as e:
            logger.warning("Quote fetch failed", symbol=symbol, error=str(e))
            return False
        self._cache.set(symbol, quote)
        await self._store.update_live_quote(quote)
        return True

    async def tick(self) -> int:
        """One polling-loop iteration; skipped while paused or a previous one is running."""
        if self._should_poll is not None and not self._should_poll():
            logger.debug("Live price polling paused, skipping tick")
            return 0
        if self._refreshing:
            logger.debug("Previous live refresh still running, skipping tick")
            return 0
        self._refreshing = True
        try:
            return await self.refresh()
        except Exception:
            logger.exception("Live price refresh failed")
            return 0
        finally:
            self._refreshing = False

    async def refresh_if_stale(self, now: datetime | None = None) -> int:
        """Keepalive refresh.

        While open, defers to the session check. While closed, never calls
        upstream once the last closed session's EOD capture exists (Friday's
        capture covers the weekend and the following pre-open). Otherwise
        fetches once if the newest stored quote is older than ``stale_after``,
        and records that fetch as the missing capture.
        """
        now = now or self._clock()
        if self._session.is_open(now):
            return await self.check_session(now)

        session_date = self._session.last_closed_session(now)
        if await self.eod_captured(session_date):
            logger.debug("EOD capture exists, skipping upstream refresh", session_date=session_date)
            return 0

        last = await self._store.latest_live_update()
        if last is not None:
            if last.tzinfo is None:
                last = last.replace(tzinfo=UTC)
            if now - last < self._stale_after:
                return 0

        logger.info(
            "Live prices stale, refreshing once", last_update=last, session_date=session_date
        )
        return await self.capture_eod(now, session_date=session_date)

    # -------------------------------------------------------------------------
    # Loop lifecycle
    # -------------------------------------------------------------------------

    def _start_loop(self) -> None:
        if self.polling:
            return
        self._loop_task = asyncio.create_task(self._poll_loop(), name="live-price-poll")

    async def _stop_loop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _poll_loop(self) -> None:
        while True:
            if self._session.is_open(self._clock()):
                await self.tick()
            await asyncio.sleep(self._poll_interval)

    async def start(self) -> None:
        """Pick up the current session state and catch up stale data."""
        try:
            await self.check_session()
            if self._state is PollerState.IDLE:
                await self.refresh_if_stale()
        except Exception:
            logger.exception("Initial live price sync failed")

    async def stop(self) -> None:
        await self._stop_loop()
        self._state = PollerState.IDLE

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "polling": self.polling,
            "poll_interval": self._poll_interval,
            "cached_quotes": len(self._cache),
            "eod_session": self._eod_session,
            "last_refresh": self._last_refresh.isoformat() if self._last_refresh else None,
        }
