"""Tests for the session-aware live price poller."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from marketsync.core.constants import JOB_LIVE_PRICE
from marketsync.core.exceptions import UpstreamError
from marketsync.jobs.registry import JobRegistry
from marketsync.market.cache import ExpiringCache
from marketsync.market.poller import LivePricePoller, PollerState
from marketsync.market.session import MarketSession
from marketsync.providers.nse.models import Quote

IST = ZoneInfo("Asia/Kolkata")
OPEN = datetime(2025, 10, 17, 10, 0, tzinfo=IST)  # Friday, mid-session
CLOSE = datetime(2025, 10, 17, 15, 31, tzinfo=IST)
EVENING = datetime(2025, 10, 17, 20, 0, tzinfo=IST)
SATURDAY = datetime(2025, 10, 18, 9, 0, tzinfo=IST)


class MonotonicClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def quotes() -> AsyncMock:
    source = AsyncMock()
    source.fetch_quote.side_effect = lambda symbol: Quote(symbol=symbol, last_price=100.0)
    return source


@pytest.fixture
def cache_clock() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture
def make_poller(store, quotes, cache_clock):
    created: list[LivePricePoller] = []

    def factory(now: datetime = CLOSE, **kwargs) -> LivePricePoller:
        kwargs.setdefault("cache", ExpiringCache(120, clock=cache_clock))
        poller = LivePricePoller(
            MarketSession(),
            quotes,
            store,
            poll_interval=3600,
            batch_delay=0,
            clock=lambda: now,
            **kwargs,
        )
        created.append(poller)
        return poller

    yield factory
    for poller in created:
        if poller._loop_task is not None:
            poller._loop_task.cancel()


class TestSessionTransitions:
    async def test_open_starts_polling(self, make_poller) -> None:
        poller = make_poller()
        assert await poller.check_session(OPEN) == 0
        assert poller.state is PollerState.POLLING
        assert poller.polling
        await poller.stop()
        assert poller.state is PollerState.IDLE

    async def test_close_triggers_eod_capture(self, make_poller, quotes, store) -> None:
        poller = make_poller()
        await poller.check_session(OPEN)

        updated = await poller.check_session(CLOSE)

        assert updated == 2
        assert poller.state is PollerState.IDLE
        assert not poller.polling
        assert poller.eod_session == "2025-10-17"
        assert set(store.quotes) == {"FOO", "BAR"}

    async def test_eod_bypasses_cache(self, make_poller, quotes) -> None:
        poller = make_poller()
        poller.cache.set("FOO", Quote(symbol="FOO", last_price=1.0))
        poller.cache.set("BAR", Quote(symbol="BAR", last_price=1.0))
        await poller.check_session(OPEN)

        await poller.check_session(CLOSE)

        assert quotes.fetch_quote.await_count == 2

    async def test_duplicate_close_signals_capture_once(self, make_poller, quotes) -> None:
        poller = make_poller()
        await poller.check_session(OPEN)

        results = await asyncio.gather(
            poller.check_session(CLOSE),
            poller.check_session(CLOSE),
            poller.capture_eod(CLOSE),
        )

        assert sorted(results) == [0, 0, 2]
        assert quotes.fetch_quote.await_count == 2

    async def test_direct_captures_run_once_per_session(self, make_poller, quotes) -> None:
        poller = make_poller()
        first, second = await asyncio.gather(poller.capture_eod(CLOSE), poller.capture_eod(CLOSE))
        assert {first, second} == {0, 2}
        assert await poller.capture_eod(EVENING) == 0
        assert quotes.fetch_quote.await_count == 2

    async def test_idle_close_check_does_nothing(self, make_poller, quotes) -> None:
        poller = make_poller()
        assert await poller.check_session(EVENING) == 0
        quotes.fetch_quote.assert_not_awaited()

    async def test_flag_resets_on_new_session_date(self, make_poller) -> None:
        poller = make_poller()
        await poller.capture_eod(CLOSE)
        assert poller.eod_session == "2025-10-17"

        await poller.check_session(CLOSE + timedelta(days=1))

        assert poller.eod_session is None

    async def test_reopen_next_day_allows_new_capture(self, make_poller, quotes) -> None:
        poller = make_poller()
        await poller.check_session(OPEN)
        await poller.check_session(CLOSE)
        monday = timedelta(days=3)
        await poller.check_session(OPEN + monday)
        assert await poller.check_session(CLOSE + monday) == 2
        assert quotes.fetch_quote.await_count == 4


class TestEodMarker:
    async def test_existing_marker_skips_capture(self, make_poller, quotes) -> None:
        markers = AsyncMock()
        markers.claim.return_value = False
        poller = make_poller(eod_markers=markers)

        assert await poller.capture_eod(CLOSE) == 0
        quotes.fetch_quote.assert_not_awaited()
        markers.claim.assert_awaited_once_with("2025-10-17")

    async def test_marker_unavailable_still_captures(self, make_poller) -> None:
        markers = AsyncMock()
        markers.claim.side_effect = ConnectionError("redis down")
        poller = make_poller(eod_markers=markers)

        assert await poller.capture_eod(CLOSE) == 2

    async def test_failed_capture_releases_claim(self, make_poller, store) -> None:
        markers = AsyncMock()
        markers.claim.return_value = True
        poller = make_poller(eod_markers=markers)
        store.update_live_quote = AsyncMock(side_effect=ConnectionError("db down"))

        with pytest.raises(ConnectionError):
            await poller.capture_eod(CLOSE)

        assert poller.eod_session is None
        markers.release.assert_awaited_once_with("2025-10-17")


class TestRefresh:
    async def test_cache_hit_skips_upstream(self, make_poller, quotes, cache_clock) -> None:
        poller = make_poller()
        assert await poller.refresh() == 2
        assert await poller.refresh() == 0
        assert quotes.fetch_quote.await_count == 2

        cache_clock.now += 121
        assert await poller.refresh() == 2
        assert quotes.fetch_quote.await_count == 4

    async def test_failed_fetch_leaves_instrument_untouched(
        self, make_poller, quotes, store
    ) -> None:
        def fetch(symbol: str) -> Quote:
            if symbol == "FOO":
                raise UpstreamError("timeout")
            return Quote(symbol=symbol, last_price=50.0)

        quotes.fetch_quote.side_effect = fetch
        poller = make_poller()

        assert await poller.refresh() == 1
        assert "FOO" not in store.quotes
        assert store.quotes["BAR"].last_price == 50.0

    async def test_batches_respect_concurrency(self, make_poller, quotes, store) -> None:
        for symbol in ("A", "B", "C", "D", "E"):
            store.instruments[symbol] = store.instruments["FOO"].model_copy(
                update={"symbol": symbol}
            )
        in_flight = 0
        peak = 0

        async def fetch(symbol: str) -> Quote:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return Quote(symbol=symbol, last_price=1.0)

        quotes.fetch_quote.side_effect = fetch
        poller = make_poller(concurrency=2)

        assert await poller.refresh() == 7
        assert peak <= 2

    async def test_overlapping_tick_is_skipped(self, make_poller, quotes) -> None:
        release = asyncio.Event()

        async def slow_fetch(symbol: str) -> Quote:
            await release.wait()
            return Quote(symbol=symbol, last_price=1.0)

        quotes.fetch_quote.side_effect = slow_fetch
        poller = make_poller()

        first = asyncio.create_task(poller.tick())
        await asyncio.sleep(0)
        assert await poller.tick() == 0
        release.set()
        assert await first == 2

    async def test_paused_tick_skips_upstream(self, make_poller, quotes) -> None:
        paused = True
        poller = make_poller(should_poll=lambda: not paused)

        assert await poller.tick() == 0
        quotes.fetch_quote.assert_not_awaited()

        paused = False
        assert await poller.tick() == 2

    async def test_paused_job_stops_background_loop(self, make_poller, quotes) -> None:
        registry = JobRegistry()
        registry.register(JOB_LIVE_PRICE)
        registry.pause(JOB_LIVE_PRICE)
        poller = make_poller(
            now=OPEN, should_poll=lambda: not registry.is_paused(JOB_LIVE_PRICE)
        )

        await poller.check_session(OPEN)
        for _ in range(3):
            await asyncio.sleep(0)

        assert poller.polling
        quotes.fetch_quote.assert_not_awaited()
        await poller.stop()


class TestRefreshIfStale:
    async def test_skips_after_eod_capture(self, make_poller, quotes, store) -> None:
        poller = make_poller()
        await poller.capture_eod(CLOSE)
        quotes.fetch_quote.reset_mock()
        for instrument in store.instruments.values():
            instrument.last_live_update = None

        assert await poller.refresh_if_stale(EVENING) == 0
        quotes.fetch_quote.assert_not_awaited()

    async def test_skips_when_marker_exists(self, make_poller, quotes) -> None:
        markers = AsyncMock()
        markers.exists.return_value = True
        poller = make_poller(eod_markers=markers)

        assert await poller.refresh_if_stale(EVENING) == 0
        quotes.fetch_quote.assert_not_awaited()

    async def test_fetches_once_when_stale(self, make_poller, quotes, store) -> None:
        for instrument in store.instruments.values():
            instrument.last_live_update = EVENING - timedelta(hours=7)
        poller = make_poller()

        assert await poller.refresh_if_stale(EVENING) == 2
        # Recorded as the session's capture, so the next keepalive is a no-op
        assert await poller.refresh_if_stale(EVENING) == 0
        assert quotes.fetch_quote.await_count == 2

    async def test_fresh_data_not_refetched(self, make_poller, quotes, store) -> None:
        for instrument in store.instruments.values():
            instrument.last_live_update = EVENING - timedelta(hours=1)
        poller = make_poller()

        assert await poller.refresh_if_stale(EVENING) == 0
        quotes.fetch_quote.assert_not_awaited()

    async def test_friday_capture_covers_weekend_and_pre_open(
        self, make_poller, quotes, store
    ) -> None:
        poller = make_poller()
        await poller.capture_eod(CLOSE)
        quotes.fetch_quote.reset_mock()

        keepalives = [
            datetime(2025, 10, day, hour, 1, tzinfo=IST)
            for day in (18, 19)
            for hour in (0, 6, 12, 18)
        ] + [datetime(2025, 10, 20, 8, 1, tzinfo=IST)]
        for now in keepalives:
            for instrument in store.instruments.values():
                instrument.last_live_update = None
            await poller.check_session(now)
            assert await poller.refresh_if_stale(now) == 0
        quotes.fetch_quote.assert_not_awaited()

    async def test_weekend_checks_marker_of_last_session(self, make_poller, quotes) -> None:
        markers = AsyncMock()
        markers.exists.side_effect = lambda session_date: session_date == "2025-10-17"
        poller = make_poller(eod_markers=markers)

        assert await poller.refresh_if_stale(SATURDAY) == 0
        markers.exists.assert_awaited_with("2025-10-17")
        quotes.fetch_quote.assert_not_awaited()

    async def test_missing_capture_is_recorded_once(self, make_poller, quotes, store) -> None:
        poller = make_poller()

        assert await poller.refresh_if_stale(SATURDAY) == 2
        for instrument in store.instruments.values():
            instrument.last_live_update = None
        assert await poller.refresh_if_stale(SATURDAY + timedelta(hours=12)) == 0
        assert quotes.fetch_quote.await_count == 2
        assert await poller.eod_captured("2025-10-17")

    async def test_open_market_defers_to_session_check(self, make_poller) -> None:
        poller = make_poller()
        await poller.refresh_if_stale(OPEN)
        assert poller.state is PollerState.POLLING
        await poller.stop()

    def test_status(self, make_poller) -> None:
        status = make_poller().status()
        assert status["state"] == "idle"
        assert status["polling"] is False
        assert status["eod_session"] is None
