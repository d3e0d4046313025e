"""Market session oracle.

Answers two questions about a wall-clock instant, both in the exchange's
timezone: is the cash market open, and which session date does the instant
belong to. Weekends are closed; exchange holidays are not modelled.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

if TYPE_CHECKING:
    from marketsync.config import Settings


class MarketSession:
    """Pure open/close and session-date checks for a single exchange."""

    def __init__(
        self,
        timezone: str = "Asia/Kolkata",
        open_time: time = time(9, 15),
        close_time: time = time(15, 30),
    ) -> None:
        self._tz = ZoneInfo(timezone)
        self._open = open_time.replace(second=0, microsecond=0)
        self._close = close_time.replace(second=0, microsecond=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> MarketSession:
        return cls(settings.market_timezone, settings.market_open, settings.market_close)

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def localize(self, now: datetime | None = None) -> datetime:
        """Convert ``now`` to exchange-local time. Naive datetimes are read as UTC."""
        if now is None:
            return datetime.now(self._tz)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return now.astimezone(self._tz)

    def now_local(self) -> datetime:
        return self.localize(None)

    def is_open(self, now: datetime | None = None) -> bool:
        """True on weekdays between the open and close minute, both inclusive."""
        local = self.localize(now)
        if local.weekday() >= 5:
            return False
        minute = local.time().replace(second=0, microsecond=0)
        return self._open <= minute <= self._close

    def session_date(self, now: datetime | None = None) -> str:
        """ISO calendar date of ``now`` in the exchange timezone."""
        return self.localize(now).date().isoformat()

    def today(self, now: datetime | None = None) -> date:
        return self.localize(now).date()

    def last_closed_session(self, now: datetime | None = None) -> str:
        """ISO date of the most recent weekday session whose close has passed."""
        local = self.localize(now)
        day = local.date()
        minute = local.time().replace(second=0, microsecond=0)
        if day.weekday() >= 5 or minute <= self._close:
            day -= timedelta(days=1)
        while day.weekday() >= 5:
            day -= timedelta(days=1)
        return day.isoformat()
