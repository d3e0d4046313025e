"""Market session awareness and live quote polling."""

from marketsync.market.cache import ExpiringCache
from marketsync.market.poller import LivePricePoller, PollerState
from marketsync.market.session import MarketSession

__all__ = ["ExpiringCache", "LivePricePoller", "MarketSession", "PollerState"]
