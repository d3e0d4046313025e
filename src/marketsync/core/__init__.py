"""Core utilities: logging, exceptions, constants."""

from marketsync.core.exceptions import MarketSyncError
from marketsync.core.logging import get_logger, setup_logging

__all__ = [
    "MarketSyncError",
    "get_logger",
    "setup_logging",
]
