"""Storage layer: PostgreSQL (asyncpg) and Redis."""

from marketsync.storage.base import MarketStore
from marketsync.storage.database import Database, close_database, get_database, init_database
from marketsync.storage.redis import EodMarkerStore, close_redis, get_redis, init_redis

__all__ = [
    "Database",
    "EodMarkerStore",
    "MarketStore",
    "close_database",
    "close_redis",
    "get_database",
    "get_redis",
    "init_database",
    "init_redis",
]
