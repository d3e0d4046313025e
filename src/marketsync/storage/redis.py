"""Redis client connection and end-of-day capture markers."""

from redis.asyncio import Redis
from redis.exceptions import RedisError

from marketsync.core.constants import EOD_MARKER_PREFIX, EOD_MARKER_TTL_SECONDS
from marketsync.core.exceptions import RedisConnectionError
from marketsync.core.logging import get_logger

logger = get_logger(__name__)

# Global Redis instance (initialized in lifespan)
_redis: Redis | None = None


def get_redis() -> Redis:
    """Get the global Redis instance."""
    if _redis is None:
        raise RuntimeError("Redis not initialized")
    return _redis


async def init_redis(redis_url: str) -> Redis:
    """Initialize the global Redis instance."""
    global _redis
    client = Redis.from_url(redis_url, decode_responses=False)
    try:
        await client.ping()
    except (OSError, RedisError) as e:
        await client.aclose()
        raise RedisConnectionError(f"Could not connect to Redis: {e}") from e
    _redis = client
    logger.info("Redis connected")
    return _redis


async def close_redis() -> None:
    """Close the global Redis instance."""
    global _redis
    if _redis:
        await _redis.aclose()
        logger.info("Redis disconnected")
        _redis = None


class EodMarkerStore:
    """Durable "EOD capture done" flags keyed by session date.

    Lets a restarted process see that today's capture already ran.
    """

    def __init__(self, redis: Redis, ttl: int = EOD_MARKER_TTL_SECONDS) -> None:
        self._redis = redis
        self._ttl = ttl

    @staticmethod
    def _key(session_date: str) -> str:
        return f"{EOD_MARKER_PREFIX}:{session_date}"

    async def claim(self, session_date: str) -> bool:
        """Set the marker if absent. Returns False when it was already set."""
        created = await self._redis.set(self._key(session_date), b"1", nx=True, ex=self._ttl)
        return bool(created)

    async def exists(self, session_date: str) -> bool:
        return bool(await self._redis.exists(self._key(session_date)))

    async def release(self, session_date: str) -> None:
        await self._redis.delete(self._key(session_date))
