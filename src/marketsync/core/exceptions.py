"""Custom exceptions for marketsync."""


class MarketSyncError(Exception):
    """Base exception for all marketsync errors."""

    def __init__(self, message: str, *args: object) -> None:
        self.message = message
        super().__init__(message, *args)


# Upstream errors
class UpstreamError(MarketSyncError):
    """Upstream exchange request failed (timeout, reset, non-2xx)."""


class UpstreamRateLimitError(UpstreamError):
    """Upstream rejected the request with HTTP 429."""


class UpstreamSessionError(UpstreamError):
    """Upstream cookie session could not be established."""


# Data errors
class DataShapeError(MarketSyncError):
    """Upstream payload is missing expected fields or has unparseable values."""


class ExtractionError(MarketSyncError):
    """Document extraction failed or returned an unusable result."""


# Job errors
class SyncError(MarketSyncError):
    """An incremental sync run could not make progress for any instrument."""


class UnknownJobError(MarketSyncError):
    """Operation referenced a job name that was never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown job: {name}")


# Storage errors
class StorageError(MarketSyncError):
    """Base error for storage layer."""


class DatabaseConnectionError(StorageError):
    """Failed to connect to database."""


class RedisConnectionError(StorageError):
    """Failed to connect to Redis."""
