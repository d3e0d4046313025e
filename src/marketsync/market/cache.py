"""Small generic expiring map used for live quotes."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class ExpiringCache(Generic[K, V]):
    """In-memory key/value map whose entries expire after a fixed TTL.

    The clock is injectable so expiry can be tested without sleeping.
    Expired entries are dropped lazily on read and by ``prune()``.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock
        self._data: dict[K, _Entry[V]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: K) -> V | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._data[key]
            return None
        return entry.value

    def set(self, key: K, value: V) -> None:
        self._data[key] = _Entry(value, self._clock() + self._ttl)

    def pop(self, key: K) -> V | None:
        entry = self._data.pop(key, None)
        return entry.value if entry else None

    def clear(self) -> None:
        self._data.clear()

    def prune(self) -> int:
        """Drop expired entries, returning how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._data.items() if e.expires_at <= now]
        for k in expired:
            del self._data[k]
        return len(expired)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._data))
