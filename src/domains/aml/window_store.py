"""Per-entity sliding time windows over an ordered key-value store.

Each detector family keeps its own window per entity (``aml:<family>:<entity>``).
Entries are only ever appended; they leave through key expiry. A detector's
"current window" is always a range query from ``now - W``, so stale entries
still inside the key TTL are ignored by the query itself.

Append and query are two round trips, not one atomic operation. Two concurrent
analyses for the same entity may or may not see each other's entries; callers
must treat the window as eventually consistent.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import WindowStoreError
from .models import WindowEntry

logger = structlog.get_logger()


def window_key(prefix: str, family: str, entity_id: str) -> str:
    return f"{prefix}:{family}:{entity_id}"


class TimeWindowStore(ABC):
    """Append / range-by-score contract used by the windowed detectors."""

    @abstractmethod
    async def append(self, key: str, entry: WindowEntry, expiry_seconds: int) -> None:
        """Insert ``entry`` scored by its timestamp and reset the key TTL."""
        ...

    @abstractmethod
    async def range_since(self, key: str, since_ms: int) -> list[WindowEntry]:
        """Return entries scored >= ``since_ms``, oldest first."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. No-op by default."""


class RedisTimeWindowStore(TimeWindowStore):
    """Sorted-set backed windows: ZADD + EXPIRE, ZRANGEBYSCORE to read."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisTimeWindowStore":
        return cls(Redis.from_url(url))

    async def append(self, key: str, entry: WindowEntry, expiry_seconds: int) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {entry.to_member(): entry.timestamp_ms})
                pipe.expire(key, expiry_seconds)
                await pipe.execute()
        except RedisError as exc:
            logger.warning("window_store_append_failed", key=key, error=str(exc))
            raise WindowStoreError(f"append to {key} failed") from exc

    async def range_since(self, key: str, since_ms: int) -> list[WindowEntry]:
        try:
            members = await self._redis.zrangebyscore(key, since_ms, "+inf")
        except RedisError as exc:
            logger.warning("window_store_range_failed", key=key, error=str(exc))
            raise WindowStoreError(f"range query on {key} failed") from exc

        try:
            return [WindowEntry.from_member(m) for m in members]
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("window_store_corrupt_entry", key=key, error=str(exc))
            raise WindowStoreError(f"undecodable entry in {key}") from exc

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryTimeWindowStore(TimeWindowStore):
    """Process-local store with the same semantics as the Redis store.

    Used for tests and single-process development runs.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, dict[str, WindowEntry]] = {}
        self._expires_at: dict[str, float] = {}

    def _evict_if_expired(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._windows.pop(key, None)
            self._expires_at.pop(key, None)

    async def append(self, key: str, entry: WindowEntry, expiry_seconds: int) -> None:
        self._evict_if_expired(key)
        # Keyed by member encoding, like a sorted set: re-adding replaces
        self._windows.setdefault(key, {})[entry.to_member()] = entry
        self._expires_at[key] = self._clock() + expiry_seconds

    async def range_since(self, key: str, since_ms: int) -> list[WindowEntry]:
        self._evict_if_expired(key)
        entries = self._windows.get(key, {}).values()
        return sorted(
            (e for e in entries if e.timestamp_ms >= since_ms),
            key=lambda e: (e.timestamp_ms, e.id),
        )

    def __len__(self) -> int:
        return len(self._windows)
