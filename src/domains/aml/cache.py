"""Short-TTL memoization of analysis results, keyed by entity.

A cached result is superseded, never merged, by a later analysis. Cache
failures surface as ``AnalysisCacheError``; the engine treats them as a miss.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import structlog
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import AnalysisCacheError
from .models import AMLAnalysisResult

logger = structlog.get_logger()


class AnalysisCache(ABC):
    def __init__(self, key_prefix: str = "aml") -> None:
        self._key_prefix = key_prefix

    def key_for(self, entity_id: str) -> str:
        return f"{self._key_prefix}:analysis:{entity_id}"

    @abstractmethod
    async def get(self, entity_id: str) -> AMLAnalysisResult | None: ...

    @abstractmethod
    async def set(self, entity_id: str, result: AMLAnalysisResult, ttl_seconds: int) -> None: ...

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. No-op by default."""


class RedisAnalysisCache(AnalysisCache):
    def __init__(self, redis: Redis, key_prefix: str = "aml") -> None:
        super().__init__(key_prefix)
        self._redis = redis

    async def get(self, entity_id: str) -> AMLAnalysisResult | None:
        key = self.key_for(entity_id)
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            raise AnalysisCacheError(f"read of {key} failed") from exc
        if raw is None:
            return None
        try:
            return AMLAnalysisResult.model_validate_json(raw)
        except ValidationError as exc:
            raise AnalysisCacheError(f"undecodable cached analysis at {key}") from exc

    async def set(self, entity_id: str, result: AMLAnalysisResult, ttl_seconds: int) -> None:
        key = self.key_for(entity_id)
        try:
            await self._redis.setex(key, ttl_seconds, result.model_dump_json())
        except RedisError as exc:
            raise AnalysisCacheError(f"write of {key} failed") from exc

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryAnalysisCache(AnalysisCache):
    def __init__(
        self,
        key_prefix: str = "aml",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(key_prefix)
        self._clock = clock
        self._entries: dict[str, tuple[float, AMLAnalysisResult]] = {}

    async def get(self, entity_id: str) -> AMLAnalysisResult | None:
        key = self.key_for(entity_id)
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, result = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return result

    async def set(self, entity_id: str, result: AMLAnalysisResult, ttl_seconds: int) -> None:
        self._entries[self.key_for(entity_id)] = (self._clock() + ttl_seconds, result)
        logger.debug("analysis_cached", entity_id=entity_id, ttl_seconds=ttl_seconds)
