"""
Two-tier cache for replacement suggestions.
An in-process dict is always used; redis is consulted when configured.
"""
import json
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from nutriplan.core.config import Settings, get_settings
from nutriplan.core.logging import get_logger
from nutriplan.db.schema import CacheStats

logger = get_logger("services.suggestion_cache")


class InMemoryCacheStore:
    """Dict cache with per-entry expiry timestamps."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        now = self._clock()
        self._prune(now)
        self._entries[key] = (now + ttl_seconds, value)

    def _prune(self, now: float) -> None:
        """Drop every expired entry."""
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)


class RedisCacheStore:
    """
    Redis-backed store. Failures are logged and treated as misses so the
    in-process tier keeps working when redis is down.
    """

    def __init__(self, url: str, client: Optional[aioredis.Redis] = None):
        self.url = url
        self._client = client or aioredis.Redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self._client.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"[Cache] Redis unavailable for get, using in-process cache only: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[Cache] Ignoring undecodable redis entry {key[:40]}: {e}")
            return None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self._client.setex(key, ttl_seconds, json.dumps(value))
        except (RedisError, OSError) as e:
            logger.warning(f"[Cache] Redis unavailable for set, using in-process cache only: {e}")

    async def delete_prefix(self, prefix: str) -> int:
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{prefix}*")]
            if keys:
                await self._client.delete(*keys)
        except (RedisError, OSError) as e:
            logger.warning(f"[Cache] Redis unavailable for delete, only the in-process cache was cleared: {e}")
            return 0
        return len(keys)

    async def close(self) -> None:
        await self._client.aclose()


class SuggestionCache:
    """Looks in memory first, then the external store; writes to both."""

    def __init__(
        self,
        memory: Optional[InMemoryCacheStore] = None,
        external: Optional[RedisCacheStore] = None,
        ttl_seconds: int = 600
    ):
        self.memory = memory or InMemoryCacheStore()
        self.external = external
        self.ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = await self.memory.get(key)
        if value is None and self.external is not None:
            value = await self.external.get(key)
            if value is not None:
                await self.memory.set(key, value, self.ttl_seconds)

        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        await self.memory.set(key, value, self.ttl_seconds)
        if self.external is not None:
            await self.external.set(key, value, self.ttl_seconds)

    async def clear_prefix(self, prefix: str) -> int:
        """Remove matching keys from both tiers; returns how many entries were dropped."""
        removed = await self.memory.delete_prefix(prefix)
        if self.external is not None:
            removed = max(removed, await self.external.delete_prefix(prefix))
        return removed

    def stats(self) -> CacheStats:
        lookups = self.hits + self.misses
        return CacheStats(
            hits=self.hits,
            misses=self.misses,
            hit_rate=self.hits / lookups if lookups else 0.0,
            memory_entries=len(self.memory),
            redis_enabled=self.external is not None,
        )

    async def close(self) -> None:
        if self.external is not None:
            await self.external.close()


def build_suggestion_cache(settings: Optional[Settings] = None) -> SuggestionCache:
    """Create the cache described by settings."""
    settings = settings or get_settings()
    external = None
    if settings.redis_url:
        logger.info("[Cache] Redis tier enabled for suggestion cache")
        external = RedisCacheStore(settings.redis_url)
    return SuggestionCache(external=external, ttl_seconds=settings.suggestion_cache_ttl_seconds)
