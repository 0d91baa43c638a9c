# =============================================================================
# TTL Cache — Owned, Injected Cache for Signals and Critiques
# =============================================================================
#
# Web pages, public-mention searches and rubric critiques are expensive and
# change slowly, so they are cached with a TTL. The cache is an explicit
# object handed to the collector / critique agent at construction time.
#
# DESIGN DECISION: No module-level cache instance.
# Two concurrent runs (or two tests) each build their own cache unless the
# caller deliberately shares one. Nothing leaks between test cases.
#
# IMPLEMENTATIONS:
#   TTLCache (Protocol)
#   ├── InMemoryTTLCache — dict + monotonic expiry, per process
#   └── RedisTTLCache    — redis.asyncio, shared across workers (db 2)
#
# DESIGN DECISION: Graceful degradation for Redis.
# A Redis outage turns the cache into a miss/no-op (logged as a warning);
# it never fails a profiling run.
#
# Values must be JSON-serialisable (payloads are stored as model dumps).
# =============================================================================

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from profiler.config import Settings

logger = logging.getLogger(__name__)


class TTLCache(Protocol):
    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryTTLCache:
    """Per-process cache; `clock` is injectable for expiry tests."""

    def __init__(
        self,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._max_entries = max_entries
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._evict()
        self._entries[key] = (self._clock() + ttl_seconds, value)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]
        if len(self._entries) >= self._max_entries:
            # Oldest insertion first (dicts keep insertion order)
            del self._entries[next(iter(self._entries))]

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisTTLCache:
    """Shared cache on Redis; connection is created lazily."""

    def __init__(self, url: str, prefix: str = "profiler:") -> None:
        self._url = url
        self._prefix = prefix
        self._client = None

    def _get_client(self):
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(self._url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._get_client().get(self._prefix + key)
        except Exception as e:
            logger.warning("Cache unavailable (Redis error): %s. Treating as miss.", e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt cache entry: %s", key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._get_client().set(
                self._prefix + key, json.dumps(value, default=str), ex=ttl_seconds,
            )
        except Exception as e:
            logger.warning("Cache unavailable (Redis error): %s. Skipping write.", e)


def build_cache(settings: Settings) -> TTLCache:
    """Construct the cache backend selected by `CACHE_BACKEND`."""
    if settings.cache_backend == "redis":
        return RedisTTLCache(settings.cache_redis_url)
    return InMemoryTTLCache()
