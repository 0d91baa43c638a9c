# =============================================================================
# Unit Tests — Services (LLM helpers, TTL cache)
# =============================================================================
#
# Provider-id parsing and JSON recovery from model replies, plus cache
# expiry and Redis degradation. No API keys or Redis server required.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from profiler.config import Settings
from profiler.services.cache import InMemoryTTLCache, RedisTTLCache, build_cache
from profiler.services.llm import _parse_provider_id, parse_json_content


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Test: Provider IDs
# ---------------------------------------------------------------------------


class TestParseProviderId:
    def test_anthropic(self):
        assert _parse_provider_id("anthropic/claude-haiku-4-5") == (
            "anthropic", "claude-haiku-4-5", None,
        )

    def test_with_base_url(self):
        assert _parse_provider_id(
            "openai_compatible/deepseek-chat@https://api.deepseek.com/v1"
        ) == ("openai_compatible", "deepseek-chat", "https://api.deepseek.com/v1")

    def test_missing_slash(self):
        with pytest.raises(ValueError, match="Invalid provider_id"):
            _parse_provider_id("gpt-4o")

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown provider type"):
            _parse_provider_id("mystery/model")


# ---------------------------------------------------------------------------
# Test: JSON Recovery
# ---------------------------------------------------------------------------


class TestParseJsonContent:
    def test_plain(self):
        assert parse_json_content('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert parse_json_content('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose(self):
        assert parse_json_content('Here you go:\n{"a": {"b": 2}}\nHope it helps') == {
            "a": {"b": 2},
        }

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            parse_json_content("[1, 2]")

    def test_garbage(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json_content("no json here")


# ---------------------------------------------------------------------------
# Test: In-Memory Cache
# ---------------------------------------------------------------------------


class TestInMemoryTTLCache:
    def test_hit_and_expiry(self):
        now = [100.0]
        cache = InMemoryTTLCache(clock=lambda: now[0])

        _run(cache.set("k", {"v": 1}, ttl_seconds=10))
        assert _run(cache.get("k")) == {"v": 1}

        now[0] = 110.0
        assert _run(cache.get("k")) is None
        assert len(cache) == 0

    def test_miss(self):
        assert _run(InMemoryTTLCache().get("absent")) is None

    def test_eviction_keeps_size_bounded(self):
        cache = InMemoryTTLCache(max_entries=2)
        for key in ("a", "b", "c"):
            _run(cache.set(key, key, ttl_seconds=60))

        assert len(cache) == 2
        assert _run(cache.get("a")) is None
        assert _run(cache.get("c")) == "c"

    def test_instances_are_isolated(self):
        first, second = InMemoryTTLCache(), InMemoryTTLCache()
        _run(first.set("k", 1, ttl_seconds=60))
        assert _run(second.get("k")) is None


# ---------------------------------------------------------------------------
# Test: Redis Cache
# ---------------------------------------------------------------------------


class TestRedisTTLCache:
    def _cache_with(self, client) -> RedisTTLCache:
        cache = RedisTTLCache("redis://localhost:6379/2")
        cache._client = client
        return cache

    def test_round_trip_uses_prefix_and_ttl(self):
        client = MagicMock()
        client.set = AsyncMock()
        client.get = AsyncMock(return_value='{"v": 1}')
        cache = self._cache_with(client)

        _run(cache.set("web:x", {"v": 1}, ttl_seconds=30))
        client.set.assert_awaited_once_with("profiler:web:x", '{"v": 1}', ex=30)
        assert _run(cache.get("web:x")) == {"v": 1}

    def test_redis_errors_degrade_to_miss(self):
        client = MagicMock()
        client.get = AsyncMock(side_effect=ConnectionError("refused"))
        client.set = AsyncMock(side_effect=ConnectionError("refused"))
        cache = self._cache_with(client)

        assert _run(cache.get("k")) is None
        _run(cache.set("k", 1, ttl_seconds=5))

    def test_corrupt_entry_is_a_miss(self):
        client = MagicMock()
        client.get = AsyncMock(return_value="{not json")
        assert _run(self._cache_with(client).get("k")) is None


class TestBuildCache:
    def test_memory_default(self):
        assert isinstance(build_cache(Settings(cache_backend="memory")), InMemoryTTLCache)

    def test_redis(self):
        assert isinstance(build_cache(Settings(cache_backend="redis")), RedisTTLCache)
