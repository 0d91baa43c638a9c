# =============================================================================
# Public Mentions Collector — Google Custom Search by Name
# =============================================================================
#
# Searches the open web for the target's full name and sorts the hits
# into discovered social profiles and press/article mentions.
#
# QUERIES (first `max_queries` are executed, sequentially):
#   1. "<name> <city>"   (or just "<name>" without a city)
#   2. "<name> LinkedIn"
#   3. "<name> (Twitter OR TikTok OR YouTube OR GitHub)"
#   4. "<name> (interview OR article OR press OR news)"
#
# HOMONYM FILTER:
# Searching by name returns other people with the same name. When the
# target has a known LinkedIn URL, any `linkedin.com/in/...` hit that does
# not point at that profile (after normalisation) is dropped.
#
# DESIGN DECISION: Sequential queries, cached for 7 days.
# The search API is metered and rate-limited per second; three queries in
# a row cost little latency, and public mentions change slowly.
# =============================================================================

from __future__ import annotations

import logging

import httpx

from profiler.collectors.base import normalize_profile_url
from profiler.errors import SourceNetworkError, SourceNotFound
from profiler.models.signals import PublicMentionsSignal, SearchHit
from profiler.models.target import ProfilingTarget
from profiler.services.cache import TTLCache

logger = logging.getLogger(__name__)

GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"

_SOURCE_DOMAINS: list[tuple[str, tuple[str, ...]]] = [
    ("linkedin", ("linkedin.com",)),
    ("twitter", ("twitter.com", "x.com")),
    ("facebook", ("facebook.com",)),
    ("instagram", ("instagram.com",)),
    ("tiktok", ("tiktok.com",)),
    ("youtube", ("youtube.com",)),
    ("github", ("github.com",)),
    ("medium", ("medium.com",)),
]
_ARTICLE_HINTS = ("/articol", "/news", "/blog", "/post")
_PROFILE_SOURCES = {"twitter", "tiktok", "youtube", "github", "medium"}


def build_queries(target: ProfilingTarget) -> list[str]:
    name = target.full_name
    return [
        f"{name} {target.city}" if target.city else name,
        f"{name} LinkedIn",
        f"{name} (Twitter OR TikTok OR YouTube OR GitHub)",
        f"{name} (interview OR article OR press OR news)",
    ]


def categorize_source(url: str) -> str:
    lowered = url.lower()
    for source, domains in _SOURCE_DOMAINS:
        if any(domain in lowered for domain in domains):
            return source
    if any(hint in lowered for hint in _ARTICLE_HINTS):
        return "article"
    return "other"


def filter_mentions(hits: list[SearchHit], linkedin_url: str | None) -> list[SearchHit]:
    """Drop LinkedIn profile hits that belong to somebody else."""
    target = normalize_profile_url(linkedin_url)
    if not target:
        return list(hits)
    kept = []
    for hit in hits:
        link = normalize_profile_url(hit.link)
        if "linkedin.com/in/" in link and not link.startswith(target):
            continue
        kept.append(hit)
    return kept


def summarize_hits(target: ProfilingTarget, queries: list[str], hits: list[SearchHit]) -> PublicMentionsSignal:
    social_profiles: dict[str, str] = {}
    mentions: dict[str, list[str]] = {
        "articles": [], "interviews": [], "press_releases": [], "other": [],
    }
    for hit in hits:
        if hit.source in _PROFILE_SOURCES:
            social_profiles.setdefault(hit.source, hit.link)
        elif hit.source == "article":
            snippet = hit.snippet.lower()
            if "interview" in snippet:
                mentions["interviews"].append(hit.link)
            elif "press release" in snippet:
                mentions["press_releases"].append(hit.link)
            else:
                mentions["articles"].append(hit.link)
        elif hit.source not in ("linkedin", "facebook", "instagram"):
            mentions["other"].append(hit.link)

    return PublicMentionsSignal(
        target_name=target.full_name,
        queries_executed=queries,
        results=hits,
        social_profiles=social_profiles,
        mentions=mentions,
    )


class PublicMentionsCollector:
    source = "public_mentions"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        engine_id: str,
        cache: TTLCache | None = None,
        cache_ttl_seconds: int = 7 * 24 * 3600,
        max_queries: int = 3,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._engine_id = engine_id
        self._cache = cache
        self._cache_ttl = cache_ttl_seconds
        self._max_queries = max_queries

    async def search(self, target: ProfilingTarget) -> PublicMentionsSignal:
        if not (self._api_key and self._engine_id):
            raise SourceNotFound(self.source, "search API not configured")

        cache_key = f"mentions:{target.full_name.lower()}:{(target.city or '').lower()}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.info("Mentions cache hit for %s", target.full_name)
                signal = PublicMentionsSignal.model_validate(cached)
                # Cached hits were filtered against whatever URL was known then
                return summarize_hits(
                    target, signal.queries_executed,
                    filter_mentions(signal.results, target.linkedin_url),
                )

        hits: list[SearchHit] = []
        executed: list[str] = []
        last_error: Exception | None = None
        for query in build_queries(target)[: self._max_queries]:
            try:
                hits.extend(await self._execute(query))
                executed.append(query)
            except SourceNetworkError as e:
                logger.warning("Search query failed (%s): %s", query, e)
                last_error = e

        if not executed and last_error is not None:
            raise SourceNetworkError(self.source, f"all search queries failed: {last_error}")

        filtered = filter_mentions(hits, target.linkedin_url)
        logger.info(
            "Public mentions for %s: kept %d/%d results across %d queries",
            target.full_name, len(filtered), len(hits), len(executed),
        )
        signal = summarize_hits(target, executed, filtered)

        if self._cache is not None:
            unfiltered = summarize_hits(target, executed, hits)
            await self._cache.set(cache_key, unfiltered.model_dump(mode="json"), self._cache_ttl)
        return signal

    async def _execute(self, query: str) -> list[SearchHit]:
        params = {"key": self._api_key, "cx": self._engine_id, "q": query, "num": 10}
        try:
            response = await self._client.get(GOOGLE_CSE_URL, params=params, timeout=15.0)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SourceNetworkError(self.source, str(e)) from e

        return [
            SearchHit(
                title=item.get("title", ""),
                link=item.get("link", ""),
                snippet=item.get("snippet", ""),
                display_link=item.get("displayLink", ""),
                source=categorize_source(item.get("link", "")),
            )
            for item in data.get("items", [])
        ]
