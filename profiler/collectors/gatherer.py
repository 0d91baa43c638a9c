# =============================================================================
# Raw Signal Collector — Three-Pass Gathering Into One Bundle
# =============================================================================
#
# PASSES:
#   1. Primary        one task per identifier on the target (LinkedIn,
#                     Instagram, Facebook, website) plus up to 3 URLs
#                     found in the notes; joined with gather(),
#                     return_exceptions=True
#   2. Supplementary  links discovered inside the primary payloads
#                     (bio links, external URLs, profile websites),
#                     fetched at most 3 at a time
#   3. Mentions       public web search by full name (and city)
#
# Nothing here is fatal. Every failure is caught at the task boundary and
# recorded on the bundle as {source, message, timestamp}; a sibling task
# is never cancelled because another one failed.
#
# DESIGN DECISION: Each task owns its slot.
# Primary tasks return their payload instead of writing the bundle; the
# collector writes each result into its own slot after the join. No two
# tasks ever touch the same field.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any

import httpx

from profiler.collectors.base import SourceCollector, extract_urls, is_valid_url
from profiler.collectors.mentions import PublicMentionsCollector
from profiler.collectors.social import FacebookCollector, InstagramCollector, LinkedInCollector
from profiler.collectors.web import WebPageCollector
from profiler.config import Settings
from profiler.errors import CollectorError
from profiler.models.signals import RawSignalBundle, WebPageSignal
from profiler.models.target import ProfilingTarget
from profiler.services.cache import TTLCache

logger = logging.getLogger(__name__)

WEB_CONTENT = "web_content"


@dataclass
class _Task:
    source: str      # name recorded in the bundle
    slot: str        # bundle attribute the payload is written to
    url: str


class RawSignalCollector:
    """Gathers a frozen `RawSignalBundle` for one target."""

    def __init__(
        self,
        linkedin: SourceCollector | None = None,
        instagram: SourceCollector | None = None,
        facebook: SourceCollector | None = None,
        web: WebPageCollector | None = None,
        mentions: PublicMentionsCollector | None = None,
        timeout_seconds: float = 30.0,
        max_note_urls: int = 3,
    ) -> None:
        self._linkedin = linkedin
        self._instagram = instagram
        self._facebook = facebook
        self._web = web
        self._mentions = mentions
        self._timeout = timeout_seconds
        self._max_note_urls = max_note_urls

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        cache: TTLCache | None = None,
    ) -> RawSignalCollector:
        """Wire the production adapters onto one shared HTTP client."""
        scraping = (client, settings.scraping_api_url, settings.scraping_api_key)
        return cls(
            linkedin=LinkedInCollector(*scraping),
            instagram=InstagramCollector(*scraping),
            facebook=FacebookCollector(*scraping),
            web=WebPageCollector(
                client,
                cache=cache,
                cache_ttl_seconds=settings.web_cache_ttl_seconds,
                max_chars=settings.web_max_content_chars,
                timeout_seconds=settings.web_fetch_timeout_seconds,
                concurrency=settings.web_fetch_concurrency,
            ),
            mentions=PublicMentionsCollector(
                client,
                api_key=settings.google_search_api_key,
                engine_id=settings.google_search_engine_id,
                cache=cache,
                cache_ttl_seconds=settings.mentions_cache_ttl_seconds,
                max_queries=settings.google_search_max_queries,
            ),
            timeout_seconds=settings.collector_timeout_seconds,
            max_note_urls=settings.max_note_urls,
        )

    async def gather(self, target: ProfilingTarget) -> RawSignalBundle:
        start = time.monotonic()
        bundle = RawSignalBundle()

        fetched = await self._primary_pass(target, bundle)
        await self._supplementary_pass(bundle, already_fetched=fetched)
        await self._mention_pass(target, bundle)

        bundle.freeze(elapsed_ms=int((time.monotonic() - start) * 1000))
        stats = self.stats(bundle)
        logger.info(
            "Collected signals for %s: %d ok, %d failed (%.0f%%) in %dms",
            target.full_name, stats["successes"], stats["failures"],
            stats["success_rate"] * 100, stats["elapsed_ms"],
        )
        return bundle

    # --- Pass 1 ---

    def _plan_primary(self, target: ProfilingTarget) -> tuple[list[_Task], list[str]]:
        tasks: list[_Task] = []
        for source, slot, url, collector in (
            ("linkedin", "linkedin", target.linkedin_url, self._linkedin),
            ("instagram", "instagram", target.instagram_url, self._instagram),
            ("facebook", "facebook", target.facebook_url, self._facebook),
            ("website", "website", target.website_url, self._web),
        ):
            if collector is None or not url:
                continue
            # Instagram also accepts a bare handle
            if source != "instagram" and not is_valid_url(url):
                logger.warning("Skipping %s: invalid URL %r", source, url)
                continue
            tasks.append(_Task(source, slot, url))

        note_urls: list[str] = []
        if self._web is not None:
            known = {target.website_url}
            note_urls = [
                u for u in extract_urls(target.notes, limit=self._max_note_urls)
                if u not in known
            ]
        return tasks, note_urls

    def _collector_for(self, slot: str) -> SourceCollector:
        return {
            "linkedin": self._linkedin,
            "instagram": self._instagram,
            "facebook": self._facebook,
            "website": self._web,
        }[slot]

    async def _guarded(self, source: str, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except TimeoutError as e:
            raise CollectorError(source, f"timed out after {self._timeout:.0f}s") from e

    async def _primary_pass(self, target: ProfilingTarget, bundle: RawSignalBundle) -> set[str]:
        tasks, note_urls = self._plan_primary(target)
        calls = [
            self._guarded(t.source, self._collector_for(t.slot).collect(t.url))
            for t in tasks
        ]
        calls += [self._guarded(WEB_CONTENT, self._web.collect(u)) for u in note_urls]

        if not calls:
            logger.info("No source identifiers on target %s", target.id)
            return set()

        outcomes = await asyncio.gather(*calls, return_exceptions=True)

        for task, outcome in zip(tasks, outcomes[: len(tasks)]):
            if isinstance(outcome, BaseException):
                self._record_failure(bundle, task.source, outcome)
            else:
                setattr(bundle, task.slot, outcome)
                bundle.record_success(task.source)

        for url, outcome in zip(note_urls, outcomes[len(tasks):]):
            if isinstance(outcome, BaseException):
                self._record_failure(bundle, WEB_CONTENT, outcome)
            else:
                bundle.web_pages.append(outcome)
                bundle.record_success(WEB_CONTENT)

        return {t.url for t in tasks} | set(note_urls)

    # --- Pass 2 ---

    @staticmethod
    def discovered_urls(bundle: RawSignalBundle) -> list[str]:
        """Links found inside the collected social payloads, in order."""
        candidates: list[str | None] = []
        if bundle.instagram is not None:
            candidates.extend(bundle.instagram.bio_links)
            candidates.append(bundle.instagram.external_url)
        if bundle.facebook is not None:
            candidates.append(bundle.facebook.website)
        if bundle.linkedin is not None:
            candidates.append(bundle.linkedin.website)

        urls: list[str] = []
        for url in candidates:
            if url and is_valid_url(url) and url not in urls:
                urls.append(url)
        return urls

    async def _supplementary_pass(self, bundle: RawSignalBundle, already_fetched: set[str]) -> None:
        if self._web is None:
            return
        urls = [u for u in self.discovered_urls(bundle) if u not in already_fetched]
        if not urls:
            return

        logger.info("Fetching %d discovered URLs", len(urls))
        try:
            results = await self._web.fetch_many(urls)
        except Exception as e:
            self._record_failure(bundle, WEB_CONTENT, e)
            return

        pages: list[WebPageSignal] = []
        for url, result in zip(urls, results):
            if isinstance(result, WebPageSignal):
                pages.append(result)
            else:
                self._record_failure(bundle, WEB_CONTENT, result)

        if pages:
            bundle.web_pages.extend(pages)
            bundle.record_success(WEB_CONTENT, count=len(pages))

    # --- Pass 3 ---

    async def _mention_pass(self, target: ProfilingTarget, bundle: RawSignalBundle) -> None:
        if self._mentions is None:
            return
        try:
            bundle.public_mentions = await self._guarded(
                self._mentions.source, self._mentions.search(target),
            )
            bundle.record_success(self._mentions.source)
        except Exception as e:
            self._record_failure(bundle, self._mentions.source, e)

    # --- Helpers ---

    @staticmethod
    def _record_failure(bundle: RawSignalBundle, source: str, error: BaseException) -> None:
        if isinstance(error, CollectorError):
            message = error.message
            logger.warning("Collector %s failed: %s", source, message)
        else:
            message = f"{type(error).__name__}: {error}"
            logger.error("Collector %s raised unexpectedly: %s", source, message)
        bundle.record_failure(source, message)

    @staticmethod
    def stats(bundle: RawSignalBundle) -> dict[str, Any]:
        total = bundle.successes + bundle.failures
        return {
            "total": total,
            "successes": bundle.successes,
            "failures": bundle.failures,
            "success_rate": round(bundle.successes / total, 2) if total else 0.0,
            "elapsed_ms": bundle.elapsed_ms,
            "sources": list(bundle.sources_consulted),
        }
