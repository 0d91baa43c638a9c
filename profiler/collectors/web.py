# =============================================================================
# Web Page Collector — Fetch, Clean and Summarise a Single URL
# =============================================================================
#
# Used for the target's personal website, URLs found in the free-text
# notes, and links discovered inside social payloads (bio links,
# external URLs).
#
# PIPELINE:
#   httpx GET ──▶ BeautifulSoup ──▶ drop script/style/nav/footer
#             ──▶ meta tags (description, keywords, author, og:*)
#             ──▶ visible text ──▶ emails / phones ──▶ truncate head+tail
#
# DESIGN DECISION: Keep both ends of long pages.
# Personal sites put the bio at the top and contacts at the bottom, so
# long text keeps the first and last halves of the budget with a marker
# in between rather than cutting the tail off.
#
# DESIGN DECISION: Bounded fan-out lives here.
# `fetch_many()` caps concurrency with an `asyncio.Semaphore` and bounds
# each fetch with `asyncio.wait_for`, returning per-URL outcomes so one
# slow site never holds up the others.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re

import httpx
from bs4 import BeautifulSoup

from profiler.collectors.base import is_valid_url, raise_for_source
from profiler.errors import CollectorError, SourceNetworkError, SourceNotFound
from profiler.models.signals import WebPageSignal
from profiler.services.cache import TTLCache

logger = logging.getLogger(__name__)

_REMOVE_TAGS = ["script", "style", "noscript", "nav", "footer", "iframe", "svg"]
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_PHONE_RE = re.compile(r"(?:\+\d{1,3}[\s.-]?)?(?:\(?\d{2,4}\)?[\s.-]?){2,4}\d{2,4}")
_TRUNCATION_MARKER = "\n\n[... content truncated ...]\n\n"

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def truncate_middle(text: str, limit: int) -> str:
    """Keep the head and tail of `text` within `limit` characters."""
    if len(text) <= limit:
        return text
    keep = max(0, limit - len(_TRUNCATION_MARKER))
    head = keep // 2
    tail = keep - head
    return text[:head] + _TRUNCATION_MARKER + (text[-tail:] if tail else "")


def _meta(soup: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str | None:
    attrs = {"name": name} if name else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = tag.get("content")
    return content.strip() if isinstance(content, str) and content.strip() else None


def _find_phones(text: str) -> list[str]:
    phones: list[str] = []
    for match in _PHONE_RE.findall(text):
        candidate = match.strip()
        digits = sum(ch.isdigit() for ch in candidate)
        if 8 <= digits <= 15 and candidate not in phones:
            phones.append(candidate)
    return phones[:5]


def parse_html(url: str, html: str, max_chars: int) -> WebPageSignal:
    """Turn raw HTML into a `WebPageSignal` (no network)."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_REMOVE_TAGS):
        tag.decompose()

    title = soup.title.string.strip() if soup.title and soup.title.string else ""
    keywords = _meta(soup, name="keywords")
    text = " ".join(soup.get_text(separator=" ", strip=True).split())

    emails = list(dict.fromkeys(_EMAIL_RE.findall(text)))[:5]

    return WebPageSignal(
        url=url,
        title=title,
        text_content=truncate_middle(text, max_chars),
        description=_meta(soup, name="description"),
        keywords=[k.strip() for k in keywords.split(",") if k.strip()] if keywords else [],
        author=_meta(soup, name="author"),
        og_title=_meta(soup, prop="og:title"),
        og_description=_meta(soup, prop="og:description"),
        emails=emails,
        phones=_find_phones(text),
        word_count=len(text.split()),
    )


class WebPageCollector:
    """Fetches and cleans web pages; results are cached per URL."""

    source = "website"

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: TTLCache | None = None,
        cache_ttl_seconds: int = 24 * 3600,
        max_chars: int = 8000,
        timeout_seconds: float = 10.0,
        concurrency: int = 3,
    ) -> None:
        self._client = client
        self._cache = cache
        self._cache_ttl = cache_ttl_seconds
        self._max_chars = max_chars
        self._timeout = timeout_seconds
        self._concurrency = concurrency

    async def collect(self, identifier: str) -> WebPageSignal:
        if not is_valid_url(identifier):
            raise SourceNotFound(self.source, f"invalid URL: {identifier!r}")

        cache_key = f"web:{identifier}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.info("Web cache hit: %s", identifier)
                return WebPageSignal.model_validate(cached)

        try:
            response = await self._client.get(
                identifier, headers=_HEADERS, follow_redirects=True, timeout=self._timeout,
            )
        except httpx.InvalidURL as e:
            raise SourceNotFound(self.source, f"invalid URL: {identifier!r} ({e})") from e
        except httpx.TimeoutException as e:
            raise SourceNetworkError(self.source, f"timeout fetching {identifier}") from e
        except httpx.HTTPError as e:
            raise SourceNetworkError(self.source, f"transport error: {e}") from e

        raise_for_source(self.source, response)

        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type:
            raise SourceNotFound(self.source, f"not an HTML page ({content_type})")

        page = parse_html(identifier, response.text, self._max_chars)
        logger.info("Fetched %s (%d words)", identifier, page.word_count)

        if self._cache is not None:
            await self._cache.set(cache_key, page.model_dump(mode="json"), self._cache_ttl)
        return page

    async def fetch_many(self, urls: list[str]) -> list[WebPageSignal | CollectorError]:
        """
        Fetch several URLs with bounded concurrency.

        Returns one entry per URL, in order: the page, or the
        CollectorError explaining why it was skipped.
        """
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(url: str) -> WebPageSignal | CollectorError:
            async with semaphore:
                try:
                    return await asyncio.wait_for(self.collect(url), timeout=self._timeout)
                except TimeoutError:
                    return SourceNetworkError("web_content", f"timeout fetching {url}")
                except CollectorError as e:
                    return e
                except Exception as e:
                    logger.exception("Unexpected error fetching %s", url)
                    return SourceNetworkError("web_content", f"{type(e).__name__}: {e}")

        return list(await asyncio.gather(*(_one(u) for u in urls)))
