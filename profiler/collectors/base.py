# =============================================================================
# Source Collector Protocol & Identifier Helpers
# =============================================================================
#
# A SourceCollector turns one identifier (profile URL, handle, web URL)
# into one typed payload. Adapters raise:
#   SourceNotFound      — profile missing, private or restricted (final)
#   SourceNetworkError  — timeout / transport / upstream 5xx (retryable)
#
# DESIGN DECISION: Stateless helpers are free functions.
# URL parsing, username extraction and obscured-text detection need no
# collector state, so any adapter (or test) can call them directly.
# =============================================================================

from __future__ import annotations

import re
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx

from profiler.errors import SourceNetworkError, SourceNotFound
from profiler.models.signals import LinkedInSignal


class SourceCollector(Protocol):
    """One adapter per external source type."""

    source: str

    async def collect(self, identifier: str) -> Any:
        ...


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

_URL_RE = re.compile(r"https?://[^\s<>\"')\]]+", re.IGNORECASE)

_USERNAME_PATTERNS: dict[str, re.Pattern[str]] = {
    "linkedin": re.compile(r"linkedin\.com/in/([^/?#]+)", re.IGNORECASE),
    "instagram": re.compile(r"instagram\.com/([^/?#]+)", re.IGNORECASE),
    "facebook": re.compile(r"facebook\.com/([^/?#]+)", re.IGNORECASE),
    "twitter": re.compile(r"(?:twitter|x)\.com/([^/?#]+)", re.IGNORECASE),
}


def is_valid_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and "." in parsed.netloc


def extract_urls(text: str | None, limit: int | None = None) -> list[str]:
    """Valid, de-duplicated http(s) URLs in order of appearance."""
    if not text:
        return []
    urls: list[str] = []
    for match in _URL_RE.findall(text):
        url = match.rstrip(".,;:")
        if is_valid_url(url) and url not in urls:
            urls.append(url)
        if limit is not None and len(urls) >= limit:
            break
    return urls


def extract_username(platform: str, url: str | None) -> str | None:
    """Handle from a profile URL (or a bare handle for Instagram)."""
    if not url:
        return None
    pattern = _USERNAME_PATTERNS[platform]
    match = pattern.search(url)
    if match:
        return match.group(1).strip("@") or None
    if platform == "instagram" and not url.startswith(("http://", "https://")) and "/" not in url:
        return url.strip().lstrip("@") or None
    return None


def normalize_profile_url(url: str | None) -> str:
    """Scheme-, www- and trailing-slash-insensitive form for comparisons."""
    if not url:
        return ""
    value = url.strip().lower()
    for prefix in ("https://", "http://"):
        if value.startswith(prefix):
            value = value[len(prefix):]
    if value.startswith("www."):
        value = value[4:]
    return value.split("?")[0].rstrip("/")


# ---------------------------------------------------------------------------
# LinkedIn sanitisation
# ---------------------------------------------------------------------------


def is_obscured(text: str | None) -> bool:
    """True when more than half of the characters are masking asterisks."""
    if not text:
        return False
    return text.count("*") / len(text) > 0.5


def sanitize_linkedin(signal: LinkedInSignal) -> LinkedInSignal:
    """Drop text fields that the upstream API returned masked."""
    updates: dict[str, Any] = {}
    for name in ("full_name", "headline", "about", "location"):
        if is_obscured(getattr(signal, name)):
            updates[name] = None
    experiences = [
        exp.model_copy(update={
            "description": None if is_obscured(exp.description) else exp.description,
        })
        for exp in signal.experiences
        if not (is_obscured(exp.role) and is_obscured(exp.company))
    ]
    updates["experiences"] = experiences
    updates["skills"] = [s for s in signal.skills if not is_obscured(s)]
    return signal.model_copy(update=updates)


# ---------------------------------------------------------------------------
# HTTP error translation
# ---------------------------------------------------------------------------


def raise_for_source(source: str, response: httpx.Response) -> None:
    """Map an upstream HTTP status onto the collector error taxonomy."""
    if response.status_code in (403, 404, 410):
        raise SourceNotFound(
            source, f"HTTP {response.status_code}: profile unavailable or restricted",
        )
    if response.status_code >= 400:
        raise SourceNetworkError(source, f"HTTP {response.status_code}")
