# =============================================================================
# Social Profile Collectors — LinkedIn, Instagram, Facebook via Scraping API
# =============================================================================
#
# All three platforms are fetched through one third-party scraping API
# (`SCRAPING_API_URL`, header `x-api-key`). Each collector knows its
# endpoint and how to reshape the upstream JSON into the typed payload:
#
#   GET /v1/linkedin/profile?url=…     → LinkedInSignal   (sanitised)
#   GET /v1/instagram/profile?handle=… → InstagramSignal
#   GET /v1/facebook/profile?url=…     → FacebookSignal
#
# DESIGN DECISION: One shared `httpx.AsyncClient`, injected.
# The gatherer owns the client (connection pooling across the three
# platforms); tests inject a client backed by `httpx.MockTransport`.
#
# DESIGN DECISION: Reshape before validating.
# The upstream field names are inconsistent (`about` vs `summary`,
# followers as strings, nested GraphQL edges for Instagram). `_transform`
# flattens them into our field names, then pydantic validates once.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from profiler.collectors.base import extract_username, raise_for_source, sanitize_linkedin
from profiler.errors import SourceNetworkError, SourceNotFound
from profiler.models.signals import FacebookSignal, InstagramSignal, LinkedInSignal

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> int:
    """Upstream counters arrive as ints, strings ("1,234") or nulls."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return int(digits) if digits else 0


class ScrapingApiCollector:
    """Shared request/translate logic; subclasses set `source` and `endpoint`."""

    source = "scraping_api"
    endpoint = ""
    param = "url"

    def __init__(self, client: httpx.AsyncClient, api_url: str, api_key: str) -> None:
        self._client = client
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key

    async def collect(self, identifier: str) -> Any:
        if not self._api_key:
            raise SourceNotFound(self.source, "scraping API key not configured")

        params = {self.param: self._param_value(identifier)}
        try:
            response = await self._client.get(
                f"{self._api_url}{self.endpoint}",
                params=params,
                headers={"x-api-key": self._api_key},
            )
        except httpx.TimeoutException as e:
            raise SourceNetworkError(self.source, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise SourceNetworkError(self.source, f"transport error: {e}") from e

        raise_for_source(self.source, response)

        try:
            data = response.json()
        except ValueError as e:
            raise SourceNetworkError(self.source, "invalid JSON from scraping API") from e

        if not isinstance(data, dict) or data.get("success") is False:
            message = data.get("message") or data.get("error") if isinstance(data, dict) else None
            raise SourceNotFound(self.source, message or "profile not returned")

        try:
            payload = self._transform(data)
        except ValidationError as e:
            raise SourceNotFound(self.source, f"unexpected payload: {e.error_count()} errors") from e

        logger.info("Collected %s profile for %s", self.source, identifier)
        return payload

    def _param_value(self, identifier: str) -> str:
        return identifier

    def _transform(self, data: dict[str, Any]) -> Any:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# LinkedIn
# ---------------------------------------------------------------------------


class LinkedInCollector(ScrapingApiCollector):
    source = "linkedin"
    endpoint = "/v1/linkedin/profile"

    def _transform(self, data: dict[str, Any]) -> LinkedInSignal:
        experiences = []
        for item in data.get("experience") or []:
            member = item.get("member") or {}
            experiences.append({
                "role": item.get("title") or member.get("roleName"),
                "company": item.get("name") or item.get("companyName"),
                "start_date": item.get("startDate") or member.get("startDate"),
                "end_date": item.get("endDate") or member.get("endDate"),
                "description": item.get("description") or member.get("description"),
            })

        education = []
        for item in data.get("education") or []:
            member = item.get("member") or {}
            education.append({
                "school": item.get("schoolName") or item.get("name"),
                "degree": item.get("degreeName") or item.get("degree"),
                "field_of_study": item.get("fieldOfStudy"),
                "start_date": item.get("startDate") or member.get("startDate"),
                "end_date": item.get("endDate") or member.get("endDate"),
            })

        skills = []
        for skill in data.get("skills") or []:
            name = skill if isinstance(skill, str) else (skill.get("name") or skill.get("skillName"))
            if name:
                skills.append(name)

        certifications = []
        for cert in data.get("certifications") or []:
            name = cert.get("name") or cert.get("title") if isinstance(cert, dict) else cert
            if name:
                certifications.append(name)

        signal = LinkedInSignal.model_validate({
            "full_name": data.get("name"),
            "headline": data.get("headline"),
            "about": data.get("about") or data.get("summary"),
            "location": data.get("location"),
            "website": data.get("website"),
            "experiences": experiences,
            "education": education,
            "skills": skills,
            "certifications": certifications,
            "connections": _to_int(data.get("connections")) or None,
            "followers": _to_int(data.get("followers")) or None,
        })
        return sanitize_linkedin(signal)


# ---------------------------------------------------------------------------
# Instagram
# ---------------------------------------------------------------------------


class InstagramCollector(ScrapingApiCollector):
    source = "instagram"
    endpoint = "/v1/instagram/profile"
    param = "handle"

    def _param_value(self, identifier: str) -> str:
        handle = extract_username("instagram", identifier)
        if not handle:
            raise SourceNotFound(self.source, f"no Instagram handle in {identifier!r}")
        return handle

    def _transform(self, data: dict[str, Any]) -> InstagramSignal:
        user = (data.get("data") or {}).get("user")
        if not user:
            raise SourceNotFound(self.source, "profile not returned")

        # Feed posts live under the GraphQL timeline edges
        timeline = user.get("edge_owner_to_timeline_media") or {}
        posts = []
        for edge in timeline.get("edges") or []:
            node = edge.get("node") or {}
            captions = (node.get("edge_media_to_caption") or {}).get("edges") or []
            posts.append({
                "caption": captions[0]["node"].get("text") if captions else None,
                "likes": _to_int((node.get("edge_liked_by") or {}).get("count")),
                "comments": _to_int((node.get("edge_media_to_comment") or {}).get("count")),
                "posted_at": str(node["taken_at_timestamp"]) if node.get("taken_at_timestamp") else None,
                "url": f"https://www.instagram.com/p/{node['shortcode']}/" if node.get("shortcode") else None,
            })

        bio_links = [
            link.get("url") for link in user.get("bio_links") or [] if link.get("url")
        ]

        return InstagramSignal.model_validate({
            "username": user.get("username"),
            "full_name": user.get("full_name"),
            "bio": user.get("biography"),
            "followers": _to_int((user.get("edge_followed_by") or {}).get("count")),
            "following": _to_int((user.get("edge_follow") or {}).get("count")),
            "posts_count": _to_int(timeline.get("count")),
            "recent_posts": posts,
            "external_url": user.get("external_url"),
            "bio_links": bio_links,
            "verified": bool(user.get("is_verified")),
            "business_account": bool(user.get("is_business_account")),
        })


# ---------------------------------------------------------------------------
# Facebook
# ---------------------------------------------------------------------------


class FacebookCollector(ScrapingApiCollector):
    source = "facebook"
    endpoint = "/v1/facebook/profile"

    def _transform(self, data: dict[str, Any]) -> FacebookSignal:
        return FacebookSignal.model_validate({
            "name": data.get("name"),
            "bio": data.get("intro") or data.get("about") or data.get("bio"),
            "followers": _to_int(data.get("followerCount") or data.get("followers")),
            "likes": _to_int(data.get("likeCount") or data.get("likes")),
            "category": data.get("category"),
            "website": data.get("website"),
        })
