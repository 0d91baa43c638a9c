# =============================================================================
# Raw Signal Payloads — Typed Per-Source Data
# =============================================================================
#
# Each external source produces one typed payload. Adapters validate the
# upstream JSON into these models exactly once, at the collector boundary;
# downstream code (strategy selector, agents) checks for presence of a
# field instead of probing loosely-typed dicts.
#
# BUNDLE LIFECYCLE:
#   created empty ──▶ mutated by collector tasks ──▶ freeze() ──▶ read-only
#
# DESIGN DECISION: The bundle counts successes/failures itself.
# `record_success()` / `record_failure()` are the only mutators, so the
# counters can never drift from `sources_consulted` and `errors`.
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


def _now() -> datetime:
    return datetime.now(UTC)


class _Payload(BaseModel):
    # Upstream APIs add fields freely; keep the ones we know, ignore the rest
    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# LinkedIn
# ---------------------------------------------------------------------------


class LinkedInExperience(_Payload):
    role: str | None = None
    company: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    description: str | None = None


class LinkedInEducation(_Payload):
    school: str | None = None
    degree: str | None = None
    field_of_study: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class LinkedInSignal(_Payload):
    full_name: str | None = None
    headline: str | None = None
    about: str | None = None
    location: str | None = None
    website: str | None = None
    experiences: list[LinkedInExperience] = Field(default_factory=list)
    education: list[LinkedInEducation] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    connections: int | None = None
    followers: int | None = None

    @property
    def bio(self) -> str:
        return self.about or ""


# ---------------------------------------------------------------------------
# Instagram / Facebook
# ---------------------------------------------------------------------------


class InstagramPost(_Payload):
    caption: str | None = None
    likes: int = 0
    comments: int = 0
    posted_at: str | None = None
    url: str | None = None


class InstagramSignal(_Payload):
    username: str
    full_name: str | None = None
    bio: str | None = None
    followers: int = 0
    following: int = 0
    posts_count: int = 0
    recent_posts: list[InstagramPost] = Field(default_factory=list)
    external_url: str | None = None
    bio_links: list[str] = Field(default_factory=list)
    verified: bool = False
    business_account: bool = False


class FacebookSignal(_Payload):
    name: str | None = None
    bio: str | None = None
    followers: int = 0
    likes: int = 0
    category: str | None = None
    website: str | None = None


# ---------------------------------------------------------------------------
# Web content
# ---------------------------------------------------------------------------


class WebPageSignal(_Payload):
    url: str
    title: str = ""
    text_content: str = ""
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    author: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    emails: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)
    word_count: int = 0
    fetched_at: datetime = Field(default_factory=_now)


class SearchHit(_Payload):
    title: str = ""
    link: str = ""
    snippet: str = ""
    display_link: str = ""
    source: str = "other"


class PublicMentionsSignal(_Payload):
    target_name: str
    queries_executed: list[str] = Field(default_factory=list)
    results: list[SearchHit] = Field(default_factory=list)
    social_profiles: dict[str, str] = Field(default_factory=dict)
    mentions: dict[str, list[str]] = Field(default_factory=dict)
    searched_at: datetime = Field(default_factory=_now)

    @property
    def total_results(self) -> int:
        return len(self.results)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class CollectorErrorRecord(BaseModel):
    source: str
    message: str
    timestamp: datetime = Field(default_factory=_now)


class RawSignalBundle(BaseModel):
    """Everything the collector gathered for one run."""

    linkedin: LinkedInSignal | None = None
    instagram: InstagramSignal | None = None
    facebook: FacebookSignal | None = None
    website: WebPageSignal | None = None
    web_pages: list[WebPageSignal] = Field(default_factory=list)
    public_mentions: PublicMentionsSignal | None = None

    sources_consulted: list[str] = Field(default_factory=list)
    errors: list[CollectorErrorRecord] = Field(default_factory=list)
    successes: int = 0
    failures: int = 0
    elapsed_ms: int = 0

    _frozen: bool = PrivateAttr(default=False)

    # --- Mutators (collector only) ---

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("RawSignalBundle is frozen")

    def record_success(self, source: str, count: int = 1) -> None:
        self._check_mutable()
        self.successes += count
        if source not in self.sources_consulted:
            self.sources_consulted.append(source)

    def record_failure(self, source: str, message: str) -> None:
        self._check_mutable()
        self.failures += 1
        self.errors.append(CollectorErrorRecord(source=source, message=message))

    def freeze(self, elapsed_ms: int | None = None) -> RawSignalBundle:
        if elapsed_ms is not None:
            self.elapsed_ms = elapsed_ms
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # --- Readers ---

    def for_prompt(self, sources: tuple[str, ...] | None = None) -> dict[str, Any]:
        """
        JSON-ready view of the collected payloads for an agent prompt.

        `sources` restricts the view to the named slots (e.g. an agent that
        only reads LinkedIn data). Bookkeeping fields are left out.
        """
        slots = sources or (
            "linkedin", "instagram", "facebook", "website",
            "web_pages", "public_mentions",
        )
        view: dict[str, Any] = {}
        for slot in slots:
            value = getattr(self, slot)
            if value:
                if isinstance(value, list):
                    view[slot] = [v.model_dump(mode="json", exclude_none=True) for v in value]
                else:
                    view[slot] = value.model_dump(mode="json", exclude_none=True)
        return view
