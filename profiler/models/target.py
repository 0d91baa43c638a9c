# =============================================================================
# Profiling Target — The Subject of a Run
# =============================================================================
#
# A target is created by the caller (API body, test fixture) and never
# mutated during a run. Every collector and agent reads from the same
# frozen instance, so concurrent tasks can share it safely.
#
# DESIGN DECISION: Consent is part of the target, not a side channel.
# The orchestrator refuses to start unless `consent` is set; the timestamp
# is carried along so the stored profile documents when it was granted.
# =============================================================================

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProfilingTarget(BaseModel):
    """Identity, consent and optional source identifiers for one subject."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    first_name: str = Field(..., min_length=1, max_length=200)
    last_name: str = Field(..., min_length=1, max_length=200)
    birth_date: date | None = None
    city: str | None = None

    # --- Contact fields (used for enrichment hints only) ---
    email: str | None = None
    phone: str | None = None

    # --- Source identifiers ---
    linkedin_url: str | None = None
    facebook_url: str | None = None
    instagram_url: str | None = None
    website_url: str | None = None

    # --- Consent ---
    consent: bool = False
    consent_at: datetime | None = None

    # Free text; URLs found here are collected as extra sources
    notes: str | None = None

    @field_validator(
        "city", "email", "phone", "linkedin_url", "facebook_url",
        "instagram_url", "website_url", "notes",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def describe(self) -> str:
        """Compact human-readable identity block for prompts."""
        lines = [f"Name: {self.full_name}"]
        if self.birth_date:
            lines.append(f"Birth date: {self.birth_date.isoformat()}")
        if self.city:
            lines.append(f"City: {self.city}")
        for label, value in (
            ("LinkedIn", self.linkedin_url),
            ("Instagram", self.instagram_url),
            ("Facebook", self.facebook_url),
            ("Website", self.website_url),
        ):
            if value:
                lines.append(f"{label}: {value}")
        if self.notes:
            lines.append(f"Notes: {self.notes}")
        return "\n".join(lines)
