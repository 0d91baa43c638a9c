# =============================================================================
# Completeness & Search Strategy Schemas
# =============================================================================
#
# Outputs of the adaptive strategy selector. Both are derived exactly once
# per run from the frozen raw signal bundle and then attached read-only to
# every agent context.
# =============================================================================

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class CompletenessLevel(str, enum.Enum):
    """Coarse data-richness verdict (step function of the 0–100 score)."""

    EMPTY = "empty"            # score <= 30
    SCARCE = "scarce"          # score <= 60
    SUFFICIENT = "sufficient"  # score <= 85
    RICH = "rich"              # score > 85


class SearchMode(str, enum.Enum):
    ON = "on"
    OFF = "off"
    AUTO = "auto"


class SearchPriority(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CompletenessAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    level: CompletenessLevel
    missing_fields: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class SearchStrategy(BaseModel):
    """How aggressively agents should ask for supplemental lookups."""

    model_config = ConfigDict(frozen=True)

    mode: SearchMode
    max_results: int
    priority: SearchPriority
    sources: tuple[str, ...] = ("web", "news", "x")
    return_citations: bool = True
    reason: str = ""
