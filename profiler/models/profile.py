# =============================================================================
# Profile Schemas — Per-Agent Fragments and the Final Aggregate
# =============================================================================
#
# Each agent produces exactly one fragment. Fragments declare the handful
# of fields the engine itself reads (confidence, sources, and the key
# fields used by the executive summary); everything else the model returns
# is kept as extra data so new prompt fields never need a schema change.
#
# SENTINEL: A key field whose value is "undetermined" means the model had
# no evidence for it. The executive summary skips such sections.
#
# FRAGMENT MAP (agent id → Profile field):
#   family            → family
#   career            → career
#   education         → education
#   lifestyle         → lifestyle
#   wealth            → wealth
#   social            → social_graph
#   content           → content_analysis
#   authority_signals → authority_signals
#   work_model        → work_model
#   vision_goals      → vision_goals
#   needs_mapping     → needs_mapping
#   engagement        → engagement
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from profiler.models.signals import RawSignalBundle
from profiler.models.strategy import CompletenessAssessment, SearchStrategy
from profiler.models.target import ProfilingTarget

UNDETERMINED = "undetermined"


def is_determined(value: object) -> bool:
    """True when a key field carries real information."""
    if value is None:
        return False
    if isinstance(value, str):
        normalised = value.strip().lower().replace("_", " ")
        return bool(normalised) and normalised != UNDETERMINED
    return True


class _Section(BaseModel):
    model_config = ConfigDict(extra="allow")


# ---------------------------------------------------------------------------
# Fragment base
# ---------------------------------------------------------------------------


class ProfileFragment(_Section):
    """Common shape of every agent output (confidence is 0–100)."""

    confidence_score: float = 0.0
    sources: list[str] = Field(default_factory=list)

    @field_validator("confidence_score")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(100.0, float(value)))


# ---------------------------------------------------------------------------
# Fragments with key fields
# ---------------------------------------------------------------------------


class Residence(_Section):
    city: str | None = None
    area_type: str | None = None


class Household(_Section):
    spouse: dict | None = None
    children: list[dict] = Field(default_factory=list)


class FamilyProfile(ProfileFragment):
    household: Household | None = None
    residence: Residence | None = None


class CurrentPosition(_Section):
    role: str | None = None
    level: str | None = None
    company: str | None = None


class CareerProfile(ProfileFragment):
    current_position: CurrentPosition | None = None


class HighestDegree(_Section):
    level: str | None = None
    field_of_study: str | None = None


class EducationProfile(ProfileFragment):
    highest_degree: HighestDegree | None = None


class LifestyleProfile(ProfileFragment):
    lifestyle_type: str | None = None
    main_interests: list[str] = Field(default_factory=list)


class EconomicAssessment(_Section):
    bracket: str | None = None


class StandardOfLiving(_Section):
    description: str | None = None


class WealthProfile(ProfileFragment):
    economic_assessment: EconomicAssessment | None = None
    standard_of_living: StandardOfLiving | None = None


class SocialNetwork(_Section):
    size: str | None = None


class SocialGraphProfile(ProfileFragment):
    network: SocialNetwork | None = None
    key_connections: list[dict] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Fragments without engine-read fields
# ---------------------------------------------------------------------------


class ContentAnalysisProfile(ProfileFragment):
    main_topics: list[str] = Field(default_factory=list)


class AuthoritySignalsProfile(ProfileFragment):
    influence_level: str | None = None


class WorkModelProfile(ProfileFragment):
    work_mode: str | None = None


class VisionGoalsProfile(ProfileFragment):
    goals: list[str] = Field(default_factory=list)


class NeedsMappingProfile(ProfileFragment):
    primary_needs: list[str] = Field(default_factory=list)


class EngagementProfile(ProfileFragment):
    recommended_approach: str | None = None


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

AGENT_FIELDS: dict[str, str] = {
    "family": "family",
    "career": "career",
    "education": "education",
    "lifestyle": "lifestyle",
    "wealth": "wealth",
    "social": "social_graph",
    "content": "content_analysis",
    "authority_signals": "authority_signals",
    "work_model": "work_model",
    "vision_goals": "vision_goals",
    "needs_mapping": "needs_mapping",
    "engagement": "engagement",
}

TOTAL_FRAGMENTS = len(AGENT_FIELDS)


class AgentErrorRecord(BaseModel):
    agent: str
    message: str


class Profile(BaseModel):
    """Final aggregate of one profiling run."""

    target: ProfilingTarget

    family: FamilyProfile | None = None
    career: CareerProfile | None = None
    education: EducationProfile | None = None
    lifestyle: LifestyleProfile | None = None
    wealth: WealthProfile | None = None
    social_graph: SocialGraphProfile | None = None
    content_analysis: ContentAnalysisProfile | None = None
    authority_signals: AuthoritySignalsProfile | None = None
    work_model: WorkModelProfile | None = None
    vision_goals: VisionGoalsProfile | None = None
    needs_mapping: NeedsMappingProfile | None = None
    engagement: EngagementProfile | None = None

    agents_used: list[str] = Field(default_factory=list)
    errors: list[AgentErrorRecord] = Field(default_factory=list)
    overall_score: float = 0.0
    completeness: int = 0
    executive_summary: str = ""
    elapsed_ms: int = 0

    raw_signals: RawSignalBundle | None = None
    assessment: CompletenessAssessment | None = None
    strategy: SearchStrategy | None = None
    profiled_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def fragments(self) -> dict[str, ProfileFragment | None]:
        """Agent id → fragment (None where the agent produced nothing)."""
        return {
            agent_id: getattr(self, field_name)
            for agent_id, field_name in AGENT_FIELDS.items()
        }
