# =============================================================================
# Profiling Agents — Twelve Model-Backed Specialists
# =============================================================================
#
# Each agent reads a slice of the raw signals (plus fragments from earlier
# phases), asks the model for one JSON fragment, and validates it into the
# agent's fragment schema. Agents with a rubric run inside the reflect
# loop; the rest generate once.
#
#   ┌───────────────────┬──────┬────────┬───────────┐
#   │ Agent             │ Temp │ Tokens │ Rubric    │
#   ├───────────────────┼──────┼────────┼───────────┤
#   │ family            │ 0.1  │ 2000   │ FAMILY    │
#   │ career            │ 0.1  │ 2500   │ CAREER    │
#   │ education         │ 0.1  │ 1500   │ EDUCATION │
#   │ lifestyle         │ 0.2  │ 3000   │ LIFESTYLE │
#   │ wealth            │ 0.1  │ 2500   │ WEALTH    │
#   │ social            │ 0.1  │ 2000   │ SOCIAL    │
#   │ content           │ 0.2  │ 3500   │ CONTENT   │
#   │ authority_signals │ 0.1  │ 1500   │ SOCIAL    │
#   │ work_model        │ 0.2  │ 2000   │ —         │
#   │ vision_goals      │ 0.3  │ 2500   │ —         │
#   │ needs_mapping     │ 0.2  │ 2500   │ —         │
#   │ engagement        │ 0.3  │ 3000   │ —         │
#   └───────────────────┴──────┴────────┴───────────┘
#
# DESIGN DECISION: One class, twelve specs.
# The agents differ only in data (prompt, inputs, schema, sampling
# parameters, rubric). An `AgentSpec` table plus one `ModelAgent` class
# keeps the calling convention in a single place.
#
# DESIGN DECISION: Confidence falls back to the calculator.
# When the model omits `confidence_score`, the fragment gets a score from
# the ConfidenceCalculator based on which sources the agent actually had,
# and the factor breakdown is attached as `confidence_breakdown`.
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from profiler.agents.base import AgentContext, AgentOutput
from profiler.errors import AgentExecutionError
from profiler.models.profile import (
    AuthoritySignalsProfile,
    CareerProfile,
    ContentAnalysisProfile,
    EducationProfile,
    EngagementProfile,
    FamilyProfile,
    LifestyleProfile,
    NeedsMappingProfile,
    ProfileFragment,
    SocialGraphProfile,
    VisionGoalsProfile,
    WealthProfile,
    WorkModelProfile,
)
from profiler.reflection import rubrics
from profiler.reflection.confidence import ConfidenceCalculator, DataMetadata
from profiler.reflection.critique import CritiqueAgent
from profiler.reflection.reflect_loop import ReflectLoop
from profiler.reflection.rubrics import CritiqueRubric
from profiler.services.llm import LLMProvider, parse_json_content

logger = logging.getLogger(__name__)

# Bundle slot → confidence source type
SOURCE_TYPES: dict[str, str] = {
    "linkedin": "linkedin_profile",
    "instagram": "instagram_profile",
    "facebook": "facebook_profile",
    "website": "official_website",
    "web_pages": "web_scraping",
    "public_mentions": "web_scraping",
}

_COMMON_RULES = """
Rules:
- Use only evidence present in the input. Never invent names, dates or figures.
- When a key field cannot be inferred, set it to "undetermined".
- Include "confidence_score" (0-100) reflecting how well the evidence supports
  the output, and "sources" listing the inputs you relied on.
- Respond with ONLY valid JSON (no markdown)."""


@dataclass(frozen=True)
class AgentSpec:
    agent_id: str
    name: str
    fragment: type[ProfileFragment]
    system_prompt: str
    schema_hint: str
    temperature: float
    max_tokens: int
    rubric: CritiqueRubric | None = None
    signals: tuple[str, ...] = ()       # bundle slots the agent reads
    depends_on: tuple[str, ...] = ()    # earlier fragments the agent reads


# ---------------------------------------------------------------------------
# Agent catalogue
# ---------------------------------------------------------------------------

AGENT_SPECS: dict[str, AgentSpec] = {
    spec.agent_id: spec
    for spec in (
        AgentSpec(
            agent_id="family",
            name="Family Investigator",
            fragment=FamilyProfile,
            system_prompt=(
                "You are an analyst reconstructing a person's family situation "
                "from public profiles: partner, children, household and where they live."
            ),
            schema_hint=(
                '{"household": {"spouse": {"name": str, "evidence": str} | null, '
                '"children": [{"description": str, "evidence": str}]}, '
                '"residence": {"city": str, "area_type": str}, '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.1,
            max_tokens=2000,
            rubric=rubrics.FAMILY_RUBRIC,
            signals=("linkedin", "instagram", "facebook", "public_mentions"),
        ),
        AgentSpec(
            agent_id="career",
            name="Career Analyzer",
            fragment=CareerProfile,
            system_prompt=(
                "You are a career analyst. Reconstruct the person's current position, "
                "seniority and career trajectory from professional profiles and web mentions."
            ),
            schema_hint=(
                '{"current_position": {"role": str, "level": str, "company": str}, '
                '"history": [{"role": str, "company": str, "period": str}], '
                '"trajectory": str, "confidence_score": number, "sources": [str]}'
            ),
            temperature=0.1,
            max_tokens=2500,
            rubric=rubrics.CAREER_RUBRIC,
            signals=("linkedin", "website", "web_pages", "public_mentions"),
        ),
        AgentSpec(
            agent_id="education",
            name="Education Profiler",
            fragment=EducationProfile,
            system_prompt=(
                "You are an education analyst. Identify the person's highest degree, "
                "field of study, institutions and certifications."
            ),
            schema_hint=(
                '{"highest_degree": {"level": str, "field_of_study": str}, '
                '"institutions": [str], "certifications": [str], '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.1,
            max_tokens=1500,
            rubric=rubrics.EDUCATION_RUBRIC,
            signals=("linkedin",),
        ),
        AgentSpec(
            agent_id="lifestyle",
            name="Lifestyle Analyzer",
            fragment=LifestyleProfile,
            system_prompt=(
                "You are a lifestyle analyst. Infer habits, interests, travel and "
                "consumption patterns from social content, consistent with the family "
                "and career context provided."
            ),
            schema_hint=(
                '{"lifestyle_type": str, "main_interests": [str], "habits": [str], '
                '"travel": str, "confidence_score": number, "sources": [str]}'
            ),
            temperature=0.2,
            max_tokens=3000,
            rubric=rubrics.LIFESTYLE_RUBRIC,
            signals=("instagram", "facebook", "web_pages"),
            depends_on=("family", "career"),
        ),
        AgentSpec(
            agent_id="wealth",
            name="Wealth Estimator",
            fragment=WealthProfile,
            system_prompt=(
                "You are a financial analyst. Estimate the person's economic bracket and "
                "standard of living from career, education, lifestyle and family context. "
                "Every estimate must cite the signal it rests on."
            ),
            schema_hint=(
                '{"economic_assessment": {"bracket": "low" | "medium" | "medium_high" | '
                '"high" | "very_high" | "undetermined", "estimated_income_range": str}, '
                '"standard_of_living": {"description": str}, "indicators": [str], '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.1,
            max_tokens=2500,
            rubric=rubrics.WEALTH_RUBRIC,
            signals=("linkedin", "instagram"),
            depends_on=("career", "education", "lifestyle", "family"),
        ),
        AgentSpec(
            agent_id="social",
            name="Social Graph Builder",
            fragment=SocialGraphProfile,
            system_prompt=(
                "You are a network analyst. Describe the size and shape of the person's "
                "social and professional network and its key connections."
            ),
            schema_hint=(
                '{"network": {"size": str}, "key_connections": [{"name": str, '
                '"relationship": str}], "communities": [str], '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.1,
            max_tokens=2000,
            rubric=rubrics.SOCIAL_RUBRIC,
            signals=("linkedin", "instagram", "facebook", "public_mentions"),
            depends_on=("family", "career"),
        ),
        AgentSpec(
            agent_id="content",
            name="Content Analyzer",
            fragment=ContentAnalysisProfile,
            system_prompt=(
                "You are a content analyst. Study what the person publishes: topics, "
                "tone, formats, frequency and audience reaction."
            ),
            schema_hint=(
                '{"main_topics": [str], "tone": str, "formats": [str], '
                '"posting_frequency": str, "engagement": str, '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.2,
            max_tokens=3500,
            rubric=rubrics.CONTENT_RUBRIC,
            signals=("instagram", "facebook", "website", "web_pages", "public_mentions"),
        ),
        AgentSpec(
            agent_id="authority_signals",
            name="Authority Signals",
            fragment=AuthoritySignalsProfile,
            system_prompt=(
                "You are a reputation analyst. Identify signals of authority and "
                "influence: awards, press, speaking, publications, follower reach."
            ),
            schema_hint=(
                '{"influence_level": "low" | "medium" | "high" | "undetermined", '
                '"awards": [str], "press_mentions": [str], "speaking": [str], '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.1,
            max_tokens=1500,
            rubric=rubrics.SOCIAL_RUBRIC,
            signals=("linkedin", "public_mentions", "web_pages"),
            depends_on=("career", "social", "content"),
        ),
        AgentSpec(
            agent_id="work_model",
            name="Work Model",
            fragment=WorkModelProfile,
            system_prompt=(
                "You are an organisational analyst. Describe how the person works: "
                "employment mode, decision style and working patterns."
            ),
            schema_hint=(
                '{"work_mode": str, "decision_style": str, "patterns": [str], '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.2,
            max_tokens=2000,
            signals=("linkedin", "website"),
            depends_on=("career", "education", "content"),
        ),
        AgentSpec(
            agent_id="vision_goals",
            name="Vision & Goals",
            fragment=VisionGoalsProfile,
            system_prompt=(
                "You are a strategy analyst. Infer the person's stated and implicit "
                "goals, values and long-term vision."
            ),
            schema_hint=(
                '{"goals": [str], "values": [str], "vision": str, '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.3,
            max_tokens=2500,
            signals=("linkedin", "instagram", "website"),
            depends_on=("career", "lifestyle", "content"),
        ),
        AgentSpec(
            agent_id="needs_mapping",
            name="Needs Mapping",
            fragment=NeedsMappingProfile,
            system_prompt=(
                "You are a client advisor. From the profile built so far, map the "
                "person's primary needs and pain points, ordered by priority."
            ),
            schema_hint=(
                '{"primary_needs": [str], "pain_points": [str], "priorities": [str], '
                '"confidence_score": number, "sources": [str]}'
            ),
            temperature=0.2,
            max_tokens=2500,
            depends_on=("family", "career", "wealth", "lifestyle", "work_model", "vision_goals"),
        ),
        AgentSpec(
            agent_id="engagement",
            name="Engagement Strategy",
            fragment=EngagementProfile,
            system_prompt=(
                "You are a relationship strategist. Recommend how to approach the "
                "person: channel, timing, topics and tone, grounded in their needs."
            ),
            schema_hint=(
                '{"recommended_approach": str, "channels": [str], "topics": [str], '
                '"avoid": [str], "confidence_score": number, "sources": [str]}'
            ),
            temperature=0.3,
            max_tokens=3000,
            depends_on=("needs_mapping", "content", "social", "authority_signals", "vision_goals"),
        ),
    )
}


# ---------------------------------------------------------------------------
# Model-backed agent
# ---------------------------------------------------------------------------


class ModelAgent:
    """Runs one `AgentSpec` against an injected model client."""

    def __init__(
        self,
        spec: AgentSpec,
        llm: LLMProvider,
        reflect_loop: ReflectLoop | None = None,
        confidence: ConfidenceCalculator | None = None,
    ) -> None:
        self.spec = spec
        self.agent_id = spec.agent_id
        self._llm = llm
        self._loop = reflect_loop
        self._confidence = confidence or ConfidenceCalculator()

    async def analyze(self, context: AgentContext) -> AgentOutput:
        tokens = 0
        user_prompt = self._user_prompt(context)

        async def generate(feedback: list[str] | None) -> ProfileFragment:
            nonlocal tokens
            content = user_prompt
            if feedback:
                content += "\n\nREVISION REQUESTED. Address these points:\n" + "\n".join(
                    f"- {item}" for item in feedback
                )
            response = await self._llm.complete(
                messages=[{"role": "user", "content": content}],
                system=self._system_prompt(),
                temperature=self.spec.temperature,
                max_tokens=self.spec.max_tokens,
            )
            tokens += response.total_tokens
            try:
                return self.spec.fragment.model_validate(parse_json_content(response.content))
            except (json.JSONDecodeError, ValueError, ValidationError) as e:
                raise AgentExecutionError(self.agent_id, f"invalid model output: {e}") from e

        if self.spec.rubric is not None and self._loop is not None:
            fragment, state = await self._loop.run(
                generate, self.spec.rubric, target_name=context.target.full_name,
            )
            logger.info(
                "[%s] reflect loop: %d iterations, score=%.1f (%s)",
                self.agent_id, state.iteration, state.final_score, state.exit_reason,
            )
        else:
            fragment = await generate(None)

        return AgentOutput(fragment=self._with_confidence(fragment, context), tokens_used=tokens)

    # --- Prompts ---

    def _system_prompt(self) -> str:
        return (
            f"{self.spec.system_prompt}\n\n"
            f"Output schema:\n{self.spec.schema_hint}\n{_COMMON_RULES}"
        )

    def _user_prompt(self, context: AgentContext) -> str:
        parts = [f"TARGET:\n{context.target.describe()}"]

        if self.spec.signals:
            view = context.raw_signals.for_prompt(self.spec.signals)
            parts.append(
                "SOURCE DATA:\n" + (
                    json.dumps(view, indent=2, ensure_ascii=False, default=str)
                    if view else "(no source data collected)"
                )
            )

        prior = {
            agent_id: context.previous[agent_id].model_dump(mode="json", exclude_none=True)
            for agent_id in self.spec.depends_on
            if agent_id in context.previous
        }
        if prior:
            parts.append(
                "EARLIER ANALYSES:\n" + json.dumps(prior, indent=2, ensure_ascii=False, default=str)
            )

        if context.strategy is not None:
            parts.append(
                f"SEARCH STRATEGY: mode={context.strategy.mode.value}, "
                f"priority={context.strategy.priority.value}. {context.strategy.reason}"
            )
        if context.enrichment_prompt:
            parts.append(context.enrichment_prompt)

        return "\n\n".join(parts)

    # --- Confidence ---

    def _with_confidence(self, fragment: ProfileFragment, context: AgentContext) -> ProfileFragment:
        present = [
            slot for slot in self.spec.signals
            if getattr(context.raw_signals, slot)
        ]
        updates: dict = {}
        if not fragment.sources:
            updates["sources"] = present or list(self.spec.depends_on)

        if "confidence_score" not in fragment.model_fields_set:
            source_types = [SOURCE_TYPES[slot] for slot in present]
            point = self._confidence.calculate(
                fragment.model_dump(mode="json"),
                DataMetadata(
                    source=source_types[0] if source_types else "inferred",
                    sources=source_types,
                    is_direct=bool(present),
                ),
            )
            updates["confidence_score"] = round(point.confidence_score * 100, 2)
            updates["confidence_breakdown"] = point.breakdown.as_dict()

        if not updates:
            return fragment
        return self.spec.fragment.model_validate({**fragment.model_dump(), **updates})


def build_agents(
    llm: LLMProvider,
    critic: CritiqueAgent | None = None,
    confidence: ConfidenceCalculator | None = None,
) -> dict[str, ModelAgent]:
    """All twelve agents sharing one model client (and optional critic)."""
    loop = ReflectLoop(critic) if critic is not None else None
    calculator = confidence or ConfidenceCalculator()
    return {
        agent_id: ModelAgent(spec, llm, reflect_loop=loop, confidence=calculator)
        for agent_id, spec in AGENT_SPECS.items()
    }
