# =============================================================================
# Adaptive Strategy Selector — How Much Supplemental Search Does a Run Need?
# =============================================================================
#
# Scores the frozen raw signal bundle for completeness (0–100), maps the
# score to a coarse level, and picks a search strategy for the agents:
#
#   ┌─────────────┬──────────┬─────────────┬──────────┐
#   │ Level       │ Mode     │ Max results │ Priority │
#   ├─────────────┼──────────┼─────────────┼──────────┤
#   │ EMPTY ≤30   │ on       │ 30          │ critical │
#   │ SCARCE ≤60  │ on       │ 20          │ high     │
#   │ SUFFICIENT  │ auto     │ 15          │ medium   │
#   │ RICH >85    │ auto     │ 10          │ low      │
#   └─────────────┴──────────┴─────────────┴──────────┘
#
# SCORING (additive, clamped to 100):
#   LinkedIn   bio >500 chars 15 | >100 10 | any 5, experiences 15,
#              education 10, skills 10
#   Instagram  followers 10, bio 10, recent posts 10
#   Facebook   bio 10, likes 10
#   Mentions   any search result 10
#
# DESIGN DECISION: Rule-based, no model call.
# Same reasoning as the old query classifier: a handful of presence
# checks is instant, free and deterministic, so the same bundle always
# yields the same strategy.
# =============================================================================

from __future__ import annotations

import logging

from profiler.models.signals import RawSignalBundle
from profiler.models.strategy import (
    CompletenessAssessment,
    CompletenessLevel,
    SearchMode,
    SearchPriority,
    SearchStrategy,
)

logger = logging.getLogger(__name__)


_STRATEGIES: dict[CompletenessLevel, SearchStrategy] = {
    CompletenessLevel.EMPTY: SearchStrategy(
        mode=SearchMode.ON,
        max_results=30,
        priority=SearchPriority.CRITICAL,
        reason="Critical: source data missing or very scarce. Web search is essential to fill gaps.",
    ),
    CompletenessLevel.SCARCE: SearchStrategy(
        mode=SearchMode.ON,
        max_results=20,
        priority=SearchPriority.HIGH,
        reason="High: source data partial. Web search needed for enrichment and cross-validation.",
    ),
    CompletenessLevel.SUFFICIENT: SearchStrategy(
        mode=SearchMode.AUTO,
        max_results=15,
        priority=SearchPriority.MEDIUM,
        reason="Medium: source data sufficient. Web search optional for context and validation.",
    ),
    CompletenessLevel.RICH: SearchStrategy(
        mode=SearchMode.AUTO,
        max_results=10,
        priority=SearchPriority.LOW,
        reason="Low: source data rich and complete. Web search for public mentions only.",
    ),
}

_CONTACT_SEARCHES = """
Contact-driven searches:
- Look for social profiles linked to the email (LinkedIn, Facebook, X, GitHub)
- Look for the email in articles, posts and public comments
- Look for the phone number in business listings and company websites
- Check professional directories and public registries"""

_SEARCH_INSTRUCTIONS = """
Search instructions:
1. Look for the missing information with focused queries
2. Use email/phone, when known, to find social profiles and public mentions
3. Check news, articles and public interviews
4. Cross-validate source data against independent web sources
5. Document contradictions with citations"""


def classify_score(score: int) -> CompletenessLevel:
    if score <= 30:
        return CompletenessLevel.EMPTY
    if score <= 60:
        return CompletenessLevel.SCARCE
    if score <= 85:
        return CompletenessLevel.SUFFICIENT
    return CompletenessLevel.RICH


class AdaptiveStrategySelector:
    """Stateless; `assess` then `select_strategy` once per run."""

    def assess(self, bundle: RawSignalBundle) -> CompletenessAssessment:
        score = 0
        missing: list[str] = []
        suggestions: list[str] = []

        # --- LinkedIn ---
        li = bundle.linkedin
        if li is not None:
            bio = li.bio
            if bio:
                if len(bio) > 500:
                    score += 15
                elif len(bio) > 100:
                    score += 10
                else:
                    score += 5
            else:
                missing.append("linkedin_bio_about")
                suggestions.append("LinkedIn bio/about missing: critical for career insights")
            if li.experiences:
                score += 15
            else:
                missing.append("linkedin_experiences")
            if li.education:
                score += 10
            else:
                missing.append("linkedin_education")
            if li.skills:
                score += 10
            else:
                missing.append("linkedin_skills")
        else:
            missing.append("linkedin_data")
            suggestions.append("LinkedIn profile essential: search the web for professional info")

        # --- Instagram ---
        ig = bundle.instagram
        if ig is not None:
            if ig.followers > 0:
                score += 10
            if ig.bio:
                score += 10
            else:
                missing.append("instagram_bio")
            if ig.recent_posts:
                score += 10
            else:
                missing.append("instagram_posts")
                suggestions.append("No Instagram posts: search for visual content and lifestyle insights")
        else:
            missing.append("instagram_data")
            suggestions.append("Instagram data missing: search for social presence")

        # --- Facebook ---
        fb = bundle.facebook
        if fb is not None:
            if fb.bio:
                score += 10
            if fb.likes > 0:
                score += 10
        else:
            missing.append("facebook_data")

        # --- Public mentions ---
        if bundle.public_mentions is not None and bundle.public_mentions.results:
            score += 10
        else:
            missing.append("google_search")
            suggestions.append("No public mentions: search for articles, news and interviews")

        score = max(0, min(100, score))
        assessment = CompletenessAssessment(
            score=score,
            level=classify_score(score),
            missing_fields=missing,
            suggestions=suggestions,
        )
        logger.info(
            "Data completeness: %s (%d%%), %d missing fields",
            assessment.level.value, score, len(missing),
        )
        return assessment

    def select_strategy(self, level: CompletenessLevel) -> SearchStrategy:
        strategy = _STRATEGIES[level]
        logger.info(
            "Search strategy: mode=%s max_results=%d priority=%s",
            strategy.mode.value, strategy.max_results, strategy.priority.value,
        )
        return strategy

    @staticmethod
    def enrichment_prompt(
        assessment: CompletenessAssessment,
        email: str | None = None,
        phone: str | None = None,
    ) -> str:
        """Supplementary instructions for agents, or "" when nothing is missing."""
        if not assessment.missing_fields and not email and not phone:
            return ""

        parts = ["=== MISSING SOURCE DATA ==="]
        if assessment.missing_fields:
            parts.append("These fields are absent or incomplete:")
            parts.extend(f"- {name}" for name in assessment.missing_fields)
        if assessment.suggestions:
            parts.append("\nUse web search for:")
            parts.extend(f"* {s}" for s in assessment.suggestions)

        if email or phone:
            parts.append("\nKnown contact details:")
            if email:
                parts.append(f"- Email: {email}")
            if phone:
                parts.append(f"- Phone: {phone}")
            parts.append(_CONTACT_SEARCHES)

        parts.append(_SEARCH_INSTRUCTIONS)
        return "\n".join(parts)
