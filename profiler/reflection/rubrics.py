# =============================================================================
# Critique Rubrics — Named, Weighted Quality Policies
# =============================================================================
#
# A rubric lists the factors a critic scores (weights sum to 1.0) and the
# minimum weighted score (0–10) an output needs to pass. Rubrics are static
# configuration; agents reference them by constant.
#
# THRESHOLDS:
#   WEALTH, FAMILY              8.0  (estimates with the most inference)
#   CAREER, EDUCATION, ...      7.5
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RubricFactor:
    name: str
    weight: float
    description: str


@dataclass(frozen=True)
class CritiqueRubric:
    name: str
    factors: tuple[RubricFactor, ...]
    threshold: float

    def __post_init__(self) -> None:
        total = sum(f.weight for f in self.factors)
        if abs(total - 1.0) > 1e-6:
            raise ValueError(
                f"Rubric '{self.name}' weights sum to {total:.3f}, expected 1.0"
            )
        if not 0.0 <= self.threshold <= 10.0:
            raise ValueError(f"Rubric '{self.name}' threshold must be within 0–10")

    def describe(self) -> str:
        """Factor list for the critic's system prompt."""
        return "\n".join(
            f"- {f.name} (weight {f.weight:.0%}): {f.description}"
            for f in self.factors
        )


WEALTH_RUBRIC = CritiqueRubric(
    name="Wealth Assessment",
    factors=(
        RubricFactor(
            "Consistent Indicators", 0.4,
            "Wealth indicators (role, seniority, lifestyle, location) agree with each other",
        ),
        RubricFactor(
            "Multiple Sources", 0.3,
            "Estimates rest on more than one independent source",
        ),
        RubricFactor(
            "Estimate Logic", 0.3,
            "Income and asset ranges follow from the evidence, not from guesses",
        ),
    ),
    threshold=8.0,
)

FAMILY_RUBRIC = CritiqueRubric(
    name="Family Profile",
    factors=(
        RubricFactor(
            "Family Consistency", 0.4,
            "Household members, ages and marital status do not contradict each other",
        ),
        RubricFactor(
            "Verified Residence", 0.3,
            "Residence is supported by profile location or public sources",
        ),
        RubricFactor(
            "Verified Relationships", 0.3,
            "Relationships are stated or tagged publicly, not assumed",
        ),
    ),
    threshold=8.0,
)

CAREER_RUBRIC = CritiqueRubric(
    name="Career Profile",
    factors=(
        RubricFactor(
            "Logical Timeline", 0.4,
            "Positions form a plausible chronology without overlaps or gaps left unexplained",
        ),
        RubricFactor(
            "Consistent Seniority", 0.3,
            "Stated level matches titles, tenure and company size",
        ),
        RubricFactor(
            "Verified Skills", 0.3,
            "Skills are backed by listed experience or endorsements",
        ),
    ),
    threshold=7.5,
)

EDUCATION_RUBRIC = CritiqueRubric(
    name="Education Profile",
    factors=(
        RubricFactor(
            "Verified Degrees", 0.5,
            "Degrees and institutions appear in the collected data",
        ),
        RubricFactor(
            "Coherent Path", 0.3,
            "Education path fits the career history and dates",
        ),
        RubricFactor(
            "Reliable Sources", 0.2,
            "Claims cite professional-network or institutional sources",
        ),
    ),
    threshold=7.5,
)

LIFESTYLE_RUBRIC = CritiqueRubric(
    name="Lifestyle Analysis",
    factors=(
        RubricFactor(
            "Behavioural Patterns", 0.4,
            "Recurring activities are identified from several posts, not one",
        ),
        RubricFactor(
            "Lifestyle Coherence", 0.3,
            "Lifestyle type agrees with career, location and interests",
        ),
        RubricFactor(
            "Social Media Evidence", 0.3,
            "Conclusions reference concrete social content",
        ),
    ),
    threshold=7.5,
)

SOCIAL_RUBRIC = CritiqueRubric(
    name="Social Graph",
    factors=(
        RubricFactor(
            "Verified Connections", 0.4,
            "Key connections are visible in the collected data",
        ),
        RubricFactor(
            "Accurate Metrics", 0.3,
            "Follower and connection counts match the raw signals",
        ),
        RubricFactor(
            "Relevant Groups", 0.3,
            "Communities and groups are relevant to the target",
        ),
    ),
    threshold=7.5,
)

CONTENT_RUBRIC = CritiqueRubric(
    name="Content Analysis",
    factors=(
        RubricFactor(
            "Supported Themes", 0.4,
            "Each theme is supported by quoted or referenced content",
        ),
        RubricFactor(
            "Sentiment Accuracy", 0.3,
            "Tone and sentiment match the actual posts",
        ),
        RubricFactor(
            "Coherent Values", 0.3,
            "Inferred values are consistent across content",
        ),
    ),
    threshold=7.5,
)
