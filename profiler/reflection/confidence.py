# =============================================================================
# Confidence Calculator — Multi-Factor Trust Score for a Data Point
# =============================================================================
#
# Scores how far a single piece of collected or inferred data can be
# trusted. Four factors, fixed weights:
#
#   ┌──────────────────────┬────────┬─────────────────────────────────────┐
#   │ Factor               │ Weight │ Rule                                │
#   ├──────────────────────┼────────┼─────────────────────────────────────┤
#   │ source reliability   │ 0.30   │ static table by source type, 0.5    │
#   │ cross validation     │ 0.40   │ min(1, 0.5 + 0.2 × (unique − 1))     │
#   │ freshness            │ 0.15   │ max(0.1, e^(−0.2 × age_years))       │
#   │ directness           │ 0.15   │ 1.0 observed, 0.6 inferred          │
#   └──────────────────────┴────────┴─────────────────────────────────────┘
#
# Final score is the weighted sum rounded to 2 decimals (0–1 scale).
# Cross-validation carries the largest weight: one independent source
# agreeing is worth more than any single source's reputation.
# =============================================================================

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

WEIGHTS: dict[str, float] = {
    "source_reliability": 0.3,
    "cross_validation": 0.4,
    "data_freshness": 0.15,
    "direct_vs_inferred": 0.15,
}

SOURCE_RELIABILITY: dict[str, float] = {
    # Official registries
    "government_api": 1.0,
    "infocamere_api": 1.0,
    "official_registry": 0.95,
    # Self-published, verified ownership
    "official_website": 0.8,
    "company_website": 0.8,
    # Professional network
    "linkedin_profile": 0.75,
    # Social networks
    "facebook_profile": 0.5,
    "instagram_profile": 0.5,
    "twitter_profile": 0.5,
    # Unverified
    "web_scraping": 0.4,
    "third_party_comment": 0.3,
    "user_generated_content": 0.3,
}

DEFAULT_RELIABILITY = 0.5

_SECONDS_PER_YEAR = 365 * 24 * 60 * 60
_FRESHNESS_DECAY = 0.2
_FRESHNESS_FLOOR = 0.1
_INFERRED_SCORE = 0.6


@dataclass
class DataMetadata:
    """Provenance of a data point."""

    source: str                                    # primary source type
    sources: list[str] = field(default_factory=list)  # all corroborating sources
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    is_direct: bool = True


@dataclass
class ConfidenceFactors:
    source_reliability: float
    cross_validation: float
    data_freshness: float
    direct_vs_inferred: float

    def as_dict(self) -> dict[str, float]:
        return {
            "source_reliability": self.source_reliability,
            "cross_validation": self.cross_validation,
            "data_freshness": self.data_freshness,
            "direct_vs_inferred": self.direct_vs_inferred,
        }


@dataclass
class EnrichedDataPoint:
    value: Any
    metadata: DataMetadata
    confidence_score: float
    breakdown: ConfidenceFactors


class ConfidenceCalculator:
    """Stateless; one instance can be shared across concurrent agents."""

    def __init__(self, now: datetime | None = None) -> None:
        # Fixed clock for deterministic tests; None means wall clock
        self._now = now

    def calculate(self, value: Any, metadata: DataMetadata) -> EnrichedDataPoint:
        factors = ConfidenceFactors(
            source_reliability=self.score_source_reliability(metadata.source),
            cross_validation=self.score_cross_validation(metadata.sources),
            data_freshness=self.score_freshness(metadata.timestamp),
            direct_vs_inferred=1.0 if metadata.is_direct else _INFERRED_SCORE,
        )
        score = sum(
            weight_value * WEIGHTS[name] for name, weight_value in factors.as_dict().items()
        )
        return EnrichedDataPoint(
            value=value,
            metadata=metadata,
            confidence_score=round(score, 2),
            breakdown=factors,
        )

    # --- Factors ---

    @staticmethod
    def score_source_reliability(source: str) -> float:
        return SOURCE_RELIABILITY.get(source.lower(), DEFAULT_RELIABILITY)

    @staticmethod
    def score_cross_validation(sources: list[str]) -> float:
        unique = len(set(sources))
        if unique == 0:
            return 0.5
        return min(1.0, 0.5 + (unique - 1) * 0.2)

    def score_freshness(self, timestamp: datetime) -> float:
        now = self._now or datetime.now(UTC)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        age_years = max(0.0, (now - timestamp).total_seconds() / _SECONDS_PER_YEAR)
        return max(_FRESHNESS_FLOOR, math.exp(-_FRESHNESS_DECAY * age_years))

    # --- Collections ---

    @staticmethod
    def average(points: list[EnrichedDataPoint]) -> float:
        if not points:
            return 0.0
        return round(sum(p.confidence_score for p in points) / len(points), 2)

    @staticmethod
    def filter_by_confidence(
        points: list[EnrichedDataPoint], min_confidence: float,
    ) -> list[EnrichedDataPoint]:
        return [p for p in points if p.confidence_score >= min_confidence]

    @staticmethod
    def sort_by_confidence(points: list[EnrichedDataPoint]) -> list[EnrichedDataPoint]:
        return sorted(points, key=lambda p: p.confidence_score, reverse=True)
