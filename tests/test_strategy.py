# =============================================================================
# Unit Tests — Adaptive Strategy Selector
# =============================================================================
#
# Completeness scoring, level boundaries and the enrichment prompt.
# Pure functions over hand-built bundles; no network, no model calls.
# =============================================================================

from __future__ import annotations

from profiler.agents.strategy import AdaptiveStrategySelector, classify_score
from profiler.models.signals import (
    FacebookSignal,
    InstagramPost,
    InstagramSignal,
    LinkedInEducation,
    LinkedInExperience,
    LinkedInSignal,
    PublicMentionsSignal,
    RawSignalBundle,
    SearchHit,
)
from profiler.models.strategy import (
    CompletenessAssessment,
    CompletenessLevel,
    SearchMode,
    SearchPriority,
)


def _rich_bundle() -> RawSignalBundle:
    return RawSignalBundle(
        linkedin=LinkedInSignal(
            full_name="Jane Doe",
            about="x" * 600,
            experiences=[LinkedInExperience(role="CTO", company="Acme")],
            education=[LinkedInEducation(school="Politecnico")],
            skills=["Python"],
        ),
        instagram=InstagramSignal(
            username="janedoe",
            bio="Runner",
            followers=1200,
            recent_posts=[InstagramPost(caption="Marathon day")],
        ),
        facebook=FacebookSignal(name="Jane Doe", bio="Hello", likes=40),
        public_mentions=PublicMentionsSignal(
            target_name="Jane Doe",
            results=[SearchHit(title="Interview", link="https://news.example.com/a")],
        ),
    )


# ---------------------------------------------------------------------------
# Test: Level Classification
# ---------------------------------------------------------------------------


class TestClassifyScore:
    def test_representative_scores(self):
        assert classify_score(25) == CompletenessLevel.EMPTY
        assert classify_score(55) == CompletenessLevel.SCARCE
        assert classify_score(80) == CompletenessLevel.SUFFICIENT
        assert classify_score(90) == CompletenessLevel.RICH

    def test_boundaries_fall_in_lower_band(self):
        assert classify_score(30) == CompletenessLevel.EMPTY
        assert classify_score(60) == CompletenessLevel.SCARCE
        assert classify_score(85) == CompletenessLevel.SUFFICIENT

    def test_just_above_boundaries(self):
        assert classify_score(31) == CompletenessLevel.SCARCE
        assert classify_score(61) == CompletenessLevel.SUFFICIENT
        assert classify_score(86) == CompletenessLevel.RICH

    def test_extremes(self):
        assert classify_score(0) == CompletenessLevel.EMPTY
        assert classify_score(100) == CompletenessLevel.RICH


# ---------------------------------------------------------------------------
# Test: Completeness Assessment
# ---------------------------------------------------------------------------


class TestAssess:
    def setup_method(self):
        self.selector = AdaptiveStrategySelector()

    def test_empty_bundle(self):
        assessment = self.selector.assess(RawSignalBundle())
        assert assessment.score == 0
        assert assessment.level == CompletenessLevel.EMPTY
        assert assessment.missing_fields == [
            "linkedin_data", "instagram_data", "facebook_data", "google_search",
        ]
        assert len(assessment.suggestions) == 3

    def test_rich_bundle_is_clamped_to_100(self):
        assessment = self.selector.assess(_rich_bundle())
        assert assessment.score == 100
        assert assessment.level == CompletenessLevel.RICH
        assert assessment.missing_fields == []

    def test_linkedin_bio_length_tiers(self):
        for about, expected in (("x" * 600, 15), ("x" * 200, 10), ("short", 5)):
            bundle = RawSignalBundle(linkedin=LinkedInSignal(about=about))
            # the three other sources are absent and add nothing
            assert self.selector.assess(bundle).score == expected

    def test_linkedin_without_sections(self):
        assessment = self.selector.assess(RawSignalBundle(linkedin=LinkedInSignal()))
        assert assessment.score == 0
        for name in (
            "linkedin_bio_about", "linkedin_experiences",
            "linkedin_education", "linkedin_skills",
        ):
            assert name in assessment.missing_fields
        assert "linkedin_data" not in assessment.missing_fields

    def test_instagram_partial(self):
        bundle = RawSignalBundle(instagram=InstagramSignal(username="jd", followers=10))
        assessment = self.selector.assess(bundle)
        assert assessment.score == 10
        assert "instagram_bio" in assessment.missing_fields
        assert "instagram_posts" in assessment.missing_fields

    def test_mentions_without_results_count_as_missing(self):
        bundle = RawSignalBundle(public_mentions=PublicMentionsSignal(target_name="Jane Doe"))
        assessment = self.selector.assess(bundle)
        assert "google_search" in assessment.missing_fields

    def test_deterministic(self):
        bundle = _rich_bundle()
        assert self.selector.assess(bundle) == self.selector.assess(bundle)


# ---------------------------------------------------------------------------
# Test: Strategy Selection
# ---------------------------------------------------------------------------


class TestSelectStrategy:
    def setup_method(self):
        self.selector = AdaptiveStrategySelector()

    def test_empty_is_critical(self):
        strategy = self.selector.select_strategy(CompletenessLevel.EMPTY)
        assert strategy.mode == SearchMode.ON
        assert strategy.max_results == 30
        assert strategy.priority == SearchPriority.CRITICAL

    def test_scarce_is_high(self):
        strategy = self.selector.select_strategy(CompletenessLevel.SCARCE)
        assert strategy.mode == SearchMode.ON
        assert strategy.max_results == 20
        assert strategy.priority == SearchPriority.HIGH

    def test_sufficient_is_auto(self):
        strategy = self.selector.select_strategy(CompletenessLevel.SUFFICIENT)
        assert strategy.mode == SearchMode.AUTO
        assert strategy.max_results == 15
        assert strategy.priority == SearchPriority.MEDIUM

    def test_rich_is_low(self):
        strategy = self.selector.select_strategy(CompletenessLevel.RICH)
        assert strategy.mode == SearchMode.AUTO
        assert strategy.max_results == 10
        assert strategy.priority == SearchPriority.LOW

    def test_every_strategy_has_a_reason(self):
        for level in CompletenessLevel:
            assert self.selector.select_strategy(level).reason


# ---------------------------------------------------------------------------
# Test: Enrichment Prompt
# ---------------------------------------------------------------------------


class TestEnrichmentPrompt:
    def test_nothing_missing_no_contact(self):
        assessment = CompletenessAssessment(score=100, level=CompletenessLevel.RICH)
        assert AdaptiveStrategySelector.enrichment_prompt(assessment) == ""

    def test_lists_missing_fields_and_suggestions(self):
        assessment = AdaptiveStrategySelector().assess(RawSignalBundle())
        prompt = AdaptiveStrategySelector.enrichment_prompt(assessment)
        assert prompt.startswith("=== MISSING SOURCE DATA ===")
        assert "- linkedin_data" in prompt
        assert "- google_search" in prompt
        assert "Search instructions:" in prompt
        assert "Known contact details:" not in prompt

    def test_contact_details_alone_produce_prompt(self):
        assessment = CompletenessAssessment(score=100, level=CompletenessLevel.RICH)
        prompt = AdaptiveStrategySelector.enrichment_prompt(
            assessment, email="jane@example.com", phone="+39 333 1234567",
        )
        assert "- Email: jane@example.com" in prompt
        assert "- Phone: +39 333 1234567" in prompt
        assert "Contact-driven searches:" in prompt
        assert "These fields are absent" not in prompt
