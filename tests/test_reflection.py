# =============================================================================
# Unit Tests — Reflection (Rubrics, Critique, Reflect Loop, Confidence)
# =============================================================================
#
# The critic's model client is an AsyncMock returning canned JSON; the
# reflect loop is driven by a fake critic with a scripted score sequence.
# No API keys required.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from profiler.errors import CritiqueEvaluationError
from profiler.reflection.confidence import ConfidenceCalculator, DataMetadata
from profiler.reflection.critique import CritiqueAgent, CritiqueResult, output_fingerprint
from profiler.reflection.reflect_loop import ReflectLoop
from profiler.reflection.rubrics import (
    CAREER_RUBRIC,
    FAMILY_RUBRIC,
    WEALTH_RUBRIC,
    CritiqueRubric,
    RubricFactor,
)
from profiler.services.cache import InMemoryTTLCache
from profiler.services.llm import LLMResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _llm_returning(content: str) -> AsyncMock:
    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(
        content=content, model="mock", input_tokens=10, output_tokens=5,
    )
    return llm


class ScriptedCritic:
    """Returns the next score from a fixed list on every call."""

    def __init__(self, scores: list[float], rubric: CritiqueRubric):
        self._scores = list(scores)
        self._rubric = rubric
        self.calls = 0

    async def critique(self, output, rubric, target_name=None, previous=None):
        score = self._scores[self.calls]
        self.calls += 1
        return CritiqueResult(
            score=score,
            passed=score >= rubric.threshold,
            suggestions=[f"improve after {score}"],
        )


class FailingCritic:
    async def critique(self, output, rubric, target_name=None, previous=None):
        raise CritiqueEvaluationError("model unavailable")


def _generator(outputs: list):
    """Async generate() yielding the given outputs in order."""
    seen_feedback = []

    async def generate(feedback):
        seen_feedback.append(feedback)
        item = outputs[len(seen_feedback) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    generate.feedback = seen_feedback
    return generate


# ---------------------------------------------------------------------------
# Test: Rubrics
# ---------------------------------------------------------------------------


class TestRubrics:
    def test_builtin_weights_sum_to_one(self):
        for rubric in (WEALTH_RUBRIC, FAMILY_RUBRIC, CAREER_RUBRIC):
            assert sum(f.weight for f in rubric.factors) == pytest.approx(1.0)

    def test_thresholds(self):
        assert WEALTH_RUBRIC.threshold == 8.0
        assert FAMILY_RUBRIC.threshold == 8.0
        assert CAREER_RUBRIC.threshold == 7.5

    def test_invalid_weights_rejected(self):
        with pytest.raises(ValueError, match="weights sum"):
            CritiqueRubric(
                name="Broken",
                factors=(RubricFactor("A", 0.5, "a"), RubricFactor("B", 0.2, "b")),
                threshold=7.0,
            )

    def test_describe_lists_factors(self):
        text = WEALTH_RUBRIC.describe()
        assert "Consistent Indicators (weight 40%)" in text


# ---------------------------------------------------------------------------
# Test: Critique Agent
# ---------------------------------------------------------------------------


class TestCritiqueAgent:
    def test_valid_critique(self):
        llm = _llm_returning(json.dumps({
            "score": 7.2,
            "issues": [{"factor": "Multiple Sources", "severity": "HIGH",
                        "description": "single source", "suggestion": "add one"}],
            "suggestions": ["cite a second source"],
            "reasoning": "ok",
        }))
        result = _run(CritiqueAgent(llm).critique({"a": 1}, WEALTH_RUBRIC))

        assert result.score == 7.2
        assert result.passed is False
        assert result.issues[0].severity == "high"
        assert result.suggestions == ["cite a second source"]

    def test_passed_is_computed_locally(self):
        llm = _llm_returning('{"score": 8.5, "passed": false}')
        result = _run(CritiqueAgent(llm).critique({"a": 1}, WEALTH_RUBRIC))
        assert result.passed is True

    def test_fenced_json_is_accepted(self):
        llm = _llm_returning('```json\n{"score": 9}\n```')
        result = _run(CritiqueAgent(llm).critique({"a": 1}, CAREER_RUBRIC))
        assert result.score == 9.0

    def test_missing_score_raises(self):
        llm = _llm_returning('{"issues": []}')
        with pytest.raises(CritiqueEvaluationError):
            _run(CritiqueAgent(llm).critique({"a": 1}, WEALTH_RUBRIC))

    def test_out_of_range_score_raises(self):
        llm = _llm_returning('{"score": 42}')
        with pytest.raises(CritiqueEvaluationError):
            _run(CritiqueAgent(llm).critique({"a": 1}, WEALTH_RUBRIC))

    def test_unparseable_reply_raises(self):
        llm = _llm_returning("I think it's fine.")
        with pytest.raises(CritiqueEvaluationError):
            _run(CritiqueAgent(llm).critique({"a": 1}, WEALTH_RUBRIC))

    def test_provider_error_raises(self):
        llm = AsyncMock()
        llm.complete.side_effect = RuntimeError("503")
        with pytest.raises(CritiqueEvaluationError):
            _run(CritiqueAgent(llm).critique({"a": 1}, WEALTH_RUBRIC))

    def test_cache_hit_skips_model(self):
        llm = _llm_returning('{"score": 6.0}')
        agent = CritiqueAgent(llm, cache=InMemoryTTLCache())

        first = _run(agent.critique({"a": 1}, WEALTH_RUBRIC))
        second = _run(agent.critique({"a": 1}, WEALTH_RUBRIC))

        assert llm.complete.await_count == 1
        assert first.score == second.score == 6.0

    def test_fingerprint_is_key_order_independent(self):
        assert output_fingerprint({"a": 1, "b": 2}) == output_fingerprint({"b": 2, "a": 1})
        assert output_fingerprint({"a": 1}) != output_fingerprint({"a": 2})


# ---------------------------------------------------------------------------
# Test: Reflect Loop
# ---------------------------------------------------------------------------


class TestReflectLoop:
    def test_diminishing_returns_returns_best(self):
        critic = ScriptedCritic([5.0, 6.0, 6.3], WEALTH_RUBRIC)
        generate = _generator([{"v": 1}, {"v": 2}, {"v": 3}])
        loop = ReflectLoop(critic, min_improvement=0.5)

        output, state = _run(loop.run(
            generate, WEALTH_RUBRIC, max_iterations=3, early_exit_score=9.0,
        ))

        assert state.iteration == 3
        assert state.exit_reason == "diminishing_returns"
        assert state.best_score == 6.3
        assert output == {"v": 3}

    def test_best_score_is_max_and_output_matches(self):
        critic = ScriptedCritic([6.0, 7.0, 5.0], WEALTH_RUBRIC)
        generate = _generator([{"v": 1}, {"v": 2}, {"v": 3}])
        loop = ReflectLoop(critic, min_improvement=0.5)

        output, state = _run(loop.run(
            generate, WEALTH_RUBRIC, max_iterations=3, early_exit_score=9.0,
        ))

        assert state.best_score == max(c.score for c in state.critiques)
        assert output == {"v": 2}

    def test_passes_at_threshold(self):
        critic = ScriptedCritic([8.0], WEALTH_RUBRIC)
        output, state = _run(ReflectLoop(critic).run(
            _generator([{"v": 1}]), WEALTH_RUBRIC, max_iterations=3, early_exit_score=9.5,
        ))
        assert state.exit_reason == "passed"
        assert output == {"v": 1}

    def test_early_exit(self):
        critic = ScriptedCritic([9.2], CAREER_RUBRIC)
        _, state = _run(ReflectLoop(critic).run(
            _generator([{"v": 1}]), CAREER_RUBRIC, max_iterations=3, early_exit_score=9.0,
        ))
        assert state.exit_reason == "early_exit"
        assert critic.calls == 1

    def test_budget_exhausted(self):
        critic = ScriptedCritic([4.0, 5.0], WEALTH_RUBRIC)
        _, state = _run(ReflectLoop(critic, min_improvement=0.5).run(
            _generator([{"v": 1}, {"v": 2}]), WEALTH_RUBRIC,
            max_iterations=2, early_exit_score=9.0,
        ))
        assert state.exit_reason == "budget_exhausted"
        assert state.best_score == 5.0

    def test_feedback_is_fed_back(self):
        critic = ScriptedCritic([4.0, 6.0], WEALTH_RUBRIC)
        generate = _generator([{"v": 1}, {"v": 2}])
        _run(ReflectLoop(critic).run(
            generate, WEALTH_RUBRIC, max_iterations=2, early_exit_score=9.0,
        ))
        assert generate.feedback == [None, ["improve after 4.0"]]

    def test_critique_failure_fails_open_at_threshold(self):
        output, state = _run(ReflectLoop(FailingCritic()).run(
            _generator([{"v": 1}]), WEALTH_RUBRIC, max_iterations=3, early_exit_score=9.0,
        ))
        assert output == {"v": 1}
        assert state.best_score == WEALTH_RUBRIC.threshold
        assert state.exit_reason == "passed"
        assert state.critiques[0].fail_open is True

    def test_generation_error_after_first_keeps_best(self):
        critic = ScriptedCritic([5.0], WEALTH_RUBRIC)
        output, state = _run(ReflectLoop(critic).run(
            _generator([{"v": 1}, RuntimeError("boom")]), WEALTH_RUBRIC,
            max_iterations=3, early_exit_score=9.0,
        ))
        assert output == {"v": 1}
        assert state.exit_reason == "generation_error"

    def test_generation_error_on_first_iteration_propagates(self):
        critic = ScriptedCritic([], WEALTH_RUBRIC)
        with pytest.raises(RuntimeError, match="boom"):
            _run(ReflectLoop(critic).run(
                _generator([RuntimeError("boom")]), WEALTH_RUBRIC, max_iterations=3,
            ))

    def test_repeated_output_stops(self):
        critic = ScriptedCritic([5.0, 7.0], WEALTH_RUBRIC)
        output, state = _run(ReflectLoop(critic).run(
            _generator([{"v": 1}, {"v": 1}]), WEALTH_RUBRIC,
            max_iterations=3, early_exit_score=9.0,
        ))
        assert state.exit_reason == "repeated_output"
        assert critic.calls == 1
        assert output == {"v": 1}


# ---------------------------------------------------------------------------
# Test: Confidence Calculator
# ---------------------------------------------------------------------------


class TestConfidenceCalculator:
    NOW = datetime(2026, 1, 1, tzinfo=UTC)

    def test_perfect_direct_fresh_three_sources(self):
        calc = ConfidenceCalculator(now=self.NOW)
        point = calc.calculate("CTO", DataMetadata(
            source="government_api",
            sources=["registry", "linkedin", "website"],
            timestamp=self.NOW,
            is_direct=True,
        ))
        assert point.confidence_score == 0.96
        assert point.breakdown.cross_validation == pytest.approx(0.9)

    def test_unknown_source_defaults_to_half(self):
        assert ConfidenceCalculator.score_source_reliability("carrier_pigeon") == 0.5

    def test_cross_validation_caps_at_one(self):
        assert ConfidenceCalculator.score_cross_validation([]) == 0.5
        assert ConfidenceCalculator.score_cross_validation(["a"]) == 0.5
        assert ConfidenceCalculator.score_cross_validation(["a", "a", "b"]) == pytest.approx(0.7)
        assert ConfidenceCalculator.score_cross_validation(list("abcdefg")) == 1.0

    def test_freshness_decays_with_floor(self):
        calc = ConfidenceCalculator(now=self.NOW)
        assert calc.score_freshness(self.NOW) == 1.0
        assert calc.score_freshness(self.NOW - timedelta(days=365 * 50)) == 0.1
        assert 0.1 < calc.score_freshness(self.NOW - timedelta(days=365 * 2)) < 1.0

    def test_inferred_scores_lower(self):
        calc = ConfidenceCalculator(now=self.NOW)
        meta = dict(source="linkedin_profile", sources=["linkedin"], timestamp=self.NOW)
        direct = calc.calculate("x", DataMetadata(**meta, is_direct=True))
        inferred = calc.calculate("x", DataMetadata(**meta, is_direct=False))
        assert inferred.confidence_score < direct.confidence_score

    def test_filter_and_sort(self):
        calc = ConfidenceCalculator(now=self.NOW)
        low = calc.calculate("a", DataMetadata(source="web_scraping", timestamp=self.NOW))
        high = calc.calculate("b", DataMetadata(
            source="government_api", sources=["x", "y"], timestamp=self.NOW,
        ))
        assert calc.sort_by_confidence([low, high]) == [high, low]
        assert calc.filter_by_confidence([low, high], 0.8) == [high]
        assert calc.average([]) == 0.0
