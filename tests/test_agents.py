# =============================================================================
# Unit Tests — Profiling Agents
# =============================================================================
#
# ModelAgent and run_agent with a mock LLM provider. Checks prompt
# assembly, fragment validation, the confidence fallback and the reflect
# loop hook without requiring API keys.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from profiler.agents.base import AgentContext, AgentResult, run_agent
from profiler.agents.profilers import AGENT_SPECS, ModelAgent, build_agents
from profiler.errors import AgentExecutionError
from profiler.models.profile import AGENT_FIELDS, CareerProfile, CurrentPosition
from profiler.models.signals import LinkedInSignal, RawSignalBundle
from profiler.models.target import ProfilingTarget
from profiler.reflection.critique import CritiqueResult
from profiler.reflection.reflect_loop import ReflectLoop
from profiler.services.llm import LLMResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _response(payload) -> LLMResponse:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return LLMResponse(content=content, model="mock", input_tokens=100, output_tokens=50)


def _context(bundle: RawSignalBundle | None = None, previous: dict | None = None,
             enrichment_prompt: str = "") -> AgentContext:
    context = AgentContext(
        target=ProfilingTarget(first_name="Jane", last_name="Doe", city="Torino", consent=True),
        raw_signals=(bundle or RawSignalBundle()).freeze(),
        enrichment_prompt=enrichment_prompt,
    )
    return context.with_previous(previous or {})


class CountingCritic:
    def __init__(self, score: float):
        self.score = score
        self.calls = 0

    async def critique(self, output, rubric, target_name=None, previous=None):
        self.calls += 1
        return CritiqueResult(score=self.score, passed=self.score >= rubric.threshold)


# ---------------------------------------------------------------------------
# Test: Catalogue
# ---------------------------------------------------------------------------


class TestAgentCatalogue:
    def test_one_spec_per_fragment(self):
        assert set(AGENT_SPECS) == set(AGENT_FIELDS)

    def test_build_agents(self):
        agents = build_agents(AsyncMock())
        assert set(agents) == set(AGENT_FIELDS)
        assert all(agent.agent_id == agent_id for agent_id, agent in agents.items())

    def test_rubrics_only_on_analysis_agents(self):
        assert AGENT_SPECS["wealth"].rubric is not None
        assert AGENT_SPECS["engagement"].rubric is None

    def test_dependencies_point_backwards(self):
        # every dependency is produced by some agent
        for spec in AGENT_SPECS.values():
            assert set(spec.depends_on) <= set(AGENT_FIELDS)
            assert spec.agent_id not in spec.depends_on


# ---------------------------------------------------------------------------
# Test: ModelAgent
# ---------------------------------------------------------------------------


class TestModelAgent:
    def test_valid_output(self):
        llm = AsyncMock()
        llm.complete.return_value = _response({
            "current_position": {"role": "CTO", "level": "C-level", "company": "Acme"},
            "trajectory": "ascending",
            "confidence_score": 72,
            "sources": ["linkedin"],
        })
        agent = ModelAgent(AGENT_SPECS["career"], llm)

        output = _run(agent.analyze(_context()))

        assert isinstance(output.fragment, CareerProfile)
        assert output.fragment.current_position.company == "Acme"
        assert output.fragment.confidence_score == 72
        assert output.fragment.model_extra["trajectory"] == "ascending"
        assert output.tokens_used == 150

        kwargs = llm.complete.call_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 2500
        assert "Name: Jane Doe" in kwargs["messages"][0]["content"]
        assert '"undetermined"' in kwargs["system"]

    def test_prompt_includes_sources_dependencies_and_enrichment(self):
        llm = AsyncMock()
        llm.complete.return_value = _response({"confidence_score": 50})
        agent = ModelAgent(AGENT_SPECS["lifestyle"], llm)
        previous = {
            "career": CareerProfile(current_position=CurrentPosition(role="CTO")),
        }

        _run(agent.analyze(_context(
            previous=previous, enrichment_prompt="=== MISSING SOURCE DATA ===",
        )))

        prompt = llm.complete.call_args.kwargs["messages"][0]["content"]
        assert "(no source data collected)" in prompt
        assert "EARLIER ANALYSES" in prompt
        assert '"CTO"' in prompt
        assert "=== MISSING SOURCE DATA ===" in prompt

    def test_confidence_fallback_uses_calculator(self):
        llm = AsyncMock()
        llm.complete.return_value = _response({"work_mode": "hybrid"})
        agent = ModelAgent(AGENT_SPECS["work_model"], llm)

        fragment = _run(agent.analyze(_context())).fragment

        # no sources present: inferred, uncorroborated, fresh
        assert fragment.confidence_score == pytest.approx(59.0)
        assert set(fragment.model_extra["confidence_breakdown"]) == {
            "source_reliability", "cross_validation", "data_freshness", "direct_vs_inferred",
        }
        assert fragment.sources == list(AGENT_SPECS["work_model"].depends_on)

    def test_sources_default_to_present_signals(self):
        llm = AsyncMock()
        llm.complete.return_value = _response({"confidence_score": 80})
        bundle = RawSignalBundle(linkedin=LinkedInSignal(about="Engineer"))

        fragment = _run(ModelAgent(AGENT_SPECS["education"], llm).analyze(_context(bundle))).fragment

        assert fragment.sources == ["linkedin"]
        assert fragment.confidence_score == 80

    def test_invalid_json_raises_agent_error(self):
        llm = AsyncMock()
        llm.complete.return_value = _response("Sorry, I cannot help with that.")
        agent = ModelAgent(AGENT_SPECS["engagement"], llm)

        with pytest.raises(AgentExecutionError, match="invalid model output"):
            _run(agent.analyze(_context()))

    def test_reflect_loop_wraps_rubric_agents(self):
        llm = AsyncMock()
        llm.complete.return_value = _response({"confidence_score": 60})
        critic = CountingCritic(score=8.5)
        agent = ModelAgent(AGENT_SPECS["wealth"], llm, reflect_loop=ReflectLoop(critic))

        _run(agent.analyze(_context()))
        assert critic.calls == 1

    def test_no_loop_for_agents_without_rubric(self):
        llm = AsyncMock()
        llm.complete.return_value = _response({"confidence_score": 60})
        critic = CountingCritic(score=8.5)
        agent = ModelAgent(AGENT_SPECS["needs_mapping"], llm, reflect_loop=ReflectLoop(critic))

        _run(agent.analyze(_context()))
        assert critic.calls == 0


# ---------------------------------------------------------------------------
# Test: run_agent
# ---------------------------------------------------------------------------


class TestRunAgent:
    def test_success(self):
        llm = AsyncMock()
        llm.complete.return_value = _response({"confidence_score": 70, "sources": ["x"]})

        result = _run(run_agent(ModelAgent(AGENT_SPECS["content"], llm), _context()))

        assert result.success
        assert result.confidence == 70
        assert result.sources == ["x"]
        assert result.tokens_used == 150

    def test_exception_becomes_failed_result(self):
        llm = AsyncMock()
        llm.complete.side_effect = RuntimeError("provider down")

        result = _run(run_agent(ModelAgent(AGENT_SPECS["engagement"], llm), _context()))

        assert not result.success
        assert result.data is None
        assert "provider down" in result.error
        assert "engagement" in result.error

    def test_failed_result_cannot_carry_data(self):
        with pytest.raises(ValueError):
            AgentResult(agent_id="career", success=False, data=CareerProfile())
