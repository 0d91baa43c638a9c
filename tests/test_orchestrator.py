# =============================================================================
# Unit Tests — Profiling Orchestrator
# =============================================================================
#
# Runs the real LangGraph phase graph with fake agents (a scripted
# `analyze`) and a fake collector, so quorum, deadlines, phase ordering
# and scoring are exercised without any model or network call.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from profiler.agents.base import AgentOutput
from profiler.agents.orchestrator import (
    PHASES,
    PROFILE_IN_PROGRESS,
    Orchestrator,
    build_executive_summary,
    completeness,
    orchestration_plan,
    overall_score,
)
from profiler.agents.profilers import AGENT_SPECS
from profiler.errors import ConsentMissing, PhaseQuorumFailure
from profiler.models.job import JobStatus
from profiler.models.profile import (
    AGENT_FIELDS,
    CareerProfile,
    CurrentPosition,
    EconomicAssessment,
    FamilyProfile,
    Household,
    LifestyleProfile,
    ProfileFragment,
    Residence,
    StandardOfLiving,
    WealthProfile,
)
from profiler.models.signals import RawSignalBundle
from profiler.models.strategy import CompletenessLevel
from profiler.models.target import ProfilingTarget
from profiler.services.job_queue import InMemoryJobStore, JobQueue, run_job


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _target(consent: bool = True) -> ProfilingTarget:
    return ProfilingTarget(first_name="Jane", last_name="Doe", city="Milano", consent=consent)


class FakeCollector:
    def __init__(self, error: Exception | None = None):
        self.calls = 0
        self._error = error

    async def gather(self, target):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return RawSignalBundle().freeze(elapsed_ms=5)


class FakeAgent:
    """Returns a fragment of the agent's own type, or fails on demand."""

    def __init__(self, agent_id: str, confidence: float = 80.0,
                 error: Exception | None = None, delay: float = 0.0):
        self.agent_id = agent_id
        self._confidence = confidence
        self._error = error
        self._delay = delay
        self.calls = 0
        self.seen_previous: list[str] = []

    async def analyze(self, context):
        self.calls += 1
        self.seen_previous = sorted(context.previous)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        fragment = AGENT_SPECS[self.agent_id].fragment(
            confidence_score=self._confidence, sources=["test"],
        )
        return AgentOutput(fragment=fragment, tokens_used=10)


def _agents(**overrides) -> dict[str, FakeAgent]:
    agents = {agent_id: FakeAgent(agent_id) for agent_id in AGENT_FIELDS}
    agents.update(overrides)
    return agents


# ---------------------------------------------------------------------------
# Test: Scoring
# ---------------------------------------------------------------------------


class TestScoring:
    def test_overall_score_no_fragments(self):
        assert overall_score({}) == 0.0
        assert overall_score({"family": None, "career": None}) == 0.0

    def test_overall_score_single_fragment(self):
        assert overall_score({"family": ProfileFragment(confidence_score=72.5)}) == 72.5

    def test_overall_score_is_mean_of_present(self):
        fragments = {
            "family": ProfileFragment(confidence_score=80),
            "career": ProfileFragment(confidence_score=70),
            "education": ProfileFragment(confidence_score=65),
            "wealth": None,
        }
        assert overall_score(fragments) == pytest.approx(71.67)

    def test_confidence_is_clamped(self):
        assert ProfileFragment(confidence_score=140).confidence_score == 100.0
        assert ProfileFragment(confidence_score=-3).confidence_score == 0.0

    def test_completeness(self):
        fragments = {agent_id: ProfileFragment() for agent_id in ("family", "career", "education")}
        assert completeness(fragments) == 25
        assert completeness({}) == 0


# ---------------------------------------------------------------------------
# Test: Executive Summary
# ---------------------------------------------------------------------------


class TestExecutiveSummary:
    def test_fallback_when_nothing_determined(self):
        assert build_executive_summary({}) == PROFILE_IN_PROGRESS

    def test_undetermined_sections_are_skipped(self):
        fragments = {
            "career": CareerProfile(current_position=CurrentPosition(role="undetermined")),
            "lifestyle": LifestyleProfile(lifestyle_type="Undetermined"),
        }
        assert build_executive_summary(fragments) == PROFILE_IN_PROGRESS

    def test_family_and_career(self):
        fragments = {
            "family": FamilyProfile(
                household=Household(spouse={"name": "Marco"}, children=[{"name": "Luca"}]),
                residence=Residence(city="Milano", area_type="urban"),
            ),
            "career": CareerProfile(
                current_position=CurrentPosition(role="CTO", level="C-level", company="Acme"),
            ),
        }
        assert build_executive_summary(fragments) == (
            "FAMILY: married with children, lives in a urban area in Milano. "
            "CAREER: CTO (C-level) at Acme."
        )

    def test_family_without_residence(self):
        fragments = {"family": FamilyProfile(household=Household(spouse={"name": "undetermined"}))}
        assert build_executive_summary(fragments) == (
            "FAMILY: single or marital status undetermined."
        )

    def test_wealth_section(self):
        fragments = {
            "wealth": WealthProfile(
                economic_assessment=EconomicAssessment(bracket="upper_middle"),
                standard_of_living=StandardOfLiving(description="Comfortable urban lifestyle."),
            ),
        }
        assert build_executive_summary(fragments) == (
            "WEALTH: UPPER-MIDDLE. Comfortable urban lifestyle."
        )


# ---------------------------------------------------------------------------
# Test: Plan
# ---------------------------------------------------------------------------


class TestOrchestrationPlan:
    def test_covers_every_agent_once(self):
        plan = orchestration_plan()
        agents = [a for phase in plan["phases"] for a in phase["agents"]]
        assert sorted(agents) == sorted(AGENT_FIELDS)
        assert plan["total_agents"] == 12

    def test_phase_order(self):
        numbers = [p["phase_number"] for p in orchestration_plan()["phases"]]
        assert numbers == ["1", "2", "3", "4", "4b", "5", "6"]

    def test_needs_and_engagement_are_sequential(self):
        phase6 = orchestration_plan()["phases"][-1]
        assert phase6["agents"] == ["needs_mapping", "engagement"]
        assert phase6["parallel"] is False


# ---------------------------------------------------------------------------
# Test: Full Runs
# ---------------------------------------------------------------------------


class TestOrchestratorRun:
    def test_requires_all_agents(self):
        agents = _agents()
        del agents["engagement"]
        with pytest.raises(ValueError, match="engagement"):
            Orchestrator(FakeCollector(), agents)

    def test_consent_missing_before_any_work(self):
        collector = FakeCollector()
        orchestrator = Orchestrator(collector, _agents())
        with pytest.raises(ConsentMissing):
            _run(orchestrator.profile_target(_target(consent=False)))
        assert collector.calls == 0

    def test_happy_path(self):
        progress = []
        orchestrator = Orchestrator(FakeCollector(), _agents())

        profile = _run(orchestrator.profile_target(
            _target(), progress=lambda p, phase: progress.append((p, phase)),
        ))

        assert profile.completeness == 100
        assert profile.overall_score == 80.0
        assert sorted(profile.agents_used) == sorted(AGENT_FIELDS)
        assert profile.errors == []
        assert profile.social_graph is not None
        assert profile.assessment.level == CompletenessLevel.EMPTY
        assert profile.executive_summary == PROFILE_IN_PROGRESS
        assert [p for p, _ in progress] == [phase.progress for phase in PHASES]
        assert progress[0][1] == "Phase 0: Data Collection"

    def test_phases_see_only_earlier_results(self):
        agents = _agents()
        _run(Orchestrator(FakeCollector(), agents).profile_target(_target()))

        assert agents["family"].seen_previous == []
        assert agents["lifestyle"].seen_previous == ["career", "education", "family"]
        # parallel siblings never see each other
        assert "social" not in agents["wealth"].seen_previous
        # sequential phase: engagement sees needs_mapping
        assert "needs_mapping" in agents["engagement"].seen_previous
        assert "engagement" not in agents["needs_mapping"].seen_previous

    def test_single_phase1_failure_continues(self):
        agents = _agents(family=FakeAgent("family", error=RuntimeError("no data")))
        profile = _run(Orchestrator(FakeCollector(), agents).profile_target(_target()))

        assert profile.family is None
        assert profile.career is not None
        assert [e.agent for e in profile.errors] == ["family"]
        assert "no data" in profile.errors[0].message
        assert profile.completeness == round(11 / 12 * 100)

    def test_phase1_quorum_failure_aborts(self):
        agents = _agents(
            career=FakeAgent("career", error=RuntimeError("down")),
            education=FakeAgent("education", error=RuntimeError("down")),
        )
        with pytest.raises(PhaseQuorumFailure) as excinfo:
            _run(Orchestrator(FakeCollector(), agents).profile_target(_target()))

        assert excinfo.value.succeeded == 1
        assert excinfo.value.required == 2
        assert agents["lifestyle"].calls == 0

    def test_later_phase_failures_never_abort(self):
        agents = _agents(
            wealth=FakeAgent("wealth", error=RuntimeError("x")),
            social=FakeAgent("social", error=RuntimeError("x")),
        )
        profile = _run(Orchestrator(FakeCollector(), agents).profile_target(_target()))
        assert profile.wealth is None and profile.social_graph is None
        assert profile.engagement is not None

    def test_phase_deadline_cancels_slow_agent(self):
        agents = _agents(wealth=FakeAgent("wealth", delay=5.0))
        orchestrator = Orchestrator(FakeCollector(), agents, phase_timeout_seconds=0.2)

        profile = _run(orchestrator.profile_target(_target()))

        assert profile.wealth is None
        assert profile.social_graph is not None
        wealth_errors = [e for e in profile.errors if e.agent == "wealth"]
        assert "timed out" in wealth_errors[0].message

    def test_collector_failure_yields_empty_bundle(self):
        orchestrator = Orchestrator(FakeCollector(error=RuntimeError("offline")), _agents())
        profile = _run(orchestrator.profile_target(_target()))

        assert profile.raw_signals.failures == 1
        assert profile.raw_signals.frozen
        assert profile.completeness == 100

    def test_progress_callback_errors_are_ignored(self):
        def broken(progress, phase):
            raise RuntimeError("ui gone")

        profile = _run(Orchestrator(FakeCollector(), _agents()).profile_target(
            _target(), progress=broken,
        ))
        assert profile.completeness == 100


# ---------------------------------------------------------------------------
# Test: Orchestrator + Job Queue
# ---------------------------------------------------------------------------


class TestRunJob:
    def test_quorum_failure_marks_job_failed(self):
        queue = JobQueue(InMemoryJobStore())
        target = _target()
        job_id = queue.create(target)
        agents = _agents(
            career=FakeAgent("career", error=RuntimeError("down")),
            education=FakeAgent("education", error=RuntimeError("down")),
        )

        result = _run(run_job(queue, Orchestrator(FakeCollector(), agents), job_id, target))

        job = queue.get(job_id)
        assert result is None
        assert job.status == JobStatus.FAILED
        assert "Phase 1" in job.error
        assert job.progress == 0

    def test_success_marks_job_completed_with_progress(self):
        queue = JobQueue(InMemoryJobStore())
        target = _target()
        job_id = queue.create(target)

        profile = _run(run_job(queue, Orchestrator(FakeCollector(), _agents()), job_id, target))

        job = queue.get(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.result["overall_score"] == profile.overall_score
        assert queue.get(job_id) == job
