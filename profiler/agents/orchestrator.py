# =============================================================================
# Profiling Orchestrator — Phased Agent Graph
# =============================================================================
#
# Runs one profiling job end to end: collect raw signals, pick a search
# strategy, run the twelve agents in dependency order, and assemble the
# final Profile with scores and an executive summary.
#
# GRAPH TOPOLOGY (LangGraph StateGraph, linear):
#
#   START ─▶ phase_0 ─▶ phase_1 ─▶ phase_2 ─▶ phase_3 ─▶ phase_4
#          collect    family     lifestyle  wealth     content
#          + strategy career                social
#                     education
#        ─▶ phase_4b ─▶ phase_5 ─▶ phase_6 ─▶ phase_7 ─▶ END
#           authority   work_model  needs     summary
#                       vision      engagement
#                                   (in order)
#
# FAILURE POLICY:
# - Phase 1 needs at least 2 of its 3 agents; otherwise PhaseQuorumFailure
#   aborts the run. This is the only quorum: later phases tolerate the
#   failure of every agent (error recorded, fragment left empty).
# - Each phase has a deadline. Agents still running when it fires are
#   cancelled and recorded as failed ("timed out").
# - Phases are barriers: phase N+1 starts only after every task of
#   phase N has settled, and sees phase N's fragments read-only.
#
# DESIGN DECISION: Graph compiled once per orchestrator.
# Nodes are bound methods (they need the injected collector and agents),
# so the graph is compiled in __init__ and reused across runs.
#
# DESIGN DECISION: Plain TypedDict state, no checkpointer.
# The state carries live objects (target, bundle, progress callback);
# nothing here is meant to be persisted mid-run.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from profiler.agents.base import Agent, AgentContext, AgentResult, run_agent
from profiler.agents.profilers import build_agents
from profiler.agents.strategy import AdaptiveStrategySelector
from profiler.collectors.gatherer import RawSignalCollector
from profiler.config import settings
from profiler.errors import AgentExecutionError, ConsentMissing, PhaseQuorumFailure
from profiler.models.profile import (
    AGENT_FIELDS,
    TOTAL_FRAGMENTS,
    AgentErrorRecord,
    Profile,
    ProfileFragment,
    is_determined,
)
from profiler.models.signals import RawSignalBundle
from profiler.models.strategy import CompletenessAssessment, SearchStrategy
from profiler.models.target import ProfilingTarget
from profiler.reflection.critique import CritiqueAgent
from profiler.services.cache import build_cache
from profiler.services.llm import get_critique_provider, get_llm_provider

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

PROFILE_IN_PROGRESS = "Profile in progress: data collection under way."


@dataclass(frozen=True)
class Phase:
    key: str
    number: str
    name: str
    agents: tuple[str, ...]
    parallel: bool
    progress: int

    @property
    def label(self) -> str:
        return f"Phase {self.number}: {self.name}"


PHASES: tuple[Phase, ...] = (
    Phase("phase_0", "0", "Data Collection", (), False, 15),
    Phase("phase_1", "1", "Base Research", ("family", "career", "education"), True, 25),
    Phase("phase_2", "2", "Lifestyle Analysis", ("lifestyle",), False, 40),
    Phase("phase_3", "3", "Wealth & Social Analysis", ("wealth", "social"), True, 50),
    Phase("phase_4", "4", "Content Deep Dive", ("content",), False, 60),
    Phase("phase_4b", "4b", "Authority Signals", ("authority_signals",), False, 70),
    Phase("phase_5", "5", "Work Model & Vision", ("work_model", "vision_goals"), True, 80),
    Phase("phase_6", "6", "Needs & Engagement", ("needs_mapping", "engagement"), False, 88),
    Phase("phase_7", "7", "Executive Summary", (), False, 95),
)

ESTIMATED_TIME_MS = 300_000
ESTIMATED_COST_USD = 0.50


# ---------------------------------------------------------------------------
# Graph State
# ---------------------------------------------------------------------------


class ProfilingState(TypedDict, total=False):
    # --- Input ---
    target: ProfilingTarget
    progress: ProgressCallback | None

    # --- Phase 0 ---
    raw_signals: RawSignalBundle
    assessment: CompletenessAssessment
    strategy: SearchStrategy
    enrichment_prompt: str

    # --- Agent phases (each node returns updated copies) ---
    results: dict[str, ProfileFragment]
    agent_results: list[AgentResult]
    errors: list[AgentErrorRecord]
    agents_used: list[str]

    # --- Phase 7 ---
    executive_summary: str


# ---------------------------------------------------------------------------
# Scoring & summary (pure functions)
# ---------------------------------------------------------------------------


def overall_score(fragments: Mapping[str, ProfileFragment | None]) -> float:
    """Mean confidence of the non-empty fragments (2 decimals), 0 when there are none."""
    scores = [f.confidence_score for f in fragments.values() if f is not None]
    if not scores:
        return 0.0
    return round(sum(scores) / len(scores), 2)


def completeness(fragments: Mapping[str, ProfileFragment | None]) -> int:
    present = sum(1 for f in fragments.values() if f is not None)
    return round(present / TOTAL_FRAGMENTS * 100)


def _family_section(family: Any) -> str | None:
    household = getattr(family, "household", None)
    if household is None:
        return None
    spouse = household.spouse or {}
    if is_determined(spouse.get("name")):
        status = "married with children" if household.children else "married"
    else:
        status = "single or marital status undetermined"

    residence = family.residence
    city = residence.city if residence and is_determined(residence.city) else None
    area = residence.area_type if residence and is_determined(residence.area_type) else None
    if city and area:
        where = f"lives in a {area} area in {city}"
    elif city:
        where = f"lives in {city}"
    elif area:
        where = f"lives in a {area} area"
    else:
        return f"FAMILY: {status}"
    return f"FAMILY: {status}, {where}"


def _career_section(career: Any) -> str | None:
    position = getattr(career, "current_position", None)
    if position is None or not is_determined(position.role):
        return None
    text = f"CAREER: {position.role}"
    if is_determined(position.level):
        text += f" ({position.level})"
    if is_determined(position.company):
        text += f" at {position.company}"
    return text


def _education_section(education: Any) -> str | None:
    degree = getattr(education, "highest_degree", None)
    if degree is None or not is_determined(degree.level):
        return None
    text = f"EDUCATION: {degree.level.replace('_', ' ')}"
    if is_determined(degree.field_of_study):
        text += f" in {degree.field_of_study}"
    return text


def _lifestyle_section(lifestyle: Any) -> str | None:
    if lifestyle is None or not is_determined(lifestyle.lifestyle_type):
        return None
    text = f"LIFESTYLE: {lifestyle.lifestyle_type}"
    interests = [i for i in lifestyle.main_interests if is_determined(i)][:3]
    if interests:
        text += f". Interests: {', '.join(interests)}"
    return text


def _wealth_section(wealth: Any) -> str | None:
    assessment = getattr(wealth, "economic_assessment", None)
    if assessment is None or not is_determined(assessment.bracket):
        return None
    text = f"WEALTH: {assessment.bracket.replace('_', '-').upper()}"
    standard = wealth.standard_of_living
    if standard is not None and is_determined(standard.description) \
            and standard.description.lower() != "not available":
        text += f". {standard.description.rstrip('.')}"
    return text


def _social_section(social: Any) -> str | None:
    network = getattr(social, "network", None)
    if network is None or not is_determined(network.size):
        return None
    text = f"SOCIAL: {network.size}"
    if social.key_connections:
        text += f" with {len(social.key_connections)} key connections"
    return text


def build_executive_summary(fragments: Mapping[str, ProfileFragment | None]) -> str:
    """
    Deterministic one-paragraph summary of the key fields.

    Sections whose key field is missing or "undetermined" are skipped;
    with nothing left, a fixed "profile in progress" sentence is returned.
    """
    builders = (
        ("family", _family_section),
        ("career", _career_section),
        ("education", _education_section),
        ("lifestyle", _lifestyle_section),
        ("wealth", _wealth_section),
        ("social", _social_section),
    )
    sections = []
    for agent_id, build in builders:
        fragment = fragments.get(agent_id)
        if fragment is None:
            continue
        section = build(fragment)
        if section:
            sections.append(section)

    if not sections:
        return PROFILE_IN_PROGRESS
    return ". ".join(sections) + "."


def orchestration_plan() -> dict[str, Any]:
    """Static description of the phases (preview / debugging)."""
    return {
        "phases": [
            {
                "phase_number": phase.number,
                "phase_name": phase.name,
                "agents": list(phase.agents),
                "parallel": phase.parallel,
            }
            for phase in PHASES
            if phase.agents
        ],
        "total_agents": TOTAL_FRAGMENTS,
        "estimated_time_ms": ESTIMATED_TIME_MS,
        "estimated_cost_usd": ESTIMATED_COST_USD,
    }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """Owns the compiled phase graph and its injected collaborators."""

    def __init__(
        self,
        collector: RawSignalCollector,
        agents: Mapping[str, Agent],
        selector: AdaptiveStrategySelector | None = None,
        phase_timeout_seconds: float | None = None,
        phase1_quorum: int | None = None,
    ) -> None:
        missing = set(AGENT_FIELDS) - set(agents)
        if missing:
            raise ValueError(f"Missing agents: {sorted(missing)}")
        self._collector = collector
        self._agents = dict(agents)
        self._selector = selector or AdaptiveStrategySelector()
        self._phase_timeout = phase_timeout_seconds or settings.phase_timeout_seconds
        self._quorum = phase1_quorum or settings.phase1_quorum
        self.graph = self._build_graph()

    def _build_graph(self):
        builder = StateGraph(ProfilingState)
        builder.add_node("phase_0", self._collect_node)
        for phase in PHASES[1:-1]:
            builder.add_node(phase.key, self._agent_node(phase))
        builder.add_node("phase_7", self._summary_node)

        builder.add_edge(START, PHASES[0].key)
        for current, following in zip(PHASES, PHASES[1:]):
            builder.add_edge(current.key, following.key)
        builder.add_edge(PHASES[-1].key, END)
        return builder.compile()

    # --- Public API ---

    async def profile_target(
        self,
        target: ProfilingTarget,
        progress: ProgressCallback | None = None,
    ) -> Profile:
        """
        Run the full pipeline for one consenting target.

        Raises:
            ConsentMissing: Before any work, if the target has not consented.
            PhaseQuorumFailure: If fewer than the quorum of Phase 1 agents succeed.
        """
        if not target.consent:
            raise ConsentMissing(target.id)

        start = time.monotonic()
        logger.info("Profiling %s (%s)", target.full_name, target.id)

        state: ProfilingState = await self.graph.ainvoke({
            "target": target,
            "progress": progress,
            "results": {},
            "agent_results": [],
            "errors": [],
            "agents_used": [],
        })

        results = state["results"]
        fragments = {agent_id: results.get(agent_id) for agent_id in AGENT_FIELDS}
        profile = Profile(
            target=target,
            **{AGENT_FIELDS[agent_id]: f for agent_id, f in fragments.items()},
            agents_used=state["agents_used"],
            errors=state["errors"],
            overall_score=overall_score(fragments),
            completeness=completeness(fragments),
            executive_summary=state["executive_summary"],
            elapsed_ms=int((time.monotonic() - start) * 1000),
            raw_signals=state.get("raw_signals"),
            assessment=state.get("assessment"),
            strategy=state.get("strategy"),
        )

        tokens = sum(r.tokens_used for r in state["agent_results"])
        logger.info(
            "Profiling complete for %s in %.1fs: %d/%d agents, score=%.1f, "
            "completeness=%d%%, errors=%d, tokens=%d",
            target.full_name, profile.elapsed_ms / 1000, len(profile.agents_used),
            TOTAL_FRAGMENTS, profile.overall_score, profile.completeness,
            len(profile.errors), tokens,
        )
        return profile

    # --- Nodes ---

    async def _collect_node(self, state: ProfilingState) -> dict:
        phase = PHASES[0]
        self._report(state, phase)
        target = state["target"]

        try:
            bundle = await self._collector.gather(target)
        except Exception as e:
            logger.exception("Signal collection failed for %s", target.id)
            bundle = RawSignalBundle()
            bundle.record_failure("collector", str(e))
            bundle.freeze()

        assessment = self._selector.assess(bundle)
        strategy = self._selector.select_strategy(assessment.level)
        prompt = self._selector.enrichment_prompt(assessment, target.email, target.phone)
        return {
            "raw_signals": bundle,
            "assessment": assessment,
            "strategy": strategy,
            "enrichment_prompt": prompt,
        }

    def _agent_node(self, phase: Phase):
        async def node(state: ProfilingState) -> dict:
            self._report(state, phase)
            logger.info("[%s] agents=%s parallel=%s", phase.label, phase.agents, phase.parallel)

            context = AgentContext(
                target=state["target"],
                raw_signals=state["raw_signals"],
                strategy=state.get("strategy"),
                assessment=state.get("assessment"),
                enrichment_prompt=state.get("enrichment_prompt", ""),
            )
            if phase.parallel:
                outcomes = await self._run_parallel(phase, context.with_previous(state["results"]))
            else:
                outcomes = await self._run_sequential(phase, context, dict(state["results"]))

            if phase.key == "phase_1":
                self._check_quorum(phase, outcomes)
            return self._merge(state, outcomes)

        node.__name__ = f"{phase.key}_node"
        return node

    async def _summary_node(self, state: ProfilingState) -> dict:
        self._report(state, PHASES[-1])
        return {"executive_summary": build_executive_summary(state["results"])}

    # --- Phase execution ---

    async def _run_parallel(self, phase: Phase, context: AgentContext) -> list[AgentResult]:
        tasks = {
            agent_id: asyncio.create_task(run_agent(self._agents[agent_id], context))
            for agent_id in phase.agents
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=self._phase_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes = []
        for agent_id, task in tasks.items():
            if task in done:
                outcomes.append(task.result())
            else:
                outcomes.append(self._timed_out(agent_id))
        return outcomes

    async def _run_sequential(
        self,
        phase: Phase,
        context: AgentContext,
        results: dict[str, ProfileFragment],
    ) -> list[AgentResult]:
        deadline = time.monotonic() + self._phase_timeout
        outcomes = []
        for agent_id in phase.agents:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                outcomes.append(self._timed_out(agent_id))
                continue
            try:
                # Later agents in the phase see earlier ones (engagement reads needs)
                outcome = await asyncio.wait_for(
                    run_agent(self._agents[agent_id], context.with_previous(results)),
                    timeout=remaining,
                )
            except TimeoutError:
                outcome = self._timed_out(agent_id)
            if outcome.success:
                results[agent_id] = outcome.data
            outcomes.append(outcome)
        return outcomes

    def _timed_out(self, agent_id: str) -> AgentResult:
        error = AgentExecutionError(agent_id, f"timed out after {self._phase_timeout:.0f}s")
        logger.warning("%s", error)
        return AgentResult.failed(agent_id, str(error))

    def _check_quorum(self, phase: Phase, outcomes: list[AgentResult]) -> None:
        succeeded = sum(1 for o in outcomes if o.success)
        if succeeded < self._quorum:
            logger.error(
                "[%s] quorum not met: %d/%d succeeded (%s)",
                phase.label, succeeded, len(outcomes),
                "; ".join(o.error or "" for o in outcomes if not o.success),
            )
            raise PhaseQuorumFailure(phase.label, succeeded, len(outcomes), self._quorum)

    @staticmethod
    def _merge(state: ProfilingState, outcomes: list[AgentResult]) -> dict:
        results = dict(state["results"])
        errors = list(state["errors"])
        used = list(state["agents_used"])
        for outcome in outcomes:
            if outcome.success:
                results[outcome.agent_id] = outcome.data
                used.append(outcome.agent_id)
            else:
                errors.append(AgentErrorRecord(
                    agent=outcome.agent_id, message=outcome.error or "Unknown error",
                ))
        return {
            "results": results,
            "errors": errors,
            "agents_used": used,
            "agent_results": [*state["agent_results"], *outcomes],
        }

    @staticmethod
    def _report(state: ProfilingState, phase: Phase) -> None:
        callback = state.get("progress")
        if callback is None:
            return
        try:
            callback(phase.progress, phase.label)
        except Exception as e:
            logger.warning("Progress callback failed at %s: %s", phase.label, e)


# ---------------------------------------------------------------------------
# Production wiring
# ---------------------------------------------------------------------------


@asynccontextmanager
async def open_orchestrator() -> AsyncIterator[Orchestrator]:
    """
    Orchestrator wired to the configured providers, sources and cache.

    The HTTP client is shared by every collector and closed on exit.
    """
    cache = build_cache(settings)
    critic = CritiqueAgent(get_critique_provider(), cache=cache)
    async with httpx.AsyncClient(timeout=settings.collector_timeout_seconds) as client:
        yield Orchestrator(
            collector=RawSignalCollector.from_settings(settings, client, cache),
            agents=build_agents(get_llm_provider(), critic),
        )


async def profile_target(
    target: ProfilingTarget,
    progress: ProgressCallback | None = None,
) -> Profile:
    """Entry point: profile one target with the production wiring."""
    async with open_orchestrator() as orchestrator:
        return await orchestrator.profile_target(target, progress=progress)
