# =============================================================================
# Agent Interface — Context In, Result Out
# =============================================================================
#
# Every profiling agent is anything with an `agent_id` and an async
# `analyze(context)` returning a fragment. Agents do not inherit from a
# base class; the model client, critic and rubric are injected into the
# concrete implementation (see profilers.py).
#
# DATA FLOW:
#   Orchestrator ──AgentContext──▶ run_agent(agent) ──▶ AgentResult
#                                       │
#                                       └─ exceptions become
#                                          AgentResult.failed(...)
#
# DESIGN DECISION: Prior results are a read-only mapping.
# `AgentContext.previous` is a MappingProxyType over the fragments from
# earlier phases, so an agent can read (say) the career fragment but can
# never mutate another agent's slot.
#
# INVARIANT: `success is False` implies `data is None`. A failed result
# never carries a partial fragment.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol

from profiler.errors import AgentExecutionError
from profiler.models.profile import ProfileFragment
from profiler.models.signals import RawSignalBundle
from profiler.models.strategy import CompletenessAssessment, SearchStrategy
from profiler.models.target import ProfilingTarget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentContext:
    target: ProfilingTarget
    raw_signals: RawSignalBundle
    strategy: SearchStrategy | None = None
    assessment: CompletenessAssessment | None = None
    enrichment_prompt: str = ""
    previous: Mapping[str, ProfileFragment] = field(
        default_factory=lambda: MappingProxyType({}),
    )

    def with_previous(self, results: Mapping[str, ProfileFragment]) -> AgentContext:
        """Copy of this context exposing `results` read-only."""
        return AgentContext(
            target=self.target,
            raw_signals=self.raw_signals,
            strategy=self.strategy,
            assessment=self.assessment,
            enrichment_prompt=self.enrichment_prompt,
            previous=MappingProxyType(dict(results)),
        )


@dataclass
class AgentOutput:
    """What an agent hands back before the runner wraps it."""

    fragment: ProfileFragment
    tokens_used: int = 0


@dataclass
class AgentResult:
    agent_id: str
    success: bool
    data: ProfileFragment | None = None
    confidence: float = 0.0
    sources: list[str] = field(default_factory=list)
    elapsed_ms: int = 0
    error: str | None = None
    tokens_used: int = 0

    def __post_init__(self) -> None:
        if not self.success and self.data is not None:
            raise ValueError("a failed AgentResult cannot carry data")

    @classmethod
    def ok(
        cls,
        agent_id: str,
        fragment: ProfileFragment,
        elapsed_ms: int = 0,
        tokens_used: int = 0,
    ) -> AgentResult:
        return cls(
            agent_id=agent_id,
            success=True,
            data=fragment,
            confidence=fragment.confidence_score,
            sources=list(fragment.sources),
            elapsed_ms=elapsed_ms,
            tokens_used=tokens_used,
        )

    @classmethod
    def failed(cls, agent_id: str, error: str, elapsed_ms: int = 0) -> AgentResult:
        return cls(agent_id=agent_id, success=False, error=error, elapsed_ms=elapsed_ms)


class Agent(Protocol):
    agent_id: str

    async def analyze(self, context: AgentContext) -> AgentOutput:
        ...


async def run_agent(agent: Agent, context: AgentContext) -> AgentResult:
    """Run one agent, converting any exception into a failed result."""
    start = time.monotonic()
    try:
        output = await agent.analyze(context)
    except Exception as e:
        elapsed = int((time.monotonic() - start) * 1000)
        error = e if isinstance(e, AgentExecutionError) else AgentExecutionError(agent.agent_id, str(e))
        logger.warning("Agent %s failed after %dms: %s", agent.agent_id, elapsed, error)
        return AgentResult.failed(agent.agent_id, str(error), elapsed_ms=elapsed)

    elapsed = int((time.monotonic() - start) * 1000)
    logger.info(
        "Agent %s done in %dms (confidence=%.0f)",
        agent.agent_id, elapsed, output.fragment.confidence_score,
    )
    return AgentResult.ok(
        agent.agent_id, output.fragment,
        elapsed_ms=elapsed, tokens_used=output.tokens_used,
    )
