# =============================================================================
# Reflect Loop — Generate → Critique → Regenerate Until Good Enough
# =============================================================================
#
# Wraps an agent's generation step in a quality gate:
#
#   ┌──────────┐  output   ┌──────────┐  score ≥ threshold?  ──yes──▶ return
#   │ generate │ ────────▶ │ critique │ ─────────────────────────────┐
#   └──────────┘           └──────────┘  improvement < 0.5?  ──yes──▶ best
#        ▲                      │        budget exhausted?   ──yes──▶ best
#        └──── suggestions ─────┘
#
# EXIT ORDER (checked after every critique):
#   1. score >= early_exit_score            → "early_exit"
#   2. score >= rubric.threshold            → "passed"
#   3. ≥2 critiques and gain < 0.5          → "diminishing_returns"
#   4. iteration == max_iterations          → "budget_exhausted"
#
# INVARIANTS:
# - best_score only increases (strictly greater replaces the best).
# - The returned output is always the one that achieved best_score,
#   never simply the last one generated.
#
# FAILURE POLICY:
# - Critique fails → fail open: the output counts as scoring exactly the
#   threshold, so the caller is never blocked by the critic.
# - Generation fails after a best output exists → stop and return it.
#   Generation fails on the first iteration → the error propagates.
#
# DESIGN DECISION: Plain async loop, not a LangGraph subgraph.
# Like the search loop it replaces, a bounded for-loop is clearer than a
# graph; LangGraph is reserved for the phase orchestrator.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from profiler.config import settings
from profiler.errors import CritiqueEvaluationError
from profiler.reflection.critique import CritiqueAgent, CritiqueResult, output_fingerprint
from profiler.reflection.rubrics import CritiqueRubric

logger = logging.getLogger(__name__)

T = TypeVar("T")

GenerateFn = Callable[[list[str] | None], Awaitable[T]]


@dataclass
class ReflectionState(Generic[T]):
    """Convergence bookkeeping for one `ReflectLoop.run` call."""

    max_iterations: int
    iteration: int = 0
    current_output: T | None = None
    best_output: T | None = None
    best_score: float = 0.0
    critiques: list[CritiqueResult] = field(default_factory=list)
    completed: bool = False
    final_score: float = 0.0
    exit_reason: str = ""

    def record(self, output: T, critique: CritiqueResult) -> None:
        self.current_output = output
        self.critiques.append(critique)
        if self.best_output is None or critique.score > self.best_score:
            self.best_output = output
            self.best_score = critique.score

    def finish(self, reason: str) -> None:
        self.completed = True
        self.exit_reason = reason
        self.final_score = self.best_score


class ReflectLoop:
    """Drives generate/critique cycles with an injected critique agent."""

    def __init__(
        self,
        critic: CritiqueAgent,
        min_improvement: float | None = None,
    ) -> None:
        self._critic = critic
        self._min_improvement = (
            settings.reflect_min_improvement if min_improvement is None else min_improvement
        )

    async def run(
        self,
        generate: GenerateFn,
        rubric: CritiqueRubric,
        max_iterations: int | None = None,
        early_exit_score: float | None = None,
        target_name: str | None = None,
    ) -> tuple[T, ReflectionState[T]]:
        """
        Run the loop and return (accepted output, final state).

        Args:
            generate: Async callable receiving the previous critique's
                suggestions (None on the first iteration).
            rubric: Quality policy the output is scored against.
            max_iterations: Generation budget (default from settings).
            early_exit_score: Accept immediately at or above this score
                (default from settings).
            target_name: Passed to the critic for context.
        """
        budget = max(1, max_iterations or settings.reflect_max_iterations)
        early_exit = (
            settings.reflect_early_exit_score if early_exit_score is None else early_exit_score
        )
        state: ReflectionState[T] = ReflectionState(max_iterations=budget)
        seen: set[str] = set()
        feedback: list[str] | None = None

        for iteration in range(1, budget + 1):
            state.iteration = iteration

            # --- Step 1: Generate ---
            try:
                output = await generate(feedback)
            except Exception as e:
                if state.best_output is None:
                    raise
                logger.warning(
                    "[%s] Generation failed at iteration %d (%s); "
                    "keeping best output (score=%.1f)",
                    rubric.name, iteration, e, state.best_score,
                )
                state.finish("generation_error")
                return state.best_output, state

            fingerprint = output_fingerprint(output)
            if fingerprint in seen:
                logger.info(
                    "[%s] Iteration %d repeated a previous output; stopping",
                    rubric.name, iteration,
                )
                state.finish("repeated_output")
                return state.best_output, state
            seen.add(fingerprint)

            # --- Step 2: Critique (fail open) ---
            try:
                critique = await self._critic.critique(
                    output, rubric,
                    target_name=target_name,
                    previous=list(state.critiques),
                )
            except CritiqueEvaluationError as e:
                logger.warning("[%s] %s; accepting output at threshold", rubric.name, e)
                critique = CritiqueResult.accepted_on_failure(rubric, e)

            previous_score = state.critiques[-1].score if state.critiques else None

            # --- Step 3: Record ---
            state.record(output, critique)
            logger.info(
                "[%s] Iteration %d/%d: score=%.1f best=%.1f",
                rubric.name, iteration, budget, critique.score, state.best_score,
            )

            # --- Step 4: Exit checks ---
            if critique.score >= early_exit:
                state.finish("early_exit")
                return state.best_output, state

            if critique.score >= rubric.threshold:
                state.finish("passed")
                return state.best_output, state

            if (
                previous_score is not None
                and critique.score - previous_score < self._min_improvement
            ):
                logger.info(
                    "[%s] Diminishing returns (%.1f → %.1f); stopping",
                    rubric.name, previous_score, critique.score,
                )
                state.finish("diminishing_returns")
                return state.best_output, state

            feedback = critique.suggestions or None

        state.finish("budget_exhausted")
        return state.best_output, state
