# =============================================================================
# Critique Agent — Rubric-Based Quality Scoring of Agent Output
# =============================================================================
#
# Given a candidate output and a rubric, asks a model to score every
# weighted factor (0–10), list concrete issues and suggest fixes. The
# reflect loop feeds the suggestions back into the next generation.
#
# DESIGN DECISION: `passed` is computed locally.
# The model returns a score; whether that score clears the rubric
# threshold is decided here (`score >= threshold`). A model claiming
# "passed": true with a low score is ignored.
#
# DESIGN DECISION: Critique failures raise, the loop decides.
# A malformed or missing critique raises `CritiqueEvaluationError`. The
# reflect loop turns that into a fail-open pass at the threshold; the
# critic itself never invents a score.
#
# DESIGN DECISION: Low temperature (0.3) for the critic.
# Scoring should be reproducible enough that a regenerated output is
# compared against the same yardstick.
# =============================================================================

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from pydantic import BaseModel

from profiler.config import settings
from profiler.errors import CritiqueEvaluationError
from profiler.reflection.rubrics import CritiqueRubric
from profiler.services.cache import TTLCache
from profiler.services.llm import LLMProvider, parse_json_content

logger = logging.getLogger(__name__)

_SEVERITIES = {"low", "medium", "high"}


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class CritiqueIssue:
    factor: str
    severity: str
    description: str
    suggestion: str | None = None


@dataclass
class CritiqueResult:
    """One critique evaluation (score on a 0–10 scale)."""

    score: float
    passed: bool
    issues: list[CritiqueIssue] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    reasoning: str = ""
    fail_open: bool = False

    @classmethod
    def accepted_on_failure(cls, rubric: CritiqueRubric, error: Exception) -> CritiqueResult:
        """Synthetic pass used when the critique itself could not run."""
        return cls(
            score=rubric.threshold,
            passed=True,
            reasoning=f"Critique failed: {error}. Accepting output as-is.",
            fail_open=True,
        )


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_RESPONSE_FORMAT = """Respond with ONLY valid JSON (no markdown):
{
  "score": number between 0 and 10 (weighted average of the factors),
  "issues": [
    {"factor": "factor name", "severity": "low" | "medium" | "high",
     "description": "what is wrong", "suggestion": "how to fix it"}
  ],
  "suggestions": ["actionable improvement", "..."],
  "reasoning": "why this score"
}"""


def _system_prompt(rubric: CritiqueRubric) -> str:
    return (
        f"You are a senior intelligence analyst reviewing a {rubric.name}.\n\n"
        "Score the output against this rubric:\n"
        f"{rubric.describe()}\n\n"
        "Instructions:\n"
        "1. Score every factor from 0 to 10.\n"
        "2. The final score is the weighted average of the factors.\n"
        "3. Flag contradictions, logical gaps and unverified assumptions.\n"
        "4. Suggestions must be concrete and actionable.\n"
        "Take into account what public data can realistically show. "
        f"Outputs scoring below {rubric.threshold} need revision.\n\n"
        f"{_RESPONSE_FORMAT}"
    )


def _user_prompt(
    payload: Any,
    rubric: CritiqueRubric,
    target_name: str | None,
    previous: list[CritiqueResult] | None,
) -> str:
    parts = [f'Evaluate this output against the "{rubric.name}" rubric.']
    if target_name:
        parts.append(f"Target: {target_name}")
    parts.append("OUTPUT:\n" + json.dumps(payload, indent=2, ensure_ascii=False, default=str))
    if previous:
        history = []
        for i, c in enumerate(previous, 1):
            history.append(
                f"Iteration {i}: score {c.score}/10, {len(c.issues)} issues. "
                f"Suggestions: {'; '.join(c.suggestions) or 'none'}"
            )
        parts.append("PREVIOUS CRITIQUES:\n" + "\n".join(history))
    return "\n\n".join(parts)


def _to_jsonable(output: Any) -> Any:
    if isinstance(output, BaseModel):
        return output.model_dump(mode="json", exclude_none=True)
    return output


def output_fingerprint(output: Any) -> str:
    """Stable hash of an output, used for caching and repeat detection."""
    encoded = json.dumps(_to_jsonable(output), sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Critique Agent
# ---------------------------------------------------------------------------


class CritiqueAgent:
    """
    Scores outputs against rubrics with an injected model client.

    An optional `cache` memoises critiques of identical outputs under the
    same rubric (e.g. a re-run for the same target within the TTL).
    """

    def __init__(
        self,
        llm: LLMProvider,
        cache: TTLCache | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._llm = llm
        self._cache = cache
        self._temperature = (
            settings.critique_temperature if temperature is None else temperature
        )
        self._max_tokens = max_tokens or settings.critique_max_tokens

    async def critique(
        self,
        output: Any,
        rubric: CritiqueRubric,
        target_name: str | None = None,
        previous: list[CritiqueResult] | None = None,
    ) -> CritiqueResult:
        """
        Score `output` against `rubric`.

        Raises:
            CritiqueEvaluationError: The model call failed or its reply
                had no usable score.
        """
        payload = _to_jsonable(output)
        cache_key = f"critique:{rubric.name}:{output_fingerprint(payload)}"

        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.info("Critique cache hit (%s)", rubric.name)
                return self._build_result(cached, rubric)

        try:
            response = await self._llm.complete(
                messages=[{
                    "role": "user",
                    "content": _user_prompt(payload, rubric, target_name, previous),
                }],
                system=_system_prompt(rubric),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
            raw = parse_json_content(response.content)
        except (json.JSONDecodeError, ValueError) as e:
            raise CritiqueEvaluationError(f"Unparseable critique: {e}") from e
        except Exception as e:
            raise CritiqueEvaluationError(f"Critique call failed: {e}") from e

        result = self._build_result(raw, rubric)

        logger.info(
            "Critique %s: score=%.1f/10 threshold=%.1f passed=%s issues=%d",
            rubric.name, result.score, rubric.threshold, result.passed,
            len(result.issues),
        )

        if self._cache is not None:
            cached_value = asdict(result)
            await self._cache.set(
                cache_key, cached_value, settings.critique_cache_ttl_seconds,
            )
        return result

    @staticmethod
    def _build_result(raw: dict[str, Any], rubric: CritiqueRubric) -> CritiqueResult:
        score = raw.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise CritiqueEvaluationError(f"Invalid score in critique: {score!r}")
        if not 0 <= score <= 10:
            raise CritiqueEvaluationError(f"Critique score out of range: {score}")

        issues = []
        for item in raw.get("issues") or []:
            if not isinstance(item, dict):
                continue
            severity = str(item.get("severity", "medium")).lower()
            issues.append(CritiqueIssue(
                factor=str(item.get("factor", "")),
                severity=severity if severity in _SEVERITIES else "medium",
                description=str(item.get("description", "")),
                suggestion=item.get("suggestion"),
            ))

        suggestions = raw.get("suggestions")
        if not isinstance(suggestions, list):
            suggestions = []

        return CritiqueResult(
            score=float(score),
            passed=float(score) >= rubric.threshold,
            issues=issues,
            suggestions=[str(s) for s in suggestions],
            reasoning=str(raw.get("reasoning") or "No reasoning provided"),
        )
