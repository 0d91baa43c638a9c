# =============================================================================
# Error Taxonomy — Fatal vs Recorded Failures
# =============================================================================
#
# A profiling run prefers a partial profile over a hard failure. Only two
# exception classes are allowed to escape the orchestrator:
#
#   ConsentMissing       — raised before any work starts
#   PhaseQuorumFailure   — raised when too few base agents succeed
#
# Everything else (collector errors, agent errors, critique errors) is
# caught at the component boundary and recorded on the bundle or profile.
#
# HIERARCHY:
#   ProfilerError
#   ├── FatalProfilingError
#   │   ├── ConsentMissing
#   │   └── PhaseQuorumFailure
#   ├── CollectorError
#   │   ├── SourceNotFound        — non-retryable (missing / private profile)
#   │   └── SourceNetworkError    — retryable (timeouts, 5xx)
#   ├── AgentExecutionError
#   ├── CritiqueEvaluationError
#   ├── ModelInvocationError      — carries HTTP-like status + retryable flag
#   ├── InvalidJobTransition
#   └── JobNotFound
# =============================================================================

from __future__ import annotations


class ProfilerError(Exception):
    """Base class for all profiling engine errors."""


# ---------------------------------------------------------------------------
# Fatal
# ---------------------------------------------------------------------------


class FatalProfilingError(ProfilerError):
    """Aborts the whole run; the owning job transitions to failed."""


class ConsentMissing(FatalProfilingError):
    def __init__(self, target_id: str) -> None:
        super().__init__(
            f"Target {target_id} has not consented to profiling"
        )
        self.target_id = target_id


class PhaseQuorumFailure(FatalProfilingError):
    """Fewer base agents succeeded than the quorum requires."""

    def __init__(self, phase: str, succeeded: int, total: int, required: int) -> None:
        super().__init__(
            f"{phase} failed: insufficient data collected "
            f"({succeeded}/{total} agents succeeded, {required} required)"
        )
        self.phase = phase
        self.succeeded = succeeded
        self.total = total
        self.required = required


# ---------------------------------------------------------------------------
# Recorded (non-fatal)
# ---------------------------------------------------------------------------


class CollectorError(ProfilerError):
    retryable: bool = False

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.message = message


class SourceNotFound(CollectorError):
    """Profile does not exist, is private, or access is restricted."""

    retryable = False


class SourceNetworkError(CollectorError):
    """Transport failure or upstream 5xx; safe to retry later."""

    retryable = True


class AgentExecutionError(ProfilerError):
    def __init__(self, agent_id: str, message: str) -> None:
        super().__init__(f"Agent '{agent_id}' failed: {message}")
        self.agent_id = agent_id
        self.message = message


class CritiqueEvaluationError(ProfilerError):
    """Critique output could not be obtained or parsed."""


class ModelInvocationError(ProfilerError):
    """
    Typed failure from an LLM provider.

    `status` mirrors the HTTP status returned by the provider (0 when the
    request never reached it). Retry policy belongs to the provider SDK;
    callers only read `retryable` to decide how to report the failure.
    """

    def __init__(self, message: str, status: int = 0, retryable: bool = False) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class InvalidJobTransition(ProfilerError):
    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Job {job_id} cannot move from '{current}' to '{requested}'"
        )
        self.job_id = job_id
        self.current = current
        self.requested = requested


class JobNotFound(ProfilerError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id
