# =============================================================================
# Job Queue — Async Wrapper Around Profiling Runs
# =============================================================================
#
# A profiling run takes minutes, so callers get a job id immediately and
# poll for progress. The queue owns the job state machine; a JobStore
# persists snapshots.
#
#   create() ─▶ PENDING ─start()─▶ PROCESSING ─complete()─▶ COMPLETED
#               progress 0        progress 10  └─fail()────▶ FAILED
#                                                           (progress 0)
#
# INVARIANT: terminal jobs are never written again. update/start/
# complete/fail on a COMPLETED or FAILED job raise InvalidJobTransition.
#
# STORES:
#   JobStore (Protocol)
#   ├── InMemoryJobStore — dict + lock; single process, tests
#   └── SqlJobStore      — SQLAlchemy sync session (profiling_jobs table)
#
# DESIGN DECISION: Synchronous store calls.
# Store operations are short single-row reads/writes. The worker calls
# them directly; the API wraps them in `asyncio.to_thread`. The only
# awaits in a run are model and source calls.
# =============================================================================

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any, Protocol

from sqlalchemy import delete, select

from profiler.config import Settings, settings
from profiler.db.engine import get_sync_engine, get_sync_session
from profiler.db.models import Base, ProfilingJob
from profiler.errors import FatalProfilingError, InvalidJobTransition, JobNotFound
from profiler.models.job import Job, JobStatus
from profiler.models.profile import Profile
from profiler.models.target import ProfilingTarget

logger = logging.getLogger(__name__)

_ERROR_MAX_CHARS = 1000

PHASE_INITIALISING = "Initialising"
PHASE_STARTED = "Phase 0: Data Collection"
PHASE_COMPLETED = "Completed"
PHASE_ERROR = "Error"


def _now() -> datetime:
    return datetime.now(UTC)


def new_job_id(now: datetime | None = None) -> str:
    """`osint_<epoch ms>_<random>`; sortable by creation time."""
    moment = now or _now()
    return f"osint_{int(moment.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class JobStore(Protocol):
    def create(self, job: Job) -> None:
        ...

    def get(self, job_id: str) -> Job | None:
        ...

    def update(self, job_id: str, changes: dict[str, Any]) -> Job:
        ...

    def list(self, limit: int, offset: int = 0) -> list[Job]:
        ...

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete terminal jobs created before `cutoff`; returns the count."""
        ...


class InMemoryJobStore:
    """Process-local store. Jobs are frozen, so reads share instances."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def update(self, job_id: str, changes: dict[str, Any]) -> Job:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFound(job_id)
            updated = current.model_copy(update=changes)
            self._jobs[job_id] = updated
            return updated

    def list(self, limit: int, offset: int = 0) -> list[Job]:
        ordered = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
        return ordered[offset:offset + limit]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [
                job_id for job_id, job in self._jobs.items()
                if job.status.is_terminal and job.created_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        return len(stale)

    def __len__(self) -> int:
        return len(self._jobs)


class SqlJobStore:
    """PostgreSQL-backed store shared by the API and Celery workers."""

    def __init__(self, session_factory: Callable[[], Any] | None = None, create_schema: bool = True) -> None:
        self._session = session_factory or get_sync_session
        if create_schema:
            Base.metadata.create_all(get_sync_engine())

    @staticmethod
    def _to_job(row: Any) -> Job:
        return Job(
            id=row.id,
            target=ProfilingTarget.model_validate(row.target),
            status=row.status,
            progress=row.progress,
            current_phase=row.current_phase,
            result=row.result,
            error=row.error,
            created_at=row.created_at,
            updated_at=row.updated_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    def create(self, job: Job) -> None:
        with self._session() as session:
            session.add(ProfilingJob(
                id=job.id,
                target=job.target.model_dump(mode="json"),
                status=job.status,
                progress=job.progress,
                current_phase=job.current_phase,
                created_at=job.created_at,
                updated_at=job.updated_at,
            ))

    def get(self, job_id: str) -> Job | None:
        with self._session() as session:
            row = session.get(ProfilingJob, job_id)
            return self._to_job(row) if row is not None else None

    def update(self, job_id: str, changes: dict[str, Any]) -> Job:
        with self._session() as session:
            row = session.get(ProfilingJob, job_id)
            if row is None:
                raise JobNotFound(job_id)
            for name, value in changes.items():
                setattr(row, name, value)
            session.flush()
            return self._to_job(row)

    def list(self, limit: int, offset: int = 0) -> list[Job]:
        with self._session() as session:
            rows = session.execute(
                select(ProfilingJob)
                .order_by(ProfilingJob.created_at.desc())
                .limit(limit)
                .offset(offset)
            ).scalars().all()
            return [self._to_job(row) for row in rows]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._session() as session:
            result = session.execute(
                delete(ProfilingJob)
                .where(ProfilingJob.status.in_([JobStatus.COMPLETED, JobStatus.FAILED]))
                .where(ProfilingJob.created_at < cutoff)
            )
            return result.rowcount or 0


def build_job_store(config: Settings) -> JobStore:
    if config.job_store_backend == "sql":
        return SqlJobStore()
    return InMemoryJobStore()


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


class JobQueue:
    """State machine over a JobStore."""

    def __init__(self, store: JobStore, clock: Callable[[], datetime] = _now) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()

    def create(self, target: ProfilingTarget) -> str:
        now = self._clock()
        job = Job(
            id=new_job_id(now),
            target=target,
            status=JobStatus.PENDING,
            progress=0,
            current_phase=PHASE_INITIALISING,
            created_at=now,
            updated_at=now,
        )
        self._store.create(job)
        logger.info("Created job %s for target %s", job.id, target.id)
        return job.id

    def get(self, job_id: str) -> Job | None:
        return self._store.get(job_id)

    def update(
        self,
        job_id: str,
        progress: int | None = None,
        current_phase: str | None = None,
    ) -> Job:
        changes: dict[str, Any] = {}
        if progress is not None:
            changes["progress"] = max(0, min(100, progress))
        if current_phase is not None:
            changes["current_phase"] = current_phase
        return self._transition(job_id, "update", changes)

    def start(self, job_id: str) -> Job:
        now = self._clock()
        return self._transition(job_id, JobStatus.PROCESSING.value, {
            "status": JobStatus.PROCESSING,
            "progress": 10,
            "current_phase": PHASE_STARTED,
            "started_at": now,
        }, require=JobStatus.PENDING)

    def complete(self, job_id: str, profile: Profile) -> Job:
        now = self._clock()
        job = self._transition(job_id, JobStatus.COMPLETED.value, {
            "status": JobStatus.COMPLETED,
            "progress": 100,
            "current_phase": PHASE_COMPLETED,
            "result": profile.model_dump(mode="json"),
            "completed_at": now,
        })
        logger.info("Job %s completed (score=%.1f)", job_id, profile.overall_score)
        return job

    def fail(self, job_id: str, error: str) -> Job:
        now = self._clock()
        job = self._transition(job_id, JobStatus.FAILED.value, {
            "status": JobStatus.FAILED,
            "progress": 0,
            "current_phase": PHASE_ERROR,
            "error": error[:_ERROR_MAX_CHARS],
            "completed_at": now,
        })
        logger.error("Job %s failed: %s", job_id, error)
        return job

    def fail_unless_terminal(self, job_id: str, error: str) -> Job | None:
        """Fail the job if it exists and is still open; otherwise do nothing."""
        try:
            return self.fail(job_id, error)
        except (JobNotFound, InvalidJobTransition) as e:
            logger.info("Not failing job %s: %s", job_id, e)
            return None

    def list(self, limit: int | None = None, offset: int = 0) -> list[Job]:
        """Most recent first."""
        return self._store.list(limit or settings.job_list_default_limit, max(0, offset))

    def cleanup(self, days_old: int | None = None) -> int:
        """Delete terminal jobs older than `days_old` days."""
        days = settings.job_retention_days if days_old is None else days_old
        cutoff = self._clock() - timedelta(days=days)
        deleted = self._store.delete_older_than(cutoff)
        logger.info("Cleaned up %d jobs older than %d days", deleted, days)
        return deleted

    def _transition(
        self,
        job_id: str,
        requested: str,
        changes: dict[str, Any],
        require: JobStatus | None = None,
    ) -> Job:
        with self._lock:
            current = self._store.get(job_id)
            if current is None:
                raise JobNotFound(job_id)
            if current.status.is_terminal or (require is not None and current.status != require):
                raise InvalidJobTransition(job_id, current.status.value, requested)
            changes["updated_at"] = self._clock()
            return self._store.update(job_id, changes)


@lru_cache
def get_job_queue() -> JobQueue:
    """Process-wide queue over the configured store."""
    return JobQueue(build_job_store(settings))


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


async def run_job(queue: JobQueue, orchestrator: Any, job_id: str, target: ProfilingTarget) -> Profile | None:
    """
    Drive one job through start → profile → complete.

    Fatal profiling errors (missing consent, Phase 1 quorum) fail the job
    and return None. Any other exception also fails the job, then
    propagates to the caller.

    A job that is not PENDING is never run. One already PROCESSING (a
    redelivered task after a worker crash) is failed so that it reaches
    a terminal state; an unknown or terminal job is left alone.
    """
    try:
        queue.start(job_id)
    except JobNotFound:
        logger.error(
            "Job %s is not in this process's job store; API and worker must "
            "share the sql backend", job_id,
        )
        return None
    except InvalidJobTransition as e:
        queue.fail_unless_terminal(job_id, f"Run interrupted before completion: {e}")
        return None

    def on_progress(progress: int, phase: str) -> None:
        queue.update(job_id, progress=progress, current_phase=phase)

    try:
        profile = await orchestrator.profile_target(target, progress=on_progress)
    except FatalProfilingError as e:
        queue.fail(job_id, str(e))
        return None
    except Exception as e:
        queue.fail(job_id, f"{type(e).__name__}: {e}")
        raise

    queue.complete(job_id, profile)
    return profile
