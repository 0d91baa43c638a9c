# =============================================================================
# Profile API — Start Profiling Jobs and Poll Their Progress
# =============================================================================
#
# ENDPOINTS:
#   POST /profile              — Create a job and start it in the background (202)
#   POST /profile?sync=true    — Run the orchestrator inline, return the Profile
#   GET  /profile/plan         — Static phase plan with time / cost estimates
#   GET  /profile/jobs         — Recent jobs, newest first
#   GET  /profile/jobs/{id}    — One job snapshot (progress, result, error)
#
# DESIGN DECISION: Async by default, 202 Accepted.
# A run makes a dozen model calls plus critiques and source fetches; it
# routinely takes minutes. The job id comes back immediately and the
# client polls. `sync=true` exists for debugging and small deployments.
#
# DESIGN DECISION: Celery only when the job store is shared.
# With JOB_STORE_BACKEND=sql the job row is visible to every process, so
# the run goes to a Celery worker. The memory store lives in this process
# only; a worker would never find the job, so the run happens here as a
# FastAPI background task instead.
#
# DESIGN DECISION: Consent is checked here before a job exists.
# The orchestrator enforces it too, but rejecting at the edge means no
# job row is ever created for a subject who did not consent.
#
# Job store calls are synchronous (see services/job_queue.py) and run in
# a worker thread via `asyncio.to_thread`.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Response

from profiler.agents.orchestrator import open_orchestrator, orchestration_plan
from profiler.config import settings
from profiler.errors import ConsentMissing, PhaseQuorumFailure
from profiler.models.profile import Profile
from profiler.models.requests import ProfileRequest
from profiler.models.responses import JobListResponse, JobResponse, PlanResponse, ProfileAccepted
from profiler.services.job_queue import get_job_queue
from profiler.workers.tasks import execute_job, profile_target_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["Profiling"])


# ---------------------------------------------------------------------------
# POST /profile — Start a profiling run
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ProfileAccepted | Profile,
    status_code=202,
    summary="Profile a consenting subject",
    description=(
        "Creates a profiling job and dispatches it to a worker. Poll "
        "GET /profile/jobs/{job_id} for progress. With sync=true the run "
        "happens inline and the finished profile is returned."
    ),
)
async def start_profile(
    request: ProfileRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    sync: bool = Query(default=False, description="Run inline instead of queueing"),
) -> ProfileAccepted | Profile:
    """
    Error handling:
    - No consent → 403 Forbidden
    - Phase 1 quorum not met (sync only) → 422 Unprocessable Entity
    - Provider / configuration error (sync only) → 502 Bad Gateway
    """
    if not request.consent:
        raise HTTPException(
            status_code=403,
            detail="The subject's consent is required before profiling.",
        )

    target = request.to_target()

    if sync:
        response.status_code = 200
        return await _profile_inline(target)

    queue = get_job_queue()
    job_id = await asyncio.to_thread(queue.create, target)

    task_id = None
    if settings.job_store_backend == "sql":
        task = profile_target_task.delay(job_id, target.model_dump(mode="json"))
        task_id = task.id
        logger.info("Dispatched profiling job %s (task_id=%s)", job_id, task_id)
    else:
        background_tasks.add_task(_run_in_process, job_id, target)
        logger.info("Running profiling job %s in-process", job_id)

    return ProfileAccepted(
        job_id=job_id,
        task_id=task_id,
        status="pending",
        message=f"Profiling {target.full_name} started.",
    )


async def _run_in_process(job_id: str, target) -> None:
    try:
        await execute_job(job_id, target)
    except Exception:
        # execute_job has already marked the job FAILED
        logger.exception("In-process profiling job %s crashed", job_id)


async def _profile_inline(target) -> Profile:
    try:
        async with open_orchestrator() as orchestrator:
            return await orchestrator.profile_target(target)
    except ConsentMissing as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    except PhaseQuorumFailure as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except Exception as e:
        logger.exception("Inline profiling failed for %s: %s", target.id, e)
        raise HTTPException(status_code=502, detail=f"Profiling failed: {e}") from e


# ---------------------------------------------------------------------------
# GET /profile/plan — Orchestration plan
# ---------------------------------------------------------------------------


@router.get("/plan", response_model=PlanResponse, summary="Show the phase plan")
async def get_plan() -> PlanResponse:
    return PlanResponse(**orchestration_plan())


# ---------------------------------------------------------------------------
# GET /profile/jobs — Job listing
# ---------------------------------------------------------------------------


@router.get("/jobs", response_model=JobListResponse, summary="List recent jobs")
async def list_jobs(
    limit: int = Query(default=settings.job_list_default_limit, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> JobListResponse:
    jobs = await asyncio.to_thread(get_job_queue().list, limit, offset)
    return JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        limit=limit,
        offset=offset,
    )


# ---------------------------------------------------------------------------
# GET /profile/jobs/{job_id} — Poll one job
# ---------------------------------------------------------------------------


@router.get("/jobs/{job_id}", response_model=JobResponse, summary="Get job status")
async def get_job(job_id: str) -> JobResponse:
    """Clients poll until status is `completed` or `failed`."""
    job = await asyncio.to_thread(get_job_queue().get, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.model_validate(job)
