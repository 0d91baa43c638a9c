# =============================================================================
# Celery Task Definitions — Profiling Jobs
# =============================================================================
#
# profile_target_task(job_id, target)
#   1. Rebuild the ProfilingTarget from its JSON form
#   2. execute_job() → run_job(): job → PROCESSING, orchestrator runs
#      with progress hooked to the queue, job → COMPLETED (or FAILED)
#
# A redelivered task (acks_late after a worker crash) finds its job
# already PROCESSING; run_job fails it instead of running it twice.
#
# cleanup_jobs_task(days_old)
#   Deletes terminal jobs older than the retention window (beat: daily).
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# The orchestrator is async, so each task runs it to completion with
# `asyncio.run()` on a fresh event loop. The job store is synchronous and
# is called directly.
#
# RETRY STRATEGY:
# None for profiling. A job becomes terminal the moment it fails, and a
# retried task could not restart a terminal job. Transient provider
# errors are retried inside the model SDKs instead.
# =============================================================================

import asyncio
import logging

from profiler.agents.orchestrator import open_orchestrator
from profiler.models.target import ProfilingTarget
from profiler.services.job_queue import get_job_queue, run_job
from profiler.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def execute_job(job_id: str, target: ProfilingTarget) -> dict:
    """
    Run one queued job against the process-wide queue.

    Used by the Celery task and by the API's in-process mode. If the
    orchestrator cannot even be built (missing API key, bad provider id),
    the job is failed before the error propagates.
    """
    queue = get_job_queue()
    try:
        async with open_orchestrator() as orchestrator:
            profile = await run_job(queue, orchestrator, job_id, target)
    except Exception as e:
        queue.fail_unless_terminal(job_id, f"{type(e).__name__}: {e}")
        raise

    job = queue.get(job_id)
    return {
        "job_id": job_id,
        "status": job.status.value if job else "unknown",
        "overall_score": profile.overall_score if profile else None,
        "completeness": profile.completeness if profile else None,
    }


@celery_app.task(bind=True, name="profile_target")
def profile_target_task(self, job_id: str, target: dict) -> dict:
    """
    Run one profiling job in the worker.

    Args:
        self: Bound task instance (provides self.request.id).
        job_id: Id returned by JobQueue.create().
        target: ProfilingTarget.model_dump(mode="json").

    Returns:
        Summary dict (status, overall score, completeness).
    """
    task_id = self.request.id
    logger.info("Starting profiling job %s (task_id=%s)", job_id, task_id)

    try:
        summary = asyncio.run(execute_job(job_id, ProfilingTarget.model_validate(target)))
    except Exception:
        # execute_job has already marked the job FAILED
        logger.exception("Profiling job %s crashed (task_id=%s)", job_id, task_id)
        raise

    logger.info(
        "Profiling job %s finished: status=%s score=%s completeness=%s",
        job_id, summary["status"], summary["overall_score"], summary["completeness"],
    )
    return summary


@celery_app.task(name="cleanup_jobs")
def cleanup_jobs_task(days_old: int | None = None) -> dict:
    """Purge terminal jobs older than `days_old` (default: retention setting)."""
    deleted = get_job_queue().cleanup(days_old)
    return {"deleted": deleted}
