# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Profiling runs take minutes (dozens of model calls plus source fetches),
# far too long for a request/response cycle. The API creates a job and
# dispatches it here; the client polls the job for progress.
#
# ARCHITECTURE:
# ┌──────────┐     ┌───────┐     ┌──────────────┐     ┌────────────┐
# │ FastAPI  │────▶│ Redis │────▶│ Celery Worker│────▶│ Job store  │
# │ (producer)│    │(broker)│    │ run_job()     │    │ (Postgres) │
# └──────────┘     └───────┘     └──────────────┘     └────────────┘
#    db 0 ──────────┘      results ── db 1    cache ── db 2
#
# The job store, not the Celery result backend, is the source of truth
# for job status; the result backend only records task completion.
# =============================================================================

from celery import Celery

from profiler.config import settings

celery_app = Celery(
    "profiler.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only: pickle can execute arbitrary code on load.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Ack after the task finishes so a crashed worker's job is re-queued.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # One long-running profile per worker process at a time.
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    # Seven agent phases with a 180s deadline each plus collection; the
    # hard limit sits above the worst case so phases time out first.
    task_soft_time_limit=1800,
    task_time_limit=2100,

    # --- Results ---
    result_expires=3600,

    # --- Periodic cleanup ---
    beat_schedule={
        "cleanup-old-jobs": {
            "task": "cleanup_jobs",
            "schedule": 24 * 3600,
        },
    },

    include=["profiler.workers.tasks"],
)
