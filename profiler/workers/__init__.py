# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration
#   - tasks.py: Profiling job execution and periodic job cleanup
#
# WHY CELERY?
# One profiling run makes dozens of model calls and source fetches and
# takes minutes. Running it inside a request would block the API server,
# so the API returns a job id immediately and a worker does the work.
# =============================================================================
