# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - profile.py: Start profiling jobs (queued or inline), poll job status,
#     preview the orchestration plan
# =============================================================================
