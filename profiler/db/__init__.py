# =============================================================================
# Database Package
# =============================================================================
# Lazily created SQLAlchemy engines plus the ORM model for profiling jobs.
#
# Key exports:
#   - get_sync_session: context-managed session for the SQL job store
#   - get_async_session_factory: async sessions for the API
#   - Base, ProfilingJob: declarative base and the jobs table
# =============================================================================
