# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - target.py: ProfilingTarget (identity, consent, source identifiers)
#   - signals.py: Per-source payloads and the RawSignalBundle
#   - strategy.py: Completeness assessment and search strategy
#   - profile.py: The twelve profile fragments and the final Profile
#   - job.py: Job snapshot and status state machine
#   - requests.py / responses.py: API contract
#
# DESIGN DECISION: API schemas stay separate from domain models and from
# the ORM table (profiler/db/models.py), so each can evolve on its own.
# =============================================================================
