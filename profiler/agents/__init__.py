# =============================================================================
# Agents Package — Phased Multi-Agent Profiling
# =============================================================================
#   - strategy.py: Scores raw-signal completeness and picks a search strategy
#   - base.py: Agent protocol, per-run context and result records
#   - profilers.py: The twelve model-backed agents, one per profile fragment
#   - orchestrator.py: LangGraph graph running the agents in phases, with
#     the Phase 1 quorum, per-phase deadlines and the executive summary
# =============================================================================
