# =============================================================================
# Services Package — Infrastructure Behind the Agents
# =============================================================================
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - cache.py: TTL cache protocol with in-memory and Redis backends
#   - job_queue.py: Job state machine, job stores and the job runner
# =============================================================================
