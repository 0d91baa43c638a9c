# =============================================================================
# OSINT Target Profiler
# =============================================================================
# A multi-agent system that builds a structured profile of a consenting
# subject from public sources. Raw signals are collected once, twelve
# specialised agents analyse them in dependency-ordered phases, and a
# reflect loop (generate → critique → regenerate) gates output quality.
#
# Package structure:
#   profiler/
#   ├── api/          → FastAPI route handlers (profile jobs, plan)
#   ├── agents/       → Strategy selector, the twelve agents, LangGraph
#   │                    phase orchestrator
#   ├── collectors/   → Source adapters and the parallel signal gatherer
#   ├── db/           → Database engine, sessions and the jobs table
#   ├── models/       → Pydantic V2 schemas (target, signals, profile, jobs)
#   ├── reflection/   → Rubrics, critic, reflect loop, confidence scoring
#   ├── services/     → LLM providers, caches, job queue
#   └── workers/      → Celery task definitions and configuration
# =============================================================================
