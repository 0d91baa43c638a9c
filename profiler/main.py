# =============================================================================
# FastAPI Application Entry Point
# =============================================================================
#
# Serve with any ASGI server, e.g.:
#   uvicorn profiler.main:app --reload
#
# Routers:
#   /profile  — start profiling jobs, poll them, preview the phase plan
#   /health   — liveness, plus a database ping when jobs live in PostgreSQL
# =============================================================================

import logging

from fastapi import FastAPI
from sqlalchemy import text

from profiler.api import profile
from profiler.config import settings
from profiler.db.engine import get_async_session_factory
from profiler.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-agent profiling of consenting subjects from public sources.",
)

app.include_router(profile.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    database = None
    if settings.job_store_backend == "sql":
        try:
            async with get_async_session_factory()() as session:
                await session.execute(text("SELECT 1"))
            database = "connected"
        except Exception as e:
            logger.warning("Health check: database unreachable: %s", e)
            database = "unreachable"

    return HealthResponse(
        status="healthy" if database != "unreachable" else "degraded",
        version=settings.app_version,
        job_store=settings.job_store_backend,
        database=database,
    )
