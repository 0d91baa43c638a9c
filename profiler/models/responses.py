# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data going OUT of the API.
# FastAPI serialises the handler's return value through `response_model`,
# which strips any field not declared here.
#
# DESIGN DECISION: Jobs are exposed as-is.
# `Job` is already a frozen pydantic snapshot, so JobResponse only adds
# `from_attributes` and leaves field names identical to the store. The
# profile inside `result` is the JSON dump of `Profile`.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from profiler.models.job import JobStatus


class HealthResponse(BaseModel):
    status: str = Field(..., examples=["healthy"])
    version: str = Field(..., examples=["0.1.0"])
    job_store: str = Field(..., examples=["memory"])
    database: str | None = Field(default=None, examples=["connected"])


class ProfileAccepted(BaseModel):
    """Response for POST /profile — job created and dispatched."""

    job_id: str = Field(..., description="Poll GET /profile/jobs/{job_id}")
    task_id: str | None = Field(
        default=None, description="Celery task id (None when the job runs in the API process)",
    )
    status: str = Field(default="pending")
    message: str = Field(default="Profiling started.")


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: JobStatus
    progress: int = Field(..., ge=0, le=100)
    current_phase: str | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    limit: int
    offset: int


class PlanPhase(BaseModel):
    phase_number: str
    phase_name: str
    agents: list[str]
    parallel: bool


class PlanResponse(BaseModel):
    """Static orchestration plan, useful before committing to a run."""

    phases: list[PlanPhase]
    total_agents: int
    estimated_time_ms: int
    estimated_cost_usd: float
