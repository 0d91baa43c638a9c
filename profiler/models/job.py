# =============================================================================
# Job Schema — Async Wrapper Around One Profiling Run
# =============================================================================
#
# State machine:
#
#   PENDING ──start()──▶ PROCESSING ──complete()──▶ COMPLETED
#                                   └──fail()─────▶ FAILED
#
# COMPLETED and FAILED are terminal: the queue refuses any further write.
#
# DESIGN DECISION: `Job` is a frozen snapshot.
# Stores hand out copies, so a caller holding a Job can never observe a
# later mutation, and two reads of a terminal job compare equal.
# =============================================================================

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from profiler.models.target import ProfilingTarget


class JobStatus(str, enum.Enum):
    PENDING = "pending"          # Created, waiting for a worker
    PROCESSING = "processing"    # Orchestrator is running
    COMPLETED = "completed"      # Profile available in `result`
    FAILED = "failed"            # Fatal error, see `error`

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Job(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    target: ProfilingTarget
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    current_phase: str | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
