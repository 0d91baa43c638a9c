# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# One table: profiling jobs and their results.
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────────────┐
# │  profiling_jobs                      │
# ├──────────────────────────────────────┤
# │ id (PK, "osint_<ms>_<random>")       │
# │ target (json)      — ProfilingTarget │
# │ status (enum)      — JobStatus       │
# │ progress (int 0–100)                 │
# │ current_phase (str)                  │
# │ result (json)      — Profile dump    │
# │ error (text)                         │
# │ created_at / updated_at              │
# │ started_at / completed_at            │
# └──────────────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. Target and result are stored as JSON documents.
#    Both are pydantic models that evolve with the prompts; a relational
#    breakdown would need a migration for every new profile field.
#
# 2. JSONB on PostgreSQL, plain JSON elsewhere (`with_variant`), so the
#    same model works against SQLite in local experiments.
#
# 3. The status enum is shared with the pydantic `Job` schema, so the API
#    layer and the table can never disagree on the set of states.
# =============================================================================

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from profiler.models.job import JobStatus

_JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class ProfilingJob(Base):
    """A queued or finished profiling run."""

    __tablename__ = "profiling_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    target: Mapped[dict] = mapped_column(_JSONDocument, nullable=False)

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", values_callable=lambda e: [m.value for m in e]),
        default=JobStatus.PENDING,
        nullable=False,
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_phase: Mapped[str | None] = mapped_column(String(100), nullable=True)

    result: Mapped[dict | None] = mapped_column(_JSONDocument, nullable=True)
    # Truncated to 1000 chars by the queue
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(),
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Listing is newest first; cleanup filters on status + created_at
        Index("ix_profiling_jobs_created_at", "created_at"),
        Index("ix_profiling_jobs_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ProfilingJob(id={self.id!r}, status={self.status.value!r}, progress={self.progress})>"
