# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Two engines against the same PostgreSQL database:
#
#   async engine (asyncpg)   — FastAPI request handlers (health check)
#   sync engine  (psycopg2)  — Celery workers and the SQL job store
#
# DESIGN DECISION: The job store is synchronous.
# Job bookkeeping is a handful of single-row reads and writes per run.
# The queue calls it directly from the worker and through
# `asyncio.to_thread` from the API, so only model and source calls ever
# suspend the event loop.
#
# DESIGN DECISION: Both engines are created lazily.
# With JOB_STORE_BACKEND=memory (tests, local runs) no database driver is
# ever imported or connected.
#
# SESSION LIFECYCLE (both flavours):
#   create → yield → commit (or rollback on error) → close
# =============================================================================

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from profiler.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# expire_on_commit=False: attributes stay readable after commit, which
# matters in async code where a lazy refresh cannot run implicitly.
# ---------------------------------------------------------------------------

_async_session_factory = None


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """Lazily create and cache the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
        )
        _async_session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


# ---------------------------------------------------------------------------
# Sync Engine
# ---------------------------------------------------------------------------

_sync_engine = None
_sync_session_factory = None


def get_sync_engine():
    """Lazily create and cache the sync SQLAlchemy engine."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_engine(
            settings.database_url_sync,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
        )
    return _sync_engine


def _get_sync_session_factory():
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=get_sync_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """
    Sync session for workers and the SQL job store.

        with get_sync_session() as session:
            row = session.get(ProfilingJob, job_id)
            row.progress = 50
            # commits on exit, rolls back on exception
    """
    session = _get_sync_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
