"""Dependency injection — session, service and dispatcher singletons."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from commitsync.core.database import create_schema
from commitsync.dao.analysis_job_dao import AnalysisJobDAO
from commitsync.dao.commit_dao import CommitDAO
from commitsync.dao.repository_dao import RepositoryDAO
from commitsync.dispatcher import JobDispatcher
from commitsync.engines.commit_ingest.differ import DiffExtractor
from commitsync.engines.commit_ingest.runner import IngestRunner
from commitsync.engines.commit_ingest.walker import HistoryWalker
from commitsync.engines.commit_ingest.workspace import WorkspaceManager
from commitsync.services.commit_service import CommitService
from commitsync.services.job_service import JobService
from commitsync.services.repository_service import RepositoryService
from commitsync.storage.blob_store import blob_store_from_env

# ---------------------------------------------------------------------------
# DAO singletons
# ---------------------------------------------------------------------------
_repository_dao = RepositoryDAO()
_job_dao = AnalysisJobDAO()
_commit_dao = CommitDAO()

# ---------------------------------------------------------------------------
# Service singletons
# ---------------------------------------------------------------------------
_repository_service = RepositoryService(_repository_dao)
_job_service = JobService(_job_dao)
_commit_service = CommitService(_commit_dao)

# ---------------------------------------------------------------------------
# Engine / session factory / dispatcher (initialised by app lifespan)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_dispatcher: JobDispatcher | None = None


def init_session_factory(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory. Called once at startup."""
    global _engine, _session_factory  # noqa: PLW0603
    url = database_url or os.environ.get(
        "COMMITSYNC_DATABASE_URL", "postgresql+asyncpg://localhost/commitsync"
    )
    _engine = create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


async def ensure_schema() -> None:
    """Create missing enum types and tables (COMMITSYNC_CREATE_SCHEMA=1)."""
    if _engine is None:
        raise RuntimeError("call init_session_factory() before ensure_schema()")
    async with _engine.begin() as conn:
        await create_schema(conn)


async def dispose_engine() -> None:
    """Dispose the async engine, closing all pooled connections."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def set_session_factory(factory: async_sessionmaker[AsyncSession]) -> None:
    """Override session factory (for testing)."""
    global _session_factory  # noqa: PLW0603
    _session_factory = factory


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("call init_session_factory() before handling requests")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    async with get_session_factory()() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Ingestion wiring
# ---------------------------------------------------------------------------


def build_runner() -> IngestRunner:
    """Assemble an IngestRunner from environment configuration."""
    return IngestRunner(
        _job_service,
        _commit_service,
        _repository_service,
        workspace=WorkspaceManager.from_env(),
        blob_store=blob_store_from_env(),
        walker=HistoryWalker(),
        differ=DiffExtractor.from_env(),
        ticket_base_url=IngestRunner.ticket_base_url_from_env(),
    )


def init_dispatcher(
    factory: async_sessionmaker[AsyncSession], runner: IngestRunner | None = None
) -> JobDispatcher:
    global _dispatcher  # noqa: PLW0603
    _dispatcher = JobDispatcher(
        factory,
        runner or build_runner(),
        _job_service,
        job_timeout=JobDispatcher.timeout_from_env(),
    )
    return _dispatcher


async def stop_dispatcher() -> None:
    global _dispatcher  # noqa: PLW0603
    if _dispatcher is not None:
        await _dispatcher.stop()
        _dispatcher = None


# ---------------------------------------------------------------------------
# Service getters (for Depends())
# ---------------------------------------------------------------------------


def get_dispatcher() -> JobDispatcher:
    if _dispatcher is None:
        raise RuntimeError("call init_dispatcher() before handling requests")
    return _dispatcher


def get_job_service() -> JobService:
    return _job_service


def get_commit_service() -> CommitService:
    return _commit_service


def get_repository_service() -> RepositoryService:
    return _repository_service
