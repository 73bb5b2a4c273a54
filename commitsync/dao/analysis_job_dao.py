"""AnalysisJobDAO — analysis_jobs table operations."""

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.dao.base import BaseDAO, Page
from commitsync.models.analysis_job import AnalysisJob


class AnalysisJobDAO(BaseDAO[AnalysisJob]):
    model = AnalysisJob

    # ── read ──────────────────────────────────────────────────────────────

    async def get_repository_id(
        self, session: AsyncSession, pk: uuid.UUID
    ) -> uuid.UUID | None:
        """Return the job's target repository id (Orchestrator)."""
        self._require_pk(pk)
        stmt = select(AnalysisJob.repository_id).where(AnalysisJob.id == pk)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_repository(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> Page[AnalysisJob]:
        query = select(AnalysisJob).where(AnalysisJob.repository_id == repository_id)
        return await self.paginate(session, query, cursor, page_size)

    # ── write ─────────────────────────────────────────────────────────────

    async def update_status(
        self,
        session: AsyncSession,
        pk: uuid.UUID,
        *,
        status: str | None = None,
        error: str | None = None,
        total_commits: int | None = None,
        processed_commits: int | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        reset: bool = False,
    ) -> bool:
        """Update status and/or counters. Only provided (non-None) fields change.

        ``reset=True`` clears the error, completion stamp and counters first
        (used when a finished or abandoned job is started again).

        Returns False if the job does not exist.
        """
        self._require_pk(pk)
        values: dict = {}
        if reset:
            values.update(error=None, completed_at=None, total_commits=0, processed_commits=0)
        if status is not None:
            values["status"] = status
        if error is not None:
            values["error"] = error
        if total_commits is not None:
            values["total_commits"] = total_commits
        if processed_commits is not None:
            values["processed_commits"] = processed_commits
        if started_at is not None:
            values["started_at"] = started_at
        if completed_at is not None:
            values["completed_at"] = completed_at
        if not values:
            raise ValueError("update_status() requires at least one field")

        stmt = (
            update(AnalysisJob)
            .where(AnalysisJob.id == pk)
            .values(**values)
            .returning(AnalysisJob.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
