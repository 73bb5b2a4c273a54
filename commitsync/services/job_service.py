"""JobService — analysis job lifecycle and progress."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.dao.analysis_job_dao import AnalysisJobDAO
from commitsync.models.analysis_job import AnalysisJob
from commitsync.services import NotFoundError, ValidationError

# Forward edges of queued → cloning → parsing → completed.  ``cloning`` is
# the (re)start state and ``failed`` can be entered from anywhere.
_NEXT: dict[str, frozenset[str]] = {
    "cloning": frozenset({"queued", "cloning", "parsing", "completed", "failed"}),
    "parsing": frozenset({"cloning", "parsing"}),
    "completed": frozenset({"parsing"}),
}


class JobService:
    """Stateless service for analysis job state."""

    def __init__(self, job_dao: AnalysisJobDAO) -> None:
        self._job_dao = job_dao

    async def get(self, session: AsyncSession, job_id: uuid.UUID) -> AnalysisJob:
        """Return job by ID.

        Raises :class:`NotFoundError` if not found.
        """
        job = await self._job_dao.get_by_id(session, job_id)
        if job is None:
            raise NotFoundError("job not found")
        return job

    async def create(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        author_filter: str | None = None,
        all_branches: bool = False,
    ) -> AnalysisJob:
        """Queue a new job for *repository_id* with its history filters.

        Raises :class:`ValidationError` if *start_date* is after *end_date*.
        """
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")
        return await self._job_dao.create(
            session,
            repository_id=repository_id,
            start_date=start_date,
            end_date=end_date,
            author_filter=author_filter,
            all_branches=all_branches,
        )

    async def list_by_repository(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> dict:
        """Return paginated jobs for a repository, newest first."""
        page = await self._job_dao.list_by_repository(session, repository_id, cursor, page_size)
        return {
            "data": page.data,
            "next_cursor": page.next_cursor,
            "has_more": page.has_more,
        }

    async def get_repository_id(self, session: AsyncSession, job_id: uuid.UUID) -> uuid.UUID:
        repository_id = await self._job_dao.get_repository_id(session, job_id)
        if repository_id is None:
            raise NotFoundError("job not found")
        return repository_id

    async def mark_status(self, session: AsyncSession, job_id: uuid.UUID, status: str) -> None:
        """Move a job to ``cloning`` or ``parsing``.

        Entering ``cloning`` from any other state restarts the job: error,
        counters and completion stamp are cleared.  Raises
        :class:`ValidationError` for a transition out of pipeline order.
        """
        job = await self.get(session, job_id)
        allowed_from = _NEXT.get(status)
        if allowed_from is None or job.status not in allowed_from:
            raise ValidationError(f"illegal job transition: {job.status} -> {status}")
        if status == "cloning" and job.status != "cloning":
            await self._job_dao.update_status(
                session,
                job_id,
                status=status,
                started_at=datetime.now(timezone.utc),
                reset=True,
            )
            return
        await self._job_dao.update_status(session, job_id, status=status)

    async def set_total(self, session: AsyncSession, job_id: uuid.UUID, total: int) -> None:
        await self._job_dao.update_status(session, job_id, total_commits=total)

    async def set_progress(self, session: AsyncSession, job_id: uuid.UUID, processed: int) -> None:
        await self._job_dao.update_status(session, job_id, processed_commits=processed)

    async def mark_completed(self, session: AsyncSession, job_id: uuid.UUID) -> None:
        job = await self.get(session, job_id)
        if job.status not in _NEXT["completed"]:
            raise ValidationError(f"illegal job transition: {job.status} -> completed")
        await self._job_dao.update_status(
            session, job_id, status="completed", completed_at=datetime.now(timezone.utc)
        )

    async def mark_failed(self, session: AsyncSession, job_id: uuid.UUID, error: str) -> None:
        """Record a terminal failure with the error message verbatim."""
        await self._job_dao.update_status(
            session,
            job_id,
            status="failed",
            error=error or "unknown error",
            completed_at=datetime.now(timezone.utc),
        )
