"""CommitService — idempotent commit recording and commit queries."""

import uuid
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.dao.commit_dao import CommitDAO, CommitFilters
from commitsync.exceptions import StoreError
from commitsync.models.commit import Commit
from commitsync.services import NotFoundError

if TYPE_CHECKING:
    from commitsync.engines.commit_ingest.models import CommitRecord

log = structlog.get_logger("commitsync.service.commit")


class CommitService:
    """Stateless service for the commits table."""

    def __init__(self, commit_dao: CommitDAO) -> None:
        self._commit_dao = commit_dao

    async def exists(self, session: AsyncSession, repository_id: uuid.UUID, sha: str) -> bool:
        return await self._commit_dao.exists_by_sha(session, repository_id, sha)

    async def record(
        self, session: AsyncSession, repository_id: uuid.UUID, record: "CommitRecord"
    ) -> bool:
        """Insert *record* and its changed files unless the sha is already recorded.

        Returns True if inserted, False on a (repository_id, sha) conflict.
        Raises :class:`StoreError` if the write fails.
        """
        try:
            new_id = await self._commit_dao.insert_if_absent(session, record.to_row(repository_id))
            if new_id is None:
                log.info("commit.already_recorded", sha=record.sha)
                return False
            await self._commit_dao.insert_files(session, record.file_rows())
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to record commit {record.sha}: {exc}") from exc
        return True

    async def list_by_repository(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
        filters: CommitFilters | None = None,
    ) -> dict:
        """Return paginated commits for a repository, optionally filtered."""
        page = await self._commit_dao.list_by_repository(
            session, repository_id, cursor, page_size, filters
        )
        return {
            "data": page.data,
            "next_cursor": page.next_cursor,
            "has_more": page.has_more,
        }

    async def list_authors(
        self, session: AsyncSession, repository_id: uuid.UUID | None = None
    ) -> list[dict]:
        rows = await self._commit_dao.list_authors(session, repository_id)
        return [
            {"email": row.author_email, "name": row.author_name, "commit_count": row.commit_count}
            for row in rows
        ]

    async def get_detail(self, session: AsyncSession, commit_id: uuid.UUID) -> Commit:
        """Return a commit with its changed files.

        Raises :class:`NotFoundError` if not found.
        """
        commit = await self._commit_dao.get_with_files(session, commit_id)
        if commit is None:
            raise NotFoundError("commit not found")
        return commit
