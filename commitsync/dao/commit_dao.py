"""CommitDAO — commits + commit_files table operations."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import Row, Select, exists, func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from commitsync.dao.base import BaseDAO, Page
from commitsync.models.commit import Commit
from commitsync.models.commit_file import CommitFile


@dataclass
class CommitFilters:
    """Optional filters for commit list queries.

    Dates are whole UTC days, both ends inclusive.
    """

    author_email: str | None = None  # substring match
    start_date: date | None = None
    end_date: date | None = None


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class CommitDAO(BaseDAO[Commit]):
    model = Commit
    sort_column = "commit_date"

    # ── private ────────────────────────────────────────────────────────────

    @staticmethod
    def _apply_filters(query: Select, filters: CommitFilters) -> Select:
        if filters.author_email:
            query = query.where(
                Commit.author_email.contains(filters.author_email, autoescape=True)
            )
        if filters.start_date is not None:
            query = query.where(Commit.commit_date >= _day_start(filters.start_date))
        if filters.end_date is not None:
            query = query.where(
                Commit.commit_date < _day_start(filters.end_date + timedelta(days=1))
            )
        return query

    # ── read ──────────────────────────────────────────────────────────────

    async def exists_by_sha(
        self, session: AsyncSession, repository_id: uuid.UUID, sha: str
    ) -> bool:
        """Check whether (repository_id, sha) has been recorded (Orchestrator)."""
        stmt = select(
            exists().where(Commit.repository_id == repository_id, Commit.sha == sha)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def list_by_repository(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
        filters: CommitFilters | None = None,
    ) -> Page[Commit]:
        """Paginated commits for a repository, newest commit first (API)."""
        query = select(Commit).where(Commit.repository_id == repository_id)
        if filters is not None:
            query = self._apply_filters(query, filters)
        return await self.paginate(session, query, cursor, page_size)

    async def count_by_repository(self, session: AsyncSession, repository_id: uuid.UUID) -> int:
        return await self.count(
            session, select(Commit).where(Commit.repository_id == repository_id)
        )

    async def list_authors(
        self, session: AsyncSession, repository_id: uuid.UUID | None = None
    ) -> list[Row]:
        """Distinct (author_email, author_name) pairs with their commit counts.

        Busiest author first.  Scoped to one repository when *repository_id*
        is given, otherwise across all repositories.
        """
        commit_count = func.count().label("commit_count")
        stmt = select(Commit.author_email, Commit.author_name, commit_count).group_by(
            Commit.author_email, Commit.author_name
        )
        if repository_id is not None:
            stmt = stmt.where(Commit.repository_id == repository_id)
        stmt = stmt.order_by(commit_count.desc(), Commit.author_email, Commit.author_name)
        result = await session.execute(stmt)
        return list(result.all())

    async def get_with_files(self, session: AsyncSession, pk: uuid.UUID) -> Commit | None:
        self._require_pk(pk)
        stmt = select(Commit).where(Commit.id == pk).options(selectinload(Commit.files))
        result = await session.execute(stmt)
        return result.scalars().first()

    # ── write ─────────────────────────────────────────────────────────────

    async def insert_if_absent(
        self, session: AsyncSession, values: dict[str, Any]
    ) -> uuid.UUID | None:
        """INSERT ... ON CONFLICT (repository_id, sha) DO NOTHING.

        Returns the new row id, or None if the commit was already recorded.
        """
        stmt = (
            pg_insert(Commit)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["repository_id", "sha"])
            .returning(Commit.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_files(self, session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        """Insert changed-file rows for a commit. Returns the number of rows."""
        if not rows:
            return 0
        await session.execute(insert(CommitFile), rows)
        return len(rows)
