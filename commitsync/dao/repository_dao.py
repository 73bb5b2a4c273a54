"""RepositoryDAO — repositories table operations."""

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.dao.base import BaseDAO, Page
from commitsync.models.repository import Repository


class RepositoryDAO(BaseDAO[Repository]):
    model = Repository

    async def get_by_url(self, session: AsyncSession, url: str) -> Repository | None:
        return await self.get_by_field(session, url=url)

    async def list_paginated(
        self,
        session: AsyncSession,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> Page[Repository]:
        """Registered repositories, most recently added first."""
        return await self.paginate(session, select(Repository), cursor, page_size)

    async def touch_last_sync(
        self, session: AsyncSession, pk: uuid.UUID, synced_at: datetime
    ) -> None:
        """Stamp the last successful synchronization time."""
        self._require_pk(pk)
        stmt = update(Repository).where(Repository.id == pk).values(last_sync_at=synced_at)
        await session.execute(stmt)
