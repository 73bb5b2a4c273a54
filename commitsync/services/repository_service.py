"""RepositoryService — repository registration, lookups and sync bookkeeping."""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.dao.repository_dao import RepositoryDAO
from commitsync.models.repository import Repository
from commitsync.services import ConflictError, NotFoundError

log = structlog.get_logger("commitsync.service.repository")


class RepositoryService:
    """Stateless service for the repositories table."""

    def __init__(self, repository_dao: RepositoryDAO) -> None:
        self._repository_dao = repository_dao

    async def create(
        self,
        session: AsyncSession,
        *,
        name: str,
        url: str,
        branch: str = "main",
    ) -> Repository:
        """Register a remote repository.

        Raises :class:`ConflictError` if *url* is already registered.
        """
        existing = await self._repository_dao.get_by_url(session, url)
        if existing is not None:
            raise ConflictError(f"repository with url '{url}' already exists")
        repository = await self._repository_dao.create(session, name=name, url=url, branch=branch)
        log.info("repository.created", repository_id=str(repository.id), url=url)
        return repository

    async def get(self, session: AsyncSession, repository_id: uuid.UUID) -> Repository:
        """Return repository by ID.

        Raises :class:`NotFoundError` if not found.
        """
        repository = await self._repository_dao.get_by_id(session, repository_id)
        if repository is None:
            raise NotFoundError("repository not found")
        return repository

    async def list(
        self,
        session: AsyncSession,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> dict:
        page = await self._repository_dao.list_paginated(session, cursor, page_size)
        return {
            "data": page.data,
            "next_cursor": page.next_cursor,
            "has_more": page.has_more,
        }

    async def touch_last_sync(
        self,
        session: AsyncSession,
        repository_id: uuid.UUID,
        synced_at: datetime | None = None,
    ) -> None:
        await self._repository_dao.touch_last_sync(
            session, repository_id, synced_at or datetime.now(timezone.utc)
        )
