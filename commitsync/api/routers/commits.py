"""Commits router — read access to ingested history."""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.api.deps import get_commit_service, get_repository_service, get_session
from commitsync.api.schemas.commit import CommitDetail, CommitResponse
from commitsync.api.schemas.common import PaginatedResponse
from commitsync.api.schemas.repository import AuthorResponse
from commitsync.dao.commit_dao import CommitFilters
from commitsync.services import ValidationError
from commitsync.services.commit_service import CommitService
from commitsync.services.repository_service import RepositoryService

router = APIRouter()


@router.get(
    "/repositories/{repository_id}/commits",
    response_model=PaginatedResponse[CommitResponse],
)
async def list_commits(
    repository_id: uuid.UUID,
    cursor: str | None = Query(None),
    page_size: int = Query(20, ge=1, le=100),
    author_email: str | None = Query(None, alias="authorEmail"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    session: AsyncSession = Depends(get_session),
    repo_svc: RepositoryService = Depends(get_repository_service),
    svc: CommitService = Depends(get_commit_service),
) -> PaginatedResponse[CommitResponse]:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate")
    await repo_svc.get(session, repository_id)
    filters = CommitFilters(author_email=author_email, start_date=start_date, end_date=end_date)
    result = await svc.list_by_repository(
        session, repository_id, cursor=cursor, page_size=page_size, filters=filters
    )
    return PaginatedResponse[CommitResponse].from_result(result)


@router.get("/authors", response_model=list[AuthorResponse])
async def list_authors(
    repository_id: uuid.UUID | None = Query(None, alias="repositoryId"),
    session: AsyncSession = Depends(get_session),
    repo_svc: RepositoryService = Depends(get_repository_service),
    svc: CommitService = Depends(get_commit_service),
) -> list[AuthorResponse]:
    """Commit authors with their commit counts, busiest first."""
    if repository_id is not None:
        await repo_svc.get(session, repository_id)
    rows = await svc.list_authors(session, repository_id)
    return [AuthorResponse(**row) for row in rows]


@router.get("/commits/{commit_id}", response_model=CommitDetail)
async def get_commit(
    commit_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: CommitService = Depends(get_commit_service),
) -> CommitDetail:
    commit = await svc.get_detail(session, commit_id)
    return CommitDetail.model_validate(commit)
