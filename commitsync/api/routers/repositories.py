"""Repositories router — registration and per-repository job history."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.api.deps import get_job_service, get_repository_service, get_session
from commitsync.api.schemas.common import PaginatedResponse
from commitsync.api.schemas.job import JobFilters, JobResponse
from commitsync.api.schemas.repository import CreateRepositoryRequest, RepositoryResponse
from commitsync.services.job_service import JobService
from commitsync.services.repository_service import RepositoryService

router = APIRouter()


@router.get("/repositories", response_model=PaginatedResponse[RepositoryResponse])
async def list_repositories(
    cursor: str | None = Query(None),
    page_size: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
) -> PaginatedResponse[RepositoryResponse]:
    result = await svc.list(session, cursor=cursor, page_size=page_size)
    return PaginatedResponse[RepositoryResponse].from_result(result)


@router.post("/repositories", response_model=RepositoryResponse, status_code=201)
async def create_repository(
    body: CreateRepositoryRequest,
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
) -> RepositoryResponse:
    repository = await svc.create(session, name=body.name, url=body.url, branch=body.branch)
    return RepositoryResponse.model_validate(repository)


@router.get("/repositories/{repository_id}", response_model=RepositoryResponse)
async def get_repository(
    repository_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: RepositoryService = Depends(get_repository_service),
) -> RepositoryResponse:
    repository = await svc.get(session, repository_id)
    return RepositoryResponse.model_validate(repository)


@router.get(
    "/repositories/{repository_id}/jobs",
    response_model=PaginatedResponse[JobResponse],
)
async def list_repository_jobs(
    repository_id: uuid.UUID,
    cursor: str | None = Query(None),
    page_size: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    repo_svc: RepositoryService = Depends(get_repository_service),
    svc: JobService = Depends(get_job_service),
) -> PaginatedResponse[JobResponse]:
    await repo_svc.get(session, repository_id)
    result = await svc.list_by_repository(
        session, repository_id, cursor=cursor, page_size=page_size
    )
    return PaginatedResponse[JobResponse].from_result(result)


@router.post(
    "/repositories/{repository_id}/jobs",
    response_model=JobResponse,
    status_code=201,
)
async def create_repository_job(
    repository_id: uuid.UUID,
    body: JobFilters,
    session: AsyncSession = Depends(get_session),
    repo_svc: RepositoryService = Depends(get_repository_service),
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    """Queue a job without starting it; start it later with ``POST /analyze``."""
    await repo_svc.get(session, repository_id)
    job = await svc.create(
        session,
        repository_id,
        start_date=body.start_date,
        end_date=body.end_date,
        author_filter=body.author_filter,
        all_branches=body.all_branches,
    )
    return JobResponse.model_validate(job)
