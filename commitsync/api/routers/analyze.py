"""Analyze router — accepts ingestion requests and hands them to the dispatcher."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commitsync.api.deps import (
    get_dispatcher,
    get_job_service,
    get_repository_service,
    get_session_factory,
)
from commitsync.api.schemas.analyze import AnalyzeRequest, AnalyzeResponse
from commitsync.dispatcher import JobDispatcher
from commitsync.engines.commit_ingest.models import IngestRequest, JobStatus
from commitsync.services import ConflictError, ValidationError
from commitsync.services.job_service import JobService
from commitsync.services.repository_service import RepositoryService

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=AnalyzeResponse, status_code=202)
async def analyze(
    body: AnalyzeRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    job_svc: JobService = Depends(get_job_service),
    repo_svc: RepositoryService = Depends(get_repository_service),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> AnalyzeResponse:
    """Start ingestion; progress is reported on the job record.

    ``repositoryId`` queues a new job carrying the request filters, ``jobId``
    (re)starts an existing one.
    """
    if body.job_id is not None and dispatcher.is_running(body.job_id):
        raise ConflictError(f"job {body.job_id} is already running")

    repo_url, branch = body.repo_url, body.branch
    # Committed before the task starts so pollers never see the old status.
    async with session_factory() as session:
        async with session.begin():
            if body.job_id is None:
                repository = await repo_svc.get(session, body.repository_id)
                job = await job_svc.create(
                    session,
                    repository.id,
                    start_date=body.start_date,
                    end_date=body.end_date,
                    author_filter=body.author_filter,
                    all_branches=body.all_branches,
                )
                job_id = job.id
            else:
                job_id = body.job_id
                repository_id = await job_svc.get_repository_id(session, job_id)
                repository = await repo_svc.get(session, repository_id)

            if repo_url is not None and repo_url != repository.url:
                raise ValidationError(
                    f"repoUrl {repo_url} does not match repository {repository.url}"
                )
            repo_url = repository.url
            branch = branch or repository.branch

            await job_svc.mark_status(session, job_id, JobStatus.CLONING.value)

    request = IngestRequest(
        job_id=job_id,
        repo_url=repo_url,
        branch=branch,
        credential_token=body.credential_token,
        start_date=body.start_date,
        end_date=body.end_date,
        author_filter=body.author_filter,
        all_branches=body.all_branches,
    )
    dispatcher.submit(request)
    log.info("analyze.accepted", job_id=str(job_id), repo_url=repo_url)
    return AnalyzeResponse(
        job_id=job_id,
        status="processing",
        message="Repository analysis started",
    )
