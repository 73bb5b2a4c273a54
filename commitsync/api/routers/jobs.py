"""Jobs router."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.api.deps import get_dispatcher, get_job_service, get_session
from commitsync.api.schemas.job import CancelResponse, JobDetail, JobResponse
from commitsync.dispatcher import JobDispatcher
from commitsync.services.job_service import JobService

router = APIRouter()


@router.get("/{job_id}", response_model=JobDetail)
async def get_job(
    job_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: JobService = Depends(get_job_service),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> JobDetail:
    job = await svc.get(session, job_id)
    return JobDetail(
        **JobResponse.model_validate(job).model_dump(),
        running=dispatcher.is_running(job_id),
    )


@router.post("/{job_id}/cancel", response_model=CancelResponse, status_code=202)
async def cancel_job(
    job_id: uuid.UUID,
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> CancelResponse:
    dispatcher.cancel(job_id)
    return CancelResponse(job_id=job_id)
