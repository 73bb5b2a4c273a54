"""Job schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, model_validator

from commitsync.api.schemas.common import CamelModel


class JobFilters(CamelModel):
    """History filters stored on a job and applied by the walker."""

    start_date: date | None = None
    end_date: date | None = None
    author_filter: str | None = None
    all_branches: bool = False

    @model_validator(mode="after")
    def _check_range(self) -> JobFilters:
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    repository_id: uuid.UUID
    status: str
    start_date: date | None
    end_date: date | None
    author_filter: str | None
    all_branches: bool
    total_commits: int
    processed_commits: int
    error: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class JobDetail(JobResponse):
    running: bool


class CancelResponse(BaseModel):
    job_id: uuid.UUID
    cancel_requested: bool = True
