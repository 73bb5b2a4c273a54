"""Analyze request/response schemas (camelCase on the wire)."""

from __future__ import annotations

import uuid

from pydantic import Field, model_validator

from commitsync.api.schemas.common import CamelModel
from commitsync.api.schemas.job import JobFilters


class AnalyzeRequest(JobFilters):
    """Start an existing job (``jobId``) or create one for ``repositoryId``.

    ``repoUrl`` and ``branch`` default to the repository row when omitted.
    """

    job_id: uuid.UUID | None = None
    repository_id: uuid.UUID | None = None
    repo_url: str | None = Field(default=None, min_length=1)
    branch: str | None = Field(default=None, min_length=1)
    credential_token: str | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _check_target(self) -> AnalyzeRequest:
        if (self.job_id is None) == (self.repository_id is None):
            raise ValueError("exactly one of jobId or repositoryId is required")
        return self


class AnalyzeResponse(CamelModel):
    job_id: uuid.UUID
    status: str = "processing"
    message: str
