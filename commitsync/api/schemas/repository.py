"""Repository and author schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CreateRepositoryRequest(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    branch: str = Field(default="main", min_length=1)


class RepositoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    url: str
    branch: str
    last_sync_at: datetime | None
    created_at: datetime
    updated_at: datetime


class AuthorResponse(BaseModel):
    email: str
    name: str
    commit_count: int
