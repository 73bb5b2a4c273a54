"""Commit response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CommitFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    path: str
    old_path: str | None
    change_type: str
    additions: int
    deletions: int
    patch: str | None


class CommitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    repository_id: uuid.UUID
    sha: str
    author_name: str
    author_email: str
    commit_date: datetime
    message_title: str
    files_changed: int
    insertions: int
    deletions: int
    archive_key: str | None
    archive_size: int | None
    ticket_key: str | None
    ticket_url: str | None
    created_at: datetime


class CommitDetail(CommitResponse):
    message: str
    diff_summary: str
    files: list[CommitFileResponse]
