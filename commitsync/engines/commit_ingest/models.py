"""Data models for the commit ingestion engine."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path


class ChangeType(str, enum.Enum):
    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"
    RENAMED = "renamed"
    COPIED = "copied"


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    CLONING = "cloning"
    PARSING = "parsing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RepositoryHandle:
    """A materialized working copy of one remote URL."""

    url: str
    path: Path
    default_branch: str | None = None


@dataclass(frozen=True)
class RawCommit:
    """A single commit yielded by the history walker.

    Diff computation is deferred to :class:`DiffExtractor`.
    """

    sha: str
    parents: tuple[str, ...]
    author_name: str
    author_email: str
    committed_at: datetime
    message: str

    @property
    def message_title(self) -> str:
        lines = self.message.splitlines()
        return lines[0] if lines else ""

    @property
    def first_parent(self) -> str | None:
        return self.parents[0] if self.parents else None


@dataclass
class ChangedFile:
    """One file touched by a commit."""

    path: str
    change_type: ChangeType
    additions: int = 0
    deletions: int = 0
    old_path: str | None = None
    patch: str | None = None
    blob_id: str | None = None  # new-side blob, not persisted


@dataclass
class DiffResult:
    """Tree diff of a commit against its first parent."""

    files: list[ChangedFile] = field(default_factory=list)

    @property
    def files_changed(self) -> int:
        return len(self.files)

    @property
    def insertions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)

    @property
    def summary(self) -> str:
        return "\n".join(f"{f.change_type.name}: {f.path}" for f in self.files)


@dataclass
class CommitRecord:
    """A fully extracted commit, ready for the record store."""

    sha: str
    author_name: str
    author_email: str
    committed_at: datetime
    message: str
    message_title: str
    diff: DiffResult
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    archive_key: str | None = None
    archive_size: int | None = None
    ticket_key: str | None = None
    ticket_url: str | None = None

    def to_row(self, repository_id: uuid.UUID) -> dict:
        return {
            "id": self.id,
            "repository_id": repository_id,
            "sha": self.sha,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "commit_date": self.committed_at,
            "message": self.message,
            "message_title": self.message_title,
            "files_changed": self.diff.files_changed,
            "insertions": self.diff.insertions,
            "deletions": self.diff.deletions,
            "diff_summary": self.diff.summary,
            "archive_key": self.archive_key,
            "archive_size": self.archive_size,
            "ticket_key": self.ticket_key,
            "ticket_url": self.ticket_url,
        }

    def file_rows(self) -> list[dict]:
        return [
            {
                "commit_id": self.id,
                "position": position,
                "path": f.path,
                "old_path": f.old_path,
                "change_type": f.change_type.value,
                "additions": f.additions,
                "deletions": f.deletions,
                "patch": f.patch,
            }
            for position, f in enumerate(self.diff.files)
        ]


@dataclass
class IngestRequest:
    """Parameters of one analysis request."""

    job_id: uuid.UUID
    repo_url: str
    branch: str
    credential_token: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    author_filter: str | None = None
    all_branches: bool = False

    def __repr__(self) -> str:
        return (
            f"IngestRequest(job_id={self.job_id}, repo_url={self.repo_url!r}, "
            f"branch={self.branch!r}, all_branches={self.all_branches})"
        )


@dataclass
class IngestResult:
    """Summary of one orchestrator run."""

    job_id: uuid.UUID
    status: JobStatus = JobStatus.QUEUED
    total: int = 0
    processed: int = 0
    inserted: int = 0
    skipped: int = 0
    archived: int = 0
    error: str | None = None
