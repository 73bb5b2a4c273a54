"""Commit ingestion engine — clone, walk, diff and archive git history."""

from commitsync.engines.commit_ingest.archive import archive_key, build_archive
from commitsync.engines.commit_ingest.differ import DiffExtractor, TreeDiffer
from commitsync.engines.commit_ingest.models import (
    ChangedFile,
    ChangeType,
    CommitRecord,
    DiffResult,
    IngestRequest,
    IngestResult,
    JobStatus,
    RawCommit,
    RepositoryHandle,
)
from commitsync.engines.commit_ingest.runner import IngestRunner
from commitsync.engines.commit_ingest.walker import HistoryWalker
from commitsync.engines.commit_ingest.workspace import WorkspaceManager

__all__ = [
    "ChangeType",
    "ChangedFile",
    "CommitRecord",
    "DiffExtractor",
    "DiffResult",
    "HistoryWalker",
    "IngestRequest",
    "IngestResult",
    "IngestRunner",
    "JobStatus",
    "RawCommit",
    "RepositoryHandle",
    "TreeDiffer",
    "WorkspaceManager",
    "archive_key",
    "build_archive",
]
