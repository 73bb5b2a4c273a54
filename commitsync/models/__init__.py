"""SQLAlchemy ORM models — one file per table."""

from commitsync.models.analysis_job import AnalysisJob
from commitsync.models.commit import Commit
from commitsync.models.commit_file import CommitFile
from commitsync.models.repository import Repository

__all__ = [
    "AnalysisJob",
    "Commit",
    "CommitFile",
    "Repository",
]
