"""IngestRunner — drives one analysis job through clone, walk, diff, archive and store."""

from __future__ import annotations

import asyncio
import os
import uuid
from pathlib import Path

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commitsync.core.credentials import CredentialProvider, TokenCredentialProvider
from commitsync.engines.commit_ingest.archive import (
    ARCHIVE_CONTENT_TYPE,
    archive_key,
    build_archive,
)
from commitsync.engines.commit_ingest.differ import DiffExtractor, TreeDiffer
from commitsync.engines.commit_ingest.models import (
    ChangeType,
    CommitRecord,
    IngestRequest,
    IngestResult,
    JobStatus,
    RawCommit,
)
from commitsync.engines.commit_ingest.tickets import extract_ticket_key, ticket_url
from commitsync.engines.commit_ingest.walker import HistoryWalker
from commitsync.engines.commit_ingest.workspace import WorkspaceManager
from commitsync.exceptions import IngestCancelled
from commitsync.services import ValidationError
from commitsync.services.commit_service import CommitService
from commitsync.services.job_service import JobService
from commitsync.services.repository_service import RepositoryService
from commitsync.storage.blob_store import BlobStore

log = structlog.get_logger("commitsync.engine.ingest")


class IngestRunner:
    """Orchestration layer: engines + Service-layer DB writes for one job.

    Status flow is ``queued → cloning → parsing → completed``; any error
    moves the job to ``failed`` with the message recorded once, and the run
    returns instead of raising.
    """

    def __init__(
        self,
        job_service: JobService,
        commit_service: CommitService,
        repository_service: RepositoryService,
        *,
        workspace: WorkspaceManager,
        blob_store: BlobStore,
        walker: HistoryWalker | None = None,
        differ: TreeDiffer | None = None,
        credential_provider: CredentialProvider | None = None,
        ticket_base_url: str | None = None,
    ) -> None:
        self._job_service = job_service
        self._commit_service = commit_service
        self._repository_service = repository_service
        self._workspace = workspace
        self._blob_store = blob_store
        self._walker = walker or HistoryWalker()
        self._differ = differ or DiffExtractor.from_env()
        self._credentials = credential_provider or TokenCredentialProvider()
        self._ticket_base_url = ticket_base_url

    @classmethod
    def ticket_base_url_from_env(cls) -> str | None:
        return os.environ.get("COMMITSYNC_TICKET_BASE_URL") or None

    async def run(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        request: IngestRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestResult:
        """Run one job to a terminal state and return its summary."""
        result = IngestResult(job_id=request.job_id)
        with structlog.contextvars.bound_contextvars(job_id=str(request.job_id)):
            try:
                await self._run(session_factory, request, cancel_event, result)
            except Exception as exc:
                result.status = JobStatus.FAILED
                result.error = str(exc) or type(exc).__name__
                log.error(
                    "ingest.failed",
                    error=result.error,
                    error_type=type(exc).__name__,
                    processed=result.processed,
                    total=result.total,
                )
                await self._mark_failed(session_factory, request.job_id, result.error)
            else:
                result.status = JobStatus.COMPLETED
                log.info(
                    "ingest.completed",
                    total=result.total,
                    inserted=result.inserted,
                    skipped=result.skipped,
                    archived=result.archived,
                )
        return result

    async def _run(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        request: IngestRequest,
        cancel_event: asyncio.Event | None,
        result: IngestResult,
    ) -> None:
        job_id = request.job_id
        async with session_factory() as session:
            repository_id = await self._job_service.get_repository_id(session, job_id)
            repository = await self._repository_service.get(session, repository_id)
        if repository.url != request.repo_url:
            raise ValidationError(
                f"job {job_id} belongs to {repository.url}, not {request.repo_url}"
            )

        async with self._workspace.lease(request.repo_url):
            result.status = JobStatus.CLONING
            async with session_factory() as session:
                async with session.begin():
                    await self._job_service.mark_status(session, job_id, JobStatus.CLONING.value)

            credential = self._credentials.resolve(request.credential_token)
            handle = await self._workspace.materialize(
                request.repo_url,
                request.branch,
                credential,
                fetch_all_branches=request.all_branches,
            )

            result.status = JobStatus.PARSING
            async with session_factory() as session:
                async with session.begin():
                    await self._job_service.mark_status(session, job_id, JobStatus.PARSING.value)

            commits = [
                commit
                async for commit in self._walker.walk(
                    handle.path,
                    request.branch,
                    start_date=request.start_date,
                    end_date=request.end_date,
                    author_filter=request.author_filter,
                    all_branches=request.all_branches,
                )
            ]
            result.total = len(commits)
            async with session_factory() as session:
                async with session.begin():
                    await self._job_service.set_total(session, job_id, result.total)
            log.info("ingest.walked", total=result.total, path=str(handle.path))

            for idx, commit in enumerate(commits):
                if cancel_event is not None and cancel_event.is_set():
                    raise IngestCancelled(
                        f"cancelled after {result.processed} of {result.total} commits"
                    )
                await self._process_commit(
                    session_factory, job_id, repository_id, handle.path, commit, idx, result
                )

        async with session_factory() as session:
            async with session.begin():
                await self._job_service.mark_completed(session, job_id)
                await self._repository_service.touch_last_sync(session, repository_id)

    async def _process_commit(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job_id: uuid.UUID,
        repository_id: uuid.UUID,
        repo_path: Path,
        commit: RawCommit,
        idx: int,
        result: IngestResult,
    ) -> None:
        async with session_factory() as session:
            recorded = await self._commit_service.exists(session, repository_id, commit.sha)
        if recorded:
            result.skipped += 1
            result.processed = idx + 1
            async with session_factory() as session:
                async with session.begin():
                    await self._job_service.set_progress(session, job_id, result.processed)
            return

        record = await self._extract(repository_id, repo_path, commit)
        if record.archive_key is not None:
            result.archived += 1

        async with session_factory() as session:
            async with session.begin():
                inserted = await self._commit_service.record(session, repository_id, record)
                await self._job_service.set_progress(session, job_id, idx + 1)

        result.processed = idx + 1
        if inserted:
            result.inserted += 1
            log.debug(
                "ingest.commit_recorded",
                sha=commit.sha,
                files=record.diff.files_changed,
                archived=record.archive_key is not None,
            )
        else:
            result.skipped += 1

    async def _extract(
        self, repository_id: uuid.UUID, repo_path: Path, commit: RawCommit
    ) -> CommitRecord:
        diff = await self._differ.diff(repo_path, commit)
        record = CommitRecord(
            sha=commit.sha,
            author_name=commit.author_name,
            author_email=commit.author_email,
            committed_at=commit.committed_at,
            message=commit.message,
            message_title=commit.message_title,
            diff=diff,
        )

        live = [f for f in diff.files if f.change_type is not ChangeType.DELETED]
        if live:
            contents = await self._differ.read_blobs(repo_path, live)
            entries = [(f.path, contents.get(f.path)) for f in live]
            data = await asyncio.to_thread(build_archive, entries)
            if data is not None:
                key = archive_key(repository_id, commit.sha)
                await self._blob_store.put(key, data, ARCHIVE_CONTENT_TYPE)
                record.archive_key = key
                record.archive_size = len(data)

        record.ticket_key = extract_ticket_key(commit.message)
        record.ticket_url = ticket_url(record.ticket_key, self._ticket_base_url)
        return record

    async def _mark_failed(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job_id: uuid.UUID,
        error: str,
    ) -> None:
        try:
            async with session_factory() as session:
                async with session.begin():
                    await self._job_service.mark_failed(session, job_id, error)
        except Exception:
            log.exception("ingest.status_update_failed")
