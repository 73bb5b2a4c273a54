"""JobDispatcher — runs ingestion jobs as background asyncio tasks."""

from __future__ import annotations

import asyncio
import os
import uuid
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commitsync.engines.commit_ingest.models import IngestRequest, IngestResult, JobStatus
from commitsync.engines.commit_ingest.runner import IngestRunner
from commitsync.services import ConflictError, NotFoundError
from commitsync.services.job_service import JobService

logger = structlog.get_logger(__name__)


@dataclass
class _RunningJob:
    task: asyncio.Task[IngestResult]
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)


class JobDispatcher:
    """Registry of in-flight jobs, one task per job.

    The runner records its own failures; the dispatcher only writes
    ``failed`` when the run never got to observe the error (deadline
    exceeded or task cancelled).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        runner: IngestRunner,
        job_service: JobService,
        *,
        job_timeout: float | None = 3600.0,
    ) -> None:
        self._session_factory = session_factory
        self._runner = runner
        self._job_service = job_service
        self._job_timeout = job_timeout
        self._jobs: dict[uuid.UUID, _RunningJob] = {}

    @staticmethod
    def timeout_from_env() -> float | None:
        value = float(os.environ.get("COMMITSYNC_JOB_TIMEOUT", "3600"))
        return value if value > 0 else None

    def is_running(self, job_id: uuid.UUID) -> bool:
        job = self._jobs.get(job_id)
        return job is not None and not job.task.done()

    @property
    def running(self) -> list[uuid.UUID]:
        return [job_id for job_id in self._jobs if self.is_running(job_id)]

    def submit(self, request: IngestRequest) -> asyncio.Task[IngestResult]:
        """Start *request* in the background and return its task.

        Raises :class:`ConflictError` if the same job is already running.
        """
        if self.is_running(request.job_id):
            raise ConflictError(f"job {request.job_id} is already running")

        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            self._execute(request, cancel_event), name=f"ingest-{request.job_id}"
        )
        self._jobs[request.job_id] = _RunningJob(task=task, cancel_event=cancel_event)
        task.add_done_callback(lambda t, job_id=request.job_id: self._forget(job_id, t))
        logger.info("dispatcher.submitted", job_id=str(request.job_id), request=repr(request))
        return task

    def cancel(self, job_id: uuid.UUID) -> None:
        """Ask a running job to stop at its next commit boundary.

        Raises :class:`NotFoundError` if the job is not running here.
        """
        job = self._jobs.get(job_id)
        if job is None or job.task.done():
            raise NotFoundError(f"job {job_id} is not running")
        job.cancel_event.set()
        logger.info("dispatcher.cancel_requested", job_id=str(job_id))

    async def wait(self, job_id: uuid.UUID) -> IngestResult:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"job {job_id} is not running")
        return await job.task

    async def stop(self) -> None:
        """Cancel every running job and wait for them to exit."""
        tasks = [job.task for job in self._jobs.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._jobs.clear()
        logger.info("dispatcher.stopped", cancelled=len(tasks))

    def _forget(self, job_id: uuid.UUID, task: asyncio.Task) -> None:
        job = self._jobs.get(job_id)
        if job is not None and job.task is task:
            del self._jobs[job_id]

    async def _execute(self, request: IngestRequest, cancel_event: asyncio.Event) -> IngestResult:
        run = self._runner.run(self._session_factory, request, cancel_event)
        try:
            return await asyncio.wait_for(run, timeout=self._job_timeout)
        except asyncio.TimeoutError:
            error = f"job exceeded {self._job_timeout:.0f}s deadline"
            logger.error("dispatcher.timeout", job_id=str(request.job_id), timeout=self._job_timeout)
            await self._fail(request.job_id, error)
            return IngestResult(job_id=request.job_id, status=JobStatus.FAILED, error=error)
        except asyncio.CancelledError:
            logger.warning("dispatcher.cancelled", job_id=str(request.job_id))
            await asyncio.shield(self._fail(request.job_id, "job cancelled"))
            raise

    async def _fail(self, job_id: uuid.UUID, error: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._job_service.mark_failed(session, job_id, error)
        except Exception:
            logger.exception("dispatcher.status_update_failed", job_id=str(job_id))
