"""Unit tests for JobDispatcher."""

from __future__ import annotations

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from commitsync.dispatcher import JobDispatcher
from commitsync.engines.commit_ingest.models import IngestRequest, IngestResult, JobStatus
from commitsync.services import ConflictError, NotFoundError


def _session_factory():
    mock_session = AsyncMock()
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=False)
    mock_session.begin = MagicMock(return_value=mock_session)
    return MagicMock(return_value=mock_session)


def _request() -> IngestRequest:
    return IngestRequest(job_id=uuid.uuid4(), repo_url="https://example.com/r.git", branch="main")


class _BlockingRunner:
    """Runs until released or cancelled via its cancel event."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.cancel_events: list[asyncio.Event] = []

    async def run(self, session_factory, request, cancel_event=None) -> IngestResult:
        self.cancel_events.append(cancel_event)
        self.started.set()
        while not self.release.is_set():
            if cancel_event is not None and cancel_event.is_set():
                return IngestResult(
                    job_id=request.job_id, status=JobStatus.FAILED, error="cancelled"
                )
            await asyncio.sleep(0.005)
        return IngestResult(job_id=request.job_id, status=JobStatus.COMPLETED, total=1)


@pytest.fixture
def job_service():
    return AsyncMock()


@pytest.fixture
def runner():
    return _BlockingRunner()


@pytest.fixture
def dispatcher(runner, job_service):
    return JobDispatcher(_session_factory(), runner, job_service, job_timeout=5)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_runs_to_completion(self, dispatcher, runner):
        request = _request()
        task = dispatcher.submit(request)
        await runner.started.wait()
        assert dispatcher.is_running(request.job_id)
        assert dispatcher.running == [request.job_id]

        runner.release.set()
        result = await task
        assert result.status is JobStatus.COMPLETED
        await asyncio.sleep(0)
        assert not dispatcher.is_running(request.job_id)

    @pytest.mark.asyncio
    async def test_duplicate_submit_conflicts(self, dispatcher, runner):
        request = _request()
        dispatcher.submit(request)
        with pytest.raises(ConflictError):
            dispatcher.submit(request)
        runner.release.set()
        await dispatcher.wait(request.job_id)

    @pytest.mark.asyncio
    async def test_resubmit_after_finish(self, dispatcher, runner):
        request = _request()
        runner.release.set()
        await dispatcher.submit(request)
        await asyncio.sleep(0)
        second = await dispatcher.submit(request)
        assert second.status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_jobs_run_concurrently(self, dispatcher, runner):
        a, b = _request(), _request()
        dispatcher.submit(a)
        dispatcher.submit(b)
        await runner.started.wait()
        await asyncio.sleep(0.01)
        assert set(dispatcher.running) == {a.job_id, b.job_id}
        runner.release.set()
        await asyncio.gather(dispatcher.wait(a.job_id), dispatcher.wait(b.job_id))


class TestCancel:
    @pytest.mark.asyncio
    async def test_cooperative_cancel(self, dispatcher, runner):
        request = _request()
        task = dispatcher.submit(request)
        await runner.started.wait()

        dispatcher.cancel(request.job_id)
        result = await asyncio.wait_for(task, timeout=1)
        assert result.status is JobStatus.FAILED
        assert runner.cancel_events[0].is_set()

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, dispatcher):
        with pytest.raises(NotFoundError):
            dispatcher.cancel(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_wait_unknown_job(self, dispatcher):
        with pytest.raises(NotFoundError):
            await dispatcher.wait(uuid.uuid4())


class TestDeadlines:
    @pytest.mark.asyncio
    async def test_timeout_marks_failed(self, runner, job_service):
        dispatcher = JobDispatcher(_session_factory(), runner, job_service, job_timeout=0.05)
        request = _request()
        result = await dispatcher.submit(request)

        assert result.status is JobStatus.FAILED
        assert "deadline" in result.error
        job_service.mark_failed.assert_awaited_once()
        assert job_service.mark_failed.await_args.args[1] == request.job_id

    @pytest.mark.asyncio
    async def test_stop_cancels_and_marks_failed(self, dispatcher, runner, job_service):
        request = _request()
        dispatcher.submit(request)
        await runner.started.wait()

        await dispatcher.stop()
        assert dispatcher.running == []
        job_service.mark_failed.assert_awaited_once()
        assert job_service.mark_failed.await_args.args[2] == "job cancelled"

    @pytest.mark.asyncio
    async def test_runner_failure_not_written_twice(self, dispatcher, runner, job_service):
        request = _request()
        task = dispatcher.submit(request)
        await runner.started.wait()
        dispatcher.cancel(request.job_id)
        await task
        # the runner owns failures it observed
        job_service.mark_failed.assert_not_awaited()

    def test_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("COMMITSYNC_JOB_TIMEOUT", "120")
        assert JobDispatcher.timeout_from_env() == 120.0
        monkeypatch.setenv("COMMITSYNC_JOB_TIMEOUT", "0")
        assert JobDispatcher.timeout_from_env() is None
