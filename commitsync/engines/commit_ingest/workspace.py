"""Working-copy manager — one local clone per remote URL, refreshed on reuse."""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog

from commitsync.core.credentials import GitCredential
from commitsync.engines.commit_ingest.git import run_git
from commitsync.engines.commit_ingest.models import RepositoryHandle
from commitsync.exceptions import GitCommandError, SyncError

log = structlog.get_logger("commitsync.engine.workspace")


def repo_dir_name(url: str) -> str:
    """Stable directory name for *url* (branch is deliberately not part of it)."""
    return hashlib.sha256(url.encode()).hexdigest()[:32]


class WorkspaceManager:
    """Materialize remote repositories under *work_dir*.

    The working copy for a URL is shared process-wide, so callers must hold
    :meth:`lease` for that URL while cloning, fetching, or reading from it.
    """

    def __init__(self, work_dir: Path, *, reclone_on_corrupt: bool = False) -> None:
        self._work_dir = Path(work_dir)
        self._reclone_on_corrupt = reclone_on_corrupt
        self._locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_env(cls) -> WorkspaceManager:
        work_dir = os.environ.get("COMMITSYNC_WORK_DIR", "/tmp/commitsync-repos")
        reclone = os.environ.get("COMMITSYNC_RECLONE_ON_CORRUPT", "0") == "1"
        return cls(Path(work_dir), reclone_on_corrupt=reclone)

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    def path_for(self, url: str) -> Path:
        return self._work_dir / repo_dir_name(url)

    # ── leasing ──────────────────────────────────────────────────────────

    def _lock_for(self, url: str) -> asyncio.Lock:
        key = repo_dir_name(url)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_leased(self, url: str) -> bool:
        return self._lock_for(url).locked()

    @asynccontextmanager
    async def lease(self, url: str) -> AsyncIterator[Path]:
        """Hold exclusive use of the working copy for *url*."""
        lock = self._lock_for(url)
        if lock.locked():
            log.info("workspace.lease_wait", url=url)
        async with lock:
            yield self.path_for(url)

    # ── materialize ──────────────────────────────────────────────────────

    async def materialize(
        self,
        url: str,
        branch: str,
        credential: GitCredential | None = None,
        fetch_all_branches: bool = False,
    ) -> RepositoryHandle:
        """Clone *url* on first use, otherwise fetch into the existing copy.

        Raises :class:`SyncError` on network/auth failure or when the
        existing copy cannot be opened.
        """
        path = self.path_for(url)
        if credential is None:
            log.warning("workspace.anonymous", url=url)
        else:
            log.info("workspace.authenticated", url=url, token_length=len(credential.password))

        if path.exists():
            if not await self._is_readable(path):
                if not self._reclone_on_corrupt:
                    raise SyncError(f"local working copy for {url} is unreadable: {path}")
                self._quarantine(path)
                log.warning("workspace.recloning_corrupt_copy", url=url)
                await self._clone(url, path, branch, credential)
            else:
                log.info("workspace.fetching", url=url, branch=branch, all_branches=fetch_all_branches)
                await self._fetch(path, branch, credential, fetch_all_branches)
        else:
            log.info("workspace.cloning", url=url, branch=branch)
            await self._clone(url, path, branch, credential)

        return RepositoryHandle(url=url, path=path, default_branch=await self._head_branch(path))

    async def _clone(
        self, url: str, path: Path, branch: str, credential: GitCredential | None
    ) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Clone next to the target and rename, so a failed clone never looks
        # like an existing working copy on the next run.
        staging = path.with_name(f"{path.name}.clone-{uuid.uuid4().hex[:8]}")
        try:
            await run_git(
                ["clone", "--branch", branch, "--", url, str(staging)],
                credential=credential,
            )
        except GitCommandError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            log.error("workspace.clone_failed", url=url, returncode=exc.returncode)
            raise SyncError(f"failed to clone repository {url}: {exc.stderr}") from exc
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            log.warning("workspace.clone_interrupted", url=url)
            raise
        os.replace(staging, path)
        log.info("workspace.cloned", url=url, path=str(path))

    async def _fetch(
        self,
        path: Path,
        branch: str,
        credential: GitCredential | None,
        all_branches: bool,
    ) -> None:
        try:
            if all_branches:
                await run_git(
                    ["fetch", "origin", "+refs/heads/*:refs/remotes/origin/*"],
                    cwd=path,
                    credential=credential,
                )
                return

            await run_git(
                ["fetch", "origin", f"+refs/heads/{branch}:refs/remotes/origin/{branch}"],
                cwd=path,
                credential=credential,
            )
            local_ref = f"refs/heads/{branch}"
            if await self._ref_exists(path, local_ref):
                await run_git(
                    ["update-ref", "-m", "fast-forward", local_ref, "FETCH_HEAD"], cwd=path
                )
            await run_git(["checkout", "--force"], cwd=path)
        except GitCommandError as exc:
            raise SyncError(f"failed to fetch updates for {branch}: {exc.stderr}") from exc

    @staticmethod
    async def _ref_exists(path: Path, ref: str) -> bool:
        out = await run_git(["for-each-ref", "--format=%(refname)", ref], cwd=path)
        return ref in out.decode().split()

    @staticmethod
    async def _is_readable(path: Path) -> bool:
        try:
            await run_git(["rev-parse", "--git-dir"], cwd=path)
            await run_git(["remote", "get-url", "origin"], cwd=path)
        except GitCommandError:
            return False
        return True

    @staticmethod
    async def _head_branch(path: Path) -> str | None:
        out = await run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=path, check=False)
        return out.decode().strip() or None

    def _quarantine(self, path: Path) -> None:
        target = path.with_name(f"{path.name}.corrupt-{uuid.uuid4().hex[:8]}")
        os.replace(path, target)
        log.warning("workspace.quarantined", path=str(path), moved_to=str(target))
