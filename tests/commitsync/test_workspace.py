"""Tests for the working-copy manager, using local repositories as remotes."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone

import pytest

from commitsync.engines.commit_ingest.git import run_git
from commitsync.engines.commit_ingest.workspace import WorkspaceManager, repo_dir_name
from commitsync.exceptions import SyncError

T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def origin(make_repo):
    repo = make_repo("origin")
    repo.commit("first", T0, {"a.txt": "v1\n"})
    return repo


@pytest.fixture
def workspace(tmp_path):
    return WorkspaceManager(tmp_path / "work")


def _rev(repo_path, ref: str, origin) -> str:
    return origin.git("-C", str(repo_path), "rev-parse", ref)


class TestRepoDirName:
    def test_stable_and_url_only(self):
        url = "https://example.com/org/repo.git"
        assert repo_dir_name(url) == repo_dir_name(url)
        assert len(repo_dir_name(url)) == 32
        assert repo_dir_name(url) != repo_dir_name(url + "x")

    def test_same_path_for_any_branch(self, workspace):
        assert workspace.path_for("u") == workspace.work_dir / repo_dir_name("u")


class TestMaterialize:
    @pytest.mark.asyncio
    async def test_first_use_clones(self, workspace, origin):
        url = str(origin.path)
        handle = await workspace.materialize(url, "main")

        assert handle.url == url
        assert handle.path == workspace.path_for(url)
        assert handle.default_branch == "main"
        assert (handle.path / "a.txt").read_text() == "v1\n"
        assert _rev(handle.path, "HEAD", origin) == origin.head()

    @pytest.mark.asyncio
    async def test_reuse_fetches_new_commits(self, workspace, origin):
        url = str(origin.path)
        handle = await workspace.materialize(url, "main")
        new_sha = origin.commit("second", T0.replace(day=2), {"a.txt": "v2\n"})

        again = await workspace.materialize(url, "main")
        assert again.path == handle.path
        assert _rev(again.path, "refs/remotes/origin/main", origin) == new_sha
        assert _rev(again.path, "refs/heads/main", origin) == new_sha
        assert (again.path / "a.txt").read_text() == "v2\n"

    @pytest.mark.asyncio
    async def test_other_branch_reuses_same_copy(self, workspace, origin):
        origin.git("branch", "release")
        url = str(origin.path)
        first = await workspace.materialize(url, "main")
        second = await workspace.materialize(url, "release")
        assert first.path == second.path
        assert _rev(second.path, "refs/remotes/origin/release", origin) == origin.head()

    @pytest.mark.asyncio
    async def test_all_branches_fetch(self, workspace, origin):
        url = str(origin.path)
        await workspace.materialize(url, "main")
        origin.git("checkout", "-q", "-b", "feature")
        feature_sha = origin.commit("feature", T0.replace(day=3), {"f.txt": "f\n"})
        origin.git("checkout", "-q", "main")

        handle = await workspace.materialize(url, "main", fetch_all_branches=True)
        assert _rev(handle.path, "refs/remotes/origin/feature", origin) == feature_sha

    @pytest.mark.asyncio
    async def test_clone_failure_leaves_nothing_behind(self, workspace, tmp_path):
        url = str(tmp_path / "no-such-remote")
        with pytest.raises(SyncError, match="failed to clone"):
            await workspace.materialize(url, "main")
        assert not workspace.path_for(url).exists()
        leftovers = list(workspace.work_dir.iterdir()) if workspace.work_dir.exists() else []
        assert leftovers == []

    @pytest.mark.asyncio
    async def test_unknown_branch_fails_clone(self, workspace, origin):
        with pytest.raises(SyncError):
            await workspace.materialize(str(origin.path), "no-such-branch")

    @pytest.mark.asyncio
    async def test_fetch_failure_is_sync_error(self, workspace, origin):
        url = str(origin.path)
        await workspace.materialize(url, "main")
        with pytest.raises(SyncError, match="failed to fetch"):
            await workspace.materialize(url, "no-such-branch")

    @pytest.mark.asyncio
    async def test_corrupt_copy_raises(self, workspace, origin):
        url = str(origin.path)
        path = workspace.path_for(url)
        path.mkdir(parents=True)
        (path / "garbage").write_text("not a repository")

        with pytest.raises(SyncError, match="unreadable"):
            await workspace.materialize(url, "main")
        assert (path / "garbage").exists()

    @pytest.mark.asyncio
    async def test_corrupt_copy_recloned_when_enabled(self, tmp_path, origin):
        workspace = WorkspaceManager(tmp_path / "work", reclone_on_corrupt=True)
        url = str(origin.path)
        path = workspace.path_for(url)
        path.mkdir(parents=True)
        (path / "garbage").write_text("not a repository")

        handle = await workspace.materialize(url, "main")
        assert (handle.path / "a.txt").read_text() == "v1\n"
        quarantined = [p for p in workspace.work_dir.iterdir() if ".corrupt-" in p.name]
        assert len(quarantined) == 1
        assert (quarantined[0] / "garbage").exists()

    @pytest.mark.asyncio
    async def test_credentials_not_persisted(self, workspace, origin):
        from commitsync.core.credentials import GitCredential

        cred = GitCredential("x-access-token", "sekrit-token")
        handle = await workspace.materialize(str(origin.path), "main", cred)
        config = (handle.path / ".git" / "config").read_text()
        assert "sekrit-token" not in config
        assert "extraHeader" not in config


class TestLease:
    @pytest.mark.asyncio
    async def test_same_url_is_serialized(self, workspace):
        order: list[str] = []

        async def hold(name: str, delay: float) -> None:
            async with workspace.lease("https://example.com/r.git"):
                order.append(f"{name}-in")
                await asyncio.sleep(delay)
                order.append(f"{name}-out")

        first = asyncio.create_task(hold("a", 0.05))
        await asyncio.sleep(0)
        assert workspace.is_leased("https://example.com/r.git")
        await asyncio.gather(first, hold("b", 0))
        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert not workspace.is_leased("https://example.com/r.git")

    @pytest.mark.asyncio
    async def test_different_urls_do_not_block(self, workspace):
        async with workspace.lease("https://example.com/one.git"):
            async with workspace.lease("https://example.com/two.git") as path:
                assert path == workspace.path_for("https://example.com/two.git")


@pytest.fixture
def slow_git(tmp_path, monkeypatch):
    """Put a ``git`` on PATH that creates its last argument as a directory,
    records its pid and then hangs."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    pid_file = tmp_path / "git.pid"
    script = bin_dir / "git"
    script.write_text(
        "#!/bin/sh\n"
        'for last; do :; done\n'
        'case "$last" in /*) mkdir -p "$last" ;; esac\n'
        f'echo $$ > "{pid_file}"\n'
        "exec sleep 30\n"
    )
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ['PATH']}")
    return pid_file


async def _started(pid_file) -> int:
    for _ in range(250):
        if pid_file.exists() and pid_file.read_text().strip():
            return int(pid_file.read_text())
        await asyncio.sleep(0.02)
    raise AssertionError("git stand-in never started")


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.mark.skipif(os.name != "posix", reason="needs /bin/sh")
class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_git_child_is_killed(self, slow_git, tmp_path):
        task = asyncio.create_task(run_git(["fetch", "origin"], cwd=tmp_path))
        pid = await _started(slow_git)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not _alive(pid)

    @pytest.mark.asyncio
    async def test_cancelled_clone_leaves_no_staging(self, slow_git, workspace):
        url = "https://example.com/slow.git"
        task = asyncio.create_task(workspace.materialize(url, "main"))
        pid = await _started(slow_git)
        assert any(".clone-" in p.name for p in workspace.work_dir.iterdir())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not _alive(pid)
        assert list(workspace.work_dir.iterdir()) == []
        assert not workspace.path_for(url).exists()
