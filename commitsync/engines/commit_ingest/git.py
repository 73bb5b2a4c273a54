"""Async git subprocess helpers.

All version-control access goes through the ``git`` executable.  Credentials
are injected per invocation with ``-c http.extraHeader=...`` so they never
land in ``.git/config``, and command lines are never included in errors or
logs.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

from commitsync.core.credentials import GitCredential
from commitsync.exceptions import GitCommandError

_READ_CHUNK = 64 * 1024


def _default_timeout() -> float:
    return float(os.environ.get("COMMITSYNC_GIT_TIMEOUT", "600"))


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # Never block on an interactive username/password prompt.
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_ASKPASS"] = "echo"
    env.setdefault("LC_ALL", "C")
    return env


def build_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    credential: GitCredential | None = None,
) -> list[str]:
    cmd = ["git", "-c", "core.quotePath=false"]
    if credential is not None:
        cmd += ["-c", f"http.extraHeader={credential.basic_auth_header()}"]
    if cwd is not None:
        cmd += ["-C", str(cwd)]
    cmd += list(args)
    return cmd


async def _reap(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await asyncio.shield(proc.wait())


async def run_git(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    credential: GitCredential | None = None,
    input: bytes | None = None,
    timeout: float | None = None,
    check: bool = True,
) -> bytes:
    """Run a git command and return its stdout.

    Raises :class:`GitCommandError` on non-zero exit (when *check* is set)
    or when the command exceeds *timeout* seconds.
    """
    cmd = build_command(args, cwd=cwd, credential=credential)
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=_git_env(),
    )
    limit = timeout if timeout is not None else _default_timeout()
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(input), timeout=limit)
    except asyncio.TimeoutError:
        await _reap(proc)
        raise GitCommandError(args[0], -1, f"timed out after {limit:g}s") from None
    except BaseException:
        # cancelled: the child must not outlive the working-copy lease
        await _reap(proc)
        raise
    if check and proc.returncode != 0:
        raise GitCommandError(
            args[0], proc.returncode or -1, stderr.decode(errors="replace").strip()
        )
    return stdout


async def stream_records(
    args: Sequence[str],
    *,
    cwd: Path,
    separator: bytes,
) -> AsyncIterator[bytes]:
    """Run a git command and yield its stdout split on *separator*.

    The process is killed if the consumer stops iterating early.  A non-zero
    exit after the stream is drained raises :class:`GitCommandError`.
    """
    cmd = build_command(args, cwd=cwd)
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=_git_env(),
    )
    assert proc.stdout is not None and proc.stderr is not None
    stderr_task = asyncio.create_task(proc.stderr.read())
    buffer = b""
    finished = False
    try:
        while True:
            chunk = await proc.stdout.read(_READ_CHUNK)
            if not chunk:
                break
            buffer += chunk
            *records, buffer = buffer.split(separator)
            for record in records:
                yield record
        if buffer.strip():
            yield buffer
        returncode = await proc.wait()
        stderr = await stderr_task
        finished = True
        if returncode != 0:
            raise GitCommandError(args[0], returncode, stderr.decode(errors="replace").strip())
    finally:
        if not finished:
            if proc.returncode is None:
                proc.kill()
            await proc.wait()
            stderr_task.cancel()
            await asyncio.gather(stderr_task, return_exceptions=True)


async def resolve_commit(repo_path: Path, ref: str) -> str | None:
    """Return the commit id *ref* points at, or None if it does not resolve."""
    out = await run_git(
        ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"],
        cwd=repo_path,
        check=False,
    )
    sha = out.decode().strip()
    return sha or None
