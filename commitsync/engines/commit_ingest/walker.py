"""History walker — time-ordered commit traversal with date/author filters."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from datetime import date, datetime, time, timezone
from pathlib import Path

import structlog

from commitsync.engines.commit_ingest.git import resolve_commit, stream_records
from commitsync.engines.commit_ingest.models import RawCommit
from commitsync.exceptions import GitCommandError, WalkError

log = structlog.get_logger("commitsync.engine.walker")

# sha, parents, author name, author email, committer timestamp, raw body
_LOG_FORMAT = "%H%x1f%P%x1f%an%x1f%ae%x1f%ct%x1f%B"
_FIELD_SEP = "\x1f"
_RECORD_SEP = b"\x1e"


# ── filters ───────────────────────────────────────────────────────────────


def _as_date(value: date | str | None) -> date | None:
    if value is None or isinstance(value, date):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise WalkError(f"invalid date {value!r}, expected YYYY-MM-DD") from exc


def parse_date_bounds(
    start_date: date | str | None, end_date: date | str | None
) -> tuple[datetime | None, datetime | None]:
    """Expand calendar dates to an inclusive UTC window.

    ``start`` becomes 00:00:00 and ``end`` becomes 23:59:59 of their day.
    """
    start = _as_date(start_date)
    end = _as_date(end_date)
    lower = datetime.combine(start, time(0, 0, 0), tzinfo=timezone.utc) if start else None
    upper = datetime.combine(end, time(23, 59, 59), tzinfo=timezone.utc) if end else None
    return lower, upper


def parse_author_filter(author_filter: str | None) -> list[str]:
    """Split a comma-separated filter, dropping blank tokens."""
    if not author_filter:
        return []
    return [token.strip() for token in author_filter.split(",") if token.strip()]


def author_matches(tokens: list[str], name: str, email: str) -> bool:
    """True if any token equals/is contained in *email* or is contained in *name*.

    An empty token list matches everyone.
    """
    if not tokens:
        return True
    return any(email == t or t in email or t in name for t in tokens)


def _parse_record(record: bytes) -> RawCommit:
    text = record.decode("utf-8", errors="replace").lstrip("\n")
    sha, parents, name, email, timestamp, message = text.split(_FIELD_SEP, 5)
    return RawCommit(
        sha=sha,
        parents=tuple(parents.split()),
        author_name=name,
        author_email=email,
        committed_at=datetime.fromtimestamp(int(timestamp), tz=timezone.utc),
        message=message.rstrip("\n"),
    )


# ── walker ────────────────────────────────────────────────────────────────


class HistoryWalker:
    """Produce commits newest-first for a branch (or all branches)."""

    async def _revisions(self, repo_path: Path, branch: str, all_branches: bool) -> list[str]:
        if all_branches:
            log.info("walker.all_branches", repo=str(repo_path))
            return ["--branches", "--remotes=origin"]

        for ref in (f"refs/remotes/origin/{branch}", f"refs/heads/{branch}"):
            if await resolve_commit(repo_path, ref) is not None:
                log.info("walker.branch", ref=ref)
                return [ref]

        if await resolve_commit(repo_path, "HEAD") is None:
            raise WalkError(f"branch {branch!r} not found and repository has no HEAD")
        log.warning("walker.branch_fallback_head", branch=branch, repo=str(repo_path))
        return ["HEAD"]

    async def walk(
        self,
        repo_path: Path,
        branch: str,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        author_filter: str | None = None,
        all_branches: bool = False,
    ) -> AsyncIterator[RawCommit]:
        """Yield matching commits, most recent commit time first.

        The sequence is one-shot: iterating again requires a new call.
        Raises :class:`WalkError` when refs or history cannot be read.
        """
        lower, upper = parse_date_bounds(start_date, end_date)
        tokens = parse_author_filter(author_filter)
        revisions = await self._revisions(repo_path, branch, all_branches)

        args = ["log", "--date-order", f"--format={_LOG_FORMAT}%x1e", *revisions, "--"]
        try:
            async with aclosing(
                stream_records(args, cwd=repo_path, separator=_RECORD_SEP)
            ) as records:
                async for record in records:
                    if not record.strip():
                        continue
                    commit = _parse_record(record)
                    if upper is not None and commit.committed_at > upper:
                        continue
                    # Time-descending: everything after this is older still.
                    if lower is not None and commit.committed_at < lower:
                        break
                    if not author_matches(tokens, commit.author_name, commit.author_email):
                        continue
                    yield commit
        except GitCommandError as exc:
            raise WalkError(f"failed to read history: {exc.stderr}") from exc
        except ValueError as exc:
            raise WalkError(f"unparseable history record: {exc}") from exc
