"""Diff extractor — first-parent tree diff with per-file line statistics.

Two ``git diff-tree`` passes with identical rename/copy options are made per
commit: ``--raw -z`` gives the authoritative file list and status codes, and
``-p`` gives the unified diff whose hunks are scanned for line counts and
optional patch text.  Both passes enumerate file pairs in the same order.
"""

from __future__ import annotations

import codecs
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import structlog

from commitsync.engines.commit_ingest.git import run_git
from commitsync.engines.commit_ingest.models import ChangedFile, ChangeType, DiffResult, RawCommit
from commitsync.exceptions import DiffError, GitCommandError

log = structlog.get_logger("commitsync.engine.differ")

_STATUS_MAP: dict[str, ChangeType] = {
    "A": ChangeType.ADDED,
    "D": ChangeType.DELETED,
    "M": ChangeType.MODIFIED,
    "R": ChangeType.RENAMED,
    "C": ChangeType.COPIED,
}

_NULL_OID = re.compile(r"^0+$")
_GITLINK_MODE = "160000"
_DIFF_OPTIONS = ["-r", "-M", "-C", "--no-commit-id", "--no-color", "--no-ext-diff"]


class TreeDiffer(Protocol):
    """Given a commit, yield changed paths with classification and line deltas."""

    async def diff(self, repo_path: Path, commit: RawCommit) -> DiffResult: ...

    async def read_blobs(self, repo_path: Path, files: Iterable[ChangedFile]) -> dict[str, bytes]: ...


def classify(status: str) -> ChangeType:
    """Map a git raw status (``M``, ``R087`` …) to a :class:`ChangeType`.

    Statuses outside A/D/M/R/C (type change, unmerged, unknown) collapse to
    ``modified``; that loss of detail is intentional.
    """
    change = _STATUS_MAP.get(status[:1])
    if change is None:
        log.debug("differ.status_normalized", status=status)
        return ChangeType.MODIFIED
    return change


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of unusual path names."""
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        raw = codecs.escape_decode(path[1:-1].encode("utf-8"))[0]
        return raw.decode("utf-8", errors="replace")
    return path


# ── raw pass ──────────────────────────────────────────────────────────────


def parse_raw(output: bytes) -> list[ChangedFile]:
    """Parse ``git diff-tree --raw -z --no-abbrev`` output into ChangedFiles."""
    tokens = output.decode("utf-8", errors="replace").split("\0")
    files: list[ChangedFile] = []
    i = 0
    while i < len(tokens):
        header = tokens[i]
        i += 1
        if not header.startswith(":"):
            continue
        _old_mode, new_mode, _old_oid, new_oid, status = header[1:].split(" ", 4)
        change = classify(status)
        if status[:1] in ("R", "C"):
            old_path, path = tokens[i], tokens[i + 1]
            i += 2
        else:
            old_path, path = None, tokens[i]
            i += 1
        blob_id = None
        if change is not ChangeType.DELETED and not _NULL_OID.match(new_oid) and new_mode != _GITLINK_MODE:
            blob_id = new_oid
        files.append(ChangedFile(path=path, change_type=change, old_path=old_path, blob_id=blob_id))
    return files


# ── patch pass ────────────────────────────────────────────────────────────


@dataclass
class PatchBlock:
    """One ``diff --git`` section of a unified diff."""

    lines: list[str] = field(default_factory=list)
    old_path: str | None = None
    new_path: str | None = None
    additions: int = 0
    deletions: int = 0

    @property
    def path(self) -> str | None:
        return self.new_path or self.old_path

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def _strip_prefix(value: str, prefix: str) -> str | None:
    value = _unquote(value.rstrip("\t"))
    if value == "/dev/null":
        return None
    return value[len(prefix):] if value.startswith(prefix) else value


def _header_path(rest: str) -> str | None:
    """Path from a ``a/<p> b/<p>`` header; None when old and new differ."""
    size, odd = divmod(len(rest) - 5, 2)
    if odd or size <= 0:
        return None
    path = rest[2:2 + size]
    return path if rest == f"a/{path} b/{path}" else None


def parse_patch(text: str) -> list[PatchBlock]:
    """Split a unified diff into per-file blocks and tally hunk markers.

    ``+``/``-`` lines count only inside hunks, so file headers are never
    mistaken for content.  Blocks without hunks (binary files, pure renames,
    mode changes) keep zero counts.
    """
    blocks: list[PatchBlock] = []
    current: PatchBlock | None = None
    in_hunk = False
    for line in text.split("\n"):
        if line.startswith("diff --git "):
            header_path = _header_path(line[len("diff --git "):])
            current = PatchBlock(old_path=header_path, new_path=header_path)
            blocks.append(current)
            in_hunk = False
        if current is None:
            continue
        current.lines.append(line)
        if line.startswith("@@"):
            in_hunk = True
        elif not in_hunk:
            if line.startswith("--- "):
                current.old_path = _strip_prefix(line[4:], "a/")
            elif line.startswith("+++ "):
                current.new_path = _strip_prefix(line[4:], "b/")
            elif line.startswith("rename to ") or line.startswith("copy to "):
                current.new_path = _unquote(line.split(" to ", 1)[1])
        elif line.startswith("+"):
            current.additions += 1
        elif line.startswith("-"):
            current.deletions += 1
    if current is not None and current.lines and current.lines[-1] == "":
        current.lines.pop()
    return blocks


def merge_blocks(blocks: list[PatchBlock]) -> dict[str, PatchBlock]:
    """Combine blocks that touch the same path, summing their line counts."""
    merged: dict[str, PatchBlock] = {}
    for block in blocks:
        path = block.path
        if path is None:
            continue
        seen = merged.get(path)
        if seen is None:
            merged[path] = PatchBlock(
                lines=list(block.lines),
                old_path=block.old_path,
                new_path=block.new_path,
                additions=block.additions,
                deletions=block.deletions,
            )
            continue
        seen.lines.extend(block.lines)
        seen.additions += block.additions
        seen.deletions += block.deletions
    return merged


def _truncate(text: str, max_bytes: int) -> str:
    data = text.encode("utf-8")
    if len(data) <= max_bytes:
        return text
    return data[:max_bytes].decode("utf-8", errors="ignore")


# ── extractor ─────────────────────────────────────────────────────────────


class DiffExtractor:
    """Compute a commit's changes against its first parent (or the empty tree)."""

    def __init__(self, *, capture_patches: bool = True, max_patch_bytes: int = 64 * 1024) -> None:
        self._capture_patches = capture_patches
        self._max_patch_bytes = max_patch_bytes

    @classmethod
    def from_env(cls) -> DiffExtractor:
        return cls(
            capture_patches=os.environ.get("COMMITSYNC_CAPTURE_PATCHES", "1") == "1",
            max_patch_bytes=int(os.environ.get("COMMITSYNC_MAX_PATCH_BYTES", str(64 * 1024))),
        )

    @staticmethod
    def _targets(commit: RawCommit) -> list[str]:
        if commit.first_parent is None:
            return ["--root", commit.sha]
        return [commit.first_parent, commit.sha]

    async def diff(self, repo_path: Path, commit: RawCommit) -> DiffResult:
        """Return the first-parent diff of *commit*.

        Raises :class:`DiffError` if the commit or its trees cannot be read.
        """
        targets = self._targets(commit)
        try:
            raw = await run_git(
                ["diff-tree", *_DIFF_OPTIONS, "--raw", "-z", "--no-abbrev", *targets],
                cwd=repo_path,
            )
            patch = await run_git(
                ["diff-tree", *_DIFF_OPTIONS, "-p", "--no-textconv", *targets],
                cwd=repo_path,
            )
        except GitCommandError as exc:
            raise DiffError(f"cannot diff commit {commit.sha}: {exc.stderr}") from exc

        files = parse_raw(raw)
        blocks = parse_patch(patch.decode("utf-8", errors="replace"))
        self._attach(files, blocks, commit.sha)
        return DiffResult(files=files)

    def _attach(self, files: list[ChangedFile], blocks: list[PatchBlock], sha: str) -> None:
        if len(blocks) == len(files):
            pairs = list(zip(files, blocks))
        else:
            # A type change (file <-> symlink) is one raw entry but two blocks.
            log.debug("differ.block_mismatch", sha=sha, files=len(files), blocks=len(blocks))
            by_path = merge_blocks(blocks)
            pairs = [(f, by_path[f.path]) for f in files if f.path in by_path]

        for changed, block in pairs:
            changed.additions = block.additions
            changed.deletions = block.deletions
            if self._capture_patches:
                changed.patch = _truncate(block.text, self._max_patch_bytes)

    async def read_blobs(self, repo_path: Path, files: Iterable[ChangedFile]) -> dict[str, bytes]:
        """Resolve new-side contents of non-deleted files via ``cat-file --batch``.

        Entries that cannot be resolved are left out; this never raises for
        a single missing object.
        """
        wanted = [f for f in files if f.blob_id and f.change_type is not ChangeType.DELETED]
        if not wanted:
            return {}
        request = "".join(f"{f.blob_id}\n" for f in wanted).encode()
        try:
            output = await run_git(["cat-file", "--batch"], cwd=repo_path, input=request)
        except GitCommandError as exc:
            log.warning("differ.blob_batch_failed", error=exc.stderr, count=len(wanted))
            return {}

        contents: dict[str, bytes] = {}
        pos = 0
        for changed in wanted:
            eol = output.find(b"\n", pos)
            if eol == -1:
                break
            header = output[pos:eol].decode(errors="replace").split()
            pos = eol + 1
            if len(header) != 3:
                log.debug("differ.blob_unresolved", path=changed.path, header=" ".join(header))
                continue
            _oid, obj_type, size_text = header
            size = int(size_text)
            body = output[pos:pos + size]
            pos += size + 1  # trailing LF after each object
            if obj_type != "blob":
                continue
            contents[changed.path] = body
        return contents
