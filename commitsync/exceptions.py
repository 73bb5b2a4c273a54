"""Custom exceptions for the commit ingestion pipeline."""


class IngestError(Exception):
    """Base exception for all ingestion errors."""


class GitCommandError(IngestError):
    """Raised when a git subprocess exits non-zero."""

    def __init__(self, command: str, returncode: int, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"git {command} failed (exit {returncode}): {stderr}")


class SyncError(IngestError):
    """Raised when clone/fetch fails or the local working copy is unreadable."""


class WalkError(IngestError):
    """Raised when refs or history cannot be read, or filters are invalid."""


class DiffError(IngestError):
    """Raised when a commit or its tree cannot be read."""


class ArchiveError(IngestError):
    """Raised when the archive stream cannot be constructed."""


class StoreError(IngestError):
    """Raised when a record or blob cannot be persisted."""


class IngestCancelled(IngestError):
    """Raised at a commit boundary when the job was asked to stop."""
