"""Archive builder — pack changed file contents into a zip byte stream."""

from __future__ import annotations

import io
import zipfile
from collections.abc import Iterable

from commitsync.exceptions import ArchiveError

ARCHIVE_CONTENT_TYPE = "application/zip"

# Fixed entry timestamp so identical input produces identical bytes.
_EPOCH = (1980, 1, 1, 0, 0, 0)
_FILE_MODE = 0o100644


def build_archive(entries: Iterable[tuple[str, bytes | None]]) -> bytes | None:
    """Zip ``(path, content)`` pairs, skipping entries whose content is None.

    Returns ``None`` when nothing was resolvable, so callers can skip the
    upload entirely instead of storing an empty archive.

    Raises :class:`ArchiveError` if the zip stream cannot be written.
    """
    buffer = io.BytesIO()
    written = 0
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path, content in entries:
                if content is None:
                    continue
                info = zipfile.ZipInfo(path.lstrip("/"), date_time=_EPOCH)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = _FILE_MODE << 16
                zf.writestr(info, content)
                written += 1
    except (zipfile.BadZipFile, ValueError, OSError) as exc:
        raise ArchiveError(f"failed to build archive: {exc}") from exc

    if written == 0:
        return None
    return buffer.getvalue()


def archive_key(repository_id: object, sha: str) -> str:
    """Blob-store key for a commit archive."""
    return f"commits/{repository_id}/{sha}.zip"
