"""Tests for the archive builder."""

from __future__ import annotations

import io
import uuid
import zipfile

from commitsync.engines.commit_ingest.archive import archive_key, build_archive


def _names(data: bytes) -> list[str]:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return zf.namelist()


class TestBuildArchive:
    def test_entries_round_trip(self):
        data = build_archive([("src/a.py", b"print(1)\n"), ("README.md", b"# hi\n")])
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == ["src/a.py", "README.md"]
            assert zf.read("src/a.py") == b"print(1)\n"
            info = zf.getinfo("README.md")
            assert info.compress_type == zipfile.ZIP_DEFLATED
            assert (info.external_attr >> 16) & 0o777 == 0o644

    def test_unresolvable_entries_are_skipped(self):
        data = build_archive([("missing.txt", None), ("ok.txt", b"ok")])
        assert _names(data) == ["ok.txt"]

    def test_nothing_resolvable_means_no_archive(self):
        assert build_archive([("a", None), ("b", None)]) is None

    def test_empty_input_means_no_archive(self):
        assert build_archive([]) is None

    def test_empty_file_still_counts(self):
        data = build_archive([("empty.txt", b"")])
        assert _names(data) == ["empty.txt"]

    def test_deterministic_bytes(self):
        entries = [("a.txt", b"alpha"), ("b/c.txt", b"gamma" * 100)]
        assert build_archive(entries) == build_archive(list(entries))


class TestArchiveKey:
    def test_key_layout(self):
        repo_id = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert archive_key(repo_id, "abc123") == (
            "commits/12345678-1234-5678-1234-567812345678/abc123.zip"
        )
