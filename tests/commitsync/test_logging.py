"""Tests for logging setup and secret redaction."""

import logging

import structlog

from commitsync.core.logging import redact_secrets, setup_logging


class TestRedactSecrets:
    def test_masks_known_keys(self):
        event = {"event": "workspace.cloning", "token": "ghp_x", "credential_token": "t"}
        out = redact_secrets(None, "info", event)
        assert out == {"event": "workspace.cloning", "token": "***", "credential_token": "***"}

    def test_leaves_other_keys_and_none(self):
        event = {"event": "e", "url": "https://example.com/r.git", "password": None}
        assert redact_secrets(None, "info", dict(event)) == event


class TestSetupLogging:
    def test_levels_from_env(self, monkeypatch):
        monkeypatch.setenv("COMMITSYNC_LOG_LEVEL", "debug")
        monkeypatch.setenv("COMMITSYNC_LOG_FORMAT", "json")
        try:
            setup_logging()
            assert logging.getLogger("commitsync").level == logging.DEBUG
            assert logging.getLogger("botocore").level == logging.WARNING
        finally:
            structlog.reset_defaults()

    def test_json_output_is_redacted(self, monkeypatch, capsys):
        monkeypatch.setenv("COMMITSYNC_LOG_FORMAT", "json")
        try:
            setup_logging()
            structlog.get_logger("commitsync.test").info("ingest.started", token="sekrit")
            out = capsys.readouterr().out
            assert "ingest.started" in out
            assert "sekrit" not in out
        finally:
            structlog.reset_defaults()
