"""Tests for ticket-key extraction."""

from __future__ import annotations

import pytest

from commitsync.engines.commit_ingest.tickets import extract_ticket_key, ticket_url


class TestExtractTicketKey:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("ABC-123 fix login", "ABC-123"),
            ("fix login (PROJ2-7)", "PROJ2-7"),
            ("first XY-1 then XY-2", "XY-1"),
            ("no ticket here", None),
            ("lowercase abc-123 is ignored", None),
            ("A-1 single letter key is too short", None),
            ("", None),
        ],
    )
    def test_first_match(self, message, expected):
        assert extract_ticket_key(message) == expected

    def test_none_message(self):
        assert extract_ticket_key(None) is None


class TestTicketUrl:
    def test_builds_browse_url(self):
        assert ticket_url("ABC-1", "https://jira.example.com/") == (
            "https://jira.example.com/browse/ABC-1"
        )

    def test_no_base_url(self):
        assert ticket_url("ABC-1", None) is None

    def test_no_key(self):
        assert ticket_url(None, "https://jira.example.com") is None
