"""Extract issue-tracker ticket keys from commit messages."""

from __future__ import annotations

import re

# "ABC-123", "PROJ2-7": uppercase project key, hyphen, number
TICKET_KEY_PATTERN = re.compile(r"([A-Z][A-Z0-9]+-\d+)")


def extract_ticket_key(message: str) -> str | None:
    """Return the first ticket key in *message*, or None."""
    match = TICKET_KEY_PATTERN.search(message or "")
    return match.group(1) if match else None


def ticket_url(key: str | None, base_url: str | None) -> str | None:
    """Build ``<base>/browse/<key>`` when both parts are known."""
    if not key or not base_url:
        return None
    return f"{base_url.rstrip('/')}/browse/{key}"
