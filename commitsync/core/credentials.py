"""Credential provider — turns a request-scoped token into git transport credentials."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Protocol

# GitHub accepts any PAT (classic or fine-grained) as the password for this user.
TOKEN_USERNAME = "x-access-token"


@dataclass(frozen=True)
class GitCredential:
    """A username/password pair for HTTP(S) git transports."""

    username: str
    password: str = ""

    def __repr__(self) -> str:
        return f"GitCredential(username={self.username!r}, password=<redacted>)"

    def basic_auth_header(self) -> str:
        raw = f"{self.username}:{self.password}".encode()
        return "Authorization: Basic " + base64.b64encode(raw).decode()


class CredentialProvider(Protocol):
    def resolve(self, token: str | None) -> GitCredential | None: ...


class TokenCredentialProvider:
    """Map a personal access token to ``x-access-token:<token>``.

    A missing or blank token yields ``None`` (anonymous transport).
    """

    def __init__(self, username: str = TOKEN_USERNAME) -> None:
        self._username = username

    def resolve(self, token: str | None) -> GitCredential | None:
        if token is None or not token.strip():
            return None
        return GitCredential(username=self._username, password=token.strip())
