"""Token providers.

Acquiring tokens (interactive sign-in, refresh) is the host's job.  The core
only asks for a bearer token right before each request.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import SecretStr


@runtime_checkable
class TokenProvider(Protocol):
    async def get_token(self) -> str | None:
        """Return a bearer token, or ``None`` when nobody is signed in."""
        ...


class StaticTokenProvider:
    """Serves a fixed token, e.g. from ``FABRIC_TOKEN``."""

    def __init__(self, token: str | SecretStr | None = None) -> None:
        if isinstance(token, SecretStr):
            token = token.get_secret_value()
        self._token = token or None

    async def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token or None
