"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Credential providers consulted before every request attempt.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class CredentialProvider(Protocol):
    """Supplies the bearer token and can refresh it once after a 401."""

    async def get_token(self) -> str | None:
        ...

    async def refresh_token(self) -> str | None:
        """Return a new token, or raise when the session cannot be renewed."""
        ...


class NoCredentials:
    """Provider for unauthenticated APIs."""

    async def get_token(self) -> str | None:
        return None

    async def refresh_token(self) -> str | None:
        return None


class StaticCredentialProvider:
    """
    Provider holding one token in memory.

    An optional ``refresher`` coroutine function is awaited on refresh and its
    result replaces the stored token.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        refresher: Callable[[], Awaitable[str | None]] | None = None,
    ) -> None:
        self._token = token
        self._refresher = refresher

    async def get_token(self) -> str | None:
        return self._token

    async def refresh_token(self) -> str | None:
        if self._refresher is None:
            return None
        self._token = await self._refresher()
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token
