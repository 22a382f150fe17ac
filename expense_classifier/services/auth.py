"""Access-token providers used by the classification client.

The API wires ``StaticTokenProvider`` from each request's ``Authorization`` header.
``DeferredTokenProvider`` is for embedding the client where the session only becomes
available after an asynchronous sign-in; the HTTP app does not construct it.
"""

import asyncio
from abc import ABC, abstractmethod


class TokenProvider(ABC):
    """Resolves the bearer credential sent to the classification endpoint."""

    @abstractmethod
    async def get_access_token(self) -> str | None:
        """Return the current access token, or None when the caller is not signed in."""


class StaticTokenProvider(TokenProvider):
    """Token provider for a credential known up front, such as a request's bearer token."""

    def __init__(self, token: str | None) -> None:
        """Initialize the provider with a fixed token."""
        self._token = token or None

    async def get_access_token(self) -> str | None:
        """Return the configured token."""
        return self._token


class DeferredTokenProvider(TokenProvider):
    """Token provider whose session becomes available after an asynchronous sign-in."""

    def __init__(self) -> None:
        """Initialize an empty, not yet ready provider."""
        self._ready = asyncio.Event()
        self._token: str | None = None

    def set_token(self, token: str | None) -> None:
        """Publish the session token and release waiting callers."""
        self._token = token or None
        self._ready.set()

    async def get_access_token(self) -> str | None:
        """Wait for initialization, then return the session token."""
        await self._ready.wait()
        return self._token


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
