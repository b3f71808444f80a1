"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

HTTP transport contract and the default ``httpx`` implementation.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from .errors import NetworkError
from .types import RequestDescriptor, TransportResponse

logger = logging.getLogger("offgrid.transport")

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Accept-Encoding": "gzip, deflate",
}


@runtime_checkable
class HttpTransport(Protocol):
    """
    Sends one request and returns the response for any status code.

    Implementations raise `NetworkError` when no response was received.
    Status handling belongs to the caller.
    """

    async def send(self, request: RequestDescriptor) -> TransportResponse:
        ...

    async def aclose(self) -> None:
        ...


class HttpxTransport:
    """`HttpTransport` backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        default_timeout_s: float = 30.0,
        user_agent: str = "offgrid/0.1",
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(default_timeout_s),
            headers={**_DEFAULT_HEADERS, "User-Agent": user_agent},
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def send(self, request: RequestDescriptor) -> TransportResponse:
        kwargs: dict[str, Any] = {
            "params": request.params or None,
            "headers": request.headers or None,
        }
        if request.timeout_s is not None:
            kwargs["timeout"] = request.timeout_s
        if request.content is not None:
            kwargs["content"] = request.content
        elif request.payload is not None:
            kwargs["json"] = request.payload

        try:
            response = await self._client.request(request.method, request.url, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Request timed out: {request.method} {request.url}", url=request.url) from exc
        except httpx.TransportError as exc:
            raise NetworkError(url=request.url) from exc

        return TransportResponse(
            status=response.status_code,
            data=_decode_body(response),
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _decode_body(response: httpx.Response) -> Any:
    """Decode JSON bodies; fall back to text, and `None` for empty bodies."""
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Response from %s declared JSON but did not parse", response.url)
    return response.text
