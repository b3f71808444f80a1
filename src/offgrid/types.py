"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

This module defines request/response value types shared across offgrid components.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeAlias, TypeVar
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from .runtime.contracts import RetryPolicy

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]

HTTPMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class StorageUsage:
    """Storage usage estimate reported by a persistent store."""

    used: int
    quota: int

    @property
    def percent(self) -> float:
        """Used share of quota in percent; 0 when the quota is unknown."""
        if self.quota <= 0:
            return 0.0
        return (self.used / self.quota) * 100.0


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """
    One outbound HTTP request as handed to a transport.

    Attributes:
        method: Upper-case HTTP method.
        url: Absolute request URL without query string.
        params: Query parameters.
        payload: JSON body, when the request carries one.
        content: Raw body bytes for uploads; mutually exclusive with payload.
        headers: Request headers (auth is injected by the orchestrator).
        timeout_s: Per-attempt timeout in seconds.
    """

    method: str
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    payload: JSONValue | None = None
    content: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout_s: float | None = None

    @property
    def target(self) -> str:
        """Upstream target identifier (scheme://host[:port]) used for breaker keys."""
        return target_of(self.url)

    def with_headers(self, headers: dict[str, str]) -> "RequestDescriptor":
        merged = dict(self.headers)
        merged.update(headers)
        return RequestDescriptor(
            method=self.method,
            url=self.url,
            params=dict(self.params),
            payload=self.payload,
            content=self.content,
            headers=merged,
            timeout_s=self.timeout_s,
        )


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Raw response returned by a transport, for any status code."""

    status: int
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True, slots=True)
class ApiResponse(Generic[T]):
    """
    Typed outcome of one orchestrated call.

    Exactly one of the flags describes a non-network outcome:
    ``cached`` (served from the response cache), ``queued`` (write stored for
    replay), ``cancelled`` (caller aborted). All false means a live response.
    ``stale`` marks a cached fallback served past its expiry.
    """

    data: T | None
    status: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    cached: bool = False
    stale: bool = False
    queued: bool = False
    cancelled: bool = False
    mutation_id: str | None = None


@dataclass(slots=True)
class RequestOptions:
    """
    Per-call overrides accepted by orchestrator methods.

    Attributes:
        params: Query parameters.
        headers: Extra request headers.
        cache: Whether a read may be served from / stored in the cache.
        cache_ttl_s: TTL override for the stored cache entry.
        timeout_s: Per-attempt timeout override; defaults to the network
            monitor recommendation.
        retry: Retry policy override.
        mutation_id: Stable id of the logical user action for queued writes.
        abort: Event that cancels the in-flight call when set.
    """

    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    cache: bool = True
    cache_ttl_s: float | None = None
    timeout_s: float | None = None
    retry: RetryPolicy | None = None
    mutation_id: str | None = None
    abort: asyncio.Event | None = None


def target_of(url: str) -> str:
    """Return the scheme://netloc part of one URL."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url
    return f"{parts.scheme}://{parts.netloc}"


def join_url(base_url: str, path: str) -> str:
    """Join base URL and path, keeping absolute paths untouched."""
    if path.startswith(("http://", "https://")):
        return path
    if not base_url:
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
