"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy surfaced by the offgrid resilience layer.
"""

from __future__ import annotations

from typing import Any

_STATUS_MESSAGES: dict[int, str] = {
    400: "Invalid request",
    401: "Authentication required. Please log in again.",
    403: "Access denied. You do not have permission to perform this action.",
    404: "Resource not found.",
    429: "Too many requests. Please wait a moment and try again.",
}


class OffgridError(Exception):
    """Base error for all failures raised by offgrid components."""


class RequestError(OffgridError):
    """Base class for failures of one outbound request."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.status = status
        self.body = body


class NetworkError(RequestError):
    """No response reached the client (connection failure, DNS, timeout)."""

    def __init__(self, message: str | None = None, *, url: str | None = None) -> None:
        super().__init__(
            message
            or "Network error. Please check your internet connection and try again.",
            url=url,
        )


class HTTPStatusError(RequestError):
    """Server answered with a non-2xx status."""


class ServerError(HTTPStatusError):
    """Server answered with a 5xx status."""


class ClientError(HTTPStatusError):
    """Server answered with a 4xx status; retrying cannot change the outcome."""


class AuthenticationError(ClientError):
    """Credentials were rejected and could not be refreshed."""


class CircuitOpenError(RequestError):
    """Circuit breaker rejected the call without attempting any I/O."""

    def __init__(self, target: str, *, message: str | None = None) -> None:
        super().__init__(
            message or f"Circuit open for '{target}'. Service temporarily unavailable."
        )
        self.target = target


class CircuitTestingError(CircuitOpenError):
    """Half-open breaker already has its single trial call in flight."""

    def __init__(self, target: str) -> None:
        super().__init__(
            target,
            message=f"Circuit testing for '{target}', try again shortly.",
        )


class RequestCancelledError(RequestError):
    """Caller aborted the request while it was in flight."""

    def __init__(self, *, url: str | None = None) -> None:
        super().__init__("Request cancelled", url=url)


class StoreError(OffgridError):
    """Persistent store backend failed."""


class QuotaExceededError(StoreError):
    """Persistent store is full and eviction did not free enough space."""

    def __init__(self, namespace: str, key: str, *, used: int, quota: int) -> None:
        super().__init__(
            f"Storage quota exceeded writing {namespace}:{key} "
            f"(used={used}, quota={quota})"
        )
        self.namespace = namespace
        self.key = key
        self.used = used
        self.quota = quota


def error_for_status(status: int, *, url: str | None = None, body: Any = None) -> HTTPStatusError:
    """Build the typed error for one non-2xx HTTP status."""
    detail = _body_message(body)
    if status >= 500:
        return ServerError(
            "Server error. Please try again later.",
            url=url,
            status=status,
            body=body,
        )
    message = _STATUS_MESSAGES.get(status)
    if status == 400:
        message = f"Invalid request: {detail}" if detail else "Invalid request"
    if message is None:
        message = detail or "An unexpected error occurred."
    return ClientError(message, url=url, status=status, body=body)


def _body_message(body: Any) -> str | None:
    """Extract a server-provided message from a decoded error body."""
    if isinstance(body, dict):
        for field_name in ("message", "error", "detail"):
            value = body.get(field_name)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return None


def is_retryable(error: BaseException) -> bool:
    """Return whether one failure may be retried: no response, or a 5xx."""
    return isinstance(error, (NetworkError, ServerError))
