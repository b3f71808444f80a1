"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Request orchestrator composing monitor, breaker, retry, cache and mutation queue.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any
from urllib.parse import urlencode

from .auth import CredentialProvider, NoCredentials
from .cache import ResponseCache
from .errors import (
    AuthenticationError,
    CircuitOpenError,
    ClientError,
    NetworkError,
    QuotaExceededError,
    RequestCancelledError,
    ServerError,
    error_for_status,
)
from .network import NetworkMonitor
from .queue import MutationQueue, QueuedMutation, ReplayMetrics, ReplayReport
from .runtime import (
    CachePolicy,
    CircuitBreaker,
    ReplayPolicy,
    RetryPolicy,
    TimeoutPolicy,
    await_unless_aborted,
    await_with_timeout,
    call_with_retry,
    classify_error,
)
from .runtime.retry import Sleep
from .storage import InMemoryStore, PersistentStore
from .transport import HttpTransport, HttpxTransport
from .types import (
    ApiResponse,
    JSONValue,
    RequestDescriptor,
    RequestOptions,
    TransportResponse,
    join_url,
)

logger = logging.getLogger("offgrid.orchestrator")


class RequestOrchestrator:
    """
    Single entry point for application HTTP calls.

    Reads are served from the response cache when fresh and fall back to it
    when the network fails. Writes attempted while the device is offline are
    stored in the mutation queue and replayed after reconnect. Every live
    attempt passes the per-target circuit breaker and runs under the retry
    policy with a network-adaptive timeout.
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: HttpTransport | None = None,
        store: PersistentStore | None = None,
        cache: ResponseCache | None = None,
        queue: MutationQueue | None = None,
        monitor: NetworkMonitor | None = None,
        breaker: CircuitBreaker | None = None,
        credentials: CredentialProvider | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_policy: TimeoutPolicy | None = None,
        cache_policy: CachePolicy | None = None,
        replay_policy: ReplayPolicy | None = None,
        metrics: ReplayMetrics | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_transport = transport is None
        self._transport: HttpTransport = transport or HttpxTransport()
        self._store = store or InMemoryStore()
        self._cache = cache or ResponseCache(self._store, policy=cache_policy)
        self._queue = queue or MutationQueue(self._store, policy=replay_policy, metrics=metrics)
        self._monitor = monitor
        self._breaker = breaker or CircuitBreaker()
        self._credentials: CredentialProvider = credentials or NoCredentials()
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeout_policy = timeout_policy or TimeoutPolicy()
        self._sleep = sleep
        self._unsubscribe_reconnect = None
        self._startup_replay: asyncio.Task[ReplayReport] | None = None
        self._initialized = False

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def queue(self) -> MutationQueue:
        return self._queue

    @property
    def monitor(self) -> NetworkMonitor | None:
        return self._monitor

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def store(self) -> PersistentStore:
        return self._store

    async def init(self) -> None:
        """
        Open the store, bind queue replay to this orchestrator and start the monitor.

        When the device is online and writes are still pending from an earlier
        session, a replay pass starts in the background.
        """
        if self._initialized:
            return
        await self._store.init()
        self._queue.bind_sender(self._send_mutation, is_online=self._is_online)
        if self._monitor is not None:
            if self._queue.policy.auto_replay:
                self._unsubscribe_reconnect = self._monitor.on_reconnect(self._queue.replay)
            await self._monitor.start()
        self._initialized = True

        if self._queue.policy.auto_replay and self._is_online():
            pending = await self._queue.pending_count()
            if pending:
                logger.info("Replaying %d mutation(s) pending from a previous session", pending)
                self._startup_replay = asyncio.create_task(self._queue.replay())
        logger.info(
            "RequestOrchestrator ready (base_url=%s, store=%s)",
            self._base_url,
            getattr(self._store, "backend_id", type(self._store).__name__),
        )

    async def dispose(self) -> None:
        """Stop background work and release owned resources."""
        if self._unsubscribe_reconnect is not None:
            self._unsubscribe_reconnect()
            self._unsubscribe_reconnect = None
        if self._startup_replay is not None and not self._startup_replay.done():
            self._startup_replay.cancel()
            await asyncio.gather(self._startup_replay, return_exceptions=True)
        self._startup_replay = None
        await self._queue.dispose()
        if self._monitor is not None:
            await self._monitor.dispose()
        if self._owns_transport:
            await self._transport.aclose()
        await self._store.dispose()
        self._initialized = False
        logger.info("RequestOrchestrator disposed (base_url=%s)", self._base_url)

    async def __aenter__(self) -> "RequestOrchestrator":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    async def get(self, path: str, options: RequestOptions | None = None) -> ApiResponse[Any]:
        """
        Read one resource.

        Returns a fresh cache hit without any I/O. On network failure, 5xx or
        an open circuit the last cached value for the same key is served, even
        past its expiry and even when the call opted out of cache reads;
        otherwise the typed error propagates.

        Raises:
            ClientError: 4xx response.
            NetworkError | ServerError | CircuitOpenError: No cached fallback.
        """
        opts = options or RequestOptions()
        use_cache = opts.cache and self._cache.policy.enabled
        key = ResponseCache.key_for(self._base_url, path, opts.params)

        if use_cache:
            entry = await self._cache.lookup(key)
            if entry is not None:
                logger.debug("Cache hit for GET %s", path)
                return ApiResponse(data=entry.value, cached=True)

        descriptor = self._describe("GET", path, opts)
        try:
            response = await self._call(descriptor, opts)
        except RequestCancelledError:
            return ApiResponse(data=None, cancelled=True)
        except (NetworkError, ServerError, CircuitOpenError) as exc:
            if self._cache.policy.enabled:
                fallback = await self._cache.lookup(key, include_stale=True)
                if fallback is not None:
                    stale = self._cache.is_stale(fallback)
                    logger.info(
                        "Serving cached response for GET %s after %s (stale=%s)",
                        path,
                        type(exc).__name__,
                        stale,
                    )
                    return ApiResponse(data=fallback.value, cached=True, stale=stale)
            raise

        if use_cache:
            try:
                await self._cache.set(key, response.data, ttl_s=opts.cache_ttl_s)
            except QuotaExceededError as exc:
                logger.warning("Could not cache GET %s: %s", path, exc)
        return ApiResponse(data=response.data, status=response.status, headers=response.headers)

    async def post(
        self, path: str, body: JSONValue | None = None, options: RequestOptions | None = None
    ) -> ApiResponse[Any]:
        return await self._write("POST", path, body, options)

    async def put(
        self, path: str, body: JSONValue | None = None, options: RequestOptions | None = None
    ) -> ApiResponse[Any]:
        return await self._write("PUT", path, body, options)

    async def patch(
        self, path: str, body: JSONValue | None = None, options: RequestOptions | None = None
    ) -> ApiResponse[Any]:
        return await self._write("PATCH", path, body, options)

    async def delete(
        self, path: str, body: JSONValue | None = None, options: RequestOptions | None = None
    ) -> ApiResponse[Any]:
        return await self._write("DELETE", path, body, options)

    async def upload(
        self,
        path: str,
        content: bytes,
        *,
        content_type: str = "application/octet-stream",
        options: RequestOptions | None = None,
    ) -> ApiResponse[Any]:
        """Send a binary body with POST; uploads are never cached or queued."""
        opts = options or RequestOptions()
        descriptor = self._describe("POST", path, opts, content=content)
        descriptor = descriptor.with_headers({"Content-Type": content_type})
        try:
            response = await self._call(descriptor, opts)
        except RequestCancelledError:
            return ApiResponse(data=None, cancelled=True)
        return ApiResponse(data=response.data, status=response.status, headers=response.headers)

    async def replay_pending(self) -> ReplayReport:
        """Run a replay pass now (joins one already in progress)."""
        return await self._queue.replay()

    async def _write(
        self,
        method: str,
        path: str,
        body: JSONValue | None,
        options: RequestOptions | None,
    ) -> ApiResponse[Any]:
        opts = options or RequestOptions()
        descriptor = self._describe(method, path, opts, payload=body)
        try:
            response = await self._call(descriptor, opts)
        except RequestCancelledError:
            return ApiResponse(data=None, cancelled=True)
        except NetworkError:
            if self._is_online():
                raise
            mutation = await self._queue.enqueue_request(
                method,
                _with_query(descriptor.url, descriptor.params),
                body,
                mutation_id=opts.mutation_id,
                headers=opts.headers,
            )
            return ApiResponse(data=None, queued=True, mutation_id=mutation.id)
        return ApiResponse(data=response.data, status=response.status, headers=response.headers)

    def _describe(
        self,
        method: str,
        path: str,
        opts: RequestOptions,
        *,
        payload: JSONValue | None = None,
        content: bytes | None = None,
    ) -> RequestDescriptor:
        return RequestDescriptor(
            method=method,
            url=join_url(self._base_url, path),
            params=dict(opts.params),
            payload=payload,
            content=content,
            headers=dict(opts.headers),
            timeout_s=self._timeout_for(opts),
        )

    def _timeout_for(self, opts: RequestOptions) -> float | None:
        if opts.timeout_s is not None:
            return opts.timeout_s
        if self._monitor is not None:
            return self._monitor.recommended_timeout_s()
        return self._timeout_policy.request_timeout_s

    def _is_online(self) -> bool:
        if self._monitor is None:
            return True
        return self._monitor.current_snapshot().online

    async def _call(self, descriptor: RequestDescriptor, opts: RequestOptions) -> TransportResponse:
        policy = opts.retry or self._retry_policy

        async def _run() -> TransportResponse:
            if not self._is_online():
                raise NetworkError("Device is offline", url=descriptor.url)
            return await call_with_retry(
                functools.partial(self._attempt, descriptor),
                policy=policy,
                sleep=self._sleep,
            )

        return await await_unless_aborted(_run(), opts.abort, url=descriptor.url)

    async def _attempt(self, descriptor: RequestDescriptor) -> TransportResponse:
        target = descriptor.target
        # Credential failures never reach the breaker.
        token = await self._token_for(descriptor)
        ticket = self._breaker.ensure_available(target)
        try:
            response = await self._send_authorized(descriptor, token)
        except ClientError:
            self._breaker.record_success(target, ticket)
            raise
        except asyncio.CancelledError:
            self._breaker.release(target, ticket)
            raise
        except Exception as exc:
            self._breaker.record_failure(target, ticket)
            classified = classify_error(exc, url=descriptor.url)
            if classified is exc:
                raise
            raise classified from exc

        if response.status >= 500:
            self._breaker.record_failure(target, ticket)
        else:
            self._breaker.record_success(target, ticket)
        if not response.ok:
            raise error_for_status(response.status, url=descriptor.url, body=response.data)
        return response

    async def _token_for(self, descriptor: RequestDescriptor) -> str | None:
        try:
            return await self._credentials.get_token()
        except Exception as exc:
            raise AuthenticationError(
                f"Could not obtain credentials: {exc}",
                url=descriptor.url,
            ) from exc

    async def _send_authorized(self, descriptor: RequestDescriptor, token: str | None) -> TransportResponse:
        response = await self._send(descriptor, token)
        if response.status != 401:
            return response

        try:
            token = await self._credentials.refresh_token()
        except Exception as exc:
            raise AuthenticationError(
                "Authentication required. Please log in again.",
                url=descriptor.url,
                status=401,
                body=response.data,
            ) from exc
        if not token:
            raise AuthenticationError(
                "Authentication required. Please log in again.",
                url=descriptor.url,
                status=401,
                body=response.data,
            )

        logger.info("Token refreshed after 401; resending %s %s", descriptor.method, descriptor.url)
        response = await self._send(descriptor, token)
        if response.status == 401:
            raise AuthenticationError(
                "Authentication required. Please log in again.",
                url=descriptor.url,
                status=401,
                body=response.data,
            )
        return response

    async def _send(self, descriptor: RequestDescriptor, token: str | None) -> TransportResponse:
        if token:
            descriptor = descriptor.with_headers({"Authorization": f"Bearer {token}"})
        return await await_with_timeout(self._transport.send(descriptor), descriptor.timeout_s)

    async def _send_mutation(self, mutation: QueuedMutation) -> TransportResponse:
        descriptor = RequestDescriptor(
            method=mutation.method,
            url=mutation.url,
            payload=mutation.payload,
            headers=dict(mutation.headers),
            timeout_s=self._timeout_for(RequestOptions()),
        )
        return await self._call(descriptor, RequestOptions())


def _with_query(url: str, params: dict[str, Any]) -> str:
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params, doseq=True)}"
