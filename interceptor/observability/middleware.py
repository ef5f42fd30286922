from __future__ import annotations

import asyncio
import inspect
import json
from datetime import datetime, timezone
from enum import Enum
from time import perf_counter
from typing import Any, Callable

import anyio
import anyio.to_thread
import structlog
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import URL
from starlette.requests import Request
from starlette.responses import JSONResponse

from interceptor.config import Settings, get_settings
from interceptor.exceptions import ConfigurationError, UnsupportedHandlerError
from interceptor.identifiers import new_request_id
from interceptor.models.schemas import LogRecord, format_duration
from interceptor.observability.counters import CounterTable
from interceptor.observability.recorder import RequestContext, ResponseRecorder, request_url
from interceptor.observability.sinks import JSONLinesSink, LogSink
from interceptor.sanitize import sanitize_url


logger = structlog.get_logger("interceptor")


class HandlerKind(str, Enum):
    ASGI = "asgi"
    CONTEXT = "context"


def resolve_handler_kind(handler: Any) -> HandlerKind:
    """Decide how ``handler`` is invoked: as an ASGI app or through ``handle(ctx)``."""

    has_handle = callable(getattr(handler, "handle", None))
    is_asgi = callable(handler)

    if has_handle and is_asgi:
        raise UnsupportedHandlerError(handler, "it is both an ASGI app and has handle(ctx)")
    if has_handle:
        return HandlerKind.CONTEXT
    if is_asgi:
        return HandlerKind.ASGI
    raise UnsupportedHandlerError(handler, "expected an ASGI app or an object with handle(ctx)")


class Dispatcher:
    """Wraps a handler to mint request IDs, relay its response, then log and count.

    The handler never writes to the client directly: its response is buffered,
    copied out with ``X-Request-ID`` attached, and only then is the request
    logged to every sink and counted, on a background task the caller does not
    wait for.

    ``requests`` holds a hit counter per sanitized URL and is served as JSON on
    any path ending in ``/__/counters``.
    """

    def __init__(
        self,
        handler: Any,
        *,
        settings: Settings | None = None,
        default_sink: bool | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.handler = handler
        self.kind = resolve_handler_kind(handler)

        if self.kind is HandlerKind.ASGI:
            self._serve_http: Callable[..., Any] = self._serve_asgi
        else:
            self._serve_http = self._serve_context_over_asgi
            self._handle_is_async = inspect.iscoroutinefunction(handler.handle)

        if default_sink is None:
            default_sink = self.settings.enable_default_sink
        self.sinks: list[LogSink] = [JSONLinesSink()] if default_sink else []

        self.requests = CounterTable()
        self._background: set[asyncio.Task[None]] = set()
        self._pending_deliveries = 0
        self._sink_limiter: anyio.CapacityLimiter | None = None

    def add_sink(self, sink: LogSink) -> None:
        """Register another log sink. Do this before serving traffic."""

        self.sinks.append(sink)

    def _is_counters_path(self, path: str) -> bool:
        return path.endswith(self.settings.counters_path_suffix)

    def counters_body(self) -> dict[str, int]:
        return self.requests.snapshot()

    # --- ASGI entrypoint -------------------------------------------------

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") == "http":
            await self._serve_http(scope, receive, send)
        elif scope.get("type") == "lifespan":
            if self.kind is HandlerKind.ASGI:
                await self.handler(scope, receive, self._shutdown_on_complete(send))
            else:
                await self._lifespan(receive, send)
        elif self.kind is HandlerKind.ASGI:
            await self.handler(scope, receive, send)
        elif scope.get("type") == "websocket":
            await send({"type": "websocket.close", "code": 1000})

    async def _serve_asgi(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        request_id = new_request_id()

        if self._is_counters_path(scope.get("path", "")):
            await self._counters_response(request_id)(scope, receive, send)
            return

        started_at = datetime.now(timezone.utc)
        start = perf_counter()

        recorder = ResponseRecorder()
        await self.handler(self._buffered_scope(scope), receive, recorder)

        url = sanitize_url(request_url(scope))
        await recorder.replay(send, {self.settings.request_id_header: request_id})

        request = Request(scope)
        client = request.client
        self._spawn(
            self._log_and_count(
                request_id=request_id,
                start=start,
                started_at=started_at,
                ip_address=f"{client.host}:{client.port}" if client else "",
                status=recorder.status_code,
                url=url,
                useragent=request.headers.get("user-agent"),
            )
        )

    @staticmethod
    def _buffered_scope(scope: dict[str, Any]) -> dict[str, Any]:
        # A recorder cannot replay zero-copy file sends; make handlers write bytes.
        extensions = scope.get("extensions") or {}
        if "http.response.pathsend" not in extensions:
            return scope
        extensions = {k: v for k, v in extensions.items() if k != "http.response.pathsend"}
        return {**scope, "extensions": extensions}

    async def _serve_context_over_asgi(
        self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]
    ) -> None:
        ctx = await RequestContext.from_scope(scope, receive)
        await self.serve_context(ctx)
        await ctx.send_response(send)

    # --- handle(ctx) entrypoint -----------------------------------------

    async def serve_context(self, ctx: RequestContext) -> None:
        """Run a ``handle(ctx)`` handler against ``ctx``, leaving the response on it."""

        if self.kind is not HandlerKind.CONTEXT:
            raise ConfigurationError("serve_context() needs a handler with handle(ctx)")

        request_id = new_request_id()

        if self._is_counters_path(URL(ctx.uri).path):
            ctx.set_header("content-type", "application/json")
            ctx.write(self._counters_json())
            ctx.set_header(self.settings.request_id_header, request_id)
            return

        start = perf_counter()
        if self._handle_is_async:
            await self.handler.handle(ctx)
        else:
            await run_in_threadpool(self.handler.handle, ctx)

        ctx.set_header(self.settings.request_id_header, request_id)

        self._spawn(
            self._log_and_count(
                request_id=request_id,
                start=start,
                started_at=ctx.start_time,
                ip_address=ctx.remote_addr,
                status=ctx.status_code,
                url=sanitize_url(ctx.uri),
                useragent=ctx.user_agent or None,
            )
        )

    # --- diagnostics ------------------------------------------------------

    def _counters_response(self, request_id: str) -> JSONResponse:
        snapshot = self.counters_body()
        headers = {self.settings.request_id_header: request_id}
        try:
            return JSONResponse(snapshot, headers=headers)
        except (TypeError, ValueError):
            logger.exception("counters_serialization_failed", request_id=request_id)
            return JSONResponse({}, headers=headers)

    def _counters_json(self) -> str:
        try:
            return json.dumps(self.counters_body())
        except (TypeError, ValueError):
            logger.exception("counters_serialization_failed")
            return "{}"

    # --- background logging and counting ----------------------------------

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _log_and_count(
        self,
        *,
        request_id: str,
        start: float,
        started_at: datetime,
        ip_address: str,
        status: int,
        url: str,
        useragent: str | None,
    ) -> None:
        elapsed = perf_counter() - start
        record = LogRecord(
            duration=format_duration(elapsed),
            duration_ms=round(elapsed * 1000.0, 3),
            ip_address=ip_address,
            request_id=request_id,
            status=status,
            time=started_at,
            url=url,
            useragent=useragent or None,
        )

        for sink in self.sinks:
            if self._pending_deliveries >= self.settings.max_pending_deliveries:
                logger.warning(
                    "log_sink_backlog_full",
                    sink=type(sink).__name__,
                    request_id=request_id,
                    pending=self._pending_deliveries,
                )
                continue
            self._pending_deliveries += 1
            self._spawn(self._deliver(sink, record))

        self.requests.increment(url)

    def _limiter(self) -> anyio.CapacityLimiter:
        # Created lazily: a limiter needs a running event loop.
        if self._sink_limiter is None:
            self._sink_limiter = anyio.CapacityLimiter(self.settings.sink_threads)
        return self._sink_limiter

    async def _deliver(self, sink: LogSink, record: LogRecord) -> None:
        # Plain sinks get their own thread limiter so a stuck sink cannot take
        # the threads that sync handlers and endpoints run on.
        try:
            if inspect.iscoroutinefunction(sink.log):
                await sink.log(record)
            else:
                await anyio.to_thread.run_sync(sink.log, record, limiter=self._limiter())
        except Exception:
            logger.exception(
                "log_sink_failed",
                sink=type(sink).__name__,
                request_id=record.request_id,
            )
        finally:
            self._pending_deliveries -= 1

    async def drain(self) -> None:
        """Wait for every pending log delivery and counter update to finish."""

        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def shutdown(self) -> None:
        """Drain background work, then close any sink that has ``close()``."""

        await self.drain()
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if callable(close):
                close()

    def _shutdown_on_complete(self, send: Callable[..., Any]) -> Callable[..., Any]:
        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") in ("lifespan.shutdown.complete", "lifespan.shutdown.failed"):
                await self.shutdown()
            await send(message)

        return send_wrapper

    async def _lifespan(self, receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return
