from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from starlette.datastructures import Headers, MutableHeaders
from starlette.requests import Request


_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


def request_url(scope: dict[str, Any]) -> str:
    """Rebuild the absolute request URL from an ASGI scope.

    The Host header is used verbatim, so any userinfo it carries survives
    until the URL is sanitized.
    """

    scheme = scope.get("scheme", "http")
    root_path = scope.get("root_path", "")
    path = scope.get("path", "")
    if root_path and not path.startswith(root_path):
        path = root_path + path

    host = None
    for key, value in scope.get("headers", []):
        if key == b"host":
            host = value.decode("latin-1")
            break

    if host is None and scope.get("server") is not None:
        server_host, port = scope["server"]
        host = server_host if port in (None, _DEFAULT_PORTS.get(scheme)) else f"{server_host}:{port}"

    url = f"{scheme}://{host}{path}" if host is not None else path

    query_string = scope.get("query_string", b"")
    if query_string:
        url += "?" + query_string.decode("latin-1")
    return url


class ResponseRecorder:
    """An ASGI ``send`` that buffers the response instead of transmitting it."""

    def __init__(self) -> None:
        self.status_code = 200
        self.headers: list[tuple[bytes, bytes]] = []
        self._body = bytearray()

    async def __call__(self, message: dict[str, Any]) -> None:
        if message["type"] == "http.response.start":
            self.status_code = int(message.get("status", 200))
            self.headers = list(message.get("headers", []))
        elif message["type"] == "http.response.body":
            self._body += message.get("body", b"")

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    async def replay(self, send: Callable[..., Any], headers: dict[str, str]) -> None:
        """Send the recorded response, with ``headers`` overriding recorded ones."""

        merged = MutableHeaders(raw=list(self.headers))
        for name, value in headers.items():
            merged[name] = value

        await send({"type": "http.response.start", "status": self.status_code, "headers": merged.raw})
        await send({"type": "http.response.body", "body": self.body})


class RequestContext:
    """Mutable per-request state handed to ``handle(ctx)`` style handlers.

    The handler reads the request from it and builds the response on it; the
    dispatcher flushes that response once the handler returns.
    """

    def __init__(
        self,
        *,
        uri: str,
        method: str = "GET",
        remote_addr: str = "",
        user_agent: str = "",
        headers: Headers | None = None,
        body: bytes = b"",
        start_time: datetime | None = None,
    ) -> None:
        self.uri = uri
        self.method = method
        self.remote_addr = remote_addr
        self.user_agent = user_agent
        self.headers = headers if headers is not None else Headers()
        self.body = body
        self.start_time = start_time or datetime.now(timezone.utc)

        self.status_code = 200
        self.response_headers = MutableHeaders()
        self._response_body = bytearray()

    @classmethod
    async def from_scope(cls, scope: dict[str, Any], receive: Callable[..., Any]) -> RequestContext:
        request = Request(scope, receive)
        client = request.client
        return cls(
            uri=request_url(scope),
            method=request.method,
            remote_addr=f"{client.host}:{client.port}" if client else "",
            user_agent=request.headers.get("user-agent", ""),
            headers=request.headers,
            body=await request.body(),
        )

    def set_status(self, status_code: int) -> None:
        self.status_code = int(status_code)

    def set_header(self, name: str, value: str) -> None:
        self.response_headers[name] = value

    def write(self, data: bytes | str) -> int:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._response_body += data
        return len(data)

    @property
    def response_body(self) -> bytes:
        return bytes(self._response_body)

    async def send_response(self, send: Callable[..., Any]) -> None:
        body = self.response_body
        if body and "content-type" not in self.response_headers:
            self.response_headers["content-type"] = "text/plain; charset=utf-8"
        if "content-length" not in self.response_headers:
            self.response_headers["content-length"] = str(len(body))

        await send({"type": "http.response.start", "status": self.status_code, "headers": self.response_headers.raw})
        await send({"type": "http.response.body", "body": body})
