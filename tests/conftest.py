from __future__ import annotations

from collections.abc import AsyncIterator
from threading import Lock
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from interceptor.config import get_settings
from interceptor.main import create_app
from interceptor.models.schemas import LogRecord


class ListSink:
    def __init__(self) -> None:
        self._lock = Lock()
        self.records: list[LogRecord] = []

    def log(self, record: LogRecord) -> None:
        with self._lock:
            self.records.append(record)


class FailingSink:
    def __init__(self) -> None:
        self.calls = 0

    def log(self, record: LogRecord) -> None:
        self.calls += 1
        raise RuntimeError("sink is down")


def make_scope(
    path: str = "/",
    host: str = "user:pass@example.com",
    scheme: str = "https",
    user_agent: str = "pytest",
    query_string: bytes = b"",
) -> dict[str, Any]:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": scheme,
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query_string,
        "headers": [(b"host", host.encode()), (b"user-agent", user_agent.encode())],
        "client": ("127.0.0.1", 50000),
        "server": ("example.com", 443),
    }


class ASGIResult:
    def __init__(self, messages: list[dict[str, Any]]) -> None:
        start = next(m for m in messages if m["type"] == "http.response.start")
        self.status = start["status"]
        self.raw_headers: list[tuple[bytes, bytes]] = list(start["headers"])
        self.body = b"".join(m.get("body", b"") for m in messages if m["type"] == "http.response.body")

    def header(self, name: str) -> str | None:
        values = self.header_values(name)
        return values[0] if values else None

    def header_values(self, name: str) -> list[str]:
        key = name.lower().encode("latin-1")
        return [v.decode("latin-1") for k, v in self.raw_headers if k.lower() == key]


async def call_asgi(app: Any, scope: dict[str, Any]) -> ASGIResult:
    messages: list[dict[str, Any]] = []

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message: dict[str, Any]) -> None:
        messages.append(message)

    await app(scope, receive, send)
    return ASGIResult(messages)


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("ACCESS_LOG_PATH", str(tmp_path / "access.log"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def list_sink() -> ListSink:
    return ListSink()


@pytest.fixture
def example_app():
    return create_app()


@pytest.fixture
async def api_client(example_app) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=example_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
