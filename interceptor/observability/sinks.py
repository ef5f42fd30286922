"""Log sinks: consumers of one LogRecord per completed request.

A sink is anything with a ``log(record)`` method, plain or ``async def``.
Plain sinks are run in a worker thread, so they may block and may be called
concurrently; the sinks here serialize their own writes.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from threading import Lock
from typing import Any, Protocol, TextIO, runtime_checkable

import structlog
from pydantic_core import PydanticSerializationError

from interceptor.models.schemas import LogRecord


@runtime_checkable
class LogSink(Protocol):
    def log(self, record: LogRecord) -> Any: ...


class JSONLinesSink:
    """Writes each record as one JSON object per line (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self._lock = Lock()

    def log(self, record: LogRecord) -> None:
        try:
            line = record.to_json()
        except (PydanticSerializationError, ValueError, TypeError) as exc:
            line = f"error marshaling log data: {exc!r}"

        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()


class StructlogSink:
    """Forwards records to structlog as ``http_request`` events."""

    def __init__(self, logger_name: str = "access") -> None:
        self.logger_name = logger_name

    def log(self, record: LogRecord) -> None:
        fields = record.model_dump(mode="json", exclude_none=True)
        structlog.get_logger(self.logger_name).info("http_request", **fields)


class FileSink:
    """Appends one line per record to a file, opened on first use."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = Lock()
        self._file: TextIO | None = None

    def _open(self) -> TextIO:
        fd = os.open(self.path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o600)
        return os.fdopen(fd, "a", encoding="utf-8")

    def log(self, record: LogRecord) -> None:
        with self._lock:
            if self._file is None:
                self._file = self._open()
            self._file.write(record.to_json() + "\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
