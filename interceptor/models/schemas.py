from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


def _trim(value: float) -> str:
    return f"{value:.9f}".rstrip("0").rstrip(".")


def format_duration(seconds: float) -> str:
    """Render an elapsed time compactly: 812ns, 394.823µs, 1.5ms, 2.01s."""

    ns = int(round(seconds * 1e9))
    if ns == 0:
        return "0s"

    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_trim(ns / 1_000)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_trim(ns / 1_000_000)}ms"
    return f"{sign}{_trim(ns / 1_000_000_000)}s"


class LogRecord(BaseModel):
    """One completed request, as handed to every registered log sink."""

    model_config = ConfigDict(frozen=True)

    duration: str
    duration_ms: float
    ip_address: str
    request_id: str
    status: int
    time: datetime
    url: str
    useragent: str | None = Field(default=None)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
