from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog


_CONFIGURED = False


def configure_logging(level: int | str = logging.INFO, *, stream: TextIO | None = None, force: bool = False) -> None:
    """Send the middleware's own events (sink failures, entropy fallback) out as JSON lines.

    Access records are written by the registered sinks, so uvicorn's access
    log is switched off. No-op after the first call unless ``force`` is set.
    """

    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.getLogger("uvicorn.access").disabled = True

    _CONFIGURED = True
