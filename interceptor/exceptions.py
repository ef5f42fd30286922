from __future__ import annotations

from typing import Any


class InterceptorError(Exception):
    """Base class for errors raised by the interceptor package."""


class ConfigurationError(InterceptorError):
    """The middleware was set up in a way it can never serve traffic."""


class UnsupportedHandlerError(ConfigurationError):
    def __init__(self, handler: Any, reason: str) -> None:
        self.handler_type = type(handler).__name__
        super().__init__(f"Unrecognised handler type {self.handler_type}: {reason}")
