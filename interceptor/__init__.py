"""Request interception middleware: request IDs, access logs and per-route hit counters."""

from interceptor.exceptions import ConfigurationError, InterceptorError, UnsupportedHandlerError
from interceptor.identifiers import BROKEN_REQUEST_ID, new_request_id
from interceptor.models.schemas import LogRecord
from interceptor.observability.counters import CounterTable
from interceptor.observability.middleware import Dispatcher, HandlerKind
from interceptor.observability.recorder import RequestContext, ResponseRecorder
from interceptor.observability.sinks import FileSink, JSONLinesSink, LogSink, StructlogSink
from interceptor.sanitize import sanitize_url

__all__ = [
    "BROKEN_REQUEST_ID",
    "ConfigurationError",
    "CounterTable",
    "Dispatcher",
    "FileSink",
    "HandlerKind",
    "InterceptorError",
    "JSONLinesSink",
    "LogRecord",
    "LogSink",
    "RequestContext",
    "ResponseRecorder",
    "StructlogSink",
    "UnsupportedHandlerError",
    "new_request_id",
    "sanitize_url",
]
