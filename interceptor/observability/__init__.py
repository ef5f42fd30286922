"""The interception pipeline.

The Dispatcher (middleware.py) buffers the wrapped handler's response
(recorder.py), relays it with a request ID, then fans a LogRecord out to the
registered sinks (sinks.py) and bumps a per-URL hit counter (counters.py).
"""
