from __future__ import annotations

import uuid

import structlog


# A v5 UUID generated against the DNS namespace for james-is-great.beamly.com,
# a domain that does not exist. Seeing it in logs means the system randomness
# source is failing and uuid4() cannot be generated.
BROKEN_REQUEST_ID = "cd9bbcae-e076-549f-82bf-a08e8c838dd3"


def new_request_id() -> str:
    """Return a random request id, or BROKEN_REQUEST_ID if entropy is unavailable."""

    try:
        return str(uuid.uuid4())
    except (OSError, NotImplementedError):
        structlog.get_logger("interceptor").warning(
            "request_id_entropy_failure",
            fallback_request_id=BROKEN_REQUEST_ID,
        )
        return BROKEN_REQUEST_ID
