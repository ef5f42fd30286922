from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit


def sanitize_url(url: str) -> str:
    """Drop the password from a URL's userinfo, keeping the username.

    The userinfo itself is kept even when the username is empty, so
    ``https://:pass@host`` becomes ``https://@host``.

    URLs without a password (including already sanitized ones) are returned
    unchanged.
    """

    parts = urlsplit(url)
    if parts.password is None:
        return url

    userinfo, _, hostport = parts.netloc.rpartition("@")
    username = userinfo.split(":", 1)[0]
    netloc = f"{username}@{hostport}"
    return urlunsplit(parts._replace(netloc=netloc))
