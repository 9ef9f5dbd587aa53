"""Blocking HTTP GET helper shared by the key resolution layer."""

from __future__ import annotations

from typing import Final

import httpx

DEFAULT_HTTP_TIMEOUT: Final[float] = 10.0
"""Default timeout in seconds for JWKS, discovery and key fetches."""


def http_get(
    url: str,
    *,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> httpx.Response:
    """GET a URL on the calling thread.

    Uses the supplied client when given (so deployments can configure proxies,
    TLS and pooling once), otherwise a short-lived client. ``timeout`` applies
    to the request either way.

    Raises:
        httpx.HTTPError: On transport failures and timeouts.
    """
    if client is not None:
        return client.get(url, timeout=timeout)
    with httpx.Client(timeout=timeout) as c:
        return c.get(url)
