"""
JWKS based key locators.

Resolve the verification key for a token by looking its ``kid`` header up in a
JSON Web Key Set published at an http(s) URL or stored in a local file.

Resolution Strategy
-------------------
UrlJwksKeyLocator fetches the key set on every call. CachedJwksKeyLocator wraps
any JWKS locator with a bounded kid -> key cache:

1) Cache lookup (fast path)
    - If the kid is cached → return immediately.

2) Reload on miss
    - Load the whole key set once and cache *every* key it contains, so one
      fetch serves all keys of the document.

3) Failure
    - If the kid is still absent the token cannot be verified.

Duplicate concurrent fetches on a cold cache are acceptable, key sets are small.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Final
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx
from jwt import PyJWK, PyJWKSet

from ..cache_stores import InMemoryCache
from ..errors import KeyLoadError, KeyResolutionError
from ..http_client import DEFAULT_HTTP_TIMEOUT
from ..keys import load_jwks_from_file, load_jwks_from_url
from ..protocols import JwsHeader

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES: Final[tuple[str, ...]] = ("http", "https", "file")

DEFAULT_CACHE_KEYS_FOR: Final[timedelta] = timedelta(minutes=60)

_CACHE_MAX_ENTRIES: Final[int] = 25
"""Key sets hold few keys, so the cache is kept compact."""


def file_path_from_uri(uri: str) -> str:
    """Convert a ``file:`` URI into a local filesystem path."""
    return url2pathname(urlsplit(uri).path)


class JwksKeyLocator(ABC):
    """Base class for locators that find keys by kid in a JWKS document.

    Subclasses only decide where the key set lives (``jwks_uri``).
    """

    def __init__(
        self,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._client = client
        self._timeout = timeout

    @property
    @abstractmethod
    def jwks_uri(self) -> str:
        """URI of the key set, an http(s) or file URI."""

    def load_jwks(self) -> PyJWKSet:
        """Load the key set from ``jwks_uri``.

        Raises:
            KeyResolutionError: If the key set cannot be loaded.
        """
        uri = self.jwks_uri
        try:
            if urlsplit(uri).scheme.lower() == "file":
                return load_jwks_from_file(file_path_from_uri(uri))
            return load_jwks_from_url(uri, client=self._client, timeout=self._timeout)
        except KeyLoadError as e:
            raise KeyResolutionError(str(e)) from e

    def locate(self, header: JwsHeader) -> Any:
        key_id = self.ensure_valid_key_id(header)
        jwk = self.find_key(self.load_jwks(), key_id)
        return self.ensure_key_present(key_id, jwk).key

    @staticmethod
    def ensure_valid_key_id(header: JwsHeader) -> str:
        key_id = header.get("kid")
        if not isinstance(key_id, str) or not key_id.strip():
            raise KeyResolutionError("JWS fails to declare a valid kid header")
        return key_id

    @staticmethod
    def find_key(jwks: PyJWKSet, key_id: str) -> PyJWK | None:
        for jwk in jwks.keys:
            if jwk.key_id == key_id:
                return jwk
        return None

    def ensure_key_present(self, key_id: str, jwk: PyJWK | None) -> PyJWK:
        if jwk is None:
            raise KeyResolutionError(f"Key ID '{key_id}' not present in JWKS at URI {self.jwks_uri}")
        return jwk


class UrlJwksKeyLocator(JwksKeyLocator):
    """Fetches the key set from a fixed URI on every lookup.

    Raises:
        ValueError: At construction if the URI is not http, https or file.
    """

    def __init__(
        self,
        jwks_uri: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        if not jwks_uri or urlsplit(jwks_uri).scheme.lower() not in SUPPORTED_SCHEMES:
            raise ValueError("JWKS URI must use http/https/file scheme")
        self._jwks_uri = jwks_uri

    @property
    def jwks_uri(self) -> str:
        return self._jwks_uri

    def __str__(self) -> str:
        return f"UrlJwksKeyLocator{{jwksUrl={self._jwks_uri}}}"


class CachedJwksKeyLocator:
    """Caches the keys of another JWKS locator by kid.

    Parameters
    ----------
    source : JwksKeyLocator | str
        The locator to load key sets from, or a JWKS URI for which a
        UrlJwksKeyLocator is created.

    cache_keys_for : timedelta
        How long a key stays cached after it was last used.

    Example
    -------
    locator = CachedJwksKeyLocator("https://idp.example.com/jwks.json")
    key = locator.locate({"kid": "key-1"})
    """

    def __init__(
        self,
        source: JwksKeyLocator | str,
        cache_keys_for: timedelta = DEFAULT_CACHE_KEYS_FOR,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        if isinstance(source, str):
            source = UrlJwksKeyLocator(source, client=client, timeout=timeout)
        self._source = source
        self._cache_keys_for = cache_keys_for
        self._cache: InMemoryCache[str, PyJWK] = InMemoryCache(
            max_entries=_CACHE_MAX_ENTRIES,
            ttl_seconds=cache_keys_for.total_seconds(),
            expire_after_access=True,
        )

    @property
    def source(self) -> JwksKeyLocator:
        return self._source

    def locate(self, header: JwsHeader) -> Any:
        key_id = JwksKeyLocator.ensure_valid_key_id(header)

        cached = self._cache.get(key_id)
        if cached is not None:
            return cached.key

        # Otherwise load the key set and cache every key it contains
        jwks = self._source.load_jwks()
        for jwk in jwks.keys:
            if jwk.key_id:
                self._cache.set(jwk.key_id, jwk)
        logger.debug("Cached %d key(s) from %s", len(jwks.keys), self._source)

        return self._source.ensure_key_present(key_id, self._cache.get(key_id)).key

    def __str__(self) -> str:
        return (
            f"CachedJwksKeyLocator{{source={self._source}, "
            f"cacheKeysFor={int(self._cache_keys_for.total_seconds())}s}}"
        )
