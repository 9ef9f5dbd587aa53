"""
OpenID Connect discovery.

Resolves the JWKS of an authorization server indirectly: the server's discovery
document (``/.well-known/openid-configuration``) names its ``jwks_uri``.

Components:
- prepare_discovery_uri(): normalise a configured provider URL
- OidcConfiguration: the subset of the discovery document we use
- OidcConfigurationLoader: fetch + parse a discovery document
- A process-wide registry of loaded configurations (register/lookup/reset)
- OpenIdConnectDiscoveryLocator: a JWKS locator whose JWKS URI is discovered

Security Properties
-------------------
Discovery is attempted at most once per retry interval, so an unreachable
authorization server is not flooded with one discovery request per inbound
request. Once discovered, the JWKS URI is kept for the life of the locator.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Final
from urllib.parse import urljoin, urlsplit

import httpx

from ..cache_stores import InMemoryCache
from ..errors import KeyResolutionError
from ..http_client import DEFAULT_HTTP_TIMEOUT, http_get
from ..refresh_gate import RefreshGate
from .jwks import JwksKeyLocator

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH: Final[str] = "/.well-known/"
OPENID_CONFIGURATION: Final[str] = "openid-configuration"
WELL_KNOWN_OPENID_CONFIGURATION: Final[str] = WELL_KNOWN_PATH + OPENID_CONFIGURATION

DEFAULT_RETRY_INTERVAL: Final[timedelta] = timedelta(seconds=30)

DISCOVERED_JWKS_SCHEMES: Final[tuple[str, ...]] = ("http", "https")
"""Schemes accepted for a discovered jwks_uri."""

_REGISTRY_MAX_ENTRIES: Final[int] = 5
_REGISTRY_TTL_SECONDS: Final[float] = 15 * 60


def prepare_discovery_uri(raw_uri: str) -> str:
    """Normalise a provider URL so it ends with the discovery suffix.

    - Already ends with ``/.well-known/openid-configuration`` → unchanged
    - Ends with ``/.well-known/`` → ``openid-configuration`` appended
    - ``/.well-known/`` is the penultimate path segment → last segment replaced
    - Otherwise → ``/.well-known/openid-configuration`` at the host root

    Example:
        >>> prepare_discovery_uri("https://example.com")
        'https://example.com/.well-known/openid-configuration'
        >>> prepare_discovery_uri("https://example.com/.well-known/wrong")
        'https://example.com/.well-known/openid-configuration'
    """
    if raw_uri.endswith(WELL_KNOWN_OPENID_CONFIGURATION):
        return raw_uri

    logger.info("Adding suffix %s to raw discovery URI %s", WELL_KNOWN_OPENID_CONFIGURATION, raw_uri)
    path = urlsplit(raw_uri).path
    if path.endswith(WELL_KNOWN_PATH):
        return raw_uri + OPENID_CONFIGURATION
    if WELL_KNOWN_PATH in path and path.rfind("/") + 1 == path.rfind(WELL_KNOWN_PATH) + len(
        WELL_KNOWN_PATH
    ):
        # /.well-known/ is the penultimate segment, keep it and replace the last one
        return urljoin(raw_uri, OPENID_CONFIGURATION)
    return urljoin(raw_uri, WELL_KNOWN_OPENID_CONFIGURATION)


@dataclass(frozen=True, slots=True)
class OidcConfiguration:
    """The parts of an OpenID Connect discovery document we care about.

    Attributes:
        jwks_uri: Where the provider publishes its signing keys.
        issuer: The provider's issuer identifier.
        userinfo_endpoint: The provider's userinfo endpoint.
        additional: Every other property of the document.
    """

    jwks_uri: str | None = None
    issuer: str | None = None
    userinfo_endpoint: str | None = None
    additional: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OidcConfiguration:
        known = ("jwks_uri", "issuer", "userinfo_endpoint")
        return cls(
            jwks_uri=data.get("jwks_uri"),
            issuer=data.get("issuer"),
            userinfo_endpoint=data.get("userinfo_endpoint"),
            additional={k: v for k, v in data.items() if k not in known},
        )


_registry: InMemoryCache[str, OidcConfiguration] = InMemoryCache(
    max_entries=_REGISTRY_MAX_ENTRIES,
    ttl_seconds=_REGISTRY_TTL_SECONDS,
)


def register(discovery_uri: str, configuration: OidcConfiguration) -> None:
    """Record a loaded configuration in the process-wide registry."""
    _registry.set(discovery_uri, configuration)


def lookup(discovery_uri: str) -> OidcConfiguration | None:
    return _registry.get(discovery_uri)


def reset() -> None:
    """Clear the registry (test isolation)."""
    _registry.invalidate_all()


class OidcConfigurationLoader:
    """Fetches OpenID Connect discovery documents over HTTP.

    Successful loads are registered in the process-wide registry.
    """

    def __init__(
        self,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._client = client
        self._timeout = timeout

    def load(self, discovery_uri: str) -> OidcConfiguration | None:
        """Load a discovery document.

        Returns:
            The configuration, or None if it could not be obtained (the
            reason is logged as a warning).
        """
        try:
            response = http_get(discovery_uri, client=self._client, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Failed to obtain OpenID Connect discovery configuration: %s", e)
            return None

        if response.status_code != 200:
            logger.warning(
                "Obtaining OpenID Connect configuration from %s failed with HTTP status %d",
                discovery_uri,
                response.status_code,
            )
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("Failed to obtain OpenID Connect discovery configuration: %s", e)
            return None
        if not isinstance(data, Mapping):
            logger.warning(
                "OpenID Connect configuration from %s was not a JSON object", discovery_uri
            )
            return None

        configuration = OidcConfiguration.from_dict(data)
        register(discovery_uri, configuration)
        return configuration


class OpenIdConnectDiscoveryLocator(JwksKeyLocator):
    """JWKS locator whose key set location comes from OIDC discovery.

    Parameters
    ----------
    discovery_uri : str
        Full URL of the discovery document. URLs not ending with the standard
        suffix are used as-is, with a one-time warning.

    retry_interval : timedelta
        Minimum time between discovery attempts while discovery keeps failing.

    loader : OidcConfigurationLoader | None
        Loader used for discovery, one sharing ``client``/``timeout`` by default.

    Raises
    ------
    ValueError
        If retry_interval is negative.
    """

    def __init__(
        self,
        discovery_uri: str,
        retry_interval: timedelta = DEFAULT_RETRY_INTERVAL,
        *,
        loader: OidcConfigurationLoader | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        if not discovery_uri:
            raise ValueError("OpenID Connect configuration Discovery URL cannot be empty")
        if retry_interval < timedelta(0):
            raise ValueError("retryInterval cannot be negative")

        self._discovery_uri = discovery_uri
        self._retry_interval = retry_interval
        self._loader = loader or OidcConfigurationLoader(client=client, timeout=timeout)
        self._gate = RefreshGate(min_interval=retry_interval.total_seconds())
        self._lock = threading.Lock()
        self._jwks_uri: str | None = None
        self._non_standard_warning = not discovery_uri.endswith(WELL_KNOWN_OPENID_CONFIGURATION)

    @property
    def discovery_uri(self) -> str:
        return self._discovery_uri

    @property
    def jwks_uri(self) -> str:
        if self._jwks_uri is not None:
            return self._jwks_uri

        with self._lock:
            if self._jwks_uri is not None:
                return self._jwks_uri

            if not self._gate.allow():
                raise KeyResolutionError(
                    "Unable to resolve JWKS URL via OpenID Connect configuration discovery and "
                    f"retry interval ({int(self._retry_interval.total_seconds())}s) has not yet elapsed"
                )

            if self._non_standard_warning:
                logger.warning(
                    "Non-standard OpenID Connect discovery endpoint in-use (does not end with expected %s suffix)",
                    WELL_KNOWN_OPENID_CONFIGURATION,
                )
                self._non_standard_warning = False

            configuration = self._loader.load(self._discovery_uri)
            if configuration is not None:
                jwks_uri = configuration.jwks_uri.strip() if isinstance(configuration.jwks_uri, str) else ""
                if not jwks_uri:
                    logger.warning(
                        "Obtained OpenID Connect configuration from %s did not specify a jwks_uri",
                        self._discovery_uri,
                    )
                elif urlsplit(jwks_uri).scheme.lower() not in DISCOVERED_JWKS_SCHEMES:
                    logger.warning(
                        "Obtained OpenID Connect configuration from %s provided a jwks_uri that is not an http/https URL",
                        self._discovery_uri,
                    )
                else:
                    logger.info(
                        "Obtained OpenID Connect configuration from %s provided JWKS URL %s",
                        self._discovery_uri,
                        jwks_uri,
                    )
                    self._jwks_uri = jwks_uri

            if self._jwks_uri is None:
                raise KeyResolutionError(
                    "Unable to resolve JWKS URL via OpenID Connect configuration discovery"
                )
            return self._jwks_uri

    def __str__(self) -> str:
        return (
            f"OpenIdConnectDiscoveryLocator{{discoveryUrl={self._discovery_uri}, "
            f"jwksUrl={self._jwks_uri or '<not yet discovered>'}, "
            f"retryInterval={int(self._retry_interval.total_seconds())}s}}"
        )
