"""
AWS Elastic Load Balancer key resolution.

An ALB configured for OIDC authentication forwards the authenticated user's
claims in the ``X-Amzn-Oidc-Data`` header as an ES256 signed JWT. The public
key for each ``kid`` is published at a per-region URL, for example
``https://public-keys.auth.elb.eu-west-2.amazonaws.com/<kid>``.

The region to URL format mapping is process-wide state. GovCloud regions are
registered by default and deployments behind private endpoints can register
their own format with register().
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Final

import httpx

from ..cache_stores import InMemoryCache
from ..errors import KeyLoadError, KeyResolutionError
from ..http_client import DEFAULT_HTTP_TIMEOUT, http_get
from ..keys import ALGORITHM_EC, load_public_key_from_pem
from ..protocols import JwsHeader

logger = logging.getLogger(__name__)

HEADER_DATA: Final[str] = "X-Amzn-Oidc-Data"
HEADER_ACCESS_TOKEN: Final[str] = "X-Amzn-Oidc-AccessToken"
HEADER_IDENTITY: Final[str] = "X-Amzn-Oidc-Identity"

DEFAULT_KEY_URL_FORMAT: Final[str] = "https://public-keys.auth.elb.%s.amazonaws.com/%s"
GOVCLOUD_WEST_KEY_URL_FORMAT: Final[str] = (
    "https://s3-us-gov-west-1.amazonaws.com/aws-elb-public-keys-prod-us-gov-west-1/%s"
)
GOVCLOUD_EAST_KEY_URL_FORMAT: Final[str] = (
    "https://s3-us-gov-east-1.amazonaws.com/aws-elb-public-keys-prod-us-gov-east-1/%s"
)
REGION_US_GOV_WEST_1: Final[str] = "us-gov-west-1"
REGION_US_GOV_EAST_1: Final[str] = "us-gov-east-1"

_DEFAULT_OVERRIDES: Final[dict[str, str]] = {
    REGION_US_GOV_WEST_1: GOVCLOUD_WEST_KEY_URL_FORMAT,
    REGION_US_GOV_EAST_1: GOVCLOUD_EAST_KEY_URL_FORMAT,
}

_lock = threading.Lock()
_url_formats: dict[str, str] = dict(_DEFAULT_OVERRIDES)


def reset() -> None:
    """Restore the default region overrides, dropping any registrations."""
    with _lock:
        _url_formats.clear()
        _url_formats.update(_DEFAULT_OVERRIDES)


def register(region: str, url_format: str) -> None:
    """Register a key URL format for a region.

    The format is validated when a key URL is prepared, not here.
    """
    with _lock:
        _url_formats[region] = url_format


def lookup_url_format(region: str) -> str:
    with _lock:
        return _url_formats.get(region, DEFAULT_KEY_URL_FORMAT)


def prepare_key_url(region: str, key_id: str) -> str:
    """Build the public key URL for a key id in a region.

    A format with one ``%s`` receives the key id, a format with two receives
    the region then the key id.

    Raises:
        ValueError: If the format has no ``%s`` or more than two.
    """
    url_format = lookup_url_format(region)
    match url_format.count("%s"):
        case 0:
            raise ValueError(
                f"Key URL Format for region {region} fails to include at least one %s "
                "for injecting the Key ID to lookup"
            )
        case 1:
            return url_format % key_id
        case 2:
            return url_format % (region, key_id)
        case _:
            raise ValueError(f"Key URL Format for region {region} contains too many %s specifiers")


class AwsElbKeyResolver:
    """KeyLocator resolving ELB signing keys by region and kid.

    Fetched keys are kept in a small cache since ELB keys are immutable per kid.
    """

    def __init__(
        self,
        region: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        cache_seconds: float = 3600,
    ) -> None:
        if not region or not region.strip():
            raise ValueError("AWS region cannot be blank")
        self._region = region
        self._client = client
        self._timeout = timeout
        self._cache: InMemoryCache[str, Any] = InMemoryCache(
            max_entries=25, ttl_seconds=cache_seconds
        )

    @property
    def region(self) -> str:
        return self._region

    def locate(self, header: JwsHeader) -> Any:
        key_id = header.get("kid")
        if not isinstance(key_id, str) or not key_id.strip():
            raise KeyResolutionError(
                "JWT contained no Key ID (kid) in Header, unable to resolve an AWS ELB Key "
                "without a valid Key ID"
            )

        cached = self._cache.get(key_id)
        if cached is not None:
            return cached

        try:
            key_url = prepare_key_url(self._region, key_id)
        except ValueError as e:
            raise KeyResolutionError(f"Failed to resolve AWS ELB Key {key_id}: {e}") from e

        try:
            response = http_get(key_url, client=self._client, timeout=self._timeout)
            if response.status_code != 200:
                raise KeyLoadError(f"HTTP {response.status_code}")
            key = load_public_key_from_pem(ALGORITHM_EC, response.content)
        except (httpx.HTTPError, KeyLoadError) as e:
            raise KeyResolutionError(
                f"Failed to resolve AWS ELB Key {key_id} from URL {key_url}: {e}"
            ) from e

        self._cache.set(key_id, key)
        return key

    def __str__(self) -> str:
        return f"AwsElbKeyResolver{{region={self._region}}}"
