"""
Key locator implementations for resolving JWT verification keys.

This package contains implementations of the KeyLocator protocol, allowing
flexible resolution of verification keys from different sources.
"""

from .aws import AwsElbKeyResolver
from .direct import DirectKeyLocator
from .jwks import CachedJwksKeyLocator, JwksKeyLocator, UrlJwksKeyLocator
from .oidc import OidcConfiguration, OidcConfigurationLoader, OpenIdConnectDiscoveryLocator

__all__ = [
    "AwsElbKeyResolver",
    "CachedJwksKeyLocator",
    "DirectKeyLocator",
    "JwksKeyLocator",
    "OidcConfiguration",
    "OidcConfigurationLoader",
    "OpenIdConnectDiscoveryLocator",
    "UrlJwksKeyLocator",
]
