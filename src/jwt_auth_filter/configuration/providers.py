"""Configuration providers.

A provider inspects the configuration parameters and, if the parameters it
understands are present, builds a verifier or an engine and hands it to a
consumer callback. Factories (see factories.py) try providers in priority
order until one succeeds.

Built-in verification providers, highest priority first:

- OidcVerificationProvider (100): ``jwt.oidc.provider.url``
- AwsVerificationProvider (1): ``jwt.aws.region``
- DefaultVerificationProvider (0): ``jwt.jwks.url``, ``jwt.secret.key`` or
  ``jwt.public.key``

Engine providers are framework specific, they subclass
HeaderBasedEngineProvider and only supply ``create_engine()``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from datetime import timedelta
from pathlib import Path
from typing import Any, ClassVar, Final
from urllib.parse import urlsplit

import httpx

from ..engine import JwtAuthenticationEngine
from ..errors import KeyLoadError
from ..http_client import DEFAULT_HTTP_TIMEOUT
from ..http_constants import DEFAULT_HEADER_SOURCES
from ..key_locators.aws import AwsElbKeyResolver
from ..key_locators.jwks import CachedJwksKeyLocator
from ..key_locators.oidc import (
    WELL_KNOWN_OPENID_CONFIGURATION,
    OpenIdConnectDiscoveryLocator,
    prepare_discovery_uri,
)
from ..keys import load_public_key, load_secret_key
from ..protocols import ParameterLookup, Verifier
from ..sources import HeaderSource
from ..verifier import (
    SECRET_KEY_DEBUG_STRING,
    JWTVerifyOptions,
    SignedJWTVerifier,
    debug_string_for_locator,
    debug_string_for_public_key,
)
from .parameters import (
    DEFAULT_ALLOWED_CLOCK_SKEW_SECONDS,
    DEFAULT_JWKS_CACHE_KEYS_FOR_MINUTES,
    DEFAULT_OIDC_RETRY_INTERVAL_SECONDS,
    PARAM_ALLOWED_CLOCK_SKEW,
    PARAM_AUDIENCE,
    PARAM_AWS_REGION,
    PARAM_HEADER_NAMES,
    PARAM_HEADER_PREFIXES,
    PARAM_ISSUER,
    PARAM_JWKS_CACHE_KEYS_FOR,
    PARAM_JWKS_URL,
    PARAM_KEY_ALGORITHM,
    PARAM_OIDC_PROVIDER_URL,
    PARAM_OIDC_RETRY_INTERVAL,
    PARAM_PUBLIC_KEY,
    PARAM_REALM,
    PARAM_SECRET_KEY,
    PARAM_USE_DEFAULT_HEADERS,
    PARAM_USERNAME_CLAIMS,
    MappingParameters,
    parse_boolean,
    parse_list,
    parse_non_negative_int,
    parse_positive_int,
    parse_parameter,
)

logger = logging.getLogger(__name__)

type VerifierConsumer = Callable[[Verifier], None]
type EngineConsumer = Callable[[JwtAuthenticationEngine[Any, Any]], None]

AWS_ELB_ALGORITHMS: Final[tuple[str, ...]] = ("ES256",)
"""AWS ELB signs its OIDC data tokens with ES256 only."""


def prepare_parameters(lookup: ParameterLookup, names: Iterable[str]) -> dict[str, str]:
    """Collect the named parameters that have a value."""
    parameters: dict[str, str] = {}
    for name in names:
        value = lookup(name)
        if value is not None:
            parameters[name] = value
    return parameters


class ConfigurationProvider:
    """Base class for providers, higher priority providers are tried first."""

    def priority(self) -> int:
        return 0


class VerificationProvider(ConfigurationProvider, ABC):
    @abstractmethod
    def configure(self, lookup: ParameterLookup, consumer: VerifierConsumer) -> bool:
        """Configure a verifier if the relevant parameters are present.

        Returns:
            True if a verifier was passed to ``consumer``.
        """


class EngineProvider(ConfigurationProvider, ABC):
    @abstractmethod
    def configure(self, lookup: ParameterLookup, consumer: EngineConsumer) -> bool:
        """Configure an engine if the relevant parameters are present.

        Returns:
            True if an engine was passed to ``consumer``.
        """


class DefaultVerificationProvider(VerificationProvider):
    """Builds a SignedJWTVerifier from a JWKS URL, secret key or public key.

    When several are configured the JWKS URL takes precedence over the secret
    key file, which takes precedence over the public key file.

    Args:
        client: httpx client used for JWKS fetches.
        timeout: Timeout for JWKS fetches when no client is given.
    """

    PARAMETERS: ClassVar[tuple[str, ...]] = (
        PARAM_PUBLIC_KEY,
        PARAM_SECRET_KEY,
        PARAM_JWKS_URL,
        PARAM_KEY_ALGORITHM,
        PARAM_ALLOWED_CLOCK_SKEW,
        PARAM_ISSUER,
        PARAM_AUDIENCE,
    )

    def __init__(
        self,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._client = client
        self._timeout = timeout

    def configure(self, lookup: ParameterLookup, consumer: VerifierConsumer) -> bool:
        parameters = prepare_parameters(lookup, self.PARAMETERS)
        if not parameters:
            logger.info(
                "No relevant parameters provided to allow default JWT verifier configuration, "
                "authentication will not be possible unless the verifier is separately configured."
            )
            return False

        try:
            verifier = self.create(lookup)
        except KeyLoadError as e:
            logger.error("Failed to configure default JWT verifier: %s", e)
            return False

        consumer(verifier)
        logger.info("Configured the default JWT verifier: %s", verifier)
        return True

    def create(self, lookup: ParameterLookup) -> SignedJWTVerifier:
        """Create the verifier.

        Raises:
            KeyLoadError: If no key source is configured or it can't be loaded.
        """
        jwks_url = lookup(PARAM_JWKS_URL)
        secret_key = lookup(PARAM_SECRET_KEY)
        public_key = lookup(PARAM_PUBLIC_KEY)
        cache_keys_for = parse_parameter(
            lookup, PARAM_JWKS_CACHE_KEYS_FOR, parse_positive_int, DEFAULT_JWKS_CACHE_KEYS_FOR_MINUTES
        )

        if jwks_url and jwks_url.strip():
            try:
                locator = CachedJwksKeyLocator(
                    self.as_jwks_uri(jwks_url.strip()),
                    timedelta(minutes=cache_keys_for),
                    client=self._client,
                    timeout=self._timeout,
                )
            except ValueError as e:
                raise self._invalid_jwks_url() from e
            return SignedJWTVerifier(
                locator=locator,
                options=self.verify_options(lookup),
                debug_string=debug_string_for_locator(locator),
            )
        if secret_key and secret_key.strip():
            secret = load_secret_key(secret_key.strip())
            return SignedJWTVerifier(
                key=secret,
                options=self.verify_options(lookup),
                debug_string=SECRET_KEY_DEBUG_STRING,
            )
        if public_key and public_key.strip():
            key = load_public_key(lookup(PARAM_KEY_ALGORITHM), public_key.strip())
            return SignedJWTVerifier(
                key=key,
                options=self.verify_options(lookup),
                debug_string=debug_string_for_public_key(key),
            )
        raise KeyLoadError("No parameter available to supply a key or JWKS URL for JWT verification.")

    @staticmethod
    def verify_options(lookup: ParameterLookup) -> JWTVerifyOptions:
        issuer = lookup(PARAM_ISSUER)
        audience = lookup(PARAM_AUDIENCE)
        return JWTVerifyOptions(
            issuer=issuer.strip() if issuer and issuer.strip() else None,
            audience=audience.strip() if audience and audience.strip() else None,
            leeway=parse_parameter(
                lookup, PARAM_ALLOWED_CLOCK_SKEW, parse_non_negative_int, DEFAULT_ALLOWED_CLOCK_SKEW_SECONDS
            ),
        )

    @classmethod
    def as_jwks_uri(cls, jwks_url: str) -> str:
        """Interpret a configured JWKS URL.

        A value without a scheme is accepted if it names an existing file.

        Raises:
            KeyLoadError: If the value is neither a URL nor an existing file.
        """
        if urlsplit(jwks_url).scheme:
            return jwks_url
        jwks_file = Path(jwks_url)
        if jwks_file.exists():
            return jwks_file.absolute().as_uri()
        raise cls._invalid_jwks_url()

    @staticmethod
    def _invalid_jwks_url() -> KeyLoadError:
        return KeyLoadError(f"Parameter {PARAM_JWKS_URL} is not a valid URL")


class OidcVerificationProvider(DefaultVerificationProvider):
    """Builds a verifier whose keys come from OpenID Connect discovery."""

    PARAMETERS: ClassVar[tuple[str, ...]] = (
        PARAM_OIDC_PROVIDER_URL,
        PARAM_OIDC_RETRY_INTERVAL,
        PARAM_JWKS_CACHE_KEYS_FOR,
        PARAM_ALLOWED_CLOCK_SKEW,
        PARAM_ISSUER,
        PARAM_AUDIENCE,
    )

    def priority(self) -> int:
        return 100

    def configure(self, lookup: ParameterLookup, consumer: VerifierConsumer) -> bool:
        parameters = prepare_parameters(lookup, self.PARAMETERS)
        raw_discovery_uri = parameters.get(PARAM_OIDC_PROVIDER_URL)
        if not raw_discovery_uri or not raw_discovery_uri.strip():
            logger.info(
                "No relevant parameters provided to allow OIDC auto-configuration JWT verifier "
                "configuration, authentication will not be possible unless the verifier is "
                "separately configured."
            )
            return False

        params = MappingParameters(parameters)
        retry_interval = parse_parameter(
            params, PARAM_OIDC_RETRY_INTERVAL, parse_non_negative_int, DEFAULT_OIDC_RETRY_INTERVAL_SECONDS
        )
        cache_keys_for = parse_parameter(
            params, PARAM_JWKS_CACHE_KEYS_FOR, parse_positive_int, DEFAULT_JWKS_CACHE_KEYS_FOR_MINUTES
        )
        discovery_uri = prepare_discovery_uri(raw_discovery_uri.strip())
        logger.info(
            "Resolved raw OpenID Connect configuration discovery URI %s to %s, if this is not "
            "correct ensure your configuration provides the full URI with the %s suffix",
            raw_discovery_uri,
            discovery_uri,
            WELL_KNOWN_OPENID_CONFIGURATION,
        )

        try:
            locator = CachedJwksKeyLocator(
                OpenIdConnectDiscoveryLocator(
                    discovery_uri,
                    timedelta(seconds=retry_interval),
                    client=self._client,
                    timeout=self._timeout,
                ),
                timedelta(minutes=cache_keys_for),
            )
        except ValueError as e:
            logger.error("Failed to configure OpenID Connect JWT verifier: %s", e)
            return False
        verifier = SignedJWTVerifier(
            locator=locator,
            options=self.verify_options(params),
            debug_string=debug_string_for_locator(locator),
        )
        consumer(verifier)
        logger.info("Configured the OpenID Connect JWT verifier: %s", verifier)
        return True


class AwsVerificationProvider(VerificationProvider):
    """Builds an ES256 verifier for tokens issued by an AWS load balancer."""

    def __init__(
        self,
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._client = client
        self._timeout = timeout

    def priority(self) -> int:
        return 1

    def configure(self, lookup: ParameterLookup, consumer: VerifierConsumer) -> bool:
        region = lookup(PARAM_AWS_REGION)
        if not region or not region.strip():
            logger.info("No relevant parameters to allow AWS verifier configuration.")
            return False

        resolver = AwsElbKeyResolver(region.strip(), client=self._client, timeout=self._timeout)
        verifier = SignedJWTVerifier(
            locator=resolver,
            options=JWTVerifyOptions(algorithms=AWS_ELB_ALGORITHMS),
            debug_string=debug_string_for_locator(resolver),
        )
        consumer(verifier)
        logger.info("Configured the AWS JWT Verifier: %s", verifier)
        return True


class HeaderBasedEngineProvider(EngineProvider):
    """Base for engine providers that read tokens from request headers.

    Header sources are the default ``Authorization: Bearer`` source (when
    ``jwt.headers.use-defaults`` is true) followed by ``jwt.headers.names``
    paired index-wise with ``jwt.headers.prefixes``. Without any source the
    provider declines to configure an engine.
    """

    def configure_headers(self, lookup: ParameterLookup) -> list[HeaderSource]:
        sources: list[HeaderSource] = []
        if parse_parameter(lookup, PARAM_USE_DEFAULT_HEADERS, parse_boolean, False):
            sources.extend(DEFAULT_HEADER_SOURCES)

        headers = parse_parameter(lookup, PARAM_HEADER_NAMES, parse_list, [])
        prefixes = parse_parameter(lookup, PARAM_HEADER_PREFIXES, parse_list, [])
        for i, header in enumerate(headers):
            prefix = prefixes[i] if i < len(prefixes) else None
            sources.append(HeaderSource(header, prefix))
        return sources

    def configure_username_claims(self, lookup: ParameterLookup) -> list[str]:
        return parse_parameter(lookup, PARAM_USERNAME_CLAIMS, parse_list, [])

    def configure_realm(self, lookup: ParameterLookup) -> str | None:
        return lookup(PARAM_REALM)

    def configure(self, lookup: ParameterLookup, consumer: EngineConsumer) -> bool:
        headers = self.configure_headers(lookup)
        if not headers:
            return False
        realm = self.configure_realm(lookup)
        username_claims = self.configure_username_claims(lookup)

        try:
            engine = self.create_engine(headers, realm, username_claims)
        except Exception as e:
            logger.warning("Failed to create JWT authentication engine: %s", e)
            return False
        if engine is None:
            return False

        consumer(engine)
        logger.info("Configured JWT authentication engine: %s", engine)
        return True

    @abstractmethod
    def create_engine(
        self,
        headers: Sequence[HeaderSource],
        realm: str | None,
        username_claims: Sequence[str],
    ) -> JwtAuthenticationEngine[Any, Any] | None:
        """Create the framework specific engine."""
