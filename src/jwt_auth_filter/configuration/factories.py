"""Factories that configure verifiers and engines from registered providers.

Providers are tried highest priority first, ties keep registration order.
The first provider that reports success ends the search.

Module instances:

- ``verification_factory``: OIDC, AWS and default providers registered
- ``engine_factory``: empty until a framework binding registers its provider
  (importing jwt_auth_filter.flask_extension registers the Flask one)
"""

from __future__ import annotations

import logging
import threading

from ..protocols import ParameterLookup
from .providers import (
    AwsVerificationProvider,
    ConfigurationProvider,
    DefaultVerificationProvider,
    EngineConsumer,
    EngineProvider,
    OidcVerificationProvider,
    VerificationProvider,
    VerifierConsumer,
)

logger = logging.getLogger(__name__)


class _ProviderFactory[P: ConfigurationProvider]:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._defaults: list[P] = []
        self._providers: list[P] = []

    def register(self, provider: P, *, default: bool = False) -> None:
        """Register a provider.

        Args:
            provider: The provider, ignored if this instance is already registered.
            default: Keep the provider registered across reset().
        """
        with self._lock:
            if default and not any(p is provider for p in self._defaults):
                self._defaults.append(provider)
            if not any(p is provider for p in self._providers):
                self._providers.append(provider)

    def reset(self) -> None:
        """Drop every provider except the defaults."""
        with self._lock:
            self._providers = list(self._defaults)

    def providers(self) -> list[P]:
        """Registered providers in the order they are tried."""
        with self._lock:
            return sorted(self._providers, key=lambda p: p.priority(), reverse=True)

    def available(self) -> int:
        with self._lock:
            return len(self._providers)


class VerificationFactory(_ProviderFactory[VerificationProvider]):
    def configure(self, lookup: ParameterLookup, consumer: VerifierConsumer) -> bool:
        """Configure a verifier with the first willing provider.

        Returns:
            True if some provider configured a verifier.
        """
        for provider in self.providers():
            if provider.configure(lookup, consumer):
                return True
        logger.warning("Failed to configure any JWT verifier from the available providers")
        return False


class EngineFactory(_ProviderFactory[EngineProvider]):
    def configure(self, lookup: ParameterLookup, consumer: EngineConsumer) -> bool:
        for provider in self.providers():
            if provider.configure(lookup, consumer):
                return True
        logger.info(
            "Failed to configure any JWT engine from the available providers. "
            "The default engine for your runtime will be used as a result."
        )
        return False


verification_factory = VerificationFactory()
verification_factory.register(OidcVerificationProvider(), default=True)
verification_factory.register(AwsVerificationProvider(), default=True)
verification_factory.register(DefaultVerificationProvider(), default=True)

engine_factory = EngineFactory()
