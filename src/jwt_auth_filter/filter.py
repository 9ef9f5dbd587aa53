"""Configurable JWT authentication filter.

The filter sits in front of the host framework's request handling:

1. Requests to excluded paths pass straight through.
2. Otherwise the frozen engine authenticates the request with the frozen
   verifier, writing a challenge to the response on failure.

Configuration is read from runtime attributes (see configuration.automated)
and frozen on first use, so later attribute changes only produce warnings.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Final

from .cache_stores import InMemoryCache
from .configuration import automated
from .configuration.automated import (
    ATTRIBUTE_JWT_ENGINE,
    ATTRIBUTE_JWT_VERIFIER,
    ATTRIBUTE_PATH_EXCLUSIONS,
)
from .configuration.frozen import FrozenFilterConfiguration
from .engine import JwtAuthenticationEngine
from .errors import AuthenticationConfigurationError
from .path_exclusion import PathExclusion, is_excluded
from .protocols import RequestBinding, RuntimeConfigurationAdaptor

logger = logging.getLogger(__name__)

EXCLUSIONS_CACHE_SIZE: Final[int] = 10
EXCLUSIONS_CACHE_SECONDS: Final[float] = 15 * 60

_exclusion_warnings: InMemoryCache[str, bool] = InMemoryCache(
    max_entries=EXCLUSIONS_CACHE_SIZE,
    ttl_seconds=EXCLUSIONS_CACHE_SECONDS,
)
"""Paths already warned about, so a polled health endpoint doesn't flood the logs."""


def reset_exclusion_warnings() -> None:
    _exclusion_warnings.invalidate_all()


def is_excluded_path(path: str | None, exclusions: Sequence[PathExclusion] | None) -> bool:
    """Whether a path is excluded, warning once per path (per cache lifetime)."""
    if not exclusions:
        return False

    excluded = is_excluded(path, exclusions)
    if excluded and _exclusion_warnings.get(path) is None:
        logger.warning(
            "Request to path %s is excluded from JWT Authentication filtering by filter configuration",
            path,
        )
        _exclusion_warnings.set(path, True)
    return excluded


class JwtAuthFilter[RequestT, ResponseT]:
    """Applies JWT authentication to requests.

    Args:
        adaptor: Runtime configuration the engine, verifier and exclusions are
            read from.
        binding: Framework binding, used for the request path and status.
        default_engine: Engine used when the configuration supplies none.

    Thread Safety:
        A single instance serves all requests, configuration is frozen under a
        lock and never changes afterwards.
    """

    def __init__(
        self,
        adaptor: RuntimeConfigurationAdaptor,
        binding: RequestBinding[RequestT, ResponseT],
        default_engine: JwtAuthenticationEngine[RequestT, ResponseT] | None = None,
    ) -> None:
        self._adaptor = adaptor
        self._binding = binding
        self._default_engine = default_engine
        self._config = FrozenFilterConfiguration()

    @property
    def config(self) -> FrozenFilterConfiguration:
        return self._config

    def configure(self) -> None:
        """Run automated configuration and freeze whatever it produced.

        Configuration errors are logged rather than raised, the host may still
        supply the missing pieces as attributes before the first request.
        """
        automated.configure(self._adaptor)

        try:
            self._config.try_freeze_path_exclusions(
                self._adaptor.get_attribute(ATTRIBUTE_PATH_EXCLUSIONS)
            )
        except AuthenticationConfigurationError as e:
            logger.error("%s", e)
        try:
            self._config.try_freeze_engine(
                self._adaptor.get_attribute(ATTRIBUTE_JWT_ENGINE), self._default_engine
            )
        except AuthenticationConfigurationError as e:
            logger.error("%s", e)
        try:
            self._config.try_freeze_verifier(self._adaptor.get_attribute(ATTRIBUTE_JWT_VERIFIER))
        except AuthenticationConfigurationError as e:
            logger.error("%s", e)

    def is_excluded(self, path: str | None) -> bool:
        return is_excluded_path(path, self._config.path_exclusions)

    def do_filter(self, request: RequestT, response: ResponseT) -> RequestT | None:
        """Filter a request.

        Returns:
            The request itself for excluded paths, the authenticated request on
            success, None when the request was rejected (the response already
            carries the challenge or error).

        Raises:
            AuthenticationConfigurationError: If no engine or verifier is available.
        """
        config = self._config
        get = self._adaptor.get_attribute

        if not config.are_path_exclusions_frozen:
            config.try_freeze_path_exclusions(get(ATTRIBUTE_PATH_EXCLUSIONS))
        config.warn_if_modification_attempted(
            ATTRIBUTE_PATH_EXCLUSIONS, get(ATTRIBUTE_PATH_EXCLUSIONS), config.path_exclusions
        )
        if self.is_excluded(self._binding.get_path(request)):
            return request

        if not config.is_engine_frozen:
            config.try_freeze_engine(get(ATTRIBUTE_JWT_ENGINE), self._default_engine)
        config.warn_if_modification_attempted(
            ATTRIBUTE_JWT_ENGINE, get(ATTRIBUTE_JWT_ENGINE), config.engine
        )
        if not config.is_verifier_frozen:
            config.try_freeze_verifier(get(ATTRIBUTE_JWT_VERIFIER))
        config.warn_if_modification_attempted(
            ATTRIBUTE_JWT_VERIFIER, get(ATTRIBUTE_JWT_VERIFIER), config.verifier
        )

        engine: JwtAuthenticationEngine[Any, Any] = config.engine
        logger.debug("Using JWT Authentication engine %s with JWT verifier %s", engine, config.verifier)

        authenticated = engine.authenticate(request, response, config.verifier)
        if authenticated is None:
            logger.warning(
                "Request to %s rejected as unauthenticated with HTTP %s",
                self._binding.get_request_url(request),
                self._binding.get_status(response),
            )
        return authenticated
