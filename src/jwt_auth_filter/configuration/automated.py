"""Automated configuration from runtime parameters.

Entry point used by filters (and by hosts that configure ahead of time) to
turn plain configuration parameters into live attributes: a verifier, path
exclusions and an engine. Items already present as attributes are left alone
unless ``jwt.configs.allow-multiple`` is true.
"""

from __future__ import annotations

import logging
from typing import Final

from ..path_exclusion import PathExclusion
from ..protocols import RuntimeConfigurationAdaptor
from .factories import EngineFactory, VerificationFactory, engine_factory, verification_factory
from .parameters import (
    PARAM_ALLOW_MULTIPLE_CONFIGS,
    PARAM_PATH_EXCLUSIONS,
    parse_boolean,
    parse_parameter,
)

logger = logging.getLogger(__name__)

ATTRIBUTE_JWT_ENGINE: Final[str] = "jwt_auth_filter.engine"
ATTRIBUTE_JWT_VERIFIER: Final[str] = "jwt_auth_filter.verifier"
ATTRIBUTE_PATH_EXCLUSIONS: Final[str] = "jwt_auth_filter.path-exclusions"


def configure(
    adaptor: RuntimeConfigurationAdaptor,
    *,
    verifiers: VerificationFactory | None = None,
    engines: EngineFactory | None = None,
) -> None:
    """Configure verifier, path exclusions and engine from parameters.

    Args:
        adaptor: Source of parameters and destination of attributes.
        verifiers: Factory for the verifier, the module instance by default.
        engines: Factory for the engine, the module instance by default.
    """
    verifiers = verifiers or verification_factory
    engines = engines or engine_factory
    allow_multiple = parse_parameter(
        adaptor.get_parameter, PARAM_ALLOW_MULTIPLE_CONFIGS, parse_boolean, False
    )

    if adaptor.get_attribute(ATTRIBUTE_JWT_VERIFIER) is None or allow_multiple:
        verifiers.configure(
            adaptor.get_parameter,
            lambda v: adaptor.set_attribute(ATTRIBUTE_JWT_VERIFIER, v),
        )
    else:
        logger.warning(
            "JWT Verifier already configured, skipping additional attempt to automatically configure."
        )

    if adaptor.get_attribute(ATTRIBUTE_PATH_EXCLUSIONS) is None or allow_multiple:
        raw_exclusions = adaptor.get_parameter(PARAM_PATH_EXCLUSIONS)
        if raw_exclusions and raw_exclusions.strip():
            try:
                adaptor.set_attribute(
                    ATTRIBUTE_PATH_EXCLUSIONS, PathExclusion.parse_path_patterns(raw_exclusions)
                )
            except ValueError as e:
                logger.error("Invalid %s configuration: %s", PARAM_PATH_EXCLUSIONS, e)
    else:
        logger.warning(
            "Path Exclusions already configured, skipping additional attempt to automatically configure."
        )

    if adaptor.get_attribute(ATTRIBUTE_JWT_ENGINE) is None or allow_multiple:
        engines.configure(
            adaptor.get_parameter,
            lambda e: adaptor.set_attribute(ATTRIBUTE_JWT_ENGINE, e),
        )
    else:
        logger.warning(
            "JWT Authentication Engine already configured, skipping additional attempt to "
            "automatically configure."
        )
