"""
Runtime configuration for the JWT authentication filter.

Parameters (plain strings) are turned into a verifier, an engine and path
exclusions by providers and factories, then frozen per filter instance.
"""

from . import automated
from .automated import ATTRIBUTE_JWT_ENGINE, ATTRIBUTE_JWT_VERIFIER, ATTRIBUTE_PATH_EXCLUSIONS
from .factories import EngineFactory, VerificationFactory, engine_factory, verification_factory
from .frozen import FrozenFilterConfiguration
from .parameters import (
    EnvironmentParameters,
    MappingParameters,
    chain_parameters,
    parse_boolean,
    parse_list,
    parse_parameter,
)
from .providers import (
    AwsVerificationProvider,
    ConfigurationProvider,
    DefaultVerificationProvider,
    EngineProvider,
    HeaderBasedEngineProvider,
    OidcVerificationProvider,
    VerificationProvider,
)

__all__ = [
    "ATTRIBUTE_JWT_ENGINE",
    "ATTRIBUTE_JWT_VERIFIER",
    "ATTRIBUTE_PATH_EXCLUSIONS",
    "AwsVerificationProvider",
    "ConfigurationProvider",
    "DefaultVerificationProvider",
    "EngineFactory",
    "EngineProvider",
    "EnvironmentParameters",
    "FrozenFilterConfiguration",
    "HeaderBasedEngineProvider",
    "MappingParameters",
    "OidcVerificationProvider",
    "VerificationFactory",
    "VerificationProvider",
    "automated",
    "chain_parameters",
    "engine_factory",
    "parse_boolean",
    "parse_list",
    "parse_parameter",
    "verification_factory",
]
