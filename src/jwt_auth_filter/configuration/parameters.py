"""Configuration parameter vocabulary and parameter sources.

Parameters are plain strings supplied by the host (Flask ``app.config``, the
process environment, a mapping in tests). Providers read them through a
``ParameterLookup`` so they never care where a value came from.

Environment variables use the upper-cased parameter name with ``.`` and ``-``
replaced by ``_``, e.g. ``jwt.jwks.url`` is read from ``JWT_JWKS_URL``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import Any, Final

from dotenv import load_dotenv

from ..protocols import ParameterLookup

logger = logging.getLogger(__name__)

# ============================================================================
# Parameter names
# ============================================================================

PARAM_ALLOW_MULTIPLE_CONFIGS: Final[str] = "jwt.configs.allow-multiple"
"""Whether automated configuration may replace an already configured verifier/engine."""

PARAM_USE_DEFAULT_HEADERS: Final[str] = "jwt.headers.use-defaults"
"""Whether the default ``Authorization: Bearer`` source is included."""

PARAM_HEADER_NAMES: Final[str] = "jwt.headers.names"
"""Comma separated header names to read tokens from."""

PARAM_HEADER_PREFIXES: Final[str] = "jwt.headers.prefixes"
"""Comma separated prefixes, paired index-wise with the header names."""

PARAM_USERNAME_CLAIMS: Final[str] = "jwt.username.claims"
"""Comma separated claim paths tried in order for the username."""

PARAM_REALM: Final[str] = "jwt.realm"
PARAM_PATH_EXCLUSIONS: Final[str] = "jwt.path-exclusions"

PARAM_SECRET_KEY: Final[str] = "jwt.secret.key"
"""Path to a file holding an HMAC secret key (raw or base64)."""

PARAM_PUBLIC_KEY: Final[str] = "jwt.public.key"
"""Path to a PEM public key file."""

PARAM_KEY_ALGORITHM: Final[str] = "jwt.key.algorithm"
"""``RSA`` or ``EC``, the type of key in the public key file."""

PARAM_JWKS_URL: Final[str] = "jwt.jwks.url"
PARAM_JWKS_CACHE_KEYS_FOR: Final[str] = "jwt.jwks.cache.minutes"
PARAM_ALLOWED_CLOCK_SKEW: Final[str] = "jwt.allowed.clock.skew"
"""Allowed clock skew in seconds for time based claims."""

PARAM_ISSUER: Final[str] = "jwt.issuer"
PARAM_AUDIENCE: Final[str] = "jwt.audience"

PARAM_OIDC_PROVIDER_URL: Final[str] = "jwt.oidc.provider.url"
PARAM_OIDC_RETRY_INTERVAL: Final[str] = "jwt.oidc.retry.interval"
"""Seconds between OIDC discovery attempts while discovery keeps failing."""

PARAM_AWS_REGION: Final[str] = "jwt.aws.region"

# ============================================================================
# Defaults
# ============================================================================

DEFAULT_KEY_ALGORITHM: Final[str] = "RSA"
DEFAULT_JWKS_CACHE_KEYS_FOR_MINUTES: Final[int] = 60
DEFAULT_ALLOWED_CLOCK_SKEW_SECONDS: Final[int] = 0
DEFAULT_OIDC_RETRY_INTERVAL_SECONDS: Final[int] = 30

_TRUE_VALUES: Final[frozenset[str]] = frozenset({"true", "yes", "on", "1"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"false", "no", "off", "0"})


# ============================================================================
# Parsing helpers
# ============================================================================


def parse_parameter[T](
    lookup: ParameterLookup, name: str, parser: Callable[[str], T], default: T
) -> T:
    """Read and parse a parameter, falling back to a default.

    The default is returned when the parameter is missing, blank, or the
    parser rejects it (raises ValueError/TypeError).
    """
    raw = lookup(name)
    if raw is None or not raw.strip():
        return default
    try:
        return parser(raw)
    except (ValueError, TypeError):
        logger.warning("Ignoring invalid value %r for parameter %s", raw, name)
        return default


def parse_boolean(value: str) -> bool:
    normalised = value.strip().lower()
    if normalised in _TRUE_VALUES:
        return True
    if normalised in _FALSE_VALUES:
        return False
    raise ValueError(f"Not a boolean: {value}")


def parse_list(value: str) -> list[str]:
    """Split a comma separated value, stripping items and skipping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_int(value: str) -> int:
    return int(value.strip())


def parse_positive_int(value: str) -> int:
    number = parse_int(value)
    if number <= 0:
        raise ValueError(f"Not a positive integer: {value}")
    return number


def parse_non_negative_int(value: str) -> int:
    number = parse_int(value)
    if number < 0:
        raise ValueError(f"Not a non-negative integer: {value}")
    return number


# ============================================================================
# Parameter sources
# ============================================================================


def environment_variable_name(name: str) -> str:
    return name.upper().replace(".", "_").replace("-", "_")


class EnvironmentParameters:
    """Parameter lookup backed by the process environment.

    A ``.env`` file is loaded once at construction (python-dotenv), variables
    already present in the environment take precedence over the file.

    Args:
        dotenv_path: Explicit ``.env`` file, searched for when None.
        environ: Mapping to read instead of ``os.environ``.
    """

    def __init__(
        self,
        dotenv_path: str | os.PathLike[str] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        load_dotenv(dotenv_path)
        self._environ = os.environ if environ is None else environ

    def __call__(self, name: str) -> str | None:
        return self._environ.get(environment_variable_name(name))


class MappingParameters:
    """Parameter lookup over a plain mapping, values are converted with str()."""

    def __init__(self, mapping: Mapping[str, Any]) -> None:
        self._mapping = mapping

    def __call__(self, name: str) -> str | None:
        value = self._mapping.get(name)
        return None if value is None else str(value)


def chain_parameters(*lookups: ParameterLookup) -> ParameterLookup:
    """Combine lookups, the first non-blank value wins."""

    def lookup(name: str) -> str | None:
        for source in lookups:
            value = source(name)
            if value is not None and value.strip():
                return value
        return None

    return lookup
