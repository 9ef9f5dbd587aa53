"""HTTP and OAuth2 constants plus header value sanitisation.

Any externally influenced string (realm, error description) is passed through
one of the sanitisers before it is embedded in a response header, which rules
out header injection and response splitting via CR/LF or quote characters.
"""

from __future__ import annotations

from typing import Final

from .sources import HeaderSource

HEADER_AUTHORIZATION: Final[str] = "Authorization"
HEADER_WWW_AUTHENTICATE: Final[str] = "WWW-Authenticate"
AUTH_SCHEME_BEARER: Final[str] = "Bearer"
CHALLENGE_PARAMETER_REALM: Final[str] = "realm"

# OAuth2 bearer token error codes and challenge parameters (RFC 6750)
ERROR_INVALID_TOKEN: Final[str] = "invalid_token"
ERROR_INVALID_REQUEST: Final[str] = "invalid_request"
CHALLENGE_PARAMETER_ERROR: Final[str] = "error"
CHALLENGE_PARAMETER_ERROR_DESCRIPTION: Final[str] = "error_description"

DEFAULT_HEADER_SOURCES: Final[tuple[HeaderSource, ...]] = (
    HeaderSource(HEADER_AUTHORIZATION, AUTH_SCHEME_BEARER),
)
"""Sources used when none are configured: ``Authorization: Bearer <jwt>``."""

_PARAMETER_SAFE_PUNCTUATION: Final[frozenset[str]] = frozenset("-_.,;/'=+ ")
_VALUE_SAFE_PUNCTUATION: Final[frozenset[str]] = _PARAMETER_SAFE_PUNCTUATION | {'"'}


def _sanitise(value: str | None, allowed: frozenset[str]) -> str | None:
    if value is None:
        return None
    return "".join(c for c in value if (c.isascii() and c.isalnum()) or c in allowed)


def sanitise_header_parameter_value(value: str | None) -> str | None:
    """Sanitise a value destined for a quoted header parameter.

    Keeps ASCII letters, digits, space and ``-_.,;/'=+``, drops everything else.
    """
    return _sanitise(value, _PARAMETER_SAFE_PUNCTUATION)


def sanitise_header_value(value: str | None) -> str | None:
    """Sanitise a complete header value.

    Same as sanitise_header_parameter_value() but also keeps ``"`` so already
    formatted parameters survive.
    """
    return _sanitise(value, _VALUE_SAFE_PUNCTUATION)
