"""Per-request value objects produced while authenticating a request."""

from __future__ import annotations

from dataclasses import dataclass

from .http_constants import (
    AUTH_SCHEME_BEARER,
    CHALLENGE_PARAMETER_ERROR,
    CHALLENGE_PARAMETER_ERROR_DESCRIPTION,
    CHALLENGE_PARAMETER_REALM,
    sanitise_header_parameter_value,
)
from .protocols import Claims
from .sources import HeaderSource


@dataclass(frozen=True, slots=True)
class Challenge:
    """Why authentication failed, rendered into a WWW-Authenticate header.

    Attributes:
        status_code: HTTP status to send (401 or 400).
        error_code: OAuth2 error code, empty when no credentials were offered.
        error_description: Human readable description, may be empty.
    """

    status_code: int
    error_code: str = ""
    error_description: str = ""

    def __post_init__(self) -> None:
        # Normalise None to "" so header building never has to care
        if self.error_code is None:
            object.__setattr__(self, "error_code", "")
        if self.error_description is None:
            object.__setattr__(self, "error_description", "")

    def to_header_value(self, realm: str | None) -> str:
        """Build the ``Bearer ...`` challenge value for this challenge.

        Blank realm, error code and description are omitted. The description
        is sanitised, the realm is expected to be sanitised by the caller.
        """
        params: list[str] = []
        if realm and realm.strip():
            params.append(f'{CHALLENGE_PARAMETER_REALM}="{realm}"')
        if self.error_code.strip():
            params.append(f'{CHALLENGE_PARAMETER_ERROR}="{self.error_code}"')
        description = sanitise_header_parameter_value(self.error_description) or ""
        if description.strip():
            params.append(f'{CHALLENGE_PARAMETER_ERROR_DESCRIPTION}="{description}"')

        if not params:
            return AUTH_SCHEME_BEARER
        return f"{AUTH_SCHEME_BEARER} " + ", ".join(params)


@dataclass(frozen=True, slots=True)
class TokenCandidate:
    """One occurrence of a configured source found in a request."""

    source: HeaderSource
    value: str | None

    def raw_token(self) -> str | None:
        return self.source.get_raw_token(self.value)


@dataclass(frozen=True, slots=True)
class VerifiedToken:
    """A candidate whose token passed verification.

    Attributes:
        raw_token: The token with its prefix removed.
        candidate: Where the token came from.
        claims: The verified claims returned by the verifier.
    """

    raw_token: str
    candidate: TokenCandidate
    claims: Claims
