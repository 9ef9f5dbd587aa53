"""Authentication errors and the verification failure taxonomy.

This module defines the exception hierarchy for JWT authentication. All errors
inherit from AuthError to allow catch-all error handling.

Verification failures are described by a closed set of kinds
(VerificationErrorKind) rather than by exception subclasses. The verifier
converts every failure of the underlying JWT library into exactly one kind and
the authentication engine maps each kind onto exactly one HTTP challenge.

Security Note:
    Error messages end up (sanitised) in the WWW-Authenticate response header,
    so they should describe the failure without echoing secrets or key material.
"""

from __future__ import annotations

from enum import StrEnum


class AuthError(Exception):
    """Base exception for all authentication failures raised by this package.

    Application code can catch this single exception type to handle any
    auth-related failure generically.
    """


class VerificationErrorKind(StrEnum):
    """Closed set of reasons a candidate token can fail verification.

    Members:
        KEY: No usable key could be produced (unknown kid, weak key, JWKS or
            discovery failure).
        SIGNATURE: The signature did not verify with the resolved key.
        MALFORMED: The token is not structurally a JWT.
        UNSUPPORTED: The token uses a feature we do not accept, typically an
            algorithm outside the allowlist for the resolved key.
        EXPIRED: The exp claim has passed (after clock skew).
        PREMATURE: The nbf/iat claims place the token in the future.
        INVALID_CLAIM: A validated claim (iss, aud, required claim) is wrong.
        OTHER: Any other token validation failure.
    """

    KEY = "key"
    SIGNATURE = "signature"
    MALFORMED = "malformed"
    UNSUPPORTED = "unsupported"
    EXPIRED = "expired"
    PREMATURE = "premature"
    INVALID_CLAIM = "invalid_claim"
    OTHER = "other"


class VerificationError(AuthError):
    """Raised when a candidate token fails verification.

    Attributes:
        kind: The failure kind, used by the engine to select a challenge.
        message: Human readable description of the failure.
    """

    def __init__(self, kind: VerificationErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class KeyResolutionError(VerificationError):
    """Raised by key locators when no usable verification key can be produced.

    This covers a token without a kid, a kid absent from the key set, an
    unreachable JWKS or discovery endpoint and unusable key material. All of
    these are reported to clients identically.
    """

    def __init__(self, message: str) -> None:
        super().__init__(VerificationErrorKind.KEY, message)


class KeyLoadError(AuthError):
    """Raised when key material (secret, public key, JWKS) cannot be loaded."""


class AuthenticationConfigurationError(AuthError):
    """Raised when the filter is not properly configured.

    This indicates the deployment itself is broken (e.g. no verifier was ever
    configured) rather than the request being unauthenticated, so it is never
    converted into a challenge.
    """
