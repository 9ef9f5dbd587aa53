"""Protocol definitions for the JWT authentication filter.

This module defines structural interfaces using Protocol (PEP 544) for:
- Token verification
- Key resolution
- Framework request/response bindings
- Runtime configuration storage

Using protocols allows the engine to be written once against a small
capability set while each web framework (or test double) supplies its own
implementation without inheriting from anything.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .challenges import VerifiedToken

# ============================================================================
# Type Aliases
# ============================================================================

type Claims = Mapping[str, Any]
"""Represents the verified JWT payload as an immutable mapping."""

type JwsHeader = Mapping[str, Any]
"""The (unverified) JOSE header of a token, consulted only for kid/alg."""

type ParameterLookup = Callable[[str], str | None]
"""Host supplied ``name -> value`` lookup for configuration parameters."""


# ============================================================================
# Core Protocols
# ============================================================================


@runtime_checkable
class Verifier(Protocol):
    """Protocol for JWT verification implementations.

    Implementers must provide a verify() method that validates the token's
    structure, signature and time/claim constraints and returns the payload.
    """

    def verify(self, token: str) -> Claims:
        """Verify a raw JWT and return its claims.

        Args:
            token: The raw JWT string with any header prefix already removed.

        Returns:
            Mapping of verified claims.

        Raises:
            VerificationError: With a kind describing why verification failed.
        """
        ...


@runtime_checkable
class KeyLocator(Protocol):
    """Protocol for resolving the key that verifies a particular token.

    Common implementations:
    - DirectKeyLocator (a pre-loaded key, header ignored)
    - UrlJwksKeyLocator / CachedJwksKeyLocator (key id looked up in a JWKS)
    - OpenIdConnectDiscoveryLocator (JWKS found via OIDC discovery)
    - AwsElbKeyResolver (key fetched per key id from a load balancer endpoint)
    """

    def locate(self, header: JwsHeader) -> Any:
        """Resolve the verification key for a token.

        Args:
            header: The token's unverified header.

        Returns:
            Key material usable by PyJWT (bytes for HMAC keys, a
            cryptography public key object otherwise).

        Raises:
            KeyResolutionError: If no usable key can be produced.
        """
        ...


class RequestBinding[RequestT, ResponseT](Protocol):
    """Capabilities a web framework must provide to the authentication engine.

    The engine never touches framework objects directly, it only calls these
    methods. Header name lookup must be case-insensitive.
    """

    def get_header_values(self, request: RequestT, name: str) -> Sequence[str]: ...

    def get_path(self, request: RequestT) -> str: ...

    def get_request_url(self, request: RequestT) -> str: ...

    def set_status(self, response: ResponseT, status_code: int) -> None: ...

    def get_status(self, response: ResponseT) -> int: ...

    def add_header(self, response: ResponseT, name: str, value: str) -> None: ...

    def decorate_request(
        self, request: RequestT, verified: VerifiedToken, username: str
    ) -> RequestT:
        """Attach the authenticated identity to the request and return it."""
        ...

    def send_error(self, response: ResponseT, err: Exception) -> None:
        """Report an unexpected error (typically HTTP 500).

        Bindings for frameworks with their own exception-to-response mapping
        may re-raise ``err`` instead.
        """
        ...


class RuntimeConfigurationAdaptor(Protocol):
    """Read parameters and store/read shared attributes for a deployment.

    Parameters are the host's plain string configuration, attributes are live
    objects (engine, verifier, path exclusions) shared between configuration
    entry points and the filter.
    """

    def get_parameter(self, name: str) -> str | None: ...

    def set_attribute(self, name: str, value: Any) -> None: ...

    def get_attribute(self, name: str) -> Any: ...
