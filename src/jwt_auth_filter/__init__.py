"""
JWT bearer token authentication filter with a Flask binding.

High-level flow (per request)
-----------------------------
1. `JwtAuthFilter.do_filter(...)` runs (from `before_request` in Flask).
2. Requests to excluded paths (`PathExclusion`) pass straight through.
3. `HeaderBasedJwtAuthenticationEngine` collects candidate tokens from the
   configured `HeaderSource`s, `Authorization: Bearer <token>` by default.
4. `SignedJWTVerifier.verify(token)` checks each candidate:
   - Reads the unverified header to get `kid`
   - Asks its KeyLocator for the verification key
   - Runs `jwt.decode(...)` with algorithm, time and claim checks
5. The first verified candidate with a username wins, otherwise the first
   recorded challenge is sent as `WWW-Authenticate: Bearer ...`.
6. On success the identity is stored on `flask.g`.

Security notes
--------------
- Never trust claims until signature verification succeeds.
- Algorithms are derived from the key type (avoid algorithm confusion).
- JWKS keys are cached by `kid`; OIDC discovery retries are throttled so an
  unreachable authorization server is not hammered once per request.
- Configuration is frozen on first use, later changes only log warnings.

Example usage
-------------

.. code-block:: python

    from jwt_auth_filter import (
        CachedJwksKeyLocator,
        JWTVerifyOptions,
        JwtAuthExtension,
        SignedJWTVerifier,
    )

    verifier = SignedJWTVerifier(
        locator=CachedJwksKeyLocator("https://your-tenant.example.com/.well-known/jwks.json"),
        options=JWTVerifyOptions(issuer="https://your-tenant.example.com/"),
    )

    auth = JwtAuthExtension(app, verifier=verifier, path_exclusions="/healthz,/status/*")

    @app.route("/admin")
    @auth.require(roles=["ADMIN"])
    def admin():
        return {"user": current_user()}

Or configure entirely from ``app.config`` / the environment, e.g.
``JWT_OIDC_PROVIDER_URL=https://idp.example.com`` and ``JwtAuthExtension(app)``.
"""

# Challenges
from .challenges import Challenge, TokenCandidate, VerifiedToken

# Claims and roles
from .claims import ClaimPath, find_claim

# Configuration
from .configuration import (
    AwsVerificationProvider,
    DefaultVerificationProvider,
    EnvironmentParameters,
    FrozenFilterConfiguration,
    HeaderBasedEngineProvider,
    MappingParameters,
    OidcVerificationProvider,
    engine_factory,
    verification_factory,
)

# Engine
from .engine import HeaderBasedJwtAuthenticationEngine, JwtAuthenticationEngine

# Errors
from .errors import (
    AuthenticationConfigurationError,
    AuthError,
    KeyLoadError,
    KeyResolutionError,
    VerificationError,
    VerificationErrorKind,
)

# Filter
from .filter import JwtAuthFilter

# Flask extension
from .flask_extension import (
    FlaskConfigurationAdaptor,
    FlaskEngineProvider,
    FlaskJwtAuthenticationEngine,
    FlaskRequestBinding,
    JwtAuthExtension,
    JwtUserLogFilter,
    current_user,
)

# HTTP constants
from .http_constants import DEFAULT_HEADER_SOURCES

# Key locators
from .key_locators import (
    AwsElbKeyResolver,
    CachedJwksKeyLocator,
    DirectKeyLocator,
    JwksKeyLocator,
    OidcConfiguration,
    OidcConfigurationLoader,
    OpenIdConnectDiscoveryLocator,
    UrlJwksKeyLocator,
)

# Path exclusions
from .path_exclusion import PathExclusion

# Protocols
from .protocols import (
    Claims,
    KeyLocator,
    ParameterLookup,
    RequestBinding,
    RuntimeConfigurationAdaptor,
    Verifier,
)
from .roles import RolesHelper

# Sources
from .sources import HeaderSource

# Verifier
from .verifier import JWTVerifyOptions, SignedJWTVerifier

__all__ = [
    # Errors
    "AuthError",
    "AuthenticationConfigurationError",
    "KeyLoadError",
    "KeyResolutionError",
    "VerificationError",
    "VerificationErrorKind",
    # Protocols
    "Claims",
    "KeyLocator",
    "ParameterLookup",
    "RequestBinding",
    "RuntimeConfigurationAdaptor",
    "Verifier",
    # Sources and challenges
    "DEFAULT_HEADER_SOURCES",
    "Challenge",
    "HeaderSource",
    "TokenCandidate",
    "VerifiedToken",
    # Claims and roles
    "ClaimPath",
    "RolesHelper",
    "find_claim",
    # Path exclusions
    "PathExclusion",
    # Verifier
    "JWTVerifyOptions",
    "SignedJWTVerifier",
    # Key locators
    "AwsElbKeyResolver",
    "CachedJwksKeyLocator",
    "DirectKeyLocator",
    "JwksKeyLocator",
    "OidcConfiguration",
    "OidcConfigurationLoader",
    "OpenIdConnectDiscoveryLocator",
    "UrlJwksKeyLocator",
    # Engine
    "HeaderBasedJwtAuthenticationEngine",
    "JwtAuthenticationEngine",
    # Configuration
    "AwsVerificationProvider",
    "DefaultVerificationProvider",
    "EnvironmentParameters",
    "FrozenFilterConfiguration",
    "HeaderBasedEngineProvider",
    "MappingParameters",
    "OidcVerificationProvider",
    "engine_factory",
    "verification_factory",
    # Filter
    "JwtAuthFilter",
    # Flask extension
    "FlaskConfigurationAdaptor",
    "FlaskEngineProvider",
    "FlaskJwtAuthenticationEngine",
    "FlaskRequestBinding",
    "JwtAuthExtension",
    "JwtUserLogFilter",
    "current_user",
]
