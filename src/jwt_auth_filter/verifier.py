"""JWT verification implementation using PyJWT.

This module provides the verifier used by the authentication engine. It:
- Reads the unverified header of a token
- Resolves the verification key (a fixed key, or via a KeyLocator)
- Validates the signature and time/claim constraints using PyJWT
- Converts every PyJWT failure into exactly one VerificationErrorKind

The allowed algorithms are derived from the type of the resolved key unless
configured explicitly, so an HMAC secret can never be used to verify a token
claiming an asymmetric algorithm and vice versa.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import jwt
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa

from .errors import AuthError, KeyResolutionError, VerificationError
from .errors import VerificationErrorKind as Kind
from .keys import public_key_fingerprint
from .protocols import Claims

if TYPE_CHECKING:
    from .protocols import KeyLocator

HMAC_ALGORITHMS: Final[tuple[str, ...]] = ("HS256", "HS384", "HS512")
RSA_ALGORITHMS: Final[tuple[str, ...]] = (
    "RS256",
    "RS384",
    "RS512",
    "PS256",
    "PS384",
    "PS512",
)
EC_ALGORITHMS: Final[tuple[str, ...]] = ("ES256", "ES384", "ES512")
EDDSA_ALGORITHMS: Final[tuple[str, ...]] = ("EdDSA",)

SECRET_KEY_DEBUG_STRING: Final[str] = "verificationMethod=SecretKey"


def algorithms_for_key(key: Any) -> tuple[str, ...]:
    """Return the signing algorithms a key of this type can verify.

    Raises:
        KeyResolutionError: If the key type is not supported.
    """
    if isinstance(key, (bytes, str)):
        return HMAC_ALGORITHMS
    if isinstance(key, rsa.RSAPublicKey):
        return RSA_ALGORITHMS
    if isinstance(key, ec.EllipticCurvePublicKey):
        return EC_ALGORITHMS
    if isinstance(key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
        return EDDSA_ALGORITHMS
    raise KeyResolutionError(f"Unsupported verification key type {type(key).__name__}")


def debug_string_for_public_key(key: Any) -> str:
    return f"verificationMethod=PublicKey, fingerprint={public_key_fingerprint(key)}"


def debug_string_for_locator(locator: KeyLocator) -> str:
    return f"verificationMethod=Locator, locator={locator}"


@dataclass(frozen=True, slots=True)
class JWTVerifyOptions:
    """Configuration for JWT validation rules.

    Attributes:
        issuer: Expected ``iss`` claim. If None, issuer is not validated.

        audience: Expected ``aud`` claim. If None, audience is not validated
            (tokens carrying an ``aud`` are still accepted).

        algorithms: Explicit allowlist of signing algorithms. If None, the
            allowlist is derived from the resolved key's type.

        leeway: Clock skew tolerance in seconds for exp/nbf/iat validation.
            Default: 0 (no leeway).

        required_claims: Claims that must be present, e.g. ("exp",).

    Security Invariants:
        - 'none' is never allowed (PyJWT rejects it, and it is never derived)
        - Keep leeway minimal to maintain tight expiration enforcement
    """

    issuer: str | None = None
    audience: str | None = None
    algorithms: tuple[str, ...] | None = None
    leeway: float = 0
    required_claims: tuple[str, ...] = ()


class SignedJWTVerifier:
    """Verifies signed JWTs with either a fixed key or a KeyLocator.

    Implements the Verifier protocol. Exactly one of ``key`` or ``locator``
    must be given.

    Thread Safety:
        Thread-safe assuming the KeyLocator is thread-safe. Options are frozen.

    Example:
        ```python
        verifier = SignedJWTVerifier(locator=CachedJwksKeyLocator(jwks_url))

        try:
            claims = verifier.verify(raw_token)
        except VerificationError as e:
            if e.kind is VerificationErrorKind.EXPIRED:
                ...
        ```
    """

    def __init__(
        self,
        *,
        key: Any = None,
        locator: KeyLocator | None = None,
        options: JWTVerifyOptions | None = None,
        debug_string: str | None = None,
    ) -> None:
        if (key is None) == (locator is None):
            raise ValueError("Exactly one of key or locator must be provided")

        self._key = key
        self._locator = locator
        self._opt = options or JWTVerifyOptions()

        if debug_string is not None:
            self._debug = debug_string
        elif locator is not None:
            self._debug = debug_string_for_locator(locator)
        elif isinstance(key, (bytes, str)):
            self._debug = SECRET_KEY_DEBUG_STRING
        else:
            self._debug = debug_string_for_public_key(key)

    @property
    def options(self) -> JWTVerifyOptions:
        return self._opt

    def verify(self, token: str) -> Claims:
        """Verify a JWT and return its claims.

        Raises:
            VerificationError: Kind MALFORMED for unparseable tokens, KEY when
                no key can be resolved, UNSUPPORTED for a disallowed algorithm,
                SIGNATURE, EXPIRED, PREMATURE, INVALID_CLAIM or OTHER as
                reported by PyJWT.
        """
        # Step 1: Read the header (cheap, no crypto) so the locator can pick a key
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise VerificationError(Kind.MALFORMED, str(e)) from e

        try:
            key = self._key if self._locator is None else self._locator.locate(header)
            algorithms = self._opt.algorithms or algorithms_for_key(key)
        except AuthError:
            raise
        except Exception as e:
            raise KeyResolutionError(f"Key resolution failed: {e}") from e

        # Step 2: Verify signature + validate claims
        options: dict[str, Any] = {"verify_aud": self._opt.audience is not None}
        if self._opt.required_claims:
            options["require"] = list(self._opt.required_claims)

        try:
            return jwt.decode(
                token,
                key,
                algorithms=list(algorithms),
                audience=self._opt.audience,
                issuer=self._opt.issuer,
                leeway=self._opt.leeway,
                options=options,
            )
        except jwt.ExpiredSignatureError as e:
            raise VerificationError(Kind.EXPIRED, str(e)) from e
        except jwt.ImmatureSignatureError as e:
            raise VerificationError(Kind.PREMATURE, str(e)) from e
        except jwt.InvalidSignatureError as e:
            raise VerificationError(Kind.SIGNATURE, str(e)) from e
        except jwt.InvalidAlgorithmError as e:
            raise VerificationError(Kind.UNSUPPORTED, str(e)) from e
        except (
            jwt.InvalidIssuerError,
            jwt.InvalidAudienceError,
            jwt.InvalidIssuedAtError,
            jwt.MissingRequiredClaimError,
        ) as e:
            raise VerificationError(Kind.INVALID_CLAIM, str(e)) from e
        except jwt.DecodeError as e:
            raise VerificationError(Kind.MALFORMED, str(e)) from e
        except jwt.InvalidTokenError as e:
            raise VerificationError(Kind.OTHER, str(e)) from e
        except (jwt.InvalidKeyError, jwt.PyJWKError) as e:
            raise VerificationError(Kind.KEY, str(e)) from e

    def __str__(self) -> str:
        return f"SignedJWTVerifier{{{self._debug}}}"
