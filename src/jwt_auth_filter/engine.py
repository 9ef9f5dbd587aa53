"""The JWT authentication engine.

High-level flow (per request)
-----------------------------
1. If none of the configured token sources are present → bare 401 challenge.
2. Extract every candidate token (source order, then occurrence order).
3. Verify each candidate, recording one challenge per failure.
4. Among verified candidates, the first with a non-blank username wins.
5. No winner → the *first* recorded challenge is sent.
6. Winner → the framework binding decorates the request with the identity.

Any unexpected exception is routed to the binding's send_error() and never
becomes a challenge. Per-candidate failures never abort the loop, so a valid
token in a later header still authenticates the request.

The engine is written purely against the RequestBinding protocol, one binding
exists per host framework (see flask_extension.FlaskRequestBinding).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Final

from .challenges import Challenge, TokenCandidate, VerifiedToken
from .claims import ClaimPath
from .errors import VerificationError
from .errors import VerificationErrorKind as Kind
from .http_constants import (
    DEFAULT_HEADER_SOURCES,
    ERROR_INVALID_REQUEST,
    ERROR_INVALID_TOKEN,
    HEADER_WWW_AUTHENTICATE,
    sanitise_header_parameter_value,
    sanitise_header_value,
)
from .protocols import RequestBinding, Verifier
from .sources import HeaderSource

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE: Final[str] = "Unexpected error during JWT authentication"

NO_TOKENS_DESCRIPTION: Final[str] = "No Bearer token(s) provided"
NO_USERNAME_DESCRIPTION: Final[str] = "Failed to find a username for the user"

_CHALLENGE_TEMPLATES: Final[dict[Kind, tuple[int, str, str]]] = {
    Kind.KEY: (401, ERROR_INVALID_TOKEN, "Invalid/weak key: {message}"),
    Kind.SIGNATURE: (401, ERROR_INVALID_TOKEN, "Token failed signature verification: {message}"),
    Kind.MALFORMED: (401, ERROR_INVALID_TOKEN, "Token is malformed: {message}"),
    Kind.UNSUPPORTED: (
        400,
        ERROR_INVALID_REQUEST,
        "Token uses an unsupported JWT feature: {message}",
    ),
    Kind.EXPIRED: (401, ERROR_INVALID_TOKEN, "Token expired: {message}"),
    Kind.PREMATURE: (
        401,
        ERROR_INVALID_TOKEN,
        "Token is not yet valid, are server clocks out of sync?",
    ),
    Kind.INVALID_CLAIM: (401, ERROR_INVALID_TOKEN, "{message}"),
    Kind.OTHER: (401, ERROR_INVALID_TOKEN, "{message}"),
}


def challenge_for(error: VerificationError) -> Challenge:
    """Map a verification failure onto the challenge reported to the client."""
    status, code, template = _CHALLENGE_TEMPLATES[error.kind]
    return Challenge(status, code, template.format(message=error.message))


class JwtAuthenticationEngine[RequestT, ResponseT](ABC):
    """Orchestrates token extraction, verification and identity extraction.

    Subclasses decide where tokens come from and how a username is derived;
    the binding supplies all framework specific I/O.

    Thread Safety:
        Holds no per-request state, a single instance serves all requests.
    """

    def __init__(self, binding: RequestBinding[RequestT, ResponseT]) -> None:
        self._binding = binding

    @property
    def binding(self) -> RequestBinding[RequestT, ResponseT]:
        return self._binding

    def authenticate(
        self, request: RequestT, response: ResponseT, verifier: Verifier
    ) -> RequestT | None:
        """Attempt to authenticate a request.

        Args:
            request: Framework request.
            response: Framework response, receives any challenge or error.
            verifier: Verifier for candidate tokens.

        Returns:
            The decorated request on success, None on failure. On failure a
            challenge or error has already been written to the response so the
            caller can simply stop processing the request.
        """
        try:
            if not self.has_required_parameters(request):
                # No authentication parameters provided so abort immediately
                self.send_challenge(request, response, Challenge(401, "", ""))
                return None

            candidates = self.extract_tokens(request)
            if not candidates:
                self.send_challenge(
                    request,
                    response,
                    Challenge(400, ERROR_INVALID_REQUEST, NO_TOKENS_DESCRIPTION),
                )
                return None

            challenges: list[Challenge] = []
            valid_tokens: list[VerifiedToken] = []
            for candidate in candidates:
                raw_token = candidate.raw_token()
                if not raw_token:
                    challenges.append(Challenge(400, ERROR_INVALID_REQUEST, NO_TOKENS_DESCRIPTION))
                    continue
                try:
                    claims = verifier.verify(raw_token)
                except VerificationError as e:
                    challenges.append(challenge_for(e))
                    continue
                valid_tokens.append(VerifiedToken(raw_token, candidate, claims))

            winner: VerifiedToken | None = None
            username: str | None = None
            for token in valid_tokens:
                username = self.extract_username(token)
                if username and username.strip():
                    winner = token
                    break
                challenges.append(Challenge(401, ERROR_INVALID_TOKEN, NO_USERNAME_DESCRIPTION))

            if winner is None or username is None:
                logger.warning(
                    "Request to %s not authenticated, %d challenge(s) recorded: %s",
                    self._binding.get_request_url(request),
                    len(challenges),
                    ", ".join(str(c) for c in challenges),
                )
                self.send_challenge(request, response, challenges[0])
                return None

            logger.info(
                "Request to %s successfully authenticated as %s",
                self._binding.get_request_url(request),
                username,
            )
            return self.prepare_request(request, winner, username)
        except Exception as e:
            logger.error("%s: %s", UNEXPECTED_ERROR_MESSAGE, e)
            self.send_error(response, e)

        return None

    @abstractmethod
    def has_required_parameters(self, request: RequestT) -> bool:
        """Cheap check that at least one token source is present at all."""

    @abstractmethod
    def extract_tokens(self, request: RequestT) -> list[TokenCandidate]:
        """Ordered candidate tokens, empty if none could be extracted."""

    @abstractmethod
    def extract_username(self, token: VerifiedToken) -> str | None:
        """Username for a verified token, None if none can be found."""

    def select_realm(self, default_realm: str | None) -> str | None:
        return sanitise_header_parameter_value(default_realm)

    def prepare_request(self, request: RequestT, token: VerifiedToken, username: str) -> RequestT:
        return self._binding.decorate_request(request, token, username)

    def send_challenge(self, request: RequestT, response: ResponseT, challenge: Challenge) -> None:
        realm = self.select_realm(self._binding.get_path(request))
        self._binding.add_header(
            response, HEADER_WWW_AUTHENTICATE, sanitise_header_value(challenge.to_header_value(realm))
        )
        self._binding.set_status(response, challenge.status_code)

    def send_error(self, response: ResponseT, err: Exception) -> None:
        self._binding.send_error(response, err)


class HeaderBasedJwtAuthenticationEngine[RequestT, ResponseT](
    JwtAuthenticationEngine[RequestT, ResponseT]
):
    """Engine that finds tokens in request headers.

    Args:
        binding: Framework binding.
        headers: Header sources in order of preference. Defaults to
            ``Authorization: Bearer <jwt>``.
        realm: Realm reported in challenges, the request path when blank.
        username_claims: Claims tried in order for the username, either
            ClaimPath objects or dotted strings, before falling back to ``sub``.

    Raises:
        ValueError: If ``headers`` is empty.
    """

    def __init__(
        self,
        binding: RequestBinding[RequestT, ResponseT],
        headers: Iterable[HeaderSource] | None = None,
        realm: str | None = None,
        username_claims: Iterable[ClaimPath | str] | None = None,
    ) -> None:
        super().__init__(binding)
        self._headers: tuple[HeaderSource, ...] = (
            DEFAULT_HEADER_SOURCES if headers is None else tuple(headers)
        )
        if not self._headers:
            raise ValueError("Header sources cannot be empty")
        self._realm = realm
        self._username_claims: tuple[ClaimPath, ...] = tuple(
            c if isinstance(c, ClaimPath) else ClaimPath.parse(c) for c in (username_claims or ())
        )

    @property
    def headers(self) -> tuple[HeaderSource, ...]:
        return self._headers

    @property
    def realm(self) -> str | None:
        return self._realm

    @property
    def username_claims(self) -> tuple[ClaimPath, ...]:
        return self._username_claims

    def has_required_parameters(self, request: RequestT) -> bool:
        return any(
            value and value.strip()
            for source in self._headers
            for value in self._binding.get_header_values(request, source.header)
        )

    def extract_tokens(self, request: RequestT) -> list[TokenCandidate]:
        return [
            TokenCandidate(source, value)
            for source in self._headers
            for value in self._binding.get_header_values(request, source.header)
        ]

    def extract_username(self, token: VerifiedToken) -> str | None:
        for claim in self._username_claims:
            value = claim.find(token.claims)
            # Absent, blank and non-string values fall through to the next claim
            if isinstance(value, str) and value.strip():
                return value

        subject = token.claims.get("sub")
        return subject if isinstance(subject, str) else None

    def select_realm(self, default_realm: str | None) -> str | None:
        if self._realm and self._realm.strip():
            return sanitise_header_parameter_value(self._realm)
        return sanitise_header_parameter_value(default_realm)

    def __str__(self) -> str:
        headers = ", ".join(str(h) for h in self._headers)
        claims = ", ".join(c.to_configuration_string() for c in self._username_claims)
        return (
            f"{type(self).__name__}{{headers=[{headers}], realm={self._realm}, "
            f"usernameClaims=[{claims}]}}"
        )
