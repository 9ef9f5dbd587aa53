"""Flask integration for the JWT authentication filter.

This module binds the framework independent engine and filter to Flask.

Key Components:
- FlaskRequestBinding: RequestBinding over flask.Request / flask.Response
- FlaskJwtAuthenticationEngine: header based engine bound to Flask
- FlaskEngineProvider: builds the engine from ``jwt.headers.*`` parameters
- FlaskConfigurationAdaptor: parameters from app.config (then the
  environment), attributes in app.extensions
- JwtAuthExtension: runs the filter before every request and offers a
  ``require(roles=...)`` decorator for role checks

Security Model:
1. The filter runs in ``before_request`` for every route.
2. Excluded paths pass through unauthenticated.
3. Otherwise the request must carry a verifiable token with a username, or
   the challenge response (401/400 + WWW-Authenticate) is returned.
4. On success the identity is stored on ``flask.g``:
   ``g.jwt`` (claims), ``g.jwt_user``, ``g.jwt_raw``, ``g.jwt_source`` and
   ``g.jwt_roles`` (a RolesHelper).
5. ``require(roles=...)`` turns a missing identity into 401 and a missing
   role into 403.

Importing this module registers FlaskEngineProvider with the module
engine_factory so automated configuration can build Flask engines.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, Request, Response, abort, current_app, g, has_app_context, request

from .claims import ClaimPath
from .configuration.automated import (
    ATTRIBUTE_JWT_ENGINE,
    ATTRIBUTE_JWT_VERIFIER,
    ATTRIBUTE_PATH_EXCLUSIONS,
)
from .configuration.factories import engine_factory
from .configuration.parameters import (
    EnvironmentParameters,
    chain_parameters,
    environment_variable_name,
)
from .configuration.providers import HeaderBasedEngineProvider
from .engine import UNEXPECTED_ERROR_MESSAGE, HeaderBasedJwtAuthenticationEngine
from .filter import JwtAuthFilter
from .path_exclusion import PathExclusion
from .roles import RolesHelper
from .sources import HeaderSource

if TYPE_CHECKING:
    from .challenges import VerifiedToken
    from .protocols import ParameterLookup, Verifier

logger = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "jwt_auth_filter"
"""Flask extensions registry key for JwtAuthExtension."""

_FILTER_KEY: Final[str] = "jwt_auth_filter.filter"
"""Flask extensions registry key for the per-app JwtAuthFilter."""

type ViewFunc = Callable[..., Any]


class FlaskRequestBinding:
    """RequestBinding implementation for Flask.

    Args:
        propagate_errors: Re-raise unexpected errors so Flask's own error
            handling deals with them, instead of answering HTTP 500.
    """

    def __init__(self, *, propagate_errors: bool = False) -> None:
        self._propagate_errors = propagate_errors

    @property
    def propagate_errors(self) -> bool:
        return self._propagate_errors

    def get_header_values(self, request: Request, name: str) -> Sequence[str]:
        return request.headers.getlist(name)

    def get_path(self, request: Request) -> str:
        return request.path

    def get_request_url(self, request: Request) -> str:
        return request.url

    def set_status(self, response: Response, status_code: int) -> None:
        response.status_code = status_code

    def get_status(self, response: Response) -> int:
        return response.status_code

    def add_header(self, response: Response, name: str, value: str) -> None:
        response.headers.add(name, value)

    def decorate_request(self, request: Request, verified: VerifiedToken, username: str) -> Request:
        g.jwt = verified.claims
        g.jwt_user = username
        g.jwt_raw = verified.raw_token
        g.jwt_source = verified.candidate.source
        return request

    def send_error(self, response: Response, err: Exception) -> None:
        if self._propagate_errors:
            raise err
        response.status_code = 500
        response.set_data(UNEXPECTED_ERROR_MESSAGE)


class FlaskJwtAuthenticationEngine(HeaderBasedJwtAuthenticationEngine[Request, Response]):
    """Header based engine for Flask requests."""

    def __init__(
        self,
        headers: Iterable[HeaderSource] | None = None,
        realm: str | None = None,
        username_claims: Iterable[ClaimPath | str] | None = None,
        *,
        binding: FlaskRequestBinding | None = None,
    ) -> None:
        super().__init__(binding or FlaskRequestBinding(), headers, realm, username_claims)


class FlaskEngineProvider(HeaderBasedEngineProvider):
    def __init__(self, binding: FlaskRequestBinding | None = None) -> None:
        self._binding = binding

    def create_engine(
        self,
        headers: Sequence[HeaderSource],
        realm: str | None,
        username_claims: Sequence[str],
    ) -> FlaskJwtAuthenticationEngine:
        return FlaskJwtAuthenticationEngine(headers, realm, username_claims, binding=self._binding)


class FlaskConfigurationAdaptor:
    """RuntimeConfigurationAdaptor for a Flask app.

    Parameters are read from ``app.config`` using the upper-cased name
    (``jwt.jwks.url`` -> ``JWT_JWKS_URL``), then from ``parameters``.
    Attributes live in ``app.extensions``.

    Args:
        app: The Flask application.
        parameters: Fallback lookup, the process environment by default.
    """

    def __init__(self, app: Flask, parameters: ParameterLookup | None = None) -> None:
        self._app = app
        self._lookup = chain_parameters(
            self._from_app_config, parameters or EnvironmentParameters()
        )

    def _from_app_config(self, name: str) -> str | None:
        value = self._app.config.get(environment_variable_name(name))
        return None if value is None else str(value)

    def get_parameter(self, name: str) -> str | None:
        return self._lookup(name)

    def set_attribute(self, name: str, value: Any) -> None:
        self._app.extensions[name] = value

    def get_attribute(self, name: str) -> Any:
        return self._app.extensions.get(name)


class JwtUserLogFilter(logging.Filter):
    """Adds the authenticated username to log records as ``jwt_user``.

    Usage:
        handler.addFilter(JwtUserLogFilter())
        handler.setFormatter(logging.Formatter("%(jwt_user)s %(message)s"))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.jwt_user = g.get("jwt_user") if has_app_context() else None
        return True


class JwtAuthExtension:
    """
    Flask extension running JWT authentication before every request.

    Responsibilities:
    - Seed runtime attributes from explicit arguments
    - Run automated configuration for anything not supplied explicitly
    - Authenticate each request in ``before_request``
    - Offer ``require(roles=...)`` for role based checks

    Pattern:
        auth = JwtAuthExtension()
        auth.init_app(app)

    Usage:
        auth = JwtAuthExtension(app, verifier=verifier, path_exclusions="/healthz")

        @app.get("/admin")
        @auth.require(roles=["ADMIN"])
        def admin(): ...

    Args:
        app: Application to initialise immediately.
        verifier: Verifier to use instead of one built from parameters.
        engine: Engine to use instead of one built from parameters.
        path_exclusions: Exclusions as PathExclusion objects or a comma
            separated string of patterns.
        roles_claim: Claim path (dotted string or ClaimPath) holding roles.
        propagate_errors: Re-raise unexpected authentication errors instead of
            answering HTTP 500, applies to the default engine.
        parameters: Parameter lookup used after ``app.config``, the
            environment by default.
    """

    def __init__(
        self,
        app: Flask | None = None,
        *,
        verifier: Verifier | None = None,
        engine: FlaskJwtAuthenticationEngine | None = None,
        path_exclusions: str | Sequence[PathExclusion] | None = None,
        roles_claim: ClaimPath | str = "roles",
        propagate_errors: bool = False,
        parameters: ParameterLookup | None = None,
    ) -> None:
        self._verifier = verifier
        self._engine = engine
        self._path_exclusions = (
            PathExclusion.parse_path_patterns(path_exclusions)
            if isinstance(path_exclusions, str)
            else path_exclusions
        )
        self._roles_claim = (
            roles_claim if isinstance(roles_claim, ClaimPath) else ClaimPath.parse(roles_claim)
        )
        self._propagate_errors = propagate_errors
        self._parameters = parameters

        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize the Flask app with the extension.

        Explicit verifier, engine and path exclusions are placed into the
        runtime attributes first, so automated configuration only fills gaps.
        """
        adaptor = FlaskConfigurationAdaptor(app, self._parameters)
        if self._verifier is not None:
            adaptor.set_attribute(ATTRIBUTE_JWT_VERIFIER, self._verifier)
        if self._engine is not None:
            adaptor.set_attribute(ATTRIBUTE_JWT_ENGINE, self._engine)
        if self._path_exclusions is not None:
            adaptor.set_attribute(ATTRIBUTE_PATH_EXCLUSIONS, self._path_exclusions)

        binding = FlaskRequestBinding(propagate_errors=self._propagate_errors)
        auth_filter: JwtAuthFilter[Request, Response] = JwtAuthFilter(
            adaptor, binding, FlaskJwtAuthenticationEngine(binding=binding)
        )
        auth_filter.configure()

        app.extensions[_EXT_KEY] = self
        app.extensions[_FILTER_KEY] = auth_filter
        app.before_request(self._authenticate)

    @staticmethod
    def get_filter(app: Flask) -> JwtAuthFilter[Request, Response]:
        return app.extensions[_FILTER_KEY]

    def _authenticate(self) -> Response | None:
        auth_filter = self.get_filter(current_app)
        response = current_app.response_class()

        authenticated = auth_filter.do_filter(request, response)
        if authenticated is None:
            return response

        g.jwt_roles = RolesHelper(g.get("jwt"), self._roles_claim)
        return None

    def require(self, *, roles: Sequence[str] = ()) -> Callable[[ViewFunc], ViewFunc]:
        """Decorator requiring an authenticated user, optionally in a role.

        Error mapping:
        - No authenticated user (e.g. an excluded path) -> HTTP 401
        - ``roles`` given and the user is in none of them -> HTTP 403

        Args:
            roles: Role names, membership of any one of them is sufficient.
        """
        required = tuple(roles)

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                if g.get("jwt_user") is None:
                    abort(401, description="Authentication required")

                helper: RolesHelper = g.get("jwt_roles") or RolesHelper(
                    g.get("jwt"), self._roles_claim
                )
                if required and not any(helper.is_user_in_role(r) for r in required):
                    abort(403, description="Forbidden")

                return view(*args, **kwargs)

            return wrapper

        return decorator


def current_user() -> str | None:
    """Username of the authenticated user for the current request, if any."""
    return g.get("jwt_user")


engine_factory.register(FlaskEngineProvider(), default=True)
