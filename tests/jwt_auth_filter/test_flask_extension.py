"""
Tests for the JwtAuthExtension Flask integration.

Tests the before_request filter, the require() decorator and the values
exposed on flask.g.
"""

import logging
from typing import Any

import pytest
from flask import Flask, g

import jwt_auth_filter as m
from jwt_auth_filter.engine import UNEXPECTED_ERROR_MESSAGE

NO_PARAMETERS = m.MappingParameters({})


class ExplodingVerifier:
    """Verifier that fails with an unexpected error."""

    def verify(self, token: str) -> dict[str, Any]:
        raise RuntimeError("verifier exploded")


def _routes(app: Flask, auth: m.JwtAuthExtension) -> None:
    @app.get("/api/me")
    def me():  # type: ignore
        return {
            "user": m.current_user(),
            "claims": g.jwt,
            "raw": g.jwt_raw,
            "source": str(g.jwt_source),
        }

    @app.get("/api/admin")
    @auth.require(roles=["ADMIN"])
    def admin():  # type: ignore
        return {"ok": True}

    @app.get("/healthz")
    def healthz():  # type: ignore
        return {"user": m.current_user()}

    @app.get("/status/secure")
    @auth.require()
    def status_secure():  # type: ignore
        return {"ok": True}


@pytest.fixture
def make_auth(app: Flask, secret: bytes):
    def _make(**kwargs: Any) -> m.JwtAuthExtension:
        kwargs.setdefault("verifier", m.SignedJWTVerifier(key=secret))
        kwargs.setdefault("parameters", NO_PARAMETERS)
        auth = m.JwtAuthExtension(app, path_exclusions="/healthz,/status/*", **kwargs)
        _routes(app, auth)
        return auth

    return _make


class TestAuthentication:
    """Test the before_request filter."""

    def test_valid_token_populates_g(self, app: Flask, make_auth, make_token):
        """A valid token exposes the identity on flask.g."""
        make_auth()
        token = make_token({"sub": "alice", "roles": ["USER"]})

        r = app.test_client().get("/api/me", headers={"Authorization": f"Bearer {token}"})

        assert r.status_code == 200
        body = r.get_json()
        assert body["user"] == "alice"
        assert body["claims"]["roles"] == ["USER"]
        assert body["raw"] == token
        assert body["source"] == "Authorization: Bearer <jwt>"
        assert "WWW-Authenticate" not in r.headers

    def test_missing_token_returns_bare_challenge(self, app: Flask, make_auth):
        """No token at all gives 401 with a realm only challenge."""
        make_auth()
        r = app.test_client().get("/api/me")

        assert r.status_code == 401
        assert r.headers["WWW-Authenticate"] == 'Bearer realm="/api/me"'

    def test_expired_token_returns_invalid_token(self, app: Flask, make_auth, make_token):
        """An expired token gives 401 invalid_token."""
        make_auth()
        token = make_token(expires_in=-120)

        r = app.test_client().get("/api/me", headers={"Authorization": f"Bearer {token}"})

        assert r.status_code == 401
        assert 'error="invalid_token"' in r.headers["WWW-Authenticate"]
        assert "Token expired" in r.headers["WWW-Authenticate"]

    def test_wrong_scheme_returns_400(self, app: Flask, make_auth):
        """A non Bearer Authorization header gives 400 invalid_request."""
        make_auth()
        r = app.test_client().get("/api/me", headers={"Authorization": "Basic dXNlcjpwYXNz"})

        assert r.status_code == 400
        assert 'error="invalid_request"' in r.headers["WWW-Authenticate"]

    def test_excluded_path_passes_through(self, app: Flask, make_auth):
        """Excluded paths are served without a token."""
        make_auth()
        r = app.test_client().get("/healthz")

        assert r.status_code == 200
        assert r.get_json() == {"user": None}

    def test_custom_realm_and_headers(self, app: Flask, make_auth, make_token):
        """An explicit engine decides headers and realm."""
        engine = m.FlaskJwtAuthenticationEngine(
            [m.HeaderSource("X-Api-Token")], realm="my-api", username_claims=["email"]
        )
        make_auth(engine=engine)
        client = app.test_client()

        r = client.get("/api/me")
        assert r.headers["WWW-Authenticate"] == 'Bearer realm="my-api"'

        token = make_token({"sub": "id-1", "email": "a@example.com"})
        r = client.get("/api/me", headers={"X-Api-Token": token})
        assert r.get_json()["user"] == "a@example.com"


class TestRequireDecorator:
    """Test the require() decorator."""

    def test_role_present(self, app: Flask, make_auth, make_token):
        """A user holding the role is allowed."""
        make_auth()
        token = make_token({"sub": "alice", "roles": "USER, ADMIN"})

        r = app.test_client().get("/api/admin", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200

    def test_role_missing_returns_403(self, app: Flask, make_auth, make_token):
        """A user without the role is forbidden."""
        make_auth()
        token = make_token({"sub": "alice", "roles": ["USER"]})

        r = app.test_client().get("/api/admin", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 403

    def test_nested_roles_claim(self, app: Flask, make_auth, make_token):
        """roles_claim accepts a dotted path."""
        make_auth(roles_claim="realm_access.roles")
        token = make_token({"sub": "alice", "realm_access": {"roles": ["ADMIN"]}})

        r = app.test_client().get("/api/admin", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200

    def test_unauthenticated_excluded_path_returns_401(self, app: Flask, make_auth):
        """require() on an excluded path still needs an identity."""
        make_auth()
        r = app.test_client().get("/status/secure")
        assert r.status_code == 401


class TestErrors:
    """Test unexpected errors and configuration errors."""

    def test_unexpected_error_returns_500(self, app: Flask, make_auth):
        make_auth(verifier=ExplodingVerifier())
        r = app.test_client().get("/api/me", headers={"Authorization": "Bearer abc"})

        assert r.status_code == 500
        assert r.get_data(as_text=True) == UNEXPECTED_ERROR_MESSAGE
        assert "WWW-Authenticate" not in r.headers

    def test_propagate_errors(self, app: Flask, make_auth):
        make_auth(verifier=ExplodingVerifier(), propagate_errors=True)
        with pytest.raises(RuntimeError, match="verifier exploded"):
            app.test_client().get("/api/me", headers={"Authorization": "Bearer abc"})

    def test_missing_verifier_is_configuration_error(self, app: Flask):
        m.JwtAuthExtension(app, parameters=NO_PARAMETERS)

        @app.get("/x")
        def x():  # type: ignore
            return {"ok": True}

        with pytest.raises(m.AuthenticationConfigurationError):
            app.test_client().get("/x", headers={"Authorization": "Bearer abc"})


class TestConfiguration:
    """Test configuration from app.config and parameters."""

    def test_init_app_pattern(self, app: Flask, secret: bytes):
        auth = m.JwtAuthExtension(verifier=m.SignedJWTVerifier(key=secret), parameters=NO_PARAMETERS)
        auth.init_app(app)

        assert app.extensions["jwt_auth_filter"] is auth
        assert isinstance(m.JwtAuthExtension.get_filter(app), m.JwtAuthFilter)

    def test_engine_from_app_config(self, app: Flask, secret: bytes, make_token):
        app.config["JWT_HEADERS_NAMES"] = "X-Token"
        app.config["JWT_REALM"] = "configured"
        auth = m.JwtAuthExtension(app, verifier=m.SignedJWTVerifier(key=secret), parameters=NO_PARAMETERS)
        _routes(app, auth)
        client = app.test_client()

        r = client.get("/api/me", headers={"Authorization": f"Bearer {make_token()}"})
        assert r.status_code == 401
        assert r.headers["WWW-Authenticate"] == 'Bearer realm="configured"'

        r = client.get("/api/me", headers={"X-Token": make_token({"sub": "bob"})})
        assert r.get_json()["user"] == "bob"

    def test_parameters_fallback(self, app: Flask, tmp_path, secret: bytes, make_token):
        key_file = tmp_path / "secret.key"
        key_file.write_bytes(secret)
        parameters = m.MappingParameters({"jwt.secret.key": str(key_file), "jwt.path-exclusions": "/healthz"})

        auth = m.JwtAuthExtension(app, parameters=parameters)
        _routes(app, auth)
        client = app.test_client()

        assert client.get("/healthz").status_code == 200
        r = client.get("/api/me", headers={"Authorization": f"Bearer {make_token()}"})
        assert r.get_json()["user"] == "alice"

    def test_adaptor_reads_app_config_first(self, app: Flask):
        app.config["JWT_ISSUER"] = "from-config"
        adaptor = m.FlaskConfigurationAdaptor(
            app, m.MappingParameters({"jwt.issuer": "from-parameters", "jwt.audience": "api"})
        )

        assert adaptor.get_parameter("jwt.issuer") == "from-config"
        assert adaptor.get_parameter("jwt.audience") == "api"
        assert adaptor.get_parameter("jwt.realm") is None

        adaptor.set_attribute("some.attribute", 1)
        assert app.extensions["some.attribute"] == 1
        assert adaptor.get_attribute("some.attribute") == 1


class TestJwtUserLogFilter:
    def test_outside_app_context(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        assert m.JwtUserLogFilter().filter(record)
        assert record.jwt_user is None

    def test_authenticated_request(self, app: Flask, make_auth, make_token):
        make_auth()
        records: list[logging.LogRecord] = []
        log_filter = m.JwtUserLogFilter()

        @app.get("/api/log")
        def log():  # type: ignore
            record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
            log_filter.filter(record)
            records.append(record)
            return {"ok": True}

        app.test_client().get("/api/log", headers={"Authorization": f"Bearer {make_token()}"})
        assert records[0].jwt_user == "alice"
