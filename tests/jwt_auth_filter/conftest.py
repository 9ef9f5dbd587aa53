import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from flask import Flask
from jwt import PyJWK
from jwt.utils import base64url_encode

from jwt_auth_filter.key_locators import aws, oidc

SECRET: bytes = b"an-hmac-secret-that-is-32-bytes!"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def secret() -> bytes:
    return SECRET


@pytest.fixture
def make_oct_jwk():
    """
    Factory fixture that returns a function.

    Usage in tests:
        jwk = make_oct_jwk(kid="k1")
    """

    def _make(*, kid: str = "kid1", secret: bytes = SECRET) -> PyJWK:
        return PyJWK.from_dict(oct_jwk_dict(kid=kid, secret=secret))

    return _make


def oct_jwk_dict(*, kid: str = "kid1", secret: bytes = SECRET) -> dict[str, Any]:
    return {
        "kty": "oct",
        "kid": kid,
        "k": base64url_encode(secret).decode("ascii"),
        "alg": "HS256",
        "use": "sig",
    }


@pytest.fixture
def make_token() -> Callable[..., str]:
    """
    Factory fixture for signed tokens.

    Usage in tests:
        token = make_token({"sub": "alice"}, kid="k1")
    """

    def _make(
        claims: dict[str, Any] | None = None,
        *,
        key: Any = SECRET,
        kid: str | None = None,
        algorithm: str = "HS256",
        expires_in: int | None = 300,
    ) -> str:
        payload: dict[str, Any] = {"sub": "alice"} if claims is None else dict(claims)
        if expires_in is not None and "exp" not in payload:
            payload["exp"] = int(time.time()) + expires_in
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(payload, key, algorithm=algorithm, headers=headers)

    return _make


@pytest.fixture
def ec_keypair() -> tuple[ec.EllipticCurvePrivateKey, bytes]:
    """An ES256 private key and its PEM encoded public key."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_key, public_pem


@pytest.fixture(autouse=True)
def _reset_registries():
    oidc.reset()
    aws.reset()
    yield
    oidc.reset()
    aws.reset()


# ============================================================================
# Framework-free request binding
# ============================================================================


@dataclass
class FakeRequest:
    path: str = "/"
    headers: list[tuple[str, str]] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class FakeResponse:
    status: int = 200
    headers: list[tuple[str, str]] = field(default_factory=list)
    error: Exception | None = None

    def header(self, name: str) -> str | None:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None


class RecordingBinding:
    """RequestBinding over FakeRequest/FakeResponse, records what the engine did."""

    def get_header_values(self, request: FakeRequest, name: str) -> list[str]:
        return [v for k, v in request.headers if k.lower() == name.lower()]

    def get_path(self, request: FakeRequest) -> str:
        return request.path

    def get_request_url(self, request: FakeRequest) -> str:
        return f"http://localhost{request.path}"

    def set_status(self, response: FakeResponse, status_code: int) -> None:
        response.status = status_code

    def get_status(self, response: FakeResponse) -> int:
        return response.status

    def add_header(self, response: FakeResponse, name: str, value: str) -> None:
        response.headers.append((name, value))

    def decorate_request(self, request: FakeRequest, verified: Any, username: str) -> FakeRequest:
        request.attributes["user"] = username
        request.attributes["claims"] = verified.claims
        request.attributes["raw"] = verified.raw_token
        return request

    def send_error(self, response: FakeResponse, err: Exception) -> None:
        response.status = 500
        response.error = err


@pytest.fixture
def binding() -> RecordingBinding:
    return RecordingBinding()


@pytest.fixture
def make_request() -> Callable[..., FakeRequest]:
    """
    Usage in tests:
        request = make_request(("Authorization", "Bearer x"), path="/api")
    """

    def _make(*headers: tuple[str, str], path: str = "/") -> FakeRequest:
        return FakeRequest(path=path, headers=list(headers))

    return _make


@pytest.fixture
def response() -> FakeResponse:
    return FakeResponse()


@pytest.fixture
def make_jwks() -> Callable[..., dict[str, Any]]:
    """
    Usage in tests:
        document = make_jwks("k1", "k2")  # {"keys": [...]} of HS256 oct keys
    """

    def _make(*kids: str, secret: bytes = SECRET) -> dict[str, Any]:
        return {"keys": [oct_jwk_dict(kid=kid, secret=secret) for kid in kids]}

    return _make


class DictAdaptor:
    """RuntimeConfigurationAdaptor over plain dicts."""

    def __init__(self, parameters: dict[str, Any] | None = None) -> None:
        self.parameters = dict(parameters or {})
        self.attributes: dict[str, Any] = {}

    def get_parameter(self, name: str) -> str | None:
        value = self.parameters.get(name)
        return None if value is None else str(value)

    def set_attribute(self, name: str, value: Any) -> None:
        self.attributes[name] = value

    def get_attribute(self, name: str) -> Any:
        return self.attributes.get(name)


@pytest.fixture
def make_adaptor() -> Callable[..., DictAdaptor]:
    """
    Usage in tests:
        adaptor = make_adaptor({"jwt.secret.key": "/path/to/key"})
    """
    return DictAdaptor


@pytest.fixture
def make_response() -> Callable[[], FakeResponse]:
    """For tests that need more than one response."""
    return FakeResponse
