"""Loading verification key material.

Functions here turn configuration (file paths, URLs) into keys PyJWT can verify
with:
- HMAC secret keys from files (base64 encoded or raw bytes)
- RSA/EC public keys from PEM files
- JWK Sets from local files or http(s) URLs

Every failure is reported as KeyLoadError.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from pathlib import Path
from typing import Any, Final

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from .errors import KeyLoadError
from .http_client import DEFAULT_HTTP_TIMEOUT, http_get

MIN_SECRET_KEY_BYTES: Final[int] = 32
"""HMAC secrets shorter than 256 bits are rejected as weak."""

ALGORITHM_RSA: Final[str] = "RSA"
ALGORITHM_EC: Final[str] = "EC"

_PUBLIC_KEY_TYPES: Final[dict[str, type]] = {
    ALGORITHM_RSA: rsa.RSAPublicKey,
    ALGORITHM_EC: ec.EllipticCurvePublicKey,
}


def _attempt_base64_decode(data: bytes) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return data


def load_secret_key_bytes(encoded: bytes | None) -> bytes:
    """Prepare an HMAC secret from its (possibly base64 encoded) bytes.

    Raises:
        KeyLoadError: If no bytes are given or the key is too weak.
    """
    if encoded is None:
        raise KeyLoadError("No encoded key bytes provided")

    key = _attempt_base64_decode(encoded)
    if len(key) < MIN_SECRET_KEY_BYTES:
        raise KeyLoadError(
            f"The specified key byte array is {len(key) * 8} bits which is not secure "
            f"enough for any JWT HMAC-SHA algorithm, at least {MIN_SECRET_KEY_BYTES * 8} "
            "bits are required"
        )
    return key


def load_secret_key(path: str | Path | None) -> bytes:
    """Load an HMAC secret key from a file."""
    if path is None:
        raise KeyLoadError("No secret key file provided")
    key_file = Path(path)
    try:
        data = key_file.read_bytes()
    except OSError as e:
        raise KeyLoadError(f"Secret Key File '{key_file.absolute()}' was not a valid file") from e
    return load_secret_key_bytes(data)


def load_public_key_from_pem(algorithm: str | None, pem: str | bytes) -> Any:
    """Load an RSA or EC public key from PEM text.

    Args:
        algorithm: ``RSA`` (default when None) or ``EC``.
        pem: PEM encoded SubjectPublicKeyInfo.

    Raises:
        KeyLoadError: On an unknown algorithm, unparseable PEM, or a key of a
            different type than requested.
    """
    algorithm = (algorithm or ALGORITHM_RSA).upper()
    expected = _PUBLIC_KEY_TYPES.get(algorithm)
    if expected is None:
        raise KeyLoadError(f"Unsupported public key algorithm {algorithm}")

    if isinstance(pem, str):
        pem = pem.encode("ascii")
    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError) as e:
        raise KeyLoadError(f"Failed to load {algorithm} public key: {e}") from e

    if not isinstance(key, expected):
        raise KeyLoadError(f"Public key is not an {algorithm} key")
    return key


def load_public_key(algorithm: str | None, path: str | Path) -> Any:
    """Load an RSA or EC public key from a PEM file."""
    key_file = Path(path)
    try:
        pem = key_file.read_bytes()
    except OSError as e:
        raise KeyLoadError("Failed to read key input") from e
    return load_public_key_from_pem(algorithm, pem)


def public_key_fingerprint(key: Any) -> str:
    """SHA-256 hex digest of the DER SubjectPublicKeyInfo of a public key."""
    der = key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest()


def parse_jwks(data: Any, source: str) -> jwt.PyJWKSet:
    """Build a PyJWKSet from a decoded JWKS document."""
    if not isinstance(data, dict) or "keys" not in data:
        raise KeyLoadError(f"JWKS {source} contained an invalid key set")
    try:
        return jwt.PyJWKSet.from_dict(data)
    except (jwt.PyJWKSetError, jwt.PyJWKError, jwt.InvalidKeyError) as e:
        raise KeyLoadError(f"JWKS {source} contained an invalid key set: {e}") from e


def load_jwks_from_file(path: str | Path) -> jwt.PyJWKSet:
    jwks_file = Path(path)
    try:
        data = json.loads(jwks_file.read_text(encoding="utf-8"))
    except OSError as e:
        raise KeyLoadError(
            f"JWKS file '{jwks_file.absolute()}' that could not be read successfully"
        ) from e
    except ValueError as e:
        raise KeyLoadError(f"JWKS file '{jwks_file.absolute()}' contained an invalid key set") from e
    return parse_jwks(data, f"file '{jwks_file.absolute()}'")


def load_jwks_from_url(
    url: str,
    *,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> jwt.PyJWKSet:
    """Fetch and parse a JWKS from an http(s) URL.

    Raises:
        KeyLoadError: On a non http(s) URL, transport failure, non-200 status
            or an invalid key set.
    """
    if not url or not url.lower().startswith(("http://", "https://")):
        raise KeyLoadError("JWKS URI must use http/https scheme")

    try:
        response = http_get(url, client=client, timeout=timeout)
    except httpx.HTTPError as e:
        raise KeyLoadError(f"JWKS URI {url} could not be read successfully") from e

    if response.status_code != 200:
        raise KeyLoadError(f"JWKS URI {url} returned HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise KeyLoadError(f"JWKS URI {url} returned an invalid key set") from e
    return parse_jwks(data, f"URI {url}")
