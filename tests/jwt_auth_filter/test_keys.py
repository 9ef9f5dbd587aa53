import base64
import json

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

import jwt_auth_filter as m
from jwt_auth_filter import keys


class TestSecretKeys:
    def test_raw_secret_file(self, tmp_path, secret):
        path = tmp_path / "secret.key"
        path.write_bytes(secret)
        assert keys.load_secret_key(path) == secret

    def test_base64_secret_file(self, tmp_path, secret):
        path = tmp_path / "secret.b64"
        path.write_bytes(base64.b64encode(secret))
        assert keys.load_secret_key(str(path)) == secret

    def test_weak_secret_rejected(self):
        with pytest.raises(m.KeyLoadError, match="not secure enough"):
            keys.load_secret_key_bytes(b"short!")

    def test_missing_file(self, tmp_path):
        with pytest.raises(m.KeyLoadError, match="was not a valid file"):
            keys.load_secret_key(tmp_path / "nope.key")

    def test_none(self):
        with pytest.raises(m.KeyLoadError):
            keys.load_secret_key(None)
        with pytest.raises(m.KeyLoadError):
            keys.load_secret_key_bytes(None)


class TestPublicKeys:
    def test_ec_pem(self, tmp_path, ec_keypair):
        _, public_pem = ec_keypair
        path = tmp_path / "ec.pem"
        path.write_bytes(public_pem)

        key = keys.load_public_key("ec", path)
        assert isinstance(key, ec.EllipticCurvePublicKey)

    def test_rsa_is_default(self):
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        pem = private_key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        assert isinstance(keys.load_public_key_from_pem(None, pem.decode()), rsa.RSAPublicKey)

    def test_wrong_key_type(self, ec_keypair):
        _, public_pem = ec_keypair
        with pytest.raises(m.KeyLoadError, match="not an RSA key"):
            keys.load_public_key_from_pem("RSA", public_pem)

    def test_unsupported_algorithm(self, ec_keypair):
        _, public_pem = ec_keypair
        with pytest.raises(m.KeyLoadError, match="Unsupported public key algorithm"):
            keys.load_public_key_from_pem("DSA", public_pem)

    def test_garbage_pem(self):
        with pytest.raises(m.KeyLoadError, match="Failed to load"):
            keys.load_public_key_from_pem("EC", b"not a pem")

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(m.KeyLoadError, match="Failed to read key input"):
            keys.load_public_key("EC", tmp_path / "missing.pem")

    def test_fingerprint_is_stable(self, ec_keypair):
        _, public_pem = ec_keypair
        key = keys.load_public_key_from_pem("EC", public_pem)
        fingerprint = keys.public_key_fingerprint(key)
        assert len(fingerprint) == 64
        assert fingerprint == keys.public_key_fingerprint(keys.load_public_key_from_pem("EC", public_pem))


class TestJwks:
    def test_from_file(self, tmp_path, make_jwks):
        path = tmp_path / "jwks.json"
        path.write_text(json.dumps(make_jwks("k1", "k2")), encoding="utf-8")

        jwks = keys.load_jwks_from_file(path)
        assert [k.key_id for k in jwks.keys] == ["k1", "k2"]

    def test_file_not_json(self, tmp_path):
        path = tmp_path / "jwks.json"
        path.write_text("{nope", encoding="utf-8")
        with pytest.raises(m.KeyLoadError, match="invalid key set"):
            keys.load_jwks_from_file(path)

    def test_file_without_keys(self, tmp_path):
        path = tmp_path / "jwks.json"
        path.write_text('{"other": []}', encoding="utf-8")
        with pytest.raises(m.KeyLoadError, match="invalid key set"):
            keys.load_jwks_from_file(path)

    def test_from_url(self, respx_mock, make_jwks):
        respx_mock.get("https://idp.example.com/jwks").mock(
            return_value=httpx.Response(200, json=make_jwks("k1"))
        )
        jwks = keys.load_jwks_from_url("https://idp.example.com/jwks")
        assert jwks.keys[0].key_id == "k1"

    def test_url_non_200(self, respx_mock):
        respx_mock.get("https://idp.example.com/jwks").mock(return_value=httpx.Response(503))
        with pytest.raises(m.KeyLoadError, match="returned HTTP 503"):
            keys.load_jwks_from_url("https://idp.example.com/jwks")

    def test_url_transport_error(self, respx_mock):
        respx_mock.get("https://idp.example.com/jwks").mock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(m.KeyLoadError, match="could not be read"):
            keys.load_jwks_from_url("https://idp.example.com/jwks")

    def test_url_scheme_enforced(self):
        with pytest.raises(m.KeyLoadError, match="http/https"):
            keys.load_jwks_from_url("ftp://idp.example.com/jwks")
