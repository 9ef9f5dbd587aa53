import logging
from datetime import timedelta

import httpx
import pytest

import jwt_auth_filter as m
from jwt_auth_filter.key_locators import oidc

DISCOVERY_URL = "https://idp.example.com/.well-known/openid-configuration"
JWKS_URL = "https://idp.example.com/keys"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (DISCOVERY_URL, DISCOVERY_URL),
        ("https://idp.example.com", DISCOVERY_URL),
        ("https://idp.example.com/", DISCOVERY_URL),
        ("https://idp.example.com/.well-known/", DISCOVERY_URL),
        ("https://idp.example.com/.well-known/wrong", DISCOVERY_URL),
        ("https://idp.example.com/realms/test", DISCOVERY_URL),
        ("https://idp.example.com/a/.well-known/x/y", DISCOVERY_URL),
    ],
)
def test_prepare_discovery_uri(raw: str, expected: str):
    assert oidc.prepare_discovery_uri(raw) == expected


class TestOidcConfigurationLoader:
    def test_load_registers_configuration(self, respx_mock):
        respx_mock.get(DISCOVERY_URL).mock(
            return_value=httpx.Response(
                200,
                json={"issuer": "https://idp.example.com", "jwks_uri": JWKS_URL, "scopes_supported": ["openid"]},
            )
        )

        configuration = m.OidcConfigurationLoader().load(DISCOVERY_URL)

        assert configuration is not None
        assert configuration.jwks_uri == JWKS_URL
        assert configuration.issuer == "https://idp.example.com"
        assert configuration.additional == {"scopes_supported": ["openid"]}
        assert oidc.lookup(DISCOVERY_URL) == configuration

    def test_non_200_returns_none(self, respx_mock, caplog):
        respx_mock.get(DISCOVERY_URL).mock(return_value=httpx.Response(404))
        with caplog.at_level(logging.WARNING, logger=oidc.__name__):
            assert m.OidcConfigurationLoader().load(DISCOVERY_URL) is None
        assert "HTTP status 404" in caplog.text
        assert oidc.lookup(DISCOVERY_URL) is None

    def test_not_an_object_returns_none(self, respx_mock):
        respx_mock.get(DISCOVERY_URL).mock(return_value=httpx.Response(200, json=["nope"]))
        assert m.OidcConfigurationLoader().load(DISCOVERY_URL) is None

    def test_transport_error_returns_none(self, respx_mock):
        respx_mock.get(DISCOVERY_URL).mock(side_effect=httpx.ConnectTimeout("slow"))
        assert m.OidcConfigurationLoader().load(DISCOVERY_URL) is None


class TestOpenIdConnectDiscoveryLocator:
    def test_discovers_once(self, respx_mock, make_jwks, secret):
        discovery = respx_mock.get(DISCOVERY_URL).mock(
            return_value=httpx.Response(200, json={"jwks_uri": JWKS_URL})
        )
        respx_mock.get(JWKS_URL).mock(return_value=httpx.Response(200, json=make_jwks("k1")))
        locator = m.OpenIdConnectDiscoveryLocator(DISCOVERY_URL)

        assert locator.locate({"kid": "k1"}) == secret
        assert locator.locate({"kid": "k1"}) == secret
        assert locator.jwks_uri == JWKS_URL
        assert discovery.call_count == 1
        assert "jwksUrl=https://idp.example.com/keys" in str(locator)

    def test_failed_discovery_is_throttled(self, respx_mock):
        discovery = respx_mock.get(DISCOVERY_URL).mock(return_value=httpx.Response(503))
        locator = m.OpenIdConnectDiscoveryLocator(DISCOVERY_URL, timedelta(seconds=30))

        with pytest.raises(m.KeyResolutionError, match="configuration discovery$"):
            locator.locate({"kid": "k1"})
        with pytest.raises(m.KeyResolutionError, match=r"retry interval \(30s\) has not yet elapsed"):
            locator.locate({"kid": "k1"})
        assert discovery.call_count == 1
        assert "<not yet discovered>" in str(locator)

    def test_retries_after_interval(self, respx_mock, monkeypatch, make_jwks, secret):
        from jwt_auth_filter import refresh_gate

        now = [1_000.0]
        monkeypatch.setattr(refresh_gate.time, "time", lambda: now[0])
        discovery = respx_mock.get(DISCOVERY_URL)
        discovery.side_effect = [
            httpx.Response(503),
            httpx.Response(200, json={"jwks_uri": JWKS_URL}),
        ]
        respx_mock.get(JWKS_URL).mock(return_value=httpx.Response(200, json=make_jwks("k1")))
        locator = m.OpenIdConnectDiscoveryLocator(DISCOVERY_URL, timedelta(seconds=30))

        with pytest.raises(m.KeyResolutionError):
            locator.locate({"kid": "k1"})

        now[0] += 31
        assert locator.locate({"kid": "k1"}) == secret
        assert discovery.call_count == 2

    def test_missing_jwks_uri(self, respx_mock, caplog):
        respx_mock.get(DISCOVERY_URL).mock(return_value=httpx.Response(200, json={"issuer": "x"}))
        locator = m.OpenIdConnectDiscoveryLocator(DISCOVERY_URL)

        with caplog.at_level(logging.WARNING, logger=oidc.__name__):
            with pytest.raises(m.KeyResolutionError):
                locator.locate({"kid": "k1"})
        assert "did not specify a jwks_uri" in caplog.text

    @pytest.mark.parametrize("jwks_uri", ["file:///etc/jwks.json", "ftp://idp.example.com/keys", "/keys"])
    def test_discovered_jwks_uri_must_be_http(self, respx_mock, caplog, jwks_uri):
        respx_mock.get(DISCOVERY_URL).mock(return_value=httpx.Response(200, json={"jwks_uri": jwks_uri}))
        locator = m.OpenIdConnectDiscoveryLocator(DISCOVERY_URL)

        with caplog.at_level(logging.WARNING, logger=oidc.__name__):
            with pytest.raises(m.KeyResolutionError) as e:
                locator.locate({"kid": "k1"})
        assert "not an http/https URL" in caplog.text
        assert jwks_uri not in str(e.value)
        assert "<not yet discovered>" in str(locator)

    def test_non_standard_endpoint_warned_once(self, respx_mock, make_jwks, caplog):
        url = "https://idp.example.com/custom-discovery"
        respx_mock.get(url).mock(return_value=httpx.Response(200, json={"jwks_uri": JWKS_URL}))
        respx_mock.get(JWKS_URL).mock(return_value=httpx.Response(200, json=make_jwks("k1")))
        locator = m.OpenIdConnectDiscoveryLocator(url)

        with caplog.at_level(logging.WARNING, logger=oidc.__name__):
            locator.locate({"kid": "k1"})
            locator.locate({"kid": "k1"})
        assert caplog.text.count("Non-standard OpenID Connect discovery endpoint") == 1

    def test_invalid_construction(self):
        with pytest.raises(ValueError):
            m.OpenIdConnectDiscoveryLocator("")
        with pytest.raises(ValueError, match="cannot be negative"):
            m.OpenIdConnectDiscoveryLocator(DISCOVERY_URL, timedelta(seconds=-1))
