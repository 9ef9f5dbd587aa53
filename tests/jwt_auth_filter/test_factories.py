import logging

import pytest

import jwt_auth_filter as m
from jwt_auth_filter.configuration import (
    ATTRIBUTE_JWT_ENGINE,
    ATTRIBUTE_JWT_VERIFIER,
    ATTRIBUTE_PATH_EXCLUSIONS,
    EngineFactory,
    VerificationFactory,
    VerificationProvider,
    automated,
    factories,
)
from jwt_auth_filter.configuration import parameters as p


class _StubVerificationProvider(VerificationProvider):
    def __init__(self, name, priority=0, succeeds=True):
        self.name = name
        self._priority = priority
        self.succeeds = succeeds
        self.calls = 0

    def priority(self):
        return self._priority

    def configure(self, lookup, consumer):
        self.calls += 1
        if self.succeeds:
            consumer(self.name)
        return self.succeeds


class _StubEngineProvider(m.HeaderBasedEngineProvider):
    def __init__(self, binding):
        self.binding = binding

    def create_engine(self, headers, realm, username_claims):
        return m.HeaderBasedJwtAuthenticationEngine(self.binding, headers, realm, username_claims)


class TestProviderFactory:
    def test_priority_order_then_registration_order(self):
        factory = VerificationFactory()
        low = _StubVerificationProvider("low", 0)
        high = _StubVerificationProvider("high", 10)
        also_low = _StubVerificationProvider("also-low", 0)
        for provider in (low, high, also_low):
            factory.register(provider)

        assert [pr.name for pr in factory.providers()] == ["high", "low", "also-low"]

    def test_register_ignores_duplicates(self):
        factory = VerificationFactory()
        provider = _StubVerificationProvider("a")
        factory.register(provider)
        factory.register(provider)
        assert factory.available() == 1

    def test_reset_keeps_defaults(self):
        factory = VerificationFactory()
        factory.register(_StubVerificationProvider("default"), default=True)
        factory.register(_StubVerificationProvider("extra"))
        assert factory.available() == 2

        factory.reset()
        assert [pr.name for pr in factory.providers()] == ["default"]

    def test_first_success_wins(self):
        factory = VerificationFactory()
        failing = _StubVerificationProvider("failing", 10, succeeds=False)
        winner = _StubVerificationProvider("winner", 5)
        never = _StubVerificationProvider("never", 0)
        for provider in (failing, winner, never):
            factory.register(provider)

        received = []
        assert factory.configure(p.MappingParameters({}), received.append)
        assert received == ["winner"]
        assert never.calls == 0

    def test_none_succeeds(self, caplog):
        factory = VerificationFactory()
        factory.register(_StubVerificationProvider("failing", succeeds=False))
        with caplog.at_level(logging.WARNING, logger=factories.__name__):
            assert not factory.configure(p.MappingParameters({}), lambda v: None)
        assert "Failed to configure any JWT verifier" in caplog.text


def test_default_verification_providers():
    providers = m.verification_factory.providers()
    assert [type(pr) for pr in providers] == [
        m.OidcVerificationProvider,
        m.AwsVerificationProvider,
        m.DefaultVerificationProvider,
    ]


def test_flask_engine_provider_registered_on_import():
    assert any(isinstance(pr, m.FlaskEngineProvider) for pr in m.engine_factory.providers())


class TestAutomatedConfiguration:
    @pytest.fixture
    def verifiers(self):
        factory = VerificationFactory()
        factory.register(_StubVerificationProvider("configured-verifier"))
        return factory

    @pytest.fixture
    def engines(self, binding):
        factory = EngineFactory()
        factory.register(_StubEngineProvider(binding))
        return factory

    def test_configures_everything(self, make_adaptor, verifiers, engines):
        adaptor = make_adaptor(
            {p.PARAM_PATH_EXCLUSIONS: "/healthz,/status/*", p.PARAM_HEADER_NAMES: "X-Token"}
        )
        automated.configure(adaptor, verifiers=verifiers, engines=engines)

        assert adaptor.get_attribute(ATTRIBUTE_JWT_VERIFIER) == "configured-verifier"
        assert adaptor.get_attribute(ATTRIBUTE_PATH_EXCLUSIONS) == [
            m.PathExclusion("/healthz"),
            m.PathExclusion("/status/*"),
        ]
        assert adaptor.get_attribute(ATTRIBUTE_JWT_ENGINE).headers == (m.HeaderSource("X-Token"),)

    def test_existing_attributes_kept(self, make_adaptor, verifiers, engines, caplog):
        adaptor = make_adaptor({p.PARAM_PATH_EXCLUSIONS: "/healthz", p.PARAM_HEADER_NAMES: "X-Token"})
        adaptor.set_attribute(ATTRIBUTE_JWT_VERIFIER, "existing-verifier")
        adaptor.set_attribute(ATTRIBUTE_PATH_EXCLUSIONS, [])
        adaptor.set_attribute(ATTRIBUTE_JWT_ENGINE, "existing-engine")

        with caplog.at_level(logging.WARNING, logger=automated.__name__):
            automated.configure(adaptor, verifiers=verifiers, engines=engines)

        assert adaptor.get_attribute(ATTRIBUTE_JWT_VERIFIER) == "existing-verifier"
        assert adaptor.get_attribute(ATTRIBUTE_PATH_EXCLUSIONS) == []
        assert adaptor.get_attribute(ATTRIBUTE_JWT_ENGINE) == "existing-engine"
        assert "JWT Verifier already configured" in caplog.text
        assert "Path Exclusions already configured" in caplog.text
        assert "JWT Authentication Engine already configured" in caplog.text

    def test_allow_multiple_replaces(self, make_adaptor, verifiers, engines):
        adaptor = make_adaptor({p.PARAM_ALLOW_MULTIPLE_CONFIGS: "true"})
        adaptor.set_attribute(ATTRIBUTE_JWT_VERIFIER, "existing-verifier")

        automated.configure(adaptor, verifiers=verifiers, engines=engines)
        assert adaptor.get_attribute(ATTRIBUTE_JWT_VERIFIER) == "configured-verifier"

    def test_invalid_exclusions_logged(self, make_adaptor, verifiers, engines, caplog):
        adaptor = make_adaptor({p.PARAM_PATH_EXCLUSIONS: "/healthz,/*"})
        with caplog.at_level(logging.ERROR, logger=automated.__name__):
            automated.configure(adaptor, verifiers=verifiers, engines=engines)

        assert adaptor.get_attribute(ATTRIBUTE_PATH_EXCLUSIONS) is None
        assert "Invalid jwt.path-exclusions configuration" in caplog.text

    def test_engine_left_unset_without_headers(self, make_adaptor, verifiers, engines):
        adaptor = make_adaptor({})
        automated.configure(adaptor, verifiers=verifiers, engines=engines)
        assert adaptor.get_attribute(ATTRIBUTE_JWT_ENGINE) is None
