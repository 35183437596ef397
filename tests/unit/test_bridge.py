"""
Unit tests for the session bridge

Token format, session creation and lookup, and request metadata.
"""

import logging
import string

import jwt
import pytest

from appserver.core.errors import ConfigurationError, TokenDecodeError
from appserver.main import build_registry
from appserver.session.models import Session
from tests.conftest import TEST_SECRET
from tests.utils.helpers import DemoUser, make_request, save_aged

pytestmark = pytest.mark.unit


@pytest.fixture
def bridge(registry):
    return registry.get("session.bridge", "web")


def _bridge_for(make_settings, **session):
    settings = make_settings(session=session)
    registry = build_registry(settings)
    return registry.get("session.bridge", "web"), registry


class TestBridgeProperties:
    def test_token_var(self, bridge):
        assert bridge.token_var == "sid_web_testproj"

    def test_configured_values(self, make_settings):
        bridge, _ = _bridge_for(make_settings, save_interval=3, expire_timeout=600, expire_interval=30)

        assert bridge.secret == TEST_SECRET
        assert bridge.save_interval == 3
        assert bridge.expiration_timeout == 600
        assert bridge.expiration_interval == 30

    def test_missing_session_config(self, make_settings):
        registry = build_registry(make_settings(with_session=False))

        with pytest.raises(ConfigurationError):
            registry.get("session.bridge", "web")

    def test_weak_secret_is_logged(self, make_settings, caplog):
        with caplog.at_level(logging.WARNING, logger="appserver.session.bridge"):
            _bridge_for(make_settings, secret="short")

        assert "weak session secret" in caplog.text


class TestCreate:
    async def test_create_anonymous(self, bridge):
        session = await bridge.create(None, make_request())

        assert len(session.token) == 64
        assert set(session.token) <= set(string.ascii_letters + string.digits)
        assert session.payload == {}
        assert session.user is None
        assert session.user_id is None
        assert session.info["ip"] == "127.0.0.1"

    async def test_create_with_user(self, bridge):
        user = DemoUser(id=5)
        session = await bridge.create(user)

        assert session.user is user
        assert session.user_id == 5

    async def test_tokens_are_unique(self, bridge):
        tokens = {(await bridge.create(None)).token for _ in range(20)}
        assert len(tokens) == 20

    async def test_token_length_setter(self, bridge):
        bridge.token_length = 16
        session = await bridge.create(None)

        assert bridge.token_length == 16
        assert len(session.token) == 16

    async def test_model_from_registry(self, make_settings):
        bridge, registry = _bridge_for(make_settings, model="models.custom")

        class CustomSession(Session):
            pass

        registry.provide("models.custom", CustomSession, singleton=False)
        session = await bridge.create(None)

        assert isinstance(session, CustomSession)

    async def test_no_model_available(self, make_settings):
        bridge, _ = _bridge_for(make_settings, session_repository=None)

        with pytest.raises(ConfigurationError, match="No model for the bridge"):
            await bridge.create(None)


class TestFindAndSave:
    async def test_save_then_find(self, bridge, session_repository):
        session = await bridge.create(None)
        session.payload = {"cart": [1, 2]}
        await bridge.save(session)

        found = await bridge.find(session.token)

        assert found is not None
        assert found.payload == {"cart": [1, 2]}
        assert len(session_repository) == 1

    async def test_find_resolves_user(self, bridge, user_repository):
        user = DemoUser(id=7)
        user_repository.add(user)

        session = await bridge.create(None)
        session.user = user
        await bridge.save(session)

        found = await bridge.find(session.token)

        assert found.user_id == 7
        assert found.user is user

    async def test_find_unknown_user(self, bridge):
        session = await bridge.create(DemoUser(id=99))
        await bridge.save(session)

        found = await bridge.find(session.token)

        assert found.user_id == 99
        assert found.user is None

    async def test_find_missing(self, bridge):
        assert await bridge.find("does-not-exist") is None

    async def test_save_refreshes_info(self, bridge):
        session = await bridge.create(None)
        session.payload = {"a": 1}
        await bridge.save(session, make_request(headers={"User-Agent": "pytest"}))

        assert session.info["user_agent"] == "pytest"

    async def test_save_derives_user_id(self, bridge):
        session = await bridge.create(None)
        session.user = DemoUser(id=3)
        await bridge.save(session)

        assert session.user_id == 3

    async def test_destroy(self, bridge, session_repository):
        session = await bridge.create(None)
        session.payload = {"a": 1}
        await bridge.save(session)

        await bridge.destroy(session)
        assert len(session_repository) == 0

        # Already gone: no error
        await bridge.destroy(session)


class TestExpire:
    async def test_expire_uses_timeout(self, make_settings):
        bridge, registry = _bridge_for(make_settings, expire_timeout=60)
        repository = registry.get("repositories.session.memory")

        for token, age in (("fresh", 30), ("stale", 90)):
            await save_aged(repository, Session(token=token, payload={"x": 1}), age)

        assert await bridge.expire() == 1
        assert await repository.find_by_token("fresh")
        assert await repository.find_by_token("stale") == []

    async def test_expire_disabled_without_timeout(self, bridge, session_repository):
        await save_aged(session_repository, Session(token="old", payload={"x": 1}), 30 * 24 * 3600)

        assert await bridge.expire() == 0
        assert len(session_repository) == 1


class TestTokens:
    async def test_round_trip(self, bridge):
        session = await bridge.create(None)
        session.payload = {"theme": "dark"}
        await bridge.save(session)

        decoded = await bridge.decode_token(bridge.encode_token(session))

        assert decoded.session.token == session.token
        assert decoded.session.payload == {"theme": "dark"}
        assert isinstance(decoded.issued_at, int)

    async def test_token_claims(self, bridge):
        session = await bridge.create(None)
        claims = jwt.decode(bridge.encode_token(session), TEST_SECRET, algorithms=["HS256"])

        assert claims["token"] == session.token
        assert "iat" in claims

    async def test_tampered_token(self, bridge):
        session = await bridge.create(None)
        session.payload = {"a": 1}
        await bridge.save(session)

        header, payload, signature = bridge.encode_token(session).split(".")
        middle = len(payload) // 2
        replacement = "A" if payload[middle] != "A" else "B"
        tampered = ".".join([header, payload[:middle] + replacement + payload[middle + 1:], signature])

        with pytest.raises(TokenDecodeError):
            await bridge.decode_token(tampered)

    async def test_wrong_secret(self, bridge):
        token = jwt.encode({"token": "abc", "iat": 0}, "another-secret-entirely-0123456789abcdef", algorithm="HS256")

        with pytest.raises(TokenDecodeError):
            await bridge.decode_token(token)

    async def test_garbage_token(self, bridge):
        with pytest.raises(TokenDecodeError):
            await bridge.decode_token("not-a-jwt")

    async def test_missing_token_claim(self, bridge):
        token = jwt.encode({"iat": 0}, TEST_SECRET, algorithm="HS256")

        with pytest.raises(TokenDecodeError):
            await bridge.decode_token(token)

    async def test_valid_token_for_deleted_session(self, bridge):
        token = jwt.encode({"token": "gone", "iat": 0}, TEST_SECRET, algorithm="HS256")

        decoded = await bridge.decode_token(token)

        assert decoded.session is None


class TestValidity:
    def test_empty_session_is_not_valid(self, bridge):
        assert bridge.is_valid(Session(token="t")) is False

    def test_payload_makes_valid(self, bridge):
        assert bridge.is_valid(Session(token="t", payload={"a": 1})) is True

    def test_user_makes_valid(self, bridge):
        assert bridge.is_valid(Session(token="t", user=DemoUser(id=1))) is True


class TestRequestInfo:
    def test_transport_address(self, bridge):
        info = bridge.get_info(make_request(client=("10.1.2.3", 4000)))

        assert info == {"ip": "10.1.2.3", "forwarded_for": None, "user_agent": None, "geoip": None}

    def test_headers(self, bridge):
        info = bridge.get_info(make_request(headers={
            "X-Forwarded-For": " 203.0.113.9, 10.0.0.1 ",
            "User-Agent": "Mozilla/5.0",
        }))

        assert info["forwarded_for"] == "203.0.113.9, 10.0.0.1"
        assert info["user_agent"] == "Mozilla/5.0"

    def test_ip_header(self, make_settings):
        bridge, _ = _bridge_for(make_settings, ip_header="X-Real-IP")

        info = bridge.get_info(make_request(headers={"X-Real-IP": "  198.51.100.7 "}))

        assert info["ip"] == "198.51.100.7"

    def test_ip_header_missing_falls_back(self, make_settings):
        bridge, _ = _bridge_for(make_settings, ip_header="X-Real-IP")

        assert bridge.get_info(make_request())["ip"] == "127.0.0.1"

    def test_without_request(self, bridge):
        assert bridge.get_info(None)["ip"] is None

    def test_missing_geoip_database(self, make_settings, tmp_path):
        bridge, _ = _bridge_for(make_settings, geoip_database=str(tmp_path / "missing.mmdb"))

        assert bridge.get_info(make_request())["geoip"] is None
