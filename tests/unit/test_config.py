"""
Unit tests for configuration and security helpers
"""

import json
import string

import pytest

from appserver.core.config import DEFAULT_MIDDLEWARE, ServerConfig, Settings, load_settings
from appserver.core.security import generate_random_string, generate_secure_secret_key, validate_secret_key

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


class TestSettings:
    """Test application settings configuration"""

    def test_default_settings(self):
        """Test default configuration values"""
        settings = Settings(_env_file=None)

        assert settings.project == "appserver"
        assert settings.log_level == "INFO"
        assert list(settings.servers) == ["web"]

        web = settings.servers["web"]
        assert web.class_ == "servers.web"
        assert web.port == 8000
        assert web.middleware == DEFAULT_MIDDLEWARE
        assert web.session.token_length == 64
        assert web.session.save_interval == 0
        assert web.session.expire_timeout == 0

    def test_default_secret_is_generated(self):
        """Each settings instance gets a strong random session secret"""
        first = Settings(_env_file=None).servers["web"].session.secret
        second = Settings(_env_file=None).servers["web"].session.secret

        assert len(first) == 64
        assert first != second
        validate_secret_key(first)

    def test_environment_override(self, monkeypatch):
        """Test settings read from APPSERVER_ environment variables"""
        monkeypatch.setenv("APPSERVER_PROJECT", "envproject")
        monkeypatch.setenv("APPSERVER_DEBUG", "true")

        settings = Settings(_env_file=None)

        assert settings.project == "envproject"
        assert settings.debug is True

    def test_class_alias(self):
        """Server class is configured as ``class``"""
        config = ServerConfig(**{"class": "servers.custom"})
        assert config.class_ == "servers.custom"

        config = ServerConfig(class_="servers.other")
        assert config.class_ == "servers.other"


class TestLookup:
    """Test hierarchical configuration lookup"""

    def test_lookup_nested_values(self, settings):
        assert settings.lookup("project") == "testproj"
        assert settings.lookup("servers.web.host") == "127.0.0.1"
        assert settings.lookup("servers.web.session.secret") == settings.servers["web"].session.secret

    def test_lookup_alias(self, settings):
        assert settings.lookup("servers.web.class") == "servers.web"

    def test_lookup_missing_returns_default(self, settings):
        assert settings.lookup("servers.api.port") is None
        assert settings.lookup("servers.api.port", 1234) == 1234
        assert settings.lookup("servers.web.nothing.here", "x") == "x"

    def test_lookup_absent_session(self, make_settings):
        settings = make_settings(with_session=False)
        assert settings.lookup("servers.web.session") is None


class TestLoadSettings:
    def test_load_json_file(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "project": "fromfile",
            "servers": {
                "api": {"class": "servers.web", "port": 9001, "session": {"save_interval": 5}},
            },
        }))

        settings = load_settings(config_file)

        assert settings.project == "fromfile"
        assert list(settings.servers) == ["api"]
        assert settings.lookup("servers.api.port") == 9001
        assert settings.lookup("servers.api.session.save_interval") == 5

    def test_load_without_file(self):
        settings = load_settings(None)
        assert isinstance(settings, Settings)


class TestSecurity:
    """Test random tokens and secret validation"""

    def test_random_string_alphabet(self):
        value = generate_random_string(200, lower=True, upper=True, digits=True)

        assert len(value) == 200
        assert set(value) <= set(string.ascii_letters + string.digits)

    def test_random_string_digits_only(self):
        value = generate_random_string(50, lower=False, upper=False, digits=True)
        assert value.isdigit()

    def test_random_string_empty_alphabet(self):
        with pytest.raises(ValueError):
            generate_random_string(10, lower=False, upper=False, digits=False)

    def test_secure_secret_key(self):
        assert len(generate_secure_secret_key(48)) == 48

    @pytest.mark.parametrize("secret", ["", "short", "secret", "a" * 40])
    def test_weak_secrets_rejected(self, secret):
        with pytest.raises(ValueError):
            validate_secret_key(secret)
