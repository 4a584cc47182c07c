"""
Unit tests for server and client configuration.
"""

import pytest

from tagserver.config import ServerConfig, ClientConfig


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == ""
        assert config.port == 0
        assert config.max_message_size == 256
        assert config.idle_timeout is None
        assert config.max_connections is None
        config.validate()

    @pytest.mark.parametrize("field, value", [
        ("port", -1),
        ("port", 65536),
        ("backlog", 0),
        ("max_message_size", 0),
        ("idle_timeout", 0),
        ("idle_timeout", -5.0),
        ("max_connections", 0),
        ("accept_timeout", 0),
        ("log_format", "xml"),
    ])
    def test_validate_rejects(self, field: str, value):
        config = ServerConfig(**{field: value})

        with pytest.raises(ValueError):
            config.validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TAGSERVER_HOST", "127.0.0.1")
        monkeypatch.setenv("TAGSERVER_PORT", "9000")
        monkeypatch.setenv("TAGSERVER_MAX_MESSAGE_SIZE", "512")
        monkeypatch.setenv("TAGSERVER_IDLE_TIMEOUT", "2.5")
        monkeypatch.setenv("TAGSERVER_MAX_CONNECTIONS", "8")
        monkeypatch.setenv("TAGSERVER_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("TAGSERVER_LOG_FORMAT", "json")

        config = ServerConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.max_message_size == 512
        assert config.idle_timeout == 2.5
        assert config.max_connections == 8
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_from_env_defaults(self, monkeypatch):
        for name in (
            "TAGSERVER_HOST", "TAGSERVER_PORT", "TAGSERVER_MAX_MESSAGE_SIZE",
            "TAGSERVER_IDLE_TIMEOUT", "TAGSERVER_MAX_CONNECTIONS",
            "TAGSERVER_LOG_LEVEL", "TAGSERVER_LOG_FORMAT",
        ):
            monkeypatch.delenv(name, raising=False)

        assert ServerConfig.from_env() == ServerConfig()

    def test_from_env_empty_optional_means_unset(self, monkeypatch):
        monkeypatch.setenv("TAGSERVER_IDLE_TIMEOUT", "")
        monkeypatch.setenv("TAGSERVER_MAX_CONNECTIONS", "")

        config = ServerConfig.from_env()

        assert config.idle_timeout is None
        assert config.max_connections is None

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("TAGSERVER_PORT", "eighty")

        with pytest.raises(ValueError):
            ServerConfig.from_env()


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_valid(self):
        ClientConfig(host="localhost", port=9000).validate()

    @pytest.mark.parametrize("kwargs", [
        {"port": 0},
        {"port": 70000},
        {"port": 9000, "max_message_size": 0},
        {"port": 9000, "timeout": 0},
    ])
    def test_validate_rejects(self, kwargs):
        with pytest.raises(ValueError):
            ClientConfig(**kwargs).validate()

    def test_timeout_none_allowed(self):
        ClientConfig(port=9000, timeout=None).validate()

    def test_reply_read_size_covers_largest_echo_reply(self):
        config = ClientConfig(port=9000)

        assert config.reply_read_size == len("<reply>" + "x" * 243 + "</reply>")

    def test_reply_read_size_override(self):
        config = ClientConfig(port=9000, max_reply_size=1024)

        assert config.reply_read_size == 1024

    def test_validate_rejects_zero_reply_size(self):
        with pytest.raises(ValueError):
            ClientConfig(port=9000, max_reply_size=0).validate()
