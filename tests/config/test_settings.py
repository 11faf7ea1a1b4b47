"""Tests for src/config — settings loading and logging setup."""

import logging

import pytest
from pydantic import ValidationError

from src.config import Settings, configure_logging, get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.api_url == "http://localhost:3001"
        assert settings.heartbeat_interval == 25.0
        assert settings.heartbeat_timeout == 5.0
        assert settings.reconnect_initial_delay == 1.0
        assert settings.reconnect_max_delay == 30.0
        assert settings.reconnect_multiplier == 1.5
        assert settings.reconnect_max_attempts == 10
        assert settings.queue_max_age == 86_400
        assert settings.sync_max_attempts == 3
        assert settings.storage_path is None

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("API_URL", "https://api.streetlegacy.example")
        monkeypatch.setenv("HEARTBEAT_INTERVAL", "10")
        monkeypatch.setenv("SYNC_MAX_ATTEMPTS", "5")

        settings = get_settings()

        assert settings.api_url == "https://api.streetlegacy.example"
        assert settings.heartbeat_interval == 10.0
        assert settings.sync_max_attempts == 5

    def test_cached(self):
        assert get_settings() is get_settings()

    @pytest.mark.parametrize(
        "api_url,ws_url",
        [
            ("http://localhost:3001", "ws://localhost:3001"),
            ("https://api.example.com", "wss://api.example.com"),
            ("ws://already.example", "ws://already.example"),
        ],
    )
    def test_ws_url(self, api_url, ws_url):
        assert Settings(_env_file=None, api_url=api_url).ws_url == ws_url

    def test_rejects_non_positive_heartbeat(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, heartbeat_interval=0)


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        for name in ("websockets", "httpx", "httpcore"):
            logging.getLogger(name).setLevel(logging.NOTSET)

    def test_sets_levels(self):
        configure_logging("debug")

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("websockets").level == logging.WARNING

    def test_debug_unmutes_transport_loggers(self):
        configure_logging("INFO", debug=True)

        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        configure_logging("chatty")

        assert logging.getLogger().level == logging.INFO
