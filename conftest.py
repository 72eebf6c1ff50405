"""Shared fixtures for the chat relay tests."""

import copy
from unittest.mock import patch

import pytest

from chat_relay.config import Configuration

TEST_CONFIG = {
    "server": {
        "host": "127.0.0.1",
        "port": 8000,
        "workers": 1,
        "keepalive_timeout": 5,
    },
    "upstream": {
        "http_client": {
            "max_connections": 10,
            "max_keepalive": 5,
            "keepalive_expiry": 5.0,
            "connect_timeout": 5.0,
            "read_timeout": None,
            "write_timeout": 5.0,
            "pool_timeout": 5.0,
        }
    },
    "streaming": {"malformed_line_policy": "warn"},
    "tts": {"host": "cn-huabei-1.xf-yun.com", "path": "/v1/private/voice_clone"},
    "logging": {"level": "INFO"},
}

TEST_ENV = {
    "API_ENDPOINT": "https://chat.example.com/",
    "API_CHAT_ID": "chat-123",
    "API_KEY": "secret-key",
    "TTS_API_KEY": "tts-key",
    "TTS_API_SECRET": "tts-secret",
    "TTS_APPID": "app-1",
    "TTS_RES_ID": "res-1",
}


def make_configuration(config=None):
    """Build a Configuration without touching .env or config.yaml."""
    with patch.object(
        Configuration,
        "_load_yaml_config",
        return_value=copy.deepcopy(config or TEST_CONFIG),
    ), patch.object(Configuration, "load_env"):
        return Configuration()


@pytest.fixture
def relay_env(monkeypatch):
    for name in ["TUNNEL_ENDPOINT"]:
        monkeypatch.delenv(name, raising=False)
    for name, value in TEST_ENV.items():
        monkeypatch.setenv(name, value)
    return TEST_ENV


@pytest.fixture
def configuration(relay_env):
    return make_configuration()
