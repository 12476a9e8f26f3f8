"""Shared fixtures."""

import pytest

from bybit_connector.config.models import ClientConfig

WS_URL = "wss://stream.example.test/v5"


def make_config(**overrides) -> ClientConfig:
    """Configuration with timings shrunk for tests."""
    fields = {
        "base_url": "https://api.example.test",
        "ws_url": WS_URL,
        "heartbeat_interval_seconds": 0.05,
        "heartbeat_timeout_multiplier": 3,
        "reconnect_backoff_min_seconds": 0.01,
        "reconnect_backoff_max_seconds": 0.05,
        "connect_timeout_seconds": 1.0,
        "auth_timeout_seconds": 0.5,
    }
    fields.update(overrides)
    return ClientConfig(**fields)


@pytest.fixture
def config() -> ClientConfig:
    return make_config()


@pytest.fixture
def private_config() -> ClientConfig:
    return make_config(credentials={"api_key": "k", "api_secret": "s"})


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("BYBIT_API_KEY", "BYBIT_API_SECRET", "BYBIT_RECV_WINDOW", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
