from pathlib import Path

import pytest
from pydantic import ValidationError

from bybit_connector.config.loader import ConfigLoader, ConfigLoadError, load_config
from bybit_connector.config.models import (
    MAINNET_REST_URL,
    TESTNET_REST_URL,
    TESTNET_WS_URL,
    ClientConfig,
    LogFormat,
    LogLevel,
)
from bybit_connector.errors import InvalidCredentialsError
from bybit_connector.models.state import StreamCategory

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "bybit.yaml"


def write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "bybit.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_repository_config_loads():
    config = load_config(REPO_CONFIG)

    assert config.base_url == TESTNET_REST_URL
    assert config.ws_url == TESTNET_WS_URL
    assert config.rate_limit_per_second == 10
    assert config.credentials is None


def test_sections_map_onto_client_config(tmp_path):
    path = write(
        tmp_path,
        """
network: mainnet
rest:
  recv_window: 8000
  timeout_seconds: 3
websocket:
  url: wss://stream.example.test/v5/
  heartbeat_interval_seconds: 15
  max_reconnect_attempts: 4
credentials:
  api_key: filekey
  api_secret: filesecret
logging:
  format: text
  level: debug
""",
    )

    config = ConfigLoader(path).load()

    assert config.base_url == MAINNET_REST_URL
    assert config.ws_url == "wss://stream.example.test/v5"
    assert config.recv_window == 8000
    assert config.rest_timeout_seconds == 3
    assert config.heartbeat_interval_seconds == 15
    assert config.max_reconnect_attempts == 4
    assert config.credentials.api_key == "filekey"
    assert config.logging.format == LogFormat.TEXT
    assert config.logging.level == LogLevel.DEBUG


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = write(tmp_path, "network: testnet\ncredentials:\n  api_key: filekey\n  api_secret: filesecret\n")
    monkeypatch.setenv("BYBIT_API_KEY", "envkey")
    monkeypatch.setenv("BYBIT_API_SECRET", "envsecret")
    monkeypatch.setenv("BYBIT_RECV_WINDOW", "7000")
    monkeypatch.setenv("LOG_LEVEL", "warning")

    config = load_config(path)

    assert config.credentials.api_key == "envkey"
    assert config.credentials.secret_bytes() == b"envsecret"
    assert config.recv_window == 7000
    assert config.logging.level == LogLevel.WARNING


@pytest.mark.parametrize(
    "text",
    [
        "",
        "- a\n- b\n",
        "network: moonnet\n",
        "rest: {recv_window: 0}\n",
        "websocket: {reconnect_backoff_min_seconds: 30, reconnect_backoff_max_seconds: 5}\n",
        "rest: {base_url: ftp://api.bybit.com}\n",
        "credentials: {api_key: only-a-key}\n",
        "rest: [unclosed\n",
    ],
)
def test_invalid_files_raise_config_load_error(tmp_path, text):
    path = write(tmp_path, text)

    with pytest.raises(ConfigLoadError) as excinfo:
        load_config(path)

    assert excinfo.value.file_path == path


def test_invalid_recv_window_env(tmp_path, monkeypatch):
    path = write(tmp_path, "network: testnet\n")
    monkeypatch.setenv("BYBIT_RECV_WINDOW", "soon")

    with pytest.raises(ConfigLoadError) as excinfo:
        load_config(path)

    assert isinstance(excinfo.value.cause, ValidationError)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigLoadError, match="not found"):
        ConfigLoader(tmp_path / "absent.yaml")


def test_presets():
    testnet = ClientConfig.testnet(api_key="k", api_secret="s")
    mainnet = ClientConfig.mainnet()

    assert testnet.base_url == "https://api-testnet.bybit.com"
    assert testnet.private_enabled
    assert not mainnet.private_enabled
    assert mainnet.websocket_url(StreamCategory.SPOT) == "wss://stream.bybit.com/v5/public/spot"
    assert testnet.websocket_url(StreamCategory.PRIVATE) == "wss://stream-testnet.bybit.com/v5/private"
    assert testnet.websocket_url(StreamCategory.TRADE) == "wss://stream-testnet.bybit.com/v5/trade"


def test_with_recv_window_returns_validated_copy():
    config = ClientConfig.testnet(api_key="k", api_secret="s")

    widened = config.with_recv_window(20000)

    assert widened.recv_window == 20000
    assert config.recv_window == 5000
    assert widened.credentials.secret_bytes() == b"s"
    with pytest.raises(ValidationError):
        config.with_recv_window(0)


def test_heartbeat_timeout_is_a_multiple_of_interval():
    config = ClientConfig(heartbeat_interval_seconds=10, heartbeat_timeout_multiplier=3)

    assert config.heartbeat_timeout_seconds == 30


def test_timeouts_must_be_finite_and_positive():
    with pytest.raises(ValidationError):
        ClientConfig(connect_timeout_seconds=0)
    with pytest.raises(ValidationError):
        ClientConfig(rest_timeout_seconds=-1)


def test_malformed_credentials_abort_construction():
    with pytest.raises(InvalidCredentialsError):
        ClientConfig.testnet(api_key="k", api_secret="bad secret")


def test_configs_are_independent():
    first = ClientConfig.testnet(recv_window=1000)
    second = ClientConfig.mainnet(recv_window=9000)

    assert (first.recv_window, second.recv_window) == (1000, 9000)
    assert first.base_url != second.base_url
