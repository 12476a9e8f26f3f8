"""
Configuration loader for the YAML connector configuration.

Loads a single YAML file and validates it with the ClientConfig model so
configuration errors surface at startup, before any connection is opened.

Configuration file expected:
    - config/bybit.yaml

Environment variables override:
    - BYBIT_API_KEY / BYBIT_API_SECRET: API credentials
    - BYBIT_RECV_WINDOW: Receive window in milliseconds
    - LOG_LEVEL: Application log level

Example:
    >>> from bybit_connector.config.loader import load_config
    >>> config = load_config("config/bybit.yaml")
    >>> print(config.base_url)
    https://api-testnet.bybit.com
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from bybit_connector.config.models import (
    MAINNET_REST_URL,
    MAINNET_WS_URL,
    TESTNET_REST_URL,
    TESTNET_WS_URL,
    ClientConfig,
    LogLevel,
    Network,
)
from bybit_connector.errors import InvalidCredentialsError


class ConfigLoadError(Exception):
    """
    Raised when configuration loading fails.

    Attributes:
        message: Error message describing what went wrong.
        file_path: Path to the file that caused the error, if applicable.
        cause: Original exception that caused the error, if any.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize ConfigLoadError.

        Args:
            message: Error message.
            file_path: Path to the problematic file.
            cause: Original exception.
        """
        self.message = message
        self.file_path = file_path
        self.cause = cause
        super().__init__(message)


class ConfigLoader:
    """
    Loads and validates connector configuration from a YAML file.

    Expected layout:
        network: testnet            # mainnet | testnet, selects URL defaults
        rest:
          base_url: ...             # optional, overrides the network default
          recv_window: 5000
          timeout_seconds: 10
          rate_limit_per_second: 10
        websocket:
          url: ...
          heartbeat_interval_seconds: 20
          heartbeat_timeout_multiplier: 2
          connect_timeout_seconds: 10
          auth_timeout_seconds: 10
          reconnect_backoff_min_seconds: 1
          reconnect_backoff_max_seconds: 60
          max_reconnect_attempts: 10
          max_topics_per_frame: 10
          order_timeout_seconds: 10
        credentials:
          api_key: ...
          api_secret: ...
        logging:
          format: json
          level: INFO

    Example:
        >>> loader = ConfigLoader("config/bybit.yaml")
        >>> config = loader.load()
    """

    def __init__(self, config_path: Path | str = "config/bybit.yaml"):
        """
        Initialize config loader.

        Args:
            config_path: Path to the YAML file (default: 'config/bybit.yaml').

        Raises:
            ConfigLoadError: If the file does not exist.
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise ConfigLoadError(
                f"Configuration file not found: {self.config_path}",
                file_path=self.config_path,
            )
        if not self.config_path.is_file():
            raise ConfigLoadError(
                f"Configuration path is not a file: {self.config_path}",
                file_path=self.config_path,
            )

    def _load_yaml(self) -> Dict[str, Any]:
        """
        Load the YAML file.

        Returns:
            Dict containing parsed YAML content.

        Raises:
            ConfigLoadError: If the file is empty or not valid YAML.
        """
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(
                f"Invalid YAML syntax in {self.config_path}: {e}",
                file_path=self.config_path,
                cause=e,
            ) from e
        except OSError as e:
            raise ConfigLoadError(
                f"Error reading {self.config_path}: {e}",
                file_path=self.config_path,
                cause=e,
            ) from e

        if data is None:
            raise ConfigLoadError(
                f"Configuration file is empty: {self.config_path}",
                file_path=self.config_path,
            )
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Configuration root must be a mapping: {self.config_path}",
                file_path=self.config_path,
            )
        return data

    def _network_defaults(self, data: Dict[str, Any]) -> Dict[str, str]:
        """Resolve default URLs from the 'network' key."""
        try:
            network = Network(data.get("network", Network.MAINNET.value))
        except ValueError as e:
            raise ConfigLoadError(
                f"Unknown network: {data.get('network')!r}",
                file_path=self.config_path,
                cause=e,
            ) from e

        if network == Network.TESTNET:
            return {"base_url": TESTNET_REST_URL, "ws_url": TESTNET_WS_URL}
        return {"base_url": MAINNET_REST_URL, "ws_url": MAINNET_WS_URL}

    def _credentials(self, data: Dict[str, Any]) -> Optional[Dict[str, str]]:
        """
        Resolve credentials from the file and the environment.

        Environment variables:
            - BYBIT_API_KEY
            - BYBIT_API_SECRET

        Returns:
            Credentials mapping, or None if no key is configured.
        """
        file_creds = data.get("credentials") or {}
        api_key = os.getenv("BYBIT_API_KEY", file_creds.get("api_key"))
        api_secret = os.getenv("BYBIT_API_SECRET", file_creds.get("api_secret"))

        if not api_key and not api_secret:
            return None
        return {"api_key": api_key or "", "api_secret": api_secret or ""}

    def _get_log_level(self, data: Dict[str, Any]) -> LogLevel:
        """
        Get log level from environment, falling back to the file.

        Environment variables:
            - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

        Returns:
            LogLevel enum value.
        """
        level_str = os.getenv("LOG_LEVEL", data.get("level", "INFO")).upper()
        try:
            return LogLevel(level_str)
        except ValueError:
            return LogLevel.INFO

    def load(self) -> ClientConfig:
        """
        Load and validate the configuration file.

        Returns:
            ClientConfig: Validated configuration.

        Raises:
            ConfigLoadError: If the file is invalid or fails validation.
        """
        data = self._load_yaml()
        rest = data.get("rest") or {}
        websocket = data.get("websocket") or {}
        log_data = data.get("logging") or {}

        urls = self._network_defaults(data)
        fields: Dict[str, Any] = {
            "base_url": rest.get("base_url", urls["base_url"]),
            "ws_url": websocket.get("url", urls["ws_url"]),
            "recv_window": os.getenv("BYBIT_RECV_WINDOW", rest.get("recv_window", 5000)),
            "rest_timeout_seconds": rest.get("timeout_seconds", 10.0),
            "rate_limit_per_second": rest.get("rate_limit_per_second"),
            "credentials": self._credentials(data),
            "logging": {
                "format": log_data.get("format", "json"),
                "level": self._get_log_level(log_data),
            },
        }
        for key in (
            "heartbeat_interval_seconds",
            "heartbeat_timeout_multiplier",
            "connect_timeout_seconds",
            "auth_timeout_seconds",
            "auth_expires_ms",
            "reconnect_backoff_min_seconds",
            "reconnect_backoff_max_seconds",
            "max_reconnect_attempts",
            "max_topics_per_frame",
            "order_timeout_seconds",
        ):
            if key in websocket:
                fields[key] = websocket[key]

        try:
            return ClientConfig(**fields)
        except ValidationError as e:
            raise ConfigLoadError(
                f"Invalid connector configuration: {e}",
                file_path=self.config_path,
                cause=e,
            ) from e
        except InvalidCredentialsError as e:
            raise ConfigLoadError(
                f"Invalid credentials: {e}",
                file_path=self.config_path,
                cause=e,
            ) from e


def load_config(config_path: Path | str = "config/bybit.yaml") -> ClientConfig:
    """
    Convenience function to load connector configuration.

    Args:
        config_path: Path to the YAML file (default: 'config/bybit.yaml').

    Returns:
        ClientConfig: Validated configuration.

    Raises:
        ConfigLoadError: If configuration loading fails.

    Example:
        >>> from bybit_connector.config import load_config
        >>> config = load_config()
        >>> print(config.recv_window)
        5000
    """
    loader = ConfigLoader(config_path)
    return loader.load()
