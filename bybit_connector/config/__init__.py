"""
Configuration management for the connector.

Configuration is loaded from a YAML file and validated with Pydantic models
so that errors are caught before any connection is attempted. It can also be
built directly in code with ClientConfig, ClientConfig.mainnet() or
ClientConfig.testnet().

Environment variables override file settings:
    - BYBIT_API_KEY / BYBIT_API_SECRET: API credentials
    - BYBIT_RECV_WINDOW: Receive window in milliseconds
    - LOG_LEVEL: Application log level

Example:
    >>> from bybit_connector.config import load_config
    >>> config = load_config("config/bybit.yaml")

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
"""

from bybit_connector.config.loader import ConfigLoadError, ConfigLoader, load_config
from bybit_connector.config.models import (
    ClientConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    Network,
)

__all__: list[str] = [
    # Loader
    "load_config",
    "ConfigLoader",
    "ConfigLoadError",
    # Enums
    "LogFormat",
    "LogLevel",
    "Network",
    # Models
    "LoggingConfig",
    "ClientConfig",
]
