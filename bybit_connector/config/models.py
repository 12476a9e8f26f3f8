"""
Pydantic models for connector configuration.

Configuration is always passed explicitly at construction; there is no
module-level client configuration, so several independent sessions (or
tests) can coexist in one process.

Configuration file:
    - config/bybit.yaml: endpoints, timeouts, reconnection and logging

Example:
    >>> from bybit_connector.config.models import ClientConfig
    >>> config = ClientConfig.testnet(api_key="XXXX", api_secret="YYYY")
    >>> config.private_enabled
    True
"""

from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

from bybit_connector.models.credentials import Credentials
from bybit_connector.models.state import StreamCategory

MAINNET_REST_URL = "https://api.bybit.com"
MAINNET_WS_URL = "wss://stream.bybit.com/v5"
TESTNET_REST_URL = "https://api-testnet.bybit.com"
TESTNET_WS_URL = "wss://stream-testnet.bybit.com/v5"


# =============================================================================
# ENUMS
# =============================================================================


class Network(str, Enum):
    """Bybit deployment."""

    MAINNET = "mainnet"
    TESTNET = "testnet"


class LogFormat(str, Enum):
    """Logging format options."""

    JSON = "json"
    TEXT = "text"


class LogLevel(str, Enum):
    """Logging level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# LOGGING
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Default log level",
    )


# =============================================================================
# CLIENT CONFIGURATION
# =============================================================================


class ClientConfig(BaseModel):
    """
    Complete connector configuration.

    Attributes:
        base_url: REST API base URL.
        ws_url: WebSocket base URL; the stream category path is appended.
        recv_window: Signed request validity window in milliseconds.
        credentials: API key pair; None disables private features.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    base_url: str = Field(
        default=MAINNET_REST_URL,
        description="REST API base URL",
    )
    ws_url: str = Field(
        default=MAINNET_WS_URL,
        description="WebSocket base URL",
    )
    recv_window: int = Field(
        default=5000,
        description="Receive window for signed requests (ms)",
        ge=1,
        le=60000,
    )
    rest_timeout_seconds: float = Field(
        default=10.0,
        description="Total timeout for one REST call",
        gt=0,
        le=300,
    )
    rate_limit_per_second: Optional[int] = Field(
        default=None,
        description="Client-side REST throttle; None disables it",
        ge=1,
        le=100,
    )
    heartbeat_interval_seconds: float = Field(
        default=20.0,
        description="WebSocket ping interval",
        gt=0,
        le=300,
    )
    heartbeat_timeout_multiplier: float = Field(
        default=2.0,
        description="Connection is dead after this many intervals without traffic",
        ge=1,
        le=10,
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for opening one WebSocket connection",
        gt=0,
        le=120,
    )
    auth_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for the WebSocket auth acknowledgement",
        gt=0,
        le=120,
    )
    auth_expires_ms: int = Field(
        default=10000,
        description="Lifetime of the WebSocket auth signature (ms)",
        ge=1000,
        le=600000,
    )
    reconnect_backoff_min_seconds: float = Field(
        default=1.0,
        description="First reconnection delay",
        gt=0,
        le=60,
    )
    reconnect_backoff_max_seconds: float = Field(
        default=60.0,
        description="Reconnection delay cap",
        gt=0,
        le=600,
    )
    max_reconnect_attempts: Optional[int] = Field(
        default=10,
        description="Consecutive failed attempts before giving up; None retries forever",
        ge=1,
    )
    max_topics_per_frame: int = Field(
        default=10,
        description="Topics per subscribe frame",
        ge=1,
        le=100,
    )
    order_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a response to a trade stream order command",
        gt=0,
        le=120,
    )
    credentials: Optional[Credentials] = Field(
        default=None,
        description="API credentials; None disables private features",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        if urlparse(value).scheme not in ("http", "https"):
            raise ValueError(f"base_url must be an http(s) URL: {value}")
        return value.rstrip("/")

    @field_validator("ws_url")
    @classmethod
    def _check_ws_url(cls, value: str) -> str:
        if urlparse(value).scheme not in ("ws", "wss"):
            raise ValueError(f"ws_url must be a ws(s) URL: {value}")
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_backoff(self) -> "ClientConfig":
        if self.reconnect_backoff_min_seconds > self.reconnect_backoff_max_seconds:
            raise ValueError(
                "reconnect_backoff_min_seconds must not exceed reconnect_backoff_max_seconds"
            )
        return self

    @property
    def private_enabled(self) -> bool:
        """Check if credentials are configured."""
        return self.credentials is not None

    @property
    def heartbeat_timeout_seconds(self) -> float:
        """Silence after which a WebSocket connection is considered dead."""
        return self.heartbeat_interval_seconds * self.heartbeat_timeout_multiplier

    def websocket_url(self, category: StreamCategory) -> str:
        """
        Get the WebSocket URL for a stream category.

        Args:
            category: Stream category.

        Returns:
            str: Full WebSocket URL (e.g., "wss://stream.bybit.com/v5/public/linear").
        """
        return f"{self.ws_url}{category.path}"

    def with_recv_window(self, recv_window: int) -> "ClientConfig":
        """Return a copy with a different receive window."""
        return self.model_validate({**self.model_dump(), "recv_window": recv_window})

    @classmethod
    def for_network(
        cls,
        network: Network,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        **overrides,
    ) -> "ClientConfig":
        """
        Build a configuration with the endpoints of a Bybit deployment.

        Args:
            network: MAINNET or TESTNET.
            api_key: Optional API key.
            api_secret: Optional API secret; required if api_key is given.
            **overrides: Any other ClientConfig field.

        Returns:
            ClientConfig: Validated configuration.
        """
        if network == Network.TESTNET:
            urls = {"base_url": TESTNET_REST_URL, "ws_url": TESTNET_WS_URL}
        else:
            urls = {"base_url": MAINNET_REST_URL, "ws_url": MAINNET_WS_URL}

        if api_key is not None or api_secret is not None:
            overrides["credentials"] = Credentials(
                api_key=api_key or "", api_secret=api_secret or ""
            )

        return cls(**{**urls, **overrides})

    @classmethod
    def mainnet(cls, api_key: Optional[str] = None, api_secret: Optional[str] = None, **overrides) -> "ClientConfig":
        """Configuration for https://api.bybit.com."""
        return cls.for_network(Network.MAINNET, api_key, api_secret, **overrides)

    @classmethod
    def testnet(cls, api_key: Optional[str] = None, api_secret: Optional[str] = None, **overrides) -> "ClientConfig":
        """Configuration for https://api-testnet.bybit.com."""
        return cls.for_network(Network.TESTNET, api_key, api_secret, **overrides)
