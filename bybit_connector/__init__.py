"""
Bybit V5 connection and authentication layer.

Components:
    - Signer: HMAC-SHA256 request and WebSocket auth signing
    - RestClient: Signed REST calls with typed error mapping
    - WsSession: Managed WebSocket connection with replayed subscriptions
    - Session / connect(): REST plus WebSocket behind one configuration

Example:
    >>> from bybit_connector import ClientConfig, connect
    >>> config = ClientConfig.testnet(api_key="XXXX", api_secret="YYYY")
    >>> session = await connect(config)
    >>> await session.close()
"""

from bybit_connector.auth.signer import Signer
from bybit_connector.config.loader import ConfigLoadError, load_config
from bybit_connector.config.models import ClientConfig, Network
from bybit_connector.errors import (
    AuthError,
    BybitError,
    ClockSkewError,
    ExchangeError,
    InvalidCredentialsError,
    ProtocolError,
    RateLimitError,
    SessionClosedError,
    SignatureRejectedError,
    SubscriptionError,
    TransportError,
)
from bybit_connector.logging_config import setup_logging
from bybit_connector.models import ConnectionState, Credentials, Message, StreamCategory
from bybit_connector.rest.client import RestClient
from bybit_connector.session import Session, connect
from bybit_connector.websocket.session import WsSession

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "connect",
    "load_config",
    "setup_logging",
    "Session",
    "RestClient",
    "WsSession",
    "Signer",
    # Configuration and models
    "ClientConfig",
    "ConfigLoadError",
    "ConnectionState",
    "Credentials",
    "Message",
    "Network",
    "StreamCategory",
    # Errors
    "AuthError",
    "BybitError",
    "ClockSkewError",
    "ExchangeError",
    "InvalidCredentialsError",
    "ProtocolError",
    "RateLimitError",
    "SessionClosedError",
    "SignatureRejectedError",
    "SubscriptionError",
    "TransportError",
]
