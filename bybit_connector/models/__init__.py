"""
Shared Pydantic data models for the connector.

Modules:
    credentials: API key pair
    requests: Signed REST requests and the response envelope
    messages: Typed WebSocket frames
    state: Connection state and stream categories

Example:
    >>> from bybit_connector.models import Credentials, ConnectionState, Message
"""

from bybit_connector.models.credentials import Credentials
from bybit_connector.models.messages import (
    CommandAck,
    Frame,
    FrameKind,
    Message,
    OrderResponse,
    Pong,
)
from bybit_connector.models.requests import RestEnvelope, SignedRequest
from bybit_connector.models.state import ConnectionState, StreamCategory

__all__ = [
    "CommandAck",
    "ConnectionState",
    "Credentials",
    "Frame",
    "FrameKind",
    "Message",
    "OrderResponse",
    "Pong",
    "RestEnvelope",
    "SignedRequest",
    "StreamCategory",
]
