"""
Connection state and stream category enumerations.

Models:
    ConnectionState: WebSocket session lifecycle state
    StreamCategory: Logical WebSocket stream (one connection per category)
"""

from enum import Enum


class ConnectionState(str, Enum):
    """
    WebSocket session state.

    Attributes:
        DISCONNECTED: No socket; initial state and terminal state after close().
        CONNECTING: Opening the socket.
        AUTHENTICATING: Socket open, waiting for the auth acknowledgement.
        ACTIVE: Ready; subscriptions are replayed on entry.
        RECONNECTING: Connection lost, waiting for the backoff delay.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"

    @property
    def is_active(self) -> bool:
        """Check if frames can be exchanged with the server."""
        return self == ConnectionState.ACTIVE


class StreamCategory(str, Enum):
    """Bybit V5 WebSocket stream categories."""

    SPOT = "spot"
    LINEAR = "linear"
    INVERSE = "inverse"
    OPTION = "option"
    PRIVATE = "private"
    TRADE = "trade"

    @property
    def path(self) -> str:
        """URL path appended to the WebSocket base URL."""
        if self == StreamCategory.PRIVATE:
            return "/private"
        if self == StreamCategory.TRADE:
            return "/trade"
        return f"/public/{self.value}"

    @property
    def is_private(self) -> bool:
        """Check if the stream carries private topics."""
        return self == StreamCategory.PRIVATE

    @property
    def requires_auth(self) -> bool:
        """Check if the connection must authenticate before use."""
        return self in (StreamCategory.PRIVATE, StreamCategory.TRADE)
