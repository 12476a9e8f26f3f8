"""
WebSocket streaming.

Components:
    - WsSession: One managed connection (connect, auth, heartbeat, reconnect)
    - SubscriptionRegistry: Desired topics, replayed after every reconnect
    - Dispatcher / QueueConsumer: Route data messages to consumers
    - ExponentialBackoff: Reconnection delay policy
    - frames: Tagged frame decode and command encoders
    - topics: Topic name builders

Example:
    >>> from bybit_connector.websocket import WsSession, topics
    >>> session = WsSession(config, StreamCategory.LINEAR)
    >>> await session.connect()
    >>> stream = session.stream(topics.orderbook(50, "BTCUSDT"))
"""

from bybit_connector.websocket import topics
from bybit_connector.websocket.backoff import ExponentialBackoff
from bybit_connector.websocket.dispatcher import Dispatcher, QueueConsumer, SubscribeOutcome
from bybit_connector.websocket.frames import decode_frame, encode_order_command
from bybit_connector.websocket.registry import SubscriptionRegistry, is_private_topic
from bybit_connector.websocket.session import WsSession

__all__ = [
    "Dispatcher",
    "ExponentialBackoff",
    "QueueConsumer",
    "SubscribeOutcome",
    "SubscriptionRegistry",
    "WsSession",
    "decode_frame",
    "encode_order_command",
    "is_private_topic",
    "topics",
]
