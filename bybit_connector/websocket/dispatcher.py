"""
Routes decoded data messages to their consumers.

Each topic has exactly one consumer. Messages for topics without a consumer
(for example, data still in flight after an unsubscribe) are dropped and
counted. A consumer that raises is logged and counted; it never takes the
session down.

Consumers are plain callables or coroutine functions:

    def on_book(message: Message) -> None: ...
    async def on_trade(message: Message) -> None: ...

QueueConsumer adapts a topic into an async iterator:

    >>> consumer = QueueConsumer()
    >>> await session.subscribe("tickers.BTCUSDT", consumer)
    >>> async for message in consumer:
    ...     print(message.data)
"""

import asyncio
import inspect
from collections import Counter
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Optional

import structlog

from bybit_connector.errors import SessionClosedError
from bybit_connector.models.messages import Message

logger = structlog.get_logger(__name__)

Consumer = Callable[[Any], Any]


class SubscribeOutcome(str, Enum):
    """Result of Dispatcher.register."""

    ADDED = "added"
    UNCHANGED = "unchanged"
    REPLACED = "replaced"


class QueueConsumer:
    """
    Consumer that buffers messages in an asyncio.Queue.

    Iteration ends after close() once the buffered messages are drained.

    Attributes:
        topic: Topic this consumer was created for, if known.
    """

    _CLOSED = object()

    def __init__(self, topic: Optional[str] = None, maxsize: int = 0):
        """
        Initialize queue consumer.

        Args:
            topic: Topic name, informational.
            maxsize: Queue bound; 0 is unbounded. When full, new messages
                are rejected and counted as consumer errors.
        """
        self.topic = topic
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._error: Optional[BaseException] = None

    def __call__(self, message: Message) -> None:
        if self._closed:
            return
        self._queue.put_nowait(message)

    async def _take(self) -> Any:
        item = await self._queue.get()
        if item is self._CLOSED:
            # Keep the sentinel for other waiters
            self._queue.put_nowait(item)
        return item

    async def get(self) -> Message:
        """
        Wait for the next message.

        Raises:
            SubscriptionError: If the subscription was rejected.
            SessionClosedError: If the consumer was closed and is drained.
        """
        item = await self._take()
        if item is self._CLOSED:
            raise self._error or SessionClosedError(f"Stream for {self.topic!r} is closed")
        return item

    def qsize(self) -> int:
        """Number of buffered messages."""
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[BaseException]:
        """Error that ended the stream, if any."""
        return self._error

    def close(self, error: Optional[BaseException] = None) -> None:
        """
        Stop accepting messages; iteration ends after the buffer drains.

        Args:
            error: Raised to the iterating caller instead of a normal end
                of iteration (e.g. the SubscriptionError for a rejected topic).
        """
        if self._closed:
            return
        self._closed = True
        self._error = error
        try:
            self._queue.put_nowait(self._CLOSED)
        except asyncio.QueueFull:
            # Make room for the sentinel; the oldest message is lost
            self._queue.get_nowait()
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[Message]:
        return self

    async def __anext__(self) -> Message:
        item = await self._take()
        if item is self._CLOSED:
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item

    def __repr__(self) -> str:
        return f"QueueConsumer(topic={self.topic}, buffered={self.qsize()}, closed={self._closed})"


class Dispatcher:
    """
    Topic -> consumer router.

    Attributes:
        dropped: Total messages with no registered consumer.
        dropped_by_topic: Dropped message count per topic.
        consumer_errors: Total consumer invocations that raised.
    """

    def __init__(self) -> None:
        self._consumers: Dict[str, Consumer] = {}
        self.dropped = 0
        self.dropped_by_topic: Counter = Counter()
        self.consumer_errors = 0

    def register(self, topic: str, consumer: Consumer) -> SubscribeOutcome:
        """
        Route messages for topic to consumer.

        A different consumer for a routed topic replaces the old one and a
        warning is logged.
        """
        existing = self._consumers.get(topic)
        self._consumers[topic] = consumer
        if existing is None:
            return SubscribeOutcome.ADDED
        if existing == consumer:
            return SubscribeOutcome.UNCHANGED

        logger.warning("subscription_consumer_replaced", topic=topic)
        return SubscribeOutcome.REPLACED

    def unregister(self, topic: str) -> Optional[Consumer]:
        """Stop routing a topic. Returns the removed consumer, if any."""
        return self._consumers.pop(topic, None)

    def consumer_for(self, topic: str) -> Optional[Consumer]:
        """Get the consumer registered for a topic."""
        return self._consumers.get(topic)

    async def dispatch(self, message: Message) -> bool:
        """
        Deliver a message to the consumer of its topic.

        Args:
            message: Decoded data message.

        Returns:
            bool: True if a consumer received the message without raising.
        """
        consumer = self.consumer_for(message.topic)
        if consumer is None:
            self.dropped += 1
            self.dropped_by_topic[message.topic] += 1
            logger.debug(
                "dispatcher_message_dropped",
                topic=message.topic,
                dropped_for_topic=self.dropped_by_topic[message.topic],
            )
            return False

        try:
            result: Any = consumer(message)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.consumer_errors += 1
            logger.error(
                "dispatcher_consumer_failed",
                topic=message.topic,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        return True

    def __repr__(self) -> str:
        return f"Dispatcher(topics={list(self._consumers)}, dropped={self.dropped})"
