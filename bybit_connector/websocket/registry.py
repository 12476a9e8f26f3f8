"""
Desired subscription state for one WebSocket session.

The registry is the single source of truth for what should be subscribed.
It records topics immediately, whether or not a connection exists, and is
read (never reset) on every reconnect so the wire state converges to it.
Consumers are not kept here; the Dispatcher owns them.

Example:
    >>> registry = SubscriptionRegistry()
    >>> registry.subscribe("orderbook.50.BTCUSDT")
    True
    >>> registry.topics
    ['orderbook.50.BTCUSDT']
"""

from typing import Dict, List

# Topic roots of Bybit V5 private streams
PRIVATE_TOPIC_PREFIXES = ("order", "execution", "position", "wallet", "greeks", "dcp")


def is_private_topic(topic: str) -> bool:
    """
    Check if a topic belongs to the private (authenticated) stream.

    Example:
        >>> is_private_topic("execution.fast.linear")
        True
        >>> is_private_topic("orderbook.50.BTCUSDT")
        False
    """
    root = topic.split(".", 1)[0]
    return root in PRIVATE_TOPIC_PREFIXES


class SubscriptionRegistry:
    """
    Ordered, de-duplicated set of topics.

    Insertion order is preserved so that subscription replay after a
    reconnect is deterministic. Re-subscribing an existing topic keeps its
    original position.
    """

    def __init__(self) -> None:
        self._topics: Dict[str, None] = {}

    def subscribe(self, topic: str) -> bool:
        """
        Record a topic.

        Returns:
            bool: True if the topic was not yet recorded.

        Raises:
            ValueError: If the topic is empty.
        """
        if not topic:
            raise ValueError("topic must be a non-empty string")
        if topic in self._topics:
            return False
        self._topics[topic] = None
        return True

    def unsubscribe(self, topic: str) -> bool:
        """Remove a topic. Returns True if it was present."""
        if topic not in self._topics:
            return False
        del self._topics[topic]
        return True

    @property
    def topics(self) -> List[str]:
        """Topics in insertion order."""
        return list(self._topics)

    def __contains__(self, topic: object) -> bool:
        return topic in self._topics

    def __len__(self) -> int:
        return len(self._topics)

    def __repr__(self) -> str:
        return f"SubscriptionRegistry(topics={self.topics})"
