"""
Consumer-facing session.

A Session bundles one RestClient and one WsSession per stream category,
created on first use. Private topics are routed to the private stream
automatically; order commands go to the trade stream.

Example:
    >>> from bybit_connector import ClientConfig, connect
    >>> from bybit_connector.rest import Market
    >>> async with await connect(ClientConfig.testnet(api_key="k", api_secret="s")) as session:
    ...     tickers = await session.rest_call(Market.TICKERS, {"category": "linear"})
    ...     async for message in session.stream("orderbook.50.BTCUSDT"):
    ...         print(message.data)
"""

import asyncio
from typing import Any, Dict, Iterable, Mapping, Optional

import structlog

from bybit_connector.config.models import ClientConfig
from bybit_connector.errors import SessionClosedError
from bybit_connector.models.state import StreamCategory
from bybit_connector.rest.client import RestClient
from bybit_connector.rest.endpoints import Endpoint
from bybit_connector.websocket.dispatcher import Consumer, QueueConsumer
from bybit_connector.websocket.registry import is_private_topic
from bybit_connector.websocket.session import Connector, WsSession

logger = structlog.get_logger(__name__)


class Session:
    """
    REST client plus WebSocket sessions sharing one configuration.

    Attributes:
        config: Connector configuration.
    """

    def __init__(
        self,
        config: ClientConfig,
        rest: Optional[RestClient] = None,
        connector: Optional[Connector] = None,
    ):
        """
        Initialize session. No connection is opened here.

        Args:
            config: Connector configuration.
            rest: REST client to use; one is created from config if omitted.
            connector: WebSocket connection factory passed to every WsSession.
        """
        self.config = config
        self._rest = rest or RestClient(config)
        self._connector = connector
        self._streams: Dict[StreamCategory, WsSession] = {}
        self._closed = False

    @property
    def rest(self) -> RestClient:
        """The REST client."""
        return self._rest

    @property
    def sessions(self) -> Dict[StreamCategory, WsSession]:
        """WebSocket sessions created so far."""
        return dict(self._streams)

    def ws(self, category: StreamCategory) -> WsSession:
        """
        Get (or create and start) the WebSocket session for a category.

        Raises:
            SessionClosedError: If the session was closed.
            InvalidCredentialsError: For PRIVATE or TRADE without credentials.
        """
        if self._closed:
            raise SessionClosedError("Session is closed")

        session = self._streams.get(category)
        if session is None:
            session = WsSession(self.config, category, connector=self._connector)
            self._streams[category] = session
            session.start()
        return session

    def _route(self, topic: str, category: StreamCategory) -> StreamCategory:
        if is_private_topic(topic) and self.config.private_enabled:
            return StreamCategory.PRIVATE
        return category

    async def rest_call(self, endpoint: Endpoint, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Call a REST endpoint.

        Returns:
            Any: The envelope's result.

        Raises:
            ExchangeError: Nonzero retCode.
            TransportError, AuthError, ProtocolError: See RestClient.request.
        """
        if self._closed:
            raise SessionClosedError("Session is closed")
        return await self._rest.call(endpoint, params)

    def subscribe(
        self,
        topic: str,
        consumer: Consumer,
        category: StreamCategory = StreamCategory.LINEAR,
    ) -> asyncio.Future:
        """Subscribe a consumer. See WsSession.subscribe."""
        return self.ws(self._route(topic, category)).subscribe(topic, consumer)

    def unsubscribe(
        self, topic: str, category: StreamCategory = StreamCategory.LINEAR
    ) -> asyncio.Future:
        """Unsubscribe a topic. See WsSession.unsubscribe."""
        return self.ws(self._route(topic, category)).unsubscribe(topic)

    def stream(
        self, topic: str, category: StreamCategory = StreamCategory.LINEAR
    ) -> QueueConsumer:
        """Subscribe a topic and iterate its messages. See WsSession.stream."""
        return self.ws(self._route(topic, category)).stream(topic)

    async def send_order(self, op: str, order: Mapping[str, Any]) -> Any:
        """
        Send an order command on the trade stream, connecting it first.

        See WsSession.send_order.
        """
        trade = self.ws(StreamCategory.TRADE)
        await trade.connect()
        return await trade.send_order(op, order)

    async def close(self) -> None:
        """Close every WebSocket session and the REST client."""
        if self._closed:
            return
        self._closed = True

        # A consumer may close the Session it is fed by: its own stream is
        # closed last and in place, after every other await
        await self._rest.close()
        for stream in sorted(self._streams.values(), key=lambda s: s._in_session_task()):
            await stream.close()
        logger.info("session_closed", categories=[c.value for c in self._streams])

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Session(base_url={self.config.base_url}, streams={[c.value for c in self._streams]})"


async def connect(
    config: ClientConfig,
    categories: Iterable[StreamCategory] = (),
    connector: Optional[Connector] = None,
) -> Session:
    """
    Create a Session and wait for the requested streams to be ACTIVE.

    Args:
        config: Connector configuration.
        categories: Stream categories to connect now; others connect on
            first subscribe.
        connector: WebSocket connection factory (tests).

    Returns:
        Session: Ready session.

    Raises:
        AuthError, TransportError: If a requested stream cannot connect.
            The session is closed before the error propagates.
    """
    session = Session(config, connector=connector)
    try:
        for category in categories:
            await session.ws(category).connect()
    except BaseException:
        await session.close()
        raise
    return session
