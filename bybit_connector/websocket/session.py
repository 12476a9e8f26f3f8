"""
Bybit V5 WebSocket session.

One WsSession owns one connection to one stream category and one
background task that is the only writer and reader of that connection.

State machine:
    DISCONNECTED --start()--------------> CONNECTING
    CONNECTING   --socket open, public--> ACTIVE
    CONNECTING   --open, private/trade-> AUTHENTICATING
    AUTHENTICATING --auth ack-----------> ACTIVE
    AUTHENTICATING --reject / timeout---> DISCONNECTED (fatal, AuthError)
    ACTIVE --heartbeat timeout, socket error, remote close,
             protocol error, request_reconnect()--> RECONNECTING
    CONNECTING --connect failure--------> RECONNECTING
    RECONNECTING --backoff elapsed------> CONNECTING
    any --close()-----------------------> DISCONNECTED (terminal)

Subscriptions:
    subscribe() and unsubscribe() update the SubscriptionRegistry at once,
    from the caller, and wake the session task. The task diffs the registry
    against the topics on the wire and sends the difference: subscribe
    frames in registry order, batched up to max_topics_per_frame, and
    unsubscribe frames for removed topics. Every reconnect clears the wire
    set, so the full registry is replayed in insertion order.

    Acks are correlated by req_id. A rejected topic is removed from the
    registry and its subscriber receives SubscriptionError; the session
    stays up.

Order entry:
    A TRADE session carries no topics. send_order() queues one order
    command for the session task and waits for the response with the
    same reqId. Commands are never replayed after a reconnect; those in
    flight when the connection drops fail with TransportError.

Heartbeat:
    {"op": "ping"} every heartbeat_interval_seconds. Any inbound frame
    counts as traffic. If nothing arrives for
    heartbeat_interval_seconds * heartbeat_timeout_multiplier the
    connection is treated as dead.

Example:
    >>> session = WsSession(ClientConfig.testnet(), StreamCategory.LINEAR)
    >>> await session.connect()
    >>> await session.subscribe("orderbook.50.BTCUSDT", on_book)
    >>> async for message in session.stream("tickers.BTCUSDT"):
    ...     print(message.data)
    >>> await session.close()
"""

import asyncio
import itertools
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from bybit_connector.auth.signer import Signer
from bybit_connector.config.models import ClientConfig
from bybit_connector.errors import (
    AuthError,
    BybitError,
    InvalidCredentialsError,
    ProtocolError,
    SessionClosedError,
    SubscriptionError,
    TransportError,
    exchange_error_for,
)
from bybit_connector.models.messages import CommandAck, Frame, FrameKind, Message, OrderResponse
from bybit_connector.models.state import ConnectionState, StreamCategory
from bybit_connector.websocket.backoff import ExponentialBackoff
from bybit_connector.websocket.dispatcher import Consumer, Dispatcher, QueueConsumer, SubscribeOutcome
from bybit_connector.websocket.frames import (
    decode_frame,
    encode_auth,
    encode_order_command,
    encode_ping,
    encode_subscribe,
    encode_unsubscribe,
)
from bybit_connector.websocket.registry import SubscriptionRegistry, is_private_topic

logger = structlog.get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]
StateCallback = Callable[[ConnectionState, ConnectionState], Any]
ErrorCallback = Callable[[BaseException], Any]

# Bybit names the offending topic in rejection messages,
# e.g. "error:handler not found,topic:orderbook.40.BTCUSDT"
_REJECTED_TOPIC = re.compile(r"topic:([^\s,]+)")


async def _default_connector(url: str) -> Any:
    return await websockets.connect(
        url,
        ping_interval=None,  # Application-level ping, see _heartbeat_loop
        ping_timeout=None,
        close_timeout=10,
        max_size=2**20,  # 1MB max message size
    )


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Command(NamedTuple):
    op: str
    topics: List[str]


class WsSession:
    """
    Managed WebSocket connection for one stream category.

    Attributes:
        config: Connector configuration.
        category: Stream category; PRIVATE and TRADE sessions authenticate.
        url: Full WebSocket URL.
        registry: Desired subscriptions (source of truth).
        dispatcher: Routes data messages to consumers.
    """

    def __init__(
        self,
        config: ClientConfig,
        category: StreamCategory = StreamCategory.LINEAR,
        connector: Optional[Connector] = None,
        clock: Optional[Callable[[], int]] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Initialize WebSocket session. Nothing is opened until start().

        Args:
            config: Connector configuration.
            category: Stream category to connect to.
            connector: Coroutine function ``url -> connection``; defaults to
                websockets.connect with library keepalive disabled.
            clock: Returns epoch milliseconds, used for auth expiry.
            on_state_change: Called with (old, new) on every transition.
            on_error: Called with session-level errors (connection loss,
                terminal failure). Topic errors go to the subscriber instead.

        Raises:
            InvalidCredentialsError: If category is PRIVATE or TRADE and no
                credentials are configured.
        """
        if category.requires_auth and config.credentials is None:
            raise InvalidCredentialsError(f"The {category.value} stream requires API credentials")

        self.config = config
        self.category = category
        self.url = config.websocket_url(category)
        self.registry = SubscriptionRegistry()
        self.dispatcher = Dispatcher()

        self._signer = Signer(config.credentials) if config.credentials else None
        self._connector = connector or _default_connector
        self._clock = clock or _now_ms
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._backoff = ExponentialBackoff(
            config.reconnect_backoff_min_seconds,
            config.reconnect_backoff_max_seconds,
        )

        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None
        self._children: List[asyncio.Task] = []
        self._first_active: Optional[asyncio.Future] = None
        self._wake = asyncio.Event()
        self._closed_event = asyncio.Event()
        self._closing = False
        self._terminal_error: Optional[BaseException] = None
        self._reconnect_reason: Optional[str] = None
        self._reconnect_count = 0
        self._last_traffic = 0.0
        self._req_ids = itertools.count(1)

        # Topics on the current connection: True once acknowledged
        self._wire: Dict[str, bool] = {}
        self._pending: Dict[str, _Command] = {}
        self._subscribe_waiters: Dict[str, List[asyncio.Future]] = {}
        self._unsubscribe_waiters: Dict[str, List[asyncio.Future]] = {}
        self._streams: Dict[str, QueueConsumer] = {}
        # Trade stream: queued order frames and response futures by reqId
        self._outbox: List[Tuple[str, str]] = []
        self._order_waiters: Dict[str, asyncio.Future] = {}

        logger.info(
            "ws_session_initialized",
            category=category.value,
            url=self.url,
            heartbeat_interval=config.heartbeat_interval_seconds,
            max_attempts=config.max_reconnect_attempts,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def reconnect_count(self) -> int:
        """Number of times the session entered RECONNECTING."""
        return self._reconnect_count

    @property
    def subscribed_topics(self) -> List[str]:
        """Topics sent on the current connection, in send order."""
        return list(self._wire)

    @property
    def closed(self) -> bool:
        """Check if the session has ended (closed or failed)."""
        return self._closed_event.is_set()

    @property
    def error(self) -> Optional[BaseException]:
        """Error that ended the session, if it failed."""
        return self._terminal_error

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Start the session task without waiting for the connection.

        Idempotent while the session is running.

        Raises:
            SessionClosedError: If the session was closed.
        """
        if self._closing:
            raise SessionClosedError("Session is closed")
        if self._task is not None:
            return

        loop = asyncio.get_running_loop()
        self._first_active = loop.create_future()
        self._first_active.add_done_callback(_consume_exception)
        self._task = loop.create_task(self._run(), name=f"bybit-ws-{self.category.value}")
        self._task.add_done_callback(self._on_task_done)

    async def connect(self) -> None:
        """
        Start the session and wait until it is ACTIVE for the first time.

        Raises:
            AuthError: If authentication was rejected or timed out.
            TransportError: If max_reconnect_attempts connection attempts failed.
            SessionClosedError: If the session was closed first.
        """
        self.start()
        assert self._first_active is not None
        await asyncio.shield(self._first_active)

    async def close(self) -> None:
        """
        Close the session. Safe from any state and safe to repeat.

        Cancels and awaits the session task, closes the socket, sets
        DISCONNECTED and fails every pending subscribe/unsubscribe future
        with SessionClosedError.

        A consumer may await close() on the session that feeds it. The
        session task is then cancelled without being awaited and releases
        the socket itself while it unwinds.
        """
        if self._closing:
            return
        self._closing = True

        task = self._task
        inside = self._in_session_task()
        if task is not None and not task.done():
            task.cancel()
            if not inside:
                await asyncio.wait({task})

        if not inside:
            await self._drop_connection()
        self._set_state(ConnectionState.DISCONNECTED)

        error = SessionClosedError("Session closed")
        self._fail_waiters(error)
        if self._first_active is not None and not self._first_active.done():
            self._first_active.set_exception(error)
        for consumer in self._streams.values():
            consumer.close()
        self._streams.clear()
        self._closed_event.set()

        logger.info("ws_session_closed", category=self.category.value, url=self.url)

    async def wait_closed(self) -> None:
        """Wait until the session is closed or has failed terminally."""
        await self._closed_event.wait()

    async def __aenter__(self) -> "WsSession":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def request_reconnect(self, reason: str = "requested") -> bool:
        """
        Ask the session to drop and re-establish its connection.

        Requests made while one is already pending, or while the session
        is not ACTIVE, are collapsed into the existing transition.

        Returns:
            bool: True if this call triggered a reconnect.
        """
        if self._state != ConnectionState.ACTIVE or self._reconnect_reason is not None:
            return False
        self._reconnect_reason = reason
        self._wake.set()
        return True

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, topic: str, consumer: Consumer) -> asyncio.Future:
        """
        Subscribe a consumer to a topic.

        The topic is recorded immediately; the frame is sent once the
        session is ACTIVE. The returned future resolves when the exchange
        acknowledges the topic.

        Args:
            topic: Topic name (see bybit_connector.websocket.topics).
            consumer: Callable or coroutine function receiving each Message.

        Returns:
            asyncio.Future: Resolves to None on ack; fails with
            SubscriptionError if the topic is rejected.
        """
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)

        if self._closing or self.closed:
            future.set_exception(SessionClosedError("Session is closed"))
            return future

        if self.category == StreamCategory.TRADE:
            future.set_exception(SubscriptionError(topic, "the trade stream carries no topics"))
            return future

        if is_private_topic(topic) and not self.category.is_private:
            reason = (
                "no credentials configured"
                if self._signer is None
                else "private topics require the private stream"
            )
            future.set_exception(SubscriptionError(topic, reason))
            return future

        try:
            self.registry.subscribe(topic)
        except ValueError as e:
            future.set_exception(SubscriptionError(topic, str(e)))
            return future

        outcome = self.dispatcher.register(topic, consumer)
        if outcome == SubscribeOutcome.REPLACED:
            stale = self._streams.pop(topic, None)
            if stale is not None and stale is not consumer:
                stale.close()

        if self._wire.get(topic):
            future.set_result(None)
            return future

        self._subscribe_waiters.setdefault(topic, []).append(future)
        logger.debug(
            "ws_subscribe_requested",
            category=self.category.value,
            topic=topic,
            outcome=outcome.value,
            state=self._state.value,
        )
        self._wake.set()
        return future

    def unsubscribe(self, topic: str) -> asyncio.Future:
        """
        Remove a topic.

        Returns:
            asyncio.Future: Resolves when the exchange acknowledges, or
            at once if the topic is not on the wire.
        """
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)

        self.registry.unsubscribe(topic)
        self.dispatcher.unregister(topic)
        stream = self._streams.pop(topic, None)
        if stream is not None:
            stream.close()
        for waiter in self._subscribe_waiters.pop(topic, []):
            if not waiter.done():
                waiter.set_exception(SubscriptionError(topic, "unsubscribed before confirmation"))

        if topic not in self._wire or self._state != ConnectionState.ACTIVE:
            future.set_result(None)
            return future

        self._unsubscribe_waiters.setdefault(topic, []).append(future)
        self._wake.set()
        return future

    def stream(self, topic: str, maxsize: int = 0) -> QueueConsumer:
        """
        Subscribe a topic and return its messages as an async iterator.

        If the topic is rejected, iterating raises the SubscriptionError.

        Example:
            >>> async for message in session.stream("publicTrade.BTCUSDT"):
            ...     print(message.data)
        """
        consumer = QueueConsumer(topic, maxsize=maxsize)
        future = self.subscribe(topic, consumer)
        if future.done() and future.exception() is not None:
            consumer.close(future.exception())
            return consumer

        self._streams[topic] = consumer
        future.add_done_callback(
            lambda f: consumer.close(f.exception())
            if not f.cancelled() and f.exception() is not None
            else None
        )
        return consumer

    # =========================================================================
    # Order entry (trade stream)
    # =========================================================================

    async def send_order(self, op: str, order: Mapping[str, Any]) -> Any:
        """
        Send an order command on the trade stream and wait for its response.

        Commands are sent only while ACTIVE and are never queued across or
        replayed after a reconnect. A command whose response does not
        arrive (timeout, connection loss) has an unknown outcome.

        Args:
            op: "order.create", "order.amend" or "order.cancel".
            order: Order fields, as for the REST endpoint.

        Returns:
            Any: The response ``data`` (orderId, orderLinkId).

        Raises:
            ValueError: If this is not a TRADE session or op is unknown.
            SessionClosedError: If the session is closed.
            TransportError: Not ACTIVE, connection lost or no response in
                order_timeout_seconds.
            ExchangeError: Nonzero retCode.
        """
        if self.category != StreamCategory.TRADE:
            raise ValueError("Order commands require the trade stream")
        if self._closing or self.closed:
            raise SessionClosedError("Session is closed")
        if self._state != ConnectionState.ACTIVE:
            raise TransportError(f"Trade stream is not active ({self._state.value})")

        req_id = self._next_req_id("order")
        text = encode_order_command(op, order, req_id, self._clock(), self.config.recv_window)
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        self._order_waiters[req_id] = future
        self._outbox.append((req_id, text))
        self._wake.set()

        timeout = self.config.order_timeout_seconds
        try:
            response = await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("ws_order_timeout", op=op, req_id=req_id, timeout=timeout)
            raise TransportError(
                f"No response to {op} within {timeout}s; order outcome unknown", cause=e
            ) from e
        finally:
            self._order_waiters.pop(req_id, None)

        if not response.ok:
            error = exchange_error_for(response.ret_code, response.ret_msg)
            logger.error(
                "ws_order_rejected",
                op=op,
                req_id=req_id,
                code=response.ret_code,
                message=response.ret_msg,
                error_type=type(error).__name__,
            )
            raise error

        logger.info("ws_order_acknowledged", op=op, req_id=req_id)
        return response.data

    async def create_order(self, order: Mapping[str, Any]) -> Any:
        """Place an order. See send_order()."""
        return await self.send_order("order.create", order)

    async def amend_order(self, order: Mapping[str, Any]) -> Any:
        """Amend an open order. See send_order()."""
        return await self.send_order("order.amend", order)

    async def cancel_order(self, order: Mapping[str, Any]) -> Any:
        """Cancel an open order. See send_order()."""
        return await self.send_order("order.cancel", order)

    # =========================================================================
    # Session task
    # =========================================================================

    async def _run(self) -> None:
        """Own the connection: connect, serve, reconnect until closed or failed."""
        try:
            await self._connection_loop()
        except asyncio.CancelledError:
            await self._drop_connection(SessionClosedError("Session closed; order outcome unknown"))
            raise

    async def _connection_loop(self) -> None:
        max_attempts = self.config.max_reconnect_attempts
        failures = 0

        while True:
            self._reconnect_reason = None
            self._set_state(ConnectionState.CONNECTING)

            try:
                await self._open()
            except AuthError as e:
                await self._fail(e)
                return
            except (TransportError, ProtocolError) as e:
                failures += 1
                logger.warning(
                    "ws_connect_failed",
                    category=self.category.value,
                    url=self.url,
                    attempt=failures,
                    max_attempts=max_attempts,
                    error=str(e),
                )
                self._notify_error(e)
                if max_attempts is not None and failures >= max_attempts:
                    await self._fail(
                        TransportError(
                            f"Giving up after {failures} failed connection attempts: {e}",
                            cause=e,
                        )
                    )
                    return
            else:
                failures = 0
                self._backoff.reset()
                self._set_state(ConnectionState.ACTIVE)
                if self._first_active is not None and not self._first_active.done():
                    self._first_active.set_result(None)

                reason = await self._serve()
                logger.warning(
                    "ws_connection_lost",
                    category=self.category.value,
                    url=self.url,
                    reason=reason,
                )

            await self._drop_connection()
            self._set_state(ConnectionState.RECONNECTING)
            self._reconnect_count += 1

            delay = self._backoff.next_delay()
            logger.info(
                "ws_reconnecting",
                category=self.category.value,
                url=self.url,
                attempt=self._backoff.attempts,
                delay_seconds=round(delay, 3),
            )
            await asyncio.sleep(delay)

    async def _open(self) -> None:
        """
        Open the socket and authenticate if required.

        Raises:
            TransportError: Connect failure or timeout.
            AuthError: Auth rejected or not acknowledged in time.
        """
        try:
            self._ws = await asyncio.wait_for(
                self._connector(self.url), timeout=self.config.connect_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Connect timeout after {self.config.connect_timeout_seconds}s", cause=e
            ) from e
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}", cause=e) from e

        self._last_traffic = asyncio.get_running_loop().time()
        logger.info(
            "ws_connected",
            category=self.category.value,
            url=self.url,
            reconnect_count=self._reconnect_count,
        )

        if self.category.requires_auth:
            self._set_state(ConnectionState.AUTHENTICATING)
            try:
                await self._authenticate()
            except (ConnectionClosed, WebSocketException, OSError) as e:
                raise TransportError(f"Connection lost during authentication: {e}", cause=e) from e

    async def _authenticate(self) -> None:
        assert self._signer is not None
        expires = self._clock() + self.config.auth_expires_ms
        req_id = self._next_req_id("auth")

        await self._send(
            encode_auth(self._signer.api_key, expires, self._signer.sign_websocket_auth(expires), req_id)
        )

        try:
            ack = await asyncio.wait_for(
                self._wait_auth_ack(), timeout=self.config.auth_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise AuthError(
                f"No auth acknowledgement within {self.config.auth_timeout_seconds}s"
            ) from e

        if not ack.success:
            raise AuthError(f"Authentication rejected: {ack.ret_msg}")

        logger.info("ws_authenticated", category=self.category.value, conn_id=ack.conn_id)

    async def _wait_auth_ack(self) -> CommandAck:
        while True:
            frame = await self._recv_frame()
            if frame.kind == FrameKind.AUTH_ACK:
                return frame
            if frame.kind == FrameKind.ERROR:
                return frame
            await self._handle_frame(frame)

    async def _serve(self) -> str:
        """
        Run reader, heartbeat and subscription sync until one of them ends.

        Returns:
            str: Why the connection is being abandoned.
        """
        tasks = [
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._heartbeat_loop()),
            asyncio.create_task(self._sync_loop()),
        ]
        self._children = tasks
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._children = []

        finished = next(task for task in tasks if task in done)
        error = finished.exception()
        if error is None:
            return finished.result()

        if not isinstance(error, (ConnectionClosed, BybitError, WebSocketException, OSError)):
            logger.error(
                "ws_unexpected_error",
                category=self.category.value,
                error=str(error),
                error_type=type(error).__name__,
            )
        self._notify_error(error)
        return f"{type(error).__name__}: {error}"

    async def _read_loop(self) -> None:
        while True:
            frame = await self._recv_frame()
            await self._handle_frame(frame)

    async def _heartbeat_loop(self) -> str:
        loop = asyncio.get_running_loop()
        interval = self.config.heartbeat_interval_seconds
        timeout = self.config.heartbeat_timeout_seconds
        next_ping = loop.time() + interval

        while True:
            now = loop.time()
            deadline = self._last_traffic + timeout
            if now >= deadline:
                logger.warning(
                    "ws_heartbeat_timeout",
                    category=self.category.value,
                    silence_seconds=round(now - self._last_traffic, 3),
                    timeout_seconds=timeout,
                )
                return "heartbeat timeout"

            if now >= next_ping:
                # The trade stream does not echo req_id on pings
                req_id = None if self.category == StreamCategory.TRADE else self._next_req_id("ping")
                await self._send(encode_ping(req_id))
                next_ping = now + interval

            await asyncio.sleep(max(0.0, min(next_ping, deadline) - now))

    async def _sync_loop(self) -> str:
        while True:
            self._wake.clear()
            if self._reconnect_reason is not None:
                return self._reconnect_reason
            await self._sync_subscriptions()
            await self._flush_outbox()
            await self._wake.wait()

    async def _sync_subscriptions(self) -> None:
        """Send the difference between the registry and the wire set."""
        batch_size = self.config.max_topics_per_frame

        removed = [topic for topic in self._wire if topic not in self.registry]
        for batch in _batches(removed, batch_size):
            req_id = self._next_req_id("unsub")
            self._pending[req_id] = _Command("unsubscribe", batch)
            for topic in batch:
                del self._wire[topic]
            await self._send(encode_unsubscribe(batch, req_id))
            logger.debug("ws_unsubscribe_sent", category=self.category.value, topics=batch)

        added = [topic for topic in self.registry.topics if topic not in self._wire]
        for batch in _batches(added, batch_size):
            req_id = self._next_req_id("sub")
            self._pending[req_id] = _Command("subscribe", batch)
            for topic in batch:
                self._wire[topic] = False
            await self._send(encode_subscribe(batch, req_id))
            logger.debug("ws_subscribe_sent", category=self.category.value, topics=batch)

    async def _flush_outbox(self) -> None:
        while self._outbox:
            req_id, text = self._outbox.pop(0)
            # Skip commands the caller stopped waiting for
            if req_id in self._order_waiters:
                await self._send(text)

    # =========================================================================
    # Inbound frames
    # =========================================================================

    async def _recv_frame(self) -> Frame:
        if self._ws is None:
            raise TransportError("Connection is not open")
        raw = await self._ws.recv()
        self._last_traffic = asyncio.get_running_loop().time()
        return decode_frame(raw)

    async def _handle_frame(self, frame: Frame) -> None:
        if isinstance(frame, Message):
            await self.dispatcher.dispatch(frame)
        elif frame.kind == FrameKind.PONG:
            logger.debug("ws_pong_received", category=self.category.value)
        elif frame.kind == FrameKind.AUTH_ACK:
            logger.warning("ws_unexpected_auth_ack", category=self.category.value)
        elif frame.kind == FrameKind.ORDER_ACK:
            self._handle_order_response(frame)
        else:
            self._handle_ack(frame)

    def _handle_order_response(self, response: OrderResponse) -> None:
        waiter = self._order_waiters.pop(response.req_id, None) if response.req_id else None
        if waiter is None:
            logger.warning(
                "ws_unsolicited_order_response",
                op=response.op,
                req_id=response.req_id,
                code=response.ret_code,
            )
            return
        if not waiter.done():
            waiter.set_result(response)

    def _handle_ack(self, ack: CommandAck) -> None:
        order_waiter = self._order_waiters.pop(ack.req_id, None) if ack.req_id else None
        if order_waiter is not None:
            if not order_waiter.done():
                order_waiter.set_exception(
                    ProtocolError(f"Order command failed: {ack.ret_msg}", payload=ack.ret_msg)
                )
            return

        command = self._pending.pop(ack.req_id, None) if ack.req_id else None
        if command is None:
            logger.warning(
                "ws_unsolicited_ack",
                category=self.category.value,
                op=ack.op,
                req_id=ack.req_id,
                success=ack.success,
                ret_msg=ack.ret_msg,
            )
            if not ack.success:
                self._notify_error(
                    ProtocolError(f"Uncorrelated error frame: {ack.ret_msg}", payload=ack.ret_msg)
                )
            return

        if command.op == "unsubscribe":
            for topic in command.topics:
                _resolve(self._unsubscribe_waiters.pop(topic, []))
            return

        if ack.success:
            for topic in command.topics:
                if topic in self._wire:
                    self._wire[topic] = True
                _resolve(self._subscribe_waiters.pop(topic, []))
            logger.info("ws_subscribed", category=self.category.value, topics=command.topics)
            return

        named = [t for t in _REJECTED_TOPIC.findall(ack.ret_msg) if t in command.topics]
        rejected = named or command.topics
        for topic in command.topics:
            if topic in rejected:
                self._reject_topic(topic, ack.ret_msg or "rejected by exchange")
            else:
                if topic in self._wire:
                    self._wire[topic] = True
                _resolve(self._subscribe_waiters.pop(topic, []))

    def _reject_topic(self, topic: str, reason: str) -> None:
        logger.error(
            "ws_subscription_rejected",
            category=self.category.value,
            topic=topic,
            reason=reason,
        )
        self.registry.unsubscribe(topic)
        self.dispatcher.unregister(topic)
        self._wire.pop(topic, None)

        error = SubscriptionError(topic, reason)
        for waiter in self._subscribe_waiters.pop(topic, []):
            if not waiter.done():
                waiter.set_exception(error)
        stream = self._streams.pop(topic, None)
        if stream is not None:
            stream.close(error)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _send(self, text: str) -> None:
        if self._ws is None:
            raise TransportError("Connection is not open")
        await self._ws.send(text)

    def _in_session_task(self) -> bool:
        """Check if the caller runs on the session task or one of its children."""
        current = asyncio.current_task()
        return current is not None and (current is self._task or current in self._children)

    def _next_req_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._req_ids)}"

    async def _drop_connection(self, error: Optional[BaseException] = None) -> None:
        """
        Close the socket and forget everything tied to it.

        Order commands still in flight fail with error, or TransportError.
        """
        ws, self._ws = self._ws, None
        self._fail_orders(
            error or TransportError("Connection lost before the order response; outcome unknown")
        )

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.warning(
                    "ws_close_error", category=self.category.value, url=self.url, error=str(e)
                )

        self._wire.clear()
        self._pending.clear()
        # Removed topics are gone with the connection
        for waiters in self._unsubscribe_waiters.values():
            _resolve(waiters)
        self._unsubscribe_waiters.clear()

    async def _fail(self, error: BybitError) -> None:
        """End the session after a non-recoverable error."""
        logger.error(
            "ws_session_failed",
            category=self.category.value,
            url=self.url,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._terminal_error = error
        await self._drop_connection(error)
        self._set_state(ConnectionState.DISCONNECTED)

        self._fail_waiters(error)
        if self._first_active is not None and not self._first_active.done():
            self._first_active.set_exception(error)
        for consumer in self._streams.values():
            consumer.close(error)
        self._streams.clear()

        self._notify_error(error)
        self._closed_event.set()

    def _fail_waiters(self, error: BaseException) -> None:
        for waiters in (*self._subscribe_waiters.values(), *self._unsubscribe_waiters.values()):
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(error)
        self._subscribe_waiters.clear()
        self._unsubscribe_waiters.clear()
        self._fail_orders(error)

    def _fail_orders(self, error: BaseException) -> None:
        self._outbox.clear()
        for waiter in self._order_waiters.values():
            if not waiter.done():
                waiter.set_exception(error)
        self._order_waiters.clear()

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        logger.error(
            "ws_session_task_crashed",
            category=self.category.value,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._terminal_error = error
        self._set_state(ConnectionState.DISCONNECTED)
        self._fail_waiters(error)
        for consumer in self._streams.values():
            consumer.close(error)
        self._streams.clear()
        if self._first_active is not None and not self._first_active.done():
            self._first_active.set_exception(error)
        self._closed_event.set()

    def _set_state(self, state: ConnectionState) -> None:
        old, self._state = self._state, state
        if old == state:
            return

        logger.info(
            "ws_session_state_changed",
            category=self.category.value,
            old_state=old.value,
            new_state=state.value,
        )
        if self._on_state_change is not None:
            try:
                self._on_state_change(old, state)
            except Exception as e:
                logger.error("ws_state_callback_failed", error=str(e), error_type=type(e).__name__)

    def _notify_error(self, error: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error("ws_error_callback_failed", error=str(e), error_type=type(e).__name__)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"WsSession(category={self.category.value}, state={self._state.value}, "
            f"topics={len(self.registry)}, reconnects={self._reconnect_count})"
        )


def _batches(items: List[str], size: int) -> List[List[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _resolve(waiters: List[asyncio.Future]) -> None:
    for waiter in waiters:
        if not waiter.done():
            waiter.set_result(None)


def _consume_exception(future: asyncio.Future) -> None:
    # Mark the exception retrieved; the caller may never await the future
    if not future.cancelled():
        future.exception()
