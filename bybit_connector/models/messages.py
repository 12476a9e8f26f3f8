"""
Typed WebSocket frames.

Every inbound frame decodes to exactly one of these models, tagged by
FrameKind. See bybit_connector.websocket.frames for the decode step.

Frame shapes (Bybit V5):
    Data:        {"topic": "orderbook.50.BTCUSDT", "type": "snapshot",
                  "ts": 1672304484978, "data": {...}, "cts": ...}
    Private data:{"id": "...", "topic": "order", "creationTime": ..., "data": [...]}
    Public pong: {"success": true, "ret_msg": "pong", "conn_id": "...",
                  "req_id": "...", "op": "ping"}
    Private pong:{"req_id": "...", "op": "pong", "args": ["1675418560633"],
                  "conn_id": "..."}
    Command ack: {"success": true, "ret_msg": "", "conn_id": "...",
                  "req_id": "...", "op": "subscribe"}
    Order ack:   {"reqId": "...", "retCode": 0, "retMsg": "OK", "op": "order.create",
                  "data": {"orderId": "..."}, "header": {...}, "connId": "..."}
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class FrameKind(str, Enum):
    """Closed set of inbound frame tags."""

    DATA = "data"
    PONG = "pong"
    AUTH_ACK = "auth_ack"
    SUBSCRIBE_ACK = "subscribe_ack"
    UNSUBSCRIBE_ACK = "unsubscribe_ack"
    ORDER_ACK = "order_ack"
    ERROR = "error"


class Message(BaseModel):
    """
    Data message for one topic.

    Attributes:
        topic: Topic the message belongs to (routing key).
        type: "snapshot" or "delta" for public streams, None for private.
        ts: Server timestamp (ms), if present.
        data: Topic payload (object or list).
        id: Message id (private streams).
        creation_time: Creation time (ms, private streams).
        raw: The full decoded frame.
    """

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    kind: FrameKind = Field(default=FrameKind.DATA, description="Frame tag")
    topic: str = Field(..., min_length=1, description="Topic name")
    type: Optional[str] = Field(default=None, description="snapshot or delta")
    ts: Optional[int] = Field(default=None, description="Server timestamp (ms)")
    data: Any = Field(default=None, description="Topic payload")
    id: Optional[str] = Field(default=None, description="Message id")
    creation_time: Optional[int] = Field(
        default=None, alias="creationTime", description="Creation time (ms)"
    )
    cs: Optional[int] = Field(default=None, description="Cross sequence (order book)")
    raw: Dict[str, Any] = Field(default_factory=dict, description="Decoded frame")


class CommandAck(BaseModel):
    """
    Response to an auth, subscribe or unsubscribe command, or an error frame.

    Attributes:
        kind: AUTH_ACK, SUBSCRIBE_ACK, UNSUBSCRIBE_ACK or ERROR.
        op: Operation echoed by the server.
        success: Whether the command was accepted.
        ret_msg: Server message; carries the reason on failure.
        req_id: Correlation id of the command.
        conn_id: Server connection id.
    """

    model_config = {"frozen": True, "extra": "ignore"}

    kind: FrameKind = Field(..., description="Frame tag")
    op: Optional[str] = Field(default=None, description="Operation")
    success: bool = Field(default=False, description="Command accepted")
    ret_msg: str = Field(default="", description="Server message")
    req_id: Optional[str] = Field(default=None, description="Correlation id")
    conn_id: Optional[str] = Field(default=None, description="Connection id")
    args: Optional[List[Any]] = Field(default=None, description="Echoed arguments")


class Pong(BaseModel):
    """Heartbeat response."""

    model_config = {"frozen": True, "extra": "ignore"}

    kind: FrameKind = Field(default=FrameKind.PONG, description="Frame tag")
    req_id: Optional[str] = Field(default=None, description="Correlation id")
    conn_id: Optional[str] = Field(default=None, description="Connection id")


class OrderResponse(BaseModel):
    """
    Trade stream response to an order command.

    Attributes:
        req_id: Correlation id (reqId) of the command.
        op: Order operation echoed by the server.
        ret_code: Exchange result code; 0 means accepted.
        ret_msg: Exchange message.
        data: Result payload (orderId, orderLinkId).
        header: Rate limit and trace headers.
    """

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    kind: FrameKind = Field(default=FrameKind.ORDER_ACK, description="Frame tag")
    req_id: Optional[str] = Field(default=None, alias="reqId", description="Correlation id")
    op: str = Field(..., description="Order operation")
    ret_code: int = Field(..., alias="retCode", description="Result code")
    ret_msg: str = Field(default="", alias="retMsg", description="Result message")
    data: Any = Field(default=None, description="Result payload")
    ret_ext_info: Any = Field(default=None, alias="retExtInfo", description="Extra result info")
    header: Dict[str, Any] = Field(default_factory=dict, description="Response headers")
    conn_id: Optional[str] = Field(default=None, alias="connId", description="Connection id")

    @property
    def ok(self) -> bool:
        """Check if the order command was accepted."""
        return self.ret_code == 0


Frame = Union[Message, CommandAck, Pong, OrderResponse]
