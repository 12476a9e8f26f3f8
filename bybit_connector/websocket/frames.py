"""
WebSocket frame codec.

Inbound frames go through a closed, tagged decode: the tag is read first
(``topic`` for data, ``op`` for command responses), then the payload is
parsed into the model for that tag. A frame that matches no tag raises
ProtocolError instead of being silently ignored.

    tag rule                                   -> model
    "topic" present                            -> Message (DATA)
    op == "pong", or op == "ping" and pong msg -> Pong
    op == "auth"                               -> CommandAck (AUTH_ACK)
    op == "subscribe" / "unsubscribe"          -> CommandAck (SUBSCRIBE_ACK / UNSUBSCRIBE_ACK)
    op == "order.create" / "order.amend" / ... -> OrderResponse (ORDER_ACK)
    success == false, any other op             -> CommandAck (ERROR)

Trade stream frames report "retCode"/"retMsg"/"reqId" instead of
"success"/"ret_msg"/"req_id"; those are mapped onto the same fields before
the tag is read.

Outbound frames are compact JSON objects carrying a req_id so responses
can be correlated with the command that caused them.
"""

import json
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from bybit_connector.auth.signer import format_value
from bybit_connector.errors import ProtocolError
from bybit_connector.models.messages import (
    CommandAck,
    Frame,
    FrameKind,
    Message,
    OrderResponse,
    Pong,
)

_ACK_KINDS = {
    "auth": FrameKind.AUTH_ACK,
    "subscribe": FrameKind.SUBSCRIBE_ACK,
    "unsubscribe": FrameKind.UNSUBSCRIBE_ACK,
}

# Trade stream operations (Bybit V5 /v5/trade)
ORDER_OPS = ("order.create", "order.amend", "order.cancel")


def _excerpt(raw: Any) -> str:
    text = raw if isinstance(raw, str) else repr(raw)
    return text[:200]


def _load(raw: Union[str, bytes, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError("Frame is not valid UTF-8", payload=_excerpt(raw)) from e
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Frame is not valid JSON: {e}", payload=_excerpt(raw)) from e
    if not isinstance(data, dict):
        raise ProtocolError("Frame is not a JSON object", payload=_excerpt(raw))
    return data


def _from_trade_stream(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        **data,
        "success": data.get("retCode") == 0,
        "ret_msg": data.get("retMsg") or "",
        "req_id": data.get("reqId"),
        "conn_id": data.get("connId"),
    }


def decode_frame(raw: Union[str, bytes, Mapping[str, Any]]) -> Frame:
    """
    Decode one inbound frame.

    Args:
        raw: Text or binary frame, or an already parsed JSON object.

    Returns:
        Frame: Message, Pong, CommandAck or OrderResponse.

    Raises:
        ProtocolError: If the frame is not a JSON object, has no known tag,
            or its payload does not match the model for its tag.

    Example:
        >>> frame = decode_frame('{"topic":"tickers.BTCUSDT","type":"snapshot","ts":1,"data":{}}')
        >>> frame.kind
        <FrameKind.DATA: 'data'>
    """
    data = _load(raw)
    if "retCode" in data and "success" not in data:
        data = _from_trade_stream(data)

    try:
        if "topic" in data:
            return Message.model_validate({**data, "kind": FrameKind.DATA, "raw": data})

        op = data.get("op")
        if op == "pong" or (op == "ping" and data.get("ret_msg") == "pong"):
            return Pong.model_validate(data)

        if isinstance(op, str) and op.startswith("order."):
            return OrderResponse.model_validate(data)

        if op in _ACK_KINDS:
            return CommandAck.model_validate({**data, "kind": _ACK_KINDS[op]})

        if data.get("success") is False:
            return CommandAck.model_validate({**data, "kind": FrameKind.ERROR})

    except ValidationError as e:
        raise ProtocolError(f"Malformed frame payload: {e}", payload=_excerpt(data)) from e

    raise ProtocolError("Unknown frame tag", payload=_excerpt(data))


def _dumps(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, separators=(",", ":"))


def encode_subscribe(topics: Iterable[str], req_id: str) -> str:
    """Subscribe frame for one batch of topics."""
    return _dumps({"req_id": req_id, "op": "subscribe", "args": list(topics)})


def encode_unsubscribe(topics: Iterable[str], req_id: str) -> str:
    """Unsubscribe frame for one batch of topics."""
    return _dumps({"req_id": req_id, "op": "unsubscribe", "args": list(topics)})


def encode_ping(req_id: Optional[str] = None) -> str:
    """Application-level heartbeat frame. The trade stream takes no req_id."""
    if req_id is None:
        return _dumps({"op": "ping"})
    return _dumps({"req_id": req_id, "op": "ping"})


def encode_auth(api_key: str, expires: int, signature: str, req_id: str) -> str:
    """
    Authentication frame for the private stream.

    Example:
        >>> encode_auth("k", 1700000010000, "69b7...", "auth-1")
        '{"req_id":"auth-1","op":"auth","args":["k",1700000010000,"69b7..."]}'
    """
    return _dumps({"req_id": req_id, "op": "auth", "args": [api_key, expires, signature]})


def encode_order_command(
    op: str,
    order: Mapping[str, Any],
    req_id: str,
    timestamp: int,
    recv_window: int,
) -> str:
    """
    Order command frame for the trade stream.

    Args:
        op: One of ORDER_OPS.
        order: Order fields (category, symbol, side, orderType, qty, ...).
        req_id: Correlation id echoed back as reqId.
        timestamp: Client time in epoch milliseconds.
        recv_window: Validity window in milliseconds.

    Raises:
        ValueError: If op is not an order operation.

    Example:
        >>> encode_order_command("order.cancel", {"category": "linear", "symbol": "BTCUSDT",
        ...     "orderId": "1"}, "order-1", 1700000000000, 5000)
        '{"reqId":"order-1","header":{"X-BAPI-TIMESTAMP":"1700000000000","X-BAPI-RECV-WINDOW":"5000"},"op":"order.cancel","args":[{"category":"linear","orderId":"1","symbol":"BTCUSDT"}]}'
    """
    if op not in ORDER_OPS:
        raise ValueError(f"Unsupported order operation: {op}")

    return _dumps(
        {
            "reqId": req_id,
            "header": {
                "X-BAPI-TIMESTAMP": str(timestamp),
                "X-BAPI-RECV-WINDOW": str(recv_window),
            },
            "op": op,
            "args": [format_value(dict(order))],
        }
    )
