"""
Request signing for Bybit V5.

REST requests are signed with HMAC-SHA256 over

    {timestamp}{api_key}{recv_window}{payload}

where payload is the canonical query string (GET, DELETE) or the canonical
JSON body (POST, PUT). The canonical payload is also what goes on the wire,
so the server hashes exactly the bytes that were signed.

WebSocket authentication signs ``GET/realtime{expires}`` with the same key.

Canonicalization rules:
    - Keys sorted lexicographically (recursively for JSON bodies)
    - None values dropped
    - bool rendered as true/false
    - Decimal and float rendered as plain decimal strings (no exponent)
    - JSON bodies compact: separators (",", ":"), no whitespace

Everything in this module is pure: no I/O, no clock, no state.

Example:
    >>> sign("s", "k", 1700000000000, 5000, "qty=1&side=Buy&symbol=BTCUSDT")
    'cbecea99b2e3886f7819be06787c21e89c1129c110fbfc7b48496f5e386e37f9'
"""

import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import quote, urlencode

from bybit_connector.errors import InvalidCredentialsError
from bybit_connector.models.credentials import Credentials
from bybit_connector.models.requests import SignedRequest

WS_AUTH_PREFIX = "GET/realtime"
BODY_METHODS = frozenset({"POST", "PUT"})


def _format_decimal(value: Decimal) -> str:
    text = format(value, "f")
    return "0" if text in ("-0", "") else text


def format_value(value: Any) -> Any:
    """
    Normalize a parameter value into its canonical form.

    Scalars that have more than one textual representation are rendered as
    strings; mappings and sequences are normalized recursively.

    Args:
        value: Parameter value.

    Returns:
        Canonical value (str, int, list or dict).

    Example:
        >>> format_value(Decimal("1E+2"))
        '100'
        >>> format_value(0.00001)
        '0.00001'
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return _format_decimal(value)
    if isinstance(value, float):
        return _format_decimal(Decimal(repr(value)))
    if isinstance(value, Mapping):
        return {str(k): format_value(v) for k, v in sorted(value.items()) if v is not None}
    if isinstance(value, (list, tuple)):
        return [format_value(v) for v in value]
    return value


def canonicalize_query(params: Optional[Mapping[str, Any]]) -> str:
    """
    Build the canonical query string for GET and DELETE requests.

    Args:
        params: Request parameters.

    Returns:
        str: URL-encoded ``k=v&...`` with sorted keys; empty if no params.

    Example:
        >>> canonicalize_query({"symbol": "BTCUSDT", "category": "linear"})
        'category=linear&symbol=BTCUSDT'
    """
    if not params:
        return ""

    pairs = []
    for key, value in sorted(params.items()):
        if value is None:
            continue
        value = format_value(value)
        if isinstance(value, (list, dict)):
            value = json.dumps(value, separators=(",", ":"), sort_keys=True)
        pairs.append((str(key), str(value)))

    return urlencode(pairs, quote_via=quote)


def canonicalize_body(params: Optional[Mapping[str, Any]]) -> str:
    """
    Build the canonical JSON body for POST and PUT requests.

    Args:
        params: Request parameters.

    Returns:
        str: Compact JSON with sorted keys; "{}" if no params.

    Example:
        >>> canonicalize_body({"symbol": "BTCUSDT", "qty": Decimal("0.010")})
        '{"qty":"0.010","symbol":"BTCUSDT"}'
    """
    return json.dumps(
        format_value(dict(params or {})),
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    )


def canonicalize(method: str, params: Optional[Mapping[str, Any]]) -> str:
    """Canonical payload for an HTTP method."""
    if method.upper() in BODY_METHODS:
        return canonicalize_body(params)
    return canonicalize_query(params)


def _secret_key(secret: Union[str, bytes]) -> bytes:
    if isinstance(secret, str):
        try:
            secret = secret.encode("ascii")
        except UnicodeEncodeError as e:
            raise InvalidCredentialsError("api_secret must be ASCII") from e
    if not isinstance(secret, (bytes, bytearray)) or not secret:
        raise InvalidCredentialsError("api_secret must be a non-empty string")
    return bytes(secret)


def sign(
    secret: Union[str, bytes],
    api_key: str,
    timestamp: int,
    recv_window: int,
    payload: str,
) -> str:
    """
    Compute the REST request signature.

    Args:
        secret: API secret.
        api_key: API key included in the signed string.
        timestamp: Request timestamp in milliseconds.
        recv_window: Receive window in milliseconds.
        payload: Canonical query string or JSON body.

    Returns:
        str: Lowercase hex HMAC-SHA256.

    Raises:
        InvalidCredentialsError: If the secret is empty or not ASCII.
    """
    message = f"{timestamp}{api_key}{recv_window}{payload}"
    return hmac.new(_secret_key(secret), message.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_websocket_auth(secret: Union[str, bytes], expires: int) -> str:
    """
    Compute the WebSocket ``auth`` signature.

    Args:
        secret: API secret.
        expires: Expiry timestamp in milliseconds.

    Returns:
        str: Lowercase hex HMAC-SHA256 over ``GET/realtime{expires}``.
    """
    message = f"{WS_AUTH_PREFIX}{expires}"
    return hmac.new(_secret_key(secret), message.encode("utf-8"), hashlib.sha256).hexdigest()


class Signer:
    """
    Signs requests with one set of credentials.

    Stateless apart from the credentials: every call recomputes the
    signature, nothing is cached.

    Example:
        >>> signer = Signer(Credentials(api_key="k", api_secret="s"))
        >>> req = signer.sign_request("GET", "/v5/order/realtime",
        ...                           {"category": "linear"}, 1700000000000, 5000)
        >>> req.payload
        'category=linear'
    """

    def __init__(self, credentials: Credentials):
        self._credentials = credentials

    @property
    def api_key(self) -> str:
        """Public API key."""
        return self._credentials.api_key

    def sign_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        timestamp: int,
        recv_window: int,
    ) -> SignedRequest:
        """
        Canonicalize parameters and sign a REST request.

        Args:
            method: HTTP method.
            path: Endpoint path.
            params: Request parameters.
            timestamp: Request timestamp in milliseconds.
            recv_window: Receive window in milliseconds.

        Returns:
            SignedRequest: Request carrying the payload and its signature.
        """
        method = method.upper()
        payload = canonicalize(method, params)
        signature = sign(
            self._credentials.secret_bytes(),
            self._credentials.api_key,
            timestamp,
            recv_window,
            payload,
        )
        return SignedRequest(
            method=method,
            path=path,
            params=dict(params or {}),
            payload=payload,
            timestamp=timestamp,
            recv_window=recv_window,
            signature=signature,
        )

    def sign_websocket_auth(self, expires: int) -> str:
        """Signature for the WebSocket ``auth`` operation."""
        return sign_websocket_auth(self._credentials.secret_bytes(), expires)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"Signer(api_key={self.api_key})"
