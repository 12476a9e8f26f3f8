"""
Request signing.

Components:
    - Signer: Signs REST requests and WebSocket auth with one credential set
    - sign / sign_websocket_auth: Pure HMAC-SHA256 helpers
    - canonicalize_query / canonicalize_body: Deterministic payload encoding
"""

from bybit_connector.auth.signer import (
    Signer,
    canonicalize,
    canonicalize_body,
    canonicalize_query,
    format_value,
    sign,
    sign_websocket_auth,
)

__all__ = [
    "Signer",
    "canonicalize",
    "canonicalize_body",
    "canonicalize_query",
    "format_value",
    "sign",
    "sign_websocket_auth",
]
