"""
REST request and response envelope models.

Models:
    SignedRequest: One signed outbound REST call
    RestEnvelope: Bybit V5 response wrapper {retCode, retMsg, result}
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SignedRequest(BaseModel):
    """
    A REST request with its authentication material.

    Created per outbound call and discarded after the response. The
    signature is valid only for this exact payload and timestamp.

    Attributes:
        method: HTTP method (GET, POST, PUT, DELETE).
        path: Endpoint path (e.g., "/v5/order/create").
        params: Request parameters as supplied by the caller.
        payload: Canonical query string or JSON body that was signed and
            is sent on the wire verbatim.
        timestamp: Milliseconds since the epoch.
        recv_window: Validity window in milliseconds.
        signature: Lowercase hex HMAC-SHA256, or None for public calls.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    method: str = Field(..., description="HTTP method")
    path: str = Field(..., description="Endpoint path")
    params: Dict[str, Any] = Field(default_factory=dict, description="Request parameters")
    payload: str = Field(default="", description="Canonical payload as sent")
    timestamp: int = Field(..., description="Request timestamp (ms)", ge=0)
    recv_window: int = Field(..., description="Receive window (ms)", gt=0)
    signature: Optional[str] = Field(default=None, description="HMAC signature (hex)")

    @property
    def has_body(self) -> bool:
        """Check if the payload travels in the body rather than the query string."""
        return self.method in ("POST", "PUT")


class RestEnvelope(BaseModel):
    """
    Bybit V5 REST response envelope.

    Example:
        >>> env = RestEnvelope.model_validate(
        ...     {"retCode": 0, "retMsg": "OK", "result": {"list": []}, "time": 1700000000000}
        ... )
        >>> env.ok
        True
    """

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    ret_code: int = Field(..., alias="retCode", description="0 on success")
    ret_msg: str = Field(default="", alias="retMsg", description="Status message")
    result: Any = Field(default=None, description="Endpoint-specific payload")
    ret_ext_info: Any = Field(default=None, alias="retExtInfo", description="Extra info")
    time: Optional[int] = Field(default=None, description="Server time (ms)")

    @property
    def ok(self) -> bool:
        """Check if the exchange accepted the request."""
        return self.ret_code == 0
