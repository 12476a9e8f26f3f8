"""
Exception hierarchy for the Bybit connector.

Every error raised by the connector derives from BybitError. The hierarchy
separates failures by how a caller should react to them:

    TransportError      network-level failure, safe to retry with backoff
    AuthError           bad/expired credentials or clock skew, fix before retrying
    ProtocolError       malformed or unexpected data from the exchange
    ExchangeError       application-level rejection carrying retCode/retMsg
    SubscriptionError   a single topic rejected, the session itself is healthy
    SessionClosedError  the session was closed while work was pending

ExchangeError subclasses that describe authentication problems also derive
from AuthError, so ``except AuthError`` catches a rejected signature whether
it was detected locally or reported by the exchange.

Example:
    >>> try:
    ...     result = await client.post("/v5/order/create", params, auth_required=True)
    ... except ClockSkewError:
    ...     await resync_clock()
    ... except ExchangeError as e:
    ...     print(f"rejected: {e.code} {e.message}")
"""

from typing import Optional


class BybitError(Exception):
    """Base exception for all connector errors."""

    retryable: bool = False


class TransportError(BybitError):
    """
    Raised on DNS, connect, TLS, timeout and server-side (5xx) failures.

    Attributes:
        cause: Underlying library exception, if any.
    """

    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class AuthError(BybitError):
    """Raised when authentication is rejected or cannot be performed."""

    retryable = False


class InvalidCredentialsError(AuthError):
    """Raised when an API key or secret is malformed. Always fatal."""


class ProtocolError(BybitError):
    """
    Raised when a response or frame does not have the expected shape.

    Attributes:
        payload: Truncated raw payload that failed to decode, if available.
    """

    retryable = False

    def __init__(self, message: str, payload: Optional[str] = None):
        self.payload = payload
        super().__init__(message)


class ExchangeError(BybitError):
    """
    Application-level rejection returned by the exchange.

    Attributes:
        code: Exchange retCode (never 0).
        message: Exchange retMsg, verbatim.
    """

    retryable = False

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"Bybit error {code}: {message}")


class SignatureRejectedError(ExchangeError, AuthError):
    """The exchange rejected the API key, signature or permissions."""


class ClockSkewError(ExchangeError, AuthError):
    """The request timestamp fell outside recv_window on the server."""


class RateLimitError(ExchangeError):
    """
    The exchange throttled the request.

    Attributes:
        retry_after: Seconds suggested by the exchange, if provided.
    """

    def __init__(self, code: int, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(code, message)


class SubscriptionError(BybitError):
    """
    A subscribe request for a topic failed.

    Attributes:
        topic: The rejected topic.
        message: Reason reported by the exchange or the session.
    """

    def __init__(self, topic: str, message: str):
        self.topic = topic
        self.message = message
        super().__init__(f"Subscription to {topic!r} failed: {message}")


class SessionClosedError(BybitError):
    """Raised for operations on, or waiters of, a closed session."""


# retCodes documented by Bybit V5
AUTH_RET_CODES = frozenset({10003, 10004, 10005, 33004})
CLOCK_SKEW_RET_CODES = frozenset({10002})
RATE_LIMIT_RET_CODES = frozenset({10006, 10018})


def exchange_error_for(code: int, message: str) -> ExchangeError:
    """
    Build the most specific ExchangeError for a nonzero retCode.

    Args:
        code: Exchange retCode.
        message: Exchange retMsg.

    Returns:
        ExchangeError: Instance of the matching subclass.

    Example:
        >>> exchange_error_for(10002, "invalid request, please check your timestamp")
        ClockSkewError(...)
    """
    if code in CLOCK_SKEW_RET_CODES:
        return ClockSkewError(code, message)
    if code in AUTH_RET_CODES:
        return SignatureRejectedError(code, message)
    if code in RATE_LIMIT_RET_CODES:
        return RateLimitError(code, message)
    return ExchangeError(code, message)
