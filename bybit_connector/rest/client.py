"""
Bybit V5 REST client.

Builds authenticated HTTP requests, sends them over a pooled aiohttp
session, and decodes the response envelope:

    {"retCode": 0, "retMsg": "OK", "result": {...}, "retExtInfo": {}, "time": 1700000000000}

Headers:
    X-BAPI-TIMESTAMP     request time (ms), every request
    X-BAPI-RECV-WINDOW   validity window (ms), every request
    X-BAPI-API-KEY       signed requests only
    X-BAPI-SIGN          signed requests only

Error mapping:
    retCode == 0        -> result returned
    retCode != 0        -> ExchangeError (ClockSkewError, SignatureRejectedError,
                           RateLimitError for the documented codes)
    HTTP 401/403        -> AuthError
    HTTP 429            -> RateLimitError
    HTTP 5xx, network   -> TransportError
    undecodable body    -> ProtocolError

The client never retries. Retry policy belongs to the caller.

Example:
    >>> async with RestClient(ClientConfig.testnet(api_key="k", api_secret="s")) as client:
    ...     tickers = await client.get("/v5/market/tickers", {"category": "linear"})
    ...     order = await client.post(
    ...         "/v5/order/create",
    ...         {"category": "linear", "symbol": "BTCUSDT", "side": "Buy",
    ...          "orderType": "Market", "qty": "0.001"},
    ...         auth_required=True,
    ...     )
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, Mapping, Optional

import aiohttp
import structlog
from pydantic import ValidationError
from yarl import URL

from bybit_connector.auth.signer import Signer, canonicalize
from bybit_connector.config.models import ClientConfig
from bybit_connector.errors import (
    AuthError,
    ProtocolError,
    RateLimitError,
    TransportError,
    exchange_error_for,
)
from bybit_connector.models.requests import RestEnvelope, SignedRequest
from bybit_connector.rest.endpoints import Endpoint, Market

logger = structlog.get_logger(__name__)

HEADER_TIMESTAMP = "X-BAPI-TIMESTAMP"
HEADER_RECV_WINDOW = "X-BAPI-RECV-WINDOW"
HEADER_API_KEY = "X-BAPI-API-KEY"
HEADER_SIGN = "X-BAPI-SIGN"
USER_AGENT = "bybit-connector/0.1"

# retCode used for HTTP-level throttling, which carries no envelope
HTTP_RATE_LIMIT_CODE = 10006


def _now_ms() -> int:
    return int(time.time() * 1000)


class RestClient:
    """
    Async REST client for Bybit V5.

    Calls may be issued concurrently. Each call is independent; the only
    shared state is the aiohttp connection pool and the optional throttle.

    Attributes:
        config: Connector configuration.
        base_url: REST API base URL.
    """

    def __init__(
        self,
        config: ClientConfig,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize REST client.

        Args:
            config: Connector configuration.
            session: Existing aiohttp session to use; the client creates and
                owns one if omitted.
            clock: Returns the current time in milliseconds. Defaults to
                the system clock; replace it to resynchronise with server time.
        """
        self.config = config
        self.base_url = config.base_url
        self._signer = Signer(config.credentials) if config.credentials else None
        self._clock = clock or _now_ms
        self._timeout = aiohttp.ClientTimeout(total=config.rest_timeout_seconds)

        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

        self._throttle_lock = asyncio.Lock()
        self._last_request_time: float = 0.0
        self._request_interval = (
            1.0 / config.rate_limit_per_second if config.rate_limit_per_second else 0.0
        )

        logger.info(
            "rest_client_initialized",
            base_url=self.base_url,
            recv_window=config.recv_window,
            private_enabled=self._signer is not None,
            rate_limit=config.rate_limit_per_second,
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session is created."""
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=self._timeout,
                    headers={"User-Agent": USER_AGENT},
                )
                self._owns_session = True
            return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            logger.debug("rest_client_session_closed", base_url=self.base_url)

    async def __aenter__(self) -> "RestClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _rate_limit(self) -> None:
        """
        Apply client-side throttling.

        Ensures a minimum interval between request starts. Disabled when
        rate_limit_per_second is not configured.
        """
        if not self._request_interval:
            return

        async with self._throttle_lock:
            loop = asyncio.get_running_loop()
            time_since_last = loop.time() - self._last_request_time

            if time_since_last < self._request_interval:
                await asyncio.sleep(self._request_interval - time_since_last)

            self._last_request_time = loop.time()

    def build_request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        auth_required: bool = False,
    ) -> SignedRequest:
        """
        Stamp, canonicalize and (optionally) sign a request.

        Args:
            method: HTTP method.
            path: Endpoint path.
            params: Request parameters.
            auth_required: Whether the request must be signed.

        Returns:
            SignedRequest: Request ready to send.

        Raises:
            AuthError: If auth_required and no credentials are configured.
        """
        method = method.upper()
        timestamp = self._clock()
        recv_window = self.config.recv_window

        if not auth_required:
            return SignedRequest(
                method=method,
                path=path,
                params=dict(params or {}),
                payload=canonicalize(method, params),
                timestamp=timestamp,
                recv_window=recv_window,
            )

        if self._signer is None:
            raise AuthError(f"{method} {path} requires credentials, none configured")

        return self._signer.sign_request(method, path, dict(params or {}), timestamp, recv_window)

    def _headers(self, request: SignedRequest) -> Dict[str, str]:
        headers = {
            HEADER_TIMESTAMP: str(request.timestamp),
            HEADER_RECV_WINDOW: str(request.recv_window),
        }
        if request.signature is not None and self._signer is not None:
            headers[HEADER_API_KEY] = self._signer.api_key
            headers[HEADER_SIGN] = request.signature
        if request.has_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _url(self, request: SignedRequest) -> URL:
        url = f"{self.base_url}{request.path}"
        if not request.has_body and request.payload:
            url = f"{url}?{request.payload}"
        # The query string is already encoded exactly as signed
        return URL(url, encoded=True)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        auth_required: bool = False,
    ) -> Any:
        """
        Send a request and return the decoded ``result``.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE).
            path: Endpoint path (e.g., "/v5/market/tickers").
            params: Query parameters (GET, DELETE) or body fields (POST, PUT).
            auth_required: Whether the request must be signed.

        Returns:
            Any: The envelope's ``result`` field.

        Raises:
            TransportError: Network failure, timeout or HTTP 5xx.
            AuthError: Missing credentials, HTTP 401/403.
            ExchangeError: Nonzero retCode.
            ProtocolError: Undecodable response.
        """
        request = self.build_request(method, path, params, auth_required)
        url = self._url(request)
        body = request.payload.encode("utf-8") if request.has_body else None

        await self._rate_limit()
        session = await self._ensure_session()
        started = asyncio.get_running_loop().time()

        try:
            async with session.request(
                request.method,
                url,
                headers=self._headers(request),
                data=body,
                timeout=self._timeout,
            ) as response:
                # Proxies may answer with non-UTF-8 error pages
                text = (await response.read()).decode("utf-8", errors="replace")
                status = response.status
                retry_after = response.headers.get("Retry-After")

        except aiohttp.ClientError as e:
            logger.error(
                "rest_client_error",
                method=request.method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransportError(f"REST request failed: {e}", cause=e) from e
        except asyncio.TimeoutError as e:
            logger.error(
                "rest_timeout",
                method=request.method,
                path=path,
                timeout=self.config.rest_timeout_seconds,
            )
            raise TransportError(
                f"REST request timeout after {self.config.rest_timeout_seconds}s", cause=e
            ) from e

        elapsed_ms = (asyncio.get_running_loop().time() - started) * 1000
        result = self._handle_response(request, status, text, retry_after)

        logger.debug(
            "rest_request_completed",
            method=request.method,
            path=path,
            status=status,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return result

    def _handle_response(
        self,
        request: SignedRequest,
        status: int,
        text: str,
        retry_after: Optional[str],
    ) -> Any:
        """
        Map an HTTP response to a result or a typed error.

        Raises:
            RateLimitError, AuthError, TransportError, ProtocolError, ExchangeError
        """
        path = request.path

        if status == 429:
            logger.warning("rest_rate_limited", path=path, retry_after=retry_after)
            raise RateLimitError(
                HTTP_RATE_LIMIT_CODE,
                f"HTTP 429: {text[:200]}",
                retry_after=_parse_retry_after(retry_after),
            )

        if status in (401, 403):
            logger.error("rest_unauthorized", path=path, status=status)
            raise AuthError(f"HTTP {status} for {request.method} {path}: {text[:200]}")

        if status >= 500:
            logger.error("rest_server_error", path=path, status=status)
            raise TransportError(f"HTTP {status} for {request.method} {path}: {text[:200]}")

        if not (200 <= status < 300 or status == 400):
            logger.error("rest_unexpected_status", path=path, status=status)
            raise ProtocolError(f"Unexpected HTTP status {status}", payload=text[:200])

        envelope = self._decode_envelope(text, path)

        if not envelope.ok:
            error = exchange_error_for(envelope.ret_code, envelope.ret_msg)
            logger.error(
                "rest_request_failed",
                method=request.method,
                path=path,
                code=envelope.ret_code,
                message=envelope.ret_msg,
                error_type=type(error).__name__,
            )
            raise error

        return envelope.result

    @staticmethod
    def _decode_envelope(text: str, path: str) -> RestEnvelope:
        try:
            return RestEnvelope.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            logger.error("rest_invalid_envelope", path=path, error=str(e), body=text[:100])
            raise ProtocolError(f"Invalid response envelope from {path}", payload=text[:200]) from e

    async def get(
        self, path: str, params: Optional[Mapping[str, Any]] = None, auth_required: bool = False
    ) -> Any:
        """Send a GET request. See request()."""
        return await self.request("GET", path, params, auth_required)

    async def post(
        self, path: str, params: Optional[Mapping[str, Any]] = None, auth_required: bool = False
    ) -> Any:
        """Send a POST request. See request()."""
        return await self.request("POST", path, params, auth_required)

    async def put(
        self, path: str, params: Optional[Mapping[str, Any]] = None, auth_required: bool = False
    ) -> Any:
        """Send a PUT request. See request()."""
        return await self.request("PUT", path, params, auth_required)

    async def delete(
        self, path: str, params: Optional[Mapping[str, Any]] = None, auth_required: bool = False
    ) -> Any:
        """Send a DELETE request. See request()."""
        return await self.request("DELETE", path, params, auth_required)

    async def call(self, endpoint: Endpoint, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Call a catalogued endpoint.

        Example:
            >>> from bybit_connector.rest.endpoints import Position
            >>> positions = await client.call(Position.LIST, {"category": "linear"})
        """
        return await self.request(endpoint.method, endpoint.path, params, endpoint.auth_required)

    async def server_time(self) -> int:
        """
        Fetch the exchange clock.

        Use it to detect or correct local clock skew after a ClockSkewError.

        Returns:
            int: Server time in milliseconds.

        Raises:
            ProtocolError: If the response has no usable time field.
        """
        result = await self.call(Market.TIME)
        try:
            if "timeNano" in result:
                return int(result["timeNano"]) // 1_000_000
            return int(result["timeSecond"]) * 1000
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError("Invalid server time response", payload=str(result)[:200]) from e

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"RestClient(base_url={self.base_url}, "
            f"recv_window={self.config.recv_window}, "
            f"private={self._signer is not None})"
        )


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds; HTTP dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None
