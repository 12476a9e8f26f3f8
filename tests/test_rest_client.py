import asyncio
import contextlib
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from bybit_connector.errors import (
    AuthError,
    ClockSkewError,
    ExchangeError,
    ProtocolError,
    RateLimitError,
    SignatureRejectedError,
    TransportError,
)
from bybit_connector.rest.client import RestClient
from bybit_connector.rest.endpoints import Endpoint, Market, Trade
from tests.conftest import make_config

TS = 1700000000000
PARAMS = {"symbol": "BTCUSDT", "side": "Buy", "qty": "1"}


def envelope(result=None, code=0, msg="OK"):
    return {"retCode": code, "retMsg": msg, "result": result if result is not None else {}, "retExtInfo": {}, "time": TS}


class Recorder:
    """Captures requests and replies with a scripted response."""

    def __init__(self, status=200, body=None, headers=None, delay=0.0):
        self.status = status
        self.body = envelope() if body is None else body
        self.headers = headers or {}
        self.delay = delay
        self.requests = []

    async def __call__(self, request: web.Request) -> web.Response:
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "query_string": request.query_string,
                "headers": dict(request.headers),
                "body": await request.text(),
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.body, bytes):
            return web.Response(status=self.status, body=self.body, headers=self.headers)
        text = self.body if isinstance(self.body, str) else json.dumps(self.body)
        return web.Response(status=self.status, text=text, headers=self.headers, content_type="application/json")

    @property
    def last(self):
        return self.requests[-1]


@contextlib.asynccontextmanager
async def serve(handler, **config_overrides):
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handler)
    server = TestServer(app)
    await server.start_server()
    config = make_config(base_url=f"http://{server.host}:{server.port}", **config_overrides)
    client = RestClient(config, clock=lambda: TS)
    try:
        yield client
    finally:
        await client.close()
        await server.close()


def signed_config():
    return {"credentials": {"api_key": "k", "api_secret": "s"}, "recv_window": 5000}


@pytest.mark.asyncio
async def test_signed_get_sends_canonical_query_and_headers():
    handler = Recorder(body=envelope({"list": [{"orderId": "1"}]}))
    async with serve(handler, **signed_config()) as client:
        result = await client.get("/v5/order/realtime", PARAMS, auth_required=True)

    assert result == {"list": [{"orderId": "1"}]}
    sent = handler.last
    assert sent["method"] == "GET"
    assert sent["path"] == "/v5/order/realtime"
    assert sent["query_string"] == "qty=1&side=Buy&symbol=BTCUSDT"
    assert sent["headers"]["X-BAPI-API-KEY"] == "k"
    assert sent["headers"]["X-BAPI-TIMESTAMP"] == str(TS)
    assert sent["headers"]["X-BAPI-RECV-WINDOW"] == "5000"
    assert sent["headers"]["X-BAPI-SIGN"] == "cbecea99b2e3886f7819be06787c21e89c1129c110fbfc7b48496f5e386e37f9"


@pytest.mark.asyncio
async def test_signed_post_sends_signed_body_verbatim():
    handler = Recorder(body=envelope({"orderId": "abc"}))
    async with serve(handler, **signed_config()) as client:
        result = await client.call(Trade.PLACE, PARAMS)

    assert result == {"orderId": "abc"}
    sent = handler.last
    assert sent["method"] == "POST"
    assert sent["body"] == '{"qty":"1","side":"Buy","symbol":"BTCUSDT"}'
    assert sent["headers"]["Content-Type"] == "application/json"
    assert sent["headers"]["X-BAPI-SIGN"] == "87bf704a08e45352bb60a6940c3cf2c0ce4fe735effbf2c0845c617cc12e4a10"


@pytest.mark.asyncio
async def test_public_call_is_not_signed():
    handler = Recorder(body=envelope({"list": []}))
    async with serve(handler, **signed_config()) as client:
        await client.call(Market.TICKERS, {"category": "linear"})

    headers = handler.last["headers"]
    assert "X-BAPI-SIGN" not in headers
    assert "X-BAPI-API-KEY" not in headers
    assert headers["X-BAPI-TIMESTAMP"] == str(TS)
    assert handler.last["query_string"] == "category=linear"


@pytest.mark.asyncio
async def test_auth_required_without_credentials_fails_before_io():
    handler = Recorder()
    async with serve(handler) as client:
        with pytest.raises(AuthError):
            await client.post("/v5/order/create", PARAMS, auth_required=True)

    assert handler.requests == []


@pytest.mark.asyncio
async def test_nonzero_ret_code_is_never_a_result():
    handler = Recorder(body=envelope(code=110007, msg="ab not enough for new order"))
    async with serve(handler, **signed_config()) as client:
        with pytest.raises(ExchangeError) as excinfo:
            await client.call(Trade.PLACE, PARAMS)

    assert excinfo.value.code == 110007
    assert excinfo.value.message == "ab not enough for new order"
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_zero_ret_code_with_empty_result_is_a_result():
    handler = Recorder(body={"retCode": 0, "retMsg": "OK", "result": None})
    async with serve(handler) as client:
        assert await client.get("/v5/market/insurance") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, error_type",
    [
        (10002, ClockSkewError),
        (10003, SignatureRejectedError),
        (10004, SignatureRejectedError),
        (10006, RateLimitError),
    ],
)
async def test_ret_codes_map_to_specific_errors(code, error_type):
    handler = Recorder(body=envelope(code=code, msg="rejected"))
    async with serve(handler, **signed_config()) as client:
        with pytest.raises(error_type) as excinfo:
            await client.get("/v5/position/list", {"category": "linear"}, auth_required=True)

    assert isinstance(excinfo.value, ExchangeError)
    assert excinfo.value.code == code


@pytest.mark.asyncio
async def test_clock_skew_is_an_auth_error():
    handler = Recorder(body=envelope(code=10002, msg="invalid request, please check your server timestamp"))
    async with serve(handler, **signed_config()) as client:
        with pytest.raises(AuthError):
            await client.get("/v5/account/wallet-balance", {"accountType": "UNIFIED"}, auth_required=True)


@pytest.mark.asyncio
async def test_bad_request_with_envelope_surfaces_exchange_error():
    handler = Recorder(status=400, body=envelope(code=10001, msg="params error"))
    async with serve(handler) as client:
        with pytest.raises(ExchangeError) as excinfo:
            await client.get("/v5/market/tickers")

    assert excinfo.value.code == 10001


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, body, error_type",
    [
        (403, "forbidden", AuthError),
        (401, "unauthorized", AuthError),
        (502, "bad gateway", TransportError),
        (503, "", TransportError),
        (404, "not found", ProtocolError),
        (400, "<html>bad</html>", ProtocolError),
        (200, "not json", ProtocolError),
        (200, '{"result": {}}', ProtocolError),
        (502, b"\xff\xfe bad gateway", TransportError),
        (404, b"\xff\xfe not found", ProtocolError),
        (200, b"\xff\xfe", ProtocolError),
    ],
)
async def test_http_status_mapping(status, body, error_type):
    handler = Recorder(status=status, body=body)
    async with serve(handler) as client:
        with pytest.raises(error_type):
            await client.get("/v5/market/tickers", {"category": "spot"})


@pytest.mark.asyncio
async def test_http_429_is_rate_limit_with_retry_after():
    handler = Recorder(status=429, body="Too many visits", headers={"Retry-After": "2"})
    async with serve(handler) as client:
        with pytest.raises(RateLimitError) as excinfo:
            await client.get("/v5/market/tickers")

    assert excinfo.value.retry_after == 2.0


@pytest.mark.asyncio
@pytest.mark.parametrize("header, expected", [("1.5", 1.5), ("0", 0.0), ("Wed, 21 Oct 2015 07:28:00 GMT", None)])
async def test_http_429_parses_fractional_retry_after(header, expected):
    handler = Recorder(status=429, body="Too many visits", headers={"Retry-After": header})
    async with serve(handler) as client:
        with pytest.raises(RateLimitError) as excinfo:
            await client.get("/v5/market/tickers")

    assert excinfo.value.retry_after == expected


@pytest.mark.asyncio
async def test_timeout_is_transport_error():
    handler = Recorder(delay=0.5)
    async with serve(handler, rest_timeout_seconds=0.05) as client:
        with pytest.raises(TransportError) as excinfo:
            await client.get("/v5/market/time")

    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_connection_refused_is_transport_error():
    app = web.Application()
    server = TestServer(app)
    await server.start_server()
    port = server.port
    await server.close()

    client = RestClient(make_config(base_url=f"http://127.0.0.1:{port}"))
    try:
        with pytest.raises(TransportError):
            await client.get("/v5/market/time")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_server_time_in_milliseconds():
    handler = Recorder(body=envelope({"timeSecond": "1700000000", "timeNano": "1700000000123456789"}))
    async with serve(handler) as client:
        assert await client.server_time() == 1700000000123


@pytest.mark.asyncio
async def test_throttle_spaces_requests():
    handler = Recorder()
    async with serve(handler, rate_limit_per_second=20) as client:
        loop = asyncio.get_running_loop()
        started = loop.time()
        await asyncio.gather(*(client.get("/v5/market/time") for _ in range(3)))
        elapsed = loop.time() - started

    assert len(handler.requests) == 3
    assert elapsed >= 0.09


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_session():
    handler = Recorder()
    async with serve(handler) as client:
        await asyncio.gather(*(client.get("/v5/market/time") for _ in range(10)))
        session = client._session
        await client.get("/v5/market/time")

        assert client._session is session
    assert len(handler.requests) == 11


def test_endpoint_normalisation():
    endpoint = Endpoint(method="delete", path="v5/custom")

    assert endpoint.method == "DELETE"
    assert endpoint.path == "/v5/custom"
    assert not endpoint.auth_required
    with pytest.raises(ValueError):
        Endpoint(method="PATCH", path="/v5/x")
