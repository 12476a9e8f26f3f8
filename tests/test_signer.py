from decimal import Decimal

import pytest

from bybit_connector.auth.signer import (
    Signer,
    canonicalize,
    canonicalize_body,
    canonicalize_query,
    format_value,
    sign,
    sign_websocket_auth,
)
from bybit_connector.errors import InvalidCredentialsError
from bybit_connector.models.credentials import Credentials

TS = 1700000000000
RECV_WINDOW = 5000
PARAMS = {"symbol": "BTCUSDT", "side": "Buy", "qty": "1"}

GET_SIGNATURE = "cbecea99b2e3886f7819be06787c21e89c1129c110fbfc7b48496f5e386e37f9"
POST_SIGNATURE = "87bf704a08e45352bb60a6940c3cf2c0ce4fe735effbf2c0845c617cc12e4a10"
WS_SIGNATURE = "69b70d464e6c59d285b387e6dfecfe81c0bacee2cab53d794c2c02a03214357c"
EMPTY_SIGNATURE = "c77121181f2a28ceff87d2d1e3eca83013ad008c219cdb10de28ff367989a4c7"


@pytest.fixture
def signer() -> Signer:
    return Signer(Credentials(api_key="k", api_secret="s"))


def test_query_golden_vector(signer):
    request = signer.sign_request("GET", "/v5/order/realtime", PARAMS, TS, RECV_WINDOW)

    assert request.payload == "qty=1&side=Buy&symbol=BTCUSDT"
    assert request.signature == GET_SIGNATURE


def test_body_golden_vector(signer):
    request = signer.sign_request("post", "/v5/order/create", PARAMS, TS, RECV_WINDOW)

    assert request.method == "POST"
    assert request.payload == '{"qty":"1","side":"Buy","symbol":"BTCUSDT"}'
    assert request.signature == POST_SIGNATURE
    assert request.has_body


def test_empty_payload_golden_vector():
    assert sign("s", "k", TS, RECV_WINDOW, "") == EMPTY_SIGNATURE


def test_websocket_auth_golden_vector(signer):
    assert signer.sign_websocket_auth(1700000010000) == WS_SIGNATURE
    assert sign_websocket_auth(b"s", 1700000010000) == WS_SIGNATURE


def test_signature_is_deterministic(signer):
    first = signer.sign_request("GET", "/p", dict(PARAMS), TS, RECV_WINDOW)
    second = signer.sign_request("GET", "/p", dict(reversed(list(PARAMS.items()))), TS, RECV_WINDOW)

    assert first.signature == second.signature
    assert first.payload == second.payload


@pytest.mark.parametrize(
    "change",
    [
        {"symbol": "BTCUSDC"},
        {"side": "Sell"},
        {"qty": "2"},
        {"qty": "1.0"},
        {"price": "1"},
    ],
)
def test_changing_any_field_changes_signature(signer, change):
    baseline = signer.sign_request("GET", "/p", PARAMS, TS, RECV_WINDOW).signature
    changed = signer.sign_request("GET", "/p", {**PARAMS, **change}, TS, RECV_WINDOW).signature

    assert changed != baseline


def test_timestamp_and_window_are_signed(signer):
    baseline = signer.sign_request("GET", "/p", PARAMS, TS, RECV_WINDOW).signature

    assert signer.sign_request("GET", "/p", PARAMS, TS + 1, RECV_WINDOW).signature != baseline
    assert signer.sign_request("GET", "/p", PARAMS, TS, RECV_WINDOW + 1).signature != baseline


def test_value_formatting():
    assert format_value(True) == "true"
    assert format_value(False) == "false"
    assert format_value(Decimal("1E+2")) == "100"
    assert format_value(Decimal("0.010")) == "0.010"
    assert format_value(0.00001) == "0.00001"
    assert format_value(25000.5) == "25000.5"
    assert format_value(7) == 7


def test_query_drops_none_and_encodes_reserved_characters():
    query = canonicalize_query({"b": None, "a": "x y", "c": True, "orderLinkId": "a/b"})

    assert query == "a=x%20y&c=true&orderLinkId=a%2Fb"


def test_body_is_compact_and_sorted_recursively():
    body = canonicalize_body(
        {"request": [{"symbol": "BTCUSDT", "qty": Decimal("0.001")}], "category": "linear", "skip": None}
    )

    assert body == '{"category":"linear","request":[{"qty":"0.001","symbol":"BTCUSDT"}]}'


def test_canonicalize_selects_encoding_by_method():
    assert canonicalize("DELETE", {"a": 1}) == "a=1"
    assert canonicalize("PUT", {"a": 1}) == '{"a":1}'
    assert canonicalize("GET", None) == ""
    assert canonicalize("POST", None) == "{}"


@pytest.mark.parametrize("secret", ["", "sécret"])
def test_malformed_secret_is_fatal(secret):
    with pytest.raises(InvalidCredentialsError):
        sign(secret, "k", TS, RECV_WINDOW, "")


def test_signer_repr_hides_secret():
    signer = Signer(Credentials(api_key="k", api_secret="topsecret"))

    assert "topsecret" not in repr(signer)
