import asyncio

import pytest

from bybit_connector.errors import SessionClosedError, SubscriptionError
from bybit_connector.models.state import ConnectionState, StreamCategory
from bybit_connector.rest.client import RestClient
from bybit_connector.session import Session, connect
from tests.conftest import WS_URL, make_config
from tests.fakes import FakeConnector


def noop(message) -> None:
    pass


@pytest.mark.asyncio
async def test_connect_opens_requested_streams():
    connector = FakeConnector()

    session = await connect(make_config(), categories=[StreamCategory.LINEAR, StreamCategory.SPOT], connector=connector)
    try:
        assert set(session.sessions) == {StreamCategory.LINEAR, StreamCategory.SPOT}
        assert all(s.state == ConnectionState.ACTIVE for s in session.sessions.values())
        assert sorted(connector.urls) == [f"{WS_URL}/public/linear", f"{WS_URL}/public/spot"]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_private_topics_route_to_private_stream():
    connector = FakeConnector()
    config = make_config(credentials={"api_key": "k", "api_secret": "s"})
    async with Session(config, connector=connector) as session:
        await asyncio.wait_for(session.subscribe("execution", noop), 1)
        await asyncio.wait_for(session.subscribe("tickers.BTCUSDT", noop, category=StreamCategory.INVERSE), 1)

        assert session.sessions[StreamCategory.PRIVATE].registry.topics == ["execution"]
        assert session.sessions[StreamCategory.INVERSE].registry.topics == ["tickers.BTCUSDT"]
        assert f"{WS_URL}/private" in connector.urls


@pytest.mark.asyncio
async def test_private_topic_without_credentials_is_rejected():
    async with Session(make_config(), connector=FakeConnector()) as session:
        with pytest.raises(SubscriptionError):
            await session.subscribe("wallet", noop)

        assert StreamCategory.PRIVATE not in session.sessions


@pytest.mark.asyncio
async def test_stream_yields_messages():
    connector = FakeConnector()
    async with Session(make_config(), connector=connector) as session:
        stream = session.stream("publicTrade.BTCUSDT")
        ws = session.sessions[StreamCategory.LINEAR]
        await ws.connect()
        connector.latest.push({"topic": "publicTrade.BTCUSDT", "type": "snapshot", "ts": 1, "data": [{"p": "100"}]})

        message = await asyncio.wait_for(stream.get(), 1)

    assert message.data == [{"p": "100"}]
    assert stream.closed


@pytest.mark.asyncio
async def test_close_releases_everything():
    connector = FakeConnector()
    rest = RestClient(make_config())
    session = Session(make_config(), rest=rest, connector=connector)
    await session.ws(StreamCategory.LINEAR).connect()

    await session.close()
    await session.close()

    assert connector.latest.closed
    assert session.sessions[StreamCategory.LINEAR].state == ConnectionState.DISCONNECTED
    with pytest.raises(SessionClosedError):
        session.subscribe("tickers.BTCUSDT", noop)
    with pytest.raises(SessionClosedError):
        await session.rest_call(None)


@pytest.mark.asyncio
async def test_consumer_can_close_the_session():
    connector = FakeConnector()
    session = Session(make_config(), connector=connector)
    done = asyncio.Event()

    async def close_on_first(message) -> None:
        await session.close()
        done.set()

    await asyncio.wait_for(session.subscribe("tickers.BTCUSDT", close_on_first), 1)
    connector.latest.push({"topic": "tickers.BTCUSDT", "type": "snapshot", "ts": 1, "data": {}})

    await asyncio.wait_for(done.wait(), 1)

    ws = session.sessions[StreamCategory.LINEAR]
    assert ws.state == ConnectionState.DISCONNECTED
    await asyncio.wait_for(asyncio.wait({ws._task}), 1)
    assert connector.latest.closed
