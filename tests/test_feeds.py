"""Tests for the Binance feed.

REST calls go to a local aiohttp test server; websocket handshakes and
frames are faked at the ``websockets`` boundary.
"""

from types import SimpleNamespace

import pytest
from aiohttp import web
from aiohttp import test_utils
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidStatus, InvalidURI

from tickfeed.config import BinanceSettings
from tickfeed.errors import SubscribeError, TransportError
from tickfeed.feeds.binance import BinanceFeed, BinanceSubscription


class FakeWebSocket:
    def __init__(self, messages, error):
        self.messages = list(messages)
        self.error = error
        self.closed = False

    async def recv(self):
        if self.messages:
            return self.messages.pop(0)
        raise self.error

    async def close(self):
        self.closed = True


def fake_connect(result):
    async def connect(url, **kwargs):
        if isinstance(result, Exception):
            raise result
        return result
    return connect


class TestSubscription:
    def test_stream_urls(self):
        feed = BinanceFeed(BinanceSettings())

        assert feed.subscribe_trades("BTCUSDT").url == "wss://stream.binance.com:9443/ws/btcusdt@aggTrade"
        assert feed.subscribe_klines("ETHUSDT", "1m").url == "wss://stream.binance.com:9443/ws/ethusdt@kline_1m"
        assert feed.subscribe_depth("LTCUSDT").stream == "ltcusdt@depth"

    @pytest.mark.asyncio
    async def test_yields_decoded_events_until_clean_close(self, monkeypatch):
        ws = FakeWebSocket(['{"a": 1}', "not json", "[1, 2]", '{"a": 2}'], ConnectionClosedOK(None, None))
        monkeypatch.setattr("tickfeed.feeds.binance.websockets.connect", fake_connect(ws))

        async with BinanceSubscription("wss://example/ws/x", "x") as sub:
            events = [event async for event in sub]

        assert events == [{"a": 1}, {"a": 2}]
        assert ws.closed

    @pytest.mark.asyncio
    async def test_abnormal_close_is_transport_error(self, monkeypatch):
        ws = FakeWebSocket(['{"a": 1}'], ConnectionClosedError(None, None))
        monkeypatch.setattr("tickfeed.feeds.binance.websockets.connect", fake_connect(ws))

        events = []
        with pytest.raises(TransportError):
            async with BinanceSubscription("wss://example/ws/x", "x") as sub:
                async for event in sub:
                    events.append(event)

        assert events == [{"a": 1}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error, expected", [
        (InvalidURI("ws//bad", "missing scheme"), SubscribeError),
        (InvalidStatus(SimpleNamespace(status_code=400)), SubscribeError),
        (InvalidStatus(SimpleNamespace(status_code=404)), SubscribeError),
        (InvalidStatus(SimpleNamespace(status_code=408)), TransportError),
        (InvalidStatus(SimpleNamespace(status_code=418)), TransportError),
        (InvalidStatus(SimpleNamespace(status_code=429)), TransportError),
        (InvalidStatus(SimpleNamespace(status_code=503)), TransportError),
        (OSError("connection refused"), TransportError),
        (TimeoutError(), TransportError),
    ])
    async def test_handshake_error_mapping(self, monkeypatch, error, expected):
        monkeypatch.setattr("tickfeed.feeds.binance.websockets.connect", fake_connect(error))

        with pytest.raises(expected):
            async with BinanceSubscription("wss://example/ws/x", "x"):
                pass


def exchange_app(seen: list) -> web.Application:
    async def exchange_info(request):
        seen.append(dict(request.headers))
        return web.json_response({"symbols": [{"symbol": "BTCUSDT"}, {"symbol": "ETHBUSD"}]})

    async def klines(request):
        seen.append(dict(request.query))
        return web.json_response([[0, "1", "2", "0.5", "1.5", "10", 59999, "15", 3, "5", "7", "0"]])

    async def depth(request):
        return web.json_response({"error": "maintenance"}, status=503)

    app = web.Application()
    app.router.add_get("/api/v3/exchangeInfo", exchange_info)
    app.router.add_get("/api/v3/klines", klines)
    app.router.add_get("/api/v3/depth", depth)
    return app


class TestRest:
    @pytest.mark.asyncio
    async def test_discovery_and_klines(self):
        seen = []
        async with test_utils.TestServer(exchange_app(seen)) as server:
            feed = BinanceFeed(BinanceSettings(rest_url=str(server.make_url("/")), api_key="k3y"))
            try:
                symbols = await feed.discover_symbols()
                rows = await feed.fetch_klines("BTCUSDT", "1m", 100)
            finally:
                await feed.close()

        assert symbols == ["BTCUSDT", "ETHBUSD"]
        assert rows[0][4] == "1.5"
        assert seen[0]["X-MBX-APIKEY"] == "k3y"
        assert seen[1] == {"symbol": "BTCUSDT", "interval": "1m", "limit": "100"}

    @pytest.mark.asyncio
    async def test_http_errors_are_transport_errors(self):
        async with test_utils.TestServer(exchange_app([])) as server:
            feed = BinanceFeed(BinanceSettings(rest_url=str(server.make_url("/"))))
            try:
                with pytest.raises(TransportError):
                    await feed.fetch_depth("BTCUSDT")
                with pytest.raises(TransportError):
                    await feed.fetch_agg_trades("BTCUSDT")
            finally:
                await feed.close()

    @pytest.mark.asyncio
    async def test_unreachable_host(self):
        feed = BinanceFeed(BinanceSettings(rest_url="http://127.0.0.1:9", request_timeout=2))
        try:
            with pytest.raises(TransportError):
                await feed.discover_symbols()
        finally:
            await feed.close()
