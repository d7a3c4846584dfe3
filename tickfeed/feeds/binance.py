"""Binance spot feed: REST snapshots over aiohttp, live streams over websockets."""

import asyncio
import json
from typing import Any, AsyncIterator, Optional

import aiohttp
import websockets
from websockets.exceptions import (
    ConnectionClosedError,
    ConnectionClosedOK,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
)

from tickfeed.config import BinanceSettings
from tickfeed.errors import SubscribeError, TransportError
from tickfeed.feeds.base import BaseFeed, Subscription
from tickfeed.log import get_logger

logger = get_logger("feed")

# Timeout, IP ban and rate limit responses; the connection may be retried after a backoff
RETRYABLE_STATUSES = frozenset({408, 418, 429})


class BinanceSubscription(Subscription):
    """One raw websocket stream, e.g. ``btcusdt@aggTrade``."""

    def __init__(self, url: str, stream: str, open_timeout: float = 10.0):
        self.url = url
        self.stream = stream
        self._open_timeout = open_timeout
        self._ws = None

    async def __aenter__(self) -> "BinanceSubscription":
        try:
            self._ws = await websockets.connect(
                self.url,
                open_timeout=self._open_timeout,
                ping_interval=20,
                ping_timeout=20,
            )
        except InvalidURI as e:
            raise SubscribeError(f"{self.stream}: invalid stream url {self.url}") from e
        except InvalidStatus as e:
            status = e.response.status_code
            if 400 <= status < 500 and status not in RETRYABLE_STATUSES:
                raise SubscribeError(f"{self.stream}: handshake rejected with HTTP {status}") from e
            raise TransportError(f"{self.stream}: handshake failed with HTTP {status}") from e
        except (InvalidHandshake, OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"{self.stream}: connect failed: {e}") from e
        logger.debug("subscribed to %s", self.stream)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        if self._ws is None:
            raise TransportError(f"{self.stream}: not connected")
        while True:
            try:
                raw = await self._ws.recv()
            except ConnectionClosedError as e:
                raise TransportError(f"{self.stream}: connection lost: {e}") from e
            except ConnectionClosedOK:
                return

            try:
                event = json.loads(raw)
            except ValueError:
                logger.warning("%s: dropping undecodable message", self.stream)
                continue
            if isinstance(event, dict):
                yield event


class BinanceFeed(BaseFeed):
    """Public Binance spot market data.

    REST calls share one ``aiohttp.ClientSession``; each subscription owns
    its own websocket connection.
    """

    def __init__(self, settings: BinanceSettings, session: Optional[aiohttp.ClientSession] = None):
        """Initialize the feed.

        Args:
            settings: Endpoint and credential settings.
            session: Optional session to reuse; created lazily otherwise.
        """
        self.settings = settings
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {}
            if self.settings.api_key:
                headers["X-MBX-APIKEY"] = self.settings.api_key
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
            )
            self._owns_session = True
        return self._session

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        url = f"{self.settings.rest_url.rstrip('/')}{path}"
        try:
            async with self._get_session().get(url, params=params) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise TransportError(f"GET {path} returned HTTP {resp.status}: {body[:200]}")
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransportError(f"GET {path} failed: {e}") from e

    async def discover_symbols(self) -> list[str]:
        data = await self._get("/api/v3/exchangeInfo")
        try:
            return [entry["symbol"] for entry in data["symbols"]]
        except (KeyError, TypeError) as e:
            raise TransportError(f"unexpected exchangeInfo payload: {e}") from e

    async def fetch_klines(self, symbol: str, interval: str, limit: int) -> list[list[Any]]:
        return await self._get(
            "/api/v3/klines",
            {"symbol": symbol, "interval": interval, "limit": limit},
        )

    async def fetch_agg_trades(self, symbol: str, limit: int = 1000) -> list[dict[str, Any]]:
        return await self._get("/api/v3/aggTrades", {"symbol": symbol, "limit": limit})

    async def fetch_depth(self, symbol: str, limit: int = 100) -> dict[str, Any]:
        return await self._get("/api/v3/depth", {"symbol": symbol, "limit": limit})

    def _subscription(self, stream: str) -> BinanceSubscription:
        url = f"{self.settings.ws_url.rstrip('/')}/{stream}"
        return BinanceSubscription(url, stream, open_timeout=self.settings.request_timeout)

    def subscribe_trades(self, symbol: str) -> BinanceSubscription:
        return self._subscription(f"{symbol.lower()}@aggTrade")

    def subscribe_klines(self, symbol: str, interval: str) -> BinanceSubscription:
        return self._subscription(f"{symbol.lower()}@kline_{interval}")

    def subscribe_depth(self, symbol: str) -> BinanceSubscription:
        return self._subscription(f"{symbol.lower()}@depth")

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
