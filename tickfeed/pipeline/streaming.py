"""Per-symbol streaming workers.

Each symbol gets three workers: trades, klines and depth. A worker keeps
one subscription open, converts every event and writes it to the cache.
When the stream drops it backs off and reconnects; when the subscription
is rejected it stops for good.

The trade worker hands the latest trade price to the kline worker through
a :class:`TickChannel`, so in-progress candles close at the most recent
trade without the kline worker ever waiting for one.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from tickfeed.cache import DEPTH, KLINES, TRADES, MarketCache
from tickfeed.errors import CacheError, ParseError, SubscribeError, TransportError
from tickfeed.feeds.base import BaseFeed, Subscription
from tickfeed.log import get_logger
from tickfeed.pipeline.normalizer import (
    candle_from_event,
    depth_from_event,
    trade_from_event,
)

DEFAULT_BACKOFF_CAP = 6

Sleep = Callable[[float], Awaitable[Any]]


class WorkerState(str, Enum):
    """Lifecycle of a streaming worker."""

    CONNECTING = "connecting"
    RUNNING = "running"
    DISCONNECTED = "disconnected"
    FATAL = "fatal"
    STOPPED = "stopped"


def backoff_delay(attempt: int, cap: int = DEFAULT_BACKOFF_CAP) -> float:
    """Seconds to wait before reconnect number ``attempt``.

    Args:
        attempt: Number of disconnects so far (1 for the first).
        cap: Maximum exponent.

    Returns:
        ``2 ** min(attempt, cap)``.
    """
    return float(2 ** min(max(attempt, 0), cap))


class TickChannel:
    """Single-slot handoff of the latest trade price.

    ``publish`` overwrites whatever is pending and never waits; ``poll``
    takes the pending price or returns None. One producer, one consumer.
    """

    def __init__(self):
        self._price: Optional[float] = None
        self.dropped = 0

    def publish(self, price: float) -> None:
        if self._price is not None:
            self.dropped += 1
        self._price = price

    def poll(self) -> Optional[float]:
        price, self._price = self._price, None
        return price

    def __len__(self) -> int:
        return 0 if self._price is None else 1


class StreamWorker(ABC):
    """Reconnecting consumer of one subscription.

    Subclasses provide :meth:`subscribe` and :meth:`handle`. Records that
    fail to parse or to reach the cache are logged and dropped; the stream
    keeps going.
    """

    role = "stream"

    def __init__(
        self,
        feed: BaseFeed,
        cache: MarketCache,
        symbol: str,
        backoff_cap: int = DEFAULT_BACKOFF_CAP,
        sleep: Sleep = asyncio.sleep,
    ):
        self.feed = feed
        self.cache = cache
        self.symbol = symbol
        self.backoff_cap = backoff_cap
        self.state = WorkerState.CONNECTING
        self.attempt = 0
        self.processed = 0
        self.dropped = 0
        self._sleep = sleep
        self.logger = get_logger(f"stream.{self.role}", symbol)

    @abstractmethod
    def subscribe(self) -> Subscription:
        """Open a new subscription for this worker's stream."""

    @abstractmethod
    async def handle(self, event: dict[str, Any]) -> None:
        """Convert one event and write it to the cache."""

    async def run(self) -> WorkerState:
        """Consume the stream until cancelled or the subscription is rejected.

        Returns:
            The terminal state (``FATAL``). Cancellation sets ``STOPPED``
            and propagates.
        """
        try:
            while True:
                self.state = WorkerState.CONNECTING
                try:
                    async with self.subscribe() as subscription:
                        self.state = WorkerState.RUNNING
                        self.logger.info("connected")
                        async for event in subscription:
                            await self._dispatch(event)
                    self.logger.warning("stream ended")
                except SubscribeError as e:
                    self.state = WorkerState.FATAL
                    self.logger.error("subscription rejected: %s", e)
                    return self.state
                except TransportError as e:
                    self.logger.warning("disconnected: %s", e)

                self.state = WorkerState.DISCONNECTED
                self.attempt += 1
                delay = backoff_delay(self.attempt, self.backoff_cap)
                self.logger.info("reconnecting in %.0fs (attempt %d)", delay, self.attempt)
                await self._sleep(delay)
        except asyncio.CancelledError:
            self.state = WorkerState.STOPPED
            raise

    async def _dispatch(self, event: dict[str, Any]) -> None:
        try:
            await self.handle(event)
        except ParseError as e:
            self.dropped += 1
            self.logger.error("dropping record: %s", e)
        except CacheError as e:
            self.dropped += 1
            self.logger.error("cache write failed, record dropped: %s", e)
        else:
            self.processed += 1


class TradeWorker(StreamWorker):
    """Publishes trade prices to the tick channel and stores trades."""

    role = "trade"

    def __init__(self, feed: BaseFeed, cache: MarketCache, symbol: str, ticks: TickChannel, **kwargs):
        super().__init__(feed, cache, symbol, **kwargs)
        self.ticks = ticks
        self.last_id: Optional[int] = None

    def subscribe(self) -> Subscription:
        return self.feed.subscribe_trades(self.symbol)

    async def handle(self, event: dict[str, Any]) -> None:
        trade = trade_from_event(event)
        # Out-of-order trades still carry a valid price for the kline side
        self.ticks.publish(trade.price)

        if self.last_id is not None and trade.id < self.last_id:
            self.logger.warning("dropping out-of-order trade %d (last %d)", trade.id, self.last_id)
            return
        self.last_id = trade.id

        await self.cache.append_window(TRADES.prefix, self.symbol, trade, TRADES.cap, TRADES.ttl)


class KlineWorker(StreamWorker):
    """Stores candles, closing in-progress bars at the latest trade price."""

    role = "kline"

    def __init__(
        self,
        feed: BaseFeed,
        cache: MarketCache,
        symbol: str,
        ticks: TickChannel,
        interval: str = "1m",
        **kwargs,
    ):
        super().__init__(feed, cache, symbol, **kwargs)
        self.ticks = ticks
        self.interval = interval

    def subscribe(self) -> Subscription:
        return self.feed.subscribe_klines(self.symbol, self.interval)

    async def handle(self, event: dict[str, Any]) -> None:
        kline = event.get("k")
        if not isinstance(kline, dict):
            raise ParseError("kline", event, "missing kline payload")

        close_override = None
        if not kline.get("x", False):
            close_override = self.ticks.poll()

        candle = candle_from_event(kline, close_override=close_override)
        await self.cache.append_window(
            KLINES.prefix,
            self.symbol,
            candle,
            KLINES.cap,
            KLINES.ttl,
            replace_if_same="open_time",
        )


class DepthWorker(StreamWorker):
    """Appends every depth update to the depth window."""

    role = "depth"

    def subscribe(self) -> Subscription:
        return self.feed.subscribe_depth(self.symbol)

    async def handle(self, event: dict[str, Any]) -> None:
        snapshot = depth_from_event(event)
        await self.cache.append_window(DEPTH.prefix, self.symbol, snapshot, DEPTH.cap, DEPTH.ttl)
