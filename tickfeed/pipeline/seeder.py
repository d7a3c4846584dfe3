"""Historical seeding of the cache before streaming starts."""

import asyncio
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel, Field

from tickfeed.cache import DEPTH, KLINES, SEED_KLINE_TTL, TRADES, MarketCache
from tickfeed.config import PipelineSettings
from tickfeed.errors import CacheError, ParseError, TransportError
from tickfeed.feeds.base import BaseFeed
from tickfeed.log import get_logger
from tickfeed.pipeline.normalizer import candle_from_rest, depth_from_event, trade_from_event


class SeedReport(BaseModel):
    """Outcome of one seeding run."""

    seeded: list[str] = Field(default_factory=list, description="Symbols whose kline window was written")
    skipped: list[str] = Field(default_factory=list, description="Symbols that failed seeding")

    model_config = {"frozen": True}


class Seeder:
    """Fills the kline window of each symbol (and optionally trades and depth) over REST.

    All symbols are seeded concurrently. Transport failures are retried a
    fixed number of times; a symbol that still fails is logged and
    skipped. :attr:`done` is set once every symbol has been attempted.
    """

    def __init__(
        self,
        feed: BaseFeed,
        cache: MarketCache,
        settings: PipelineSettings,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.feed = feed
        self.cache = cache
        self.settings = settings
        self.done = asyncio.Event()
        self._sleep = sleep

    async def run(self, symbols: Iterable[str]) -> SeedReport:
        """Seed every symbol and signal :attr:`done`."""
        symbols = list(symbols)
        try:
            results = await asyncio.gather(*(self.seed_symbol(symbol) for symbol in symbols))
        finally:
            self.done.set()

        report = SeedReport(
            seeded=[symbol for symbol, ok in zip(symbols, results) if ok],
            skipped=[symbol for symbol, ok in zip(symbols, results) if not ok],
        )

        get_logger("seed").info(
            "seeded %d symbols, skipped %d", len(report.seeded), len(report.skipped)
        )
        return report

    async def _fetch(self, symbol: str, what: str, call: Callable[[], Awaitable[Any]]) -> Any:
        logger = get_logger("seed", symbol)
        attempts = self.settings.seed_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await call()
            except TransportError as e:
                logger.warning("%s fetch failed (attempt %d/%d): %s", what, attempt, attempts, e)
                if attempt < attempts:
                    await self._sleep(self.settings.seed_retry_delay)
        raise TransportError(f"{what} fetch for {symbol} failed after {attempts} attempts")

    async def seed_symbol(self, symbol: str) -> bool:
        """Seed one symbol.

        Returns:
            True if the kline window was written.
        """
        logger = get_logger("seed", symbol)
        settings = self.settings

        try:
            rows = await self._fetch(
                symbol,
                "klines",
                lambda: self.feed.fetch_klines(symbol, settings.interval, settings.seed_limit),
            )
            candles = [candle_from_rest(row) for row in rows]
            await self.cache.set_window(KLINES.prefix, symbol, candles, KLINES.cap, SEED_KLINE_TTL)
        except (TransportError, ParseError, CacheError) as e:
            logger.error("skipping symbol: %s", e)
            return False

        logger.debug("seeded %d candles", len(candles))

        if settings.seed_trades:
            await self._seed_trades(symbol)
        if settings.seed_depth:
            await self._seed_depth(symbol)
        return True

    async def _seed_trades(self, symbol: str) -> None:
        logger = get_logger("seed", symbol)
        try:
            rows = await self._fetch(symbol, "trades", lambda: self.feed.fetch_agg_trades(symbol))
            trades = sorted((trade_from_event(row) for row in rows), key=lambda trade: trade.id)
            await self.cache.set_window(TRADES.prefix, symbol, trades, TRADES.cap, TRADES.ttl)
        except (TransportError, ParseError, CacheError) as e:
            logger.error("trade seeding failed: %s", e)

    async def _seed_depth(self, symbol: str) -> None:
        logger = get_logger("seed", symbol)
        try:
            raw = await self._fetch(symbol, "depth", lambda: self.feed.fetch_depth(symbol))
            snapshot = depth_from_event(raw)
            await self.cache.set_window(DEPTH.prefix, symbol, [snapshot], DEPTH.cap, DEPTH.ttl)
        except (TransportError, ParseError, CacheError) as e:
            logger.error("depth seeding failed: %s", e)
