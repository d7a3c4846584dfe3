"""Pipeline supervisor: discovery, seeding and worker lifecycle."""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Optional

from tickfeed.cache import MarketCache
from tickfeed.config import PipelineSettings
from tickfeed.errors import CacheError, StartupError, TransportError
from tickfeed.feeds.base import BaseFeed
from tickfeed.log import get_logger
from tickfeed.pipeline.seeder import Seeder, SeedReport
from tickfeed.pipeline.streaming import DepthWorker, KlineWorker, StreamWorker, TickChannel, TradeWorker

logger = get_logger("supervisor")

QUOTE_ASSET = "USDT"
LEVERAGED_SUFFIXES = ("UPUSDT", "DOWNUSDT")


def filter_usdt_symbols(symbols: Iterable[str]) -> list[str]:
    """Keep USDT-quoted spot symbols, dropping leveraged tokens.

    Args:
        symbols: Exchange catalogue.

    Returns:
        Matching symbols in catalogue order.

    Example:
        >>> filter_usdt_symbols(["BTCUSDT", "ETHBUSD", "BTCUPUSDT", "LTCUSDT"])
        ['BTCUSDT', 'LTCUSDT']
    """
    return [
        symbol
        for symbol in symbols
        if symbol.endswith(QUOTE_ASSET) and not symbol.endswith(LEVERAGED_SUFFIXES)
    ]


class Supervisor:
    """Runs the whole ingestion pipeline.

    Discovers symbols, seeds the cache, then keeps three workers per
    symbol running until :meth:`stop` is called. Workers that exit are
    logged and not restarted.
    """

    def __init__(
        self,
        feed: BaseFeed,
        cache: MarketCache,
        settings: Optional[PipelineSettings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.feed = feed
        self.cache = cache
        self.settings = settings or PipelineSettings()
        self.seeder = Seeder(feed, cache, self.settings, sleep=sleep)
        self.workers: list[StreamWorker] = []
        self.tasks: list[asyncio.Task] = []
        self.seed_report: Optional[SeedReport] = None
        self._sleep = sleep

    async def discover(self) -> list[str]:
        """Fetch and filter the symbol catalogue.

        Raises:
            StartupError: If the catalogue cannot be fetched or nothing matches.
        """
        try:
            catalogue = await self.feed.discover_symbols()
        except TransportError as e:
            raise StartupError(f"symbol discovery failed: {e}") from e

        symbols = filter_usdt_symbols(catalogue)
        if not symbols:
            raise StartupError("no USDT symbols in the exchange catalogue")
        logger.info("tracking %d of %d symbols", len(symbols), len(catalogue))
        return symbols

    async def start(self) -> list[str]:
        """Check the cache, discover, seed and spawn the workers.

        Returns:
            The symbols being streamed.

        Raises:
            StartupError: If the cache is unreachable or discovery fails.
        """
        try:
            await self.cache.ping()
        except CacheError as e:
            raise StartupError(str(e)) from e

        symbols = await self.discover()
        self.seed_report = await self.seeder.run(symbols)
        await self.seeder.done.wait()

        for symbol in symbols:
            self.spawn(symbol)
        return symbols

    def spawn(self, symbol: str) -> list[asyncio.Task]:
        """Start the trade, kline and depth workers for ``symbol``."""
        ticks = TickChannel()
        options = {"backoff_cap": self.settings.backoff_cap, "sleep": self._sleep}
        workers = [
            TradeWorker(self.feed, self.cache, symbol, ticks, **options),
            KlineWorker(self.feed, self.cache, symbol, ticks, interval=self.settings.interval, **options),
            DepthWorker(self.feed, self.cache, symbol, **options),
        ]

        tasks = []
        for worker in workers:
            task = asyncio.create_task(worker.run(), name=f"{worker.role}:{symbol}")
            task.add_done_callback(self._on_worker_done)
            tasks.append(task)

        self.workers.extend(workers)
        self.tasks.extend(tasks)
        return tasks

    def _on_worker_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("worker %s crashed: %r", task.get_name(), exc)
        else:
            logger.warning("worker %s exited (%s)", task.get_name(), task.result().value)

    async def run(self) -> None:
        """Start the pipeline and wait until every worker has exited."""
        await self.start()
        try:
            if self.tasks:
                await asyncio.wait(self.tasks)
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Cancel every worker and wait for them to finish."""
        pending = [task for task in self.tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("stopped %d workers", len(pending))
