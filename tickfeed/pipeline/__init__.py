"""Ingestion pipeline: normalization, seeding, streaming and supervision."""

from tickfeed.pipeline.seeder import SeedReport, Seeder
from tickfeed.pipeline.streaming import (
    DepthWorker,
    KlineWorker,
    StreamWorker,
    TickChannel,
    TradeWorker,
    WorkerState,
    backoff_delay,
)
from tickfeed.pipeline.supervisor import Supervisor, filter_usdt_symbols

__all__ = [
    "DepthWorker",
    "KlineWorker",
    "SeedReport",
    "Seeder",
    "StreamWorker",
    "Supervisor",
    "TickChannel",
    "TradeWorker",
    "WorkerState",
    "backoff_delay",
    "filter_usdt_symbols",
]
