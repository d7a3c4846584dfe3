"""Base upstream feed interface for tickfeed."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


class Subscription(ABC):
    """A live stream of decoded exchange events.

    Used as ``async with feed.subscribe_x(...) as sub: async for event in sub``.
    Entering performs the handshake; iteration yields events in source
    order and ends when the stream terminates.
    """

    @abstractmethod
    async def __aenter__(self) -> "Subscription":
        """Open the stream.

        Raises:
            SubscribeError: If the subscription is rejected.
            TransportError: If the connection fails transiently.
        """
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> None:
        """Close the stream."""
        pass

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        """Iterate over events.

        Raises:
            TransportError: If the connection drops abnormally.
        """
        pass


class BaseFeed(ABC):
    """Abstract base class for upstream market data feeds.

    The pipeline only talks to the exchange through these operations, so
    tests can substitute a deterministic implementation.
    """

    @abstractmethod
    async def discover_symbols(self) -> list[str]:
        """Get the exchange's symbol catalogue.

        Raises:
            TransportError: If the catalogue cannot be fetched.
        """
        pass

    @abstractmethod
    async def fetch_klines(self, symbol: str, interval: str, limit: int) -> list[list[Any]]:
        """Get the most recent ``limit`` raw klines, oldest first.

        Raises:
            TransportError: If the request fails.
        """
        pass

    @abstractmethod
    async def fetch_agg_trades(self, symbol: str, limit: int = 1000) -> list[dict[str, Any]]:
        """Get the most recent raw aggregated trades, oldest first.

        Raises:
            TransportError: If the request fails.
        """
        pass

    @abstractmethod
    async def fetch_depth(self, symbol: str, limit: int = 100) -> dict[str, Any]:
        """Get a raw order book snapshot.

        Raises:
            TransportError: If the request fails.
        """
        pass

    @abstractmethod
    def subscribe_trades(self, symbol: str) -> Subscription:
        """Subscribe to the aggregated trade stream of ``symbol``."""
        pass

    @abstractmethod
    def subscribe_klines(self, symbol: str, interval: str) -> Subscription:
        """Subscribe to the kline stream of ``symbol`` at ``interval``."""
        pass

    @abstractmethod
    def subscribe_depth(self, symbol: str) -> Subscription:
        """Subscribe to the depth update stream of ``symbol``."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass
