"""Redis-backed cache for per-symbol market data windows."""

import json
from datetime import timedelta
from typing import Any, Optional, Sequence

import redis.asyncio as aioredis
from pydantic import BaseModel, Field, ValidationError
from pydantic_core import PydanticSerializationError, to_json, to_jsonable_python
from redis.exceptions import RedisError

from tickfeed.config import CacheSettings
from tickfeed.errors import CacheError
from tickfeed.models import Candle, DepthSnapshot, Trade


class WindowSpec(BaseModel):
    """Key prefix, record type, length cap and TTL of one window family."""

    prefix: str = Field(..., description="Key prefix, e.g. 'kline:'")
    model: type[BaseModel] = Field(..., description="Record type stored in the window")
    cap: int = Field(..., gt=0, description="Maximum window length")
    ttl: timedelta = Field(..., description="Expiration refreshed on every write")

    model_config = {"frozen": True}


KLINES = WindowSpec(prefix="kline:", model=Candle, cap=10_000, ttl=timedelta(hours=24))
TRADES = WindowSpec(prefix="trade:", model=Trade, cap=100_000, ttl=timedelta(minutes=5))
DEPTH = WindowSpec(prefix="depth:", model=DepthSnapshot, cap=100_000, ttl=timedelta(minutes=5))

# Seeded kline windows are a startup snapshot; the live stream refreshes the TTL
SEED_KLINE_TTL = timedelta(minutes=5)


def window_key(prefix: str, symbol: str) -> str:
    """Redis list holding the window for ``symbol``, e.g. ``trade:BTCUSDT:list``."""
    return f"{prefix}{symbol}:list"


class MarketCache:
    """Typed, capped, per-symbol append windows over redis.

    Plain values are stored as JSON strings. Windows are redis lists with
    one JSON record per element, appended with RPUSH and capped with LTRIM
    in a single transaction, so an append costs the same however long the
    window already is.
    """

    def __init__(self, client: aioredis.Redis):
        """Initialize the cache.

        Args:
            client: An asyncio redis client, shared by all tasks.
        """
        self._client = client

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "MarketCache":
        """Create a cache connected to the configured redis server."""
        client = aioredis.Redis(
            host=settings.host,
            port=settings.port,
            password=settings.password or None,
            db=settings.db,
            socket_connect_timeout=5,
        )
        return cls(client)

    # ------------------------------------------------------------------
    # Key/value operations
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        """Check the connection.

        Raises:
            CacheError: If the server cannot be reached.
        """
        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            raise CacheError(f"cache unreachable: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()

    async def set(self, key: str, value: Any, ttl: timedelta) -> None:
        """Serialize ``value`` to JSON and store it under ``key`` with ``ttl``.

        Raises:
            CacheError: On encoding or redis failure.
        """
        try:
            data = to_json(value)
        except PydanticSerializationError as e:
            raise CacheError(f"cannot encode value for {key}: {e}") from e
        try:
            await self._client.set(key, data, ex=ttl)
        except (RedisError, OSError) as e:
            raise CacheError(f"cannot write {key}: {e}") from e

    async def get(self, key: str) -> tuple[Any, bool]:
        """Get the decoded value stored under ``key``.

        Returns:
            ``(value, True)`` if present, ``(None, False)`` if absent or expired.

        Raises:
            CacheError: On decoding or redis failure.
        """
        try:
            data = await self._client.get(key)
        except (RedisError, OSError) as e:
            raise CacheError(f"cannot read {key}: {e}") from e
        if data is None:
            return None, False
        try:
            return json.loads(data), True
        except ValueError as e:
            raise CacheError(f"cannot decode value for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        """Delete ``key``. Deleting a missing key is not an error."""
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as e:
            raise CacheError(f"cannot delete {key}: {e}") from e

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    async def get_window(self, prefix: str, symbol: str, model: type[BaseModel]) -> list:
        """Get the window for ``symbol`` decoded as a list of ``model``.

        Returns:
            Records oldest first, empty if the window does not exist.
        """
        key = window_key(prefix, symbol)
        try:
            items = await self._client.lrange(key, 0, -1)
        except (RedisError, OSError) as e:
            raise CacheError(f"cannot read {key}: {e}") from e
        try:
            return [model.model_validate_json(item) for item in items]
        except ValidationError as e:
            raise CacheError(f"cannot decode window {key}: {e}") from e

    async def set_window(
        self,
        prefix: str,
        symbol: str,
        records: Sequence[BaseModel],
        cap: int,
        ttl: timedelta,
    ) -> None:
        """Replace the window for ``symbol``, keeping at most the last ``cap`` records."""
        key = window_key(prefix, symbol)
        records = list(records)[-cap:] if cap > 0 else []
        items = [self._encode(key, record) for record in records]
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if items:
                    pipe.rpush(key, *items)
                    pipe.expire(key, ttl)
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise CacheError(f"cannot write {key}: {e}") from e

    async def append_window(
        self,
        prefix: str,
        symbol: str,
        record: BaseModel,
        cap: int,
        ttl: timedelta,
        replace_if_same: Optional[str] = None,
    ) -> int:
        """Append ``record`` to the window for ``symbol``.

        The oldest records are dropped so the window holds at most ``cap``.

        Args:
            prefix: Window key prefix, e.g. "kline:".
            symbol: Trading symbol.
            record: Record to append.
            cap: Maximum window length, at least 1.
            ttl: Expiration refreshed with the write.
            replace_if_same: Field name; if the last record has the same
                value for it, ``record`` replaces it instead of appending.

        Returns:
            The window length after the write.
        """
        return await self.extend_window(prefix, symbol, [record], cap, ttl, replace_if_same)

    async def extend_window(
        self,
        prefix: str,
        symbol: str,
        records: Sequence[BaseModel],
        cap: int,
        ttl: timedelta,
        replace_if_same: Optional[str] = None,
    ) -> int:
        """Append several records in one transaction. See :meth:`append_window`."""
        key = window_key(prefix, symbol)
        new_items = _jsonable(key, records)

        tail = None
        if replace_if_same is not None and new_items:
            tail = await self._tail(key)

        # Only the stored tail can be replaced; later duplicates collapse before the push
        replacement = None
        pushes: list[dict] = []
        for item in new_items:
            if replace_if_same is not None:
                last = pushes[-1] if pushes else (replacement or tail)
                if isinstance(last, dict) and last.get(replace_if_same) == item.get(replace_if_same):
                    if pushes:
                        pushes[-1] = item
                    else:
                        replacement = item
                    continue
            pushes.append(item)

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                if replacement is not None:
                    pipe.lset(key, -1, self._encode(key, replacement))
                if pushes:
                    pipe.rpush(key, *(self._encode(key, item) for item in pushes))
                    pipe.ltrim(key, -cap, -1)
                pipe.expire(key, ttl)
                pipe.llen(key)
                results = await pipe.execute()
        except (RedisError, OSError) as e:
            raise CacheError(f"cannot append to {key}: {e}") from e
        return results[-1]

    async def _tail(self, key: str) -> Optional[dict]:
        try:
            raw = await self._client.lindex(key, -1)
        except (RedisError, OSError) as e:
            raise CacheError(f"cannot read {key}: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CacheError(f"cannot decode last record of {key}: {e}") from e

    @staticmethod
    def _encode(key: str, item: Any) -> bytes:
        try:
            return to_json(item)
        except PydanticSerializationError as e:
            raise CacheError(f"cannot encode record for {key}: {e}") from e

    async def get_candles(self, symbol: str) -> list[Candle]:
        return await self.get_window(KLINES.prefix, symbol, KLINES.model)

    async def get_trades(self, symbol: str) -> list[Trade]:
        return await self.get_window(TRADES.prefix, symbol, TRADES.model)

    async def get_depth(self, symbol: str) -> list[DepthSnapshot]:
        return await self.get_window(DEPTH.prefix, symbol, DEPTH.model)


def _jsonable(key: str, records: Sequence[BaseModel]) -> list[dict]:
    try:
        return to_jsonable_python(list(records))
    except PydanticSerializationError as e:
        raise CacheError(f"cannot encode record for {key}: {e}") from e
