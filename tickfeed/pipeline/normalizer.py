"""Conversion of raw exchange records to canonical models.

Raw records are the decoded JSON payloads of the exchange:

- REST klines are 12-element arrays
  ``[open_time, open, high, low, close, volume, close_time,
  quote_volume, trades, taker_buy_base, taker_buy_quote, ignore]``.
- Kline stream events carry a ``k`` object with single-letter keys
  (``t``, ``T``, ``o``, ``h``, ``l``, ``c``, ``v``, ``q``, ``V``, ``Q``, ``x``).
- Aggregated trades (stream and REST) use ``a``, ``p``, ``q``, ``T``, ``m``, ``M``.
- Depth events use ``b``/``a`` lists of ``[price, qty]`` pairs, REST depth
  uses ``bids``/``asks``.

Every function either returns a fully built model or raises a
:class:`~tickfeed.errors.ParseError` naming the field that failed.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Sequence

from pydantic import ValidationError

from tickfeed.errors import ParseError
from tickfeed.models import Candle, DepthSnapshot, OrderBookEntry, Trade

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_float(value: Any, field: str) -> float:
    """Parse a decimal string (or number) to a finite float."""
    try:
        parsed = float(value)
    except (TypeError, ValueError) as e:
        raise ParseError(field, value, str(e)) from e
    if not math.isfinite(parsed):
        raise ParseError(field, value, "not a finite number")
    return parsed


def from_millis(value: Any, field: str) -> datetime:
    """Convert a millisecond epoch timestamp to an aware UTC datetime."""
    if isinstance(value, bool):
        raise ParseError(field, value, "not a timestamp")
    try:
        return EPOCH + timedelta(milliseconds=int(value))
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise ParseError(field, value, str(e)) from e


def _build(model: type, field: str, **values: Any):
    # Invariant violations are reported against the first failing field
    try:
        return model(**values)
    except ValidationError as e:
        errors = e.errors()
        location = errors[0]["loc"] if errors else ()
        raise ParseError(str(location[0]) if location else field, values, str(e)) from e


def _candle(
    open_time: Any,
    close_time: Any,
    open_: Any,
    high: Any,
    low: Any,
    close: Any,
    volume: Any,
    quote_volume: Any,
    taker_base: Any,
    taker_quote: Any,
    close_override: Optional[float] = None,
) -> Candle:
    high_price = parse_float(high, "high")
    low_price = parse_float(low, "low")
    close_price = parse_float(close, "close")

    if close_override is not None:
        close_price = close_override
        # The fused trade may print outside the bar's last reported range
        high_price = max(high_price, close_price)
        low_price = min(low_price, close_price)

    return _build(
        Candle,
        "candle",
        open_time=from_millis(open_time, "open_time"),
        close_time=from_millis(close_time, "close_time"),
        open=parse_float(open_, "open"),
        high=high_price,
        low=low_price,
        close=close_price,
        volume=parse_float(volume, "volume"),
        quote_asset_volume=parse_float(quote_volume, "quote_asset_volume"),
        taker_buy_base_volume=parse_float(taker_base, "taker_buy_base"),
        taker_buy_quote_volume=parse_float(taker_quote, "taker_buy_quote"),
    )


def candle_from_rest(row: Sequence[Any]) -> Candle:
    """Build a Candle from one REST kline array."""
    if not isinstance(row, (list, tuple)) or len(row) < 11:
        raise ParseError("kline", row, "expected a kline array of at least 11 fields")
    return _candle(row[0], row[6], row[1], row[2], row[3], row[4], row[5], row[7], row[9], row[10])


def candle_from_event(kline: Mapping[str, Any], close_override: Optional[float] = None) -> Candle:
    """Build a Candle from the ``k`` object of a kline stream event.

    Args:
        kline: The event's kline payload.
        close_override: Latest trade price to use as close instead of the
            event's close (in-progress bars only).
    """
    try:
        return _candle(
            kline["t"], kline["T"], kline["o"], kline["h"], kline["l"], kline["c"],
            kline["v"], kline["q"], kline["V"], kline["Q"],
            close_override=close_override,
        )
    except KeyError as e:
        raise ParseError(str(e.args[0]), kline, "missing field") from e


def trade_from_event(event: Mapping[str, Any]) -> Trade:
    """Build a Trade from an aggregated trade payload."""
    try:
        trade_id = event["a"]
        price = parse_float(event["p"], "trade_price")
        quantity = parse_float(event["q"], "trade_qty")
        time = from_millis(event["T"], "trade_time")
        buyer_is_maker = event["m"]
    except KeyError as e:
        raise ParseError(str(e.args[0]), event, "missing field") from e

    if isinstance(trade_id, bool) or not isinstance(trade_id, int):
        raise ParseError("trade_id", trade_id, "not an integer")

    return _build(
        Trade,
        "trade",
        id=trade_id,
        price=price,
        quantity=quantity,
        buyer_is_maker=bool(buyer_is_maker),
        time=time,
        is_best_price_match=bool(event.get("M", True)),
    )


def _entries(levels: Any, side: str) -> list[OrderBookEntry]:
    entries = []
    for level in levels or []:
        if not isinstance(level, (list, tuple)) or len(level) < 2:
            raise ParseError(f"{side}_price", level, "expected [price, qty]")
        price = parse_float(level[0], f"{side}_price")
        quantity = parse_float(level[1], f"{side}_qty")
        if price < 0:
            raise ParseError(f"{side}_price", level[0], "negative price")
        if quantity < 0:
            raise ParseError(f"{side}_qty", level[1], "negative quantity")
        entries.append(OrderBookEntry(price=price, quantity=quantity))
    return entries


def depth_from_event(event: Mapping[str, Any]) -> DepthSnapshot:
    """Build a DepthSnapshot from a depth stream event or REST depth response.

    Bids are sorted by descending price and asks by ascending price.
    Zero-quantity levels are kept; they mark removals.
    """
    bids = _entries(event.get("b", event.get("bids")), "bid")
    asks = _entries(event.get("a", event.get("asks")), "ask")

    bids.sort(key=lambda entry: entry.price, reverse=True)
    asks.sort(key=lambda entry: entry.price)

    event_time = event.get("E")

    return _build(
        DepthSnapshot,
        "depth",
        bids=bids,
        asks=asks,
        event_time=from_millis(event_time, "event_time") if event_time is not None else None,
        first_update_id=event.get("U"),
        last_update_id=event.get("u", event.get("lastUpdateId")),
    )
