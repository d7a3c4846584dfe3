"""Consumer-side views over the cached windows.

These functions read what the pipeline wrote and derive indicator values
on demand; nothing here runs on the ingest path.
"""

from typing import Optional, Sequence

from tickfeed.cache import MarketCache
from tickfeed.indicators.technical import (
    calculate_adx,
    calculate_atr,
    calculate_bollinger_bands,
    calculate_chaikin_volatility,
    calculate_ema,
    calculate_hma,
    calculate_macd,
    calculate_momentum,
    calculate_parabolic_sar,
    calculate_returns,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
    calculate_vwma,
    calculate_wma,
    is_valid,
)
from tickfeed.models import Candle, SymbolSnapshot


def _at(values: Sequence[float], index: int) -> Optional[float]:
    """Value at ``index``, or None if missing or NaN."""
    if index >= len(values):
        return None
    value = values[index]
    return value if is_valid(value) else None


def _latest(values: Sequence[float]) -> Optional[float]:
    """Most recent valid value of a series."""
    return next((v for v in reversed(values) if is_valid(v)), None)


def enrich_candles(candles: Sequence[Candle]) -> list[Candle]:
    """Fill ``sma10``, ``sma30``, ``rsi14`` and ``returns`` on each candle.

    Fields stay None where the indicator has no value yet.
    """
    closes = [c.close for c in candles]
    sma10 = calculate_sma(closes, 10)
    sma30 = calculate_sma(closes, 30)
    rsi14 = calculate_rsi(closes, 14)
    returns = calculate_returns(closes)

    return [
        candle.model_copy(
            update={
                "sma10": _at(sma10, i),
                "sma30": _at(sma30, i),
                "rsi14": _at(rsi14, i),
                "returns": _at(returns, i),
            }
        )
        for i, candle in enumerate(candles)
    ]


def latest_indicators(candles: Sequence[Candle]) -> dict[str, Optional[float]]:
    """Evaluate the indicator library over ``candles``.

    Args:
        candles: Kline window, oldest first.

    Returns:
        Mapping of indicator output name to its most recent value, None
        where the window is too short.
    """
    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    volumes = [c.volume for c in candles]

    macd_line, signal_line, histogram = calculate_macd(closes)
    upper, middle, lower = calculate_bollinger_bands(closes)
    stoch_k, stoch_d = calculate_stochastic(candles)

    return {
        "sma_10": _latest(calculate_sma(closes, 10)),
        "sma_30": _latest(calculate_sma(closes, 30)),
        "ema_20": _latest(calculate_ema(closes, 20)),
        "wma_20": _latest(calculate_wma(closes, 20)),
        "hma_16": _latest(calculate_hma(closes, 16)),
        "rsi_14": _latest(calculate_rsi(closes, 14)),
        "returns": _latest(calculate_returns(closes)),
        "macd": _latest(macd_line),
        "macd_signal": _latest(signal_line),
        "macd_histogram": _latest(histogram),
        "bb_upper": _latest(upper),
        "bb_middle": _latest(middle),
        "bb_lower": _latest(lower),
        "vwma_20": _latest(calculate_vwma(closes, volumes, 20)),
        "momentum_10": _latest(calculate_momentum(closes, 10)),
        "atr_14": _latest(calculate_atr(highs, lows, closes, 14)),
        "chaikin_10": _latest(calculate_chaikin_volatility(highs, lows, 10)),
        "adx_14": _latest(calculate_adx(candles, 14)),
        "stoch_k": _latest(stoch_k),
        "stoch_d": _latest(stoch_d),
        "psar": _latest(calculate_parabolic_sar(highs, lows)),
    }


async def load_snapshot(cache: MarketCache, symbol: str) -> SymbolSnapshot:
    """Read the kline, trade and depth windows of ``symbol``.

    Raises:
        CacheError: If a window cannot be read or decoded.
    """
    symbol = symbol.upper()
    candles = enrich_candles(await cache.get_candles(symbol))
    trades = await cache.get_trades(symbol)
    depth = await cache.get_depth(symbol)

    return SymbolSnapshot(
        symbol=symbol,
        candles=candles,
        trades=trades,
        depth=depth[-1] if depth else None,
        indicators=latest_indicators(candles),
    )
