"""Technical indicator calculations over candlestick series.

All functions are pure: they never mutate their inputs and identical
inputs always produce identical outputs. Every function returns a list
with the same length as its primary input, where the leading entries
without enough history hold the sentinel ``NaN``. Inputs that are too
short for a single value produce an empty list.

Division by zero never yields infinity; each indicator documents its
fallback value.
"""

import math
from typing import Sequence

from tickfeed.models import Candle

NAN = float("nan")


def _pad(values: list[float], n: int) -> list[float]:
    """Left-pad ``values`` with NaN so it aligns to length ``n`` by trailing index."""
    return [NAN] * (n - len(values)) + values


def is_valid(value: float) -> bool:
    """Check if a value is valid (not NaN)."""
    return value == value  # NaN != NaN


def calculate_sma(prices: Sequence[float], period: int) -> list[float]:
    """Calculate Simple Moving Average with a sliding sum.

    Args:
        prices: List of price values (typically close prices)
        period: Number of periods for the moving average

    Returns:
        List of SMA values. First (period-1) values are NaN.
        Empty if fewer than ``period`` prices.
    """
    n = len(prices)
    if period < 1 or n < period:
        return []

    result = [NAN] * n
    total = 0.0
    for i in range(period):
        total += prices[i]
    result[period - 1] = total / period

    for i in range(period, n):
        total += prices[i] - prices[i - period]
        result[i] = total / period

    return result


def calculate_ema(prices: Sequence[float], period: int) -> list[float]:
    """Calculate Exponential Moving Average.

    The first value (index period-1) is seeded with the SMA of the first
    ``period`` prices; the multiplier is 2 / (period + 1).

    Args:
        prices: List of price values
        period: Number of periods for the EMA

    Returns:
        List of EMA values. First (period-1) values are NaN.
    """
    n = len(prices)
    if period < 1 or n < period:
        return []

    result = [NAN] * n
    multiplier = 2 / (period + 1)

    # First EMA is SMA
    result[period - 1] = calculate_sma(prices, period)[period - 1]

    for i in range(period, n):
        result[i] = (prices[i] - result[i - 1]) * multiplier + result[i - 1]

    return result


def calculate_wma(prices: Sequence[float], period: int) -> list[float]:
    """Calculate linearly Weighted Moving Average.

    Weights run 1..period with the newest price weighted highest. Unlike a
    bare WMA of length n - period + 1, the output is padded to length n so
    it lines up with the other indicators by index.

    Returns:
        List of WMA values. First (period-1) values are NaN.
    """
    n = len(prices)
    if period < 1 or n < period:
        return []

    denominator = period * (period + 1) / 2
    result = [NAN] * n
    for i in range(period - 1, n):
        start = i - period + 1
        numerator = 0.0
        for j in range(period):
            numerator += prices[start + j] * (j + 1)
        result[i] = numerator / denominator

    return result


def calculate_hma(prices: Sequence[float], period: int) -> list[float]:
    """Calculate Hull Moving Average.

    HMA = WMA(2 * WMA(p, period // 2) - WMA(p, period), isqrt(period)).
    The two inner series are aligned by trailing index.

    Returns:
        List of HMA values, NaN until period + isqrt(period) - 2.
    """
    n = len(prices)
    half = period // 2
    root = math.isqrt(period) if period > 0 else 0
    if half < 1 or root < 1 or n < period + root - 1:
        return []

    wma_half = calculate_wma(prices, half)
    wma_full = calculate_wma(prices, period)

    # Both inner series are valid from index period-1 onwards
    raw = [2 * wma_half[i] - wma_full[i] for i in range(period - 1, n)]

    return _pad(calculate_wma(raw, root)[root - 1:], n)


def calculate_rsi(prices: Sequence[float], period: int = 14) -> list[float]:
    """Calculate Relative Strength Index with Wilder's smoothing.

    Average gain and loss are seeded from the first ``period`` price
    changes and then updated as ``(avg * (period - 1) + current) / period``.

    When the average loss is zero the RSI is 100, and when both averages
    are zero (flat prices) it is 50.

    Args:
        prices: List of price values (typically close prices)
        period: RSI period (default 14)

    Returns:
        List of RSI values (0-100). First ``period`` values are NaN.
    """
    n = len(prices)
    if period < 1 or n < period + 1:
        return []

    def rsi_value(avg_gain: float, avg_loss: float) -> float:
        if avg_loss == 0:
            return 100.0 if avg_gain > 0 else 50.0
        rs = avg_gain / avg_loss
        return 100 - (100 / (1 + rs))

    gain, loss = 0.0, 0.0
    for i in range(1, period + 1):
        change = prices[i] - prices[i - 1]
        if change > 0:
            gain += change
        else:
            loss -= change

    avg_gain = gain / period
    avg_loss = loss / period

    result = [NAN] * n
    result[period] = rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, n):
        change = prices[i] - prices[i - 1]
        avg_gain = (avg_gain * (period - 1) + max(change, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-change, 0.0)) / period
        result[i] = rsi_value(avg_gain, avg_loss)

    return result


def calculate_returns(prices: Sequence[float]) -> list[float]:
    """Calculate per-bar percent returns.

    ``r[i] = 100 * (p[i] - p[i-1]) / p[i-1]``; 0.0 when ``p[i-1]`` is zero.

    Returns:
        List of returns with r[0] = NaN. Empty if fewer than two prices.
    """
    n = len(prices)
    if n < 2:
        return []

    result = [NAN]
    for i in range(1, n):
        previous = prices[i - 1]
        if previous == 0:
            result.append(0.0)
        else:
            result.append(100 * (prices[i] - previous) / previous)

    return result


def calculate_macd(
    prices: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9
) -> tuple[list[float], list[float], list[float]]:
    """Calculate MACD (Moving Average Convergence Divergence).

    The MACD line is EMA(fast) - EMA(slow) from index ``slow`` on. The
    signal line is the EMA of the MACD line's valid part, and the
    histogram (MACD - signal) starts at index ``slow + signal``.

    Args:
        prices: List of price values
        fast: Fast EMA period (default 12)
        slow: Slow EMA period (default 26)
        signal: Signal line period (default 9)

    Returns:
        Tuple of (macd_line, signal_line, histogram). Three empty lists
        if fewer than ``slow + signal`` prices.
    """
    n = len(prices)
    if fast < 1 or slow < 1 or signal < 1 or n < slow + signal:
        return [], [], []

    fast_ema = calculate_ema(prices, fast)
    slow_ema = calculate_ema(prices, slow)

    macd_line = [NAN] * n
    for i in range(slow, n):
        macd_line[i] = fast_ema[i] - slow_ema[i]

    signal_line = _pad(calculate_ema(macd_line[slow:], signal), n)

    histogram = [NAN] * n
    for i in range(slow + signal, n):
        histogram[i] = macd_line[i] - signal_line[i]

    return macd_line, signal_line, histogram


def calculate_bollinger_bands(
    prices: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Bollinger Bands.

    Band width uses the population standard deviation of the trailing
    ``period`` samples.

    Args:
        prices: List of price values
        period: SMA period (default 20)
        std_dev: Standard deviation multiplier (default 2.0)

    Returns:
        Tuple of (upper_band, middle_band, lower_band)
    """
    n = len(prices)
    if period < 1 or n < period:
        return [], [], []

    middle_band = calculate_sma(prices, period)
    upper_band = [NAN] * n
    lower_band = [NAN] * n

    for i in range(period - 1, n):
        mean = middle_band[i]

        variance = sum((prices[j] - mean) ** 2 for j in range(i - period + 1, i + 1)) / period
        std = variance ** 0.5

        upper_band[i] = mean + (std_dev * std)
        lower_band[i] = mean - (std_dev * std)

    return upper_band, middle_band, lower_band


def calculate_vwma(
    prices: Sequence[float],
    volumes: Sequence[float],
    period: int
) -> list[float]:
    """Calculate Volume Weighted Moving Average.

    ``sum(p * v) / sum(v)`` over the trailing window. A window with zero
    total volume falls back to the plain average price of the window.

    Returns:
        List of VWMA values. First (period-1) values are NaN.
    """
    n = len(prices)
    if period < 1 or n < period or len(volumes) != n:
        return []

    result = [NAN] * n
    pv_sum, v_sum, p_sum = 0.0, 0.0, 0.0

    for i in range(n):
        pv_sum += prices[i] * volumes[i]
        v_sum += volumes[i]
        p_sum += prices[i]
        if i >= period:
            pv_sum -= prices[i - period] * volumes[i - period]
            v_sum -= volumes[i - period]
            p_sum -= prices[i - period]
        if i >= period - 1:
            result[i] = pv_sum / v_sum if v_sum != 0 else p_sum / period

    return result


def calculate_momentum(prices: Sequence[float], period: int) -> list[float]:
    """Calculate Momentum: ``m[i] = p[i] - p[i - period]``.

    Returns:
        List of momentum values. First ``period`` values are NaN.
    """
    n = len(prices)
    if period < 1 or n < period + 1:
        return []

    result = [NAN] * period
    for i in range(period, n):
        result.append(prices[i] - prices[i - period])

    return result


def _true_ranges(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float]
) -> list[float]:
    # First TR has no previous close, so it is just high - low
    ranges = [high[0] - low[0]]
    for i in range(1, len(close)):
        ranges.append(max(
            high[i] - low[i],
            abs(high[i] - close[i - 1]),
            abs(low[i] - close[i - 1])
        ))
    return ranges


def calculate_atr(
    high: Sequence[float],
    low: Sequence[float],
    close: Sequence[float],
    period: int = 14
) -> list[float]:
    """Calculate Average True Range.

    Args:
        high: List of high prices
        low: List of low prices
        close: List of close prices
        period: ATR period (default 14)

    Returns:
        List of ATR values. First (period-1) values are NaN.
    """
    n = len(close)
    if period < 1 or n < period or len(high) != n or len(low) != n:
        return []

    true_ranges = _true_ranges(high, low, close)

    # First ATR is SMA of first `period` true ranges
    result = [NAN] * n
    result[period - 1] = calculate_sma(true_ranges, period)[period - 1]

    # Subsequent ATRs using Wilder's smoothing
    k = 1.0 / period
    for i in range(period, n):
        result[i] = (1 - k) * result[i - 1] + k * true_ranges[i]

    return result


def calculate_chaikin_volatility(
    high: Sequence[float],
    low: Sequence[float],
    period: int
) -> list[float]:
    """Calculate the rolling mean of the high-low range over ``period`` bars."""
    n = len(high)
    if period < 1 or n < period or len(low) != n:
        return []

    ranges = [high[i] - low[i] for i in range(n)]
    return calculate_sma(ranges, period)


def calculate_adx(candles: Sequence[Candle], period: int = 14) -> list[float]:
    """Calculate Average Directional Index.

    Per bar: true range, +DM and -DM, where only the larger of +DM and
    -DM survives and ties zero both. TR, +DM and -DM (from bar 1 on) are
    smoothed with an EMA over ``period``, giving +DI, -DI and
    ``DX = 100 * |+DI - -DI| / (+DI + -DI)`` from index ``period``.
    ADX is the EMA of DX, first valid at index ``2 * period - 1``.

    A zero smoothed true range gives DI = 0 and a zero DI sum gives DX = 0.

    Args:
        candles: Candle series, oldest first
        period: ADX period (default 14)

    Returns:
        List of ADX values aligned to ``candles``.
    """
    n = len(candles)
    if period < 1 or n < period * 2:
        return []

    high = [c.high for c in candles]
    low = [c.low for c in candles]
    close = [c.close for c in candles]

    true_ranges = _true_ranges(high, low, close)
    plus_dm = [0.0] * n
    minus_dm = [0.0] * n

    for i in range(1, n):
        up_move = max(high[i] - high[i - 1], 0.0)
        down_move = max(low[i - 1] - low[i], 0.0)

        if up_move > down_move:
            plus_dm[i] = up_move
        elif down_move > up_move:
            minus_dm[i] = down_move

    # Smoothed series start at bar 1, so smoothed[j] belongs to bar j + 1
    smoothed_tr = calculate_ema(true_ranges[1:], period)
    smoothed_plus = calculate_ema(plus_dm[1:], period)
    smoothed_minus = calculate_ema(minus_dm[1:], period)

    dx = []
    for i in range(period, n):
        tr = smoothed_tr[i - 1]
        if tr == 0:
            plus_di, minus_di = 0.0, 0.0
        else:
            plus_di = 100 * smoothed_plus[i - 1] / tr
            minus_di = 100 * smoothed_minus[i - 1] / tr

        di_sum = plus_di + minus_di
        dx.append(100 * abs(plus_di - minus_di) / di_sum if di_sum != 0 else 0.0)

    return _pad(calculate_ema(dx, period), n)


def calculate_stochastic(
    candles: Sequence[Candle],
    period: int = 14
) -> tuple[list[float], list[float]]:
    """Calculate Stochastic Oscillator (%K and %D).

    %K compares the close to the trailing high-low range; it is 50 when
    the range is empty. %D is the SMA of %K over the same period and
    stays NaN until enough %K values exist.

    Args:
        candles: Candle series, oldest first
        period: Lookback for %K and smoothing for %D (default 14)

    Returns:
        Tuple of (%K values, %D values)
    """
    n = len(candles)
    if period < 1 or n < period:
        return [], []

    k_values = []
    for i in range(period - 1, n):
        window = candles[i - period + 1:i + 1]
        highest_high = max(c.high for c in window)
        lowest_low = min(c.low for c in window)

        if highest_high == lowest_low:
            k_values.append(50.0)  # Neutral when no range
        else:
            k_values.append((candles[i].close - lowest_low) / (highest_high - lowest_low) * 100)

    d_values = calculate_sma(k_values, period)

    return _pad(k_values, n), _pad(d_values, n) if d_values else [NAN] * n


def calculate_parabolic_sar(
    high: Sequence[float],
    low: Sequence[float],
    step: float = 0.02,
    max_af: float = 0.2
) -> list[float]:
    """Calculate Wilder's Parabolic SAR.

    Starts long with AF = ``step``, extreme point = first high and
    SAR[0] = first low. Each bar moves the SAR toward the extreme point;
    a new extreme raises AF by ``step`` up to ``max_af``. When price
    crosses the SAR the trend flips, the SAR jumps to the prior extreme
    point and both AF and extreme point reset.

    Args:
        high: List of high prices
        low: List of low prices
        step: Acceleration factor increment (default 0.02)
        max_af: Acceleration factor ceiling (default 0.2)

    Returns:
        List of SAR values aligned to the inputs.
    """
    n = len(high)
    if n == 0 or len(low) != n:
        return []

    psar = [low[0]]
    is_long = True
    af = step
    ep = high[0]

    for i in range(1, n):
        sar = psar[-1] + af * (ep - psar[-1])

        if is_long:
            if low[i] <= sar:
                is_long = False
                sar = ep
                af = step
                ep = low[i]
            elif high[i] > ep:
                ep = high[i]
                af = min(af + step, max_af)
        else:
            if high[i] >= sar:
                is_long = True
                sar = ep
                af = step
                ep = high[i]
            elif low[i] < ep:
                ep = low[i]
                af = min(af + step, max_af)

        psar.append(sar)

    return psar
