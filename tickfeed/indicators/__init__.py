"""Technical indicators module."""

from tickfeed.indicators.technical import (
    NAN,
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

__all__ = [
    "NAN",
    "calculate_adx",
    "calculate_atr",
    "calculate_bollinger_bands",
    "calculate_chaikin_volatility",
    "calculate_ema",
    "calculate_hma",
    "calculate_macd",
    "calculate_momentum",
    "calculate_parabolic_sar",
    "calculate_returns",
    "calculate_rsi",
    "calculate_sma",
    "calculate_stochastic",
    "calculate_vwma",
    "calculate_wma",
    "is_valid",
]
