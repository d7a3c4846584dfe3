"""tickfeed - real-time market data ingestion and feature pipeline.

Seeds a redis cache with recent candlesticks for every USDT pair, keeps
live trade, kline and depth subscriptions per symbol, and exposes
technical indicators over the cached windows.
"""

__version__ = "0.1.0"
