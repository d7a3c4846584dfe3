"""Read-side tools over the cached market data."""

from tickfeed.tools.snapshot import enrich_candles, latest_indicators, load_snapshot

__all__ = ["enrich_candles", "latest_indicators", "load_snapshot"]
