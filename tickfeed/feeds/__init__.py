"""Upstream feed implementations for tickfeed."""

from tickfeed.feeds.base import BaseFeed, Subscription
from tickfeed.feeds.binance import BinanceFeed, BinanceSubscription

__all__ = ["BaseFeed", "BinanceFeed", "BinanceSubscription", "Subscription"]
