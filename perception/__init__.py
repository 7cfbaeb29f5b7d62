"""
PERCEPTION LAYER - Market data and candidate signals

Components:
- PriceFeed: latest price per trading pair
- SignalSource: buy/sell recommendations, candidate count, channel lows

Usage:
    from perception import FilePriceFeed, FileSignalSource

    prices = FilePriceFeed("data/prices.yaml").get_prices()
    signals = FileSignalSource("data/signals.yaml").get_signals()
"""

from perception.feeds import (
    PriceFeed,
    SignalSource,
    StaticPriceFeed,
    StaticSignalSource,
    FilePriceFeed,
    FileSignalSource,
)

__all__ = [
    "PriceFeed",
    "SignalSource",
    "StaticPriceFeed",
    "StaticSignalSource",
    "FilePriceFeed",
    "FileSignalSource",
]
