"""
FEEDS - Prices and candidate signals coming into each cycle

PriceFeed
    Mapping of trading pair (e.g. "BTCUSDT") to its latest price.
    A missing pair means there is no data this tick.

SignalSource
    Which assets the candidate-scoring side recommends to buy or sell,
    how many candidates it tracks (sizes the capital allocator) and the
    channel low of each candidate (seeds a fresh trailing stop).

File-backed implementations re-read their YAML file on every call so an
external process can update them between cycles.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from portfolio.positions import TradeAction


class PriceFeed(ABC):
    @abstractmethod
    def get_prices(self) -> Dict[str, float]:
        """Latest price per trading pair."""


class SignalSource(ABC):
    @abstractmethod
    def get_signals(self) -> Dict[str, TradeAction]:
        """Recommended action per asset for this cycle."""

    @abstractmethod
    def candidate_count(self) -> int:
        """Number of tracked candidates."""

    def channel_low(self, asset: str) -> Optional[float]:
        """Lower bound of the asset's trading channel, if known."""
        return None


class StaticPriceFeed(PriceFeed):
    """In-memory prices, updated by the caller."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self._prices: Dict[str, float] = dict(prices or {})

    def get_prices(self) -> Dict[str, float]:
        return dict(self._prices)

    def set_price(self, pair: str, price: Optional[float]) -> None:
        if price is None:
            self._prices.pop(pair, None)
        else:
            self._prices[pair] = price

    def update(self, prices: Dict[str, float]) -> None:
        self._prices.update(prices)


class StaticSignalSource(SignalSource):
    """In-memory signals and channel lows."""

    def __init__(
        self,
        signals: Optional[Dict[str, TradeAction]] = None,
        channel_lows: Optional[Dict[str, float]] = None,
        candidates: Optional[int] = None
    ):
        self.signals: Dict[str, TradeAction] = dict(signals or {})
        self.channel_lows: Dict[str, float] = dict(channel_lows or {})
        self.candidates = candidates

    def get_signals(self) -> Dict[str, TradeAction]:
        return dict(self.signals)

    def candidate_count(self) -> int:
        if self.candidates is not None:
            return self.candidates
        return len(self.signals)

    def channel_low(self, asset: str) -> Optional[float]:
        return self.channel_lows.get(asset)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning(f"{path} not found")
        return {}
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


class FilePriceFeed(PriceFeed):
    """
    Prices from a YAML file::

        BTCUSDT: 64000.5
        BNBUSDT: 580.0
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def get_prices(self) -> Dict[str, float]:
        return {str(k): float(v) for k, v in _read_yaml(self.path).items() if v is not None}


class FileSignalSource(SignalSource):
    """
    Signals from a YAML file::

        signals:
          BTC: buy
          ETH: sell
        candidates:
          BTC: {channel_low: 61000}
          SOL: {channel_low: 140}
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def get_signals(self) -> Dict[str, TradeAction]:
        signals = {}
        for asset, action in (_read_yaml(self.path).get("signals") or {}).items():
            try:
                signals[str(asset)] = TradeAction(str(action).lower())
            except ValueError:
                logger.warning(f"Ignoring unknown action '{action}' for {asset}")
        return signals

    def candidate_count(self) -> int:
        data = _read_yaml(self.path)
        candidates = data.get("candidates")
        if candidates:
            return len(candidates)
        return len(data.get("signals") or {})

    def channel_low(self, asset: str) -> Optional[float]:
        info = (_read_yaml(self.path).get("candidates") or {}).get(asset) or {}
        low = info.get("channel_low")
        return float(low) if low else None
