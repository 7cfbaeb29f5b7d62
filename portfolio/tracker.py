"""
PRICE TRACKER - Price history, momentum and level crossings

Maintains each record's bounded price history and answers the questions
the decision engine asks every cycle:
- Is the price going up, down or sideways?
- Did the price just cross the profit limit, the stop limit or the entry price?
- Is the latest tick an anomaly (pump or dump)?

Crossing detectors are edge-triggered: they fire only on the tick where
the previous sample was on one side of the threshold and the current
sample on the other.
"""

from enum import IntEnum
from typing import Optional

import numpy as np
from loguru import logger

from portfolio.positions import PositionRecord


class DataUnavailable(Exception):
    """No price for an asset that is held - it cannot be evaluated this cycle."""

    def __init__(self, asset: str, symbol: str):
        self.asset = asset
        self.symbol = symbol
        super().__init__(f"Exchange does not have price for {symbol}")


class PriceMove(IntEnum):
    """Short-term trend. Ordered so that DOWN < FLAT < UP."""
    DOWN = -1
    FLAT = 0
    UP = 1


class PriceAnomaly(IntEnum):
    NONE = 0
    PUMP = 1
    DUMP = 2


class PriceTracker:
    """Feeds prices into records and classifies their movement."""

    def __init__(self, history_size: int = 10):
        self.history_size = history_size

    def push_price(self, record: PositionRecord, price: Optional[float]) -> bool:
        """
        Append a new price observation.

        Returns:
            True if a price was recorded

        Raises:
            DataUnavailable: no price while the record holds quantity
        """
        if not price:
            if record.quantity > 0:
                raise DataUnavailable(record.asset, record.trade.symbol)
            # Nothing bought yet: unlisted or not yet published symbol
            logger.info(f"Exchange does not have price for {record.trade.symbol}")
            return False

        record.price_history.append(float(price))
        if len(record.price_history) > self.history_size:
            del record.price_history[:-self.history_size]

        record.current_price = float(price)
        record.max_observed_price = max(record.max_observed_price, record.current_price)
        return True

    def flatten(self, record: PositionRecord, price: float) -> None:
        """Replace the history with a single level so no limits cross right after a trade."""
        record.price_history = [float(price)] * self.history_size
        record.current_price = float(price)
        record.max_observed_price = max(record.max_observed_price, record.current_price)

    @staticmethod
    def price_move(record: PositionRecord) -> PriceMove:
        """Compare the newest sample with the mean of the (up to two) samples before it."""
        prices = record.price_history[-3:]
        if len(prices) < 2:
            return PriceMove.FLAT

        reference = float(np.mean(prices[:-1]))
        if prices[-1] > reference:
            return PriceMove.UP
        if prices[-1] < reference:
            return PriceMove.DOWN
        return PriceMove.FLAT

    # ===== Crossing detectors =====

    @staticmethod
    def _crossed_up(record: PositionRecord, level: float) -> bool:
        prev = record.previous_price
        return prev is not None and level > 0 and prev <= level < record.current_price

    @staticmethod
    def _crossed_down(record: PositionRecord, level: float) -> bool:
        prev = record.previous_price
        return prev is not None and level > 0 and prev >= level > record.current_price

    def profit_limit_crossed_up(self, record: PositionRecord, profit_limit: float) -> bool:
        return self._crossed_up(record, record.average_price * (1 + profit_limit))

    def stop_limit_crossed_down(self, record: PositionRecord) -> bool:
        return self._crossed_down(record, record.stop_limit_price)

    def entry_price_crossed_up(self, record: PositionRecord) -> bool:
        return self._crossed_up(record, record.average_price)

    # ===== Anomalies =====

    @staticmethod
    def price_anomaly(record: PositionRecord, threshold_pct: float) -> PriceAnomaly:
        """Detect a sudden jump of the newest price against the earlier samples."""
        if threshold_pct <= 0 or len(record.price_history) < 2:
            return PriceAnomaly.NONE

        reference = float(np.mean(record.price_history[:-1]))
        if reference <= 0:
            return PriceAnomaly.NONE

        change_pct = 100 * (record.current_price - reference) / reference
        if change_pct > threshold_pct:
            return PriceAnomaly.PUMP
        if change_pct < -threshold_pct:
            return PriceAnomaly.DUMP
        return PriceAnomaly.NONE
