"""
STOP-LIMIT CALCULATOR - Ratcheting trailing stop

The stop limit is the price below which a held position is sold. It is
recomputed every cycle and only ever moves up:

    avg  = mean of the last 3 prices
    P    = profit / paid                       (current profit fraction)
    PG   = ChannelSize * 0.9 / FGI             (profit goal, 90%..30% of the channel)
    K    = min(0.99, 1 - ChannelSize + max(0, P * ChannelSize / PG))
    A    = min(K * avg, current price)         (profit convergence)

    maxTTL = ChannelWindowMins / FGI
    k2     = min(0.99, min(ttl, maxTTL) / maxTTL)
    B      = min(k2 * avg, current price)      (time convergence)

    stop = max(stop, A, B)

Profit convergence protects realized gains: the closer the profit gets to
the top of the channel, the closer K gets to 0.99. Time convergence
bounds holding risk even for a flat position.

A fresh position (stop == 0) is seeded from the channel low supplied by
the candidate source when one is available.
"""

from typing import Optional

import numpy as np
from loguru import logger

from config.loader import TradingConfig
from core.invariants import INVARIANTS
from portfolio.positions import PositionRecord


class StopLimitCalculator:
    """Computes the trailing stop trigger for BOUGHT records."""

    def __init__(self, config: TradingConfig):
        self.channel_size = config.channel_size
        self.fgi = config.fear_greed_index
        self.channel_window_mins = config.channel_window_mins
        self.stop_limit = config.stop_limit

    @property
    def profit_goal(self) -> float:
        return self.channel_size * INVARIANTS.PROFIT_GOAL_SHARE / self.fgi

    @property
    def max_ttl(self) -> float:
        return self.channel_window_mins / self.fgi

    def profit_factor(self, record: PositionRecord) -> float:
        """K: how far below the average price the stop sits."""
        p = record.profit() / record.paid_cost if record.paid_cost > 0 else 0.0
        k = 1 - self.channel_size + max(0.0, p * self.channel_size / self.profit_goal)
        return min(INVARIANTS.MAX_STOP_FACTOR, k)

    def time_factor(self, record: PositionRecord) -> float:
        """k2: share of the holding window already used up."""
        cur_ttl = min(record.ttl, self.max_ttl)
        return min(INVARIANTS.MAX_STOP_FACTOR, cur_ttl / self.max_ttl)

    def compute(self, record: PositionRecord, channel_low: Optional[float] = None) -> float:
        """Recompute and store the stop limit. Returns the new value."""
        if record.stop_limit_price == 0 and channel_low:
            record.stop_limit_price = min(float(channel_low), record.current_price)
            logger.debug(f"{record.asset} stop limit seeded from channel low: {record.stop_limit_price}")
            return record.stop_limit_price

        window = record.price_history[-INVARIANTS.STOP_LIMIT_WINDOW:]
        if not window:
            return record.stop_limit_price

        avg_price = float(np.mean(window))
        current = record.current_price

        candidates = [
            min(self.profit_factor(record) * avg_price, current),
            min(self.time_factor(record) * avg_price, current),
        ]

        if self.stop_limit > 0 and len(record.price_history) >= INVARIANTS.STOP_LIMIT_WINDOW:
            back = record.price_history[-INVARIANTS.STOP_LIMIT_WINDOW]
            candidates.append(min(back * (1 - self.stop_limit), current))

        record.stop_limit_price = max(record.stop_limit_price, *candidates)
        return record.stop_limit_price

    def force_reset(self, record: PositionRecord, channel_low: Optional[float] = None) -> float:
        """Restart the trailing stop right after a buy."""
        record.ttl = 0
        record.stop_limit_price = 0.0
        return self.compute(record, channel_low)
