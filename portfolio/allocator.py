"""
CAPITAL ALLOCATOR - Bounded capital across concurrent positions

The spendable settlement balance is split between a small number of
concurrently open positions:

    optimal_invest_ratio = clamp(candidate count, 2, 4)
    can_invest           = positions that may still be opened (credits)
    spend                = max(MinBuyFloor, floor(balance / can_invest))

A buy consumes one credit, a sell returns one. When nothing is held the
credits reset to the optimal ratio.

The allocator only proposes a spend. The caller must check the spend
fits the available balance before executing; otherwise the buy is
abandoned (not an error) and retried on the next cycle.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from core.invariants import (
    INVARIANTS,
    InvariantViolation,
    clamp_invest_ratio,
    enforce_non_negative_balance,
)
from portfolio.positions import PositionRecord


@dataclass
class AllocationConfig:
    """Configuration for capital allocation."""
    min_buy_floor: float = INVARIANTS.DEFAULT_MIN_BUY_FLOOR


class CapitalAllocator:
    """
    Tracks spendable balance and the number of fundable positions.

    Lives across cycles; ``begin_cycle`` refreshes it from the balance
    resolved by the coordinator.
    """

    def __init__(self, config: Optional[AllocationConfig] = None):
        self.config = config or AllocationConfig()

        self.available_balance: float = 0.0
        self.can_invest: int = 0
        self.optimal_invest_ratio: int = INVARIANTS.MIN_INVEST_RATIO
        self._initialized = False

        logger.info(f"CapitalAllocator initialized (min buy {self.config.min_buy_floor})")

    def begin_cycle(self, balance: float, candidate_count: int, open_positions: int) -> None:
        """Size the allocator for a new evaluation cycle."""
        self.available_balance = balance
        self.optimal_invest_ratio = clamp_invest_ratio(candidate_count)

        if open_positions == 0:
            # Nothing held: every slot is free again
            self.can_invest = self.optimal_invest_ratio
        elif not self._initialized:
            self.can_invest = self.optimal_invest_ratio - open_positions

        self.can_invest = max(0, min(self.optimal_invest_ratio, self.can_invest))
        self._initialized = True

        logger.debug(
            f"Allocator cycle: balance={balance:.2f}, ratio={self.optimal_invest_ratio}, "
            f"can_invest={self.can_invest}, open={open_positions}"
        )

    def reserve(self, record: PositionRecord) -> float:
        """
        Propose how much to spend on a new position.

        Returns:
            0 if no slot is free or the record already holds quantity
        """
        if self.can_invest <= 0 or record.quantity > 0:
            return 0.0
        return max(
            self.config.min_buy_floor,
            math.floor(self.available_balance / self.can_invest)
        )

    def can_afford(self, spend: float) -> bool:
        return 0 < spend <= self.available_balance

    def on_buy(self, cost: float, consume_slot: bool = True) -> None:
        """Account for an executed buy."""
        remaining = self.available_balance - cost
        try:
            enforce_non_negative_balance(remaining)
        except InvariantViolation:
            logger.error(f"Buy of {cost:.2f} exceeds available balance {self.available_balance:.2f}")
            raise

        if consume_slot:
            self.can_invest = max(0, self.can_invest - 1)
        self.available_balance = remaining

    def settle_buy(self, paid: float, consume_slot: bool = True) -> float:
        """
        Account for a buy the exchange already filled.

        A fill can cost more than the balance left (slippage, rounding on
        the exchange side). The balance is then drained to zero instead of
        raising.

        Returns:
            The part of `paid` not covered by the available balance
        """
        overdraw = max(0.0, paid - self.available_balance)
        if overdraw > 0:
            logger.warning(
                f"Filled buy of {paid:.2f} exceeds available balance "
                f"{self.available_balance:.2f} by {overdraw:.2f}"
            )
        self.on_buy(paid - overdraw, consume_slot=consume_slot)
        return overdraw

    def on_sell(self, gained: float) -> None:
        """Account for an executed sell."""
        self.can_invest = min(self.optimal_invest_ratio, self.can_invest + 1)
        self.available_balance += gained

    def get_stats(self) -> Dict[str, Any]:
        return {
            "available_balance": self.available_balance,
            "can_invest": self.can_invest,
            "optimal_invest_ratio": self.optimal_invest_ratio,
            "min_buy_floor": self.config.min_buy_floor,
        }
