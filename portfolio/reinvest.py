"""
REINVESTMENT POLICY - Averaging down

After a profitable (or any) sale, the full proceeds can be put into the
weakest open position instead of waiting for a new candidate. The
target is the BOUGHT record with the lowest profit percentage; ties go
to the first record encountered so the choice is deterministic.
"""

from typing import Iterable, Optional

from loguru import logger

from portfolio.positions import PositionRecord, TradeState


class ReinvestmentPolicy:
    """Selects where realized gains are reinvested."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled

    def select_target(
        self,
        records: Iterable[PositionRecord],
        exclude: Optional[str] = None
    ) -> Optional[PositionRecord]:
        """Lowest profit percentage among open positions, or None."""
        if not self.enabled:
            return None

        target: Optional[PositionRecord] = None
        for record in records:
            if record.asset == exclude or not record.state_is(TradeState.BOUGHT):
                continue
            if target is None or record.profit_percent() < target.profit_percent():
                target = record

        if target:
            logger.debug(f"Averaging down target: {target.asset} ({target.profit_percent():.2f}%)")
        return target
