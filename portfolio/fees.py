"""
FEE NETTER - Charges commissions to the fee-paying asset

Exchanges like Binance take trading fees from a designated asset balance
(BNB). When the engine tracks that asset itself, every commission is
deducted from its quantity while its cost basis stays untouched, so the
fee shows up as the fee asset's own loss and the traded asset's result
stays clean.
"""

from typing import TYPE_CHECKING, Dict, Optional

from loguru import logger

from portfolio.positions import PositionRecord

if TYPE_CHECKING:
    from memory.ledger import LedgerStore


class FeeNetter:
    """Offsets commissions against the fee-asset record."""

    def __init__(
        self,
        ledger: "LedgerStore",
        prices: Dict[str, float],
        fee_asset: str,
        settlement_asset: str
    ):
        self._ledger = ledger
        self._prices = prices
        self.fee_asset = fee_asset
        self.settlement_asset = settlement_asset

    @property
    def fee_symbol(self) -> str:
        return f"{self.fee_asset}{self.settlement_asset}"

    def net(self, commission: float, current: Optional[PositionRecord] = None) -> bool:
        """
        Deduct a commission from the fee-asset record.

        Args:
            commission: Fee in fee-asset units
            current: The record being traded right now, adjusted in place
                when it is the fee asset itself

        Returns:
            True if the fee asset absorbed the commission
        """
        if commission <= 0:
            return False

        if current is not None and current.asset == self.fee_asset:
            return self._charge(current, commission)

        charged = False

        def charge(record: PositionRecord) -> PositionRecord:
            nonlocal charged
            charged = self._charge(record, commission)
            return record

        if self._ledger.get(self.fee_asset) is not None:
            self._ledger.update(self.fee_asset, charge)
        return charged

    def _charge(self, record: PositionRecord, commission: float) -> bool:
        if record.quantity < commission:
            logger.debug(
                f"{self.fee_asset} holding {record.quantity} cannot cover commission {commission}"
            )
            return False
        # Quantity goes down, cost basis stays: the fee is the fee asset's loss
        record.trade.add_quantity(-commission, 0)
        logger.info(f"{self.fee_asset} balance updated by {-commission}")
        return True

    def commission_cost(self, commission: float) -> float:
        """
        Commission value in settlement currency.

        Without a fee-asset price the cost is taken as zero.
        """
        if commission <= 0:
            return 0.0
        price = self._prices.get(self.fee_symbol)
        if not price:
            logger.debug(f"No {self.fee_symbol} price, commission cost approximated as 0")
            return 0.0
        return commission * price
