"""
WITHDRAWALS - Taking money out of the trading balance

A withdrawal lowers the internal settlement balance the allocator works
with. It is rejected when it exceeds either the internal balance or the
balance actually available on the exchange.
"""

from typing import TYPE_CHECKING, Tuple

from loguru import logger

from core.events import EventType, emit_event

if TYPE_CHECKING:
    from execution.broker import ExchangeGateway
    from memory.config_store import ConfigStore
    from memory.statistics import Statistics


class WithdrawalRejected(Exception):
    """The withdrawal exceeds what is available."""


class WithdrawalsManager:

    def __init__(
        self,
        config_store: "ConfigStore",
        exchange: "ExchangeGateway",
        statistics: "Statistics"
    ):
        self._config_store = config_store
        self._exchange = exchange
        self._statistics = statistics

    def add_withdrawal(self, amount: float) -> Tuple[float, float]:
        """
        Record a withdrawal.

        Returns:
            (amount, remaining internal balance)

        Raises:
            WithdrawalRejected: amount is not positive or exceeds a balance
        """
        if amount <= 0:
            raise WithdrawalRejected("Withdrawal amount must be positive.")

        config = self._config_store.get()

        if amount > config.stable_balance:
            raise WithdrawalRejected("Withdrawal amount is greater than the current balance.")

        balance = self._exchange.get_balance(config.settlement_asset)
        if amount > balance:
            raise WithdrawalRejected(
                f"Withdrawal amount is greater than the factual {config.settlement_asset} "
                f"balance on the exchange: {balance:.2f}."
            )

        # Re-read so a cycle finishing in between is not overwritten
        latest = self._config_store.get()
        latest.stable_balance -= amount
        self._statistics.add_withdrawal(amount)
        self._config_store.set(latest)

        logger.info(f"Withdrawal of {amount:.2f} recorded, balance now {latest.stable_balance:.2f}")
        emit_event(EventType.WITHDRAWAL, "withdrawals", amount=amount, balance=latest.stable_balance)
        return amount, latest.stable_balance
