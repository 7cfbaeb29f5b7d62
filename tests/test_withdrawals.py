"""
Test Withdrawals - taking money out of the trading balance.
"""

import pytest


@pytest.fixture
def manager(config_store, broker, statistics):
    from portfolio.withdrawals import WithdrawalsManager
    return WithdrawalsManager(config_store, broker, statistics)


class TestWithdrawals:

    def test_withdrawal_reduces_balance(self, manager, config_store, statistics, bus):
        from core.events import EventType

        amount, balance = manager.add_withdrawal(200.0)

        assert amount == 200.0
        assert balance == 800.0
        assert config_store.get().stable_balance == 800.0
        assert statistics.get_all().total_withdrawals == 200.0
        assert bus.get_recent_events(EventType.WITHDRAWAL)

    def test_more_than_internal_balance_is_rejected(self, manager, config_store):
        from portfolio.withdrawals import WithdrawalRejected

        with pytest.raises(WithdrawalRejected):
            manager.add_withdrawal(1500.0)
        assert config_store.get().stable_balance == 1000.0

    def test_more_than_exchange_balance_is_rejected(self, manager, broker, statistics):
        from portfolio.withdrawals import WithdrawalRejected

        broker.balances["USDT"] = 100.0
        with pytest.raises(WithdrawalRejected, match="factual"):
            manager.add_withdrawal(200.0)
        assert statistics.get_all().total_withdrawals == 0

    @pytest.mark.parametrize("amount", [0, -5.0])
    def test_non_positive_amount_is_rejected(self, manager, amount):
        from portfolio.withdrawals import WithdrawalRejected

        with pytest.raises(WithdrawalRejected):
            manager.add_withdrawal(amount)
