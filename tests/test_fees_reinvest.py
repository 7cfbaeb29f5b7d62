"""
Test Fee Netter and Reinvestment Policy.
"""

import pytest


class TestFeeNetter:

    def test_commission_charged_to_fee_asset(self, ledger, make_held):
        from portfolio.fees import FeeNetter

        ledger.put("BNB", make_held("BNB", quantity=2.0, paid=1000.0))
        netter = FeeNetter(ledger, {"BNBUSDT": 500.0}, "BNB", "USDT")

        assert netter.net(0.01, make_held("BTC")) is True

        bnb = ledger.get("BNB")
        assert bnb.quantity == pytest.approx(1.99)
        assert bnb.paid_cost == 1000.0

    def test_commission_not_covered_passes_through(self, ledger, make_held):
        from portfolio.fees import FeeNetter

        ledger.put("BNB", make_held("BNB", quantity=0.001, paid=0.5))
        netter = FeeNetter(ledger, {}, "BNB", "USDT")

        assert netter.net(0.01) is False
        assert ledger.get("BNB").quantity == 0.001

    def test_no_fee_record(self, ledger):
        from portfolio.fees import FeeNetter

        netter = FeeNetter(ledger, {}, "BNB", "USDT")

        assert netter.net(0.01) is False
        assert ledger.get("BNB") is None

    def test_fee_asset_traded_itself_is_adjusted_in_place(self, ledger, make_held):
        from portfolio.fees import FeeNetter

        bnb = make_held("BNB", quantity=2.0, paid=1000.0)
        netter = FeeNetter(ledger, {}, "BNB", "USDT")

        assert netter.net(0.5, bnb) is True
        assert bnb.quantity == pytest.approx(1.5)
        assert ledger.get("BNB") is None

    def test_commission_cost(self, ledger):
        from portfolio.fees import FeeNetter

        netter = FeeNetter(ledger, {"BNBUSDT": 500.0}, "BNB", "USDT")
        assert netter.commission_cost(0.002) == pytest.approx(1.0)
        assert netter.commission_cost(0) == 0

    def test_commission_cost_without_price_is_zero(self, ledger):
        from portfolio.fees import FeeNetter

        netter = FeeNetter(ledger, {}, "BNB", "USDT")
        assert netter.commission_cost(0.002) == 0


class TestReinvestmentPolicy:

    @pytest.fixture
    def records(self, make_held):
        # A: -50%, B: -10%, C: +20%
        return [
            make_held("A", quantity=1.0, paid=100.0, history=[50.0]),
            make_held("B", quantity=1.0, paid=100.0, history=[90.0]),
            make_held("C", quantity=1.0, paid=100.0, history=[120.0]),
        ]

    def test_weakest_position_is_chosen(self, records):
        from portfolio.reinvest import ReinvestmentPolicy

        assert ReinvestmentPolicy(enabled=True).select_target(records).asset == "A"

    def test_sold_record_is_excluded(self, records):
        from portfolio.reinvest import ReinvestmentPolicy

        assert ReinvestmentPolicy(enabled=True).select_target(records, exclude="A").asset == "B"

    def test_only_bought_records_qualify(self, records):
        from portfolio.positions import TradeState
        from portfolio.reinvest import ReinvestmentPolicy

        records[0].set_state(TradeState.SELL)
        assert ReinvestmentPolicy(enabled=True).select_target(records).asset == "B"

    def test_ties_go_to_first(self, make_held):
        from portfolio.reinvest import ReinvestmentPolicy

        records = [
            make_held("X", quantity=1.0, paid=100.0, history=[80.0]),
            make_held("Y", quantity=1.0, paid=100.0, history=[80.0]),
        ]
        assert ReinvestmentPolicy(enabled=True).select_target(records).asset == "X"

    def test_disabled(self, records):
        from portfolio.reinvest import ReinvestmentPolicy

        assert ReinvestmentPolicy(enabled=False).select_target(records) is None

    def test_no_candidates(self):
        from portfolio.reinvest import ReinvestmentPolicy

        assert ReinvestmentPolicy(enabled=True).select_target([]) is None
