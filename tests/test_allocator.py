"""
Test Capital Allocator - invest ratio, spend proposals and balance accounting.
"""

import pytest


@pytest.fixture
def allocator():
    from portfolio.allocator import AllocationConfig, CapitalAllocator
    return CapitalAllocator(AllocationConfig(min_buy_floor=15))


class TestInvestRatio:

    @pytest.mark.parametrize("candidates,ratio", [(0, 2), (1, 2), (3, 3), (4, 4), (12, 4)])
    def test_ratio_is_clamped(self, allocator, candidates, ratio):
        allocator.begin_cycle(1000, candidates, 0)
        assert allocator.optimal_invest_ratio == ratio
        assert allocator.can_invest == ratio

    def test_empty_ledger_single_candidate(self, allocator):
        from portfolio.positions import PositionRecord

        allocator.begin_cycle(1000, 1, 0)
        spend = allocator.reserve(PositionRecord.new("XYZ", "XYZUSDT"))

        assert allocator.can_invest == 2
        assert spend == 500
        assert allocator.can_afford(spend)

    def test_first_cycle_with_open_positions(self, allocator):
        allocator.begin_cycle(1000, 3, 1)
        assert allocator.can_invest == 2

    def test_first_cycle_with_more_positions_than_slots(self, allocator):
        allocator.begin_cycle(1000, 2, 5)
        assert allocator.can_invest == 0

    def test_slots_carry_over_between_cycles(self, allocator):
        allocator.begin_cycle(1000, 2, 0)
        allocator.on_buy(500)
        allocator.begin_cycle(500, 2, 1)
        assert allocator.can_invest == 1

    def test_ratio_shrink_clamps_slots(self, allocator):
        allocator.begin_cycle(1000, 4, 1)
        assert allocator.can_invest == 3
        allocator.begin_cycle(1000, 2, 1)
        assert allocator.can_invest == 2


class TestReserve:

    def test_no_slot_no_spend(self, allocator):
        from portfolio.positions import PositionRecord

        allocator.begin_cycle(1000, 2, 2)
        assert allocator.reserve(PositionRecord.new("XYZ", "XYZUSDT")) == 0

    def test_held_record_gets_nothing(self, allocator, make_held):
        allocator.begin_cycle(1000, 2, 0)
        assert allocator.reserve(make_held()) == 0

    def test_min_buy_floor(self, allocator):
        from portfolio.positions import PositionRecord

        allocator.begin_cycle(20, 2, 0)
        assert allocator.reserve(PositionRecord.new("XYZ", "XYZUSDT")) == 15

    def test_floor_above_balance_is_not_affordable(self, allocator):
        from portfolio.positions import PositionRecord

        allocator.begin_cycle(10, 1, 0)
        spend = allocator.reserve(PositionRecord.new("XYZ", "XYZUSDT"))

        assert spend == 15
        assert not allocator.can_afford(spend)

    def test_spend_never_exceeds_balance_when_affordable(self, allocator):
        from portfolio.positions import PositionRecord

        for balance in [15, 16, 31, 99.5, 1000, 12345.67]:
            allocator.begin_cycle(balance, 3, 0)
            spend = allocator.reserve(PositionRecord.new("XYZ", "XYZUSDT"))
            if allocator.can_afford(spend):
                assert spend <= balance


class TestAccounting:

    def test_buy_and_sell(self, allocator):
        allocator.begin_cycle(1000, 2, 0)

        allocator.on_buy(500)
        assert allocator.available_balance == 500
        assert allocator.can_invest == 1

        allocator.on_sell(550)
        assert allocator.available_balance == 1050
        assert allocator.can_invest == 2

    def test_sell_never_exceeds_ratio(self, allocator):
        allocator.begin_cycle(1000, 2, 0)
        allocator.on_sell(10)
        assert allocator.can_invest == 2

    def test_reinvestment_keeps_slot(self, allocator):
        allocator.begin_cycle(1000, 2, 0)
        allocator.on_buy(100, consume_slot=False)
        assert allocator.can_invest == 2
        assert allocator.available_balance == 900

    def test_negative_balance_is_an_invariant_violation(self, allocator):
        from core.invariants import InvariantViolation

        allocator.begin_cycle(100, 2, 0)
        with pytest.raises(InvariantViolation):
            allocator.on_buy(150)
        assert allocator.available_balance == 100

    def test_settled_fill_over_balance_drains_it(self, allocator):
        allocator.begin_cycle(100, 2, 1)

        overdraw = allocator.settle_buy(101)

        assert overdraw == pytest.approx(1.0)
        assert allocator.available_balance == 0
        assert allocator.can_invest == 0

    def test_settled_fill_within_balance(self, allocator):
        allocator.begin_cycle(1000, 2, 0)
        assert allocator.settle_buy(400, consume_slot=False) == 0
        assert allocator.available_balance == 600
        assert allocator.can_invest == 2

    def test_stats(self, allocator):
        allocator.begin_cycle(1000, 3, 0)
        stats = allocator.get_stats()
        assert stats["can_invest"] == 3
        assert stats["available_balance"] == 1000
