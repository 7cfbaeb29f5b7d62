"""
PORTFOLIO - Position records and the rules that move them

Components:
- PositionRecord / TradeResult: persisted state of one tracked asset
- PriceTracker: price history, trend and level crossings
- StopLimitCalculator: trailing stop that only ratchets up
- CapitalAllocator: how much to spend on a new position
- FeeNetter: charges commissions to the fee asset
- ReinvestmentPolicy: averaging down into the weakest position
- WithdrawalsManager: taking money out of the trading balance

Usage:
    from portfolio import CapitalAllocator, AllocationConfig, PositionRecord

    allocator = CapitalAllocator(AllocationConfig(min_buy_floor=15))
    allocator.begin_cycle(balance=1000, candidate_count=3, open_positions=0)

    record = PositionRecord.new("BTC", "BTCUSDT")
    spend = allocator.reserve(record)
"""

from portfolio.positions import (
    PositionRecord,
    TradeAction,
    TradeResult,
    TradeState,
)

from portfolio.tracker import (
    DataUnavailable,
    PriceAnomaly,
    PriceMove,
    PriceTracker,
)

from portfolio.stop_limit import StopLimitCalculator

from portfolio.allocator import (
    AllocationConfig,
    CapitalAllocator,
)

from portfolio.fees import FeeNetter
from portfolio.reinvest import ReinvestmentPolicy

from portfolio.withdrawals import (
    WithdrawalRejected,
    WithdrawalsManager,
)


__all__ = [
    # Records
    'PositionRecord',
    'TradeAction',
    'TradeResult',
    'TradeState',

    # Tracking
    'DataUnavailable',
    'PriceAnomaly',
    'PriceMove',
    'PriceTracker',
    'StopLimitCalculator',

    # Capital
    'AllocationConfig',
    'CapitalAllocator',
    'FeeNetter',
    'ReinvestmentPolicy',

    # Withdrawals
    'WithdrawalRejected',
    'WithdrawalsManager',
]
