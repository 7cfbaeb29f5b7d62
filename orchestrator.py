"""
ORCHESTRATOR - Portfolio coordinator

Runs one evaluation cycle over every tracked position:

1. Load config
   - Read the live trading config from the store
   - Resolve the settlement balance (query the exchange when unset)

2. Size
   - Derive the invest ratio from the candidate count
   - Refresh the capital allocator

3. Signals
   - buy  -> create the record if needed and mark it BUY
   - sell -> mark held records SELL

4. Evaluate
   - Order records (random live, sorted for reproducible runs)
   - Pending sells and monitoring first, buys last
   - Each record inside one atomic ledger update; a failure in one
     asset never stops the others

5. Reconcile
   - Add the cycle's balance change to the stored config
   - Report the cycle
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from config.loader import TradingConfig
from core.events import EventBus, EventType, emit_alert, emit_event
from execution.broker import ExchangeGateway
from execution.engine import DecisionEngine
from memory.config_store import ConfigStore
from memory.ledger import LedgerStore
from memory.statistics import Statistics
from perception.feeds import PriceFeed, SignalSource
from portfolio import AllocationConfig, CapitalAllocator, PositionRecord, TradeAction, TradeState


SOURCE = "coordinator"


class OrderingPolicy(ABC):
    """Order in which records are evaluated within a cycle."""

    @abstractmethod
    def order(self, records: List[PositionRecord]) -> List[PositionRecord]:
        pass


class RandomOrdering(OrderingPolicy):
    """Shuffled order, so no asset is always funded first."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def order(self, records: List[PositionRecord]) -> List[PositionRecord]:
        shuffled = list(records)
        self._rng.shuffle(shuffled)
        return shuffled


class SortedOrdering(OrderingPolicy):
    """Alphabetical by asset."""

    def order(self, records: List[PositionRecord]) -> List[PositionRecord]:
        return sorted(records, key=lambda r: r.asset)


@dataclass
class CycleReport:
    """Outcome of one trading cycle."""
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    balance_start: float = 0.0
    balance_end: float = 0.0
    processed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    bought: List[str] = field(default_factory=list)
    sold: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "balance_start": self.balance_start,
            "balance_end": self.balance_end,
            "processed": list(self.processed),
            "failed": list(self.failed),
            "bought": list(self.bought),
            "sold": list(self.sold),
        }


class PortfolioCoordinator:
    """
    Drives the decision engine over the whole ledger once per cycle.

    The allocator lives as long as the coordinator, so the number of free
    investment slots carries over between cycles of the same process.
    """

    def __init__(
        self,
        exchange: ExchangeGateway,
        ledger: LedgerStore,
        config_store: ConfigStore,
        price_feed: PriceFeed,
        signal_source: SignalSource,
        statistics: Optional[Statistics] = None,
        ordering: Optional[OrderingPolicy] = None,
        event_bus: Optional[EventBus] = None
    ):
        self._exchange = exchange
        self._ledger = ledger
        self._config_store = config_store
        self._price_feed = price_feed
        self._signals = signal_source
        self._statistics = statistics
        self._ordering = ordering or RandomOrdering()
        self._bus = event_bus

        self._allocator: Optional[CapitalAllocator] = None
        self._config: Optional[TradingConfig] = None
        self._balance_at_start: float = 0.0
        self._last_report: Optional[CycleReport] = None

        logger.info(f"PortfolioCoordinator created ({type(self._ordering).__name__})")

    @property
    def allocator(self) -> Optional[CapitalAllocator]:
        return self._allocator

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    # ===== Cycle =====

    def trade(self) -> CycleReport:
        """Run one full evaluation cycle."""
        report = CycleReport()
        engine = self._begin()
        report.balance_start = self._balance_at_start
        emit_event(EventType.CYCLE_STARTED, SOURCE, self._bus, balance=self._balance_at_start)

        self._apply_signals()

        records = [
            r for r in self._ledger.iterate_all()
            if not r.deleted or self._config.swing_trade_enabled
        ]
        records = self._ordering.order(records)
        # Sells free up money and slots before new buys are funded
        queue = [r for r in records if not r.state_is(TradeState.BUY)]
        queue += [r for r in records if r.state_is(TradeState.BUY)]

        for record in queue:
            if self._process(record.asset, engine.process):
                report.processed.append(record.asset)
            else:
                report.failed.append(record.asset)

        self._persist_balance()

        for action, asset in engine.executed:
            (report.bought if action == "buy" else report.sold).append(asset)
        report.balance_end = self._allocator.available_balance
        report.finished_at = datetime.now()
        self._last_report = report

        logger.info(
            f"Cycle done: {len(report.processed)} processed, {len(report.failed)} failed, "
            f"bought {report.bought or '-'}, sold {report.sold or '-'}, "
            f"balance {report.balance_end:.2f}"
        )
        emit_event(EventType.CYCLE_COMPLETED, SOURCE, self._bus, **report.to_dict())
        return report

    def sell_all(self, sell_now: bool = False) -> List[str]:
        """
        Liquidation mode: every held position is marked for sale.

        With ``sell_now`` the sales are executed right away instead of
        waiting for the next cycles.

        Returns:
            Assets marked (or sold)
        """
        engine = self._begin()
        # Liquidation proceeds stay in the settlement asset
        engine.reinvestment.enabled = False
        marked: List[str] = []

        def liquidate(record: PositionRecord) -> PositionRecord:
            record.reset_state()
            if record.quantity > 0:
                record.set_state(TradeState.SELL)
                marked.append(record.asset)
                if sell_now:
                    engine.sell(record)
            return record

        for key in self._ledger.keys():
            self._process(key, liquidate)

        self._persist_balance()
        emit_alert(
            f"Liquidation {'executed' if sell_now else 'requested'} for: {', '.join(marked) or 'nothing'}",
            SOURCE, self._bus
        )
        return marked

    def _begin(self) -> DecisionEngine:
        self._config = self._config_store.get()
        if self._allocator is None:
            self._allocator = CapitalAllocator(AllocationConfig(min_buy_floor=self._config.min_buy_floor))
        else:
            self._allocator.config.min_buy_floor = self._config.min_buy_floor

        balance = self._init_balance()
        self._allocator.begin_cycle(
            balance,
            self._signals.candidate_count(),
            self._ledger.count_investments()
        )

        return DecisionEngine(
            self._config,
            self._exchange,
            self._ledger,
            self._price_feed.get_prices(),
            self._allocator,
            statistics=self._statistics,
            signals=self._signals,
            event_bus=self._bus
        )

    def _process(self, key: str, mutator) -> bool:
        try:
            self._ledger.update(key, mutator)
            return True
        except Exception as e:
            logger.exception(f"Failed to trade {key}")
            emit_alert(f"Failed to trade {key}: {e}", SOURCE, self._bus, severity="warning", asset=key)
            return False

    # ===== Balance =====

    def _init_balance(self) -> float:
        if self._config.stable_balance == -1:
            self._config.stable_balance = self._exchange.get_balance(self._config.settlement_asset)
            logger.info(
                f"Stable balance taken from the exchange: {self._config.stable_balance:.2f} "
                f"{self._config.settlement_asset}"
            )
        self._balance_at_start = self._config.stable_balance
        return self._balance_at_start

    def _persist_balance(self) -> None:
        """Add this cycle's balance change to the freshly stored config."""
        diff = self._allocator.available_balance - self._balance_at_start
        fresh = self._config_store.get()
        if fresh.stable_balance == -1:
            # First reconciliation: materialize the exchange balance
            fresh.stable_balance = self._balance_at_start
        elif diff == 0:
            return
        fresh.stable_balance += diff
        self._config_store.set(fresh)
        self._config = fresh
        self._balance_at_start = fresh.stable_balance

        logger.info(f"Balance reconciled: {diff:+.2f} -> {fresh.stable_balance:.2f}")
        emit_event(EventType.BALANCE_RECONCILED, SOURCE, self._bus, diff=diff, balance=fresh.stable_balance)

    # ===== Signals =====

    def _apply_signals(self) -> None:
        for asset, action in self._signals.get_signals().items():
            if action == TradeAction.BUY:
                self._set_buy_state(asset)
            elif action == TradeAction.SELL:
                self._set_sell_state(asset)

    def _set_buy_state(self, asset: str) -> None:
        symbol = f"{asset}{self._config.settlement_asset}"

        def mark_buy(record: PositionRecord) -> Optional[PositionRecord]:
            # Held positions are not topped up by signals
            if record.quantity > 0:
                return None
            record.set_state(TradeState.BUY)
            record.deleted = False
            return record

        self._process_signal(asset, mark_buy, lambda: PositionRecord.new(asset, symbol))
        logger.debug(f"{asset} marked to buy")

    def _set_sell_state(self, asset: str) -> None:
        def mark_sell(record: PositionRecord) -> Optional[PositionRecord]:
            if record.quantity <= 0:
                return None
            record.set_state(TradeState.SELL)
            return record

        self._process_signal(asset, mark_sell)

    def _process_signal(self, asset: str, mutator, on_absent=None) -> None:
        try:
            self._ledger.update(asset, mutator, on_absent)
        except Exception as e:
            logger.exception(f"Failed to apply signal for {asset}")
            emit_alert(f"Failed to apply signal for {asset}: {e}", SOURCE, self._bus, severity="warning")

    # ===== Operator paths =====

    def release_hodl(self, asset: str) -> bool:
        """Clear the HODL flag so the position is managed automatically again."""
        def release(record: PositionRecord) -> Optional[PositionRecord]:
            if not record.hodl:
                return None
            record.hodl = False
            return record

        released = self._ledger.update(asset, release) is not None
        if released:
            emit_alert(f"{asset} released from HODL", SOURCE, self._bus)
        else:
            logger.info(f"{asset} is not on HODL")
        return released

    def purge_deleted(self) -> List[str]:
        return self._ledger.purge_deleted()

    # ===== Status =====

    def get_status(self) -> Dict[str, Any]:
        config = self._config or self._config_store.get()
        status = {
            "settlement_asset": config.settlement_asset,
            "stable_balance": config.stable_balance,
            "positions": [r.to_dict() for r in self._ledger.iterate_all(include_deleted=False)],
            "allocator": self._allocator.get_stats() if self._allocator else None,
            "last_cycle": self._last_report.to_dict() if self._last_report else None,
        }
        if self._statistics is not None:
            status["statistics"] = self._statistics.get_all().to_dict()
        return status
