"""
DECISION ENGINE - Per-asset state machine

Each cycle, every position record goes through:

1. Price update. A held asset without a price is skipped for the cycle.
2. BOUGHT: age the position, ratchet the stop limit, and request a SELL
   when the price falls under the stop limit or rises over the profit
   limit (unless the record is marked HODL).
3. SOLD: with swing trading on, request a BUY again once the price has
   dropped far enough below the high-water mark.
4. Action:
   - SELL is executed once the price stops rising
   - BUY is executed once the price stops falling, if the allocator has
     a slot and the balance covers the spend; otherwise the request is
     dropped and retried on a later cycle.

    IDLE --buy signal--> BUY --filled--> BOUGHT --stop/profit/signal--> SELL
      ^                   |                ^                             |
      +-----not funded----+                +--------sell failed (HODL)---+
                                                                         v
                         BUY <--------swing re-entry----------------- SOLD

Trades go through the exchange gateway; a failed trade is detected only
through ``TradeResult.success``.
"""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from config.loader import TradingConfig
from core.events import EventBus, EventType, emit_alert, emit_event
from execution.broker import ExchangeGateway, ExchangeSymbol
from memory.ledger import LedgerStore
from memory.statistics import Statistics
from perception.feeds import SignalSource
from portfolio.allocator import CapitalAllocator
from portfolio.fees import FeeNetter
from portfolio.positions import PositionRecord, TradeResult, TradeState
from portfolio.reinvest import ReinvestmentPolicy
from portfolio.stop_limit import StopLimitCalculator
from portfolio.tracker import DataUnavailable, PriceAnomaly, PriceMove, PriceTracker


SOURCE = "engine"


class DecisionEngine:
    """
    Sequences tracker, stop limit, allocator, fees and reinvestment into
    buy/sell actions for one record at a time.

    Built per cycle by the coordinator with that cycle's config and prices.
    """

    def __init__(
        self,
        config: TradingConfig,
        exchange: ExchangeGateway,
        ledger: LedgerStore,
        prices: Dict[str, float],
        allocator: CapitalAllocator,
        statistics: Optional[Statistics] = None,
        signals: Optional[SignalSource] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.config = config
        self._exchange = exchange
        self._ledger = ledger
        self._prices = prices
        self._allocator = allocator
        self._statistics = statistics
        self._signals = signals
        self._bus = event_bus

        self.tracker = PriceTracker(config.price_history_size)
        self.stop_limits = StopLimitCalculator(config)
        self.fees = FeeNetter(ledger, prices, config.fee_asset, config.settlement_asset)
        self.reinvestment = ReinvestmentPolicy(config.averaging_down)

        # (action, asset) of every executed trade
        self.executed: List[Tuple[str, str]] = []

    def symbol_for(self, record: PositionRecord) -> ExchangeSymbol:
        return ExchangeSymbol(record.asset, self.config.settlement_asset)

    def _channel_low(self, record: PositionRecord) -> Optional[float]:
        return self._signals.channel_low(record.asset) if self._signals else None

    # ===== Cycle step =====

    def process(self, record: PositionRecord) -> PositionRecord:
        """Run one evaluation cycle for a record. Returns the mutated record."""
        try:
            self._push_price(record)
        except DataUnavailable as e:
            emit_alert(
                f"{e}. {record.asset} is not evaluated this cycle.",
                SOURCE, self._bus, severity="warning", asset=record.asset
            )
            emit_event(EventType.DATA_UNAVAILABLE, SOURCE, self._bus, asset=record.asset)
            return record

        if record.state_is(TradeState.BOUGHT):
            self._process_bought(record)
        elif record.state_is(TradeState.SOLD):
            self._process_sold(record)

        price_move = self.tracker.price_move(record)
        if price_move == PriceMove.UP:
            logger.debug(f"{record.asset} price goes up")

        if record.state_is(TradeState.SELL):
            # Wait while the price keeps going up
            if price_move < PriceMove.UP or self.tracker.stop_limit_crossed_down(record):
                self.sell(record)
        elif record.state_is(TradeState.BUY):
            # Wait while the price keeps going down; stable assets do not move
            if price_move > PriceMove.DOWN or self.config.is_stable(record.asset):
                self._fund_and_buy(record)

        return record

    def _push_price(self, record: PositionRecord) -> None:
        price = self._prices.get(str(self.symbol_for(record)))
        if not price and self.config.is_stable(record.asset):
            return

        if not self.tracker.push_price(record, price):
            return

        anomaly = self.tracker.price_anomaly(record, self.config.price_anomaly_alert)
        if anomaly != PriceAnomaly.NONE:
            emit_alert(
                f"{record.asset} price {anomaly.name} detected at {record.current_price}",
                SOURCE, self._bus, asset=record.asset
            )
            emit_event(
                EventType.PRICE_ANOMALY, SOURCE, self._bus,
                asset=record.asset, anomaly=anomaly.name, price=record.current_price
            )

    def _process_bought(self, record: PositionRecord) -> None:
        record.ttl += 1
        self.stop_limits.compute(record, self._channel_low(record))

        if record.hodl:
            return

        self._send_level_crossing_alerts(record)

        if record.current_price < record.stop_limit_price and self.config.sell_at_stop_limit:
            record.set_state(TradeState.SELL)

        profit_limit_price = record.average_price * (1 + self.config.profit_limit)
        if record.current_price > profit_limit_price and self.config.sell_at_profit_limit:
            record.set_state(TradeState.SELL)

    def _send_level_crossing_alerts(self, record: PositionRecord) -> None:
        price = record.current_price
        if self.tracker.profit_limit_crossed_up(record, self.config.profit_limit):
            message, event_type = f"{record.asset} profit limit crossed up at {price}", EventType.PROFIT_LIMIT_CROSSED
        elif self.tracker.stop_limit_crossed_down(record):
            message, event_type = f"{record.asset} stop limit crossed down at {price}", EventType.STOP_LIMIT_CROSSED
        elif self.tracker.entry_price_crossed_up(record):
            message, event_type = f"{record.asset} entry price crossed up at {price}", EventType.ENTRY_PRICE_CROSSED
        else:
            return
        emit_alert(message, SOURCE, self._bus, asset=record.asset)
        emit_event(event_type, SOURCE, self._bus, asset=record.asset, price=price)

    def _process_sold(self, record: PositionRecord) -> None:
        if not self.config.swing_trade_enabled:
            return

        threshold = record.max_observed_price * (1 - self.config.profit_limit)
        if record.current_price < threshold:
            emit_alert(f"{record.asset} will be bought again as price dropped sufficiently", SOURCE, self._bus)
            record.set_state(TradeState.BUY)
            record.deleted = False
        else:
            logger.debug(f"{record.asset} price has not dropped sufficiently, skipping swing trade")

    def _fund_and_buy(self, record: PositionRecord) -> None:
        spend = self._allocator.reserve(record)
        if self._allocator.can_afford(spend):
            self.buy(record, spend)
        else:
            logger.info(
                f"Can't buy {record.asset} - not enough balance or invest ratio would be exceeded "
                f"(spend={spend}, balance={self._allocator.available_balance:.2f})"
            )
            record.reset_state()

    # ===== Execution =====

    def buy(self, record: PositionRecord, cost: float, reinvest: bool = False) -> bool:
        """Market-buy for `cost` and merge the fill into the record."""
        symbol = self.symbol_for(record)
        result = self._exchange.market_buy(symbol, cost)

        if not result.success:
            emit_alert(
                f"{record.asset} could not be bought: {result}",
                SOURCE, self._bus, severity="warning", asset=record.asset
            )
            emit_event(EventType.ORDER_REJECTED, SOURCE, self._bus, asset=record.asset, side="buy")
            record.reset_state()
            return False

        was_open = record.quantity > 0
        overdraw = self._allocator.settle_buy(result.paid, consume_slot=not reinvest)
        if overdraw > 0:
            emit_alert(
                f"{record.asset} buy cost {result.paid:.2f}, {overdraw:.2f} more than the available balance. "
                f"Balance set to 0.",
                SOURCE, self._bus, severity="warning", asset=record.asset
            )

        try:
            if self.fees.net(result.commission, record):
                result.commission = 0.0
            record.trade.join(result)
            record.trade.symbol = str(symbol)
            # Flatten prices so no limit is crossed right after the trade
            self.tracker.flatten(record, result.price)
            self.stop_limits.force_reset(record, self._channel_low(record))
        except Exception:
            # The exchange already filled the order, the record must still say BOUGHT
            logger.exception(f"Post-trade bookkeeping failed for {record.asset}")
        finally:
            record.set_state(TradeState.BOUGHT)
            record.deleted = False

        self.executed.append(("buy", record.asset))
        emit_alert(f"{record.asset} asset average price: {record.average_price}", SOURCE, self._bus)
        emit_event(EventType.ORDER_FILLED, SOURCE, self._bus, asset=record.asset, side="buy", paid=result.paid)
        emit_event(
            EventType.POSITION_UPDATED if was_open else EventType.POSITION_OPENED,
            SOURCE, self._bus, asset=record.asset, quantity=record.quantity, price=record.average_price
        )
        logger.debug(str(record))
        return True

    def sell(self, record: PositionRecord) -> bool:
        """Market-sell the full quantity against the settlement asset."""
        symbol = self.symbol_for(record)
        result = self._exchange.market_sell(symbol, record.quantity)

        if not result.success:
            record.hodl = True
            record.set_state(TradeState.BOUGHT)
            emit_alert(
                f"An issue happened while selling {symbol}. The asset is marked HODL. "
                f"Please, resolve it manually. {result}",
                SOURCE, self._bus, severity="warning", asset=record.asset
            )
            emit_event(EventType.ORDER_REJECTED, SOURCE, self._bus, asset=record.asset, side="sell")
            return False

        paid = record.paid_cost
        try:
            self._allocator.on_sell(result.gained)
            # A fee asset sold off has no quantity left to absorb its own commission
            if record.asset != self.fees.fee_asset and self.fees.net(result.commission, record):
                result.commission = 0.0
            fee = self.fees.commission_cost(record.trade.commission) + self.fees.commission_cost(result.commission)
            result.profit = result.gained - paid - fee
            profit_pct = 100 * result.profit / paid if paid > 0 else 0.0
            emit_alert(
                f"{record.asset} {'Profit' if result.profit >= 0 else 'Loss'}: "
                f"{result.profit:.2f} ({profit_pct:.2f}%)",
                SOURCE, self._bus, asset=record.asset, profit=result.profit
            )
            self._update_pl_statistics(symbol.price_asset, result.profit)
        except Exception:
            # The exchange already filled the order, the record must still say SOLD
            logger.exception(f"Post-trade bookkeeping failed for {record.asset}")
        finally:
            record.trade = TradeResult(
                symbol=str(symbol),
                quantity=0.0,
                price=result.price,
                paid=paid,
                gained=result.gained,
                commission=result.commission,
                profit=result.profit,
                success=True,
                message=result.message
            )
            record.set_state(TradeState.SOLD)
            record.ttl = 0
            record.deleted = True

        self.executed.append(("sell", record.asset))
        emit_event(EventType.ORDER_FILLED, SOURCE, self._bus, asset=record.asset, side="sell", gained=result.gained)
        emit_event(EventType.POSITION_CLOSED, SOURCE, self._bus, asset=record.asset, profit=result.profit)
        logger.debug(str(record))

        self._reinvest(record, result.gained)
        return True

    def _update_pl_statistics(self, gained_asset: str, profit: float) -> None:
        if self._statistics is not None and self.config.is_stable(gained_asset):
            self._statistics.add_profit(profit)

    def _reinvest(self, sold: PositionRecord, gained: float) -> None:
        """Put the proceeds of a sale into the weakest open position."""
        target = self.reinvestment.select_target(
            self._ledger.iterate_all(include_deleted=False),
            exclude=sold.asset
        )
        if target is None:
            return
        if not self._allocator.can_afford(gained):
            logger.info(f"Averaging down skipped: {gained:.2f} exceeds available balance")
            return

        emit_alert(
            f"Averaging down is enabled. All gains from selling {sold.asset} "
            f"are being invested to {target.asset}",
            SOURCE, self._bus
        )

        def reinvest(record: PositionRecord) -> PositionRecord:
            self.buy(record, gained, reinvest=True)
            return record

        self._ledger.update(target.asset, reinvest)
