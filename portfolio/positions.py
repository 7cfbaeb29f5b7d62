"""
POSITION RECORD - Persisted state of one tracked asset

Every asset the engine knows about has exactly one record, keyed by the
asset identifier. The record carries:
- The decision state (IDLE / BUY / BOUGHT / SELL / SOLD)
- A bounded price history plus the lifetime high-water mark
- The trailing stop-limit price and the cycles held since the last buy
- The result of the last trade (quantity, cost basis, commission, profit)

Records serialize to plain dicts so any ledger store can persist them.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from enum import Enum


class TradeState(str, Enum):
    """Decision state of a position record."""
    IDLE = "idle"          # Tracked, nothing requested
    BUY = "buy"            # Buy requested, waiting for entry conditions
    BOUGHT = "bought"      # Holding quantity
    SELL = "sell"          # Sell requested, waiting for exit conditions
    SOLD = "sold"          # Closed, kept for swing re-entry and reporting


class TradeAction(str, Enum):
    """Action recommended by an external candidate signal."""
    BUY = "buy"
    SELL = "sell"


@dataclass
class TradeResult:
    """Outcome of an exchange trade, and the running totals of a position."""

    symbol: str
    quantity: float = 0.0
    price: float = 0.0          # Average fill price
    paid: float = 0.0           # Cost basis in settlement currency
    gained: float = 0.0         # Sale proceeds in settlement currency
    commission: float = 0.0     # In fee-asset units
    profit: float = 0.0
    success: bool = False
    message: str = ""

    @classmethod
    def failed(cls, symbol: str, message: str) -> 'TradeResult':
        return cls(symbol=symbol, success=False, message=message)

    def join(self, other: 'TradeResult') -> None:
        """
        Merge a new buy into the running position.

        Quantity, cost and commission add up; the average price is the
        weighted average. A position holding nothing starts over.
        """
        if self.quantity <= 0:
            self.quantity = 0.0
            self.paid = 0.0
            self.commission = 0.0
            self.gained = 0.0
            self.profit = 0.0

        self.quantity += other.quantity
        self.paid += other.paid
        self.commission += other.commission
        self.price = self.paid / self.quantity if self.quantity > 0 else 0.0
        self.success = True
        self.message = other.message

    def add_quantity(self, quantity: float, cost: float = 0.0) -> None:
        """Adjust quantity (and optionally cost) keeping the average consistent."""
        self.quantity = max(0.0, self.quantity + quantity)
        self.paid += cost
        self.price = self.paid / self.quantity if self.quantity > 0 else 0.0

    def __str__(self) -> str:
        status = "ok" if self.success else "failed"
        return (
            f"TradeResult({self.symbol} {status}: qty={self.quantity}, "
            f"price={self.price}, paid={self.paid}, gained={self.gained}, "
            f"commission={self.commission}{', ' + self.message if self.message else ''})"
        )


@dataclass
class PositionRecord:
    """State of one tracked asset."""

    asset: str
    trade: TradeResult
    state: TradeState = TradeState.IDLE

    # Prices
    price_history: List[float] = field(default_factory=list)
    current_price: float = 0.0
    max_observed_price: float = 0.0

    # Risk
    stop_limit_price: float = 0.0
    ttl: int = 0
    hodl: bool = False
    deleted: bool = False

    @classmethod
    def new(cls, asset: str, symbol: str) -> 'PositionRecord':
        return cls(asset=asset, trade=TradeResult(symbol=symbol))

    # ===== State =====

    def state_is(self, state: TradeState) -> bool:
        return self.state == state

    def set_state(self, state: TradeState) -> None:
        self.state = state

    def reset_state(self) -> None:
        """Back to the resting state for whatever is held."""
        self.state = TradeState.BOUGHT if self.quantity > 0 else TradeState.IDLE

    # ===== Trade accessors =====

    @property
    def quantity(self) -> float:
        return self.trade.quantity

    @property
    def paid_cost(self) -> float:
        return self.trade.paid

    @property
    def average_price(self) -> float:
        return self.trade.price

    @property
    def previous_price(self) -> Optional[float]:
        return self.price_history[-2] if len(self.price_history) > 1 else None

    def profit(self) -> float:
        """Unrealized profit while holding, realized profit once sold."""
        if self.quantity > 0:
            return self.current_price * self.quantity - self.paid_cost
        return self.trade.profit

    def profit_percent(self) -> float:
        if self.paid_cost <= 0:
            return 0.0
        return 100 * self.profit() / self.paid_cost

    # ===== Serialization =====

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PositionRecord':
        data = dict(data)
        data["trade"] = TradeResult(**data["trade"])
        data["state"] = TradeState(data.get("state", TradeState.IDLE.value))
        data["price_history"] = list(data.get("price_history") or [])
        return cls(**data)

    def __str__(self) -> str:
        return (
            f"{self.asset} [{self.state.value}] qty={self.quantity} "
            f"avg={self.average_price} cur={self.current_price} "
            f"stop={self.stop_limit_price} ttl={self.ttl}"
            f"{' HODL' if self.hodl else ''}"
        )
