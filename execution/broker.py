"""
EXCHANGE GATEWAY - Market orders and balances

The decision engine talks to the exchange only through this contract:
- market_buy(symbol, cost)      spend `cost` of the settlement asset
- market_sell(symbol, quantity) sell `quantity` of the traded asset
- get_free_asset_balance(asset)
- get_balance(settlement_asset)

Execution failures are reported through ``TradeResult.success`` rather
than exceptions; the engine relies on the flag alone to detect a failed
trade.

PaperBroker simulates fills at the current feed price for paper mode
and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger

from perception.feeds import PriceFeed
from portfolio.positions import TradeResult


@dataclass(frozen=True)
class ExchangeSymbol:
    """A trading pair, e.g. BTC quoted in USDT."""
    quantity_asset: str
    price_asset: str

    def __str__(self) -> str:
        return f"{self.quantity_asset}{self.price_asset}"


class ExchangeGateway(ABC):
    """Contract the trading core needs from an exchange."""

    @abstractmethod
    def market_buy(self, symbol: ExchangeSymbol, cost: float) -> TradeResult:
        """Buy for `cost` units of the price asset."""

    @abstractmethod
    def market_sell(self, symbol: ExchangeSymbol, quantity: float) -> TradeResult:
        """Sell `quantity` units of the quantity asset."""

    @abstractmethod
    def get_free_asset_balance(self, asset: str) -> float:
        """Free (unlocked) balance of any asset."""

    def get_balance(self, settlement_asset: str) -> float:
        """Spendable balance of the settlement asset."""
        return self.get_free_asset_balance(settlement_asset)


class PaperBroker(ExchangeGateway):
    """
    Simulated exchange.

    Fills market orders at the feed price. Commissions are charged in the
    fee asset when its balance covers them, otherwise they are taken from
    the traded amount and reported as zero fee-asset commission.
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        balances: Optional[Dict[str, float]] = None,
        fee_rate: float = 0.001,
        fee_asset: str = "BNB"
    ):
        self.price_feed = price_feed
        self.balances: Dict[str, float] = {k: float(v) for k, v in (balances or {}).items()}
        self.fee_rate = fee_rate
        self.fee_asset = fee_asset

        logger.info(f"PaperBroker initialized with balances {self.balances}")

    def _price(self, symbol: ExchangeSymbol) -> Optional[float]:
        return self.price_feed.get_prices().get(str(symbol))

    def _charge_fee(self, value: float, settlement: str) -> float:
        """Charge the fee in the fee asset if possible. Returns the commission charged."""
        fee_value = value * self.fee_rate
        fee_price = self.price_feed.get_prices().get(f"{self.fee_asset}{settlement}")
        if fee_value <= 0 or not fee_price:
            return 0.0
        commission = fee_value / fee_price
        if self.balances.get(self.fee_asset, 0.0) < commission:
            return 0.0
        self.balances[self.fee_asset] -= commission
        return commission

    def market_buy(self, symbol: ExchangeSymbol, cost: float) -> TradeResult:
        price = self._price(symbol)
        if not price:
            return TradeResult.failed(str(symbol), f"No price for {symbol}")

        settlement = symbol.price_asset
        if cost <= 0 or self.balances.get(settlement, 0.0) < cost:
            return TradeResult.failed(str(symbol), f"Insufficient {settlement} balance for {cost}")

        quantity = cost / price
        commission = self._charge_fee(cost, settlement)
        if commission == 0:
            quantity -= quantity * self.fee_rate

        self.balances[settlement] -= cost
        self.balances[symbol.quantity_asset] = self.balances.get(symbol.quantity_asset, 0.0) + quantity

        logger.debug(f"Paper buy {symbol}: {quantity} @ {price} for {cost}")
        return TradeResult(
            symbol=str(symbol),
            quantity=quantity,
            price=price,
            paid=cost,
            commission=commission,
            success=True,
            message="paper fill"
        )

    def market_sell(self, symbol: ExchangeSymbol, quantity: float) -> TradeResult:
        price = self._price(symbol)
        if not price:
            return TradeResult.failed(str(symbol), f"No price for {symbol}")

        held = self.balances.get(symbol.quantity_asset, 0.0)
        if quantity <= 0 or held + 1e-9 < quantity:
            return TradeResult.failed(
                str(symbol), f"Insufficient {symbol.quantity_asset} balance: {held} < {quantity}"
            )

        gained = quantity * price
        commission = self._charge_fee(gained, symbol.price_asset)
        if commission == 0:
            gained -= gained * self.fee_rate

        self.balances[symbol.quantity_asset] = max(0.0, held - quantity)
        self.balances[symbol.price_asset] = self.balances.get(symbol.price_asset, 0.0) + gained

        logger.debug(f"Paper sell {symbol}: {quantity} @ {price} for {gained}")
        return TradeResult(
            symbol=str(symbol),
            quantity=quantity,
            price=price,
            gained=gained,
            commission=commission,
            success=True,
            message="paper fill"
        )

    def get_free_asset_balance(self, asset: str) -> float:
        return self.balances.get(asset, 0.0)
