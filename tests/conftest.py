"""
Shared fixtures: event bus, in-memory database, stores and a paper exchange.
"""

import pytest


@pytest.fixture
def bus():
    """The event bus with handlers and history cleared."""
    from core.events import get_event_bus

    event_bus = get_event_bus()
    event_bus._handlers.clear()
    event_bus._global_handlers.clear()
    event_bus.clear_history()
    yield event_bus
    event_bus.clear_history()


@pytest.fixture
def db():
    from memory.models import create_database

    database = create_database("sqlite:///:memory:")
    yield database
    database.close()


@pytest.fixture
def ledger():
    from memory.ledger import InMemoryLedger
    return InMemoryLedger()


@pytest.fixture
def trading_config():
    from config.loader import TradingConfig
    return TradingConfig(stable_balance=1000.0, price_anomaly_alert=0.0)


@pytest.fixture
def config_store(db, trading_config):
    from memory.config_store import ConfigStore
    return ConfigStore(db, trading_config)


@pytest.fixture
def statistics(db):
    from memory.statistics import Statistics
    return Statistics(db)


@pytest.fixture
def price_feed():
    from perception.feeds import StaticPriceFeed
    return StaticPriceFeed({"BTCUSDT": 100.0, "ETHUSDT": 10.0})


@pytest.fixture
def broker(price_feed):
    from execution.broker import PaperBroker
    return PaperBroker(price_feed, {"USDT": 1000.0}, fee_rate=0.001)


@pytest.fixture
def make_held():
    """Factory for a record holding `quantity` bought for `paid`."""
    from portfolio.positions import PositionRecord, TradeResult, TradeState

    def _make(asset="BTC", quantity=10.0, paid=100.0, history=None, state=TradeState.BOUGHT, **kwargs):
        history = list(history if history is not None else [paid / quantity] * 3)
        record = PositionRecord(
            asset=asset,
            trade=TradeResult(
                symbol=f"{asset}USDT",
                quantity=quantity,
                price=paid / quantity,
                paid=paid,
                success=True
            ),
            state=state,
            price_history=history,
            current_price=history[-1] if history else 0.0,
            max_observed_price=max(history) if history else 0.0,
            **kwargs
        )
        return record

    return _make
