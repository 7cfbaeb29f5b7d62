"""
Test Memory Module - ledger stores, config store and statistics on SQLite.
"""

import pytest


@pytest.fixture(params=["memory", "sql"])
def any_ledger(request, db):
    from memory.ledger import InMemoryLedger, SqlLedger
    return InMemoryLedger() if request.param == "memory" else SqlLedger(db)


class TestLedgerStore:

    def test_put_and_get(self, any_ledger, make_held):
        from portfolio.positions import TradeState

        record = make_held("BTC", stop_limit_price=7.5, ttl=4)
        any_ledger.put("BTC", record)

        stored = any_ledger.get("BTC")
        assert stored.asset == "BTC"
        assert stored.state == TradeState.BOUGHT
        assert stored.quantity == 10.0
        assert stored.stop_limit_price == 7.5
        assert stored.ttl == 4
        assert stored.price_history == [10.0, 10.0, 10.0]

    def test_get_returns_copies(self, any_ledger, make_held):
        any_ledger.put("BTC", make_held("BTC"))
        any_ledger.get("BTC").ttl = 99
        assert any_ledger.get("BTC").ttl == 0

    def test_update_existing(self, any_ledger, make_held):
        any_ledger.put("BTC", make_held("BTC"))

        def bump(record):
            record.ttl += 1
            return record

        any_ledger.update("BTC", bump)
        any_ledger.update("BTC", bump)

        assert any_ledger.get("BTC").ttl == 2

    def test_update_absent_uses_factory(self, any_ledger):
        from portfolio.positions import PositionRecord, TradeState

        def mark(record):
            record.set_state(TradeState.BUY)
            return record

        result = any_ledger.update("ETH", mark, lambda: PositionRecord.new("ETH", "ETHUSDT"))

        assert result.state_is(TradeState.BUY)
        assert any_ledger.get("ETH").state_is(TradeState.BUY)

    def test_update_absent_without_factory_is_skipped(self, any_ledger):
        assert any_ledger.update("ETH", lambda r: r) is None
        assert any_ledger.get("ETH") is None

    def test_mutator_returning_none_keeps_record(self, any_ledger, make_held):
        any_ledger.put("BTC", make_held("BTC"))

        def discard(record):
            record.ttl = 50
            return None

        any_ledger.update("BTC", discard)
        assert any_ledger.get("BTC").ttl == 0

    def test_investments_and_purge(self, any_ledger, make_held):
        closed = make_held("ETH")
        closed.trade.quantity = 0.0
        closed.deleted = True
        any_ledger.put("ETH", closed)
        any_ledger.put("BTC", make_held("BTC"))

        assert any_ledger.has_investments()
        assert any_ledger.count_investments() == 1
        assert [r.asset for r in any_ledger.iterate_all(include_deleted=False)] == ["BTC"]

        assert any_ledger.purge_deleted() == ["ETH"]
        assert any_ledger.keys() == ["BTC"]


class TestConfigStore:

    def test_defaults_are_seeded(self, config_store):
        assert not config_store.is_initialized()
        config = config_store.get()
        assert config.stable_balance == 1000.0
        assert config_store.is_initialized()

    def test_set_persists(self, config_store):
        config = config_store.get()
        config.profit_limit = 0.2
        config.swing_trade_enabled = True
        config_store.set(config)

        stored = config_store.get()
        assert stored.profit_limit == 0.2
        assert stored.swing_trade_enabled is True

    def test_invalid_config_is_rejected(self, config_store):
        from core.invariants import InvariantViolation

        config = config_store.get()
        config.fear_greed_index = 5
        with pytest.raises(InvariantViolation):
            config_store.set(config)


class TestStatistics:

    def test_profit_and_withdrawals(self, statistics):
        statistics.add_profit(10.0)
        statistics.add_profit(-2.5)
        statistics.add_withdrawal(30.0)

        summary = statistics.get_all()

        assert summary.total_profit == pytest.approx(7.5)
        assert summary.total_withdrawals == pytest.approx(30.0)
        assert sum(summary.daily_profit.values()) == pytest.approx(7.5)
        assert summary.to_dict()["total_withdrawals"] == pytest.approx(30.0)

    def test_empty(self, statistics):
        summary = statistics.get_all()
        assert summary.total_profit == 0
        assert summary.daily_profit == {}


class TestDatabase:

    def test_health_check(self, db):
        assert db.health_check()
        assert db.is_sqlite


class TestEventJournal:

    def test_records_bus_events(self, db, bus):
        from datetime import datetime
        from core.events import EventType, emit_alert, emit_event
        from memory.journal import EventJournal

        journal = EventJournal(db)
        journal.attach(bus)
        journal.attach(bus)

        emit_event(EventType.ORDER_FILLED, "engine", bus, asset="BTC", side="buy", paid=500.0)
        emit_alert("BTC Profit: 9.89 (9.89%)", "engine", bus, asset="BTC")
        emit_event(EventType.CYCLE_COMPLETED, "coordinator", bus, finished_at=datetime(2024, 1, 1))

        entries = journal.recent()
        assert [e["event_type"] for e in entries] == [
            "cycle_completed", "system_alert", "order_filled"
        ]
        assert entries[2]["payload"] == {"asset": "BTC", "side": "buy", "paid": 500.0}
        assert entries[0]["payload"]["finished_at"] == "2024-01-01 00:00:00"

        alerts = journal.recent(EventType.SYSTEM_ALERT)
        assert len(alerts) == 1
        assert alerts[0]["source"] == "engine"
        assert alerts[0]["payload"]["message"].startswith("BTC Profit")

    def test_trading_cycle_is_journalled(self, db, bus, ledger, config_store, broker, price_feed):
        from core.events import EventType
        from memory.journal import EventJournal
        from orchestrator import PortfolioCoordinator, SortedOrdering
        from perception.feeds import StaticSignalSource
        from portfolio.positions import TradeAction

        journal = EventJournal(db)
        journal.attach(bus)
        coordinator = PortfolioCoordinator(
            broker, ledger, config_store, price_feed,
            StaticSignalSource({"BTC": TradeAction.BUY}),
            ordering=SortedOrdering(), event_bus=bus
        )

        coordinator.trade()

        assert journal.recent(EventType.CYCLE_COMPLETED, limit=1)
        filled = journal.recent(EventType.ORDER_FILLED)
        assert filled[0]["payload"]["asset"] == "BTC"
