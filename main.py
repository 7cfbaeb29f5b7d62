#!/usr/bin/env python3
"""
SPOT TRADER - Trailing-stop trading core
Main Entry Point
"""

import sys
import signal
import asyncio
import argparse
import json
from pathlib import Path
from typing import Dict

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from loguru import logger

from config.loader import get_config_loader
from core.events import EventType, emit_event, get_event_bus
from execution.broker import PaperBroker
from memory.config_store import ConfigStore
from memory.journal import EventJournal
from memory.ledger import SqlLedger
from memory.models import Database, SettingEntry, create_database
from memory.statistics import Statistics
from orchestrator import PortfolioCoordinator
from perception.feeds import FilePriceFeed, FileSignalSource
from portfolio.withdrawals import WithdrawalRejected, WithdrawalsManager


PAPER_BALANCES_KEY = "paper_balances"


def setup_logging() -> None:
    Path("logs").mkdir(exist_ok=True)
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="INFO"
    )
    logger.add(
        "logs/trader_{time:YYYY-MM-DD}.log",
        rotation="00:00",
        retention="30 days",
        level="DEBUG"
    )


class TradingSystem:
    """Wires the stores, the paper exchange and the coordinator together."""

    def __init__(self, config_dir: str = "config"):
        self.loader = get_config_loader(config_dir)
        self.mode = self.loader.get_trading_mode()
        if self.mode != "paper":
            raise ValueError(f"Unsupported trading mode '{self.mode}', only paper trading is available")

        db_url = self.loader.get_database_url()
        if "postgresql" in db_url:
            logger.info(f"Connecting to PostgreSQL: {db_url.split('@')[-1] if '@' in db_url else 'configured'}")
        else:
            logger.info("Using SQLite database (local)")
        self.db = create_database(db_url)
        if not self.db.health_check():
            raise RuntimeError("Database health check failed")

        self.config_store = ConfigStore(self.db, self.loader.get_trading_config())
        self.ledger = SqlLedger(self.db)
        self.statistics = Statistics(self.db)
        self.journal = EventJournal(self.db)
        self.journal.attach(get_event_bus())

        paper = self.loader.get_paper_settings()
        config = self.config_store.get()
        self.price_feed = FilePriceFeed(paper["prices_file"])
        self.signal_source = FileSignalSource(paper["signals_file"])
        self.broker = PaperBroker(
            self.price_feed,
            _load_paper_balances(self.db, paper["balances"]),
            fee_rate=paper["fee_rate"],
            fee_asset=config.fee_asset
        )

        self.coordinator = PortfolioCoordinator(
            self.broker,
            self.ledger,
            self.config_store,
            self.price_feed,
            self.signal_source,
            statistics=self.statistics
        )
        self.withdrawals = WithdrawalsManager(self.config_store, self.broker, self.statistics)

        logger.info(f"Trading system initialized in {self.mode} mode")

    def save(self) -> None:
        _save_paper_balances(self.db, self.broker.balances)

    def close(self) -> None:
        self.save()
        self.db.close()


def _load_paper_balances(db: Database, defaults: Dict[str, float]) -> Dict[str, float]:
    with db.get_session() as session:
        entry = session.get(SettingEntry, PAPER_BALANCES_KEY)
        if entry is not None and entry.value:
            return dict(entry.value)
    return dict(defaults)


def _save_paper_balances(db: Database, balances: Dict[str, float]) -> None:
    with db.get_session() as session:
        session.merge(SettingEntry(key=PAPER_BALANCES_KEY, value=dict(balances)))
        session.commit()


async def run_forever(system: TradingSystem, interval: int) -> None:
    """Run one cycle every `interval` seconds until SIGINT/SIGTERM."""
    shutdown_event = asyncio.Event()

    def _handle_shutdown():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_shutdown)

    logger.info(f"Starting main trading loop (every {interval}s)...")
    emit_event(EventType.SYSTEM_STARTED, "main", interval=interval)
    while not shutdown_event.is_set():
        try:
            system.coordinator.trade()
            system.save()
        except Exception as e:
            logger.exception(f"Trading cycle failed: {e}")

        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    emit_event(EventType.SYSTEM_STOPPED, "main")
    logger.info("Shutdown complete")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Spot Trader - trailing-stop trading core")
    parser.add_argument(
        "--config-dir",
        default="config",
        help="Directory holding settings.yaml (default: config)"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run trading cycles periodically")
    run.add_argument("--interval", type=int, default=None, help="Seconds between cycles")

    commands.add_parser("trade", help="Run a single trading cycle")

    sell_all = commands.add_parser("sell-all", help="Mark every held position for sale")
    sell_all.add_argument("--now", action="store_true", help="Sell immediately")

    withdraw = commands.add_parser("withdraw", help="Take money out of the trading balance")
    withdraw.add_argument("amount", type=float)

    release = commands.add_parser("release-hodl", help="Clear the HODL flag of an asset")
    release.add_argument("asset")

    commands.add_parser("status", help="Show balance, positions and statistics")
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()

    system = TradingSystem(args.config_dir)
    try:
        if args.command == "run":
            interval = args.interval or system.loader.get_cycle_interval()
            asyncio.run(run_forever(system, interval))
        elif args.command == "trade":
            report = system.coordinator.trade()
            print(json.dumps(report.to_dict(), indent=2))
        elif args.command == "sell-all":
            marked = system.coordinator.sell_all(sell_now=args.now)
            print(f"{'Sold' if args.now else 'Marked for sale'}: {', '.join(marked) or 'nothing'}")
        elif args.command == "withdraw":
            try:
                amount, balance = system.withdrawals.add_withdrawal(args.amount)
            except WithdrawalRejected as e:
                logger.error(str(e))
                return 1
            print(f"Withdrawn {amount:.2f}, balance {balance:.2f}")
        elif args.command == "release-hodl":
            if not system.coordinator.release_hodl(args.asset):
                return 1
        elif args.command == "status":
            status = system.coordinator.get_status()
            status["recent_alerts"] = system.journal.recent(EventType.SYSTEM_ALERT, limit=10)
            print(json.dumps(status, indent=2, default=str))
    finally:
        system.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
