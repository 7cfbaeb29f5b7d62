"""
STATISTICS - Realized P/L and withdrawals

Only sales settled in a recognized stable asset are counted as profit,
so totals stay in one currency.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict

from loguru import logger
from sqlalchemy import func

from memory.models import Database, StatisticsEntry


PROFIT = "profit"
WITHDRAWAL = "withdrawal"


@dataclass
class StatisticsSummary:
    total_profit: float = 0.0
    total_withdrawals: float = 0.0
    daily_profit: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_profit": self.total_profit,
            "total_withdrawals": self.total_withdrawals,
            "daily_profit": dict(self.daily_profit),
        }


class Statistics:
    """Statistics/withdrawal recorder."""

    def __init__(self, db: Database):
        self._db = db

    def _add(self, kind: str, amount: float) -> None:
        with self._db.get_session() as session:
            session.add(StatisticsEntry(kind=kind, amount=amount, day=date.today()))
            session.commit()

    def add_profit(self, amount: float) -> None:
        self._add(PROFIT, amount)
        logger.info(f"P/L added to statistics: {amount:.2f}")

    def add_withdrawal(self, amount: float) -> None:
        self._add(WITHDRAWAL, amount)
        logger.info(f"Withdrawal added to statistics: {amount:.2f}")

    def get_all(self) -> StatisticsSummary:
        summary = StatisticsSummary()
        with self._db.get_session() as session:
            rows = (
                session.query(StatisticsEntry.kind, StatisticsEntry.day, func.sum(StatisticsEntry.amount))
                .group_by(StatisticsEntry.kind, StatisticsEntry.day)
                .all()
            )
        for kind, day, amount in rows:
            if kind == PROFIT:
                summary.total_profit += amount
                summary.daily_profit[day.isoformat()] = amount
            elif kind == WITHDRAWAL:
                summary.total_withdrawals += amount
        return summary
