"""
LEDGER STORE - Position records keyed by asset

The trading core never holds on to records between cycles. It reads
them from the ledger and mutates them through ``update``, an atomic
read-modify-write scoped to a single asset key, so processing one asset
can never corrupt another asset's record.

Two implementations:
- InMemoryLedger: process-local, used by tests and dry runs
- SqlLedger: SQLAlchemy-backed, survives restarts
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterator, List, Optional

from loguru import logger

from memory.models import Database, LedgerEntry
from portfolio.positions import PositionRecord


Mutator = Callable[[PositionRecord], Optional[PositionRecord]]
Factory = Callable[[], PositionRecord]


class LedgerStore(ABC):
    """Persistence contract for position records."""

    @abstractmethod
    def get(self, key: str) -> Optional[PositionRecord]:
        """Fresh copy of the record, or None."""

    @abstractmethod
    def put(self, key: str, record: PositionRecord) -> None:
        """Insert or replace a record."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Physically remove a record."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All stored asset keys."""

    @abstractmethod
    def update(
        self,
        key: str,
        mutator: Mutator,
        on_absent: Optional[Factory] = None
    ) -> Optional[PositionRecord]:
        """
        Atomically apply ``mutator`` to the record under ``key``.

        If the key is absent, ``on_absent`` builds the initial record;
        without a factory the update is skipped and None is returned.
        A mutator returning None leaves the stored record unchanged.
        """

    def iterate_all(self, include_deleted: bool = True) -> Iterator[PositionRecord]:
        for key in self.keys():
            record = self.get(key)
            if record is None:
                continue
            if record.deleted and not include_deleted:
                continue
            yield record

    def get_list(self) -> List[PositionRecord]:
        return list(self.iterate_all())

    def has_investments(self) -> bool:
        return any(r.quantity > 0 for r in self.iterate_all(include_deleted=False))

    def count_investments(self) -> int:
        return sum(1 for r in self.iterate_all(include_deleted=False) if r.quantity > 0)

    def purge_deleted(self) -> List[str]:
        """Remove records that were closed and not re-entered."""
        removed = [r.asset for r in self.iterate_all() if r.deleted]
        for key in removed:
            self.delete(key)
        if removed:
            logger.info(f"Purged closed positions: {', '.join(removed)}")
        return removed


class InMemoryLedger(LedgerStore):
    """Keeps serialized records in a dict, so callers never share objects."""

    def __init__(self):
        self._data: Dict[str, dict] = {}

    def get(self, key: str) -> Optional[PositionRecord]:
        data = self._data.get(key)
        return PositionRecord.from_dict(data) if data is not None else None

    def put(self, key: str, record: PositionRecord) -> None:
        self._data[key] = record.to_dict()

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def update(
        self,
        key: str,
        mutator: Mutator,
        on_absent: Optional[Factory] = None
    ) -> Optional[PositionRecord]:
        record = self.get(key)
        if record is None:
            if on_absent is None:
                return None
            record = on_absent()

        result = mutator(record)
        if result is not None:
            self.put(key, result)
        return result


class SqlLedger(LedgerStore):
    """Ledger persisted in the ``ledger_entries`` table."""

    def __init__(self, db: Database):
        self._db = db

    def get(self, key: str) -> Optional[PositionRecord]:
        with self._db.get_session() as session:
            entry = session.get(LedgerEntry, key)
            return PositionRecord.from_dict(entry.record) if entry else None

    def put(self, key: str, record: PositionRecord) -> None:
        with self._db.get_session() as session:
            session.merge(LedgerEntry(asset=key, record=record.to_dict()))
            session.commit()

    def delete(self, key: str) -> None:
        with self._db.get_session() as session:
            entry = session.get(LedgerEntry, key)
            if entry:
                session.delete(entry)
                session.commit()

    def keys(self) -> List[str]:
        with self._db.get_session() as session:
            return [asset for (asset,) in session.query(LedgerEntry.asset).order_by(LedgerEntry.asset)]

    def update(
        self,
        key: str,
        mutator: Mutator,
        on_absent: Optional[Factory] = None
    ) -> Optional[PositionRecord]:
        with self._db.get_session() as session:
            query = session.query(LedgerEntry).filter_by(asset=key)
            if self._db.is_postgres:
                query = query.with_for_update()
            entry = query.first()

            if entry is not None:
                record = PositionRecord.from_dict(entry.record)
            elif on_absent is not None:
                record = on_absent()
            else:
                return None

            result = mutator(record)
            if result is None:
                session.rollback()
                return None

            if entry is None:
                session.add(LedgerEntry(asset=key, record=result.to_dict()))
            else:
                entry.record = result.to_dict()
            session.commit()
            return result
