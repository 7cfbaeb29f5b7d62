"""
DATABASE MODELS - What the trader remembers between cycles

- The position ledger (one JSON record per tracked asset)
- The live trading configuration, including the reconciled balance
- Realized profit and withdrawal statistics
- The event journal

Supports both SQLite (local development) and PostgreSQL (cloud deployment).
Configure via DATABASE_URL environment variable.
"""

from datetime import date, datetime
from typing import Optional
import os

from sqlalchemy import (
    create_engine, Column, Integer, String, Float,
    DateTime, Date, JSON, Index
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool
from loguru import logger

Base = declarative_base()


class LedgerEntry(Base):
    """One tracked asset and its serialized position record."""
    __tablename__ = "ledger_entries"

    asset = Column(String(32), primary_key=True)
    record = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<LedgerEntry(asset={self.asset})>"


class SettingEntry(Base):
    """Key/value store for persisted configuration."""
    __tablename__ = "settings"

    key = Column(String(64), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StatisticsEntry(Base):
    """A realized profit/loss or a withdrawal."""
    __tablename__ = "statistics_entries"

    id = Column(Integer, primary_key=True)
    kind = Column(String(16), nullable=False)  # "profit" or "withdrawal"
    amount = Column(Float, nullable=False)
    day = Column(Date, default=date.today, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_statistics_kind_day", "kind", "day"),
    )


class JournalEntry(Base):
    """An event published on the bus, kept for the operator."""
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(36), nullable=False)
    event_type = Column(String(32), nullable=False)
    source = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_journal_type_time", "event_type", "timestamp"),
    )


def get_database_url() -> str:
    """
    Get database URL from environment.

    Falls back to a local SQLite file.
    """
    url = os.environ.get("DATABASE_URL")
    if url:
        # Some providers still hand out the deprecated postgres:// scheme
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url
    return "sqlite:///data/trader.db"


class Database:
    """
    Database connection manager.

    Supports:
    - SQLite for local development and tests (``sqlite:///:memory:``)
    - PostgreSQL for cloud deployment
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_database_url()
        self.is_sqlite = "sqlite" in self.db_path
        self.is_postgres = "postgresql" in self.db_path

        if self.is_sqlite:
            self._ensure_sqlite_dir()
            self.engine = create_engine(
                self.db_path,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False
            )
        else:
            self.engine = create_engine(
                self.db_path,
                poolclass=QueuePool,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=1800,
                echo=False
            )

        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        logger.info(f"Database initialized: {'SQLite' if self.is_sqlite else 'PostgreSQL'}")

    def _ensure_sqlite_dir(self) -> None:
        path = self.db_path.replace("sqlite:///", "", 1)
        if path and path != ":memory:" and os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)

    def create_tables(self):
        """Create all tables."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created/verified")

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    def close(self):
        """Close database connections."""
        self.engine.dispose()
        logger.info("Database connections closed")

    def health_check(self) -> bool:
        """Check if database is accessible."""
        try:
            from sqlalchemy import text
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


def create_database(db_path: Optional[str] = None) -> Database:
    """Create a database with all tables in place."""
    db = Database(db_path)
    db.create_tables()
    return db
