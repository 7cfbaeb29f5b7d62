"""
MEMORY MODULE - Persistent Storage

Components:
- Database models (ledger entries, settings, statistics)
- Ledger stores with atomic per-asset updates
- Live trading configuration store
- Profit and withdrawal statistics
- Event journal fed from the event bus
"""

from memory.models import (
    get_database_url,
    create_database,
    Database,
    Base,
    LedgerEntry,
    SettingEntry,
    StatisticsEntry,
    JournalEntry,
)

from memory.ledger import (
    LedgerStore,
    InMemoryLedger,
    SqlLedger,
)

from memory.config_store import ConfigStore
from memory.journal import EventJournal

from memory.statistics import (
    Statistics,
    StatisticsSummary,
)

__all__ = [
    # Database
    "get_database_url",
    "create_database",
    "Database",
    "Base",
    "LedgerEntry",
    "SettingEntry",
    "StatisticsEntry",
    "JournalEntry",

    # Stores
    "LedgerStore",
    "InMemoryLedger",
    "SqlLedger",
    "ConfigStore",
    "EventJournal",

    # Statistics
    "Statistics",
    "StatisticsSummary",
]
