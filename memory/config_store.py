"""
CONFIG STORE - Live trading configuration

Stored values are applied on top of the defaults from the config loader,
so new parameters pick up their default without a migration. The
coordinator reads the config fresh at the start of every cycle and
writes back the reconciled balance at the end.
"""

from typing import Optional

from loguru import logger

from config.loader import TradingConfig
from memory.models import Database, SettingEntry


CONFIG_KEY = "config"


class ConfigStore:
    """get()/set() of the trading configuration."""

    def __init__(self, db: Database, defaults: Optional[TradingConfig] = None):
        self._db = db
        self._defaults = defaults or TradingConfig()

    def is_initialized(self) -> bool:
        with self._db.get_session() as session:
            return session.get(SettingEntry, CONFIG_KEY) is not None

    def get(self) -> TradingConfig:
        """Defaults overlaid with whatever is stored."""
        merged = self._defaults.to_dict()
        with self._db.get_session() as session:
            entry = session.get(SettingEntry, CONFIG_KEY)
            if entry is None:
                session.add(SettingEntry(key=CONFIG_KEY, value=merged))
                session.commit()
                logger.info("Trading configuration initialized from defaults")
            else:
                merged.update(entry.value or {})
        return TradingConfig.from_dict(merged)

    def set(self, config: TradingConfig) -> None:
        config.validate()
        with self._db.get_session() as session:
            session.merge(SettingEntry(key=CONFIG_KEY, value=config.to_dict()))
            session.commit()
