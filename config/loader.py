"""
CONFIGURATION LOADER

Loads configuration from:
1. Environment variables (for cloud deployment)
2. YAML files (for local development)

Environment variables take precedence over YAML files.

The trading parameters loaded here are only the *defaults*. Once the
system runs, the live values are kept in the database by
``memory.config_store.ConfigStore`` so that balance reconciliation and
operator changes survive restarts.
"""

import os
from dataclasses import MISSING, asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from core.invariants import (
    INVARIANTS,
    enforce_channel_size,
    enforce_fear_greed_index,
    enforce_price_history_size,
)


DEFAULT_STABLE_ASSETS = ["USDT", "USDC", "BUSD", "TUSD", "DAI", "FDUSD"]


@dataclass
class TradingConfig:
    """Risk parameters of the trading core."""

    # Settlement
    settlement_asset: str = "USDT"
    stable_balance: float = -1.0  # -1 = query the exchange for the balance
    min_buy_floor: float = INVARIANTS.DEFAULT_MIN_BUY_FLOOR

    # Exits
    sell_at_stop_limit: bool = True
    sell_at_profit_limit: bool = False
    profit_limit: float = 0.1
    stop_limit: float = 0.0  # Fixed trailing floor, 0 disables

    # Trailing stop convergence
    channel_size: float = 0.25
    channel_window_mins: float = 4500.0
    fear_greed_index: float = 2.0

    # Re-entry / reinvestment
    swing_trade_enabled: bool = False
    averaging_down: bool = False

    # Fees
    fee_asset: str = "BNB"

    # Tracking
    stable_assets: List[str] = field(default_factory=lambda: list(DEFAULT_STABLE_ASSETS))
    price_history_size: int = 10
    price_anomaly_alert: float = 5.0  # Percent, 0 disables

    def validate(self) -> "TradingConfig":
        enforce_fear_greed_index(self.fear_greed_index)
        enforce_channel_size(self.channel_size)
        enforce_price_history_size(self.price_history_size)
        if self.channel_window_mins <= 0:
            raise ValueError("channel_window_mins must be positive")
        return self

    def is_stable(self, asset: str) -> bool:
        return asset in self.stable_assets

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradingConfig":
        """Apply stored values on top of defaults, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


def _coerce(value: str, default: Any) -> Any:
    """Convert an environment string to the type of the default."""
    if isinstance(default, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        return [v.strip() for v in value.split(",") if v.strip()]
    return value


class ConfigLoader:
    """
    Loads configuration from environment variables and YAML files.

    Priority:
    1. Environment variables (highest)
    2. settings.yaml
    3. Default values (lowest)
    """

    ENV_PREFIX = "TRADER_"

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self._yaml_settings: Dict[str, Any] = {}
        self._load_yaml_files()

    def _load_yaml_files(self):
        """Load YAML configuration files if they exist."""
        settings_path = self.config_dir / "settings.yaml"

        if settings_path.exists():
            try:
                with open(settings_path, 'r') as f:
                    self._yaml_settings = yaml.safe_load(f) or {}
                logger.debug("Loaded settings.yaml")
            except Exception as e:
                logger.warning(f"Could not load settings.yaml: {e}")

    def _get_env_or_yaml(self, env_key: str, yaml_path: list, default: Any = None) -> Any:
        """
        Get value from environment variable or YAML file.

        Args:
            env_key: Environment variable name
            yaml_path: Path to value in YAML (e.g., ["trading", "profit_limit"])
            default: Default value if not found
        """
        env_value = os.environ.get(env_key)
        if env_value is not None:
            return _coerce(env_value, default) if default is not None else env_value

        try:
            value = self._yaml_settings
            for key in yaml_path:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_trading_mode(self) -> str:
        """Get trading mode. Only "paper" is wired to an exchange."""
        return self._get_env_or_yaml(f"{self.ENV_PREFIX}MODE", ["mode"], default="paper")

    def get_database_url(self) -> str:
        return self._get_env_or_yaml(
            "DATABASE_URL",
            ["database", "url"],
            default="sqlite:///data/trader.db"
        )

    def get_cycle_interval(self) -> int:
        """Seconds between evaluation cycles in ``run`` mode."""
        return int(self._get_env_or_yaml(
            f"{self.ENV_PREFIX}CYCLE_INTERVAL", ["cycle_interval_seconds"], default=60
        ))

    def get_paper_settings(self) -> Dict[str, Any]:
        """Paths and starting balances for the simulated exchange."""
        return {
            "prices_file": self._get_env_or_yaml(
                f"{self.ENV_PREFIX}PRICES_FILE", ["paper", "prices_file"], default="data/prices.yaml"
            ),
            "signals_file": self._get_env_or_yaml(
                f"{self.ENV_PREFIX}SIGNALS_FILE", ["paper", "signals_file"], default="data/signals.yaml"
            ),
            "fee_rate": float(self._get_env_or_yaml(
                f"{self.ENV_PREFIX}FEE_RATE", ["paper", "fee_rate"], default=0.001
            )),
            "balances": (self._yaml_settings.get("paper") or {}).get("balances") or {"USDT": 1000.0},
        }

    def get_trading_config(self) -> TradingConfig:
        """Default trading parameters: dataclass defaults, then YAML, then env."""
        values: Dict[str, Any] = {}
        for f in fields(TradingConfig):
            default = f.default if f.default is not MISSING else f.default_factory()
            value = self._get_env_or_yaml(
                f"{self.ENV_PREFIX}{f.name.upper()}",
                ["trading", f.name],
                default=default
            )
            if value is not None:
                values[f.name] = value

        config = TradingConfig.from_dict(values)
        config.validate()
        return config


# Singleton
_loader: Optional[ConfigLoader] = None


def get_config_loader(config_dir: str = "config") -> ConfigLoader:
    """Get the singleton ConfigLoader instance."""
    global _loader
    if _loader is None:
        _loader = ConfigLoader(config_dir)
    return _loader
