"""
INVARIANTS - The fixed rules of the trading core

These constants bound every decision the engine makes. Runtime
configuration can tune behaviour inside these limits but never move them.
"""

from dataclasses import dataclass
from typing import Any, Final


@dataclass(frozen=True)
class Invariants:
    """Hard limits shared by the allocator, stop-limit calculator and config."""

    # === CAPITAL ===
    MIN_INVEST_RATIO: Final[int] = 2  # Fewest concurrently fundable positions
    MAX_INVEST_RATIO: Final[int] = 4  # Most concurrently fundable positions
    DEFAULT_MIN_BUY_FLOOR: Final[float] = 15.0  # Smallest buy in settlement currency

    # === STOP LIMIT ===
    STOP_LIMIT_WINDOW: Final[int] = 3  # Prices averaged for the trailing stop
    MAX_STOP_FACTOR: Final[float] = 0.99  # Stop never converges past 99% of average
    MIN_FEAR_GREED_INDEX: Final[int] = 1  # Bearish
    MAX_FEAR_GREED_INDEX: Final[int] = 3  # Bullish
    PROFIT_GOAL_SHARE: Final[float] = 0.9  # Profit goal = 90% of channel at FGI 1

    # === PRICE HISTORY ===
    MIN_PRICE_HISTORY: Final[int] = 3


INVARIANTS: Final[Invariants] = Invariants()


class InvariantViolation(Exception):
    """Raised when any code attempts to violate an invariant."""

    def __init__(self, invariant_name: str, attempted_value: Any, limit_value: Any):
        self.invariant_name = invariant_name
        self.attempted_value = attempted_value
        self.limit_value = limit_value
        super().__init__(
            f"INVARIANT VIOLATION: {invariant_name} "
            f"(attempted: {attempted_value}, limit: {limit_value})"
        )


def get_invariants() -> Invariants:
    return INVARIANTS


def clamp_invest_ratio(candidate_count: int) -> int:
    """Number of fundable positions for a given number of candidates."""
    return max(INVARIANTS.MIN_INVEST_RATIO, min(INVARIANTS.MAX_INVEST_RATIO, candidate_count))


def enforce_non_negative_balance(balance: float) -> None:
    """A buy must never leave the spendable balance below zero."""
    if balance < 0:
        raise InvariantViolation("NON_NEGATIVE_BALANCE", balance, 0)


def enforce_fear_greed_index(fgi: float) -> None:
    if not INVARIANTS.MIN_FEAR_GREED_INDEX <= fgi <= INVARIANTS.MAX_FEAR_GREED_INDEX:
        raise InvariantViolation(
            "FEAR_GREED_INDEX",
            fgi,
            f"{INVARIANTS.MIN_FEAR_GREED_INDEX}..{INVARIANTS.MAX_FEAR_GREED_INDEX}"
        )


def enforce_price_history_size(size: int) -> None:
    """The stop-limit average needs at least three samples."""
    if size < INVARIANTS.MIN_PRICE_HISTORY:
        raise InvariantViolation("MIN_PRICE_HISTORY", size, INVARIANTS.MIN_PRICE_HISTORY)


def enforce_channel_size(channel_size: float) -> None:
    if not 0 < channel_size < 1:
        raise InvariantViolation("CHANNEL_SIZE", channel_size, "(0, 1)")


# === VALIDATION ON MODULE LOAD ===

def _validate_invariants() -> None:
    """Validate that invariants are internally consistent."""
    inv = INVARIANTS

    assert 0 < inv.MIN_INVEST_RATIO <= inv.MAX_INVEST_RATIO
    assert inv.STOP_LIMIT_WINDOW <= inv.MIN_PRICE_HISTORY
    assert 0 < inv.MAX_STOP_FACTOR < 1
    assert 0 < inv.MIN_FEAR_GREED_INDEX < inv.MAX_FEAR_GREED_INDEX


_validate_invariants()
