"""
EXECUTION MODULE - Trading decisions and order execution

Components:
- ExchangeGateway: contract for market orders and balances
- PaperBroker: simulated fills at feed prices
- DecisionEngine: per-asset state machine that decides and executes trades
"""

from execution.broker import (
    ExchangeGateway,
    ExchangeSymbol,
    PaperBroker,
)
from execution.engine import DecisionEngine

__all__ = [
    "ExchangeGateway",
    "ExchangeSymbol",
    "PaperBroker",
    "DecisionEngine",
]
