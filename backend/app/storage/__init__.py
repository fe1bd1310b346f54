"""Data storage layer."""

from app.storage import cache
from app.storage.database import Database, get_database, init_database
from app.storage.signal_repo import SignalOutcomeRepository
from app.storage.market_state_repo import MarketStateRepository

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "SignalOutcomeRepository",
    "MarketStateRepository",
    "cache",
]
