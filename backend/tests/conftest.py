"""Shared fixtures: in-memory signal/outcome store and price feed."""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from core.models import SignalOutcome

BASE_TIME = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryOutcomeStore:
    """OutcomeStore backed by lists and dicts.

    Signals are kept in insertion order; the last one added is the newest.
    """

    def __init__(self):
        self.signals: list[dict[str, Any]] = []
        self.outcomes: dict[str, SignalOutcome] = {}
        self.fail_queries = False
        self.fail_inserts: set[str] = set()
        self.insert_calls = 0

    def add_signal(self, **fields) -> dict[str, Any]:
        row = {
            "id": f"sig-{len(self.signals) + 1}",
            "symbol": "EURUSD",
            "type": "BUY",
            "entry_price": "1.1000",
            "stop_loss": "1.0950",
            "take_profit_levels": ["1.1050", "1.1100", "1.1150"],
            "targets_hit": [],
            "status": "expired",
            "created_at": BASE_TIME + timedelta(minutes=len(self.signals)),
        }
        row.update(fields)
        self.signals.append(row)
        return row

    def _check(self) -> None:
        if self.fail_queries:
            raise ConnectionError("database unavailable")

    async def list_expired_signals(self, limit: int) -> list[dict[str, Any]]:
        self._check()
        expired = [r for r in reversed(self.signals) if r.get("status") == "expired"]
        return expired[:limit]

    async def list_active_signals(self) -> list[dict[str, Any]]:
        self._check()
        return [r for r in reversed(self.signals) if r.get("status") == "active"]

    async def get_outcome_signal_ids(self, signal_ids: Iterable[str]) -> set[str]:
        self._check()
        return {sid for sid in signal_ids if sid in self.outcomes}

    async def has_outcome(self, signal_id: str) -> bool:
        self._check()
        return signal_id in self.outcomes

    async def insert_outcome(self, outcome: SignalOutcome) -> bool:
        self.insert_calls += 1
        if outcome.signal_id in self.fail_inserts:
            raise RuntimeError("insert rejected")
        if outcome.signal_id in self.outcomes:
            return False
        self.outcomes[outcome.signal_id] = outcome
        return True

    async def get_recent_outcomes(self, limit: int) -> list[SignalOutcome]:
        self._check()
        ordered = sorted(
            self.outcomes.values(), key=lambda o: o.exit_timestamp, reverse=True
        )
        return ordered[:limit]


class StaticPriceFeed:
    """PriceFeed returning fixed prices."""

    def __init__(self, prices: dict[str, str] | None = None, fail: bool = False):
        self.prices = {k: Decimal(v) for k, v in (prices or {}).items()}
        self.fail = fail
        self.requested: list[set[str]] = []

    async def get_latest_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        wanted = set(symbols)
        self.requested.append(wanted)
        if self.fail:
            raise ConnectionError("market state unavailable")
        return {s: p for s, p in self.prices.items() if s in wanted}


def fixed_clock() -> datetime:
    return BASE_TIME + timedelta(hours=1)


@pytest.fixture
def store():
    return InMemoryOutcomeStore()


@pytest.fixture
def price_feed():
    return StaticPriceFeed()
