"""Storage protocols for the outcome pipeline.

Any backend (live PostgreSQL, in-memory fakes for tests, etc.) can implement
these protocols to be used by the reconciler, auditor and verifier.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from core.models.outcome import SignalOutcome

# Signals are handed over as raw rows so that each one is validated on its own
SignalRow = Mapping[str, Any]


@runtime_checkable
class OutcomeStore(Protocol):
    """Protocol that signal/outcome storage backends must implement."""

    async def list_expired_signals(self, limit: int) -> list[SignalRow]:
        """Most recently created expired signals, newest first."""
        ...

    async def list_active_signals(self) -> list[SignalRow]:
        """All signals still marked active."""
        ...

    async def get_outcome_signal_ids(self, signal_ids: Iterable[str]) -> set[str]:
        """Subset of ``signal_ids`` that already have an outcome row."""
        ...

    async def has_outcome(self, signal_id: str) -> bool:
        """Check whether an outcome exists for a single signal."""
        ...

    async def insert_outcome(self, outcome: SignalOutcome) -> bool:
        """Insert an outcome.

        Returns:
            False if an outcome for the signal already existed
        """
        ...

    async def get_recent_outcomes(self, limit: int) -> list[SignalOutcome]:
        """Most recent outcomes by exit timestamp, newest first."""
        ...


@runtime_checkable
class PriceFeed(Protocol):
    """Read-only source of latest market prices."""

    async def get_latest_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Latest known price per symbol. Symbols without data are omitted."""
        ...
