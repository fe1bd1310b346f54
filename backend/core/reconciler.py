"""Outcome reconciler: backfills outcomes for expired signals that lack one.

This module is pure business logic. Storage and prices are injected through
the ``OutcomeStore`` and ``PriceFeed`` protocols, so the reconciler runs the
same against PostgreSQL or an in-memory fake.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from pydantic import ValidationError

from core.errors import ReconciliationError
from core.models.outcome import SignalOutcome
from core.models.signal import Signal
from core.outcome_resolver import resolve_retroactive_outcome
from core.store_protocol import OutcomeStore, PriceFeed, SignalRow

logger = logging.getLogger(__name__)

DEFAULT_SCAN_LIMIT = 100
DEFAULT_BATCH_SIZE = 10

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def find_missing_outcomes(
    store: OutcomeStore, limit: int
) -> tuple[list[SignalRow], list[SignalRow]]:
    """Find recent expired signals that have no outcome row.

    Args:
        store: Signal/outcome store
        limit: How many of the most recent expired signals to scan

    Returns:
        (expired rows scanned, subset of those without an outcome)
    """
    expired = await store.list_expired_signals(limit=limit)
    if not expired:
        return [], []

    signal_ids = [row["id"] for row in expired if row.get("id") is not None]
    covered = await store.get_outcome_signal_ids(signal_ids)
    missing = [row for row in expired if row.get("id") not in covered]
    return expired, missing


@dataclass
class ReconciliationResult:
    """Result of one investigate-and-repair run."""
    examined: int = 0  # Expired signals scanned
    total_without_outcomes: int = 0
    repaired: int = 0
    skipped: int = 0  # Malformed rows and failed inserts
    already_recorded: int = 0  # Lost the race to another outcome writer
    repaired_signal_ids: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.total_without_outcomes == 0:
            return "All expired signals have outcome records"
        return (
            f"Repaired {self.repaired} of {self.total_without_outcomes} "
            "signals without outcome records"
        )


class OutcomeReconciler:
    """
    Guarantee every expired signal eventually has exactly one outcome.

    Each run:
    1. Scans the most recent expired signals
    2. Finds the ones with no outcome row
    3. Looks up the latest price per symbol (entry price as fallback)
    4. Synthesizes and inserts an outcome per signal, in small batches

    A failing row or insert is skipped and left for the next run; it never
    blocks the rest of the batch.
    """

    def __init__(
        self,
        store: OutcomeStore,
        price_feed: PriceFeed,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_repairs_per_run: int | None = None,
        clock: Clock | None = None,
    ):
        """
        Args:
            store: Signal/outcome store
            price_feed: Latest market prices
            scan_limit: Most recent expired signals to examine per run
            batch_size: Signals repaired per batch
            max_repairs_per_run: Cap on signals processed per run (None = all found)
            clock: Source of outcome timestamps (for testing)
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.store = store
        self.price_feed = price_feed
        self.scan_limit = scan_limit
        self.batch_size = batch_size
        self.max_repairs_per_run = max_repairs_per_run
        self._clock = clock or _utc_now

        self.last_result: ReconciliationResult | None = None
        self.last_run_at: datetime | None = None

    async def investigate_and_repair(self) -> ReconciliationResult:
        """Find expired signals without outcomes and backfill them.

        Raises:
            ReconciliationError: If the signal or outcome query fails
        """
        logger.info("Checking for expired signals without outcome records...")

        try:
            expired, missing = await find_missing_outcomes(self.store, self.scan_limit)
        except Exception as e:
            logger.error(f"Outcome investigation failed: {e}")
            raise ReconciliationError(f"Outcome investigation failed: {e}") from e

        result = ReconciliationResult(
            examined=len(expired),
            total_without_outcomes=len(missing),
        )

        if not missing:
            logger.info(f"All {len(expired)} expired signals have outcome records")
            self._record(result)
            return result

        logger.warning(
            f"Found {len(missing)} expired signals WITHOUT outcome records"
        )

        to_process = missing
        if self.max_repairs_per_run is not None:
            to_process = missing[: self.max_repairs_per_run]

        prices = await self._load_prices(to_process)

        for start in range(0, len(to_process), self.batch_size):
            batch = to_process[start : start + self.batch_size]
            for row in batch:
                await self._repair_row(row, prices, result)
            logger.debug(
                f"Repair batch {start // self.batch_size + 1} done: "
                f"{result.repaired} repaired, {result.skipped} skipped"
            )

        logger.info(result.message)
        self._record(result)
        return result

    async def ensure_outcome(
        self, signal: Signal, current_price: Decimal
    ) -> SignalOutcome | None:
        """Create the missing outcome for a single expired signal.

        Returns:
            The inserted outcome, or None if one already existed

        Raises:
            Exception: If the insert fails (caller should handle)
        """
        outcome = resolve_retroactive_outcome(signal, current_price, self._clock())

        inserted = await self.store.insert_outcome(outcome)
        if not inserted:
            logger.info(f"Outcome for {signal.id} already recorded by another writer")
            return None

        logger.info(
            f"Created outcome for {signal.id} ({signal.symbol} {signal.type.value}): "
            f"{outcome.notes} ({outcome.pnl_pips} pips)"
        )
        return outcome

    async def _load_prices(self, rows: list[SignalRow]) -> dict[str, Decimal]:
        """Latest prices for the symbols in ``rows``; empty on feed failure."""
        symbols = {row["symbol"] for row in rows if isinstance(row.get("symbol"), str)}
        if not symbols:
            return {}

        try:
            return await self.price_feed.get_latest_prices(symbols)
        except Exception as e:
            logger.warning(f"Market price lookup failed, using entry prices: {e}")
            return {}

    async def _repair_row(
        self,
        row: SignalRow,
        prices: dict[str, Decimal],
        result: ReconciliationResult,
    ) -> None:
        signal_id = row.get("id")

        try:
            signal = Signal.model_validate(row)
        except (ValidationError, ValueError, ArithmeticError) as e:
            result.skipped += 1
            logger.warning(f"Skipping malformed signal {signal_id}: {e}")
            return

        current_price = prices.get(signal.symbol, signal.entry_price)

        try:
            outcome = await self.ensure_outcome(signal, current_price)
        except Exception as e:
            result.skipped += 1
            logger.error(f"Failed to create outcome for {signal_id}: {e}")
            return

        if outcome is None:
            result.already_recorded += 1
        else:
            result.repaired += 1
            result.repaired_signal_ids.append(signal.id)

    def _record(self, result: ReconciliationResult) -> None:
        self.last_result = result
        self.last_run_at = self._clock()
