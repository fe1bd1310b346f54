"""Signal and outcome data repository."""

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert

from core.models import SignalOutcome, SignalStatus
from app.storage.database import SignalOutcomeTable, TradingSignalTable, get_database


class SignalOutcomeRepository:
    """Repository for trading signal and signal outcome operations.

    Implements ``core.store_protocol.OutcomeStore``. Signals are returned as
    plain row dicts; the reconciler validates each one separately.
    """

    async def list_expired_signals(self, limit: int = 100) -> list[dict[str, Any]]:
        """Get the most recently created expired signals."""
        async with get_database().session() as session:
            stmt = (
                select(TradingSignalTable)
                .where(TradingSignalTable.status == SignalStatus.EXPIRED.value)
                .order_by(TradingSignalTable.created_at.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_dict(row) for row in rows]

    async def list_active_signals(self) -> list[dict[str, Any]]:
        """Get all active signals."""
        async with get_database().session() as session:
            stmt = (
                select(TradingSignalTable)
                .where(TradingSignalTable.status == SignalStatus.ACTIVE.value)
                .order_by(TradingSignalTable.created_at.desc())
            )
            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_dict(row) for row in rows]

    async def get_outcome_signal_ids(self, signal_ids: Iterable[str]) -> set[str]:
        """Get the ids among ``signal_ids`` that already have an outcome."""
        ids = list(signal_ids)
        if not ids:
            return set()

        async with get_database().session() as session:
            stmt = select(SignalOutcomeTable.signal_id).where(
                SignalOutcomeTable.signal_id.in_(ids)
            )
            result = await session.execute(stmt)
            return set(result.scalars().all())

    async def has_outcome(self, signal_id: str) -> bool:
        """Check whether a signal has an outcome row."""
        async with get_database().session() as session:
            stmt = select(func.count()).where(SignalOutcomeTable.signal_id == signal_id)
            result = await session.execute(stmt)
            return result.scalar_one() > 0

    async def insert_outcome(self, outcome: SignalOutcome) -> bool:
        """Insert an outcome row.

        Returns:
            False if the signal already had an outcome (unique signal_id)
        """
        async with get_database().session() as session:
            stmt = insert(SignalOutcomeTable).values(
                signal_id=outcome.signal_id,
                hit_target=outcome.hit_target,
                exit_price=outcome.exit_price,
                exit_timestamp=outcome.exit_timestamp,
                target_hit_level=outcome.target_hit_level,
                pnl_pips=outcome.pnl_pips,
                notes=outcome.notes,
                processed_by=outcome.processed_by,
            )
            stmt = stmt.on_conflict_do_nothing(index_elements=["signal_id"])
            stmt = stmt.returning(SignalOutcomeTable.id)

            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def get_recent_outcomes(self, limit: int = 20) -> list[SignalOutcome]:
        """Get the most recent outcomes by exit time."""
        async with get_database().session() as session:
            stmt = (
                select(SignalOutcomeTable)
                .order_by(SignalOutcomeTable.exit_timestamp.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [
                SignalOutcome(
                    signal_id=row.signal_id,
                    hit_target=row.hit_target,
                    exit_price=Decimal(str(row.exit_price)),
                    exit_timestamp=row.exit_timestamp,
                    target_hit_level=row.target_hit_level,
                    pnl_pips=row.pnl_pips,
                    notes=row.notes,
                    processed_by=row.processed_by or "",
                )
                for row in rows
            ]

    def _row_to_dict(self, row: TradingSignalTable) -> dict[str, Any]:
        """Convert database row to a plain signal mapping."""
        return {
            "id": row.id,
            "symbol": row.symbol,
            "type": row.type,
            "entry_price": row.entry_price,
            "stop_loss": row.stop_loss,
            "take_profit_levels": list(row.take_profit_levels or []),
            "targets_hit": list(row.targets_hit or []),
            "status": row.status,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }
