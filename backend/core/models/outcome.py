"""Signal outcome data model."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

OUTCOME_WRITER = "outcome_reconciler"


class SignalOutcome(BaseModel):
    """Final result of a signal as stored in ``signal_outcomes``."""

    signal_id: str
    hit_target: bool
    exit_price: Decimal
    exit_timestamp: datetime
    target_hit_level: int | None = None
    pnl_pips: int | None = None
    notes: str | None = None
    processed_by: str = OUTCOME_WRITER

    @property
    def has_quality_data(self) -> bool:
        """Outcome carries a P&L figure and a non-blank exit note."""
        return self.pnl_pips is not None and bool(self.notes and self.notes.strip())
