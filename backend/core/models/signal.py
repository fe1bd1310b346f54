"""Trading signal data models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class SignalType(str, Enum):
    """Trade direction."""

    BUY = "BUY"
    SELL = "SELL"


class SignalStatus(str, Enum):
    """Signal lifecycle status."""

    ACTIVE = "active"
    EXPIRED = "expired"


def targets_complete(take_profit_levels, targets_hit) -> bool:
    """True when every rung of a non-empty ladder has been hit.

    Works on raw column values so callers do not need a fully valid row.
    """
    levels = len(take_profit_levels or [])
    return levels > 0 and len(set(targets_hit or [])) == levels


class Signal(BaseModel):
    """Forex trading signal as stored in ``trading_signals``.

    Take-profit levels are numbered from 1: level ``n`` is
    ``take_profit_levels[n - 1]``. ``targets_hit`` holds level numbers.
    """

    id: str
    symbol: str
    type: SignalType
    entry_price: Decimal
    stop_loss: Decimal
    take_profit_levels: list[Decimal] = Field(default_factory=list)
    targets_hit: list[int] = Field(default_factory=list)
    status: SignalStatus = SignalStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("take_profit_levels", "targets_hit", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        # Nullable array columns come back as None
        return [] if value is None else value

    @model_validator(mode="after")
    def _check_targets_in_ladder(self) -> "Signal":
        for level in self.targets_hit:
            if level < 1 or level > len(self.take_profit_levels):
                raise ValueError(
                    f"target level {level} outside take-profit ladder "
                    f"of {len(self.take_profit_levels)}"
                )
        return self

    @property
    def highest_target_hit(self) -> int | None:
        """Highest confirmed take-profit level, or None."""
        return max(self.targets_hit) if self.targets_hit else None

    @property
    def all_targets_hit(self) -> bool:
        """True when every rung of a non-empty ladder has been hit."""
        return targets_complete(self.take_profit_levels, self.targets_hit)

    def target_price(self, level: int) -> Decimal:
        """Get the take-profit price for a 1-based level."""
        return self.take_profit_levels[level - 1]
