"""Retroactive outcome determination for expired signals.

Precedence when deciding how an expired signal exited:

1. Recorded take-profit hits. The highest hit level is the exit, even if
   the current price has since moved past the stop-loss.
2. Stop-loss breach by the last known price.
3. Unknown. The signal was probably expired by something other than a
   price-based exit.
"""

from datetime import datetime
from decimal import Decimal

from core.models.outcome import SignalOutcome
from core.models.signal import Signal, SignalType
from core.pips import calculate_pnl_pips

RETROACTIVE_SUFFIX = "(Retroactive Analysis)"
NOTE_STOP_LOSS = f"Stop Loss Hit {RETROACTIVE_SUFFIX}"
NOTE_UNKNOWN = (
    "Unknown Exit Reason "
    "(Retroactive Analysis - possible non-market-based expiration)"
)


def take_profit_note(level: int) -> str:
    """Exit note for a take-profit exit at ``level``."""
    return f"Take Profit {level} Hit {RETROACTIVE_SUFFIX}"


def is_stop_loss_breached(signal: Signal, price: Decimal) -> bool:
    """Check whether ``price`` is at or beyond the signal's stop-loss."""
    if signal.type == SignalType.BUY:
        return price <= signal.stop_loss
    return price >= signal.stop_loss


def resolve_retroactive_outcome(
    signal: Signal,
    current_price: Decimal,
    exit_timestamp: datetime,
) -> SignalOutcome:
    """Synthesize the outcome an expired signal should have recorded.

    Args:
        signal: The expired signal
        current_price: Last known market price (or the entry price when the
            feed has nothing for this symbol)
        exit_timestamp: Timestamp to stamp on the outcome

    Returns:
        Outcome ready for insertion
    """
    level = signal.highest_target_hit

    if level is not None:
        exit_price = signal.target_price(level)
        hit_target = True
        notes = take_profit_note(level)
    elif is_stop_loss_breached(signal, current_price):
        exit_price = signal.stop_loss
        hit_target = False
        notes = NOTE_STOP_LOSS
    else:
        exit_price = current_price
        hit_target = False
        notes = NOTE_UNKNOWN

    return SignalOutcome(
        signal_id=signal.id,
        hit_target=hit_target,
        exit_price=exit_price,
        exit_timestamp=exit_timestamp,
        target_hit_level=level,
        pnl_pips=calculate_pnl_pips(
            signal.type, signal.entry_price, exit_price, signal.symbol
        ),
        notes=notes,
    )
