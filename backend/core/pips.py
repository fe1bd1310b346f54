"""Pip arithmetic for forex pairs."""

from decimal import ROUND_HALF_UP, Decimal

from core.models.signal import SignalType

# Standard forex pip scaling
JPY_PIP_MULTIPLIER = Decimal("100")
DEFAULT_PIP_MULTIPLIER = Decimal("10000")


def pip_multiplier(symbol: str) -> Decimal:
    """Get the price-to-pips multiplier for a currency pair.

    JPY-quoted pairs move in 0.01 increments, everything else in 0.0001.
    """
    if "JPY" in symbol.upper():
        return JPY_PIP_MULTIPLIER
    return DEFAULT_PIP_MULTIPLIER


def calculate_pnl_pips(
    signal_type: SignalType,
    entry_price: Decimal,
    exit_price: Decimal,
    symbol: str,
) -> int:
    """Signed pip distance from entry to exit, positive when profitable.

    Args:
        signal_type: BUY or SELL
        entry_price: Signal entry price
        exit_price: Price the signal exited at
        symbol: Currency pair (selects the pip multiplier)

    Returns:
        Pips rounded half-up to a whole number
    """
    if signal_type == SignalType.BUY:
        distance = exit_price - entry_price
    else:
        distance = entry_price - exit_price

    pips = distance * pip_multiplier(symbol)
    return int(pips.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
