"""Domain models."""

from core.models.outcome import OUTCOME_WRITER, SignalOutcome
from core.models.signal import Signal, SignalStatus, SignalType

__all__ = [
    "OUTCOME_WRITER",
    "Signal",
    "SignalOutcome",
    "SignalStatus",
    "SignalType",
]
