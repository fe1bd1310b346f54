"""Outcome system verification report.

Produces a point-in-time health summary of the outcome pipeline:
stale active signals, expired signals without outcomes, and the data
quality of recent outcomes. Read-only.
"""

import logging
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.models.signal import targets_complete
from core.reconciler import find_missing_outcomes
from core.store_protocol import OutcomeStore

logger = logging.getLogger(__name__)

DEFAULT_EXPIRED_WINDOW = 50
DEFAULT_OUTCOME_SAMPLE = 20
DEFAULT_MISSING_THRESHOLD = 5

RECOMMEND_PROCESS_STALE = "Process signals with all targets hit"
RECOMMEND_REPAIR_MISSING = "Repair expired signals without outcomes"
RECOMMEND_IMPROVE_QUALITY = "Improve outcome data quality"
RECOMMEND_NONE = "System operating optimally"


class OutcomeQuality(str, Enum):
    """Quality bucket for recent outcome rows."""

    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    UNKNOWN = "Unknown"


class SystemStatus(str, Enum):
    """Overall outcome pipeline status."""

    HEALTHY = "HEALTHY"
    NEEDS_ATTENTION = "NEEDS_ATTENTION"


def classify_quality(score: float | None) -> OutcomeQuality:
    """Bucket a quality score (fraction of complete outcomes)."""
    if score is None:
        return OutcomeQuality.UNKNOWN
    if score >= 0.9:
        return OutcomeQuality.EXCELLENT
    if score >= 0.7:
        return OutcomeQuality.GOOD
    if score >= 0.5:
        return OutcomeQuality.FAIR
    return OutcomeQuality.POOR


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SystemHealth(_CamelModel):
    """Counters behind the system status."""

    active_signals_count: int = 0
    signals_needing_outcomes: int = 0  # Active signals with every target hit
    recent_expired_count: int = 0
    expired_without_outcomes: int = 0
    outcome_quality: OutcomeQuality = OutcomeQuality.UNKNOWN
    outcome_quality_score: float | None = None
    outcome_tracking_functional: bool = True


class VerificationReport(_CamelModel):
    """Verification report returned to operators."""

    success: bool = True
    message: str
    system_health: SystemHealth
    system_status: SystemStatus
    recommendations: list[str] = Field(default_factory=list)
    verification_complete: bool = True
    timestamp: datetime


def assess_health(
    health: SystemHealth, missing_threshold: int = DEFAULT_MISSING_THRESHOLD
) -> tuple[SystemStatus, list[str]]:
    """Derive the overall status and recommendations from the counters."""
    recommendations = []
    if health.signals_needing_outcomes > 0:
        recommendations.append(RECOMMEND_PROCESS_STALE)
    if health.expired_without_outcomes > missing_threshold:
        recommendations.append(RECOMMEND_REPAIR_MISSING)
    if health.outcome_quality == OutcomeQuality.POOR:
        recommendations.append(RECOMMEND_IMPROVE_QUALITY)

    if recommendations:
        return SystemStatus.NEEDS_ATTENTION, recommendations
    return SystemStatus.HEALTHY, [RECOMMEND_NONE]


class OutcomeSystemVerifier:
    """Build verification reports from the signal/outcome store."""

    def __init__(
        self,
        store: OutcomeStore,
        expired_window: int = DEFAULT_EXPIRED_WINDOW,
        outcome_sample: int = DEFAULT_OUTCOME_SAMPLE,
        missing_threshold: int = DEFAULT_MISSING_THRESHOLD,
    ):
        self.store = store
        self.expired_window = expired_window
        self.outcome_sample = outcome_sample
        self.missing_threshold = missing_threshold

    async def verify(self) -> VerificationReport:
        """Run all checks and return the report.

        Raises:
            Exception: If any store query fails
        """
        logger.info("Verifying outcome system health...")

        active_rows = await self.store.list_active_signals()
        stale = self._count_stale_active(active_rows)
        logger.info(f"Active signals: {len(active_rows)}, with all targets hit: {stale}")

        expired, missing = await find_missing_outcomes(self.store, self.expired_window)
        logger.info(
            f"Recent expired signals: {len(expired)}, without outcomes: {len(missing)}"
        )

        outcomes = await self.store.get_recent_outcomes(limit=self.outcome_sample)
        score = None
        if outcomes:
            score = sum(1 for o in outcomes if o.has_quality_data) / len(outcomes)
        quality = classify_quality(score)
        logger.info(
            f"Outcome quality: {quality.value}"
            + (f" ({round(score * 100)}%)" if score is not None else "")
        )

        health = SystemHealth(
            active_signals_count=len(active_rows),
            signals_needing_outcomes=stale,
            recent_expired_count=len(expired),
            expired_without_outcomes=len(missing),
            outcome_quality=quality,
            outcome_quality_score=score,
            outcome_tracking_functional=quality != OutcomeQuality.POOR,
        )
        status, recommendations = assess_health(health, self.missing_threshold)
        logger.info(f"Outcome system status: {status.value}")

        return VerificationReport(
            message=f"Outcome system verification complete - Status: {status.value}",
            system_health=health,
            system_status=status,
            recommendations=recommendations,
            timestamp=datetime.now(timezone.utc),
        )

    def _count_stale_active(self, rows) -> int:
        # Only the ladder columns matter here; prices may be null
        stale = 0
        for row in rows:
            if targets_complete(row.get("take_profit_levels"), row.get("targets_hit")):
                logger.warning(
                    f"Signal {row.get('id')} ({row.get('symbol')}) has all targets hit "
                    "but is still active"
                )
                stale += 1
        return stale
