"""Wiring of the outcome pipeline to the live storage layer."""

import asyncio
import logging

from app.config import Settings, get_settings
from app.storage import MarketStateRepository, SignalOutcomeRepository
from core.audit import ExpirationAuditor
from core.errors import ReconciliationError
from core.reconciler import OutcomeReconciler
from core.verification import OutcomeSystemVerifier

logger = logging.getLogger(__name__)


def build_reconciler(settings: Settings | None = None) -> OutcomeReconciler:
    """Create a reconciler backed by PostgreSQL and the price cache."""
    settings = settings or get_settings()
    return OutcomeReconciler(
        store=SignalOutcomeRepository(),
        price_feed=MarketStateRepository(),
        scan_limit=settings.reconcile_scan_limit,
        batch_size=settings.reconcile_batch_size,
        max_repairs_per_run=settings.reconcile_max_repairs_per_run,
    )


def build_verifier(settings: Settings | None = None) -> OutcomeSystemVerifier:
    """Create a verifier backed by PostgreSQL."""
    settings = settings or get_settings()
    return OutcomeSystemVerifier(
        store=SignalOutcomeRepository(),
        expired_window=settings.verify_expired_window,
        outcome_sample=settings.verify_outcome_sample,
        missing_threshold=settings.missing_outcome_threshold,
    )


def build_auditor(settings: Settings | None = None) -> ExpirationAuditor:
    """Create an expiration auditor backed by PostgreSQL."""
    settings = settings or get_settings()
    return ExpirationAuditor(
        store=SignalOutcomeRepository(),
        delay=settings.audit_delay_seconds,
    )


async def reconciliation_loop(
    reconciler: OutcomeReconciler,
    initial_delay: float,
    interval: float,
) -> None:
    """Run the reconciler once after ``initial_delay``, then every ``interval``.

    With ``interval <= 0`` only the initial run happens. A failed run is
    logged and the loop carries on.
    """
    delay = initial_delay
    while True:
        await asyncio.sleep(delay)
        try:
            await reconciler.investigate_and_repair()
        except ReconciliationError as e:
            logger.warning(f"Scheduled reconciliation failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected reconciliation error: {e}")

        if interval <= 0:
            return
        delay = interval
