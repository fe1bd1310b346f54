"""Expiration auditor: detects signals that expire without an outcome.

When a signal turns ``expired`` the normal outcome writer should record an
outcome right away. The auditor waits a short delay, checks, and logs a
warning if nothing was written. It never repairs; that is the reconciler's
job.
"""

import asyncio
import logging

import orjson

from core.models.signal import SignalStatus
from core.store_protocol import OutcomeStore

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DELAY = 2.0


class ExpirationAuditor:
    """
    Schedule delayed outcome checks for expired signals.

    Every check runs in its own task so one slow or failing audit cannot
    hold up the others. ``shutdown()`` cancels whatever is still waiting.
    """

    def __init__(self, store: OutcomeStore, delay: float = DEFAULT_AUDIT_DELAY):
        """
        Args:
            store: Signal/outcome store
            delay: Seconds to wait before checking for the outcome
        """
        self.store = store
        self.delay = delay

        self._pending: set[asyncio.Task] = set()
        self._closed = False

        self.audited_count = 0
        self.missing_count = 0

    @property
    def pending_count(self) -> int:
        """Number of audits still waiting or running."""
        return len(self._pending)

    async def audit_signal_expiration(
        self,
        signal_id: str,
        reason: str = "Status changed to expired",
        source: str = "expiration listener",
    ) -> bool:
        """Check that an expired signal has an outcome record.

        Returns:
            True if an outcome exists. False if it is missing or the check failed.
        """
        logger.info(f"Auditing expiration of {signal_id} (reason: {reason}, source: {source})")

        try:
            has_outcome = await self.store.has_outcome(signal_id)
        except Exception as e:
            logger.error(f"Outcome audit failed for {signal_id}: {e}")
            return False

        self.audited_count += 1
        if has_outcome:
            logger.info(f"Signal {signal_id} has an outcome record")
            return True

        self.missing_count += 1
        logger.warning(
            f"Signal {signal_id} expired WITHOUT an outcome record - "
            "possible non-market-based expiration"
        )
        return False

    def handle_notification(self, payload: str | bytes) -> None:
        """Handle a raw change notification for a signal row.

        Expects a JSON object with at least ``id`` and ``status``. Errors are
        logged and never raised, so the subscription stays up.
        """
        try:
            data = orjson.loads(payload)
            if not isinstance(data, dict):
                logger.warning(f"Ignoring non-object expiration payload: {payload!r}")
                return

            signal_id = data.get("id")
            if not signal_id:
                logger.warning("No signal ID found in expiration payload")
                return

            status = data.get("status", SignalStatus.EXPIRED.value)
            if status != SignalStatus.EXPIRED.value:
                return

            self.schedule_audit(str(signal_id))
        except Exception as e:
            logger.error(f"Expiration notification handler error: {e}")

    def schedule_audit(self, signal_id: str) -> asyncio.Task | None:
        """Audit ``signal_id`` after the configured delay.

        Returns:
            The scheduled task, or None after shutdown
        """
        if self._closed:
            logger.debug(f"Auditor shut down, not auditing {signal_id}")
            return None

        task = asyncio.create_task(self._delayed_audit(signal_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _delayed_audit(self, signal_id: str) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self.audit_signal_expiration(signal_id)
        except Exception as e:
            logger.error(f"Outcome audit error for {signal_id}: {e}")

    async def shutdown(self) -> None:
        """Cancel pending audits and wait for them to finish."""
        self._closed = True
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} pending outcome audits")
