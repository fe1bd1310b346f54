"""PostgreSQL LISTEN subscription for signal expirations.

The ``trigger_notify_signal_expired`` trigger (installed by
``Database.create_tables``) sends a notification whenever a signal row
turns ``expired``. This listener forwards each payload to the
``ExpirationAuditor``.

Best effort: if the subscription cannot be set up the service keeps
running without live auditing. A dropped connection is logged and
re-established with exponential backoff.
"""

import asyncio
import logging

import asyncpg

from app.config import get_settings
from core.audit import ExpirationAuditor

logger = logging.getLogger(__name__)

MAX_RECONNECT_DELAY = 60.0


def _asyncpg_dsn(database_url: str) -> str:
    """Strip the SQLAlchemy driver suffix so asyncpg accepts the URL."""
    return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)


class ExpirationListener:
    """Own a dedicated asyncpg connection LISTENing on the expiration channel."""

    def __init__(
        self,
        auditor: ExpirationAuditor,
        channel: str | None = None,
        database_url: str | None = None,
        reconnect_delay: float | None = None,
    ):
        settings = get_settings()
        self.auditor = auditor
        self.channel = channel or settings.audit_channel
        self.database_url = _asyncpg_dsn(database_url or settings.database_url)
        self.reconnect_delay = (
            settings.audit_reconnect_delay_seconds
            if reconnect_delay is None
            else reconnect_delay
        )

        self._conn: asyncpg.Connection | None = None
        self._stopping = False
        self._reconnect_task: asyncio.Task | None = None
        self.notifications_received = 0
        self.connections_lost = 0

    @property
    def is_listening(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    async def start(self) -> bool:
        """Open the connection and subscribe.

        Returns:
            True if listening, False if setup failed (logged, not raised)
        """
        if self.is_listening:
            return True

        try:
            self._conn = await asyncpg.connect(self.database_url)
            self._conn.add_termination_listener(self._on_termination)
            await self._conn.add_listener(self.channel, self._on_notification)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Failed to set up expiration audit subscription: {e}")
            await self._close_connection()
            return False

        logger.info(f"Listening for signal expirations on '{self.channel}'")
        return True

    async def stop(self) -> None:
        """Unsubscribe, close the connection and cancel pending audits."""
        self._stopping = True

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        if self._conn is not None and not self._conn.is_closed():
            try:
                await self._conn.remove_listener(self.channel, self._on_notification)
            except (asyncpg.PostgresError, OSError) as e:
                logger.warning(f"Error removing expiration listener: {e}")
        await self._close_connection()
        await self.auditor.shutdown()
        logger.info("Expiration listener stopped")

    def _on_notification(
        self,
        connection: asyncpg.Connection,
        pid: int,
        channel: str,
        payload: str,
    ) -> None:
        """asyncpg listener callback (runs on the event loop, must not block)."""
        self.notifications_received += 1
        logger.debug(f"Expiration notification on {channel}: {payload}")
        self.auditor.handle_notification(payload)

    def _on_termination(self, connection: asyncpg.Connection) -> None:
        """asyncpg termination callback for the listening connection."""
        # Closes we started ourselves detach the connection first
        if self._stopping or connection is not self._conn:
            return

        self._conn = None
        self.connections_lost += 1
        logger.warning("Expiration listener connection lost - live auditing paused")

        if self.reconnect_delay > 0 and self._reconnect_task is None:
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        """Retry ``start()`` with exponential backoff until it succeeds."""
        delay = self.reconnect_delay
        try:
            while not self._stopping:
                logger.info(f"Reconnecting expiration listener in {delay} seconds...")
                await asyncio.sleep(delay)
                if self._stopping:
                    return
                if await self.start():
                    logger.info("Expiration listener reconnected")
                    return
                delay = min(delay * 2, MAX_RECONNECT_DELAY)
        finally:
            self._reconnect_task = None

    async def _close_connection(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Error closing listener connection: {e}")
