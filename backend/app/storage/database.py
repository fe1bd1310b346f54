"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.config import get_settings

Base = declarative_base()


class TradingSignalTable(Base):
    """Forex trading signals written by the signal generation job."""

    __tablename__ = "trading_signals"

    id = Column(String(36), primary_key=True)
    symbol = Column(String(20), nullable=False)
    type = Column(String(4), nullable=False)  # 'BUY' | 'SELL'
    entry_price = Column(Numeric(20, 8), nullable=False)
    stop_loss = Column(Numeric(20, 8), nullable=True)
    take_profit_levels = Column(ARRAY(Numeric(20, 8)), nullable=True)
    targets_hit = Column(ARRAY(Integer), nullable=True)  # 1-based ladder levels
    status = Column(String(10), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))
    updated_at = Column(DateTime(timezone=True), server_default=text("NOW()"), onupdate=text("NOW()"))

    __table_args__ = (
        Index("idx_trading_signals_status_created", "status", "created_at"),
        Index("idx_trading_signals_symbol", "symbol"),
    )


class SignalOutcomeTable(Base):
    """Final outcome per signal. Append-only, one row per signal."""

    __tablename__ = "signal_outcomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    signal_id = Column(String(36), ForeignKey("trading_signals.id"), nullable=False)
    hit_target = Column(Boolean, nullable=False, default=False)
    exit_price = Column(Numeric(20, 8), nullable=False)
    exit_timestamp = Column(DateTime(timezone=True), nullable=False, server_default=text("NOW()"))
    target_hit_level = Column(Integer, nullable=True)
    pnl_pips = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    processed_by = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_signal_outcomes_signal_id", "signal_id", unique=True),
        Index("idx_signal_outcomes_exit_timestamp", "exit_timestamp"),
    )


class MarketStateTable(Base):
    """Latest price per symbol, written by the market streaming job."""

    __tablename__ = "centralized_market_state"

    symbol = Column(String(20), primary_key=True)
    current_price = Column(Numeric(20, 8), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=text("NOW()"), onupdate=text("NOW()"))


def expiration_notify_statements(channel: str) -> list[str]:
    """SQL that makes PostgreSQL NOTIFY ``channel`` when a signal expires.

    The payload is ``{"id": ..., "status": "expired"}``.
    """
    if not channel.isidentifier():
        raise ValueError(f"Invalid notification channel name: {channel!r}")

    return [
        f"""
        CREATE OR REPLACE FUNCTION notify_signal_expired()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $function$
        BEGIN
          PERFORM pg_notify(
            '{channel}',
            CAST(json_build_object('id', NEW.id, 'status', NEW.status) AS text)
          );
          RETURN NEW;
        END;
        $function$
        """,
        "DROP TRIGGER IF EXISTS trigger_notify_signal_expired ON trading_signals",
        """
        CREATE TRIGGER trigger_notify_signal_expired
          AFTER UPDATE OF status ON trading_signals
          FOR EACH ROW
          WHEN (NEW.status = 'expired' AND OLD.status IS DISTINCT FROM 'expired')
          EXECUTE FUNCTION notify_signal_expired()
        """,
    ]


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # Small pool: the reconciler awaits its queries one at a time and the
        # API only adds short read bursts (verification, audits)
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,    # Validate before use
            pool_recycle=3600,     # Recycle every hour
            pool_timeout=30,       # Wait max 30s for connection
            connect_args={
                "timeout": 10,                 # Connection timeout
                "command_timeout": 60,         # Query timeout
                "server_settings": {
                    "statement_timeout": "60000",  # 60s statement timeout
                },
            },
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables and the signal expiration notify trigger."""
        settings = get_settings()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

            # asyncpg runs one statement per execute
            for statement in expiration_notify_statements(settings.audit_channel):
                await conn.execute(text(statement))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
