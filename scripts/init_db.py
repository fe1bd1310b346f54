#!/usr/bin/env python3
"""Initialize the database: tables and the signal expiration notify trigger."""

import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.storage.database import init_database


async def main():
    print("Initializing database...")
    db = await init_database()
    print("Database initialized successfully!")
    print("Tables created: trading_signals, signal_outcomes, centralized_market_state")
    print("Trigger installed: trigger_notify_signal_expired")
    await db.close()


if __name__ == "__main__":
    asyncio.run(main())
