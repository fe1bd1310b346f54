#!/usr/bin/env python3
"""
Outcome reconciliation script
=============================

Runs the outcome pipeline once against the configured database:
1. Backfill outcomes for expired signals that have none
2. Print the outcome system verification report

Usage:
    python scripts/reconcile_outcomes.py              # repair, then verify
    python scripts/reconcile_outcomes.py --verify     # report only, no writes
    python scripts/reconcile_outcomes.py --limit 500  # scan more expired signals
"""

import argparse
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import orjson

from app.config import get_settings
from app.services import build_reconciler, build_verifier
from app.storage import cache, get_database
from core.errors import ReconciliationError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def run(verify_only: bool, limit: int | None, batch_size: int | None) -> int:
    settings = get_settings()
    if limit is not None:
        settings = settings.model_copy(update={"reconcile_scan_limit": limit})
    if batch_size is not None:
        settings = settings.model_copy(update={"reconcile_batch_size": batch_size})

    await cache.init_cache()
    exit_code = 0
    try:
        if not verify_only:
            reconciler = build_reconciler(settings)
            try:
                result = await reconciler.investigate_and_repair()
            except ReconciliationError as e:
                logger.error(str(e))
                return 1

            print()
            print("=" * 60)
            print("   Outcome repair")
            print("=" * 60)
            print(f"  Expired signals examined: {result.examined}")
            print(f"  Without outcomes:         {result.total_without_outcomes}")
            print(f"  Repaired:                 {result.repaired}")
            print(f"  Skipped (errors):         {result.skipped}")
            print(f"  Already recorded:         {result.already_recorded}")
            if result.skipped:
                exit_code = 2

        report = await build_verifier(settings).verify()
        print()
        print("=" * 60)
        print(f"   Outcome system: {report.system_status.value}")
        print("=" * 60)
        print(orjson.dumps(
            report.model_dump(mode="json", by_alias=True),
            option=orjson.OPT_INDENT_2,
        ).decode())
    finally:
        await cache.close_cache()
        await get_database().close()

    return exit_code


def main():
    parser = argparse.ArgumentParser(description="Reconcile and verify signal outcomes")
    parser.add_argument("--verify", action="store_true", help="Only print the verification report")
    parser.add_argument("--limit", type=int, default=None, help="Expired signals to scan")
    parser.add_argument("--batch-size", type=int, default=None, help="Signals repaired per batch")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.verify, args.limit, args.batch_size)))


if __name__ == "__main__":
    main()
