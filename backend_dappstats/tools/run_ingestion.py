"""
One-off ingestion run outside the API process.

How to run:
    python -m backend_dappstats.tools.run_ingestion                 # all active dApps
    python -m backend_dappstats.tools.run_ingestion --slug verio --hours-back 48

Prints one line per dApp; exit code 1 when any dApp failed.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from backend_dappstats.config import get_settings
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database import DappRepository, get_database
from backend_dappstats.explorer import ExplorerClient
from backend_dappstats.ingestion import DappIngestor, IngestionResult

logger = get_logger(__name__)


async def run(slugs: list[str], hours_back: int | None) -> list[IngestionResult]:
    settings = get_settings()
    db = get_database(settings.database_url)
    async with ExplorerClient.from_settings(settings) as client:
        ingestor = DappIngestor.from_settings(client, db, settings)
        if hours_back is not None:
            ingestor.hours_back = hours_back
        targets = slugs or DappRepository(db, settings.chain_id).list_active_dapps()
        if not targets:
            logger.warning("run_ingestion_no_dapps", hint="seed dApps with tools.init_db --seed")
            return []
        return await ingestor.sync_many(targets)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sync dApp transactions from the explorer into hourly stats.")
    parser.add_argument("--slug", action="append", default=[], help="dApp slug (repeatable); default all active")
    parser.add_argument("--hours-back", type=int, default=None, help="Lookback window in hours (1-168)")
    args = parser.parse_args(argv)
    if args.hours_back is not None and not 1 <= args.hours_back <= 168:
        parser.error("--hours-back must be between 1 and 168")
    try:
        results = asyncio.run(run(args.slug, args.hours_back))
    except Exception as e:
        logger.exception("run_ingestion_failed", error=str(e))
        print("ERROR:", e, file=sys.stderr)
        return 1
    for r in results:
        status = "ok" if r.success else f"FAILED ({r.error})"
        print(f"{r.slug}: {status} txs={r.transactions_processed} hours={r.hours_touched} "
              f"addresses={r.addresses_processed} duration_ms={r.duration_ms}")
    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
