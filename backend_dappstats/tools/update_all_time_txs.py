"""
Refresh dapps.all_time_txs from the explorer's per-address transaction counts.

How to run:
    python -m backend_dappstats.tools.update_all_time_txs [--slug verio]

all_time_txs is informational; it is the sum of transactions_count over the
addresses the explorer lists for the dApp.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from backend_dappstats.config import get_settings
from backend_dappstats.core.exceptions import DappStatsError
from backend_dappstats.dappstats_logging import dapp_log_context, get_logger
from backend_dappstats.database import DappRecord, DappRepository, get_database
from backend_dappstats.explorer import ExplorerClient

logger = get_logger(__name__)


async def refresh_all_time_txs(client: ExplorerClient, repo: DappRepository, dapps: list[DappRecord]) -> dict[str, int]:
    """Returns slug -> new total for every dApp that resolved."""
    totals: dict[str, int] = {}
    for dapp in dapps:
        with dapp_log_context(dapp.slug):
            try:
                descriptors = await client.resolve_addresses(dapp.slug)
            except DappStatsError as e:
                logger.warning("all_time_txs_skipped", error=str(e))
                continue
            total = sum(d.transactions_count or 0 for d in descriptors)
            repo.set_all_time_txs(dapp.id, total)
            totals[dapp.slug] = total
            logger.info("all_time_txs_updated", all_time_txs=total)
    return totals


async def run(slugs: list[str]) -> dict[str, int]:
    settings = get_settings()
    repo = DappRepository(get_database(settings.database_url), settings.chain_id)
    if slugs:
        dapps = [repo.get_or_create_dapp(s) for s in slugs]
    else:
        dapps = repo.list_active_dapps()
    async with ExplorerClient.from_settings(settings) as client:
        return await refresh_all_time_txs(client, repo, dapps)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Update all-time transaction totals from the explorer.")
    parser.add_argument("--slug", action="append", default=[], help="dApp slug (repeatable); default all active")
    args = parser.parse_args(argv)
    try:
        totals = asyncio.run(run(args.slug))
    except Exception as e:
        logger.exception("update_all_time_txs_failed", error=str(e))
        print("ERROR:", e, file=sys.stderr)
        return 1
    for slug, total in totals.items():
        print(f"{slug}: {total}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
