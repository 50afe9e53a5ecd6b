"""
Delete aggregated stats for one dApp (hourly buckets, user sets, processed hashes).

How to run:
    python -m backend_dappstats.tools.reset_stats --slug verio --yes

The dApp row and its addresses are kept; the next ingestion run rebuilds the
window from the explorer.
"""

from __future__ import annotations

import argparse
import sys

from backend_dappstats.config import get_settings
from backend_dappstats.dappstats_logging import bind_dapp
from backend_dappstats.database import AggregationStore, DappRepository, get_database



def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reset aggregated stats for one dApp.")
    parser.add_argument("--slug", required=True, help="dApp slug")
    parser.add_argument("--yes", action="store_true", help="Confirm deletion")
    args = parser.parse_args(argv)
    if not args.yes:
        print("Refusing to delete without --yes", file=sys.stderr)
        return 2
    log = bind_dapp(args.slug)
    try:
        settings = get_settings()
        db = get_database(settings.database_url)
        dapp = DappRepository(db, settings.chain_id).get_active_dapp_by_slug(args.slug)
        if dapp is None:
            print(f"ERROR: unknown dApp {args.slug!r}", file=sys.stderr)
            return 1
        deleted = AggregationStore(db, settings.chain_id).reset_dapp(dapp.id)
    except Exception as e:
        log.exception("reset_stats_failed", error=str(e))
        print("ERROR:", e, file=sys.stderr)
        return 1
    for table, count in deleted.items():
        print(f"{table}: {count} rows deleted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
