"""
Create the dApp Stats tables and optionally seed dApps.

How to run:
    python -m backend_dappstats.tools.init_db
    python -m backend_dappstats.tools.init_db --seed verio="Verio" --seed storyhunt="StoryHunt"

Uses DATABASE_URL / DB_PATH from the environment (.env loaded).
"""

from __future__ import annotations

import argparse
import sys

from backend_dappstats.config import get_settings
from backend_dappstats.config.env import mask_db_url
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database import DappRepository, get_database

logger = get_logger(__name__)


def parse_seed(value: str) -> tuple[str, str | None]:
    """'slug=Title' or just 'slug'."""
    slug, _, title = value.partition("=")
    slug = slug.strip()
    if not slug:
        raise argparse.ArgumentTypeError(f"invalid seed {value!r}; expected slug=Title")
    return slug, (title.strip() or None)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create dApp Stats tables; optionally seed dApps.")
    parser.add_argument("--seed", action="append", type=parse_seed, default=[], metavar="SLUG=TITLE",
                        help="dApp to create (repeatable)")
    args = parser.parse_args(argv)
    try:
        settings = get_settings()
        db = get_database(settings.database_url)
        repo = DappRepository(db, settings.chain_id)
        for slug, title in args.seed:
            dapp = repo.get_or_create_dapp(slug, title)
            print(f"dApp {dapp.slug} (id={dapp.id}) ready")
        print("DB ready:", mask_db_url(settings.database_url))
        return 0
    except Exception as e:
        logger.exception("init_db_failed", error=str(e))
        print("ERROR:", e, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
