"""
Persistence layer: SQLAlchemy models, engine/session handling, dApp and address
repository, hourly aggregation store, and the ingestion run log.
"""

from backend_dappstats.database.aggregation import AggregationStore, HourlyBucket, WindowTotals
from backend_dappstats.database.dapps import DappRecord, DappRepository, LinkedAddress, slugify
from backend_dappstats.database.database import Database, get_database
from backend_dappstats.database.runs import IngestionRunLog

__all__ = [
    "AggregationStore",
    "DappRecord",
    "DappRepository",
    "Database",
    "HourlyBucket",
    "IngestionRunLog",
    "LinkedAddress",
    "WindowTotals",
    "get_database",
    "slugify",
]
