"""
Ingestion: pulls dApp transactions from the explorer into hourly aggregates.
"""

from backend_dappstats.ingestion.orchestrator import (
    DappIngestor,
    IngestionResult,
    classify_transaction,
)

__all__ = ["DappIngestor", "IngestionResult", "classify_transaction"]
