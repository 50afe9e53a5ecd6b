"""
Backend dApp Stats: hourly activity analytics for tracked dApps.

Crawls a ledger explorer for transactions that touch each tracked dApp's
addresses, folds them into hourly buckets (transaction count and distinct
users), and serves 24H / 7D / 30D comparisons with an hourly sparkline.
Modular layout: explorer client, aggregation store, ingestion orchestrator,
scheduler, analytics engine, and API server.
"""

__version__ = "0.1.0"
