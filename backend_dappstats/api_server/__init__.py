"""
HTTP API: dApp stats queries, ingestion status/trigger, health.
"""
