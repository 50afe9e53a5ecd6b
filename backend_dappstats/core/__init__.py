"""
Core utilities: domain exceptions and UTC hour/window helpers shared by the
explorer client, ingestion, analytics engine, and API server.
"""
