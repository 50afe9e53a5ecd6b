"""
Scheduler: periodic ingestion cycles with a single-flight guard.
"""

from backend_dappstats.scheduler.engine import IngestionScheduler, SchedulerConfig

__all__ = ["IngestionScheduler", "SchedulerConfig"]
