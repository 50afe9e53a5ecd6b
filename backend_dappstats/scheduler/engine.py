"""
Periodic ingestion scheduler.

First tick after initial_delay_sec, then every interval_sec. A tick that finds
a cycle still in progress is skipped (never queued). Cycles run in their own
task so the tick cadence continues while one is in flight. trigger() shares
the same guard for manual runs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from backend_dappstats.core.time_utils import now_ts
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database.dapps import DappRepository
from backend_dappstats.database.database import Database
from backend_dappstats.ingestion.orchestrator import DappIngestor, IngestionResult

logger = get_logger(__name__)

DEFAULT_INTERVAL_SEC = 600.0
DEFAULT_INITIAL_DELAY_SEC = 10.0


@dataclass
class SchedulerConfig:
    interval_sec: float = DEFAULT_INTERVAL_SEC
    initial_delay_sec: float = DEFAULT_INITIAL_DELAY_SEC
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        self.initial_delay_sec = max(0.0, float(self.initial_delay_sec))

    @classmethod
    def from_settings(cls, settings: Any) -> "SchedulerConfig":
        return cls(
            interval_sec=settings.ingest_interval_sec,
            initial_delay_sec=settings.scheduler_initial_delay_sec,
            enabled=settings.scheduler_enabled,
        )


class IngestionScheduler:
    def __init__(
        self,
        ingestor: DappIngestor,
        database: Database,
        config: SchedulerConfig | None = None,
    ) -> None:
        self.ingestor = ingestor
        self.config = config or SchedulerConfig()
        self._dapps = DappRepository(database, ingestor.dapps.chain_id)
        self._loop_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None
        self._stop: asyncio.Event | None = None
        self._cycle_in_progress = False
        self._ticks = 0
        self._skipped_ticks = 0
        self.last_cycle_started_at: int | None = None
        self.last_cycle_finished_at: int | None = None
        self.last_results: list[IngestionResult] = []

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_in_progress

    def start(self) -> None:
        """Start the tick loop on the running event loop. No-op when disabled or already running."""
        if not self.config.enabled:
            logger.info("scheduler_disabled")
            return
        if self.running:
            return
        self._stop = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run())
        logger.info(
            "scheduler_started",
            interval_sec=self.config.interval_sec,
            initial_delay_sec=self.config.initial_delay_sec,
        )

    async def stop(self) -> None:
        """Stop ticking and wait for (or cancel) an in-flight cycle."""
        if self._stop is not None:
            self._stop.set()
        for task in (self._loop_task, self._cycle_task):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._loop_task = None
        self._cycle_task = None
        self._cycle_in_progress = False
        logger.info("scheduler_stopped", ticks=self._ticks, skipped_ticks=self._skipped_ticks)

    async def _run(self) -> None:
        delay = self.config.initial_delay_sec
        while self._stop is not None and not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass
            self._tick()
            delay = self.config.interval_sec

    def _tick(self) -> None:
        self._ticks += 1
        if self._cycle_in_progress:
            self._skipped_ticks += 1
            logger.warning("scheduler_tick_skipped", tick=self._ticks, reason="cycle_in_progress")
            return
        self._cycle_in_progress = True
        self._cycle_task = asyncio.create_task(self._guarded_cycle(None))

    async def trigger(self, slugs: list[str] | None = None) -> list[IngestionResult] | None:
        """Run one cycle now. Returns None when a cycle is already running."""
        if self._cycle_in_progress:
            logger.info("scheduler_trigger_rejected", reason="cycle_in_progress")
            return None
        self._cycle_in_progress = True
        self._cycle_task = asyncio.create_task(self._guarded_cycle(slugs))
        return await self._cycle_task

    async def _guarded_cycle(self, slugs: list[str] | None) -> list[IngestionResult]:
        try:
            return await self._run_cycle(slugs)
        except Exception as e:
            logger.exception("scheduler_cycle_failed", error=str(e))
            return []
        finally:
            self._cycle_in_progress = False
            self.last_cycle_finished_at = now_ts()

    async def _run_cycle(self, slugs: list[str] | None) -> list[IngestionResult]:
        self.last_cycle_started_at = now_ts()
        if slugs:
            targets: list[Any] = [s.strip() for s in slugs if s and s.strip()]
        else:
            loop = asyncio.get_running_loop()
            targets = await loop.run_in_executor(None, self._dapps.list_active_dapps)
        if not targets:
            logger.info("scheduler_cycle_no_dapps")
            self.last_results = []
            return []
        logger.info("scheduler_cycle_start", dapps=len(targets), manual=bool(slugs))
        results = await self.ingestor.sync_many(targets)
        self.last_results = results
        logger.info(
            "scheduler_cycle_done",
            dapps=len(results),
            succeeded=sum(1 for r in results if r.success),
        )
        return results

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "enabled": self.config.enabled,
            "interval_sec": self.config.interval_sec,
            "cycle_in_progress": self._cycle_in_progress,
            "last_cycle_started_at": self.last_cycle_started_at,
            "last_cycle_finished_at": self.last_cycle_finished_at,
            "ticks": self._ticks,
            "skipped_ticks": self._skipped_ticks,
            "last_results": [
                {
                    "slug": r.slug,
                    "success": r.success,
                    "transactions_processed": r.transactions_processed,
                    "error": r.error,
                }
                for r in self.last_results
            ],
        }
