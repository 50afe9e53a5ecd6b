"""
Ingestion orchestrator: explorer → classify → hourly aggregation store.

For one dApp: resolve and persist its addresses, then drain each address's
transaction stream back to the cutoff, applying every accepted transaction to
its UTC hour bucket, and finally refresh the distinct-user count of every hour
touched. One failing address never aborts the dApp; one failing dApp never
aborts a batch.

Store calls are synchronous SQLAlchemy and run in the default executor so the
event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import time
from concurrent.futures import Executor
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, TypeVar

from structlog.contextvars import bind_contextvars

from backend_dappstats.core.exceptions import MalformedRecord, NotFound
from backend_dappstats.core.time_utils import floor_to_hour, ingestion_cutoff
from backend_dappstats.dappstats_logging import dapp_log_context, get_logger
from backend_dappstats.database.aggregation import AggregationStore
from backend_dappstats.database.dapps import DappRecord, DappRepository
from backend_dappstats.database.database import Database
from backend_dappstats.database.runs import IngestionRunLog
from backend_dappstats.explorer.models import AddressDescriptor, ExplorerTransaction

logger = get_logger(__name__)

T = TypeVar("T")

FAILED_STATUSES = frozenset({"error", "failed", "failure", "reverted"})
DEFAULT_HOURS_BACK = 24
DEFAULT_DAPP_DELAY_SEC = 2.0


def classify_transaction(tx: ExplorerTransaction) -> bool:
    """
    True when the transaction counts toward stats, False when it failed on chain.

    Unknown or pending statuses are accepted.

    Raises:
        MalformedRecord: missing hash, timestamp or sender.
    """
    if tx.status and tx.status.strip().lower() in FAILED_STATUSES:
        return False
    if tx.timestamp is None:
        raise MalformedRecord(f"transaction {tx.tx_hash or '?'} has no timestamp")
    if not tx.sender:
        raise MalformedRecord(f"transaction {tx.tx_hash or '?'} has no sender")
    if not tx.tx_hash:
        raise MalformedRecord("transaction has no hash")
    return True


@dataclass
class IngestionResult:
    slug: str
    dapp_id: int | None = None
    success: bool = False
    addresses_processed: int = 0
    transactions_processed: int = 0
    hours_touched: int = 0
    address_errors: int = 0
    failed_skipped: int = 0
    malformed_skipped: int = 0
    duplicates_skipped: int = 0
    error: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class DappIngestor:
    def __init__(
        self,
        client: Any,
        database: Database,
        *,
        chain_id: int = 1,
        hours_back: int = DEFAULT_HOURS_BACK,
        dapp_delay_sec: float = DEFAULT_DAPP_DELAY_SEC,
        source: str = "storyscan",
        executor: Executor | None = None,
    ) -> None:
        if hours_back < 1:
            raise ValueError("hours_back must be >= 1")
        self.client = client
        self.hours_back = hours_back
        self.dapp_delay_sec = dapp_delay_sec
        self.dapps = DappRepository(database, chain_id)
        self.store = AggregationStore(database, chain_id)
        self.runs = IngestionRunLog(database, source)
        self._executor = executor

    @classmethod
    def from_settings(cls, client: Any, database: Database, settings: Any) -> "DappIngestor":
        return cls(
            client,
            database,
            chain_id=settings.chain_id,
            hours_back=settings.ingest_hours_back,
            dapp_delay_sec=settings.ingest_dapp_delay_sec,
            source=settings.data_source,
        )

    async def _db(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        # copy the context so store-side log lines keep the bound dapp_slug
        loop = asyncio.get_running_loop()
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(
            self._executor, functools.partial(ctx.run, fn, *args, **kwargs)
        )

    async def sync_dapp(
        self,
        slug: str,
        title: str | None = None,
        *,
        hours_back: int | None = None,
    ) -> IngestionResult:
        """
        Sync one dApp. Never raises for data or source errors; see result.success / result.error.

        A slug with no dApp row is resolved against the explorer first and only
        registered once it has addresses, so failed lookups leave nothing behind.
        Every log line emitted during the sync (explorer client included) carries
        dapp_slug, and ingestion_run_id once the run is recorded.
        """
        with dapp_log_context(slug):
            return await self._sync_dapp(slug, title, hours_back or self.hours_back)

    async def _sync_dapp(self, slug: str, title: str | None, hours_back: int) -> IngestionResult:
        started = time.monotonic()
        result = IngestionResult(slug=slug)
        run_id: int | None = None
        logger.info("ingestion_dapp_start", hours_back=hours_back)
        try:
            descriptors = None
            dapp = await self._db(self.dapps.get_active_dapp_by_slug, slug)
            if dapp is None:
                descriptors = await self.client.resolve_addresses(slug)
                dapp = await self._db(self.dapps.get_or_create_dapp, slug, title)
            result.dapp_id = dapp.id
            run_id = await self._start_run(dapp.id)
            if run_id is not None:
                bind_contextvars(ingestion_run_id=run_id)
            await self._sync(dapp, hours_back, result, descriptors)
            result.success = True
        except Exception as e:
            result.success = False
            result.error = str(e) or type(e).__name__
            logger.error("ingestion_dapp_failed", error=result.error, error_type=type(e).__name__)
        finally:
            result.duration_ms = int((time.monotonic() - started) * 1000)
            if run_id is not None:
                await self._finish_run(run_id, result)
        logger.info("ingestion_dapp_done", **result.to_dict())
        return result

    async def _sync(
        self,
        dapp: DappRecord,
        hours_back: int,
        result: IngestionResult,
        descriptors: list[AddressDescriptor] | None = None,
    ) -> None:
        if descriptors is None:
            descriptors = await self.client.resolve_addresses(dapp.slug)
        for desc in descriptors:
            address_id = await self._db(
                self.dapps.upsert_address, desc.address, desc.label, desc.address_type
            )
            await self._db(self.dapps.link_address, dapp.id, address_id, "contract")

        linked = await self._db(self.dapps.get_dapp_addresses, dapp.id)
        if not linked:
            raise NotFound(f"no addresses linked to dApp {dapp.slug!r}")

        cutoff = ingestion_cutoff(hours_back)
        touched: set[int] = set()
        for addr in linked:
            try:
                await self._drain_address(dapp.id, addr.address, cutoff, result, touched)
            except Exception as e:
                result.address_errors += 1
                logger.warning("ingestion_address_failed", address=addr.address, error=str(e))
            result.addresses_processed += 1

        result.hours_touched = len(touched)
        for hour in sorted(touched):
            try:
                await self._db(self.store.refresh_unique_count, dapp.id, hour)
            except Exception as e:
                logger.warning("ingestion_refresh_failed", ts_hour=hour, error=str(e))

    async def _drain_address(
        self,
        dapp_id: int,
        address: str,
        cutoff: int,
        result: IngestionResult,
        touched: set[int],
    ) -> None:
        stream = self.client.transactions_for(address, cutoff)
        async for tx in stream:
            try:
                accepted = classify_transaction(tx)
            except MalformedRecord as e:
                result.malformed_skipped += 1
                logger.debug("ingestion_tx_malformed", address=address, error=str(e))
                continue
            if not accepted:
                result.failed_skipped += 1
                continue
            hour = floor_to_hour(tx.timestamp)
            applied = await self._db(self.store.apply_transaction, dapp_id, hour, tx.sender, tx.tx_hash)
            if applied:
                result.transactions_processed += 1
                touched.add(hour)
            else:
                result.duplicates_skipped += 1

    async def _start_run(self, dapp_id: int) -> int | None:
        try:
            return await self._db(self.runs.start, dapp_id)
        except Exception as e:
            logger.warning("ingestion_run_log_failed", stage="start", error=str(e))
            return None

    async def _finish_run(self, run_id: int, result: IngestionResult) -> None:
        try:
            await self._db(
                self.runs.finish,
                run_id,
                success=result.success,
                addresses_processed=result.addresses_processed,
                transactions_processed=result.transactions_processed,
                hours_touched=result.hours_touched,
                notes=result.error,
            )
        except Exception as e:
            logger.warning("ingestion_run_log_failed", stage="finish", error=str(e))

    async def sync_many(self, dapps: Iterable[DappRecord | str]) -> list[IngestionResult]:
        """Sync dApps one at a time, pausing dapp_delay_sec between them."""
        targets = list(dapps)
        results: list[IngestionResult] = []
        for i, dapp in enumerate(targets):
            slug = dapp if isinstance(dapp, str) else dapp.slug
            title = None if isinstance(dapp, str) else dapp.title
            try:
                results.append(await self.sync_dapp(slug, title))
            except Exception as e:
                logger.exception("ingestion_dapp_unexpected_error", dapp_slug=slug, error=str(e))
                results.append(IngestionResult(slug=slug, success=False, error=str(e)))
            if i < len(targets) - 1 and self.dapp_delay_sec > 0:
                await asyncio.sleep(self.dapp_delay_sec)
        ok = sum(1 for r in results if r.success)
        logger.info(
            "ingestion_batch_done",
            dapps=len(results),
            succeeded=ok,
            failed=len(results) - ok,
            transactions=sum(r.transactions_processed for r in results),
        )
        return results
