"""
Ingestion run audit log (ingestion_runs).
"""

from __future__ import annotations

from sqlalchemy import select

from backend_dappstats.core.time_utils import now_ts
from backend_dappstats.database.database import Database
from backend_dappstats.database.models import IngestionRun

STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class IngestionRunLog:
    def __init__(self, database: Database, source: str = "storyscan") -> None:
        self._db = database
        self.source = source

    def start(self, dapp_id: int | None) -> int:
        with self._db.session_scope() as session:
            run = IngestionRun(
                dapp_id=dapp_id,
                source=self.source,
                started_at=now_ts(),
                status=STATUS_RUNNING,
            )
            session.add(run)
            session.flush()
            return run.id

    def finish(
        self,
        run_id: int,
        *,
        success: bool,
        addresses_processed: int = 0,
        transactions_processed: int = 0,
        hours_touched: int = 0,
        notes: str | None = None,
    ) -> None:
        with self._db.session_scope() as session:
            run = session.get(IngestionRun, run_id)
            if run is None:
                raise LookupError(f"ingestion run {run_id} not found")
            run.finished_at = now_ts()
            run.status = STATUS_SUCCESS if success else STATUS_FAILED
            run.addresses_processed = addresses_processed
            run.transactions_processed = transactions_processed
            run.hours_touched = hours_touched
            run.notes = notes

    def last_successful_finish(self) -> int | None:
        """finished_at of the most recent successful run, or None."""
        with self._db.session_scope() as session:
            return session.execute(
                select(IngestionRun.finished_at)
                .where(IngestionRun.status == STATUS_SUCCESS)
                .order_by(IngestionRun.finished_at.desc())
                .limit(1)
            ).scalar_one_or_none()

    def recent(self, limit: int = 20) -> list[dict]:
        with self._db.session_scope() as session:
            rows = session.execute(
                select(IngestionRun).order_by(IngestionRun.id.desc()).limit(limit)
            ).scalars().all()
            return [r.to_dict() for r in rows]
