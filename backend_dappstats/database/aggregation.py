"""
Hourly aggregation store: per-dApp hourly transaction counters and distinct-user sets.

Counters are bumped with the dialect's INSERT ... ON CONFLICT DO UPDATE so
concurrent increments never lose updates; user-set inserts use ON CONFLICT DO
NOTHING. apply_transaction() does claim-hash, increment and record-user in one
database transaction, which makes re-ingestion of the same hash a no-op.

Read side (sum_in_window, series_in_window) is used by the analytics engine
and never writes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from backend_dappstats.core.time_utils import floor_to_hour, now_ts
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database.database import Database
from backend_dappstats.database.models import DappHourlyUser, DappProcessedTx, DappStatsHourly

logger = get_logger(__name__)


@dataclass(frozen=True)
class WindowTotals:
    tx_count: int = 0
    unique_users: int = 0


@dataclass(frozen=True)
class HourlyBucket:
    dapp_id: int
    ts_hour: int
    tx_count: int
    unique_users: int
    updated_at: int


class AggregationStore:
    def __init__(self, database: Database, chain_id: int = 1) -> None:
        self._db = database
        self.chain_id = chain_id
        if database.dialect == "postgresql":
            self._insert = postgresql.insert
        elif database.dialect == "sqlite":
            self._insert = sqlite.insert
        else:
            raise ValueError(f"unsupported database dialect: {database.dialect}")

    # ------------------------------------------------------------------
    # Write side (ingestion only)
    # ------------------------------------------------------------------

    def _increment(self, session: Session, dapp_id: int, hour: int, delta: int) -> None:
        table = DappStatsHourly.__table__
        ts = now_ts()
        stmt = self._insert(table).values(
            dapp_id=dapp_id,
            chain_id=self.chain_id,
            ts_hour=hour,
            tx_count=delta,
            unique_users=0,
            updated_at=ts,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["dapp_id", "chain_id", "ts_hour"],
            set_={"tx_count": table.c.tx_count + stmt.excluded.tx_count, "updated_at": ts},
        )
        session.execute(stmt)

    def _insert_user(self, session: Session, dapp_id: int, hour: int, user_address: str) -> bool:
        stmt = self._insert(DappHourlyUser.__table__).values(
            dapp_id=dapp_id,
            chain_id=self.chain_id,
            ts_hour=hour,
            user_address=user_address.strip().lower(),
        ).on_conflict_do_nothing()
        return session.execute(stmt).rowcount > 0

    def _claim_hash(self, session: Session, dapp_id: int, hour: int, tx_hash: str) -> bool:
        stmt = self._insert(DappProcessedTx.__table__).values(
            dapp_id=dapp_id,
            chain_id=self.chain_id,
            tx_hash=tx_hash.strip().lower(),
            ts_hour=hour,
        ).on_conflict_do_nothing()
        return session.execute(stmt).rowcount > 0

    def increment_tx_count(self, dapp_id: int, hour: int, delta: int = 1) -> None:
        """Atomically add delta to the bucket's tx_count, creating the bucket at delta."""
        with self._db.session_scope() as session:
            self._increment(session, dapp_id, floor_to_hour(hour), delta)

    def record_user_once(self, dapp_id: int, hour: int, user_address: str) -> bool:
        """Add a user to the hour's set; returns False when already a member."""
        if not user_address or not user_address.strip():
            raise ValueError("user_address must be non-empty")
        with self._db.session_scope() as session:
            return self._insert_user(session, dapp_id, floor_to_hour(hour), user_address)

    def apply_transaction(self, dapp_id: int, hour: int, sender: str, tx_hash: str) -> bool:
        """
        Apply one accepted transaction: claim its hash, bump the counter, record the sender.

        All three happen in one database transaction. Returns False (and changes
        nothing) when the hash was already applied to this dApp.
        """
        if not sender or not tx_hash:
            raise ValueError("sender and tx_hash must be non-empty")
        hour = floor_to_hour(hour)
        with self._db.session_scope() as session:
            if not self._claim_hash(session, dapp_id, hour, tx_hash):
                return False
            self._increment(session, dapp_id, hour, 1)
            self._insert_user(session, dapp_id, hour, sender)
            return True

    def refresh_unique_count(self, dapp_id: int, hour: int) -> int:
        """Set the bucket's unique_users to the size of its user set; returns the new value."""
        hour = floor_to_hour(hour)
        users = DappHourlyUser.__table__
        count_q = (
            select(func.count())
            .select_from(users)
            .where(
                users.c.dapp_id == dapp_id,
                users.c.chain_id == self.chain_id,
                users.c.ts_hour == hour,
            )
            .scalar_subquery()
        )
        with self._db.session_scope() as session:
            session.execute(
                update(DappStatsHourly)
                .where(
                    DappStatsHourly.dapp_id == dapp_id,
                    DappStatsHourly.chain_id == self.chain_id,
                    DappStatsHourly.ts_hour == hour,
                )
                .values(unique_users=count_q, updated_at=now_ts())
                .execution_options(synchronize_session=False)
            )
            value = session.execute(
                select(DappStatsHourly.unique_users).where(
                    DappStatsHourly.dapp_id == dapp_id,
                    DappStatsHourly.chain_id == self.chain_id,
                    DappStatsHourly.ts_hour == hour,
                )
            ).scalar_one_or_none()
        return int(value or 0)

    def reset_dapp(self, dapp_id: int) -> dict[str, int]:
        """Delete a dApp's buckets, user sets and processed hashes. Returns rows deleted per table."""
        deleted = {}
        with self._db.session_scope() as session:
            for model in (DappStatsHourly, DappHourlyUser, DappProcessedTx):
                result = session.execute(
                    delete(model).where(model.dapp_id == dapp_id, model.chain_id == self.chain_id)
                )
                deleted[model.__tablename__] = result.rowcount
        logger.info("aggregation_reset", dapp_id=dapp_id, **deleted)
        return deleted

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def bucket(self, dapp_id: int, hour: int) -> HourlyBucket | None:
        with self._db.session_scope() as session:
            row = session.get(DappStatsHourly, (dapp_id, self.chain_id, floor_to_hour(hour)))
            if row is None:
                return None
            return HourlyBucket(
                dapp_id=row.dapp_id,
                ts_hour=row.ts_hour,
                tx_count=row.tx_count,
                unique_users=row.unique_users,
                updated_at=row.updated_at,
            )

    def unique_user_count(self, dapp_id: int, hour: int) -> int:
        """Live size of the hour's user set (not the cached unique_users)."""
        with self._db.session_scope() as session:
            return int(
                session.execute(
                    select(func.count())
                    .select_from(DappHourlyUser)
                    .where(
                        DappHourlyUser.dapp_id == dapp_id,
                        DappHourlyUser.chain_id == self.chain_id,
                        DappHourlyUser.ts_hour == floor_to_hour(hour),
                    )
                ).scalar_one()
            )

    def sum_in_window(self, dapp_ids: Iterable[int], start: int, end: int) -> dict[int, WindowTotals]:
        """Totals over start <= ts_hour < end. Every requested id is present; zero when empty."""
        ids = list(dict.fromkeys(dapp_ids))
        totals = {i: WindowTotals() for i in ids}
        if not ids:
            return totals
        with self._db.session_scope() as session:
            rows = session.execute(
                select(
                    DappStatsHourly.dapp_id,
                    func.coalesce(func.sum(DappStatsHourly.tx_count), 0),
                    func.coalesce(func.sum(DappStatsHourly.unique_users), 0),
                )
                .where(
                    DappStatsHourly.dapp_id.in_(ids),
                    DappStatsHourly.chain_id == self.chain_id,
                    DappStatsHourly.ts_hour >= start,
                    DappStatsHourly.ts_hour < end,
                )
                .group_by(DappStatsHourly.dapp_id)
            ).all()
        for dapp_id, tx_count, users in rows:
            totals[dapp_id] = WindowTotals(tx_count=int(tx_count), unique_users=int(users))
        return totals

    def last_updated(self, dapp_ids: Iterable[int]) -> dict[int, int | None]:
        """Most recent bucket write per dApp (Unix seconds), None when it has no buckets."""
        ids = list(dict.fromkeys(dapp_ids))
        latest: dict[int, int | None] = {i: None for i in ids}
        if not ids:
            return latest
        with self._db.session_scope() as session:
            rows = session.execute(
                select(DappStatsHourly.dapp_id, func.max(DappStatsHourly.updated_at))
                .where(DappStatsHourly.dapp_id.in_(ids), DappStatsHourly.chain_id == self.chain_id)
                .group_by(DappStatsHourly.dapp_id)
            ).all()
        for dapp_id, ts in rows:
            latest[dapp_id] = int(ts) if ts is not None else None
        return latest

    def series_in_window(
        self, dapp_ids: Iterable[int], start: int, end: int
    ) -> dict[int, list[tuple[int, int]]]:
        """(ts_hour, tx_count) per existing bucket in start <= ts_hour < end, ordered by hour."""
        ids = list(dict.fromkeys(dapp_ids))
        series: dict[int, list[tuple[int, int]]] = {i: [] for i in ids}
        if not ids:
            return series
        with self._db.session_scope() as session:
            rows = session.execute(
                select(DappStatsHourly.dapp_id, DappStatsHourly.ts_hour, DappStatsHourly.tx_count)
                .where(
                    DappStatsHourly.dapp_id.in_(ids),
                    DappStatsHourly.chain_id == self.chain_id,
                    DappStatsHourly.ts_hour >= start,
                    DappStatsHourly.ts_hour < end,
                )
                .order_by(DappStatsHourly.dapp_id, DappStatsHourly.ts_hour)
            ).all()
        for dapp_id, ts_hour, tx_count in rows:
            series[dapp_id].append((int(ts_hour), int(tx_count)))
        return series
