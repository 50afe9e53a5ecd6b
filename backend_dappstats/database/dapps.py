"""
dApp and address persistence: create/lookup dApps, upsert explorer addresses,
and link them to dApps.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy import func, select, update

from backend_dappstats.core.time_utils import now_ts
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database.database import Database
from backend_dappstats.database.models import Address, Dapp, DappAddress

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def slugify(name: str) -> str:
    """Lower-case and replace whitespace runs with '-'."""
    return _WHITESPACE_RE.sub("-", (name or "").strip().lower())


@dataclass(frozen=True)
class DappRecord:
    id: int
    slug: str
    title: str
    is_active: bool
    priority: int | None
    all_time_txs: int


@dataclass(frozen=True)
class LinkedAddress:
    address_id: int
    address: str
    label: str | None
    role: str


def _record(row: Dapp) -> DappRecord:
    return DappRecord(
        id=row.id,
        slug=row.slug,
        title=row.title or row.slug,
        is_active=bool(row.is_active),
        priority=row.priority,
        all_time_txs=row.all_time_txs or 0,
    )


class DappRepository:
    def __init__(self, database: Database, chain_id: int = 1) -> None:
        self._db = database
        self.chain_id = chain_id

    def get_or_create_dapp(self, slug: str, title: str | None = None) -> DappRecord:
        slug = slug.strip()
        if not slug:
            raise ValueError("slug must be non-empty")
        with self._db.session_scope() as session:
            row = session.execute(select(Dapp).where(Dapp.slug == slug)).scalar_one_or_none()
            if row is None:
                ts = now_ts()
                row = Dapp(
                    slug=slug,
                    title=title or slug,
                    is_active=True,
                    all_time_txs=0,
                    created_at=ts,
                    updated_at=ts,
                )
                session.add(row)
                session.flush()
                logger.info("dapp_created", dapp_slug=slug, dapp_id=row.id)
            elif title and title != row.title:
                row.title = title
                row.updated_at = now_ts()
            return _record(row)

    def get_active_dapp_by_slug(self, slug: str) -> DappRecord | None:
        with self._db.session_scope() as session:
            row = session.execute(
                select(Dapp).where(Dapp.slug == slug, Dapp.is_active.is_(True))
            ).scalar_one_or_none()
            return _record(row) if row is not None else None

    def find_dapp(self, name: str) -> DappRecord | None:
        """
        Resolve a user-supplied name to an active dApp: exact slug, then the
        slugified name, then a case-insensitive title match.
        """
        name = (name or "").strip()
        if not name:
            return None
        found = self.get_active_dapp_by_slug(name)
        if found is not None:
            return found
        slug = slugify(name)
        if slug != name:
            found = self.get_active_dapp_by_slug(slug)
            if found is not None:
                return found
        with self._db.session_scope() as session:
            row = session.execute(
                select(Dapp)
                .where(func.lower(Dapp.title) == name.lower(), Dapp.is_active.is_(True))
                .order_by(Dapp.id)
                .limit(1)
            ).scalar_one_or_none()
            return _record(row) if row is not None else None

    def list_active_dapps(self) -> list[DappRecord]:
        """Active dApps ordered by priority (nulls last), then id."""
        with self._db.session_scope() as session:
            rows = session.execute(
                select(Dapp)
                .where(Dapp.is_active.is_(True))
                .order_by(Dapp.priority.is_(None), Dapp.priority, Dapp.id)
            ).scalars().all()
            return [_record(r) for r in rows]

    def set_active(self, slug: str, is_active: bool) -> bool:
        with self._db.session_scope() as session:
            result = session.execute(
                update(Dapp)
                .where(Dapp.slug == slug)
                .values(is_active=is_active, updated_at=now_ts())
            )
            return result.rowcount > 0

    def set_all_time_txs(self, dapp_id: int, total: int) -> None:
        with self._db.session_scope() as session:
            session.execute(
                update(Dapp)
                .where(Dapp.id == dapp_id)
                .values(all_time_txs=int(total), updated_at=now_ts())
            )

    def upsert_address(self, address: str, label: str | None = None, address_type: str = "contract") -> int:
        """Insert or refresh an address (lower-cased); returns its id."""
        address = address.strip().lower()
        if not address:
            raise ValueError("address must be non-empty")
        ts = now_ts()
        with self._db.session_scope() as session:
            row = session.execute(
                select(Address).where(
                    Address.chain_id == self.chain_id,
                    Address.address_hash == address,
                )
            ).scalar_one_or_none()
            if row is None:
                row = Address(
                    chain_id=self.chain_id,
                    address_hash=address,
                    label=label,
                    address_type=address_type,
                    first_seen_at=ts,
                    last_seen_at=ts,
                )
                session.add(row)
                session.flush()
            else:
                if label:
                    row.label = label
                row.last_seen_at = ts
            return row.id

    def link_address(self, dapp_id: int, address_id: int, role: str = "contract") -> bool:
        """Link an address to a dApp. Re-linking is a no-op; returns whether a link was added."""
        with self._db.session_scope() as session:
            existing = session.get(DappAddress, (dapp_id, address_id))
            if existing is not None:
                return False
            session.add(DappAddress(dapp_id=dapp_id, address_id=address_id, role=role))
            return True

    def get_dapp_addresses(self, dapp_id: int) -> list[LinkedAddress]:
        with self._db.session_scope() as session:
            rows = session.execute(
                select(Address.id, Address.address_hash, Address.label, DappAddress.role)
                .join(DappAddress, DappAddress.address_id == Address.id)
                .where(DappAddress.dapp_id == dapp_id, Address.chain_id == self.chain_id)
                .order_by(Address.id)
            ).all()
            return [
                LinkedAddress(address_id=r[0], address=r[1], label=r[2], role=r[3])
                for r in rows
            ]
