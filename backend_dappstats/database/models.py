"""
SQLAlchemy models for dApps, their addresses, hourly aggregates and ingestion runs.

All timestamps are integer Unix seconds (UTC). ts_hour is the start of the hour.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Dapp(Base):
    """Tracked dApp. Never hard-deleted; is_active is the soft status flag."""

    __tablename__ = "dapps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(128), unique=True, nullable=False, index=True)
    title = Column(String(256), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    priority = Column(Integer, nullable=True)  # lower runs first
    all_time_txs = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title or "",
            "is_active": self.is_active,
            "priority": self.priority,
            "all_time_txs": self.all_time_txs or 0,
        }


class Address(Base):
    __tablename__ = "addresses"
    __table_args__ = (UniqueConstraint("chain_id", "address_hash", name="uq_addresses_chain_hash"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    chain_id = Column(Integer, nullable=False)
    address_hash = Column(String(128), nullable=False, index=True)  # lower-cased
    label = Column(String(256), nullable=True)
    address_type = Column(String(32), nullable=False, default="contract")
    first_seen_at = Column(Integer, nullable=False)
    last_seen_at = Column(Integer, nullable=False)


class DappAddress(Base):
    __tablename__ = "dapp_addresses"

    dapp_id = Column(Integer, ForeignKey("dapps.id"), primary_key=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), primary_key=True)
    role = Column(String(32), nullable=False, default="contract")


class DappStatsHourly(Base):
    """
    Hourly bucket. unique_users caches the size of the matching
    dapp_hourly_users set as of the last refresh.
    """

    __tablename__ = "dapp_stats_hourly"
    __table_args__ = (Index("ix_dapp_stats_hourly_dapp_hour", "dapp_id", "ts_hour"),)

    dapp_id = Column(Integer, ForeignKey("dapps.id"), primary_key=True)
    chain_id = Column(Integer, primary_key=True)
    ts_hour = Column(Integer, primary_key=True)
    tx_count = Column(Integer, nullable=False, default=0)
    unique_users = Column(Integer, nullable=False, default=0)
    updated_at = Column(Integer, nullable=False)


class DappHourlyUser(Base):
    __tablename__ = "dapp_hourly_users"

    dapp_id = Column(Integer, ForeignKey("dapps.id"), primary_key=True)
    chain_id = Column(Integer, primary_key=True)
    ts_hour = Column(Integer, primary_key=True)
    user_address = Column(String(128), primary_key=True)


class DappProcessedTx(Base):
    """Transaction hashes already applied to a dApp; re-runs skip them."""

    __tablename__ = "dapp_processed_txs"

    dapp_id = Column(Integer, ForeignKey("dapps.id"), primary_key=True)
    chain_id = Column(Integer, primary_key=True)
    tx_hash = Column(String(128), primary_key=True)
    ts_hour = Column(Integer, nullable=False, index=True)


class IngestionRun(Base):
    """Audit log: one row per dApp sync."""

    __tablename__ = "ingestion_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dapp_id = Column(Integer, ForeignKey("dapps.id"), nullable=True, index=True)
    source = Column(String(64), nullable=False, default="storyscan")
    started_at = Column(Integer, nullable=False)
    finished_at = Column(Integer, nullable=True, index=True)
    status = Column(String(16), nullable=False, default="running")  # running | success | failed
    addresses_processed = Column(Integer, nullable=False, default=0)
    transactions_processed = Column(Integer, nullable=False, default=0)
    hours_touched = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dapp_id": self.dapp_id,
            "source": self.source,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "status": self.status,
            "addresses_processed": self.addresses_processed,
            "transactions_processed": self.transactions_processed,
            "hours_touched": self.hours_touched,
            "notes": self.notes,
        }
