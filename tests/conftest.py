"""
Pytest fixtures for dApp Stats tests. Each test gets a temporary SQLite DB.
"""

from __future__ import annotations

from typing import Any

import pytest

from backend_dappstats.core.exceptions import NotFound
from backend_dappstats.explorer.models import AddressDescriptor, ExplorerTransaction


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh SQLite database with the schema created. Unset DATABASE_URL so nothing leaks in."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DAPPSTATS_DB_URL", raising=False)
    from backend_dappstats.database.database import Database

    db = Database(f"sqlite:///{tmp_path / 'dappstats_test.db'}")
    db.ensure_schema()
    yield db
    db.dispose()


@pytest.fixture
def settings(database):
    from backend_dappstats.config.settings import Settings

    return Settings(database_url=database.url, app_env="test", scheduler_enabled=False)


@pytest.fixture
def store(database):
    from backend_dappstats.database.aggregation import AggregationStore

    return AggregationStore(database, chain_id=1)


@pytest.fixture
def repo(database):
    from backend_dappstats.database.dapps import DappRepository

    return DappRepository(database, chain_id=1)


@pytest.fixture
def client(database, settings):
    """FastAPI TestClient over the temp DB; background scheduler disabled."""
    from fastapi.testclient import TestClient

    from backend_dappstats.api_server.server import create_app

    return TestClient(create_app(database, settings, start_background=False))


def make_tx(
    tx_hash: str | None,
    ts: int | None,
    sender: str | None = "0xsender",
    status: str | None = "ok",
) -> ExplorerTransaction:
    return ExplorerTransaction(tx_hash=tx_hash, timestamp=ts, sender=sender, status=status)


class FakeExplorer:
    """
    In-memory explorer: addresses per slug and transactions per address
    (most recent first). An address mapped to an Exception raises mid-stream.
    """

    def __init__(
        self,
        addresses: dict[str, Any] | None = None,
        transactions: dict[str, Any] | None = None,
    ) -> None:
        self.addresses = addresses or {}
        self.transactions = transactions or {}
        self.resolve_calls: list[str] = []
        self.stream_calls: list[tuple[str, int]] = []

    async def resolve_addresses(self, slug: str, tag_type: str = "protocol") -> list[AddressDescriptor]:
        self.resolve_calls.append(slug)
        value = self.addresses.get(slug)
        if isinstance(value, Exception):
            raise value
        if not value:
            raise NotFound(f"no addresses found for dApp {slug!r}")
        return [AddressDescriptor(address=a) for a in value]

    def transactions_for(self, address: str, cutoff: int, *, max_pages: int | None = None):
        self.stream_calls.append((address, cutoff))
        return self._stream(address, cutoff)

    async def _stream(self, address: str, cutoff: int):
        value = self.transactions.get(address.lower(), [])
        if isinstance(value, Exception):
            raise value
        for tx in value:
            if isinstance(tx, Exception):
                raise tx
            if tx.timestamp is not None and tx.timestamp < cutoff:
                return
            yield tx


@pytest.fixture
def fake_explorer_cls():
    return FakeExplorer


@pytest.fixture
def tx_factory():
    return make_tx
