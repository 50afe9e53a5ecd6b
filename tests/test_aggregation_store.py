"""
Tests for the hourly aggregation store (SQLite upserts, user sets, window reads).
"""

from __future__ import annotations

import pytest

HOUR = 1709294400  # 2024-03-01T12:00:00Z


@pytest.fixture
def dapp_id(repo):
    return repo.get_or_create_dapp("verio", "Verio").id


def test_increment_creates_then_adds(store, dapp_id):
    store.increment_tx_count(dapp_id, HOUR)
    store.increment_tx_count(dapp_id, HOUR, 4)
    bucket = store.bucket(dapp_id, HOUR)
    assert bucket is not None
    assert bucket.tx_count == 5
    assert bucket.unique_users == 0


def test_non_floored_hour_is_floored(store, dapp_id):
    store.increment_tx_count(dapp_id, HOUR + 1234)
    assert store.bucket(dapp_id, HOUR).tx_count == 1
    assert store.bucket(dapp_id, HOUR + 59).tx_count == 1


def test_record_user_once_is_idempotent(store, dapp_id):
    assert store.record_user_once(dapp_id, HOUR, "0xAbC") is True
    assert store.record_user_once(dapp_id, HOUR, "0xabc") is False
    assert store.record_user_once(dapp_id, HOUR, "0xdef") is True
    assert store.record_user_once(dapp_id, HOUR + 3600, "0xabc") is True
    assert store.unique_user_count(dapp_id, HOUR) == 2


def test_refresh_unique_count(store, dapp_id):
    store.increment_tx_count(dapp_id, HOUR, 3)
    for user in ("0x1", "0x2", "0x2", "0x3"):
        store.record_user_once(dapp_id, HOUR, user)
    assert store.bucket(dapp_id, HOUR).unique_users == 0
    assert store.refresh_unique_count(dapp_id, HOUR) == 3
    assert store.bucket(dapp_id, HOUR).unique_users == 3


def test_refresh_without_bucket_returns_zero(store, dapp_id):
    assert store.refresh_unique_count(dapp_id, HOUR) == 0
    assert store.bucket(dapp_id, HOUR) is None


def test_apply_transaction_dedups_by_hash(store, dapp_id):
    assert store.apply_transaction(dapp_id, HOUR, "0xa", "0xhash1") is True
    assert store.apply_transaction(dapp_id, HOUR, "0xb", "0xhash2") is True
    assert store.apply_transaction(dapp_id, HOUR, "0xa", "0xHASH1") is False
    store.refresh_unique_count(dapp_id, HOUR)
    bucket = store.bucket(dapp_id, HOUR)
    assert bucket.tx_count == 2
    assert bucket.unique_users == 2


def test_same_hash_counts_for_each_dapp(store, repo, dapp_id):
    other = repo.get_or_create_dapp("storyhunt").id
    assert store.apply_transaction(dapp_id, HOUR, "0xa", "0xhash") is True
    assert store.apply_transaction(other, HOUR, "0xa", "0xhash") is True


def test_sum_in_window_half_open_and_zero_fill(store, repo, dapp_id):
    empty_id = repo.get_or_create_dapp("empty").id
    store.increment_tx_count(dapp_id, HOUR - 3600, 2)
    store.increment_tx_count(dapp_id, HOUR, 3)
    store.increment_tx_count(dapp_id, HOUR + 3600, 100)  # excluded: end is exclusive
    store.record_user_once(dapp_id, HOUR, "0x1")
    store.refresh_unique_count(dapp_id, HOUR)

    totals = store.sum_in_window([dapp_id, empty_id], HOUR - 3600, HOUR + 3600)
    assert totals[dapp_id].tx_count == 5
    assert totals[dapp_id].unique_users == 1
    assert totals[empty_id].tx_count == 0
    assert totals[empty_id].unique_users == 0


def test_sum_in_window_no_ids(store):
    assert store.sum_in_window([], 0, HOUR) == {}


def test_series_in_window_ordered(store, dapp_id):
    store.increment_tx_count(dapp_id, HOUR + 7200, 1)
    store.increment_tx_count(dapp_id, HOUR, 4)
    series = store.series_in_window([dapp_id], HOUR, HOUR + 3 * 3600)
    assert series[dapp_id] == [(HOUR, 4), (HOUR + 7200, 1)]


def test_last_updated(store, repo, dapp_id):
    other = repo.get_or_create_dapp("quiet").id
    store.increment_tx_count(dapp_id, HOUR)
    latest = store.last_updated([dapp_id, other])
    assert latest[dapp_id] is not None
    assert latest[other] is None


def test_reset_dapp(store, repo, dapp_id):
    other = repo.get_or_create_dapp("keep").id
    store.apply_transaction(dapp_id, HOUR, "0xa", "0xh1")
    store.apply_transaction(other, HOUR, "0xa", "0xh1")
    deleted = store.reset_dapp(dapp_id)
    assert deleted == {"dapp_stats_hourly": 1, "dapp_hourly_users": 1, "dapp_processed_txs": 1}
    assert store.bucket(dapp_id, HOUR) is None
    assert store.bucket(other, HOUR).tx_count == 1
    # hash can be applied again after reset
    assert store.apply_transaction(dapp_id, HOUR, "0xa", "0xh1") is True


def test_record_user_rejects_empty(store, dapp_id):
    with pytest.raises(ValueError):
        store.record_user_once(dapp_id, HOUR, "  ")


def test_repository_find_dapp(repo):
    repo.get_or_create_dapp("story-hunt", "Story Hunt")
    assert repo.find_dapp("story-hunt").slug == "story-hunt"
    assert repo.find_dapp("Story Hunt").slug == "story-hunt"  # slugified
    assert repo.find_dapp("STORY HUNT").slug == "story-hunt"
    assert repo.find_dapp("nope") is None
    repo.get_or_create_dapp("pf-01", "Piper Finance")
    assert repo.find_dapp("piper finance").slug == "pf-01"  # title match
    repo.set_active("story-hunt", False)
    assert repo.find_dapp("story-hunt") is None


def test_repository_addresses_link_once(repo):
    dapp = repo.get_or_create_dapp("verio")
    a1 = repo.upsert_address("0xABC", "Router")
    a1_again = repo.upsert_address("0xabc")
    assert a1 == a1_again
    assert repo.link_address(dapp.id, a1) is True
    assert repo.link_address(dapp.id, a1) is False
    linked = repo.get_dapp_addresses(dapp.id)
    assert [(l.address, l.label, l.role) for l in linked] == [("0xabc", "Router", "contract")]


def test_list_active_dapps_priority_order(repo, database):
    from sqlalchemy import update

    from backend_dappstats.database.models import Dapp

    repo.get_or_create_dapp("c")
    repo.get_or_create_dapp("a")
    repo.get_or_create_dapp("b")
    with database.session_scope() as session:
        session.execute(update(Dapp).where(Dapp.slug == "b").values(priority=1))
        session.execute(update(Dapp).where(Dapp.slug == "a").values(priority=2))
    assert [d.slug for d in repo.list_active_dapps()] == ["b", "a", "c"]
