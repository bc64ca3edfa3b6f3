"""Tests for SqliteStore: the Store protocol over a file-backed database."""

from __future__ import annotations

import sqlite3
from datetime import timedelta

import pytest

from stock_recommender.db.store import SqliteStore
from stock_recommender.errors import StoreError
from stock_recommender.interfaces import Store


def test_satisfies_store_protocol(sqlite_store):
    assert isinstance(sqlite_store, Store)


def test_memory_path_rejected():
    with pytest.raises(ValueError):
        SqliteStore(":memory:")


def test_insert_and_read_back(sqlite_store, make_rec):
    recs = [make_rec("aapl", hours_ago=1), make_rec("MSFT", hours_ago=2)]
    assert sqlite_store.insert_recommendations(recs) == 2

    assert sqlite_store.get_available_tickers() == ["AAPL", "MSFT"]
    assert sqlite_store.get_latest_recommendation() == recs[0]
    items, total = sqlite_store.get_recommendations("aapl", 1, 10)
    assert total == 1 and items == [recs[0]]


def test_upsert_is_idempotent(sqlite_store, make_rec):
    rec = make_rec("AAPL", hours_ago=1, rating_to="Hold")
    sqlite_store.insert_recommendations([rec])
    sqlite_store.insert_recommendations([rec.model_copy(update={"rating_to": "Buy"})])

    items, total = sqlite_store.get_recommendations("", 1, 10)
    assert total == 1
    assert items[0].rating_to == "Buy"


def test_recent_window(sqlite_store, make_rec):
    sqlite_store.insert_recommendations([
        make_rec("NEW", hours_ago=2),
        make_rec("OLD", hours_ago=24 * 40),
    ])
    recent = sqlite_store.get_recent_recommendations(timedelta(days=30))
    assert [r.ticker for r in recent] == ["NEW"]


def test_delete_all(sqlite_store, make_rec):
    sqlite_store.insert_recommendations([make_rec("A"), make_rec("B")])
    assert sqlite_store.delete_all_recommendations() == 2
    assert sqlite_store.get_latest_recommendation() is None


def test_empty_insert_is_noop(sqlite_store):
    assert sqlite_store.insert_recommendations([]) == 0


def test_all_stock_features(sqlite_store, make_rec):
    sqlite_store.insert_recommendations([
        make_rec("AAPL", hours_ago=1),
        make_rec("AAPL", hours_ago=2, brokerage="Mizuho"),
        make_rec("TSLA", hours_ago=3),
    ])
    features = dict(sqlite_store.get_all_stock_features())
    assert set(features) == {"AAPL", "TSLA"}
    assert features["AAPL"]["total_recommendations"] == 2.0
    assert features["AAPL"] == sqlite_store.get_stock_features("aapl")


def test_ping(sqlite_store):
    sqlite_store.ping()


def test_sqlite_errors_become_store_errors(tmp_path, make_rec):
    store = SqliteStore(str(tmp_path / "uninitialized.db"))
    with pytest.raises(StoreError) as exc_info:
        store.insert_recommendations([make_rec()])
    assert isinstance(exc_info.value.__cause__, sqlite3.Error)
