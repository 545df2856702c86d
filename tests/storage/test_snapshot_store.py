from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta, timezone

import pytest

from putwatch.clock import isoformat
from putwatch.errors import PersistenceError, ValidationError
from putwatch.models.option import OptionScore
from putwatch.scoring import PutScoringEngine
from putwatch.storage import SQLiteDatabase, SQLiteSnapshotStore


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def count_rows(database: SQLiteDatabase, table: str) -> int:
    with database.read() as conn:
        return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])


def test_save_and_get_latest_ranks_by_score(store, clock, contract_factory):
    contracts = [
        contract_factory(90.0, bid=0.8, ask=1.2),
        contract_factory(100.0, bid=3.5, ask=3.6),
        contract_factory(95.0),
    ]
    scores = PutScoringEngine().score_many(contracts, 100.0, now=clock())

    snapshot = store.save("xyz", 100.0, contracts, scores, source="fake")
    bundle = store.get_latest("XYZ")

    assert bundle is not None
    assert bundle.snapshot.id == snapshot.id
    assert bundle.snapshot.symbol == "XYZ"
    assert bundle.snapshot.source == "fake"
    assert bundle.snapshot.fetched_at == clock()
    totals = [item.score.total for item in bundle.contracts]
    assert totals == sorted(totals, reverse=True)
    assert bundle.top_score == max(score.total for score in scores)
    # 2025-03-03 16:00 UTC -> 2025-04-04 00:00 UTC
    assert {item.days_to_expiry for item in bundle.contracts} == {32}
    assert all(item.classification is not None for item in bundle.contracts)


def test_get_latest_returns_most_recent_snapshot(store, clock, contract_factory):
    contracts = [contract_factory()]
    scores = [OptionScore(total=50.0)]
    store.save("XYZ", 100.0, contracts, scores, source="fake", fetched_at=clock())
    newest = store.save("XYZ", 101.0, contracts, scores, source="fake", fetched_at=clock() + timedelta(minutes=5))

    bundle = store.get_latest("XYZ")
    assert bundle.snapshot.id == newest.id
    assert store.get_latest("ABC") is None


def test_mismatched_lengths_are_rejected_without_writes(store, database, contract_factory):
    with pytest.raises(ValidationError):
        store.save("XYZ", 100.0, [contract_factory(), contract_factory(90.0)], [OptionScore(total=10)], source="fake")

    assert count_rows(database, "stock_snapshots") == 0
    assert count_rows(database, "contract_snapshots") == 0


def test_non_positive_price_is_rejected(store, contract_factory):
    with pytest.raises(ValidationError):
        store.save("XYZ", 0.0, [contract_factory()], [OptionScore(total=10)], source="fake")


def test_failed_score_insert_rolls_back_everything(store, database, contract_factory, monkeypatch):
    def explode(self, conn, contract_ids, scores):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(SQLiteSnapshotStore, "_insert_scores", explode)

    with pytest.raises(PersistenceError):
        store.save("XYZ", 100.0, [contract_factory()], [OptionScore(total=10)], source="fake")

    assert count_rows(database, "stock_snapshots") == 0
    assert count_rows(database, "contract_snapshots") == 0
    assert count_rows(database, "score_snapshots") == 0


def test_empty_chain_is_a_valid_snapshot(store):
    store.save("XYZ", 100.0, [], [], source="fake")
    bundle = store.get_latest("XYZ")

    assert bundle.contracts == []
    assert bundle.top_score == 0.0


def test_get_bundle_by_id(store, contract_factory):
    snapshot = store.save("XYZ", 100.0, [contract_factory()], [OptionScore(total=42.0)], source="fake")

    assert store.get_bundle(snapshot.id).contracts[0].score.total == 42.0
    assert store.get_bundle("missing") is None


def test_get_recent_collapses_same_hour_near_duplicates(store):
    for moment, price in [
        (utc(2025, 3, 3, 16, 0), 100.00),
        (utc(2025, 3, 3, 16, 10), 100.05),
        (utc(2025, 3, 3, 16, 40), 101.00),
        (utc(2025, 3, 3, 17, 5), 101.01),
    ]:
        store.save("XYZ", price, [], [], source="fake", fetched_at=moment)

    recent = store.get_recent("XYZ", limit=10)

    assert [snapshot.price for snapshot in recent] == [101.01, 101.00, 100.05]
    assert [snapshot.price for snapshot in store.get_recent("XYZ", limit=2)] == [101.01, 101.00]


def test_get_recent_rejects_non_positive_limit(store):
    with pytest.raises(ValidationError):
        store.get_recent("XYZ", limit=0)


def test_get_performance_aggregates_per_day(store, clock, contract_factory):
    clock.now = utc(2025, 3, 4, 20, 0)
    first = contract_factory(95.0, name="XYZ-95")
    second = contract_factory(90.0, name="XYZ-90")
    third = contract_factory(100.0, name="XYZ-100")

    store.save("XYZ", 100.0, [first, second], [OptionScore(total=60.0), OptionScore(total=40.0)],
               source="fake", fetched_at=utc(2025, 3, 3, 15, 0))
    store.save("XYZ", 102.0, [first], [OptionScore(total=70.0)], source="fake", fetched_at=utc(2025, 3, 3, 18, 0))
    store.save("XYZ", 105.0, [third], [OptionScore(total=50.0)], source="fake", fetched_at=utc(2025, 3, 4, 15, 0))
    # Outside the 30 day window
    store.save("XYZ", 80.0, [third], [OptionScore(total=99.0)], source="fake", fetched_at=utc(2025, 1, 2, 15, 0))

    performance = store.get_performance("XYZ", window_days=30)

    assert [row.day for row in performance] == [date(2025, 3, 4), date(2025, 3, 3)]
    latest, earlier = performance
    assert (latest.low_price, latest.high_price, latest.avg_price) == (105.0, 105.0, 105.0)
    assert latest.top_score == 50.0
    assert latest.snapshot_count == 1
    assert (earlier.low_price, earlier.high_price, earlier.avg_price) == (100.0, 102.0, 101.0)
    assert earlier.top_score == 70.0
    assert earlier.avg_top_score == 65.0
    assert earlier.unique_contracts == 2
    assert earlier.snapshot_count == 2


def test_get_performance_empty_symbol(store):
    assert store.get_performance("XYZ") == []


def test_get_top_contracts_orders_by_score(store, clock, contract_factory):
    store.save("XYZ", 100.0, [contract_factory(95.0), contract_factory(90.0)],
               [OptionScore(total=55.0), OptionScore(total=72.0)], source="fake")
    store.save("XYZ", 101.0, [contract_factory(100.0)], [OptionScore(total=61.0)], source="fake",
               fetched_at=clock() + timedelta(minutes=1))

    top = store.get_top_contracts("XYZ", days=7, limit=2)

    assert [item.score.total for item in top] == [72.0, 61.0]
    assert top[0].contract.strike == 90.0
    assert top[1].snapshot.price == 101.0


def test_corrupt_rows_surface_as_persistence_error(store, database):
    with database.transaction() as conn:
        conn.execute(
            "INSERT INTO stock_snapshots(id, symbol, price, fetched_at, source, created_at) VALUES(?, ?, ?, ?, ?, ?)",
            ("bad", "XYZ", 100.0, "not-a-timestamp", "fake", isoformat(utc(2025, 3, 3))),
        )

    with pytest.raises(PersistenceError):
        store.get_latest("XYZ")


def test_in_memory_database_keeps_schema_between_operations(clock, contract_factory):
    store = SQLiteSnapshotStore(SQLiteDatabase(":memory:"), clock=clock)
    store.save("XYZ", 100.0, [contract_factory()], [OptionScore(total=30.0)], source="fake")

    assert store.count_snapshots("XYZ") == 1
