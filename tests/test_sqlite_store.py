"""
Tests for the SQLite snapshot store
Copyright 2025 Jurden Bruce
"""

import sqlite3
from datetime import datetime, timedelta

import pytest

from wake_memory.errors import StoreError
from wake_memory.models import ActionType, MemoryTier
from wake_memory.storage.sqlite_store import SQLiteStore


def test_save_and_get_round_trip(store, make_snapshot):
    saved = make_snapshot(
        summary="decided on sqlite",
        action_type=ActionType.DECISION,
        rationale="need persistence",
        dependencies=("a", "b"),
        caused_by="root",
        tags="db,storage",
    )

    loaded = store.get(saved.id)

    assert loaded == saved
    assert isinstance(loaded.created_at, datetime)
    assert loaded.causality.action_type is ActionType.DECISION
    assert loaded.causality.dependencies == ("a", "b")
    assert loaded.causality.caused_by == "root"
    assert loaded.memory_tier == MemoryTier.ACTIVE


def test_get_unknown_returns_none(store):
    assert store.get("missing") is None


def test_snapshot_without_causality_round_trips(store, make_snapshot):
    saved = make_snapshot(with_causality=False)
    assert store.get(saved.id).causality is None


def test_find_by_project_newest_first(store, make_snapshot):
    old = make_snapshot(hours_ago=3)
    new = make_snapshot(hours_ago=1)
    newest = make_snapshot(hours_ago=0)
    make_snapshot(project="other")

    results = store.find_by_project("wake", limit=2)

    assert [s.id for s in results] == [newest.id, new.id]
    assert old.id not in {s.id for s in results}


def test_find_recent_window(store, make_snapshot, clock):
    inside = make_snapshot(hours_ago=0.5)
    make_snapshot(hours_ago=2)
    make_snapshot(hours_ago=0)  # not strictly before now

    results = store.find_recent("wake", clock(), 1)

    assert [s.id for s in results] == [inside.id]


def test_find_recent_limit(store, make_snapshot, clock):
    for minutes in range(1, 6):
        make_snapshot(hours_ago=minutes / 60)

    assert len(store.find_recent("wake", clock(), 1, limit=3)) == 3
    assert len(store.find_recent("wake", clock(), 1)) == 5


def test_search_matches_summary_and_tags(store, make_snapshot):
    by_summary = make_snapshot(summary="refactor the parser", hours_ago=2)
    by_tag = make_snapshot(summary="unrelated", tags="parser,cleanup", hours_ago=1)
    make_snapshot(summary="parser elsewhere", project="other")

    results = store.search("parser", project="wake")

    assert [s.id for s in results] == [by_tag.id, by_summary.id]
    assert len(store.search("parser")) == 3


def test_search_treats_wildcards_literally(store, make_snapshot):
    percent = make_snapshot(summary="100% done")
    make_snapshot(summary="1000 done")

    assert [s.id for s in store.search("0%")] == [percent.id]
    assert store.search("_") == []


def test_update_access_tracking(store, make_snapshot, clock):
    snapshot = make_snapshot(hours_ago=5)

    assert store.update_access_tracking(snapshot.id) is True
    assert store.update_access_tracking(snapshot.id, clock() - timedelta(hours=1)) is True

    loaded = store.get(snapshot.id)
    assert loaded.access_count == 2
    assert loaded.last_accessed_at == clock()


def test_update_access_tracking_unknown_id(store):
    assert store.update_access_tracking("missing") is False


def test_find_by_memory_tier_oldest_first(store, make_snapshot):
    newer = make_snapshot(hours_ago=800)
    older = make_snapshot(hours_ago=900)
    make_snapshot(hours_ago=0)

    results = store.find_by_memory_tier(MemoryTier.EXPIRED)

    assert [s.id for s in results] == [older.id, newer.id]


def test_update_memory_tier(store, make_snapshot):
    snapshot = make_snapshot()
    store.update_memory_tier(snapshot.id, MemoryTier.ARCHIVED)
    assert store.get(snapshot.id).memory_tier == MemoryTier.ARCHIVED


def test_propagation_round_trip_and_score_order(store, make_snapshot, clock):
    low = make_snapshot()
    high = make_snapshot()
    make_snapshot()

    store.update_propagation(low.id, 0.65, clock(), None, ["baseline_prediction"])
    store.update_propagation(high.id, 0.9, clock(), clock() + timedelta(days=1), ["recently_accessed"])

    results = store.find_by_prediction_score(0.6, "wake")
    assert [s.id for s in results] == [high.id, low.id]

    loaded = results[0]
    assert loaded.propagation.score == 0.9
    assert loaded.propagation.computed_at == clock()
    assert loaded.propagation.predicted_next_access == clock() + timedelta(days=1)
    assert loaded.propagation.reasons == ("recently_accessed",)


def test_find_stale_predictions(store, make_snapshot, clock):
    never = make_snapshot()
    stale = make_snapshot()
    fresh = make_snapshot()
    other = make_snapshot(project="other")

    store.update_propagation(stale.id, 0.5, clock() - timedelta(hours=30), None, [])
    store.update_propagation(fresh.id, 0.5, clock() - timedelta(hours=1), None, [])

    results = store.find_stale_predictions(24, project="wake")

    assert [s.id for s in results] == [never.id, stale.id]
    assert other.id in {s.id for s in store.find_stale_predictions(24)}


def test_delete_and_count(store, make_snapshot):
    a = make_snapshot()
    make_snapshot(project="other")

    assert store.count() == 2
    assert store.count("wake") == 1
    assert store.delete(a.id) is True
    assert store.delete(a.id) is False
    assert store.count() == 1


def test_sqlite_errors_are_logged_and_raised(store):
    store.conn.execute("DROP TABLE context_snapshots")

    with pytest.raises(StoreError) as excinfo:
        store.get("anything")

    assert excinfo.value.operation == "get"
    assert isinstance(excinfo.value.original, sqlite3.Error)
    assert store.error_log[-1]["operation"] == "get"


def test_error_log_is_bounded(store):
    store.conn.execute("DROP TABLE context_snapshots")

    for _ in range(120):
        with pytest.raises(StoreError):
            store.count()

    assert len(store.error_log) == 100


def test_migrates_legacy_schema(clock):
    conn = sqlite3.connect(":memory:", detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES)
    conn.row_factory = sqlite3.Row
    conn.execute("""
        CREATE TABLE context_snapshots (
            id TEXT PRIMARY KEY,
            project TEXT NOT NULL,
            summary TEXT NOT NULL,
            source TEXT,
            metadata TEXT,
            tags TEXT,
            created_at TIMESTAMP NOT NULL
        )
    """)
    conn.execute(
        "INSERT INTO context_snapshots (id, project, summary, source, tags, created_at) VALUES (?, ?, ?, ?, ?, ?)",
        ("legacy", "wake", "from before causality", "mcp", "", clock().isoformat()),
    )
    conn.commit()

    store = SQLiteStore(db_conn=conn, clock=clock)
    loaded = store.get("legacy")

    assert loaded.causality is None
    assert loaded.access_count == 0
    assert loaded.memory_tier == MemoryTier.ACTIVE
    assert store.update_access_tracking("legacy", clock())
    store.close()
