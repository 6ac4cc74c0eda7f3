"""
Tests for memory tier management
Copyright 2025 Jurden Bruce
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from wake_memory.errors import StoreError
from wake_memory.memory_manager import MemoryClassifier
from wake_memory.models import MemoryTier


@pytest.fixture
def classifier(store, clock):
    return MemoryClassifier(store, clock=clock)


async def test_track_access_promotes_tier(classifier, store, make_snapshot, clock):
    snapshot = make_snapshot(hours_ago=48)
    assert snapshot.memory_tier == MemoryTier.ARCHIVED

    updated = await classifier.track_access(snapshot.id)

    assert updated.memory_tier == MemoryTier.ACTIVE
    assert updated.access_count == 1
    assert updated.last_accessed_at == clock()
    assert store.get(snapshot.id).memory_tier == MemoryTier.ACTIVE


async def test_track_access_unknown_id(classifier):
    assert await classifier.track_access("missing") is None


async def test_concurrent_tracking_loses_no_increments(classifier, store, make_snapshot):
    snapshot = make_snapshot()

    await asyncio.gather(*(classifier.track_access(snapshot.id) for _ in range(10)))

    assert store.get(snapshot.id).access_count == 10


async def test_access_count_and_time_are_monotonic(classifier, store, make_snapshot, clock):
    snapshot = make_snapshot(hours_ago=5)

    await classifier.track_access(snapshot.id)
    first = store.get(snapshot.id)
    clock.advance(minutes=10)
    await classifier.track_access(snapshot.id)
    second = store.get(snapshot.id)

    assert second.access_count == first.access_count + 1
    assert second.last_accessed_at > first.last_accessed_at


async def test_scheduled_tracking_runs_in_background(classifier, store, make_snapshot):
    a = make_snapshot()
    b = make_snapshot()

    tasks = classifier.schedule_access_tracking([a.id, b.id])
    assert len(tasks) == 2
    await classifier.drain()

    assert classifier.pending_tasks == 0
    assert store.get(a.id).access_count == 1
    assert store.get(b.id).access_count == 1


async def test_scheduled_tracking_failure_is_logged(classifier, store, make_snapshot, monkeypatch, caplog):
    snapshot = make_snapshot()

    def broken(*args, **kwargs):
        raise StoreError("update_access_tracking", RuntimeError("disk full"))

    monkeypatch.setattr(store, "update_access_tracking", broken)

    with caplog.at_level(logging.ERROR, logger="wake-memory.memory"):
        classifier.schedule_access_tracking([snapshot.id])
        await classifier.drain()
        await asyncio.sleep(0)

    assert "Failed to track access" in caplog.text
    assert "disk full" in caplog.text


async def test_recalculate_all_tiers_is_idempotent(classifier, store, make_snapshot, clock):
    a = make_snapshot()
    b = make_snapshot(project="other")
    clock.advance(hours=30)

    assert await classifier.recalculate_all_tiers() == 2
    assert await classifier.recalculate_all_tiers() == 0
    assert store.get(a.id).memory_tier == MemoryTier.ARCHIVED
    assert store.get(b.id).memory_tier == MemoryTier.ARCHIVED


async def test_recalculate_tiers_for_one_project(classifier, store, make_snapshot, clock):
    make_snapshot()
    other = make_snapshot(project="other")
    clock.advance(hours=2)

    assert await classifier.recalculate_all_tiers("wake") == 1
    assert store.get(other.id).memory_tier == MemoryTier.ACTIVE


async def test_prune_deletes_expired(classifier, store, make_snapshot):
    expired = make_snapshot(hours_ago=800)
    kept = make_snapshot(hours_ago=10)

    assert await classifier.prune_expired_contexts() == 1
    assert store.get(expired.id) is None
    assert store.get(kept.id) is not None
    assert await classifier.prune_expired_contexts() == 0


async def test_prune_retiers_recently_used_candidates(classifier, store, make_snapshot, clock):
    revived = make_snapshot(
        hours_ago=900,
        memory_tier=MemoryTier.EXPIRED,
        last_accessed_at=clock() - timedelta(minutes=5),
        access_count=1,
    )

    assert await classifier.prune_expired_contexts() == 0
    assert store.get(revived.id).memory_tier == MemoryTier.ACTIVE


async def test_prune_respects_limit(classifier, store, make_snapshot):
    oldest = make_snapshot(hours_ago=1000)
    newer = make_snapshot(hours_ago=800)

    assert await classifier.prune_expired_contexts(limit=1) == 1
    assert store.get(oldest.id) is None
    assert store.get(newer.id) is not None
    assert await classifier.prune_expired_contexts(limit=0) == 0


async def test_memory_stats(classifier, make_snapshot):
    make_snapshot(hours_ago=0)
    make_snapshot(hours_ago=5)
    make_snapshot(hours_ago=48)
    make_snapshot(hours_ago=1000)
    make_snapshot(hours_ago=1000)
    make_snapshot(project="other")

    stats = await classifier.get_memory_stats("wake")

    assert stats == {"total": 5, "active": 1, "recent": 1, "archived": 1, "expired": 2}
    assert stats["total"] == sum(stats[t.value] for t in MemoryTier)


async def test_least_recently_used_puts_never_accessed_first(classifier, make_snapshot, clock):
    now = clock()
    stale = make_snapshot(hours_ago=100, last_accessed_at=now - timedelta(hours=50), access_count=1)
    never = make_snapshot(hours_ago=30)
    fresher = make_snapshot(hours_ago=200, last_accessed_at=now - timedelta(hours=30), access_count=3)

    results = await classifier.find_least_recently_used(MemoryTier.ARCHIVED, limit=3)

    assert [s.id for s in results] == [never.id, stale.id, fresher.id]
