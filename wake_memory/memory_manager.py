"""
Memory tier management for Wake Memory (Layer 2)
Copyright 2025 Jurden Bruce

Tier thresholds, in hours since the last access (or creation if never accessed):
    ACTIVE    < 1
    RECENT    1 - 24
    ARCHIVED  24 - 720
    EXPIRED   >= 720, eligible for pruning
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from .models import MemoryTier, Snapshot, calculate_tier
from .storage.base import SnapshotStore

logger = logging.getLogger("wake-memory.memory")


class MemoryClassifier:
    """Classifies snapshots into tiers, tracks access and prunes expired ones"""

    def __init__(
        self,
        store: SnapshotStore,
        clock: Callable[[], datetime] = datetime.now,
        batch_limit: int = 1000,
        default_prune_limit: int = 100,
    ):
        self.store = store
        self.clock = clock
        self.batch_limit = batch_limit
        self.default_prune_limit = default_prune_limit
        self._background: Set[asyncio.Task] = set()

    def calculate_tier(
        self,
        created_at: datetime,
        last_accessed_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> MemoryTier:
        return calculate_tier(created_at, last_accessed_at, now or self.clock())

    async def track_access(self, snapshot_id: str) -> Optional[Snapshot]:
        """Record one access and move the snapshot's tier if it changed

        The count and timestamp are bumped by a single store update so
        concurrent calls cannot lose increments.
        """
        now = self.clock()
        if not await asyncio.to_thread(self.store.update_access_tracking, snapshot_id, now):
            logger.warning(f"Access tracking skipped, snapshot {snapshot_id} not found")
            return None

        snapshot = await asyncio.to_thread(self.store.get, snapshot_id)
        if snapshot is None:
            return None

        updated = snapshot.recalculate_tier(now)
        if updated.memory_tier != snapshot.memory_tier:
            await asyncio.to_thread(self.store.update_memory_tier, snapshot_id, updated.memory_tier)
            logger.debug(f"{snapshot_id}: {snapshot.memory_tier.value} -> {updated.memory_tier.value}")
        return updated

    def schedule_access_tracking(self, snapshot_ids: Iterable[str]) -> List[asyncio.Task]:
        """Track access for each id in detached tasks

        Must be called from a running event loop. Callers do not await the
        returned tasks; failures are logged and dropped.
        """
        tasks = []
        for snapshot_id in snapshot_ids:
            task = asyncio.create_task(self.track_access(snapshot_id))
            task.set_name(f"track-access-{snapshot_id}")
            self._background.add(task)
            task.add_done_callback(self._on_tracking_done)
            tasks.append(task)
        return tasks

    def _on_tracking_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to track access ({task.get_name()}): {error}")

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    async def drain(self):
        """Wait for outstanding access tracking tasks"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def recalculate_all_tiers(self, project: Optional[str] = None) -> int:
        """Recompute tiers for one batch, persisting only the ones that moved"""
        if project:
            snapshots = await asyncio.to_thread(self.store.find_by_project, project, self.batch_limit)
        else:
            snapshots = await asyncio.to_thread(self.store.find_all, self.batch_limit)

        now = self.clock()
        updated_count = 0
        for snapshot in snapshots:
            tier = snapshot.current_tier(now)
            if tier != snapshot.memory_tier:
                await asyncio.to_thread(self.store.update_memory_tier, snapshot.id, tier)
                updated_count += 1

        logger.info(f"Recalculated tiers for {len(snapshots)} snapshot(s), {updated_count} changed")
        return updated_count

    async def prune_expired_contexts(self, limit: Optional[int] = None) -> int:
        """Delete up to limit EXPIRED snapshots, oldest first

        A candidate whose stored tier is out of date is re-tiered instead of
        deleted.
        """
        limit = self.default_prune_limit if limit is None else limit
        if limit <= 0:
            return 0

        candidates = await asyncio.to_thread(self.store.find_by_memory_tier, MemoryTier.EXPIRED, limit)
        now = self.clock()
        deleted = 0

        for snapshot in candidates:
            tier = snapshot.current_tier(now)
            if tier != MemoryTier.EXPIRED:
                logger.info(f"Skipping prune of {snapshot.id}, tier is now {tier.value}")
                await asyncio.to_thread(self.store.update_memory_tier, snapshot.id, tier)
                continue
            if await asyncio.to_thread(self.store.delete, snapshot.id):
                deleted += 1

        logger.info(f"Pruned {deleted} expired snapshot(s)")
        return deleted

    async def get_memory_stats(self, project: str) -> Dict[str, int]:
        snapshots = await asyncio.to_thread(self.store.find_by_project, project, self.batch_limit)

        stats = {"total": len(snapshots)}
        for tier in MemoryTier:
            stats[tier.value] = 0
        for snapshot in snapshots:
            stats[snapshot.memory_tier.value] += 1
        return stats

    async def find_least_recently_used(self, tier: MemoryTier, limit: int = 10) -> List[Snapshot]:
        """Stalest snapshots of a tier; never-accessed ones come first"""
        candidates = await asyncio.to_thread(self.store.find_by_memory_tier, MemoryTier(tier), limit * 2)
        candidates.sort(key=lambda s: (s.last_accessed_at is not None, s.last_accessed_at or datetime.min))
        return candidates[:limit]
