"""
Context orchestration for Wake Memory
Copyright 2025 Jurden Bruce

Write path: summarize -> record causality -> create snapshot -> save.
Read path: query the store, then track access in the background so the
response is not held up by the bookkeeping.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .cache import LRUCache
from .causality import CausalChain, CausalityTracker
from .config import WakeConfig
from .errors import SnapshotNotFoundError
from .memory_manager import MemoryClassifier
from .models import ActionType, MemoryTier, Snapshot
from .propagation import HIGH_VALUE_THRESHOLD, PropagationScorer
from .storage.base import SnapshotStore
from .summarizer import Summarizer, TruncatingSummarizer

logger = logging.getLogger("wake-memory.service")

MAX_LOAD_LIMIT = 10


class ContextService:
    """Coordinates the three layers over one store"""

    def __init__(
        self,
        store: SnapshotStore,
        summarizer: Optional[Summarizer] = None,
        config: Optional[WakeConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.summarizer = summarizer or TruncatingSummarizer()
        self.config = config or WakeConfig()
        self.clock = clock

        self.causality = CausalityTracker(
            store,
            clock=clock,
            lookback_hours=self.config.lookback_hours,
            max_dependencies=self.config.max_dependencies,
            stats_sample_size=self.config.stats_sample_size,
            stats_scan_limit=self.config.tier_batch_limit,
        )
        self.memory = MemoryClassifier(
            store,
            clock=clock,
            batch_limit=self.config.tier_batch_limit,
            default_prune_limit=self.config.prune_limit,
        )
        self.propagation = PropagationScorer(store, clock=clock)

        # project -> high-value snapshot ids, cleared whenever scores may have moved
        self.prefetch_cache: LRUCache = LRUCache(maxsize=self.config.cache_maxsize)

    async def save_context(
        self,
        project: str,
        content: str,
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        action_type: str = ActionType.CONVERSATION.value,
        rationale: Optional[str] = None,
        caused_by: Optional[str] = None,
    ) -> Snapshot:
        summary = await self.summarizer.generate_summary(content)
        tags = await self.summarizer.generate_tags(summary)

        if caused_by and await asyncio.to_thread(self.store.get, caused_by) is None:
            logger.warning(f"caused_by {caused_by} does not resolve, saving link anyway")

        causality = await self.causality.record_action(
            action_type,
            rationale or f"Saved context for project: {project}",
            caused_by,
            project,
        )

        snapshot = Snapshot.create(
            project=project,
            summary=summary,
            tags=tags,
            source=source,
            metadata=metadata,
            causality=causality,
            now=self.clock(),
        )
        await asyncio.to_thread(self.store.save, snapshot)
        self.prefetch_cache.discard(project)

        logger.info(
            f"Saved context {snapshot.id} for {project} "
            f"({len(causality.dependencies)} dependencies)"
        )
        return snapshot

    async def load_context(
        self,
        project: str,
        limit: int = 1,
        include_predicted: bool = False,
    ) -> List[Snapshot]:
        """Newest snapshots of a project, at most ten

        With include_predicted, high-value snapshots not already in the
        result are appended after it. Only the newest ones count as accessed.
        """
        bounded_limit = min(max(limit or 1, 1), MAX_LOAD_LIMIT)
        results = await asyncio.to_thread(self.store.find_by_project, project, bounded_limit)
        self.memory.schedule_access_tracking(s.id for s in results)

        if include_predicted:
            results = results + await self.prefetch_high_value(project, exclude=[s.id for s in results])
        return results

    async def search_context(self, query: str, project: Optional[str] = None) -> List[Snapshot]:
        results = await asyncio.to_thread(self.store.search, query, project)
        self.memory.schedule_access_tracking(s.id for s in results)
        return results

    async def get_snapshot(self, snapshot_id: str) -> Snapshot:
        snapshot = await asyncio.to_thread(self.store.get, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        self.memory.schedule_access_tracking([snapshot_id])
        return snapshot

    async def prefetch_high_value(
        self,
        project: str,
        exclude: Optional[List[str]] = None,
        min_score: float = HIGH_VALUE_THRESHOLD,
        limit: int = 5,
    ) -> List[Snapshot]:
        """High-value snapshots to ship alongside a primary result set

        The cache holds ids only; snapshots are re-read so access counts and
        tiers moved by background tracking are current.
        """
        snapshot_ids = self.prefetch_cache.lookup(project)
        if snapshot_ids is None:
            high_value = await self.propagation.get_high_value_contexts(project, min_score, limit)
            snapshot_ids = [s.id for s in high_value]
            self.prefetch_cache[project] = snapshot_ids

        excluded = set(exclude or ())
        wanted = [snapshot_id for snapshot_id in snapshot_ids if snapshot_id not in excluded][:limit]
        snapshots = await asyncio.gather(*(asyncio.to_thread(self.store.get, i) for i in wanted))
        return [s for s in snapshots if s is not None]

    async def reconstruct_reasoning(self, snapshot_id: str) -> str:
        self.memory.schedule_access_tracking([snapshot_id])
        return await self.causality.reconstruct_reasoning(snapshot_id)

    async def build_causal_chain(self, snapshot_id: str) -> CausalChain:
        return await self.causality.build_causal_chain(snapshot_id)

    async def validate_causal_chain(self, snapshot_id: str) -> bool:
        return await self.causality.validate_causal_chain(snapshot_id)

    async def get_causality_stats(self, project: str) -> Dict[str, Any]:
        return await self.causality.get_causality_stats(project)

    async def audit_causal_graph(self, project: str) -> Dict[str, Any]:
        return await self.causality.audit_causal_graph(project)

    async def get_memory_stats(self, project: str) -> Dict[str, int]:
        return await self.memory.get_memory_stats(project)

    async def recalculate_memory_tiers(self, project: Optional[str] = None) -> int:
        return await self.memory.recalculate_all_tiers(project)

    async def prune_expired_contexts(self, limit: Optional[int] = None) -> int:
        deleted = await self.memory.prune_expired_contexts(limit)
        if deleted:
            self.prefetch_cache.clear()
        return deleted

    async def find_least_recently_used(self, tier: str, limit: int = 10) -> List[Snapshot]:
        return await self.memory.find_least_recently_used(MemoryTier(tier), limit)

    async def update_predictions(
        self,
        project: str,
        stale_threshold_hours: Optional[float] = None,
        batch_limit: Optional[int] = None,
    ) -> int:
        updated = await self.propagation.update_project_predictions(
            project,
            self.config.stale_threshold_hours if stale_threshold_hours is None else stale_threshold_hours,
            self.config.prediction_batch_limit if batch_limit is None else batch_limit,
        )
        self.prefetch_cache.discard(project)
        return updated

    async def get_high_value_contexts(
        self,
        project: str,
        min_score: float = HIGH_VALUE_THRESHOLD,
        limit: int = 10,
    ) -> List[Snapshot]:
        return await self.propagation.get_high_value_contexts(project, min_score, limit)

    async def get_propagation_stats(self, project: str) -> Dict[str, Any]:
        return await self.propagation.get_propagation_stats(project)

    def get_statistics(self) -> Dict[str, Any]:
        """Backend health and cache figures"""
        error_log = getattr(self.store, "error_log", [])
        return {
            "total_snapshots": self.store.count(),
            "pending_access_updates": self.memory.pending_tasks,
            "prefetch_cache": self.prefetch_cache.stats(),
            "recent_errors": len(error_log),
        }

    async def shutdown(self):
        logger.info("Shutting down ContextService...")
        await self.memory.drain()
        self.store.close()
        logger.info("ContextService shutdown complete")
