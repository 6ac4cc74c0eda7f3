"""
Propagation scoring for Wake Memory (Layer 3)
Copyright 2025 Jurden Bruce

Predicts which snapshots will be needed next so they can be pre-fetched.

Composite score: 0.4 x temporal + 0.3 x causal + 0.3 x frequency, in [0, 1]
"""

import asyncio
import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .models import MemoryTier, PropagationMetadata, Snapshot, hours_between
from .storage.base import SnapshotStore
from .utils import clamp

logger = logging.getLogger("wake-memory.propagation")

TEMPORAL_WEIGHT = 0.4
CAUSAL_WEIGHT = 0.3
FREQUENCY_WEIGHT = 0.3

# Temporal score for snapshots that were never accessed
TIER_BASE_SCORES = {
    MemoryTier.ACTIVE: 0.3,
    MemoryTier.RECENT: 0.2,
    MemoryTier.ARCHIVED: 0.1,
    MemoryTier.EXPIRED: 0.0,
}

TEMPORAL_DECAY_HOURS = 24
FREQUENCY_SATURATION = 100  # accesses at which frequency reaches 1.0
MAX_PREDICTION_HORIZON = timedelta(days=7)
HIGH_VALUE_THRESHOLD = 0.6


def temporal_score(snapshot: Snapshot, now: datetime) -> float:
    if not snapshot.last_accessed_at:
        return TIER_BASE_SCORES[snapshot.memory_tier]
    hours = max(0.0, hours_between(snapshot.last_accessed_at, now))
    return math.exp(-hours / TEMPORAL_DECAY_HOURS)


def frequency_score(access_count: int) -> float:
    """ln(n + 1) / ln(101): 10 accesses ~ 0.52, 100 accesses = 1.0"""
    if access_count <= 0:
        return 0.0
    return min(1.0, math.log(access_count + 1) / math.log(FREQUENCY_SATURATION + 1))


class PropagationScorer:
    """Computes prediction scores and surfaces snapshots worth pre-fetching"""

    def __init__(self, store: SnapshotStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    @staticmethod
    def calculate_causal_strength(snapshot: Snapshot) -> float:
        """How central the snapshot is in its causal chain"""
        if not snapshot.causality:
            return 0.0

        dependency_count = len(snapshot.causality.dependencies)
        if snapshot.causality.caused_by is None and dependency_count > 0:
            return min(1.0, 0.5 + dependency_count * 0.1)
        if dependency_count > 0:
            return min(0.7, 0.3 + dependency_count * 0.1)
        return 0.2

    def calculate_score(
        self,
        snapshot: Snapshot,
        causal_strength: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> float:
        now = now or self.clock()
        if causal_strength is None:
            causal_strength = self.calculate_causal_strength(snapshot)

        score = (
            TEMPORAL_WEIGHT * temporal_score(snapshot, now)
            + CAUSAL_WEIGHT * clamp(causal_strength)
            + FREQUENCY_WEIGHT * frequency_score(snapshot.access_count)
        )
        return clamp(score)

    def estimate_next_access(self, snapshot: Snapshot, now: Optional[datetime] = None) -> Optional[datetime]:
        """Predict the next access from the average interval so far

        Never more than seven days past now.
        """
        if not snapshot.last_accessed_at or snapshot.access_count == 0:
            return None

        now = now or self.clock()
        if snapshot.access_count == 1:
            predicted = snapshot.last_accessed_at + timedelta(days=1)
        else:
            average_interval = (snapshot.last_accessed_at - snapshot.created_at) / snapshot.access_count
            predicted = snapshot.last_accessed_at + average_interval

        return min(predicted, now + MAX_PREDICTION_HORIZON)

    def generate_reasons(
        self,
        snapshot: Snapshot,
        score: float,
        causal_strength: float,
        now: Optional[datetime] = None,
    ) -> List[str]:
        now = now or self.clock()
        reasons = []

        if score >= 0.7:
            reasons.append("high_composite_score")

        hours_since_access = snapshot.hours_since_access(now)
        if hours_since_access is not None:
            if hours_since_access < 1:
                reasons.append("recently_accessed")
            elif hours_since_access < 24:
                reasons.append("accessed_today")

        if snapshot.access_count >= 10:
            reasons.append("high_access_frequency")
        elif snapshot.access_count >= 3:
            reasons.append("moderate_access_frequency")

        if causal_strength >= 0.5:
            reasons.append("causal_chain_root")
        elif causal_strength >= 0.3:
            reasons.append("causal_chain_member")

        if snapshot.memory_tier == MemoryTier.ACTIVE:
            reasons.append("active_memory_tier")

        if not reasons:
            reasons.append("baseline_prediction")
        return reasons

    def predict(self, snapshot: Snapshot) -> PropagationMetadata:
        now = self.clock()
        causal_strength = self.calculate_causal_strength(snapshot)
        score = self.calculate_score(snapshot, causal_strength, now)
        return PropagationMetadata(
            score=score,
            computed_at=now,
            predicted_next_access=self.estimate_next_access(snapshot, now),
            reasons=self.generate_reasons(snapshot, score, causal_strength, now),
        )

    def _persist(self, snapshot: Snapshot, propagation: PropagationMetadata):
        self.store.update_propagation(
            snapshot.id,
            propagation.score,
            propagation.computed_at,
            propagation.predicted_next_access,
            propagation.reasons,
        )

    def is_prediction_stale(self, snapshot: Snapshot, stale_threshold_hours: float = 24) -> bool:
        if not snapshot.propagation or not snapshot.propagation.computed_at:
            return True
        age = hours_between(snapshot.propagation.computed_at, self.clock())
        return age >= stale_threshold_hours

    async def update_project_predictions(
        self,
        project: str,
        stale_threshold_hours: float = 24,
        batch_limit: int = 100,
    ) -> int:
        """Recompute missing or stale predictions for one batch of a project"""
        stale = await asyncio.to_thread(
            self.store.find_stale_predictions, stale_threshold_hours, batch_limit, project
        )

        updated = 0
        for snapshot in stale:
            if snapshot.project != project:
                continue
            await asyncio.to_thread(self._persist, snapshot, self.predict(snapshot))
            updated += 1

        logger.info(f"Updated {updated} prediction(s) for project {project}")
        return updated

    async def get_high_value_contexts(
        self,
        project: str,
        min_score: float = HIGH_VALUE_THRESHOLD,
        limit: int = 10,
    ) -> List[Snapshot]:
        return await asyncio.to_thread(self.store.find_by_prediction_score, min_score, project, limit)

    async def refresh_if_stale(self, snapshot: Snapshot, stale_threshold_hours: float = 24) -> Snapshot:
        """Recompute one snapshot's prediction if it is missing or stale"""
        if not self.is_prediction_stale(snapshot, stale_threshold_hours):
            return snapshot

        propagation = self.predict(snapshot)
        await asyncio.to_thread(self._persist, snapshot, propagation)
        return snapshot.update_propagation(propagation)

    async def get_propagation_stats(self, project: str) -> Dict[str, Any]:
        high_value = await asyncio.to_thread(
            self.store.find_by_prediction_score, HIGH_VALUE_THRESHOLD, project, 100
        )
        predicted = [s for s in high_value if s.propagation is not None]

        reason_counts: Counter = Counter()
        for snapshot in predicted:
            reason_counts.update(snapshot.propagation.reasons)

        average = sum(s.propagation.score for s in predicted) / len(predicted) if predicted else 0.0
        return {
            "project": project,
            "total_contexts": len(high_value),
            "total_predicted": len(predicted),
            "average_prediction_score": round(average, 4),
            "reason_frequency": dict(reason_counts),
        }
