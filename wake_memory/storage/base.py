"""
Snapshot store interface for Wake Memory
Copyright 2025 Jurden Bruce
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from ..models import MemoryTier, Snapshot


class SnapshotStore(ABC):
    """Persistence port consumed by the causality, memory and propagation layers

    Implementations must make update_access_tracking, update_memory_tier and
    update_propagation single atomic updates; the layers above do no locking.
    Failures propagate to the caller.
    """

    @abstractmethod
    def save(self, snapshot: Snapshot) -> str:
        """Insert or replace a snapshot, returning its id"""

    @abstractmethod
    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        ...

    @abstractmethod
    def find_by_project(self, project: str, limit: int = 10) -> List[Snapshot]:
        """Newest first"""

    @abstractmethod
    def find_all(self, limit: int = 1000) -> List[Snapshot]:
        """Newest first, across every project"""

    @abstractmethod
    def find_recent(
        self,
        project: str,
        before: datetime,
        hours_back: float,
        limit: Optional[int] = None,
    ) -> List[Snapshot]:
        """Snapshots created in [before - hours_back, before), newest first"""

    @abstractmethod
    def search(self, query: str, project: Optional[str] = None, limit: int = 10) -> List[Snapshot]:
        """Substring match over summary and tags, newest first"""

    @abstractmethod
    def update_memory_tier(self, snapshot_id: str, tier: MemoryTier) -> None:
        ...

    @abstractmethod
    def update_access_tracking(self, snapshot_id: str, accessed_at: Optional[datetime] = None) -> bool:
        """Atomically bump access_count and move last_accessed_at forward"""

    @abstractmethod
    def find_by_memory_tier(self, tier: MemoryTier, limit: int = 100) -> List[Snapshot]:
        """Oldest created first"""

    @abstractmethod
    def update_propagation(
        self,
        snapshot_id: str,
        score: float,
        computed_at: datetime,
        predicted_next_access: Optional[datetime],
        reasons: Sequence[str],
    ) -> None:
        ...

    @abstractmethod
    def find_by_prediction_score(
        self,
        min_score: float,
        project: Optional[str] = None,
        limit: int = 10,
    ) -> List[Snapshot]:
        """Highest score first"""

    @abstractmethod
    def find_stale_predictions(
        self,
        hours_stale_threshold: float,
        limit: int = 100,
        project: Optional[str] = None,
    ) -> List[Snapshot]:
        """Never predicted or predicted before the threshold, stalest first"""

    @abstractmethod
    def delete(self, snapshot_id: str) -> bool:
        ...

    @abstractmethod
    def count(self, project: Optional[str] = None) -> int:
        ...

    def close(self) -> None:
        pass
