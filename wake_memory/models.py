"""
Data models for Wake Memory
Copyright 2025 Jurden Bruce
"""

import json
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import SnapshotValidationError
from .utils import decode_string_list


# Tier boundaries, in hours since the reference time
ACTIVE_HOURS = 1
RECENT_HOURS = 24
ARCHIVED_HOURS = 720  # 30 days


class MemoryTier(str, Enum):
    ACTIVE = "active"
    RECENT = "recent"
    ARCHIVED = "archived"
    EXPIRED = "expired"


class ActionType(str, Enum):
    CONVERSATION = "conversation"
    DECISION = "decision"
    FILE_EDIT = "file_edit"
    TOOL_USE = "tool_use"
    RESEARCH = "research"


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    return datetime.fromisoformat(value)


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def calculate_tier(
    created_at: datetime,
    last_accessed_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> MemoryTier:
    """Classify a snapshot by hours since its reference time

    The reference time is the last access if there was one, otherwise the
    creation time, so an access moves a snapshot back toward ACTIVE.
    """
    now = now or datetime.now()
    reference_time = last_accessed_at if last_accessed_at else created_at
    age = hours_between(reference_time, now)

    if age < ACTIVE_HOURS:
        return MemoryTier.ACTIVE
    if age < RECENT_HOURS:
        return MemoryTier.RECENT
    if age < ARCHIVED_HOURS:
        return MemoryTier.ARCHIVED
    return MemoryTier.EXPIRED


@dataclass(frozen=True)
class CausalityMetadata:
    """Why a snapshot was created and what it depends on"""
    action_type: ActionType
    rationale: str
    dependencies: Tuple[str, ...] = ()
    caused_by: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "action_type", ActionType(self.action_type))
        object.__setattr__(self, "dependencies", tuple(self.dependencies or ()))
        if self.caused_by == "":
            object.__setattr__(self, "caused_by", None)

    @property
    def is_root(self) -> bool:
        return self.caused_by is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "rationale": self.rationale,
            "dependencies": list(self.dependencies),
            "caused_by": self.caused_by,
        }


@dataclass(frozen=True)
class PropagationMetadata:
    """Cached prediction of how soon a snapshot will be needed again"""
    score: float
    computed_at: datetime
    predicted_next_access: Optional[datetime] = None
    reasons: Tuple[str, ...] = ()

    def __post_init__(self):
        score = float(self.score)
        if math.isnan(score):
            score = 0.0
        object.__setattr__(self, "score", max(0.0, min(1.0, score)))
        object.__setattr__(self, "computed_at", _parse_datetime(self.computed_at))
        object.__setattr__(self, "predicted_next_access", _parse_datetime(self.predicted_next_access))
        object.__setattr__(self, "reasons", tuple(self.reasons or ()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 4),
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
            "predicted_next_access": (
                self.predicted_next_access.isoformat() if self.predicted_next_access else None
            ),
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class Snapshot:
    """One preserved unit of agent context

    Snapshots are never mutated. mark_accessed, update_propagation and
    recalculate_tier return a new value which the caller persists.
    """
    id: str
    project: str
    summary: str
    created_at: datetime
    source: str = "mcp"
    tags: str = ""
    metadata: Optional[str] = None
    causality: Optional[CausalityMetadata] = None
    memory_tier: Optional[MemoryTier] = None
    last_accessed_at: Optional[datetime] = None
    access_count: int = 0
    propagation: Optional[PropagationMetadata] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.project or not self.project.strip():
            raise SnapshotValidationError("Project is required")
        if not self.summary or not self.summary.strip():
            raise SnapshotValidationError("Summary is required")
        if self.access_count < 0:
            raise SnapshotValidationError(f"access_count cannot be negative: {self.access_count}")

        object.__setattr__(self, "created_at", _parse_datetime(self.created_at))
        object.__setattr__(self, "last_accessed_at", _parse_datetime(self.last_accessed_at))

        # Stored tiers are kept as-is so stale ones can be detected later
        if self.memory_tier is None:
            tier = calculate_tier(self.created_at, self.last_accessed_at)
        else:
            tier = MemoryTier(self.memory_tier)
        object.__setattr__(self, "memory_tier", tier)

    @classmethod
    def create(
        cls,
        project: str,
        summary: str,
        tags: str = "",
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        causality: Optional[CausalityMetadata] = None,
        now: Optional[datetime] = None,
    ) -> "Snapshot":
        """Build a new snapshot with a fresh id and its initial tier"""
        created_at = now or datetime.now()
        return cls(
            id=str(uuid.uuid4()),
            project=project,
            summary=summary,
            created_at=created_at,
            source=source or "mcp",
            tags=tags or "",
            metadata=json.dumps(metadata) if metadata else None,
            causality=causality,
            memory_tier=calculate_tier(created_at, None, created_at),
            access_count=0,
        )

    @property
    def reference_time(self) -> datetime:
        return self.last_accessed_at if self.last_accessed_at else self.created_at

    def current_tier(self, now: Optional[datetime] = None) -> MemoryTier:
        return calculate_tier(self.created_at, self.last_accessed_at, now)

    def hours_since_access(self, now: Optional[datetime] = None) -> Optional[float]:
        if not self.last_accessed_at:
            return None
        return hours_between(self.last_accessed_at, now or datetime.now())

    def mark_accessed(self, now: Optional[datetime] = None) -> "Snapshot":
        now = now or datetime.now()
        accessed_at = max(now, self.last_accessed_at) if self.last_accessed_at else now
        return replace(
            self,
            last_accessed_at=accessed_at,
            access_count=self.access_count + 1,
            memory_tier=calculate_tier(self.created_at, accessed_at, now),
        )

    def recalculate_tier(self, now: Optional[datetime] = None) -> "Snapshot":
        tier = self.current_tier(now)
        if tier == self.memory_tier:
            return self
        return replace(self, memory_tier=tier)

    def update_propagation(self, propagation: PropagationMetadata) -> "Snapshot":
        return replace(self, propagation=propagation)

    def metadata_dict(self) -> Dict[str, Any]:
        if not self.metadata:
            return {}
        try:
            value = json.loads(self.metadata)
        except json.JSONDecodeError:
            return {"raw": self.metadata}
        return value if isinstance(value, dict) else {"value": value}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project": self.project,
            "summary": self.summary,
            "source": self.source,
            "tags": self.tags,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "causality": self.causality.to_dict() if self.causality else None,
            "memory_tier": self.memory_tier.value,
            "last_accessed_at": self.last_accessed_at.isoformat() if self.last_accessed_at else None,
            "access_count": self.access_count,
            "propagation": self.propagation.to_dict() if self.propagation else None,
        }

    def to_api_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Convert Snapshot to dict for tool and HTTP responses"""
        now = now or datetime.now()
        data = self.to_dict()
        data["metadata"] = self.metadata_dict()
        data["hours_since_reference"] = round(hours_between(self.reference_time, now), 2)
        data["current_tier"] = self.current_tier(now).value
        return data

    @classmethod
    def from_row(cls, row) -> "Snapshot":
        """Convert SQLite row to Snapshot

        Args:
            row: sqlite3.Row object with keys() method

        Returns:
            Snapshot instance
        """
        keys = row.keys()

        causality = None
        if row["action_type"]:
            dependencies = decode_string_list(row["dependencies"], "dependencies", row["id"])
            causality = CausalityMetadata(
                action_type=row["action_type"],
                rationale=row["rationale"] or "",
                dependencies=dependencies,
                caused_by=row["caused_by"],
            )

        propagation = None
        if "prediction_score" in keys and row["prediction_score"] is not None:
            reasons = decode_string_list(row["propagation_reasons"], "propagation_reasons", row["id"])
            propagation = PropagationMetadata(
                score=row["prediction_score"],
                computed_at=row["prediction_computed_at"],
                predicted_next_access=row["predicted_next_access"],
                reasons=reasons,
            )

        return cls(
            id=row["id"],
            project=row["project"],
            summary=row["summary"],
            created_at=row["created_at"],
            source=row["source"] or "mcp",
            tags=row["tags"] or "",
            metadata=row["metadata"],
            causality=causality,
            memory_tier=row["memory_tier"],
            last_accessed_at=row["last_accessed_at"],
            access_count=row["access_count"] or 0,
            propagation=propagation,
        )
