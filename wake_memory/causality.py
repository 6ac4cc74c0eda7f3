"""
Causality tracking for Wake Memory (Layer 1)
Copyright 2025 Jurden Bruce

Records why each snapshot was saved, auto-detects what it depended on and
walks caused_by links back to the root decision.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

import networkx as nx

from .errors import SnapshotNotFoundError
from .models import ActionType, CausalityMetadata, Snapshot
from .storage.base import SnapshotStore

logger = logging.getLogger("wake-memory.causality")


@dataclass(frozen=True)
class CausalChainNode:
    snapshot: Snapshot
    depth: int  # distance from the root, root = 0


@dataclass
class CausalChain:
    """Snapshots linking a root cause to a target, root first

    cycle_detected and missing_parent mark a chain whose walk stopped before
    reaching a snapshot with no parent; such a chain is partial.
    """
    target_id: str
    nodes: List[CausalChainNode] = field(default_factory=list)
    cycle_detected: bool = False
    missing_parent: Optional[str] = None

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[CausalChainNode]:
        return iter(self.nodes)

    def __getitem__(self, index) -> CausalChainNode:
        return self.nodes[index]

    @property
    def terminated(self) -> bool:
        return not self.cycle_detected and self.missing_parent is None

    @property
    def snapshots(self) -> List[Snapshot]:
        return [node.snapshot for node in self.nodes]

    @property
    def root(self) -> Optional[Snapshot]:
        return self.nodes[0].snapshot if self.nodes else None

    def timestamps_ordered(self) -> bool:
        return all(
            earlier.snapshot.created_at <= later.snapshot.created_at
            for earlier, later in zip(self.nodes, self.nodes[1:])
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "length": len(self.nodes),
            "terminated": self.terminated,
            "cycle_detected": self.cycle_detected,
            "missing_parent": self.missing_parent,
            "chain": [
                {
                    "depth": node.depth,
                    "id": node.snapshot.id,
                    "summary": node.snapshot.summary,
                    "created_at": node.snapshot.created_at.isoformat(),
                    "action_type": (
                        node.snapshot.causality.action_type.value if node.snapshot.causality else None
                    ),
                    "rationale": node.snapshot.causality.rationale if node.snapshot.causality else None,
                    "caused_by": node.snapshot.causality.caused_by if node.snapshot.causality else None,
                }
                for node in self.nodes
            ],
        }


@dataclass(frozen=True)
class DetectedDependencies:
    snapshots: List[Snapshot]
    reason: str

    @property
    def ids(self) -> List[str]:
        return [s.id for s in self.snapshots]


class CausalityTracker:
    """Records and reconstructs causal provenance of snapshots"""

    def __init__(
        self,
        store: SnapshotStore,
        clock: Callable[[], datetime] = datetime.now,
        lookback_hours: float = 1.0,
        max_dependencies: int = 5,
        stats_sample_size: int = 10,
        stats_scan_limit: int = 1000,
    ):
        self.store = store
        self.clock = clock
        self.lookback_hours = lookback_hours
        self.max_dependencies = max_dependencies
        self.stats_sample_size = stats_sample_size
        self.stats_scan_limit = stats_scan_limit

    async def record_action(
        self,
        action_type,
        rationale: str,
        caused_by: Optional[str] = None,
        project: Optional[str] = None,
    ) -> CausalityMetadata:
        """Build causality metadata for a snapshot about to be saved

        Dependencies are the most recent snapshots of the same project inside
        the lookback window. Without a project no detection is done.
        """
        action_type = ActionType(action_type)

        dependencies: List[str] = []
        if project:
            detected = await self.detect_dependencies(project)
            dependencies = detected.ids
            logger.debug(detected.reason)

        return CausalityMetadata(
            action_type=action_type,
            rationale=rationale,
            dependencies=dependencies,
            caused_by=caused_by or None,
        )

    async def detect_dependencies(
        self,
        project: str,
        timestamp: Optional[datetime] = None,
        hours_back: Optional[float] = None,
    ) -> DetectedDependencies:
        timestamp = timestamp or self.clock()
        hours_back = self.lookback_hours if hours_back is None else hours_back

        recent = await asyncio.to_thread(
            self.store.find_recent, project, timestamp, hours_back, self.max_dependencies
        )
        recent = recent[:self.max_dependencies]

        if recent:
            reason = f"Found {len(recent)} context(s) from the last {hours_back} hour(s) in project \"{project}\""
        else:
            reason = f"No recent contexts found in the last {hours_back} hour(s)"
        return DetectedDependencies(snapshots=recent, reason=reason)

    async def _require(self, snapshot_id: str) -> Snapshot:
        snapshot = await asyncio.to_thread(self.store.get, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        return snapshot

    async def reconstruct_reasoning(self, snapshot_id: str) -> str:
        """Answer "why did I do this?" for one snapshot"""
        snapshot = await self._require(snapshot_id)

        if not snapshot.causality:
            return f"No causality metadata available for this context.\n\nSummary: {snapshot.summary}"

        causality = snapshot.causality
        reasoning = f"**Action Type**: {causality.action_type.value}\n\n"
        reasoning += f"**Rationale**: {causality.rationale}\n\n"
        reasoning += f"**Context Summary**: {snapshot.summary}\n\n"

        if causality.caused_by:
            parent = await asyncio.to_thread(self.store.get, causality.caused_by)
            if parent:
                reasoning += f"**Caused By**: {parent.summary} (ID: {causality.caused_by})\n\n"

        if causality.dependencies:
            reasoning += (
                f"**Dependencies**: {len(causality.dependencies)} prior context(s) influenced this decision\n"
            )

        return reasoning

    async def build_causal_chain(self, snapshot_id: str) -> CausalChain:
        """Follow caused_by links back from snapshot_id to its root"""
        current = await self._require(snapshot_id)
        chain = CausalChain(target_id=snapshot_id)
        visited = set()
        collected: List[Snapshot] = []

        while current is not None:
            visited.add(current.id)
            collected.append(current)

            parent_id = current.causality.caused_by if current.causality else None
            if parent_id is None:
                break
            if parent_id in visited:
                chain.cycle_detected = True
                logger.warning(f"Causal cycle detected at {parent_id} while tracing {snapshot_id}")
                break

            current = await asyncio.to_thread(self.store.get, parent_id)
            if current is None:
                chain.missing_parent = parent_id
                logger.warning(f"Causal parent {parent_id} not found while tracing {snapshot_id}")

        collected.reverse()
        chain.nodes = [CausalChainNode(snapshot=s, depth=i) for i, s in enumerate(collected)]
        return chain

    async def validate_causal_chain(self, snapshot_id: str) -> bool:
        """True when the chain reaches a root and never goes back in time"""
        try:
            chain = await self.build_causal_chain(snapshot_id)
        except SnapshotNotFoundError:
            return False

        if not chain.nodes or not chain.terminated:
            return False
        return chain.timestamps_ordered()

    async def get_causality_stats(self, project: str) -> Dict[str, Any]:
        """Causality usage for a project

        average_chain_length is taken over the first stats_sample_size
        snapshots with causality in store order (newest first). It is a
        bounded, biased sample rather than a full scan.
        """
        snapshots = await asyncio.to_thread(self.store.find_by_project, project, self.stats_scan_limit)
        with_causality = [s for s in snapshots if s.causality is not None]

        action_type_counts = {action.value: 0 for action in ActionType}
        root_causes = 0
        for snapshot in with_causality:
            action_type_counts[snapshot.causality.action_type.value] += 1
            if snapshot.causality.caused_by is None:
                root_causes += 1

        sample = with_causality[:self.stats_sample_size]
        total_chain_length = 0
        cyclic_chains = 0
        for snapshot in sample:
            chain = await self.build_causal_chain(snapshot.id)
            total_chain_length += len(chain)
            if chain.cycle_detected:
                cyclic_chains += 1

        return {
            "project": project,
            "total_with_causality": len(with_causality),
            "action_type_counts": action_type_counts,
            "root_causes": root_causes,
            "average_chain_length": total_chain_length / len(sample) if sample else 0.0,
            "sample_size": len(sample),
            "cyclic_chains": cyclic_chains,
        }

    def build_causal_graph(self, project: str, limit: Optional[int] = None) -> nx.DiGraph:
        """Directed graph of a project's snapshots

        Edges run parent -> child for caused_by links and dependency -> snapshot
        for detected dependencies. Links to snapshots outside the batch are
        left out.
        """
        snapshots = self.store.find_by_project(project, limit or self.stats_scan_limit)
        graph = nx.DiGraph()

        for snapshot in snapshots:
            graph.add_node(
                snapshot.id,
                summary=snapshot.summary,
                created_at=snapshot.created_at,
                memory_tier=snapshot.memory_tier.value,
                action_type=snapshot.causality.action_type.value if snapshot.causality else None,
            )

        for snapshot in snapshots:
            if not snapshot.causality:
                continue
            parent_id = snapshot.causality.caused_by
            if parent_id and graph.has_node(parent_id):
                graph.add_edge(parent_id, snapshot.id, relation="caused_by")
            for dependency_id in snapshot.causality.dependencies:
                if graph.has_node(dependency_id) and not graph.has_edge(dependency_id, snapshot.id):
                    graph.add_edge(dependency_id, snapshot.id, relation="depends_on")

        return graph

    def find_causal_cycles(self, project: str) -> List[List[str]]:
        """caused_by cycles in a project, each as a list of snapshot ids"""
        graph = self.build_causal_graph(project)
        caused_by = nx.DiGraph()
        caused_by.add_edges_from(
            (u, v) for u, v, relation in graph.edges(data="relation") if relation == "caused_by"
        )
        cycles = [list(cycle) for cycle in nx.simple_cycles(caused_by)]
        if cycles:
            logger.warning(f"Found {len(cycles)} causal cycle(s) in project {project}")
        return cycles

    async def audit_causal_graph(self, project: str) -> Dict[str, Any]:
        graph = await asyncio.to_thread(self.build_causal_graph, project)
        cycles = await asyncio.to_thread(self.find_causal_cycles, project)
        roots = [n for n in graph.nodes if not any(
            relation == "caused_by" for _, _, relation in graph.in_edges(n, data="relation")
        )]
        return {
            "project": project,
            "snapshots": graph.number_of_nodes(),
            "links": graph.number_of_edges(),
            "roots": len(roots),
            "weakly_connected_components": nx.number_weakly_connected_components(graph) if graph else 0,
            "cycles": cycles,
            "acyclic": not cycles,
        }
