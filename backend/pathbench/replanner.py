from __future__ import annotations

import math
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from .errors import NoPathFoundError, ReconstructionLimitExceeded
from .geometry import LatLonPoint, distance_m
from .graph import BlockingOverlay, Graph
from .logging_utils import log_event
from .min_heap import MinHeap
from .results import SearchResult, SearchTrace, assemble_result
from .settings import settings
from .spatial import require_connected, resolve_endpoints

Key = tuple[float, float]

ALGORITHM_ID = "d-star-lite"


@dataclass
class ReplannerState:
    """Cost maps and open queue that survive between ``plan`` calls.

    ``g`` is the best known cost from a node to the goal, ``rhs`` the one-step lookahead over its
    successors. Missing entries mean infinity.
    """

    g: dict[str, float] = field(default_factory=dict)
    rhs: dict[str, float] = field(default_factory=dict)
    open_queue: MinHeap[str] = field(default_factory=MinHeap)
    key_modifier: float = 0.0


class IncrementalReplanner:
    """Lifelong (D* Lite style) search from ``goal`` back toward ``start``.

    One instance is one session: a fixed goal over one graph structure. Overlay edits only touch
    the vertices whose outgoing edges changed, and the next ``plan`` call repairs the cost maps
    from there instead of searching again from scratch.
    """

    def __init__(
        self,
        graph: Graph,
        start_id: str,
        goal_id: str,
        *,
        max_reconstruction_steps: int | None = None,
    ) -> None:
        for node_id in (start_id, goal_id):
            if node_id not in graph.nodes:
                raise NoPathFoundError(
                    reason_code="endpoint_unresolved",
                    message=f"node {node_id!r} is not in the graph",
                    details={"node_id": node_id},
                )
        self._graph = graph
        self.start_id = start_id
        self.goal_id = goal_id
        self._last_start_id = start_id
        self._max_steps = int(max_reconstruction_steps or settings.replanner_max_reconstruction_steps)
        self._pending_edges_explored = 0
        self.state = ReplannerState(open_queue=MinHeap(less=self._key_less))
        self.state.rhs[goal_id] = 0.0
        self.state.open_queue.insert(goal_id)

    @classmethod
    def from_coordinates(
        cls,
        graph: Graph,
        start: LatLonPoint,
        goal: LatLonPoint,
        *,
        max_radius_m: float | None = None,
        max_reconstruction_steps: int | None = None,
    ) -> IncrementalReplanner:
        start_node, goal_node = resolve_endpoints(graph, start, goal, max_radius_m=max_radius_m)
        return cls(
            graph,
            start_node.id,
            goal_node.id,
            max_reconstruction_steps=max_reconstruction_steps,
        )

    @property
    def graph(self) -> Graph:
        return self._graph

    def g(self, node_id: str) -> float:
        return self.state.g.get(node_id, math.inf)

    def rhs(self, node_id: str) -> float:
        return self.state.rhs.get(node_id, math.inf)

    def is_consistent(self, node_id: str) -> bool:
        return self.g(node_id) == self.rhs(node_id)

    def _heuristic(self, a: str, b: str) -> float:
        return self._graph.heuristic_scale * distance_m(self._graph.nodes[a], self._graph.nodes[b])

    def calculate_key(self, node_id: str) -> Key:
        best = min(self.g(node_id), self.rhs(node_id))
        return (best + self._heuristic(self.start_id, node_id) + self.state.key_modifier, best)

    def _key_less(self, a: str, b: str) -> bool:
        return self.calculate_key(a) < self.calculate_key(b)

    def _predecessors(self, node_id: str) -> list[str]:
        return list(dict.fromkeys(edge.source_id for edge in self._graph.in_edges(node_id)))

    def update_vertex(self, node_id: str, trace: SearchTrace | None = None) -> None:
        if node_id != self.goal_id:
            best = math.inf
            for edge in self._graph.out_edges(node_id):
                if trace is not None:
                    trace.edges_explored += 1
                else:
                    self._pending_edges_explored += 1
                if not self._graph.is_traversable(edge):
                    continue
                best = min(best, self.g(edge.target_id) + edge.weight)
            self.state.rhs[node_id] = best
        queue = self.state.open_queue
        queue.remove(node_id)
        if not self.is_consistent(node_id):
            queue.insert(node_id)

    def compute_shortest_path(self, trace: SearchTrace) -> None:
        queue = self.state.open_queue
        while queue:
            top = queue.peek()
            if top is None:
                break
            if not (
                self.calculate_key(top) < self.calculate_key(self.start_id)
                or not self.is_consistent(self.start_id)
            ):
                break
            node_id = queue.extract_min()
            if node_id is None:
                break
            trace.visit(node_id)
            predecessors = self._predecessors(node_id)
            if self.g(node_id) > self.rhs(node_id):
                # Overconsistent: the cost improved, settle it and let predecessors see it.
                self.state.g[node_id] = self.rhs(node_id)
                for pred in predecessors:
                    self.update_vertex(pred, trace)
            else:
                # Underconsistent: the cost got worse, so invalidate and re-derive.
                self.state.g[node_id] = math.inf
                for pred in [*predecessors, node_id]:
                    self.update_vertex(pred, trace)

    def extract_path(self) -> tuple[tuple[str, ...], float]:
        """Walk forward from start, always taking the edge minimising ``g(next) + weight``."""
        if self.g(self.start_id) == math.inf:
            raise NoPathFoundError(
                message="no path found to goal",
                details={"start_id": self.start_id, "goal_id": self.goal_id},
            )
        node_ids = [self.start_id]
        current = self.start_id
        total = 0.0
        steps = 0
        while current != self.goal_id:
            steps += 1
            if steps > self._max_steps:
                raise ReconstructionLimitExceeded(
                    message="path reconstruction exceeded step limit",
                    details={"max_steps": self._max_steps, "reached_node": current},
                )
            best_cost = math.inf
            best_target: str | None = None
            best_weight = 0.0
            for edge in self._graph.traversable_edges(current):
                cost = self.g(edge.target_id) + edge.weight
                if cost < best_cost:
                    best_cost = cost
                    best_target = edge.target_id
                    best_weight = edge.weight
            if best_target is None:
                raise NoPathFoundError(
                    message="no path found to goal",
                    details={"start_id": self.start_id, "goal_id": self.goal_id, "stuck_at": current},
                )
            total += best_weight
            current = best_target
            node_ids.append(current)
        return tuple(node_ids), total

    def plan(self) -> SearchResult:
        """Repair the cost maps as needed and return the current best path.

        ``visited_node_ids`` covers only the vertices processed by this call, so after an
        overlay edit it measures the size of the repair rather than of a full search.
        """
        trace = SearchTrace()
        trace.edges_explored += self._pending_edges_explored
        self._pending_edges_explored = 0
        require_connected(self._graph)
        if self._graph.is_node_blocked(self.start_id) or self._graph.is_node_blocked(self.goal_id):
            raise NoPathFoundError(
                reason_code="start_or_goal_blocked",
                message="start/goal blocked",
                details={"start_id": self.start_id, "goal_id": self.goal_id},
            )
        self.compute_shortest_path(trace)
        node_ids, total = self.extract_path()
        log_event(
            "replanner_planned",
            start_node=self.start_id,
            goal_node=self.goal_id,
            repaired_nodes=len(trace.visited),
            open_queue_size=len(self.state.open_queue),
            key_modifier=round(self.state.key_modifier, 3),
        )
        return assemble_result(
            algorithm=ALGORITHM_ID,
            graph=self._graph,
            node_ids=node_ids,
            trace=trace,
            total_distance_m=total,
        )

    def apply_overlay(self, overlay: BlockingOverlay) -> list[str]:
        """Switch to ``overlay`` and queue every vertex whose outgoing edges changed.

        Returns the vertices that were updated.
        """
        previous = self._graph.overlay
        if overlay == previous:
            return []
        t0 = time.perf_counter()
        self._graph = self._graph.with_overlay(overlay)
        affected: set[str] = set()
        for source_id, _target_id in previous.blocked_edges ^ overlay.blocked_edges:
            affected.add(source_id)
        for node_id in previous.blocked_node_ids ^ overlay.blocked_node_ids:
            affected.add(node_id)
            affected.update(self._predecessors(node_id))
        touched = sorted(node_id for node_id in affected if node_id in self._graph.nodes)
        for node_id in touched:
            self.update_vertex(node_id)
        log_event(
            "replanner_overlay_applied",
            start_node=self.start_id,
            goal_node=self.goal_id,
            blocked_edge_count=len(overlay.blocked_edges),
            blocked_node_count=len(overlay.blocked_node_ids),
            updated_vertices=len(touched),
            duration_ms=round((time.perf_counter() - t0) * 1000.0, 3),
        )
        return touched

    def block_edge(self, source_id: str, target_id: str, *, both_directions: bool = True) -> list[str]:
        edited = self._graph.block_edge(source_id, target_id, both_directions=both_directions)
        return self.apply_overlay(edited.overlay)

    def unblock_edge(self, source_id: str, target_id: str, *, both_directions: bool = True) -> list[str]:
        edited = self._graph.unblock_edge(source_id, target_id, both_directions=both_directions)
        return self.apply_overlay(edited.overlay)

    def block_node(self, node_id: str) -> list[str]:
        return self.apply_overlay(self._graph.block_node(node_id).overlay)

    def unblock_node(self, node_id: str) -> list[str]:
        return self.apply_overlay(self._graph.unblock_node(node_id).overlay)

    def move_start(self, node_id: str) -> None:
        """Move the start (the traveller's position) without discarding the cost maps."""
        if node_id not in self._graph.nodes:
            raise NoPathFoundError(
                reason_code="endpoint_unresolved",
                message=f"node {node_id!r} is not in the graph",
                details={"node_id": node_id},
            )
        if node_id == self.start_id:
            return
        self.state.key_modifier += self._heuristic(self._last_start_id, node_id)
        self._last_start_id = node_id
        self.start_id = node_id
        # Every live key shifted with the new start; restore heap order.
        self.state.open_queue.heapify()


def run_incremental_replan(
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    blocked_edges: Iterable[tuple[str, str]] = (),
    blocked_nodes: Iterable[str] = (),
    *,
    max_radius_m: float | None = None,
) -> SearchResult:
    """One-shot replanner run with extra blocked edges/nodes layered over ``graph``'s overlay."""
    working = graph
    for source_id, target_id in blocked_edges:
        working = working.block_edge(source_id, target_id)
    for node_id in blocked_nodes:
        working = working.block_node(node_id)
    require_connected(working)
    replanner = IncrementalReplanner.from_coordinates(working, start, goal, max_radius_m=max_radius_m)
    return replanner.plan()
