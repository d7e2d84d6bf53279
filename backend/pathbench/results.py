from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .errors import NoPathFoundError, ReconstructionLimitExceeded
from .geometry import Coordinate
from .graph import Graph
from .logging_utils import log_event


@dataclass(frozen=True)
class SearchResult:
    algorithm: str
    path: tuple[Coordinate, ...]
    node_ids: tuple[str, ...]
    total_distance_m: float
    elapsed_ms: float
    visited_node_ids: tuple[str, ...]
    nodes_visited_count: int
    edges_explored_count: int
    path_node_count: int

    def estimated_travel_time_s(self, speed_mps: float) -> float:
        return self.total_distance_m / speed_mps


@dataclass
class SearchTrace:
    """Effort counters for one search call."""

    started_at: float = field(default_factory=time.perf_counter)
    visited: list[str] = field(default_factory=list)
    visited_set: set[str] = field(default_factory=set)
    edges_explored: int = 0

    def visit(self, node_id: str) -> bool:
        if node_id in self.visited_set:
            return False
        self.visited_set.add(node_id)
        self.visited.append(node_id)
        return True

    def elapsed_ms(self) -> float:
        return max(0.0, (time.perf_counter() - self.started_at) * 1000.0)


def walk_back(
    previous: Mapping[str, str | None],
    goal_id: str,
    start_id: str,
    *,
    max_steps: int,
) -> tuple[str, ...]:
    """Follow ``previous`` pointers from goal to start and return the forward node order."""
    reversed_ids = [goal_id]
    current = goal_id
    while current != start_id:
        parent = previous.get(current)
        if parent is None:
            raise NoPathFoundError(
                message=f"predecessor chain broke at {current!r} before reaching the start",
                details={"node_id": current},
            )
        reversed_ids.append(parent)
        current = parent
        if len(reversed_ids) > max_steps:
            raise ReconstructionLimitExceeded(
                message="path reconstruction exceeded step limit",
                details={"max_steps": max_steps},
            )
    reversed_ids.reverse()
    return tuple(reversed_ids)


def path_distance_m(graph: Graph, node_ids: Sequence[str]) -> float:
    """Sum of the cheapest traversable edge between each consecutive pair."""
    total = 0.0
    for src, dst in zip(node_ids, node_ids[1:]):
        weight = graph.edge_weight(src, dst)
        if weight is None:
            raise NoPathFoundError(
                message=f"no traversable edge {src!r} -> {dst!r} on reconstructed path",
                details={"source_id": src, "target_id": dst},
            )
        total += weight
    return total


def assemble_result(
    *,
    algorithm: str,
    graph: Graph,
    node_ids: Sequence[str],
    trace: SearchTrace,
    total_distance_m: float | None = None,
) -> SearchResult:
    if total_distance_m is None:
        total_distance_m = path_distance_m(graph, node_ids)
    path = tuple(graph.nodes[node_id].coordinate() for node_id in node_ids)
    result = SearchResult(
        algorithm=algorithm,
        path=path,
        node_ids=tuple(node_ids),
        total_distance_m=float(total_distance_m),
        elapsed_ms=round(trace.elapsed_ms(), 3),
        visited_node_ids=tuple(trace.visited),
        nodes_visited_count=len(trace.visited),
        edges_explored_count=int(trace.edges_explored),
        path_node_count=len(path),
    )
    log_event(
        "search_completed",
        algorithm=algorithm,
        graph_version=graph.version,
        start_node=result.node_ids[0] if result.node_ids else None,
        goal_node=result.node_ids[-1] if result.node_ids else None,
        nodes_visited=result.nodes_visited_count,
        edges_explored=result.edges_explored_count,
        distance_m=round(result.total_distance_m, 2),
        path_node_count=result.path_node_count,
        elapsed_ms=result.elapsed_ms,
    )
    return result
