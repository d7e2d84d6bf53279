from __future__ import annotations

import itertools
import math
from collections.abc import Callable

from .errors import NegativeCycleError, NoPathFoundError
from .geometry import LatLonPoint, distance_m
from .graph import Graph, Node
from .min_heap import MinHeap
from .results import SearchResult, SearchTrace, assemble_result, walk_back
from .spatial import require_connected, resolve_endpoints

Heuristic = Callable[[Node, Node], float]


def zero_heuristic(_node: Node, _goal: Node) -> float:
    return 0.0


def great_circle_heuristic(node: Node, goal: Node) -> float:
    return distance_m(node, goal)


def scaled_great_circle_heuristic(graph: Graph) -> Heuristic:
    """Great-circle distance shrunk by ``graph.heuristic_scale``, which keeps it admissible."""
    scale = graph.heuristic_scale
    if scale >= 1.0:
        return great_circle_heuristic

    def heuristic(node: Node, goal: Node) -> float:
        return scale * distance_m(node, goal)

    return heuristic


def _check_endpoints(graph: Graph, source_id: str, target_id: str) -> None:
    if source_id not in graph.nodes or target_id not in graph.nodes:
        raise NoPathFoundError(
            reason_code="endpoint_unresolved",
            message="start or goal node is not in the graph",
            details={"source_id": source_id, "target_id": target_id},
        )
    if graph.is_node_blocked(source_id) or graph.is_node_blocked(target_id):
        raise NoPathFoundError(
            reason_code="start_or_goal_blocked",
            message="start/goal blocked",
            details={"source_id": source_id, "target_id": target_id},
        )


def _no_path(algorithm: str, source_id: str, target_id: str) -> NoPathFoundError:
    return NoPathFoundError(
        message="no path found between start and end nodes",
        details={"algorithm": algorithm, "source_id": source_id, "target_id": target_id},
    )


def _cost_ordered_search(
    graph: Graph,
    source_id: str,
    target_id: str,
    *,
    algorithm: str,
    heuristic: Heuristic,
) -> SearchResult:
    _check_endpoints(graph, source_id, target_id)
    trace = SearchTrace()
    goal = graph.nodes[target_id]
    g: dict[str, float] = {source_id: 0.0}
    previous: dict[str, str | None] = {source_id: None}
    seq = itertools.count()
    queue: MinHeap[tuple[float, int, str]] = MinHeap()
    queue.insert((heuristic(graph.nodes[source_id], goal), next(seq), source_id))

    while queue:
        entry = queue.extract_min()
        if entry is None:
            break
        current = entry[2]
        if not trace.visit(current):
            continue
        if current == target_id:
            break
        current_cost = g[current]
        for edge in graph.out_edges(current):
            trace.edges_explored += 1
            if not graph.is_traversable(edge):
                continue
            neighbor = edge.target_id
            candidate = current_cost + edge.weight
            if candidate < g.get(neighbor, math.inf):
                g[neighbor] = candidate
                previous[neighbor] = current
                queue.insert((candidate + heuristic(graph.nodes[neighbor], goal), next(seq), neighbor))

    if target_id not in trace.visited_set:
        raise _no_path(algorithm, source_id, target_id)
    node_ids = walk_back(previous, target_id, source_id, max_steps=len(graph.nodes) + 1)
    return assemble_result(
        algorithm=algorithm,
        graph=graph,
        node_ids=node_ids,
        trace=trace,
        total_distance_m=g[target_id],
    )


def dijkstra(graph: Graph, source_id: str, target_id: str) -> SearchResult:
    """Uniform-cost search; stops as soon as the goal is popped."""
    return _cost_ordered_search(
        graph,
        source_id,
        target_id,
        algorithm="dijkstra",
        heuristic=zero_heuristic,
    )


def a_star(graph: Graph, source_id: str, target_id: str) -> SearchResult:
    """Dijkstra ordered by ``g + scaled great-circle distance to goal``."""
    return _cost_ordered_search(
        graph,
        source_id,
        target_id,
        algorithm="a-star",
        heuristic=scaled_great_circle_heuristic(graph),
    )


def greedy_best_first(graph: Graph, source_id: str, target_id: str) -> SearchResult:
    """Expand whatever looks closest to the goal; the path it returns is not necessarily shortest."""
    _check_endpoints(graph, source_id, target_id)
    trace = SearchTrace()
    goal = graph.nodes[target_id]
    previous: dict[str, str | None] = {source_id: None}
    seq = itertools.count()
    queue: MinHeap[tuple[float, int, str]] = MinHeap()
    queue.insert((great_circle_heuristic(graph.nodes[source_id], goal), next(seq), source_id))

    while queue:
        entry = queue.extract_min()
        if entry is None:
            break
        current = entry[2]
        if not trace.visit(current):
            continue
        if current == target_id:
            break
        for edge in graph.out_edges(current):
            trace.edges_explored += 1
            if not graph.is_traversable(edge):
                continue
            neighbor = edge.target_id
            if neighbor in trace.visited_set:
                continue
            # Frontier nodes are re-parented to the latest expansion that reaches them.
            previous[neighbor] = current
            queue.insert((great_circle_heuristic(graph.nodes[neighbor], goal), next(seq), neighbor))

    if target_id not in trace.visited_set:
        raise _no_path("gbfs", source_id, target_id)
    node_ids = walk_back(previous, target_id, source_id, max_steps=len(graph.nodes) + 1)
    return assemble_result(algorithm="gbfs", graph=graph, node_ids=node_ids, trace=trace)


def bellman_ford(graph: Graph, source_id: str, target_id: str) -> SearchResult:
    """Relax every traversable edge up to |V| - 1 times, then check for a negative cycle."""
    _check_endpoints(graph, source_id, target_id)
    trace = SearchTrace()
    active = graph.unblocked_node_ids()
    edges = [edge for node_id in active for edge in graph.traversable_edges(node_id)]
    dist: dict[str, float] = {source_id: 0.0}
    previous: dict[str, str | None] = {source_id: None}
    trace.visit(source_id)

    for _ in range(max(0, len(active) - 1)):
        changed = False
        for edge in edges:
            trace.edges_explored += 1
            base = dist.get(edge.source_id, math.inf)
            if base == math.inf:
                continue
            candidate = base + edge.weight
            if candidate < dist.get(edge.target_id, math.inf):
                dist[edge.target_id] = candidate
                previous[edge.target_id] = edge.source_id
                trace.visit(edge.target_id)
                changed = True
        if not changed:
            break

    for edge in edges:
        trace.edges_explored += 1
        base = dist.get(edge.source_id, math.inf)
        if base == math.inf:
            continue
        if base + edge.weight < dist.get(edge.target_id, math.inf):
            raise NegativeCycleError(
                message="graph contains a negative cycle",
                details={"source_id": edge.source_id, "target_id": edge.target_id},
            )

    if dist.get(target_id, math.inf) == math.inf:
        raise _no_path("bellman-ford", source_id, target_id)
    node_ids = walk_back(previous, target_id, source_id, max_steps=len(graph.nodes) + 1)
    return assemble_result(
        algorithm="bellman-ford",
        graph=graph,
        node_ids=node_ids,
        trace=trace,
        total_distance_m=dist[target_id],
    )


def _run(
    search: Callable[[Graph, str, str], SearchResult],
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    max_radius_m: float | None,
) -> SearchResult:
    require_connected(graph)
    start_node, goal_node = resolve_endpoints(graph, start, goal, max_radius_m=max_radius_m)
    return search(graph, start_node.id, goal_node.id)


def run_dijkstra(
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    *,
    max_radius_m: float | None = None,
) -> SearchResult:
    return _run(dijkstra, graph, start, goal, max_radius_m)


def run_a_star(
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    *,
    max_radius_m: float | None = None,
) -> SearchResult:
    return _run(a_star, graph, start, goal, max_radius_m)


def run_gbfs(
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    *,
    max_radius_m: float | None = None,
) -> SearchResult:
    return _run(greedy_best_first, graph, start, goal, max_radius_m)


def run_bellman_ford(
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    *,
    max_radius_m: float | None = None,
) -> SearchResult:
    return _run(bellman_ford, graph, start, goal, max_radius_m)
