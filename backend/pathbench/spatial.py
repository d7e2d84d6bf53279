from __future__ import annotations

import math
from collections import deque
from collections.abc import Collection, Mapping

from .errors import DisconnectedGraphError, NoPathFoundError
from .geometry import LatLonPoint, distance_m
from .graph import Graph, Node
from .settings import settings


def nearest_node_with_distance(
    nodes: Mapping[str, Node],
    point: LatLonPoint,
    blocked_node_ids: Collection[str] = frozenset(),
    max_radius_m: float = math.inf,
) -> tuple[Node | None, float]:
    nearest: Node | None = None
    best = math.inf
    for node in nodes.values():
        if node.id in blocked_node_ids:
            continue
        d = distance_m(point, node)
        if d < best:
            best = d
            nearest = node
    if nearest is None or best > max_radius_m:
        return None, math.inf
    return nearest, best


def find_nearest_node(
    nodes: Mapping[str, Node],
    point: LatLonPoint,
    blocked_node_ids: Collection[str] = frozenset(),
    max_radius_m: float = math.inf,
) -> Node | None:
    """Closest unblocked node within ``max_radius_m`` of ``point`` (linear scan)."""
    node, _ = nearest_node_with_distance(nodes, point, blocked_node_ids, max_radius_m)
    return node


def is_graph_connected(graph: Graph) -> bool:
    """Whether every unblocked node is reachable from one of them over traversable edges."""
    unblocked = graph.unblocked_node_ids()
    if not unblocked:
        return False
    reached = {unblocked[0]}
    stack = [unblocked[0]]
    while stack:
        current = stack.pop()
        for edge in graph.traversable_edges(current):
            if edge.target_id not in reached:
                reached.add(edge.target_id)
                stack.append(edge.target_id)
    return len(reached) == len(unblocked)


def connected_components(graph: Graph) -> list[frozenset[str]]:
    """Undirected components over unblocked nodes and traversable edges, largest first."""
    undirected: dict[str, set[str]] = {node_id: set() for node_id in graph.unblocked_node_ids()}
    for src in undirected:
        for edge in graph.traversable_edges(src):
            undirected[src].add(edge.target_id)
            undirected[edge.target_id].add(src)
    seen: set[str] = set()
    components: list[frozenset[str]] = []
    for node_id in undirected:
        if node_id in seen:
            continue
        members: set[str] = set()
        q: deque[str] = deque([node_id])
        while q:
            current = q.popleft()
            if current in seen:
                continue
            seen.add(current)
            members.add(current)
            for nxt in undirected[current]:
                if nxt not in seen:
                    q.append(nxt)
        components.append(frozenset(members))
    components.sort(key=len, reverse=True)
    return components


def require_connected(graph: Graph) -> None:
    if is_graph_connected(graph):
        return
    components = connected_components(graph)
    raise DisconnectedGraphError(
        message="graph is not connected; refusing to search",
        details={
            "component_count": len(components),
            "largest_component_nodes": len(components[0]) if components else 0,
            "unblocked_node_count": len(graph.unblocked_node_ids()),
        },
    )


def resolve_endpoints(
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    *,
    max_radius_m: float | None = None,
) -> tuple[Node, Node]:
    if max_radius_m is None:
        max_radius_m = settings.nearest_node_max_distance_m or math.inf
    blocked = graph.blocked_node_ids
    start_node, _ = nearest_node_with_distance(graph.nodes, start, blocked, max_radius_m)
    goal_node, _ = nearest_node_with_distance(graph.nodes, goal, blocked, max_radius_m)
    if start_node is None or goal_node is None:
        raise NoPathFoundError(
            reason_code="endpoint_unresolved",
            message="start or goal has no unblocked graph node within the search radius",
            details={
                "max_radius_m": max_radius_m,
                "start_resolved": start_node is not None,
                "goal_resolved": goal_node is not None,
            },
        )
    return start_node, goal_node
