from __future__ import annotations

from pydantic import BaseModel, Field

from .algorithms import ALGORITHM_CATALOG, AlgorithmKind, ComparisonEntry
from .geometry import Coordinate
from .graph import Graph, RawEdge, RawNode
from .results import SearchResult
from .spatial import connected_components, is_graph_connected


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.lat, longitude=self.lon)


class GraphPayload(BaseModel):
    nodes: list[RawNode]
    edges: list[RawEdge]


class EdgeRef(BaseModel):
    source_id: str
    target_id: str
    both_directions: bool = True


class NodeRef(BaseModel):
    node_id: str


class RouteRequest(BaseModel):
    algorithm: AlgorithmKind = AlgorithmKind.DIJKSTRA
    start: LatLng
    goal: LatLng


class CompareRequest(BaseModel):
    start: LatLng
    goal: LatLng
    algorithms: list[AlgorithmKind] | None = None


class ReplanSessionRequest(BaseModel):
    start: LatLng
    goal: LatLng


class AlgorithmInfoModel(BaseModel):
    id: AlgorithmKind
    name: str
    description: str
    optimal: bool


class AlgorithmListResponse(BaseModel):
    algorithms: list[AlgorithmInfoModel]

    @classmethod
    def from_catalog(cls) -> AlgorithmListResponse:
        return cls(
            algorithms=[
                AlgorithmInfoModel(id=info.kind, name=info.name, description=info.description, optimal=info.optimal)
                for info in ALGORITHM_CATALOG.values()
            ]
        )


class SearchMetrics(BaseModel):
    """Wire form of a search result; ``path`` is GeoJSON-ordered ``[lon, lat]`` pairs."""

    algorithm: str
    path: list[list[float]]
    node_ids: list[str]
    total_distance_m: float = Field(..., ge=0.0)
    elapsed_ms: float = Field(..., ge=0.0)
    visited_node_ids: list[str]
    nodes_visited_count: int = Field(..., ge=0)
    edges_explored_count: int = Field(..., ge=0)
    path_node_count: int = Field(..., ge=0)
    estimated_travel_time_s: float = Field(..., ge=0.0)
    cached: bool = False

    @classmethod
    def from_result(cls, result: SearchResult, *, speed_mps: float, cached: bool = False) -> SearchMetrics:
        return cls(
            algorithm=result.algorithm,
            path=[list(point.as_lon_lat()) for point in result.path],
            node_ids=list(result.node_ids),
            total_distance_m=result.total_distance_m,
            elapsed_ms=result.elapsed_ms,
            visited_node_ids=list(result.visited_node_ids),
            nodes_visited_count=result.nodes_visited_count,
            edges_explored_count=result.edges_explored_count,
            path_node_count=result.path_node_count,
            estimated_travel_time_s=result.estimated_travel_time_s(speed_mps),
            cached=cached,
        )


class ComparisonRow(BaseModel):
    algorithm: AlgorithmKind
    ok: bool
    metrics: SearchMetrics | None = None
    distance_ratio: float | None = None
    reason_code: str | None = None
    message: str | None = None

    @classmethod
    def from_entry(cls, entry: ComparisonEntry, *, speed_mps: float) -> ComparisonRow:
        if entry.result is None:
            return cls(
                algorithm=entry.kind,
                ok=False,
                reason_code=entry.error.reason_code if entry.error is not None else None,
                message=entry.error.message if entry.error is not None else None,
            )
        return cls(
            algorithm=entry.kind,
            ok=True,
            metrics=SearchMetrics.from_result(entry.result, speed_mps=speed_mps),
            distance_ratio=entry.distance_ratio,
        )


class ComparisonResponse(BaseModel):
    baseline_distance_m: float | None
    results: list[ComparisonRow]


class GraphSummaryResponse(BaseModel):
    version: str
    node_count: int
    edge_count: int
    connected: bool
    component_count: int
    largest_component_nodes: int
    blocked_edges: list[EdgeRef]
    blocked_node_ids: list[str]

    @classmethod
    def from_graph(cls, graph: Graph) -> GraphSummaryResponse:
        components = connected_components(graph)
        return cls(
            version=graph.version,
            node_count=len(graph.nodes),
            edge_count=graph.edge_count,
            connected=is_graph_connected(graph),
            component_count=len(components),
            largest_component_nodes=len(components[0]) if components else 0,
            blocked_edges=[
                EdgeRef(source_id=src, target_id=dst, both_directions=False)
                for src, dst in graph.overlay.sorted_edges()
            ],
            blocked_node_ids=graph.overlay.sorted_node_ids(),
        )


class ReplanSessionResponse(BaseModel):
    session_id: str
    start_node_id: str
    goal_node_id: str
    metrics: SearchMetrics


class ReplanStepRequest(BaseModel):
    """Optional body for a session ``plan`` call: the traveller's new position."""

    position: LatLng | None = None
