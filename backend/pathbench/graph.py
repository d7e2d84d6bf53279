from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConstructionError
from .geometry import Coordinate, distance_m
from .logging_utils import log_event


class RawNode(BaseModel):
    """One intersection as delivered by the geodata feed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    latitude: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(
        ...,
        ge=-180,
        le=180,
        validation_alias=AliasChoices("longitude", "lon", "lng"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            return str(v)
        return v


class RawEdge(BaseModel):
    """One undirected road segment; weight checks happen in ``build_graph``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_id: str = Field(..., validation_alias=AliasChoices("sourceId", "source_id", "source", "u"))
    target_id: str = Field(..., validation_alias=AliasChoices("targetId", "target_id", "target", "v"))
    length_m: float = Field(
        ...,
        validation_alias=AliasChoices("lengthMeters", "length_m", "length", "weight"),
    )
    blocked: bool = False

    @field_validator("source_id", "target_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: object) -> object:
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            return str(v)
        return v


@dataclass(frozen=True)
class Node:
    id: str
    latitude: float
    longitude: float

    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


@dataclass(frozen=True)
class Edge:
    source_id: str
    target_id: str
    weight: float
    blocked: bool = False


@dataclass(frozen=True)
class BlockingOverlay:
    """Edges and nodes marked unusable on top of an unchanged graph structure."""

    blocked_edges: frozenset[tuple[str, str]] = frozenset()
    blocked_node_ids: frozenset[str] = frozenset()

    def is_empty(self) -> bool:
        return not self.blocked_edges and not self.blocked_node_ids

    def block_edge(self, source_id: str, target_id: str, *, both_directions: bool = True) -> BlockingOverlay:
        pairs = {(source_id, target_id)}
        if both_directions:
            pairs.add((target_id, source_id))
        return replace(self, blocked_edges=self.blocked_edges | pairs)

    def unblock_edge(self, source_id: str, target_id: str, *, both_directions: bool = True) -> BlockingOverlay:
        pairs = {(source_id, target_id)}
        if both_directions:
            pairs.add((target_id, source_id))
        return replace(self, blocked_edges=self.blocked_edges - pairs)

    def block_node(self, node_id: str) -> BlockingOverlay:
        return replace(self, blocked_node_ids=self.blocked_node_ids | {node_id})

    def unblock_node(self, node_id: str) -> BlockingOverlay:
        return replace(self, blocked_node_ids=self.blocked_node_ids - {node_id})

    def sorted_edges(self) -> list[tuple[str, str]]:
        return sorted(self.blocked_edges)

    def sorted_node_ids(self) -> list[str]:
        return sorted(self.blocked_node_ids)


@dataclass(frozen=True)
class Graph:
    """Read-mostly road network plus the blocking overlay searches must honor.

    ``adjacency[x]`` holds exactly the directed edges leaving ``x``; every road segment appears
    once per direction. Overlay changes go through ``with_overlay`` (or the block/unblock
    helpers), which share ``nodes``/``adjacency`` with the original instead of copying them.

    ``heuristic_scale`` is the largest factor k <= 1 with ``k * great-circle(u, v) <= weight`` for
    every segment, so ``k * great-circle`` never overestimates a remaining path cost.
    """

    nodes: dict[str, Node]
    adjacency: dict[str, tuple[Edge, ...]]
    overlay: BlockingOverlay = field(default_factory=BlockingOverlay)
    version: str = ""
    heuristic_scale: float = 1.0
    incoming: dict[str, tuple[Edge, ...]] | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.incoming is None:
            incoming_mut: dict[str, list[Edge]] = {}
            for edges in self.adjacency.values():
                for edge in edges:
                    incoming_mut.setdefault(edge.target_id, []).append(edge)
            object.__setattr__(self, "incoming", {k: tuple(v) for k, v in incoming_mut.items()})

    @property
    def blocked_node_ids(self) -> frozenset[str]:
        return self.overlay.blocked_node_ids

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self.adjacency.values())

    def out_edges(self, node_id: str) -> tuple[Edge, ...]:
        return self.adjacency.get(node_id, ())

    def in_edges(self, node_id: str) -> tuple[Edge, ...]:
        assert self.incoming is not None
        return self.incoming.get(node_id, ())

    def is_node_blocked(self, node_id: str) -> bool:
        return node_id in self.overlay.blocked_node_ids

    def is_traversable(self, edge: Edge) -> bool:
        if edge.blocked:
            return False
        blocked_nodes = self.overlay.blocked_node_ids
        if edge.source_id in blocked_nodes or edge.target_id in blocked_nodes:
            return False
        return (edge.source_id, edge.target_id) not in self.overlay.blocked_edges

    def traversable_edges(self, node_id: str) -> Iterator[Edge]:
        for edge in self.out_edges(node_id):
            if self.is_traversable(edge):
                yield edge

    def unblocked_node_ids(self) -> list[str]:
        blocked = self.overlay.blocked_node_ids
        return [node_id for node_id in self.nodes if node_id not in blocked]

    def has_edge(self, source_id: str, target_id: str) -> bool:
        return any(edge.target_id == target_id for edge in self.out_edges(source_id))

    def edge_weight(self, source_id: str, target_id: str) -> float | None:
        """Cheapest traversable weight from ``source_id`` to ``target_id``, if any."""
        best: float | None = None
        for edge in self.traversable_edges(source_id):
            if edge.target_id == target_id and (best is None or edge.weight < best):
                best = edge.weight
        return best

    def with_overlay(self, overlay: BlockingOverlay) -> Graph:
        return replace(self, overlay=overlay, incoming=self.incoming)

    def block_edge(self, source_id: str, target_id: str, *, both_directions: bool = True) -> Graph:
        self._require_edge(source_id, target_id)
        return self.with_overlay(self.overlay.block_edge(source_id, target_id, both_directions=both_directions))

    def unblock_edge(self, source_id: str, target_id: str, *, both_directions: bool = True) -> Graph:
        self._require_edge(source_id, target_id)
        return self.with_overlay(self.overlay.unblock_edge(source_id, target_id, both_directions=both_directions))

    def block_node(self, node_id: str) -> Graph:
        self._require_node(node_id)
        return self.with_overlay(self.overlay.block_node(node_id))

    def unblock_node(self, node_id: str) -> Graph:
        self._require_node(node_id)
        return self.with_overlay(self.overlay.unblock_node(node_id))

    def _require_node(self, node_id: str) -> None:
        if node_id not in self.nodes:
            raise ConstructionError(
                reason_code="graph_unknown_node",
                message=f"unknown node {node_id!r}",
                details={"node_id": node_id},
            )

    def _require_edge(self, source_id: str, target_id: str) -> None:
        if not self.has_edge(source_id, target_id):
            raise ConstructionError(
                reason_code="graph_unknown_edge",
                message=f"unknown edge {source_id!r} -> {target_id!r}",
                details={"source_id": source_id, "target_id": target_id},
            )


def _parse_raw(model: type[BaseModel], raw: object, *, kind: str, index: int) -> Any:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ConstructionError(
            message=f"invalid raw {kind} at index {index}",
            details={"kind": kind, "index": index, "error": str(exc)},
        ) from exc


def _graph_version(nodes: Mapping[str, Node], segments: list[tuple[str, str, float, bool]]) -> str:
    payload = {
        "nodes": [[n.id, n.latitude, n.longitude] for n in nodes.values()],
        "edges": [list(seg) for seg in segments],
    }
    digest = hashlib.sha256(json.dumps(payload, separators=(",", ":")).encode("utf-8")).hexdigest()
    return digest[:16]


def build_graph(
    raw_nodes: Iterable[Mapping[str, Any] | RawNode],
    raw_edges: Iterable[Mapping[str, Any] | RawEdge],
) -> Graph:
    """Validate a raw node/edge feed and build the bidirectional adjacency.

    Raises ``ConstructionError`` for duplicate node ids, edges that reference unknown nodes,
    self-loops, and weights that are not finite and strictly positive.
    """
    nodes: dict[str, Node] = {}
    for idx, raw in enumerate(raw_nodes):
        parsed: RawNode = _parse_raw(RawNode, raw, kind="node", index=idx)
        if parsed.id in nodes:
            raise ConstructionError(
                reason_code="graph_duplicate_node",
                message=f"duplicate node id {parsed.id!r}",
                details={"node_id": parsed.id, "index": idx},
            )
        nodes[parsed.id] = Node(id=parsed.id, latitude=parsed.latitude, longitude=parsed.longitude)

    adjacency_mut: dict[str, list[Edge]] = {node_id: [] for node_id in nodes}
    segments: list[tuple[str, str, float, bool]] = []
    heuristic_scale = 1.0
    for idx, raw in enumerate(raw_edges):
        seg: RawEdge = _parse_raw(RawEdge, raw, kind="edge", index=idx)
        u, v, weight = seg.source_id, seg.target_id, seg.length_m
        for endpoint in (u, v):
            if endpoint not in nodes:
                raise ConstructionError(
                    reason_code="graph_unknown_node",
                    message=f"edge {idx} references unknown node {endpoint!r}",
                    details={"index": idx, "node_id": endpoint},
                )
        if u == v:
            raise ConstructionError(
                reason_code="graph_self_loop",
                message=f"edge {idx} is a self-loop on {u!r}",
                details={"index": idx, "node_id": u},
            )
        if not math.isfinite(weight) or weight <= 0.0:
            raise ConstructionError(
                reason_code="graph_invalid_weight",
                message=f"edge {idx} ({u!r} - {v!r}) has non-positive or non-finite weight {weight!r}",
                details={"index": idx, "weight": repr(weight)},
            )
        adjacency_mut[u].append(Edge(source_id=u, target_id=v, weight=weight, blocked=seg.blocked))
        adjacency_mut[v].append(Edge(source_id=v, target_id=u, weight=weight, blocked=seg.blocked))
        segments.append((u, v, weight, seg.blocked))
        straight = distance_m(nodes[u], nodes[v])
        if straight > weight:
            heuristic_scale = min(heuristic_scale, weight / straight)

    graph = Graph(
        nodes=nodes,
        adjacency={k: tuple(v) for k, v in adjacency_mut.items()},
        version=_graph_version(nodes, segments),
        heuristic_scale=heuristic_scale,
    )
    log_event(
        "graph_built",
        graph_version=graph.version,
        node_count=len(nodes),
        segment_count=len(segments),
        edge_count=graph.edge_count,
        heuristic_scale=heuristic_scale,
    )
    return graph
