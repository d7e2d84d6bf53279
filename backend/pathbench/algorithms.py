from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from .errors import RoutingError
from .geometry import LatLonPoint
from .graph import Graph
from .logging_utils import log_event
from .replanner import run_incremental_replan
from .results import SearchResult
from .settings import settings
from .static_search import run_a_star, run_bellman_ford, run_dijkstra, run_gbfs


class AlgorithmKind(str, Enum):
    DIJKSTRA = "dijkstra"
    A_STAR = "a-star"
    GBFS = "gbfs"
    BELLMAN_FORD = "bellman-ford"
    D_STAR_LITE = "d-star-lite"


@dataclass(frozen=True)
class AlgorithmInfo:
    kind: AlgorithmKind
    name: str
    description: str
    optimal: bool


ALGORITHM_CATALOG: dict[AlgorithmKind, AlgorithmInfo] = {
    AlgorithmKind.DIJKSTRA: AlgorithmInfo(
        kind=AlgorithmKind.DIJKSTRA,
        name="Dijkstra",
        description=(
            "Dijkstra's algorithm guarantees the shortest path in a weighted graph "
            "but explores every node cheaper than the goal."
        ),
        optimal=True,
    ),
    AlgorithmKind.A_STAR: AlgorithmInfo(
        kind=AlgorithmKind.A_STAR,
        name="A*",
        description=(
            "A* adds a straight-line distance heuristic to Dijkstra, reaching the same "
            "shortest path while usually visiting fewer nodes."
        ),
        optimal=True,
    ),
    AlgorithmKind.GBFS: AlgorithmInfo(
        kind=AlgorithmKind.GBFS,
        name="Greedy Best-First Search",
        description=(
            "Greedy Best-First Search prioritizes nodes closest to the destination by straight-line "
            "distance, often finding a path quickly but not necessarily the shortest."
        ),
        optimal=False,
    ),
    AlgorithmKind.BELLMAN_FORD: AlgorithmInfo(
        kind=AlgorithmKind.BELLMAN_FORD,
        name="Bellman-Ford",
        description=(
            "Bellman-Ford finds the shortest path and can handle negative weights, "
            "but is slower than Dijkstra."
        ),
        optimal=True,
    ),
    AlgorithmKind.D_STAR_LITE: AlgorithmInfo(
        kind=AlgorithmKind.D_STAR_LITE,
        name="D* Lite",
        description=(
            "D* Lite searches backward from the goal and repairs only the affected region "
            "when roads or intersections are blocked."
        ),
        optimal=True,
    ),
}

SearchFn = Callable[[Graph, LatLonPoint, LatLonPoint], SearchResult]

RUNNERS: dict[AlgorithmKind, SearchFn] = {
    AlgorithmKind.DIJKSTRA: run_dijkstra,
    AlgorithmKind.A_STAR: run_a_star,
    AlgorithmKind.GBFS: run_gbfs,
    AlgorithmKind.BELLMAN_FORD: run_bellman_ford,
    AlgorithmKind.D_STAR_LITE: run_incremental_replan,
}


def run_algorithm(
    kind: AlgorithmKind | str,
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
) -> SearchResult:
    algorithm = AlgorithmKind(kind)
    try:
        return RUNNERS[algorithm](graph, start, goal)
    except RoutingError as exc:
        log_event(
            "search_failed",
            level=logging.WARNING,
            algorithm=algorithm.value,
            graph_version=graph.version,
            reason_code=exc.reason_code,
            error_message=exc.message,
        )
        raise


@dataclass(frozen=True)
class ComparisonEntry:
    kind: AlgorithmKind
    result: SearchResult | None = None
    error: RoutingError | None = None
    travel_time_s: float | None = None
    distance_ratio: float | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class ComparisonReport:
    entries: tuple[ComparisonEntry, ...]
    baseline_distance_m: float | None

    def entry(self, kind: AlgorithmKind | str) -> ComparisonEntry:
        algorithm = AlgorithmKind(kind)
        for item in self.entries:
            if item.kind == algorithm:
                return item
        raise KeyError(algorithm.value)


def compare_algorithms(
    graph: Graph,
    start: LatLonPoint,
    goal: LatLonPoint,
    kinds: Iterable[AlgorithmKind | str] | None = None,
    *,
    speed_mps: float | None = None,
) -> ComparisonReport:
    """Run several algorithms on one instance; each failure is reported, not raised.

    Distance ratios are relative to Dijkstra's optimum, which is computed even when Dijkstra is
    not among ``kinds``.
    """
    selected = [AlgorithmKind(k) for k in kinds] if kinds is not None else list(AlgorithmKind)
    speed = float(speed_mps or settings.walking_speed_mps)

    outcomes: dict[AlgorithmKind, SearchResult | RoutingError] = {}
    for algorithm in selected:
        try:
            outcomes[algorithm] = run_algorithm(algorithm, graph, start, goal)
        except RoutingError as exc:
            outcomes[algorithm] = exc

    baseline = outcomes.get(AlgorithmKind.DIJKSTRA)
    if baseline is None:
        try:
            baseline = run_dijkstra(graph, start, goal)
        except RoutingError as exc:
            baseline = exc
    baseline_distance = baseline.total_distance_m if isinstance(baseline, SearchResult) else None

    entries: list[ComparisonEntry] = []
    for algorithm in selected:
        outcome = outcomes[algorithm]
        if isinstance(outcome, RoutingError):
            entries.append(ComparisonEntry(kind=algorithm, error=outcome))
            continue
        ratio = None
        if baseline_distance:
            ratio = outcome.total_distance_m / baseline_distance
        entries.append(
            ComparisonEntry(
                kind=algorithm,
                result=outcome,
                travel_time_s=outcome.estimated_travel_time_s(speed),
                distance_ratio=ratio,
            )
        )
    return ComparisonReport(entries=tuple(entries), baseline_distance_m=baseline_distance)
