from __future__ import annotations

import pytest

from pathbench.algorithms import (
    ALGORITHM_CATALOG,
    RUNNERS,
    AlgorithmKind,
    compare_algorithms,
    run_algorithm,
)
from pathbench.errors import DisconnectedGraphError
from pathbench.geometry import Coordinate
from pathbench.graph import Graph, build_graph

STEP = 0.0001


def _graph() -> Graph:
    coords = {"A": (0, 0), "B": (0, 1), "C": (1, 0), "D": (1, 1), "E": (1, 2)}
    nodes = [{"id": k, "latitude": r * STEP, "longitude": c * STEP} for k, (r, c) in coords.items()]
    edges = [
        ("A", "B", 100.0),
        ("B", "D", 100.0),
        ("A", "C", 150.0),
        ("C", "D", 150.0),
        ("D", "E", 50.0),
        ("B", "E", 400.0),
    ]
    return build_graph(nodes, [{"sourceId": u, "targetId": v, "lengthMeters": w} for u, v, w in edges])


START = Coordinate(0.0, 0.0)
GOAL = Coordinate(STEP, 2 * STEP)


def test_catalog_covers_every_kind() -> None:
    assert set(ALGORITHM_CATALOG) == set(AlgorithmKind)
    assert set(RUNNERS) == set(AlgorithmKind)
    assert [k.value for k in AlgorithmKind] == ["dijkstra", "a-star", "gbfs", "bellman-ford", "d-star-lite"]
    assert ALGORITHM_CATALOG[AlgorithmKind.GBFS].optimal is False


@pytest.mark.parametrize("kind", list(AlgorithmKind))
def test_run_algorithm_dispatches_by_id(kind: AlgorithmKind) -> None:
    result = run_algorithm(kind.value, _graph(), START, GOAL)
    assert result.algorithm == kind.value
    assert result.node_ids[0] == "A"
    assert result.node_ids[-1] == "E"


def test_run_algorithm_rejects_unknown_id() -> None:
    with pytest.raises(ValueError):
        run_algorithm("breadth-first", _graph(), START, GOAL)


def test_run_algorithm_propagates_search_errors() -> None:
    graph = _graph().block_edge("D", "E").block_edge("B", "E")
    with pytest.raises(DisconnectedGraphError):
        run_algorithm(AlgorithmKind.A_STAR, graph, START, GOAL)


def test_compare_reports_ratios_against_dijkstra() -> None:
    report = compare_algorithms(_graph(), START, GOAL, speed_mps=5.0)

    assert [entry.kind for entry in report.entries] == list(AlgorithmKind)
    assert report.baseline_distance_m == pytest.approx(250.0)
    assert all(entry.ok for entry in report.entries)

    dijkstra = report.entry("dijkstra")
    assert dijkstra.distance_ratio == pytest.approx(1.0)
    assert dijkstra.travel_time_s == pytest.approx(50.0)

    for kind in (AlgorithmKind.A_STAR, AlgorithmKind.BELLMAN_FORD, AlgorithmKind.D_STAR_LITE):
        assert report.entry(kind).distance_ratio == pytest.approx(1.0)
    assert report.entry(AlgorithmKind.GBFS).distance_ratio == pytest.approx(2.0)

    with pytest.raises(KeyError):
        compare_algorithms(_graph(), START, GOAL, ["gbfs"]).entry("dijkstra")


def test_compare_computes_baseline_when_dijkstra_not_selected() -> None:
    report = compare_algorithms(_graph(), START, GOAL, [AlgorithmKind.GBFS])
    assert len(report.entries) == 1
    assert report.baseline_distance_m == pytest.approx(250.0)
    assert report.entries[0].distance_ratio == pytest.approx(2.0)


def test_compare_collects_failures_per_algorithm() -> None:
    graph = _graph().block_edge("D", "E").block_edge("B", "E")
    report = compare_algorithms(graph, START, GOAL, ["dijkstra", "d-star-lite"])

    assert report.baseline_distance_m is None
    assert [entry.ok for entry in report.entries] == [False, False]
    assert {entry.error.reason_code for entry in report.entries} == {"graph_disconnected"}
    assert all(entry.distance_ratio is None for entry in report.entries)
