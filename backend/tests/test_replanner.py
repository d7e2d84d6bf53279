from __future__ import annotations

import math

import pytest

from pathbench.errors import DisconnectedGraphError, NoPathFoundError, ReconstructionLimitExceeded
from pathbench.geometry import Coordinate
from pathbench.graph import Graph, build_graph
from pathbench.replanner import IncrementalReplanner, run_incremental_replan
from pathbench.static_search import run_dijkstra

STEP = 0.0001


def _pt(row: int, col: int) -> Coordinate:
    return Coordinate(latitude=row * STEP, longitude=col * STEP)


def _five_node_graph() -> Graph:
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


def _ladder(length: int = 10) -> Graph:
    """Two parallel streets (t*, b*) joined by a rung at every block; every segment is 100 m."""
    nodes = []
    edges = []
    for i in range(length):
        nodes.append({"id": f"t{i}", "latitude": STEP, "longitude": i * STEP})
        nodes.append({"id": f"b{i}", "latitude": 0.0, "longitude": i * STEP})
        edges.append({"u": f"t{i}", "v": f"b{i}", "weight": 100.0})
        if i + 1 < length:
            edges.append({"u": f"t{i}", "v": f"t{i + 1}", "weight": 100.0})
            edges.append({"u": f"b{i}", "v": f"b{i + 1}", "weight": 100.0})
    return build_graph(nodes, edges)


def test_unblocked_plan_matches_dijkstra() -> None:
    graph = _five_node_graph()
    result = run_incremental_replan(graph, _pt(0, 0), _pt(1, 2))

    assert result.algorithm == "d-star-lite"
    assert result.node_ids == ("A", "B", "D", "E")
    assert result.total_distance_m == pytest.approx(run_dijkstra(graph, _pt(0, 0), _pt(1, 2)).total_distance_m)


def test_end_to_end_block_cheapest_path_edge_yields_second_best() -> None:
    graph = _five_node_graph()
    replanner = IncrementalReplanner(graph, "A", "E")

    first = replanner.plan()
    assert first.node_ids == ("A", "B", "D", "E")
    assert first.total_distance_m == pytest.approx(250.0)

    touched = replanner.block_edge("B", "D")
    assert touched == ["B", "D"]
    second = replanner.plan()
    assert second.node_ids == ("A", "C", "D", "E")
    assert second.total_distance_m == pytest.approx(350.0)

    # Same answer as a fresh search over the edited overlay.
    fresh = run_dijkstra(replanner.graph, _pt(0, 0), _pt(1, 2))
    assert fresh.node_ids == second.node_ids


def test_blocking_shortest_segment_reroutes_over_long_road() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    replanner.plan()

    replanner.block_edge("D", "E")
    result = replanner.plan()
    assert result.node_ids == ("A", "B", "E")
    assert result.total_distance_m == pytest.approx(500.0)

    replanner.unblock_edge("D", "E")
    restored = replanner.plan()
    assert restored.node_ids == ("A", "B", "D", "E")
    assert restored.total_distance_m == pytest.approx(250.0)


def test_repair_after_block_touches_a_small_region() -> None:
    graph = _ladder()
    replanner = IncrementalReplanner(graph, "t0", "t9")

    initial = replanner.plan()
    assert initial.total_distance_m == pytest.approx(900.0)
    assert initial.node_ids == tuple(f"t{i}" for i in range(10))

    replanner.block_edge("t0", "t1")
    repaired = replanner.plan()

    assert repaired.node_ids != initial.node_ids
    assert ("t0", "t1") not in set(zip(repaired.node_ids, repaired.node_ids[1:]))
    assert repaired.total_distance_m == pytest.approx(1100.0)
    assert repaired.nodes_visited_count < len(graph.nodes) // 2
    assert repaired.nodes_visited_count < initial.nodes_visited_count

    expected = run_dijkstra(replanner.graph, Coordinate(STEP, 0.0), Coordinate(STEP, 9 * STEP))
    assert repaired.total_distance_m == pytest.approx(expected.total_distance_m)


def test_consistent_state_replans_without_work() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    replanner.plan()
    again = replanner.plan()

    assert again.nodes_visited_count == 0
    assert again.node_ids == ("A", "B", "D", "E")
    assert replanner.is_consistent("A")
    assert replanner.g("A") == pytest.approx(250.0)
    assert replanner.rhs("E") == 0.0


def test_node_blocking_and_unblocking() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    replanner.plan()

    replanner.block_node("B")
    detour = replanner.plan()
    assert detour.node_ids == ("A", "C", "D", "E")

    replanner.unblock_node("B")
    assert replanner.plan().node_ids == ("A", "B", "D", "E")


def test_apply_identical_overlay_is_a_no_op() -> None:
    graph = _five_node_graph()
    replanner = IncrementalReplanner(graph, "A", "E")
    assert replanner.apply_overlay(graph.overlay) == []


def test_move_start_keeps_cost_maps() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    replanner.plan()

    replanner.move_start("B")
    assert replanner.state.key_modifier > 0.0
    result = replanner.plan()
    assert result.node_ids == ("B", "D", "E")
    assert result.total_distance_m == pytest.approx(150.0)

    replanner.block_edge("B", "D")
    rerouted = replanner.plan()
    assert rerouted.node_ids == ("B", "E")
    assert rerouted.total_distance_m == pytest.approx(400.0)


def test_blocked_start_or_goal_is_rejected() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    replanner.plan()
    # Blocking the goal leaves the other four nodes connected.
    replanner.block_node("E")
    with pytest.raises(NoPathFoundError) as excinfo:
        replanner.plan()
    assert excinfo.value.reason_code == "start_or_goal_blocked"


def test_disconnected_overlay_fails_fast() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    replanner.block_edge("D", "E")
    replanner.block_edge("B", "E")
    with pytest.raises(DisconnectedGraphError):
        replanner.plan()


def test_unknown_node_ids_are_rejected() -> None:
    with pytest.raises(NoPathFoundError) as excinfo:
        IncrementalReplanner(_five_node_graph(), "A", "nowhere")
    assert excinfo.value.reason_code == "endpoint_unresolved"

    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    with pytest.raises(NoPathFoundError):
        replanner.move_start("nowhere")


def test_reconstruction_budget_is_enforced() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E", max_reconstruction_steps=2)
    with pytest.raises(ReconstructionLimitExceeded) as excinfo:
        replanner.plan()
    assert excinfo.value.reason_code == "reconstruction_limit_exceeded"
    assert excinfo.value.details["max_steps"] == 2


def test_one_shot_replan_with_extra_blocks() -> None:
    graph = _five_node_graph()
    result = run_incremental_replan(graph, _pt(0, 0), _pt(1, 2), blocked_edges=[("B", "D")])
    assert result.node_ids == ("A", "C", "D", "E")
    assert graph.overlay.is_empty()

    by_node = run_incremental_replan(graph, _pt(0, 0), _pt(1, 2), blocked_nodes=["D"])
    assert by_node.node_ids == ("A", "B", "E")
    assert by_node.total_distance_m == pytest.approx(500.0)


def test_cost_maps_default_to_infinity() -> None:
    replanner = IncrementalReplanner(_five_node_graph(), "A", "E")
    assert replanner.g("A") == math.inf
    assert replanner.rhs("A") == math.inf
    key = replanner.calculate_key("E")
    assert key[1] == 0.0
    assert key[0] > 0.0


def test_plan_stays_optimal_when_edges_are_shorter_than_straight_line() -> None:
    nodes = [
        {"id": "S", "latitude": 0.0, "longitude": 0.0},
        {"id": "X", "latitude": 0.0, "longitude": 0.0108},
        {"id": "G", "latitude": 0.0, "longitude": 0.0216},
        {"id": "Y", "latitude": 0.03, "longitude": 0.0108},
    ]
    edges = [("S", "X", 1200.0), ("X", "G", 1200.0), ("S", "Y", 10.0), ("Y", "G", 10.0)]
    graph = build_graph(nodes, [{"u": u, "v": v, "weight": w} for u, v, w in edges])

    replanner = IncrementalReplanner(graph, "S", "G")
    result = replanner.plan()
    assert result.node_ids == ("S", "Y", "G")
    assert result.total_distance_m == pytest.approx(20.0)

    replanner.block_edge("S", "Y")
    result = replanner.plan()
    assert result.node_ids == ("S", "X", "G")
    assert result.total_distance_m == pytest.approx(2400.0)
