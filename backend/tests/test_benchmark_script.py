from __future__ import annotations

import json
from pathlib import Path

import pytest

from scripts.benchmark_algorithms import build_parser, generate_grid_graph, main, run_benchmark


def _ring_graph_file(tmp_path: Path) -> Path:
    payload = {
        "nodes": [
            {"id": "n0", "lat": 0.0, "lon": 0.0},
            {"id": "n1", "lat": 0.0, "lon": 0.0001},
            {"id": "n2", "lat": 0.0001, "lon": 0.0001},
            {"id": "n3", "lat": 0.0001, "lon": 0.0},
        ],
        "edges": [
            {"sourceId": "n0", "targetId": "n1", "lengthMeters": 20.0},
            {"sourceId": "n1", "targetId": "n2", "lengthMeters": 20.0},
            {"sourceId": "n2", "targetId": "n3", "lengthMeters": 50.0},
            {"sourceId": "n3", "targetId": "n0", "lengthMeters": 50.0},
        ],
    }
    path = tmp_path / "ring.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_parser_defaults() -> None:
    args = build_parser().parse_args([])
    assert args.mode == "inprocess"
    assert args.graph is None
    assert [kind.value for kind in args.algorithms] == ["dijkstra", "a-star", "gbfs", "bellman-ford", "d-star-lite"]
    assert args.block_edge == []


def test_parser_rejects_malformed_points() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--start", "not-a-point"])
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--block-edge", "n0"])


def test_generate_grid_graph_is_deterministic() -> None:
    first = generate_grid_graph(3, 4, seed=7)
    assert first == generate_grid_graph(3, 4, seed=7)
    assert len(first["nodes"]) == 12
    # 3 rows of 3 horizontal edges plus 2 rows of 4 vertical edges.
    assert len(first["edges"]) == 17


def test_run_benchmark_on_graph_file_with_blocked_edge(tmp_path: Path) -> None:
    output = tmp_path / "out" / "bench.json"
    args = build_parser().parse_args(
        [
            "--graph",
            str(_ring_graph_file(tmp_path)),
            "--start",
            "0,0",
            "--goal",
            "0.0001,0.0001",
            "--block-edge",
            "n1:n2",
            "--algorithms",
            "dijkstra",
            "d-star-lite",
            "--iterations",
            "2",
            "--out-dir",
            str(tmp_path / "out"),
            "--output",
            str(output),
        ]
    )

    record = run_benchmark(args)
    assert record["mode"] == "inprocess"
    assert record["node_count"] == 4
    assert record["baseline_distance_m"] == pytest.approx(100.0)
    assert [row["algorithm"] for row in record["results"]] == ["dijkstra", "d-star-lite"]
    assert all(row["ok"] for row in record["results"])
    assert all(row["total_distance_m"] == pytest.approx(100.0) for row in record["results"])
    assert Path(record["log_path"]) == output
    assert json.loads(output.read_text(encoding="utf-8"))["node_count"] == 4


def test_main_on_synthetic_grid(tmp_path: Path, capsys) -> None:
    code = main(
        [
            "--grid-rows",
            "4",
            "--grid-cols",
            "4",
            "--iterations",
            "1",
            "--out-dir",
            str(tmp_path),
        ]
    )
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    rows = {row["algorithm"]: row for row in report["results"]}
    assert rows["a-star"]["total_distance_m"] == pytest.approx(rows["dijkstra"]["total_distance_m"])
    assert rows["gbfs"]["total_distance_m"] >= rows["dijkstra"]["total_distance_m"]
    assert Path(report["log_path"]).parent == (tmp_path / "benchmarks").resolve()
