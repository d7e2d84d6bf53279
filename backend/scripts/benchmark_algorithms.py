from __future__ import annotations

import argparse
import json
import random
import statistics
import sys
import tracemalloc
from datetime import UTC, datetime
from pathlib import Path
from time import perf_counter
from typing import Any, Sequence

import httpx

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pathbench.algorithms import AlgorithmKind, compare_algorithms
from pathbench.geometry import Coordinate
from pathbench.graph import build_graph

# Grid spacing in degrees; about 11 m per step near the equator.
GRID_STEP_DEG = 0.0001


def _utc_now_compact() -> str:
    return datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def generate_grid_graph(rows: int, cols: int, seed: int) -> dict[str, list[dict[str, Any]]]:
    """Synthetic street grid; each edge is its straight-line length times a random detour factor >= 1."""
    rng = random.Random(seed)
    rows = max(2, rows)
    cols = max(2, cols)
    nodes = [
        {"id": f"r{r}c{c}", "lat": r * GRID_STEP_DEG, "lon": c * GRID_STEP_DEG}
        for r in range(rows)
        for c in range(cols)
    ]
    # 11.2 m comfortably exceeds one grid step of great-circle distance.
    step_m = 11.2
    edges: list[dict[str, Any]] = []
    for r in range(rows):
        for c in range(cols):
            if c + 1 < cols:
                edges.append(
                    {"u": f"r{r}c{c}", "v": f"r{r}c{c + 1}", "weight": round(step_m * rng.uniform(1.0, 1.6), 3)}
                )
            if r + 1 < rows:
                edges.append(
                    {"u": f"r{r}c{c}", "v": f"r{r + 1}c{c}", "weight": round(step_m * rng.uniform(1.0, 1.6), 3)}
                )
    return {"nodes": nodes, "edges": edges}


def _parse_point(raw: str) -> Coordinate:
    try:
        lat_s, lon_s = raw.split(",", 1)
        return Coordinate(latitude=float(lat_s), longitude=float(lon_s))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected 'lat,lon', got {raw!r}") from e


def _parse_edge(raw: str) -> tuple[str, str]:
    source_id, sep, target_id = raw.partition(":")
    if not sep or not source_id or not target_id:
        raise argparse.ArgumentTypeError(f"expected 'source:target', got {raw!r}")
    return source_id, target_id


def _load_graph_payload(args: argparse.Namespace) -> dict[str, Any]:
    if args.graph:
        payload = json.loads(Path(args.graph).read_text(encoding="utf-8"))
        if not isinstance(payload, dict) or "nodes" not in payload or "edges" not in payload:
            raise RuntimeError(f"graph file {args.graph} must hold an object with 'nodes' and 'edges'")
        return payload
    return generate_grid_graph(args.grid_rows, args.grid_cols, args.seed)


def _endpoints(args: argparse.Namespace, payload: dict[str, Any]) -> tuple[Coordinate, Coordinate]:
    if args.start is not None and args.goal is not None:
        return args.start, args.goal
    # Default to the first and last node of the feed.
    first, last = payload["nodes"][0], payload["nodes"][-1]

    def point(node: dict[str, Any]) -> Coordinate:
        return Coordinate(
            latitude=float(node.get("latitude", node.get("lat", 0.0))),
            longitude=float(node.get("longitude", node.get("lon", node.get("lng", 0.0)))),
        )

    return args.start or point(first), args.goal or point(last)


def _default_output_path(out_dir: Path) -> Path:
    benchmark_dir = out_dir / "benchmarks"
    benchmark_dir.mkdir(parents=True, exist_ok=True)
    return benchmark_dir / f"algorithm_benchmark_{_utc_now_compact()}.json"


def _write_record(record: dict[str, Any], out_dir: Path, output: str | None) -> Path:
    path = Path(output) if output else _default_output_path(out_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(record, indent=2), encoding="utf-8")
    return path


def _summarise(samples: dict[str, list[dict[str, Any]]]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for algorithm, runs in samples.items():
        ok_runs = [run for run in runs if run["ok"]]
        if not ok_runs:
            rows.append({"algorithm": algorithm, "ok": False, "reason_code": runs[-1].get("reason_code")})
            continue
        timings = [run["elapsed_ms"] for run in ok_runs]
        last = ok_runs[-1]
        rows.append(
            {
                "algorithm": algorithm,
                "ok": True,
                "total_distance_m": round(last["total_distance_m"], 3),
                "distance_ratio": last["distance_ratio"],
                "nodes_visited": last["nodes_visited"],
                "edges_explored": last["edges_explored"],
                "path_node_count": last["path_node_count"],
                "travel_time_s": last["travel_time_s"],
                "mean_ms": round(statistics.fmean(timings), 4),
                "max_ms": round(max(timings), 4),
            }
        )
    return rows


def _run_inprocess(args: argparse.Namespace, payload: dict[str, Any]) -> dict[str, Any]:
    graph = build_graph(payload["nodes"], payload["edges"])
    for source_id, target_id in args.block_edge:
        graph = graph.block_edge(source_id, target_id)
    for node_id in args.block_node:
        graph = graph.block_node(node_id)
    start, goal = _endpoints(args, payload)

    samples: dict[str, list[dict[str, Any]]] = {kind.value: [] for kind in args.algorithms}
    baseline: float | None = None
    tracemalloc.start()
    t0 = perf_counter()
    try:
        for _ in range(max(1, args.iterations)):
            report = compare_algorithms(graph, start, goal, args.algorithms)
            baseline = report.baseline_distance_m
            for entry in report.entries:
                if entry.result is None:
                    samples[entry.kind.value].append(
                        {"ok": False, "reason_code": entry.error.reason_code if entry.error else None}
                    )
                    continue
                samples[entry.kind.value].append(
                    {
                        "ok": True,
                        "elapsed_ms": entry.result.elapsed_ms,
                        "total_distance_m": entry.result.total_distance_m,
                        "distance_ratio": entry.distance_ratio,
                        "nodes_visited": entry.result.nodes_visited_count,
                        "edges_explored": entry.result.edges_explored_count,
                        "path_node_count": entry.result.path_node_count,
                        "travel_time_s": entry.travel_time_s,
                    }
                )
        duration_ms = (perf_counter() - t0) * 1000.0
        _current, peak_bytes = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()

    return {
        "timestamp": _utc_now_iso(),
        "mode": "inprocess",
        "graph_version": graph.version,
        "node_count": len(graph.nodes),
        "iterations": max(1, args.iterations),
        "baseline_distance_m": baseline,
        "duration_ms": round(duration_ms, 3),
        "peak_memory_bytes": int(peak_bytes),
        "results": _summarise(samples),
    }


def _run_live_backend(args: argparse.Namespace, payload: dict[str, Any]) -> dict[str, Any]:
    url = args.backend_url.rstrip("/")
    start, goal = _endpoints(args, payload)
    body = {
        "start": {"lat": start.latitude, "lon": start.longitude},
        "goal": {"lat": goal.latitude, "lon": goal.longitude},
        "algorithms": [kind.value for kind in args.algorithms],
    }

    t0 = perf_counter()
    with httpx.Client(timeout=90.0) as client:
        client.post(f"{url}/graph", json=payload).raise_for_status()
        for source_id, target_id in args.block_edge:
            client.post(
                f"{url}/graph/edges/block",
                json={"source_id": source_id, "target_id": target_id},
            ).raise_for_status()
        for node_id in args.block_node:
            client.post(f"{url}/graph/nodes/block", json={"node_id": node_id}).raise_for_status()
        resp = client.post(f"{url}/compare", json=body)
    duration_ms = (perf_counter() - t0) * 1000.0

    resp.raise_for_status()
    data = resp.json()
    return {
        "timestamp": _utc_now_iso(),
        "mode": "live",
        "backend_url": url,
        "node_count": len(payload["nodes"]),
        "baseline_distance_m": data["baseline_distance_m"],
        "duration_ms": round(duration_ms, 3),
        "results": data["results"],
    }


def run_benchmark(args: argparse.Namespace) -> dict[str, Any]:
    out_dir = Path(args.out_dir).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    payload = _load_graph_payload(args)

    if args.mode == "inprocess":
        record = _run_inprocess(args, payload)
    else:
        record = _run_live_backend(args, payload)

    path = _write_record(record, out_dir=out_dir, output=args.output)
    record["log_path"] = str(path)
    return record


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compare shortest-path algorithms on one graph and record their search effort."
    )
    parser.add_argument("--mode", choices=["inprocess", "live"], default="inprocess")
    parser.add_argument("--graph", default=None, help="JSON file with 'nodes' and 'edges'; omit for a synthetic grid")
    parser.add_argument("--grid-rows", type=int, default=20)
    parser.add_argument("--grid-cols", type=int, default=20)
    parser.add_argument("--seed", type=int, default=20260212)
    parser.add_argument("--start", type=_parse_point, default=None, help="lat,lon")
    parser.add_argument("--goal", type=_parse_point, default=None, help="lat,lon")
    parser.add_argument(
        "--algorithms",
        type=AlgorithmKind,
        nargs="+",
        default=list(AlgorithmKind),
        help="Algorithm ids to run (default: all)",
    )
    parser.add_argument("--block-edge", type=_parse_edge, action="append", default=[], help="source:target")
    parser.add_argument("--block-node", action="append", default=[])
    parser.add_argument("--iterations", type=int, default=3)
    parser.add_argument("--backend-url", default="http://localhost:8000")
    parser.add_argument("--out-dir", default="out")
    parser.add_argument("--output", default=None)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    record = run_benchmark(args)
    print(json.dumps(record, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
