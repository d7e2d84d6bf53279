from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .algorithms import compare_algorithms, run_algorithm
from .errors import (
    ConstructionError,
    DisconnectedGraphError,
    NegativeCycleError,
    NoPathFoundError,
    ReconstructionLimitExceeded,
    RoutingError,
    normalize_reason_code,
)
from .geometry import distance_m
from .graph import Graph, build_graph
from .logging_utils import log_event
from .models import (
    AlgorithmListResponse,
    CompareRequest,
    ComparisonResponse,
    ComparisonRow,
    EdgeRef,
    GraphPayload,
    GraphSummaryResponse,
    LatLng,
    NodeRef,
    ReplanSessionRequest,
    ReplanSessionResponse,
    ReplanStepRequest,
    RouteRequest,
    SearchMetrics,
)
from .replanner import IncrementalReplanner
from .result_cache import ResultCacheStore, search_fingerprint
from .settings import settings
from .spatial import find_nearest_node

_STATUS_BY_ERROR: tuple[tuple[type[RoutingError], int], ...] = (
    (ConstructionError, 422),
    (NegativeCycleError, 422),
    (DisconnectedGraphError, 409),
    (NoPathFoundError, 404),
    (ReconstructionLimitExceeded, 500),
)


def _http_error(exc: RoutingError) -> HTTPException:
    status = 400
    for kind, code in _STATUS_BY_ERROR:
        if isinstance(exc, kind):
            status = code
            break
    reason_code = normalize_reason_code(exc.reason_code)
    if reason_code == "route_span_exceeded":
        status = 422
    elif reason_code == "unknown_session":
        status = 404
    return HTTPException(status_code=status, detail={"reason_code": reason_code, "message": exc.message})


def _reset_state(app: FastAPI) -> None:
    app.state.graph = None
    app.state.sessions = {}
    app.state.result_cache = ResultCacheStore(
        ttl_s=settings.result_cache_ttl_s,
        max_entries=settings.result_cache_max_entries,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    _reset_state(app)
    yield
    app.state.sessions.clear()


router = APIRouter()


def loaded_graph(request: Request) -> Graph:
    graph: Graph | None = getattr(request.app.state, "graph", None)
    if graph is None:
        raise HTTPException(
            status_code=503,
            detail={"reason_code": "graph_not_loaded", "message": "no graph loaded; POST /graph first"},
        )
    return graph


GraphDep = Annotated[Graph, Depends(loaded_graph)]


def _sessions(request: Request) -> dict[str, IncrementalReplanner]:
    return request.app.state.sessions


def _session_or_404(request: Request, session_id: str) -> IncrementalReplanner:
    session = _sessions(request).get(session_id)
    if session is None:
        raise _http_error(
            RoutingError(
                reason_code="unknown_session",
                message=f"unknown replan session {session_id!r}",
            )
        )
    return session


def _check_span(start: LatLng, goal: LatLng) -> None:
    limit = settings.max_route_span_m
    if limit <= 0:
        return
    span = distance_m(start.to_coordinate(), goal.to_coordinate())
    if span > limit:
        raise _http_error(
            RoutingError(
                reason_code="route_span_exceeded",
                message=f"start and goal are {span:.0f} m apart; the limit is {limit:.0f} m",
                details={"span_m": span, "max_route_span_m": limit},
            )
        )


def _replace_graph(request: Request, graph: Graph) -> None:
    """Install an edited overlay and let every live session repair against it."""
    request.app.state.graph = graph
    for session in _sessions(request).values():
        session.apply_overlay(graph.overlay)


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/algorithms", response_model=AlgorithmListResponse)
async def list_algorithms() -> AlgorithmListResponse:
    return AlgorithmListResponse.from_catalog()


@router.post("/graph", response_model=GraphSummaryResponse)
async def load_graph(payload: GraphPayload, request: Request) -> GraphSummaryResponse:
    t0 = time.perf_counter()
    try:
        graph = build_graph(payload.nodes, payload.edges)
    except ConstructionError as e:
        raise _http_error(e) from e

    request.app.state.graph = graph
    # Sessions and cached results belong to the previous graph.
    _sessions(request).clear()
    request.app.state.result_cache.clear()

    summary = GraphSummaryResponse.from_graph(graph)
    log_event(
        "api_graph_loaded",
        graph_version=graph.version,
        node_count=summary.node_count,
        edge_count=summary.edge_count,
        connected=summary.connected,
        component_count=summary.component_count,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return summary


@router.get("/graph", response_model=GraphSummaryResponse)
async def graph_summary(graph: GraphDep) -> GraphSummaryResponse:
    return GraphSummaryResponse.from_graph(graph)


def _edit_overlay(request: Request, graph: Graph, action: str, edited: Graph) -> GraphSummaryResponse:
    _replace_graph(request, edited)
    log_event(
        "api_overlay_changed",
        action=action,
        graph_version=graph.version,
        blocked_edge_count=len(edited.overlay.blocked_edges),
        blocked_node_count=len(edited.overlay.blocked_node_ids),
        session_count=len(_sessions(request)),
    )
    return GraphSummaryResponse.from_graph(edited)


@router.post("/graph/edges/block", response_model=GraphSummaryResponse)
async def block_edge(ref: EdgeRef, request: Request, graph: GraphDep) -> GraphSummaryResponse:
    try:
        edited = graph.block_edge(ref.source_id, ref.target_id, both_directions=ref.both_directions)
    except ConstructionError as e:
        raise _http_error(e) from e
    return _edit_overlay(request, graph, "block_edge", edited)


@router.post("/graph/edges/unblock", response_model=GraphSummaryResponse)
async def unblock_edge(ref: EdgeRef, request: Request, graph: GraphDep) -> GraphSummaryResponse:
    try:
        edited = graph.unblock_edge(ref.source_id, ref.target_id, both_directions=ref.both_directions)
    except ConstructionError as e:
        raise _http_error(e) from e
    return _edit_overlay(request, graph, "unblock_edge", edited)


@router.post("/graph/nodes/block", response_model=GraphSummaryResponse)
async def block_node(ref: NodeRef, request: Request, graph: GraphDep) -> GraphSummaryResponse:
    try:
        edited = graph.block_node(ref.node_id)
    except ConstructionError as e:
        raise _http_error(e) from e
    return _edit_overlay(request, graph, "block_node", edited)


@router.post("/graph/nodes/unblock", response_model=GraphSummaryResponse)
async def unblock_node(ref: NodeRef, request: Request, graph: GraphDep) -> GraphSummaryResponse:
    try:
        edited = graph.unblock_node(ref.node_id)
    except ConstructionError as e:
        raise _http_error(e) from e
    return _edit_overlay(request, graph, "unblock_node", edited)


@router.post("/route", response_model=SearchMetrics)
async def compute_route(req: RouteRequest, request: Request, graph: GraphDep) -> SearchMetrics:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    _check_span(req.start, req.goal)

    start, goal = req.start.to_coordinate(), req.goal.to_coordinate()
    cache: ResultCacheStore = request.app.state.result_cache
    key = search_fingerprint(
        graph_version=graph.version,
        algorithm=req.algorithm.value,
        start=start,
        goal=goal,
        overlay=graph.overlay,
    )
    try:
        result, cached = cache.get_or_compute(key, lambda: run_algorithm(req.algorithm, graph, start, goal))
    except RoutingError as e:
        raise _http_error(e) from e

    log_event(
        "api_route_request",
        request_id=request_id,
        algorithm=req.algorithm.value,
        start=req.start.model_dump(),
        goal=req.goal.model_dump(),
        cached=cached,
        distance_m=round(result.total_distance_m, 2),
        nodes_visited=result.nodes_visited_count,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return SearchMetrics.from_result(result, speed_mps=settings.walking_speed_mps, cached=cached)


@router.post("/compare", response_model=ComparisonResponse)
async def compare(req: CompareRequest, graph: GraphDep) -> ComparisonResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    _check_span(req.start, req.goal)

    report = compare_algorithms(
        graph,
        req.start.to_coordinate(),
        req.goal.to_coordinate(),
        req.algorithms,
        speed_mps=settings.walking_speed_mps,
    )
    rows = [ComparisonRow.from_entry(entry, speed_mps=settings.walking_speed_mps) for entry in report.entries]

    log_event(
        "api_compare_request",
        request_id=request_id,
        algorithms=[row.algorithm.value for row in rows],
        error_count=sum(1 for row in rows if not row.ok),
        baseline_distance_m=report.baseline_distance_m,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return ComparisonResponse(baseline_distance_m=report.baseline_distance_m, results=rows)


@router.post("/replan/sessions", response_model=ReplanSessionResponse)
async def create_session(req: ReplanSessionRequest, request: Request, graph: GraphDep) -> ReplanSessionResponse:
    _check_span(req.start, req.goal)
    try:
        session = IncrementalReplanner.from_coordinates(graph, req.start.to_coordinate(), req.goal.to_coordinate())
        result = session.plan()
    except RoutingError as e:
        raise _http_error(e) from e

    session_id = uuid.uuid4().hex
    _sessions(request)[session_id] = session
    return ReplanSessionResponse(
        session_id=session_id,
        start_node_id=session.start_id,
        goal_node_id=session.goal_id,
        metrics=SearchMetrics.from_result(result, speed_mps=settings.walking_speed_mps),
    )


@router.post("/replan/sessions/{session_id}/plan", response_model=ReplanSessionResponse)
async def plan_session(
    session_id: str,
    request: Request,
    req: ReplanStepRequest | None = None,
) -> ReplanSessionResponse:
    session = _session_or_404(request, session_id)
    try:
        if req is not None and req.position is not None:
            node = find_nearest_node(
                session.graph.nodes,
                req.position.to_coordinate(),
                session.graph.blocked_node_ids,
            )
            if node is None:
                raise NoPathFoundError(
                    reason_code="endpoint_unresolved",
                    message="position has no unblocked graph node",
                )
            session.move_start(node.id)
        result = session.plan()
    except RoutingError as e:
        raise _http_error(e) from e

    return ReplanSessionResponse(
        session_id=session_id,
        start_node_id=session.start_id,
        goal_node_id=session.goal_id,
        metrics=SearchMetrics.from_result(result, speed_mps=settings.walking_speed_mps),
    )


@router.delete("/replan/sessions/{session_id}")
async def delete_session(session_id: str, request: Request) -> dict[str, str]:
    _session_or_404(request, session_id)
    del _sessions(request)[session_id]
    return {"status": "deleted", "session_id": session_id}


def create_app() -> FastAPI:
    app = FastAPI(title="Pathbench shortest-path engine", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
