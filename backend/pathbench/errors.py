from __future__ import annotations

from dataclasses import dataclass
from typing import Any

REASON_CODES: frozenset[str] = frozenset(
    {
        "graph_construction_invalid",
        "graph_duplicate_node",
        "graph_unknown_node",
        "graph_unknown_edge",
        "graph_self_loop",
        "graph_invalid_weight",
        "graph_disconnected",
        "graph_not_loaded",
        "no_path",
        "start_or_goal_blocked",
        "endpoint_unresolved",
        "negative_cycle",
        "reconstruction_limit_exceeded",
        "route_span_exceeded",
        "unknown_session",
        "routing_error",
    }
)


@dataclass
class RoutingError(ValueError):
    message: str
    reason_code: str = "routing_error"
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


@dataclass
class ConstructionError(RoutingError):
    """Malformed raw graph input or an edit that references missing structure."""

    reason_code: str = "graph_construction_invalid"


@dataclass
class DisconnectedGraphError(RoutingError):
    reason_code: str = "graph_disconnected"


@dataclass
class NoPathFoundError(RoutingError):
    reason_code: str = "no_path"


@dataclass
class NegativeCycleError(RoutingError):
    reason_code: str = "negative_cycle"


@dataclass
class ReconstructionLimitExceeded(RoutingError):
    """Path walk ran past its step budget (residual inconsistency or a corrupted overlay)."""

    reason_code: str = "reconstruction_limit_exceeded"


def normalize_reason_code(reason_code: str, *, default: str = "routing_error") -> str:
    code = str(reason_code or "").strip()
    if code in REASON_CODES:
        return code
    return default
