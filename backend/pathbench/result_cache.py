from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from .geometry import LatLonPoint
from .graph import BlockingOverlay
from .results import SearchResult

# ~1 cm; coordinates closer than this hash identically.
COORDINATE_DECIMALS = 7


def search_fingerprint(
    *,
    graph_version: str,
    algorithm: str,
    start: LatLonPoint,
    goal: LatLonPoint,
    overlay: BlockingOverlay,
) -> str:
    """Stable key for one search input: graph, algorithm, endpoints and blocking overlay."""
    payload = {
        "graph": graph_version,
        "algorithm": algorithm,
        "start": [round(float(start.latitude), COORDINATE_DECIMALS), round(float(start.longitude), COORDINATE_DECIMALS)],
        "goal": [round(float(goal.latitude), COORDINATE_DECIMALS), round(float(goal.longitude), COORDINATE_DECIMALS)],
        "blocked_edges": [list(pair) for pair in overlay.sorted_edges()],
        "blocked_nodes": overlay.sorted_node_ids(),
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheStats:
    size: int
    hits: int
    misses: int
    evictions: int
    expirations: int
    ttl_s: float
    max_entries: int


class ResultCacheStore:
    """LRU map from search fingerprint to ``SearchResult`` with a per-entry time-to-live.

    Results are frozen dataclasses, so entries are handed out without copying.
    """

    def __init__(
        self,
        *,
        ttl_s: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = max(1.0, float(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = Lock()
        # fingerprint -> (expires_at, result)
        self._entries: OrderedDict[str, tuple[float, SearchResult]] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> SearchResult | None:
        with self._lock:
            found = self._entries.get(key)
            if found is not None and found[0] < self._clock():
                del self._entries[key]
                self._expirations += 1
                found = None
            if found is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return found[1]

    def put(self, key: str, result: SearchResult) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self._ttl_s, result)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def get_or_compute(self, key: str, compute: Callable[[], SearchResult]) -> tuple[SearchResult, bool]:
        """Return ``(result, was_cached)``; errors raised by ``compute`` are not cached."""
        cached = self.get(key)
        if cached is not None:
            return cached, True
        result = compute()
        self.put(key, result)
        return result, False

    def clear(self) -> int:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            return dropped

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                ttl_s=self._ttl_s,
                max_entries=self._max_entries,
            )
