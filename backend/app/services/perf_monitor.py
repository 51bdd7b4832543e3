"""Performance and operation counters for the report snapshot service."""
import threading
from typing import Any, Dict, List



class SnapshotMetrics:
    """
    Thread-safe in-memory counters for snapshot operations.

    Tracks:
    - Snapshots built and staleness detections
    - Store saves / save failures
    - Store loads split into hits, misses and corrupt entries
    - Store clears / clear failures
    """

    _COUNTERS = (
        "built",
        "stale_detected",
        "saves",
        "save_failures",
        "load_hits",
        "load_misses",
        "load_corrupt",
        "load_failures",
        "clears",
        "clear_failures",
    )

    _LOAD_OUTCOMES = {
        "hit": "load_hits",
        "miss": "load_misses",
        "corrupt": "load_corrupt",
        "failure": "load_failures",
    }

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self._COUNTERS}
        # operation -> [total_ms, count]; fixed size per operation
        self._store_durations_ms: Dict[str, List[float]] = {}

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def _incr(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def record_build(self) -> None:
        self._incr("built")

    def record_stale(self) -> None:
        self._incr("stale_detected")

    def record_save(self, ok: bool) -> None:
        self._incr("saves" if ok else "save_failures")

    def record_load(self, outcome: str) -> None:
        """outcome: one of ``hit``, ``miss``, ``corrupt``, ``failure``."""
        self._incr(self._LOAD_OUTCOMES[outcome])

    def record_clear(self, ok: bool) -> None:
        self._incr("clears" if ok else "clear_failures")

    def record_store_duration(self, operation: str, duration_ms: float) -> None:
        with self._lock:
            totals = self._store_durations_ms.setdefault(operation, [0.0, 0])
            totals[0] += duration_ms
            totals[1] += 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a copy of all collected counters.

        Returns
        -------
        dict with one int per counter name plus
            store_avg_durations_ms : dict  {operation: avg_ms}
        """
        with self._lock:
            avgs: Dict[str, float] = {}
            for op, (total_ms, count) in self._store_durations_ms.items():
                avgs[op] = round(total_ms / count, 2) if count else 0.0
            metrics: Dict[str, Any] = dict(self._counts)
            metrics["store_avg_durations_ms"] = avgs
            return metrics

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            for name in self._counts:
                self._counts[name] = 0
            self._store_durations_ms.clear()


# Module-level singleton: import this instance everywhere else.
snapshot_metrics = SnapshotMetrics()
