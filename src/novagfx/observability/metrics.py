"""
Aggregated metrics registry for actions, graph nodes and graph runs.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class KindMetricsSnapshot:
    count: int
    failures: int
    total_duration_seconds: float


@dataclass
class GraphMetricsSnapshot:
    event_type: str
    total_runs: int
    matched_runs: int
    avg_duration_seconds: float
    avg_visited: float


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._actions: Dict[str, KindMetricsSnapshot] = {}
        self._nodes: Dict[str, KindMetricsSnapshot] = {}
        self._graphs: Dict[str, GraphMetricsSnapshot] = {}
        self._timeouts: Dict[str, int] = {}

    @staticmethod
    def _bump(table: Dict[str, KindMetricsSnapshot], kind: str, duration_seconds: float, ok: bool) -> None:
        key = kind or "unknown"
        if key not in table:
            table[key] = KindMetricsSnapshot(count=0, failures=0, total_duration_seconds=0.0)
        snap = table[key]
        snap.count += 1
        snap.total_duration_seconds += max(duration_seconds, 0.0)
        if not ok:
            snap.failures += 1

    def record_action(self, kind: str, duration_seconds: float, ok: bool = True) -> None:
        with self._lock:
            self._bump(self._actions, kind, duration_seconds, ok)

    def record_node(self, kind: str, duration_seconds: float, ok: bool = True) -> None:
        with self._lock:
            self._bump(self._nodes, kind, duration_seconds, ok)

    def record_graph(self, event_type: str, duration_seconds: float, matched: int, visited: int) -> None:
        with self._lock:
            if event_type not in self._graphs:
                self._graphs[event_type] = GraphMetricsSnapshot(
                    event_type=event_type, total_runs=0, matched_runs=0, avg_duration_seconds=0.0, avg_visited=0.0
                )
            snap = self._graphs[event_type]
            snap.total_runs += 1
            if matched:
                snap.matched_runs += 1
            snap.avg_duration_seconds = ((snap.avg_duration_seconds * (snap.total_runs - 1)) + duration_seconds) / snap.total_runs
            snap.avg_visited = ((snap.avg_visited * (snap.total_runs - 1)) + visited) / snap.total_runs

    def record_timeout(self, kind: str) -> None:
        with self._lock:
            self._timeouts[kind] = self._timeouts.get(kind, 0) + 1

    def get_action_metrics(self) -> Dict[str, KindMetricsSnapshot]:
        return dict(self._actions)

    def get_node_metrics(self) -> Dict[str, KindMetricsSnapshot]:
        return dict(self._nodes)

    def get_graph_metrics(self) -> Dict[str, GraphMetricsSnapshot]:
        return dict(self._graphs)

    def get_timeout_counts(self) -> Dict[str, int]:
        return dict(self._timeouts)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "actions": {key: asdict(value) for key, value in self._actions.items()},
                "nodes": {key: asdict(value) for key, value in self._nodes.items()},
                "graphs": {key: asdict(value) for key, value in self._graphs.items()},
                "timeouts": dict(self._timeouts),
            }

    def reset(self) -> None:
        with self._lock:
            self._actions.clear()
            self._nodes.clear()
            self._graphs.clear()
            self._timeouts.clear()


default_metrics = MetricsRegistry()
