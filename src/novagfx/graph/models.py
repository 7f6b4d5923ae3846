"""
Node graph models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

NODE_KINDS = ("event", "condition", "action", "data", "animation")

GRAPH_ACTION_KINDS = (
    "setState",
    "toggleState",
    "navigate",
    "playTemplate",
    "toggleTemplate",
    "showElement",
    "hideElement",
    "toggleElement",
    "playAnimation",
    "stopAnimation",
    "log",
    "delay",
    "callFunction",
)

MATCH_ANY = "any"


@dataclass
class GraphNode:
    id: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any) -> "GraphNode":
        if isinstance(value, GraphNode):
            return value
        if isinstance(value, Mapping):
            return cls(id=str(value.get("id")), type=str(value.get("type") or ""), data=dict(value.get("data") or {}))
        raise TypeError(f"Cannot build a graph node from {type(value).__name__}")


@dataclass
class GraphEdge:
    source: str
    target: str
    id: Optional[str] = None

    @classmethod
    def coerce(cls, value: Any) -> "GraphEdge":
        if isinstance(value, GraphEdge):
            return value
        if isinstance(value, Mapping):
            return cls(source=str(value.get("source")), target=str(value.get("target")), id=value.get("id"))
        raise TypeError(f"Cannot build a graph edge from {type(value).__name__}")


@dataclass
class NodeError:
    node_id: str
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"node_id": self.node_id, "kind": self.kind, "message": self.message}


@dataclass
class GraphRunResult:
    event_type: str
    element_id: Optional[str] = None
    matched: List[str] = field(default_factory=list)
    walks: Dict[str, List[str]] = field(default_factory=dict)
    errors: List[NodeError] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def visited(self) -> List[str]:
        return [node_id for walk in self.walks.values() for node_id in walk]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "element_id": self.element_id,
            "matched": list(self.matched),
            "walks": {key: list(value) for key, value in self.walks.items()},
            "visited": self.visited,
            "errors": [error.to_dict() for error in self.errors],
            "duration_seconds": self.duration_seconds,
        }
