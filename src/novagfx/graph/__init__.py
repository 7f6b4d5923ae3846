"""
Visual node graphs: event-triggered Event/Condition/Action/Data/Animation automation.
"""

from .models import GRAPH_ACTION_KINDS, NODE_KINDS, GraphEdge, GraphNode, GraphRunResult, NodeError
from .runtime import NodeGraphRuntime, create_node_runtime_context, execute_node_graph

__all__ = [
    "GRAPH_ACTION_KINDS",
    "NODE_KINDS",
    "GraphEdge",
    "GraphNode",
    "GraphRunResult",
    "NodeError",
    "NodeGraphRuntime",
    "create_node_runtime_context",
    "execute_node_graph",
]
