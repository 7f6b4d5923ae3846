"""
Visual node graph interpreter.

For a triggering event the runtime selects the matching Event nodes and walks
outward from each one depth-first. A node runs at most once per walk, so
diamond-shaped and cyclic graphs terminate. A node's children start only after
its handler (including any delay) has completed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set

from ..address import find_named, parse_address
from ..config import GRAPH_MATCH_MODES
from ..errors import GraphError
from ..runtime.conditions import evaluate_condition, resolve_value
from ..runtime.context import ExecutionContext
from ..runtime.helpers import stringify
from .models import GRAPH_ACTION_KINDS, MATCH_ANY, GraphEdge, GraphNode, GraphRunResult, NodeError

logger = logging.getLogger("novagfx.graph")

DEFAULT_DELAY_MS = 1000
TEMPLATE_PLAYING_PREFIX = "_templatePlaying_"


class NodeGraphRuntime:
    def __init__(self, nodes: Sequence[Any], edges: Sequence[Any]) -> None:
        self.nodes: Dict[str, GraphNode] = {}
        for raw in nodes or ():
            node = GraphNode.coerce(raw)
            self.nodes.setdefault(node.id, node)
        self.adjacency: Dict[str, List[str]] = {}
        for raw in edges or ():
            edge = GraphEdge.coerce(raw)
            self.adjacency.setdefault(edge.source, []).append(edge.target)

    # -- matching -----------------------------------------------------------------

    def match_event_nodes(self, event_type: str, element_id: Optional[str], ctx: ExecutionContext) -> List[GraphNode]:
        return [
            node
            for node in self.nodes.values()
            if node.type == "event"
            and node.data.get("eventType") == event_type
            and self._element_matches(node.data, element_id, ctx)
        ]

    @staticmethod
    def _element_matches(data: Mapping[str, Any], element_id: Optional[str], ctx: ExecutionContext) -> bool:
        declared = data.get("elementId") or data.get("elementName")
        if not declared or declared == MATCH_ANY:
            return True
        if element_id is None:
            return False
        if declared == element_id:
            return True
        declared_id = ctx.resolve_element_id(declared)
        return declared_id is not None and declared_id == (ctx.resolve_element_id(element_id) or element_id)

    # -- dispatch -----------------------------------------------------------------

    async def dispatch(
        self,
        event_type: str,
        element_id: Optional[str],
        ctx: ExecutionContext,
        match_mode: Optional[str] = None,
    ) -> GraphRunResult:
        result = GraphRunResult(event_type=event_type, element_id=element_id)
        if not self.nodes:
            return result
        mode = match_mode or ctx.config.graph_match_mode
        if mode not in GRAPH_MATCH_MODES:
            logger.warning("Unknown match mode %r; running sequentially", mode)
            mode = "sequential"
        matched = self.match_event_nodes(event_type, element_id, ctx)
        result.matched = [node.id for node in matched]
        if not matched:
            ctx.log(f'No event handlers found for "{event_type}"')
            return result
        ctx.log(f'Executing {len(matched)} handler(s) for "{event_type}"')
        for node in matched:
            result.walks[node.id] = []
        if mode == "concurrent":
            await asyncio.gather(*(self.walk(node, ctx, result) for node in matched))
        else:
            for node in matched:
                await self.walk(node, ctx, result)
        return result

    async def walk(self, event_node: GraphNode, ctx: ExecutionContext, result: GraphRunResult) -> None:
        visited: Set[str] = {event_node.id}
        trail = result.walks.setdefault(event_node.id, [])
        stack: List[Iterator[str]] = [iter(self.adjacency.get(event_node.id, ()))]
        while stack:
            node_id = next(stack[-1], None)
            if node_id is None:
                stack.pop()
                continue
            node = self.nodes.get(node_id)
            if node is None or node_id in visited:
                continue
            visited.add(node_id)
            trail.append(node_id)
            if await self.execute_node(node, ctx, result):
                stack.append(iter(self.adjacency.get(node_id, ())))

    async def execute_node(self, node: GraphNode, ctx: ExecutionContext, result: GraphRunResult) -> bool:
        """Run one node; returns whether the walk continues into its children."""
        started = time.monotonic()
        ok = True
        try:
            if node.type == "event":
                return False
            if node.type == "condition":
                return self._run_condition(node, ctx)
            if node.type == "action":
                await self._run_action(node, ctx)
            elif node.type == "data":
                self._run_data(node, ctx)
            elif node.type == "animation":
                self._run_animation(node, ctx)
            else:
                logger.warning("Node %s has unsupported type %r", node.id, node.type)
                return False
            return True
        except Exception as exc:
            ok = False
            result.errors.append(NodeError(node_id=node.id, kind=node.type, message=str(exc)))
            logger.warning("Node %s (%s) failed: %s", node.id, node.type, exc)
            ctx.log(f"Node {node.id} failed: {exc}")
            return True
        finally:
            ctx.metrics.record_node(node.type, time.monotonic() - started, ok=ok)

    # -- node kinds ----------------------------------------------------------------

    @staticmethod
    def _run_condition(node: GraphNode, ctx: ExecutionContext) -> bool:
        data = node.data
        condition = {
            "operand": data.get("condition", data.get("operand", True)),
            "operator": data.get("operator") or "equals",
            "comparand": data.get("value", data.get("comparand", "")),
        }
        outcome = evaluate_condition(condition, ctx)
        ctx.log(
            f'Condition "{data.get("condition")} {condition["operator"]} {data.get("value")}" = {stringify(outcome)}'
        )
        return outcome

    async def _run_action(self, node: GraphNode, ctx: ExecutionContext) -> None:
        data = node.data
        kind = data.get("actionType")
        if kind not in GRAPH_ACTION_KINDS:
            raise GraphError(f"Unknown action type: {kind}", node_id=node.id)
        handler = getattr(self, _ACTION_NODE_HANDLERS[kind])
        outcome = handler(data, ctx, node)
        if asyncio.iscoroutine(outcome):
            await outcome

    def _node_set_state(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        target = data.get("target") or "value"
        value = resolve_value(data.get("value"), ctx)
        if not ctx.set_state(target, value):
            raise GraphError(f"Could not set {target}", node_id=node.id)
        ctx.log(f'Set state "{target}" = {stringify(value)}')

    def _node_toggle_state(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        target = data.get("target") or "value"
        if not ctx.set_state(target, not ctx.get_state(target)):
            raise GraphError(f"Could not toggle {target}", node_id=node.id)
        ctx.log(f'Toggled state "{target}"')

    def _node_navigate(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        screen = data.get("target") or data.get("templateId")
        if not screen:
            raise GraphError("navigate requires a target", node_id=node.id)
        ctx.navigate(screen)
        ctx.log(f'Navigate to "{screen}"')

    def _node_play_template(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        template = data.get("templateId") or data.get("templateName")
        phase = data.get("phase")
        if not ctx.play_template(template, _layer_id(data, ctx), phase):
            raise GraphError(f"Template not found: {template}", node_id=node.id)
        ctx.log(f'Play template "{template}" phase "{phase or "in"}"')

    def _node_toggle_template(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        template = data.get("templateId") or data.get("templateName")
        key = f"{TEMPLATE_PLAYING_PREFIX}{template}"
        playing = ctx.store.get_state(key) is True
        phase = "out" if playing else "in"
        if not ctx.play_template(template, _layer_id(data, ctx), phase):
            raise GraphError(f"Template not found: {template}", node_id=node.id)
        ctx.store.set_state(key, not playing)
        ctx.log(f'Toggle template "{template}" to phase "{phase}"')

    def _node_show_element(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        kind = data.get("actionType")
        ref = data.get("elementId") or data.get("elementName") or data.get("target")
        visible = {"showElement": True, "hideElement": False}.get(kind)
        if not ctx.set_element_visibility(ref, visible):
            raise GraphError(f"Element not found: {ref}", node_id=node.id)
        verb = {"showElement": "Show", "hideElement": "Hide"}.get(kind, "Toggle")
        ctx.log(f'{verb} element "{ref}"')

    _node_hide_element = _node_show_element
    _node_toggle_element = _node_show_element

    def _node_play_animation(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        ref = data.get("elementId") or data.get("elementName")
        if data.get("actionType") == "stopAnimation":
            ctx.stop_animation(ref)
            ctx.log(f'Stop animation on "{ref}"')
            return
        ctx.play_animation(ref, data.get("phase"))
        ctx.log(f'Play animation on "{ref}" phase "{data.get("phase")}"')

    _node_stop_animation = _node_play_animation

    def _node_log(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        message = data.get("message")
        ctx.log(stringify(resolve_value(message, ctx)) if message else "Debug message")

    async def _node_delay(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        duration = data.get("duration") or DEFAULT_DELAY_MS
        await ctx.delay(duration)
        ctx.log(f"Delayed {stringify(duration)}ms")

    async def _node_call_function(self, data: Mapping[str, Any], ctx: ExecutionContext, node: GraphNode) -> None:
        from ..actions.executor import execute_actions

        name = data.get("functionName")
        action = {"type": "callFunction", "target": {"name": name, "args": list(data.get("args") or [])}}
        run = await execute_actions([action], ctx.event, ctx)
        if not run.ok:
            raise GraphError(run.failures[0].error_message or f"Function {name} failed", node_id=node.id)
        ctx.log(f'Called function "{name}"')

    @staticmethod
    def _run_data(node: GraphNode, ctx: ExecutionContext) -> None:
        data = node.data
        operation = data.get("operation")
        path = data.get("path") or ""
        if operation == "get":
            value = ctx.get_state(path) if parse_address(path) is not None else resolve_value(path, ctx)
            if data.get("outputTo"):
                ctx.set_state(data["outputTo"], value)
            ctx.log(f'Get data from "{path}" = {stringify(value)}')
            return
        if operation == "set":
            value = resolve_value(data.get("value"), ctx)
            if path.startswith("state."):
                ctx.set_state(path[len("state."):], value)
            elif parse_address(path) is not None:
                if not ctx.write_address(path, value):
                    raise GraphError(f"Could not set {path}", node_id=node.id)
            else:
                raise GraphError(f"Unsupported data path {path!r}", node_id=node.id)
            ctx.log(f'Set data "{path}" = {stringify(value)}')
            return
        ctx.log(f'Data operation "{operation}"')

    @staticmethod
    def _run_animation(node: GraphNode, ctx: ExecutionContext) -> None:
        data = node.data
        template = data.get("templateId") or data.get("templateName")
        if not template:
            ctx.log(f"Animation node {node.id} has no template")
            return
        phase = data.get("phase")
        if not ctx.play_template(template, _layer_id(data, ctx), phase):
            raise GraphError(f"Template not found: {template}", node_id=node.id)
        ctx.log(f'Animation: Play template "{data.get("templateName") or template}" phase "{phase or "in"}"')


_ACTION_NODE_HANDLERS = {
    "setState": "_node_set_state",
    "toggleState": "_node_toggle_state",
    "navigate": "_node_navigate",
    "playTemplate": "_node_play_template",
    "toggleTemplate": "_node_toggle_template",
    "showElement": "_node_show_element",
    "hideElement": "_node_hide_element",
    "toggleElement": "_node_toggle_element",
    "playAnimation": "_node_play_animation",
    "stopAnimation": "_node_stop_animation",
    "log": "_node_log",
    "delay": "_node_delay",
    "callFunction": "_node_call_function",
}

if set(_ACTION_NODE_HANDLERS) != set(GRAPH_ACTION_KINDS) or not all(
    hasattr(NodeGraphRuntime, name) for name in _ACTION_NODE_HANDLERS.values()
):
    raise RuntimeError("Graph action handler table out of sync with GRAPH_ACTION_KINDS")


def _layer_id(data: Mapping[str, Any], ctx: ExecutionContext) -> Optional[str]:
    if data.get("layerId"):
        return data["layerId"]
    name = data.get("layerName")
    if not name:
        return None
    layer = find_named(getattr(ctx.designer, "layers", None), name)
    return layer.get("id") if layer is not None else None


def create_node_runtime_context(designer: Any, store: Any, **collaborators: Any) -> ExecutionContext:
    """Adapter binding a designer collaborator and a runtime store for graph execution."""
    return store.create_context(designer, **collaborators)


async def execute_node_graph(
    event_type: str,
    element_id: Optional[str],
    nodes: Sequence[Any],
    edges: Sequence[Any],
    ctx: ExecutionContext,
    match_mode: Optional[str] = None,
) -> GraphRunResult:
    """Run every Event node matching ``event_type``/``element_id``; never raises for node failures."""
    started = time.monotonic()
    try:
        runtime = NodeGraphRuntime(nodes, edges)
    except TypeError as exc:
        logger.warning("Malformed graph for %s: %s", event_type, exc)
        result = GraphRunResult(event_type=event_type, element_id=element_id)
        result.errors.append(NodeError(node_id="", kind="graph", message=str(exc)))
        return result
    result = await runtime.dispatch(event_type, element_id, ctx, match_mode)
    result.duration_seconds = time.monotonic() - started
    ctx.metrics.record_graph(event_type, result.duration_seconds, len(result.matched), len(result.visited))
    return result


__all__ = ["NodeGraphRuntime", "create_node_runtime_context", "execute_node_graph"]
