"""
One-shot interactive runs over JSON documents, shared by the HTTP API and the CLI.

A run document carries an optional app config, initial state overrides, a
designer snapshot and either an action list or a node graph. Every run gets a
fresh :class:`RuntimeStore` and :class:`InMemoryDesigner`.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from .config import InteractiveConfig
from .designer import InMemoryDesigner
from .observability.metrics import MetricsRegistry
from .runtime.models import InteractionEvent
from .runtime.store import RuntimeStore


def json_safe(value: Any) -> Any:
    """Values from user code may hold closures or other non-JSON objects."""
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        if isinstance(value, Mapping):
            return {str(key): json_safe(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [json_safe(item) for item in value]
        return repr(value)


def build_session(
    document: Mapping[str, Any],
    *,
    config: InteractiveConfig | None = None,
    metrics: MetricsRegistry | None = None,
) -> tuple[RuntimeStore, InMemoryDesigner]:
    store = RuntimeStore(config, metrics=metrics)
    store.initialize_app(document.get("app") or {})
    for name, value in (document.get("state") or {}).items():
        store.set_state(name, value)
    store.enable_interactive_mode()
    return store, InMemoryDesigner.from_snapshot(document.get("designer"))


def session_payload(store: RuntimeStore, designer: InMemoryDesigner) -> Dict[str, Any]:
    snapshot = store.snapshot()
    return {
        "state": json_safe(snapshot["state"]),
        "navigation": snapshot["navigation"],
        "forms": json_safe(snapshot["forms"]),
        "designer": json_safe(designer.snapshot()),
        "calls": json_safe(designer.calls),
        "logs": store.logs.history(),
    }


def _event_from(document: Mapping[str, Any]) -> InteractionEvent:
    raw = document.get("event")
    if isinstance(raw, Mapping):
        return InteractionEvent.from_dict(raw)
    return InteractionEvent(type=str(raw or "click"), element_id=document.get("element_id"))


async def run_actions_document(
    document: Mapping[str, Any],
    *,
    config: InteractiveConfig | None = None,
    metrics: MetricsRegistry | None = None,
) -> Dict[str, Any]:
    """Execute ``document["actions"]`` once; failures are reported per action, never raised."""
    from .actions.executor import execute_actions

    store, designer = build_session(document, config=config, metrics=metrics)
    event = _event_from(document)
    ctx = store.create_context(designer, event, data=document.get("data"))
    run = await execute_actions(document.get("actions") or [], event, ctx)
    store.event_history.append(event)
    return {"result": json_safe(run.to_dict()), **session_payload(store, designer)}


async def dispatch_event_document(
    document: Mapping[str, Any],
    *,
    config: InteractiveConfig | None = None,
    metrics: MetricsRegistry | None = None,
) -> Dict[str, Any]:
    """Route one event through the app's declarative handlers."""
    store, designer = build_session(document, config=config, metrics=metrics)
    runs = await store.dispatch_event(_event_from(document), designer=designer, data=document.get("data"))
    return {"result": [json_safe(run.to_dict()) for run in runs], **session_payload(store, designer)}


async def run_graph_document(
    document: Mapping[str, Any],
    *,
    config: InteractiveConfig | None = None,
    metrics: MetricsRegistry | None = None,
    match_mode: Optional[str] = None,
) -> Dict[str, Any]:
    """Dispatch one event through ``document["nodes"]``/``document["edges"]``."""
    store, designer = build_session(document, config=config, metrics=metrics)
    result = await store.dispatch_graph(
        str(document.get("event_type") or "click"),
        document.get("element_id"),
        document.get("nodes") or [],
        document.get("edges") or [],
        designer,
        data=document.get("data"),
        event_data=document.get("event_data"),
        match_mode=match_mode or document.get("match_mode"),
    )
    return {"result": json_safe(result.to_dict()), **session_payload(store, designer)}


__all__ = [
    "build_session",
    "dispatch_event_document",
    "json_safe",
    "run_actions_document",
    "run_graph_document",
    "session_payload",
]
