"""
Execution context handed to actions, graph nodes and scripts for one triggering event.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..address import apply_address_value, find_named, find_named_key, nested_update, parse_address, require_address
from ..config import InteractiveConfig
from ..errors import AddressError
from ..observability.metrics import MetricsRegistry, default_metrics
from .conditions import resolve_address_value
from .expressions import ScriptScope
from .helpers import get_nested_value, split_path
from .models import AppFunction, InteractionEvent

if TYPE_CHECKING:  # pragma: no cover
    from .store import RuntimeStore

logger = logging.getLogger("novagfx.runtime")


async def default_delay(ms: float) -> None:
    await asyncio.sleep(max(float(ms), 0.0) / 1000.0)


def _print_log(message: str) -> None:
    logger.info("%s", message)


@dataclass
class ExecutionContext:
    """
    Short-lived bundle of accessors for one event.

    The store is held by reference and state is always read through it, so a
    context never carries a stale snapshot across a suspension point.
    """

    store: "RuntimeStore"
    designer: Any = None
    event: Optional[InteractionEvent] = None
    element: Optional[Mapping[str, Any]] = None
    data: Dict[str, Any] = field(default_factory=dict)
    functions: List[AppFunction] = field(default_factory=list)
    config: InteractiveConfig = field(default_factory=InteractiveConfig)
    log: Callable[[str], Any] = _print_log
    delay: Callable[[float], Awaitable[None]] = default_delay
    fetch_data: Optional[Callable[..., Awaitable[Any]]] = None
    validate_form: Optional[Callable[[str, Any], Mapping[str, Any]]] = None
    submit_form: Optional[Callable[[str, Dict[str, Any], str], Awaitable[Any]]] = None
    open_url: Optional[Callable[[str, bool], Any]] = None
    emit: Optional[Callable[[str, Any], Any]] = None
    metrics: MetricsRegistry = field(default_factory=lambda: default_metrics)

    # -- state ------------------------------------------------------------------

    @property
    def state(self) -> Mapping[str, Any]:
        return self.store.state

    @property
    def params(self) -> Dict[str, Any]:
        return self.store.navigation_params

    def get_state(self, name: str) -> Any:
        if parse_address(name) is not None:
            return resolve_address_value(name, self)
        return get_nested_value(self.store.state, name)

    def set_state(self, name: str, value: Any) -> bool:
        """Write a state variable or nested path; ``@`` targets go through the address layer."""
        if parse_address(name) is not None:
            return self.write_address(name, value)
        self.store.set_path(name, value)
        return True

    def apply_address(self, address: str, value: Any) -> None:
        """Write through an address; raises :class:`AddressError` when nothing was written."""
        parsed = require_address(address)
        if parsed.type == "state":
            self.store.set_path((parsed.name, *parsed.path), value)
            return
        if parsed.type == "element" and self.designer is not None:
            if find_named(getattr(self.designer, "elements", None), parsed.name) is None:
                key = find_named_key(self.store.state, parsed.name)
                if key is not None:
                    self.store.set_path((key, *parsed.path), value)
                    return
        apply_address_value(address, value, self.designer)

    def write_address(self, address: str, value: Any) -> bool:
        try:
            self.apply_address(address, value)
        except AddressError as exc:
            logger.warning("%s", exc.message)
            return False
        except Exception as exc:
            logger.warning("Failed to set %s: %s", address, exc)
            return False
        return True

    # -- elements ---------------------------------------------------------------

    def resolve_element_id(self, ref: Any) -> Optional[str]:
        """Accept a raw id, an element name or an ``@Name`` address."""
        if not isinstance(ref, str) or not ref:
            return None
        elements = getattr(self.designer, "elements", None) or []
        if any(isinstance(item, Mapping) and item.get("id") == ref for item in elements):
            return ref
        parsed = parse_address(ref)
        name = parsed.name if parsed is not None else ref
        element = find_named(elements, name)
        return element.get("id") if element is not None else None

    def _element(self, element_id: str) -> Optional[Mapping[str, Any]]:
        elements = getattr(self.designer, "elements", None) or []
        return next((item for item in elements if isinstance(item, Mapping) and item.get("id") == element_id), None)

    def set_element_visibility(self, ref: Any, visible: Optional[bool]) -> bool:
        """``visible=None`` toggles the current visibility."""
        element_id = self.resolve_element_id(ref)
        if element_id is None:
            logger.warning("Element not found: %r", ref)
            return False
        if visible is None:
            element = self._element(element_id) or {}
            visible = not bool(element.get("visible", True))
        self.designer.update_element(element_id, {"visible": visible})
        return True

    def set_element_property(self, ref: Any, prop: str, value: Any) -> bool:
        element_id = self.resolve_element_id(ref)
        if element_id is None:
            logger.warning("Element not found: %r", ref)
            return False
        self.designer.update_element(element_id, nested_update(split_path(prop), value))
        return True

    # -- playback ---------------------------------------------------------------

    def play_template(self, template_ref: Any, layer_id: Optional[str] = None, phase: Optional[str] = None) -> bool:
        templates = getattr(self.designer, "templates", None) or []
        template = next((t for t in templates if isinstance(t, Mapping) and t.get("id") == template_ref), None)
        if template is None and isinstance(template_ref, str):
            parsed = parse_address(template_ref)
            template = find_named(templates, parsed.name if parsed is not None else template_ref)
        if template is None:
            logger.warning("Template not found: %r", template_ref)
            return False
        layer = layer_id or template.get("layer_id") or ""
        if phase == "out":
            self.designer.play_out(layer)
        else:
            self.designer.play_in(template.get("id"), layer)
        return True

    def play_animation(self, ref: Any, phase: Optional[str] = None, animation_id: Optional[str] = None) -> bool:
        element_id = self.resolve_element_id(ref) or ref
        player = getattr(self.designer, "play_animation", None)
        if callable(player):
            player(element_id, phase=phase, animation_id=animation_id)
        return True

    def stop_animation(self, ref: Any, pause: bool = False) -> bool:
        element_id = self.resolve_element_id(ref) or ref
        stopper = getattr(self.designer, "pause_animation" if pause else "stop_animation", None)
        if callable(stopper):
            stopper(element_id)
        return True

    def play_timeline(self, template_ref: Any, phase: Optional[str] = None) -> bool:
        if template_ref is None:
            template_ref = getattr(self.designer, "current_template_id", None)
        return self.play_template(template_ref, None, phase or "in")

    # -- navigation -------------------------------------------------------------

    def navigate(self, template_id: str, params: Optional[Mapping[str, Any]] = None) -> None:
        self.store.navigate(template_id, dict(params) if params else None)

    def navigate_back(self) -> bool:
        return self.store.navigate_back()

    # -- derived contexts -------------------------------------------------------

    def for_event(self, event: Optional[InteractionEvent]) -> "ExecutionContext":
        return dataclasses.replace(self, event=event)

    def find_function(self, name: str) -> Optional[AppFunction]:
        return next((fn for fn in self.functions if fn.name == name), None)

    def script_actions(self, state_view: Optional[Dict[str, Any]] = None) -> Dict[str, Callable[..., Any]]:
        """Callables exposed to scripts as ``actions``; writes land in the store and in ``state_view``."""

        def set_state(name: str, value: Any) -> None:
            self.set_state(name, value)
            if state_view is not None and isinstance(name, str) and not name.startswith("@"):
                parts = split_path(name)
                if len(parts) == 1:
                    state_view[parts[0]] = value

        def fetch(url: str, options: Optional[Mapping[str, Any]] = None) -> Any:
            if self.fetch_data is None:
                raise RuntimeError("No data fetcher is configured")
            return self.fetch_data(url, dict(options or {}))

        return {
            "navigate": lambda template_id, params=None: self.navigate(template_id, params),
            "setState": set_state,
            "getState": self.get_state,
            "showElement": lambda ref: self.set_element_visibility(ref, True),
            "hideElement": lambda ref: self.set_element_visibility(ref, False),
            "toggleElement": lambda ref: self.set_element_visibility(ref, None),
            "playAnimation": lambda ref, phase=None: self.play_animation(ref, phase),
            "fetchData": fetch,
            "log": lambda message, *_: self.log(str(message)),
        }

    def to_script_scope(self, state: Optional[Dict[str, Any]] = None) -> ScriptScope:
        """
        Scope for user code. ``state`` defaults to a copy of the live state so
        that expressions cannot mutate the store behind its setter.
        """
        view = state if state is not None else copy.deepcopy(dict(self.store.state))
        return ScriptScope(
            state=view,
            data=self.data,
            event=self.event.to_dict() if self.event is not None else None,
            element=self.element,
            params=dict(self.store.navigation_params),
            actions=self.script_actions(view),
            config=self.config,
        )


__all__ = ["ExecutionContext", "default_delay"]
