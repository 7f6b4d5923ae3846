"""
Interactive runtime store: the single owner of state, navigation, forms and timers for one session.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from types import MappingProxyType
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..config import InteractiveConfig
from ..errors import InteractiveError
from ..observability.logs import LogBuffer
from ..observability.metrics import MetricsRegistry, default_metrics
from .context import ExecutionContext
from .expressions import evaluate_expression
from .helpers import set_nested_value, split_path
from .models import (
    EventHandler,
    FormState,
    InteractionEvent,
    InteractiveAppConfig,
    NavigationEntry,
)

logger = logging.getLogger("novagfx.store")

StateListener = Callable[[str, Any, Any], None]


class RuntimeStore:
    """
    Process-wide container for one interactive session.

    Every state mutation goes through :meth:`set_state`. The state mapping is
    replaced rather than mutated, and listener notifications are queued so a
    listener that writes state (re-entrantly) is delivered after the current
    notification completes.
    """

    def __init__(
        self,
        config: InteractiveConfig | None = None,
        *,
        log_buffer: LogBuffer | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.config = config or InteractiveConfig()
        self.logs = log_buffer or LogBuffer(max_events=self.config.log_buffer_size, redact=self.config.log_redact)
        self.metrics = metrics or default_metrics
        self.app: Optional[InteractiveAppConfig] = None
        self.interactive_mode = False
        self._active_dispatches = 0
        self.event_history: Deque[InteractionEvent] = deque(maxlen=self.config.event_history_limit)
        self.event_queue: List[InteractionEvent] = []
        self._processing_queue = False
        self._listeners: List[StateListener] = []
        self._notifications: Deque[Tuple[str, Any, Any]] = deque()
        self._notifying = False
        self._timers: Dict[str, "asyncio.Task[None]"] = {}
        self._reset_runtime()

    def _reset_runtime(self, state: Optional[Dict[str, Any]] = None, history: Optional[List[NavigationEntry]] = None) -> None:
        self._state: Dict[str, Any] = dict(state or {})
        self._computed_cache: Dict[str, Any] = {}
        self.navigation_history: List[NavigationEntry] = list(history or [])
        self.navigation_params: Dict[str, Any] = {}
        self.forms: Dict[str, FormState] = {}
        self.event_queue = []

    # -- lifecycle ----------------------------------------------------------------

    def initialize_app(self, app: InteractiveAppConfig | Mapping[str, Any]) -> None:
        if not isinstance(app, InteractiveAppConfig):
            app = InteractiveAppConfig.from_dict(app)
        self.app = app
        history = [NavigationEntry(template_id=app.initial_template_id)] if app.initial_template_id else []
        self._reset_runtime(app.initial_state(), history)
        logger.debug("Initialized app with %d state variable(s)", len(app.state))

    def reset_app(self) -> None:
        self.stop_all_timers()
        if self.app is not None:
            self.initialize_app(self.app)
        else:
            self._reset_runtime()

    @property
    def is_processing_event(self) -> bool:
        """True while at least one ``dispatch_event`` call is still running."""
        return self._active_dispatches > 0

    def enable_interactive_mode(self) -> None:
        self.interactive_mode = True

    def disable_interactive_mode(self) -> None:
        self.stop_all_timers()
        self.interactive_mode = False

    # -- state --------------------------------------------------------------------

    @property
    def state(self) -> Mapping[str, Any]:
        return MappingProxyType(self._state)

    def state_snapshot(self) -> Dict[str, Any]:
        return dict(self._state)

    def get_state(self, name: str, default: Any = None) -> Any:
        return self._state.get(name, default)

    def set_state(self, name: str, value: Any) -> None:
        previous = self._state.get(name)
        self._state = {**self._state, name: value}
        self._invalidate_dependents(name)
        self._notify(name, value, previous)

    def set_path(self, path: str | Sequence[Any], value: Any) -> None:
        parts = split_path(path)
        if not parts:
            raise InteractiveError("State path must not be empty")
        head, rest = parts[0], parts[1:]
        if not rest:
            self.set_state(head, value)
            return
        self.set_state(head, set_nested_value(self._state.get(head), rest, value))

    def delete_state(self, name: str) -> None:
        if name not in self._state:
            return
        previous = self._state[name]
        self._state = {key: value for key, value in self._state.items() if key != name}
        self._invalidate_dependents(name)
        self._notify(name, None, previous)

    def reset_state(self, name: str | None = None) -> None:
        if self.app is None:
            return
        if name is not None:
            variable = next((v for v in self.app.state if v.name == name), None)
            if variable is not None:
                self.set_state(name, variable.default_value)
            return
        previous = self._state
        self._state = self.app.initial_state()
        self._computed_cache = {}
        for key in set(previous) | set(self._state):
            if previous.get(key) != self._state.get(key):
                self._notify(key, self._state.get(key), previous.get(key))

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener(name, value, previous)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, name: str, value: Any, previous: Any) -> None:
        self._notifications.append((name, value, previous))
        if self._notifying:
            return
        self._notifying = True
        try:
            while self._notifications:
                item = self._notifications.popleft()
                for listener in list(self._listeners):
                    try:
                        listener(*item)
                    except Exception as exc:
                        logger.warning("State listener failed for %s: %s", item[0], exc)
        finally:
            self._notifying = False

    # -- computed state -------------------------------------------------------------

    def _invalidate_dependents(self, name: str) -> None:
        if self.app is None:
            return
        for computed in self.app.computed:
            if name in computed.dependencies:
                self._computed_cache.pop(computed.name, None)

    def invalidate_computed(self, name: str) -> None:
        self._computed_cache.pop(name, None)

    def get_computed(self, name: str) -> Any:
        if self.app is None:
            return None
        if name in self._computed_cache:
            return self._computed_cache[name]
        computed = next((c for c in self.app.computed if c.name == name), None)
        if computed is None:
            return None
        scope = {"state": dict(self._state), "data": {}, "params": dict(self.navigation_params)}
        try:
            value = evaluate_expression(computed.expression, scope, config=self.config)
        except InteractiveError as exc:
            logger.warning("Computed state %s failed: %s", name, exc)
            return None
        self._computed_cache[name] = value
        return value

    # -- navigation -----------------------------------------------------------------

    @property
    def current_template_id(self) -> Optional[str]:
        return self.navigation_history[-1].template_id if self.navigation_history else None

    def _history_limit(self) -> int:
        if self.app is not None and self.app.history_max_length:
            return max(int(self.app.history_max_length), 1)
        return self.config.navigation_history_limit

    def navigate(self, template_id: str, params: Optional[Dict[str, Any]] = None) -> None:
        limit = self._history_limit()
        history = self.navigation_history[-(limit - 1):] if limit > 1 else []
        history.append(NavigationEntry(template_id=template_id, params=dict(params or {})))
        self.navigation_history = history
        self.navigation_params = dict(params or {})

    def navigate_back(self) -> bool:
        if len(self.navigation_history) <= 1:
            return False
        self.navigation_history = self.navigation_history[:-1]
        self.navigation_params = dict(self.navigation_history[-1].params)
        return True

    # -- forms ------------------------------------------------------------------------

    def ensure_form(self, form_id: str) -> FormState:
        return self.forms.setdefault(form_id, FormState())

    def set_form_value(self, form_id: str, field: str, value: Any) -> None:
        form = self.ensure_form(form_id)
        form.values = {**form.values, field: value}
        form.touched = {**form.touched, field: True}

    def set_form_error(self, form_id: str, field: str, error: str) -> None:
        form = self.forms.get(form_id)
        if form is None:
            return
        form.errors = {**form.errors, field: error}
        form.is_valid = False

    def clear_form_error(self, form_id: str, field: str) -> None:
        form = self.forms.get(form_id)
        if form is None:
            return
        form.errors = {key: value for key, value in form.errors.items() if key != field}
        form.is_valid = not form.errors

    def reset_form(self, form_id: str) -> None:
        self.forms[form_id] = FormState()

    def get_form_state(self, form_id: str) -> Optional[FormState]:
        return self.forms.get(form_id)

    # -- contexts and dispatch ------------------------------------------------------

    def create_context(
        self,
        designer: Any = None,
        event: Optional[InteractionEvent] = None,
        *,
        element: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        **collaborators: Any,
    ) -> ExecutionContext:
        if element is None and event is not None and event.element_id and designer is not None:
            element = next(
                (item for item in getattr(designer, "elements", None) or [] if item.get("id") == event.element_id),
                None,
            )
        return ExecutionContext(
            store=self,
            designer=designer,
            event=event,
            element=element,
            data={**designer_data(designer), **dict(data or {})},
            functions=list(self.app.functions) if self.app is not None else [],
            config=self.config,
            log=self.logs,
            metrics=self.metrics,
            **collaborators,
        )

    def _record_event(self, event: InteractionEvent) -> None:
        self.event_history.append(event)

    async def dispatch_event(
        self,
        event: InteractionEvent,
        handlers: Iterable[EventHandler | Mapping[str, Any]] | None = None,
        designer: Any = None,
        **collaborators: Any,
    ) -> list:
        """
        Run the declarative handlers bound to ``event``.

        Inactive sessions (interactive mode off or no app) ignore events.
        """
        from ..actions.executor import execute_actions
        from .conditions import evaluate_conditions

        if not self.interactive_mode or self.app is None:
            logger.debug("Ignoring %s event: interactive mode is off", event.type)
            return []
        candidates = self.app.handlers if handlers is None else handlers
        matching = [
            handler
            for handler in (h if isinstance(h, EventHandler) else EventHandler.from_dict(h) for h in candidates)
            if handler.event == event.type and handler.enabled
        ]
        ctx = self.create_context(designer, event, **collaborators)
        results = []
        self._active_dispatches += 1
        try:
            for handler in matching:
                if handler.conditions and not evaluate_conditions(handler.conditions, ctx):
                    continue
                results.append(await execute_actions(handler.actions, event, ctx))
        finally:
            self._active_dispatches -= 1
            self._record_event(event)
        return results

    async def dispatch_graph(
        self,
        event_type: str,
        element_id: Optional[str],
        nodes: Sequence[Any],
        edges: Sequence[Any],
        designer: Any = None,
        *,
        data: Optional[Mapping[str, Any]] = None,
        event_data: Optional[Mapping[str, Any]] = None,
        match_mode: Optional[str] = None,
        **collaborators: Any,
    ):
        from ..graph.runtime import execute_node_graph

        event = InteractionEvent(type=event_type, element_id=element_id, data=dict(event_data or {}))
        ctx = self.create_context(designer, event, data=data, **collaborators)
        try:
            return await execute_node_graph(event_type, element_id, nodes, edges, ctx, match_mode=match_mode)
        finally:
            self._record_event(event)

    def queue_event(self, event: InteractionEvent) -> None:
        self.event_queue = [*self.event_queue, event]

    async def process_event_queue(
        self,
        handlers: Callable[[InteractionEvent], Iterable[Any]] | Iterable[Any] | None = None,
        designer: Any = None,
    ) -> int:
        """Dispatch queued events in order; returns how many were processed."""
        if self._processing_queue or not self.event_queue:
            return 0
        self._processing_queue = True
        queue, self.event_queue = self.event_queue, []
        try:
            for event in queue:
                bound = handlers(event) if callable(handlers) else handlers
                await self.dispatch_event(event, bound, designer)
        finally:
            self._processing_queue = False
        return len(queue)

    # -- timers -------------------------------------------------------------------------

    @property
    def active_timers(self) -> List[str]:
        return [timer_id for timer_id, task in self._timers.items() if not task.done()]

    def start_timer(self, timer_id: str, designer: Any = None) -> bool:
        """Start an interval timer on the running event loop; returns ``False`` when unknown or disabled."""
        if self.app is None:
            return False
        timer = next((t for t in self.app.timers if t.id == timer_id), None)
        if timer is None or not timer.enabled:
            return False
        self.stop_timer(timer_id)
        loop = asyncio.get_running_loop()
        self._timers[timer_id] = loop.create_task(self._run_timer(timer.id, timer.interval_ms, timer.actions, designer))
        return True

    async def _run_timer(self, timer_id: str, interval_ms: float, actions: list, designer: Any) -> None:
        from ..actions.executor import execute_actions

        while True:
            await asyncio.sleep(max(interval_ms, 1.0) / 1000.0)
            event = InteractionEvent(type="timerTick", element_id=timer_id, data={"timerId": timer_id})
            ctx = self.create_context(designer, event)
            await execute_actions(actions, event, ctx)

    def stop_timer(self, timer_id: str) -> None:
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done():
            task.cancel()

    def stop_all_timers(self) -> None:
        for timer_id in list(self._timers):
            self.stop_timer(timer_id)

    # -- inspection -----------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": dict(self._state),
            "navigation": {
                "current": self.current_template_id,
                "params": dict(self.navigation_params),
                "history": [entry.template_id for entry in self.navigation_history],
            },
            "forms": {
                form_id: {
                    "values": dict(form.values),
                    "errors": dict(form.errors),
                    "touched": dict(form.touched),
                    "is_valid": form.is_valid,
                    "is_submitting": form.is_submitting,
                }
                for form_id, form in self.forms.items()
            },
            "event_history": [event.type for event in self.event_history],
            "timestamp": int(time.time() * 1000),
        }


def designer_data(designer: Any) -> Dict[str, Any]:
    """Data scope derived from the designer's bound payload: ``records``, ``current`` and ``index``."""
    payload = getattr(designer, "data_payload", None)
    if not isinstance(payload, list):
        return {}
    index = getattr(designer, "current_record_index", 0) or 0
    current = payload[index] if isinstance(index, int) and 0 <= index < len(payload) else None
    return {"records": payload, "current": current, "index": index}


__all__ = ["RuntimeStore", "StateListener", "designer_data"]
