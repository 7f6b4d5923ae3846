"""
Action executor: runs a declarative action list strictly in order.

Each action kind maps to one ``_action_*`` handler on a mixin. A failing action
is logged and recorded in the run result, and execution continues with the
next action.
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Iterable, Optional

from ..errors import InteractiveError
from ..runtime.conditions import evaluate_conditions, resolve_value
from ..runtime.context import ExecutionContext
from ..runtime.models import InteractionEvent
from .models import ACTION_KINDS, ActionResult, ActionRunResult, InteractionAction
from .steps import (
    ControlActionsMixin,
    DataActionsMixin,
    ElementActionsMixin,
    FormActionsMixin,
    NavigationActionsMixin,
    ScriptActionsMixin,
    StateActionsMixin,
)

logger = logging.getLogger("novagfx.actions")

ACTION_HANDLERS = {
    "navigate": "_action_navigate",
    "navigateBack": "_action_navigate_back",
    "openUrl": "_action_open_url",
    "setState": "_action_set_state",
    "toggleState": "_action_toggle_state",
    "incrementState": "_action_increment_state",
    "decrementState": "_action_decrement_state",
    "resetState": "_action_reset_state",
    "filterData": "_action_filter_data",
    "sortData": "_action_sort_data",
    "aggregateData": "_action_aggregate_data",
    "transformData": "_action_transform_data",
    "fetchData": "_action_fetch_data",
    "refreshData": "_action_refresh_data",
    "nextRecord": "_action_next_record",
    "previousRecord": "_action_previous_record",
    "goToRecord": "_action_go_to_record",
    "setElementProperty": "_action_set_element_property",
    "showElement": "_action_show_element",
    "hideElement": "_action_hide_element",
    "toggleElement": "_action_toggle_element",
    "playAnimation": "_action_play_animation",
    "pauseAnimation": "_action_pause_animation",
    "stopAnimation": "_action_stop_animation",
    "playTimeline": "_action_play_timeline",
    "validateForm": "_action_validate_form",
    "submitForm": "_action_submit_form",
    "resetForm": "_action_reset_form",
    "runScript": "_action_run_script",
    "callFunction": "_action_call_function",
    "conditional": "_action_conditional",
    "loop": "_action_loop",
    "wait": "_action_wait",
    "log": "_action_log",
    "emit": "_action_emit",
}


class ActionExecutor(
    NavigationActionsMixin,
    StateActionsMixin,
    DataActionsMixin,
    ElementActionsMixin,
    FormActionsMixin,
    ScriptActionsMixin,
    ControlActionsMixin,
):
    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    def resolve(self, value: Any) -> Any:
        return resolve_value(value, self.ctx)

    async def run(self, actions: Iterable[Any] | None) -> ActionRunResult:
        run = ActionRunResult()
        started = time.monotonic()
        for index, raw in enumerate(actions or ()):
            try:
                action = InteractionAction.coerce(raw)
            except TypeError as exc:
                logger.warning("Skipping malformed action at %d: %s", index, exc)
                run.results.append(ActionResult(index=index, type="", success=False, error_message=str(exc)))
                continue
            if not action.enabled:
                run.results.append(ActionResult(index=index, type=action.type, success=True, skipped=True))
                continue
            if action.conditions and not evaluate_conditions(action.conditions, self.ctx):
                run.results.append(ActionResult(index=index, type=action.type, success=True, skipped=True))
                continue
            if action.delay > 0:
                await self.ctx.delay(action.delay)
            run.results.append(await self.execute_one(index, action))
        run.total_duration_seconds = time.monotonic() - started
        return run

    async def execute_one(self, index: int, action: InteractionAction) -> ActionResult:
        handler_name = ACTION_HANDLERS.get(action.type)
        if handler_name is None:
            logger.warning("Unknown action type: %s", action.type)
            self.ctx.log(f"Unknown action type: {action.type}")
            return ActionResult(index=index, type=action.type, success=False, error_message="Unknown action type")
        started = time.monotonic()
        result = ActionResult(index=index, type=action.type, success=True)
        try:
            output = getattr(self, handler_name)(action)
            if inspect.isawaitable(output):
                output = await output
            result.output = output
        except Exception as exc:
            result.success = False
            result.error_message = str(exc)
            result.error_code = getattr(exc, "code", None) if isinstance(exc, InteractiveError) else None
            logger.warning("Action %s (#%d) failed: %s", action.type, index, exc)
            self.ctx.log(f"Action {action.type} failed: {exc}")
        finally:
            result.duration_seconds = time.monotonic() - started
            self.ctx.metrics.record_action(action.type, result.duration_seconds, ok=result.success)
        return result


def _check_exhaustive() -> None:
    missing = [kind for kind in ACTION_KINDS if not hasattr(ActionExecutor, ACTION_HANDLERS.get(kind, "-"))]
    extra = sorted(set(ACTION_HANDLERS) - set(ACTION_KINDS))
    if missing or extra:
        raise RuntimeError(f"Action handler table out of sync (missing={missing}, unknown={extra})")


_check_exhaustive()


async def execute_actions(
    actions: Iterable[Any] | None,
    event: Optional[InteractionEvent],
    ctx: ExecutionContext,
) -> ActionRunResult:
    """Run ``actions`` for ``event``; never raises for failures inside individual actions."""
    if event is not None and ctx.event is not event:
        ctx = ctx.for_event(event)
    return await ActionExecutor(ctx).run(actions)


__all__ = ["ACTION_HANDLERS", "ActionExecutor", "execute_actions"]
