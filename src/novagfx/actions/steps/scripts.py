from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional

from ...errors import ActionError, LoopIterationError, ScriptTimeoutError
from ...observability.logging_utils import preview_code
from ...runtime.expressions import execute_script_async
from ..models import InteractionAction

__all__ = ["ScriptActionsMixin"]

_MISSING = object()


class ScriptActionsMixin:
    async def _run_user_code(self, code: str, label: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Run ``code`` on a copy of the state and commit the keys it changed.

        ``actions.setState`` calls made by the script write through immediately.
        """
        before = self.ctx.store.state_snapshot()
        view: Dict[str, Any] = copy.deepcopy(before)
        scope = self.ctx.to_script_scope(view)
        if params:
            scope.locals = dict(params)
        try:
            result = await execute_script_async(code, scope, config=self.ctx.config)
        except ScriptTimeoutError:
            self.ctx.metrics.record_timeout("script")
            self.ctx.log(f"{label} timeout: {preview_code(code)}")
            raise
        except LoopIterationError:
            self.ctx.metrics.record_timeout("loop")
            self.ctx.log(f"{label} infinite loop detected: {preview_code(code)}")
            raise
        self._commit_view(before, view)
        return result

    def _commit_view(self, before: Mapping[str, Any], view: Mapping[str, Any]) -> None:
        store = self.ctx.store
        for key, value in view.items():
            if before.get(key, _MISSING) != value:
                store.set_state(key, value)
        for key in before:
            if key not in view:
                store.delete_state(key)

    async def _action_run_script(self, action: InteractionAction) -> Any:
        code = action.target.get("code")
        if not isinstance(code, str) or not code.strip():
            raise ActionError("runScript requires code", action_type=action.type)
        return await self._run_user_code(code, "Script")

    async def _action_call_function(self, action: InteractionAction) -> Any:
        name = action.target.get("name") or action.target.get("functionName")
        fn = self.ctx.find_function(name) if name else None
        if fn is None:
            self.ctx.log(f"Function not found: {name}")
            raise ActionError(f"Function not found: {name}", action_type=action.type)
        args = [self.resolve(arg) for arg in action.target.get("args") or []]
        params = {
            param.name: args[index] if index < len(args) and args[index] is not None else param.default_value
            for index, param in enumerate(fn.params)
        }
        result = await self._run_user_code(fn.body, f"Function {name}", params)
        if action.target.get("outputTo"):
            self._write_state(action.target["outputTo"], result)
        return result
