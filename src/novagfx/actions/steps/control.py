from __future__ import annotations

from typing import Any

from ...errors import ActionError
from ...runtime.conditions import evaluate_conditions
from ...runtime.expressions import LoopGuard
from ...runtime.helpers import stringify
from ..models import InteractionAction

__all__ = ["ControlActionsMixin"]

DEFAULT_LOOP_ITERATIONS = 1000


class ControlActionsMixin:
    async def _action_conditional(self, action: InteractionAction) -> Any:
        branch = "then" if evaluate_conditions(action.target.get("conditions"), self.ctx) else "else"
        actions = action.target.get(branch) or []
        if actions:
            nested = await self.run(actions)
            return {"branch": branch, "results": len(nested.results), "failures": len(nested.failures)}
        return {"branch": branch, "results": 0, "failures": 0}

    async def _action_loop(self, action: InteractionAction) -> Any:
        target = action.target
        limit = int(target.get("maxIterations") or DEFAULT_LOOP_ITERATIONS)
        if target.get("dataSource") is not None:
            items = self._source_items(action)
        elif target.get("count") is not None:
            count = int(self.resolve(target["count"]) or 0)
            items = range(max(min(count, limit), 0))
        else:
            raise ActionError("loop requires a dataSource or a count", action_type=action.type)
        item_var = target.get("itemVariable") or "item"
        index_var = target.get("indexVariable")
        guard = LoopGuard(self.ctx.config.max_loop_iterations)
        store = self.ctx.store
        iterations = 0
        try:
            for index, item in enumerate(items[:limit]):
                guard.tick()
                store.set_state(item_var, item)
                if index_var:
                    store.set_state(index_var, index)
                await self.run(target.get("actions") or [])
                iterations += 1
        finally:
            store.delete_state(item_var)
            if index_var:
                store.delete_state(index_var)
        return {"iterations": iterations}

    async def _action_wait(self, action: InteractionAction) -> Any:
        duration = self.resolve(action.target.get("duration"))
        duration = float(duration) if isinstance(duration, (int, float)) and not isinstance(duration, bool) else 0.0
        await self.ctx.delay(duration)
        return duration

    def _action_log(self, action: InteractionAction) -> Any:
        message = action.target.get("message")
        text = stringify(self.resolve(message)) if message is not None else f"Log action {action.id or ''}".rstrip()
        self.ctx.log(text)
        return text

    def _action_emit(self, action: InteractionAction) -> Any:
        name = action.target.get("event") or action.target.get("eventName")
        if not name:
            raise ActionError("emit requires an event name", action_type=action.type)
        payload = self.resolve(action.target.get("payload"))
        if self.ctx.emit is not None:
            self.ctx.emit(name, payload)
        else:
            self.ctx.log(f"Emit {name}")
        return {"event": name, "payload": payload}
