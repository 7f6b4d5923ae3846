from __future__ import annotations

import json
from typing import Any, List

from ...errors import ActionError
from ...runtime.conditions import FIELD_ROOTS, apply_operator
from ...runtime.expressions import evaluate_expression
from ...runtime.helpers import (
    as_list,
    avg_values,
    get_nested_value,
    max_value,
    min_value,
    sort_items,
    sum_values,
)
from ..models import InteractionAction

__all__ = ["DataActionsMixin"]

AGGREGATE_OPERATIONS = ("count", "sum", "avg", "min", "max", "first", "last")


class DataActionsMixin:
    def _source_data(self, action: InteractionAction) -> Any:
        source = action.target.get("dataSource")
        if isinstance(source, str) and (source.startswith("@") or source.partition(".")[0] in FIELD_ROOTS):
            return self.resolve(source)
        return get_nested_value(self.ctx.data, source)

    def _source_items(self, action: InteractionAction) -> List[Any]:
        items = as_list(self._source_data(action))
        if items is None:
            raise ActionError(
                f"Data source {action.target.get('dataSource')!r} is not a list", action_type=action.type
            )
        return items

    def _output(self, action: InteractionAction, value: Any, *, required: bool = False) -> None:
        output_to = action.target.get("outputTo")
        if not output_to:
            if required:
                raise ActionError(f"{action.type} requires outputTo", action_type=action.type)
            return
        self._write_state(output_to, value)

    def _action_filter_data(self, action: InteractionAction) -> Any:
        items = self._source_items(action)
        rules = [
            (rule.get("field"), rule.get("operator") or "equals", self.resolve(rule.get("value")))
            for rule in action.target.get("conditions") or []
        ]
        filtered = [
            item
            for item in items
            if all(apply_operator(operator, get_nested_value(item, field), value) for field, operator, value in rules)
        ]
        self._output(action, filtered)
        return {"count": len(filtered)}

    def _action_sort_data(self, action: InteractionAction) -> Any:
        ordered = list(self._source_items(action))
        for rule in reversed(action.target.get("sortBy") or []):
            ordered = sort_items(ordered, rule.get("field"), rule.get("direction") or "asc")
        self._output(action, ordered)
        return {"count": len(ordered)}

    def _action_aggregate_data(self, action: InteractionAction) -> Any:
        items = self._source_items(action)
        operation = action.target.get("operation")
        field = action.target.get("field")
        if operation == "count":
            result: Any = len(items)
        elif operation == "sum":
            result = sum_values(items, field)
        elif operation == "avg":
            result = avg_values(items, field)
        elif operation == "min":
            result = min_value(items, field)
        elif operation == "max":
            result = max_value(items, field)
        elif operation == "first":
            result = items[0] if items else None
        elif operation == "last":
            result = items[-1] if items else None
        else:
            raise ActionError(f"Unknown aggregate operation {operation!r}", action_type=action.type)
        self._output(action, result, required=True)
        return result

    def _action_transform_data(self, action: InteractionAction) -> Any:
        expression = action.target.get("expression")
        if not expression:
            raise ActionError("transformData requires an expression", action_type=action.type)
        source = self._source_data(action)
        scope = self.ctx.to_script_scope()
        scope.data = {**self.ctx.data, "source": source}
        scope.locals = {"source": source}
        result = evaluate_expression(expression, scope, config=self.ctx.config)
        self._output(action, result)
        return result

    async def _action_fetch_data(self, action: InteractionAction) -> Any:
        target = action.target
        url = self.resolve(target.get("url"))
        if not url:
            raise ActionError("fetchData requires a url", action_type=action.type)
        try:
            if self.ctx.fetch_data is None:
                raise ActionError("No data fetcher is configured", action_type=action.type)
            options = {"method": target.get("method") or "GET", "headers": dict(target.get("headers") or {})}
            if target.get("body") is not None:
                options["body"] = json.dumps(self.resolve(target.get("body")))
            result = await self.ctx.fetch_data(str(url), options)
        except Exception as exc:
            self.ctx.log(f"Fetch error: {exc}")
            if target.get("onError"):
                await self.run(target["onError"])
            raise ActionError(f"Fetch failed for {url}: {exc}", action_type=action.type) from exc
        self._output(action, result)
        if target.get("onSuccess"):
            await self.run(target["onSuccess"])
        return result

    def _action_refresh_data(self, action: InteractionAction) -> Any:
        source = action.target.get("dataSource")
        if self.ctx.emit is not None:
            self.ctx.emit("refreshData", {"dataSource": source})
        else:
            self.ctx.log(f"Refresh data {source or ''}".rstrip())
        return source

    def _action_next_record(self, action: InteractionAction) -> Any:
        designer = self.ctx.designer
        payload = getattr(designer, "data_payload", None)
        if isinstance(payload, list) and payload:
            current = getattr(designer, "current_record_index", 0) or 0
            if action.type == "nextRecord":
                index = min(current + 1, len(payload) - 1)
            elif action.type == "previousRecord":
                index = max(current - 1, 0)
            else:
                index = self._record_index(action, len(payload))
            designer.set_current_record_index(index)
            self.ctx.data.update(_record_scope(payload, index))
            return index
        current = self.ctx.get_state("_currentRecordIndex") or 0
        if action.type == "nextRecord":
            index = current + 1
        elif action.type == "previousRecord":
            index = max(current - 1, 0)
        else:
            index = self._record_index(action, None)
        self.ctx.set_state("_currentRecordIndex", index)
        return index

    _action_previous_record = _action_next_record
    _action_go_to_record = _action_next_record

    def _record_index(self, action: InteractionAction, size: int | None) -> int:
        raw = self.resolve(action.target.get("index"))
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or int(raw) != raw:
            raise ActionError(f"goToRecord requires an integer index, got {raw!r}", action_type=action.type)
        index = int(raw)
        if index < 0 or (size is not None and index >= size):
            raise ActionError(f"Record index {index} out of range", action_type=action.type)
        return index


def _record_scope(payload: List[Any], index: int) -> dict:
    return {"current": payload[index], "index": index}
