from __future__ import annotations

import math
from typing import Any

from ...address import parse_address
from ...errors import ActionError
from ...runtime.helpers import to_number
from ..models import InteractionAction

__all__ = ["StateActionsMixin"]


def _tidy(number: float) -> int | float:
    return int(number) if number.is_integer() else number


class StateActionsMixin:
    def _state_name(self, action: InteractionAction) -> str:
        name = action.target.get("name") or action.target.get("key")
        if not isinstance(name, str) or not name:
            raise ActionError(f"{action.type} requires a state name", action_type=action.type)
        return name

    def _write_state(self, name: str, value: Any) -> None:
        if parse_address(name) is not None:
            self.ctx.apply_address(name, value)
        else:
            self.ctx.set_state(name, value)

    def _action_set_state(self, action: InteractionAction) -> Any:
        name = self._state_name(action)
        value = self.resolve(action.target.get("value"))
        self._write_state(name, value)
        return value

    def _action_toggle_state(self, action: InteractionAction) -> Any:
        name = self._state_name(action)
        value = not self.ctx.get_state(name)
        self._write_state(name, value)
        return value

    def _action_increment_state(self, action: InteractionAction) -> Any:
        name = self._state_name(action)
        current = self.ctx.get_state(name)
        current_number = to_number(0 if current is None else current)
        amount = self.resolve(action.target.get("amount")) if action.target.get("amount") is not None else 1
        amount_number = to_number(1 if amount is None else amount)
        if math.isnan(current_number) or math.isnan(amount_number):
            raise ActionError(f"{name} is not numeric", action_type=action.type)
        delta = amount_number if action.type == "incrementState" else -amount_number
        value = _tidy(current_number + delta)
        self._write_state(name, value)
        return value

    _action_decrement_state = _action_increment_state

    def _action_reset_state(self, action: InteractionAction) -> Any:
        name = action.target.get("name")
        if name and "defaultValue" in action.target:
            self._write_state(name, action.target.get("defaultValue"))
        else:
            self.ctx.store.reset_state(name or None)
        return name
