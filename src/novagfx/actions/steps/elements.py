from __future__ import annotations

from typing import Any

from ...errors import ActionError
from ...runtime.conditions import FIELD_ROOTS
from ..models import InteractionAction

__all__ = ["ElementActionsMixin"]


class ElementActionsMixin:
    def _element_ref(self, action: InteractionAction) -> Any:
        ref = action.target.get("elementId", action.target.get("elementName"))
        if not isinstance(ref, str) or ref.partition(".")[0] in FIELD_ROOTS:
            ref = self.resolve(ref)
        if not ref:
            raise ActionError(f"{action.type} requires an element", action_type=action.type)
        return ref

    def _action_set_element_property(self, action: InteractionAction) -> Any:
        ref = self._element_ref(action)
        prop = action.target.get("property")
        if not prop:
            raise ActionError("setElementProperty requires a property", action_type=action.type)
        value = self.resolve(action.target.get("value"))
        if not self.ctx.set_element_property(ref, prop, value):
            raise ActionError(f"Element not found: {ref}", action_type=action.type)
        return value

    def _action_show_element(self, action: InteractionAction) -> Any:
        visible = {"showElement": True, "hideElement": False}.get(action.type)
        ref = self._element_ref(action)
        if not self.ctx.set_element_visibility(ref, visible):
            raise ActionError(f"Element not found: {ref}", action_type=action.type)
        return ref

    _action_hide_element = _action_show_element
    _action_toggle_element = _action_show_element

    def _action_play_animation(self, action: InteractionAction) -> Any:
        ref = action.target.get("elementId")
        self.ctx.play_animation(ref, action.target.get("phase"), action.target.get("animationId"))
        return ref

    def _action_pause_animation(self, action: InteractionAction) -> Any:
        ref = action.target.get("elementId")
        self.ctx.stop_animation(ref, pause=action.type == "pauseAnimation")
        return ref

    _action_stop_animation = _action_pause_animation

    def _action_play_timeline(self, action: InteractionAction) -> Any:
        template = action.target.get("templateId")
        phase = action.target.get("startPhase") or action.target.get("phase")
        if not self.ctx.play_timeline(template, phase):
            raise ActionError(f"Template not found: {template}", action_type=action.type)
        return {"templateId": template, "phase": phase or "in"}
