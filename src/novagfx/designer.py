"""
Designer collaborator: the element/template/layer store an interactive app runs against.

In the editor this is owned by the host application. ``InMemoryDesigner`` is the
headless implementation used by the CLI, the HTTP API and tests; it records every
mutating call in ``calls``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from .address import find_named


@runtime_checkable
class DesignerState(Protocol):
    elements: List[Dict[str, Any]]
    templates: List[Dict[str, Any]]
    layers: List[Dict[str, Any]]
    data_payload: Optional[List[Any]]
    current_record_index: int
    current_template_id: Optional[str]
    data_display_field: Optional[str]
    template_data_cache: Dict[str, Dict[str, Any]]

    def update_element(self, element_id: str, patch: Mapping[str, Any]) -> None: ...

    def set_current_record_index(self, index: int) -> None: ...

    def set_template_record_index(self, template_id: str, index: int) -> None: ...

    def play_in(self, template_id: str, layer_id: str) -> None: ...

    def play_out(self, layer_id: str) -> None: ...


def deep_merge(base: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


_CACHE_KEYS = {
    "dataPayload": "data_payload",
    "currentRecordIndex": "current_record_index",
    "dataDisplayField": "data_display_field",
}


def _normalize_cache_entry(entry: Mapping[str, Any]) -> Dict[str, Any]:
    return {_CACHE_KEYS.get(key, key): value for key, value in entry.items()}


@dataclass
class InMemoryDesigner:
    elements: List[Dict[str, Any]] = field(default_factory=list)
    templates: List[Dict[str, Any]] = field(default_factory=list)
    layers: List[Dict[str, Any]] = field(default_factory=list)
    data_payload: Optional[List[Any]] = None
    current_record_index: int = 0
    current_template_id: Optional[str] = None
    data_display_field: Optional[str] = None
    template_data_cache: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    calls: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any] | None) -> "InMemoryDesigner":
        """Build from a JSON snapshot; camelCase keys from the editor are accepted."""
        raw = dict(snapshot or {})

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in raw:
                return raw[snake]
            return raw.get(camel, default)

        cache = pick("template_data_cache", "templateDataCache", {}) or {}
        return cls(
            elements=copy.deepcopy(list(raw.get("elements") or [])),
            templates=copy.deepcopy(list(raw.get("templates") or [])),
            layers=copy.deepcopy(list(raw.get("layers") or [])),
            data_payload=copy.deepcopy(pick("data_payload", "dataPayload")),
            current_record_index=int(pick("current_record_index", "currentRecordIndex", 0) or 0),
            current_template_id=pick("current_template_id", "currentTemplateId"),
            data_display_field=pick("data_display_field", "dataDisplayField"),
            template_data_cache={key: _normalize_cache_entry(value) for key, value in cache.items()},
        )

    def _record(self, name: str, **args: Any) -> None:
        self.calls.append({"call": name, **args})

    def get_element(self, element_id: str) -> Optional[Dict[str, Any]]:
        return next((item for item in self.elements if item.get("id") == element_id), None)

    def find_element(self, ref: str) -> Optional[Dict[str, Any]]:
        found = self.get_element(ref)
        if found is not None:
            return found
        named = find_named(self.elements, ref)
        return dict(named) if named is not None else None

    def update_element(self, element_id: str, patch: Mapping[str, Any]) -> None:
        self._record("update_element", element_id=element_id, patch=copy.deepcopy(dict(patch)))
        for index, element in enumerate(self.elements):
            if element.get("id") == element_id:
                self.elements[index] = deep_merge(element, patch)
                return

    def set_current_record_index(self, index: int) -> None:
        self._record("set_current_record_index", index=index)
        self.current_record_index = index

    def set_template_record_index(self, template_id: str, index: int) -> None:
        self._record("set_template_record_index", template_id=template_id, index=index)
        entry = self.template_data_cache.setdefault(template_id, {})
        entry["current_record_index"] = index

    def play_in(self, template_id: str, layer_id: str) -> None:
        self._record("play_in", template_id=template_id, layer_id=layer_id)

    def play_out(self, layer_id: str) -> None:
        self._record("play_out", layer_id=layer_id)

    def play_animation(self, element_id: str, phase: Optional[str] = None, animation_id: Optional[str] = None) -> None:
        self._record("play_animation", element_id=element_id, phase=phase, animation_id=animation_id)

    def pause_animation(self, element_id: str) -> None:
        self._record("pause_animation", element_id=element_id)

    def stop_animation(self, element_id: str) -> None:
        self._record("stop_animation", element_id=element_id)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "elements": copy.deepcopy(self.elements),
            "current_record_index": self.current_record_index,
            "template_data_cache": copy.deepcopy(self.template_data_cache),
        }


__all__ = ["DesignerState", "InMemoryDesigner", "deep_merge"]
