"""
Runtime models for interactive apps: events, handlers, app configuration and forms.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

EVENT_TYPES = (
    "click",
    "doubleClick",
    "hover",
    "hoverEnd",
    "focus",
    "blur",
    "change",
    "submit",
    "keyDown",
    "keyUp",
    "load",
    "timerTick",
    "dataChange",
    "stateChange",
    "custom",
)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class InteractionEvent:
    type: str
    element_id: Optional[str] = None
    timestamp: int = field(default_factory=_now_ms)
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "InteractionEvent":
        return cls(
            type=str(raw.get("type") or "custom"),
            element_id=raw.get("elementId", raw.get("element_id")),
            timestamp=int(raw.get("timestamp") or _now_ms()),
            data=dict(raw.get("data") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "elementId": self.element_id, "timestamp": self.timestamp, "data": dict(self.data)}


def create_interaction_event(event_type: str, element_id: Optional[str] = None, **data: Any) -> InteractionEvent:
    return InteractionEvent(type=event_type, element_id=element_id, data=data)


@dataclass
class EventHandler:
    event: str
    actions: List[Dict[str, Any]] = field(default_factory=list)
    conditions: List[Dict[str, Any]] = field(default_factory=list)
    enabled: bool = True
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "EventHandler":
        return cls(
            event=str(raw.get("event") or ""),
            actions=list(raw.get("actions") or []),
            conditions=list(raw.get("conditions") or []),
            enabled=bool(raw.get("enabled", True)),
            id=raw.get("id"),
        )


@dataclass
class StateVariable:
    name: str
    default_value: Any = None
    type: str = "any"


@dataclass
class ComputedState:
    name: str
    expression: str
    dependencies: List[str] = field(default_factory=list)


@dataclass
class FunctionParam:
    name: str
    default_value: Any = None


@dataclass
class AppFunction:
    name: str
    body: str
    params: List[FunctionParam] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AppFunction":
        params = [
            FunctionParam(name=str(p.get("name")), default_value=p.get("defaultValue", p.get("default_value")))
            if isinstance(p, Mapping)
            else FunctionParam(name=str(p))
            for p in raw.get("params") or []
        ]
        return cls(name=str(raw.get("name")), body=str(raw.get("body") or ""), params=params)


@dataclass
class TimerConfig:
    id: str
    interval_ms: float
    actions: List[Dict[str, Any]] = field(default_factory=list)
    enabled: bool = True


@dataclass
class NavigationEntry:
    template_id: str
    params: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=_now_ms)


@dataclass
class FormState:
    values: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    touched: Dict[str, bool] = field(default_factory=dict)
    is_valid: bool = True
    is_submitting: bool = False


@dataclass
class InteractiveAppConfig:
    state: List[StateVariable] = field(default_factory=list)
    computed: List[ComputedState] = field(default_factory=list)
    functions: List[AppFunction] = field(default_factory=list)
    timers: List[TimerConfig] = field(default_factory=list)
    handlers: List[EventHandler] = field(default_factory=list)
    initial_template_id: Optional[str] = None
    history_max_length: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "InteractiveAppConfig":
        navigation = raw.get("navigation") or {}
        history = navigation.get("history") or {}
        return cls(
            state=[
                StateVariable(
                    name=str(item.get("name")),
                    default_value=item.get("defaultValue", item.get("default_value")),
                    type=str(item.get("type") or "any"),
                )
                for item in raw.get("state") or []
            ],
            computed=[
                ComputedState(
                    name=str(item.get("name")),
                    expression=str(item.get("expression") or ""),
                    dependencies=list(item.get("dependencies") or []),
                )
                for item in raw.get("computed") or []
            ],
            functions=[AppFunction.from_dict(item) for item in raw.get("functions") or []],
            timers=[
                TimerConfig(
                    id=str(item.get("id")),
                    interval_ms=float(item.get("interval") or 1000),
                    actions=list(item.get("actions") or []),
                    enabled=bool(item.get("enabled", True)),
                )
                for item in raw.get("timers") or []
            ],
            handlers=[EventHandler.from_dict(item) for item in raw.get("handlers") or []],
            initial_template_id=navigation.get("initialTemplateId"),
            history_max_length=history.get("maxLength"),
        )

    def initial_state(self) -> Dict[str, Any]:
        return {variable.name: variable.default_value for variable in self.state}

    def find_function(self, name: str) -> Optional[AppFunction]:
        return next((fn for fn in self.functions if fn.name == name), None)


__all__ = [
    "EVENT_TYPES",
    "InteractionEvent",
    "create_interaction_event",
    "EventHandler",
    "StateVariable",
    "ComputedState",
    "FunctionParam",
    "AppFunction",
    "TimerConfig",
    "NavigationEntry",
    "FormState",
    "InteractiveAppConfig",
]
