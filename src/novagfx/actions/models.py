"""
Action runtime models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

ACTION_KINDS = (
    # navigation
    "navigate",
    "navigateBack",
    "openUrl",
    # state
    "setState",
    "toggleState",
    "incrementState",
    "decrementState",
    "resetState",
    # data
    "filterData",
    "sortData",
    "aggregateData",
    "transformData",
    "fetchData",
    "refreshData",
    "nextRecord",
    "previousRecord",
    "goToRecord",
    # elements
    "setElementProperty",
    "showElement",
    "hideElement",
    "toggleElement",
    # animation
    "playAnimation",
    "pauseAnimation",
    "stopAnimation",
    "playTimeline",
    # forms
    "validateForm",
    "submitForm",
    "resetForm",
    # scripts
    "runScript",
    "callFunction",
    # control flow
    "conditional",
    "loop",
    "wait",
    "log",
    "emit",
)

_ENVELOPE_KEYS = {"id", "type", "target", "enabled", "conditions", "delay"}


@dataclass
class InteractionAction:
    type: str
    target: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    conditions: List[Dict[str, Any]] = field(default_factory=list)
    delay: float = 0.0
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "InteractionAction":
        """Parameters live under ``target``; flat keys next to ``type`` are accepted too."""
        target = dict(raw.get("target") or {})
        for key, value in raw.items():
            if key not in _ENVELOPE_KEYS:
                target.setdefault(key, value)
        return cls(
            type=str(raw.get("type") or ""),
            target=target,
            enabled=bool(raw.get("enabled", True)),
            conditions=list(raw.get("conditions") or []),
            delay=float(raw.get("delay") or 0),
            id=raw.get("id"),
        )

    @classmethod
    def coerce(cls, value: Any) -> "InteractionAction":
        if isinstance(value, InteractionAction):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise TypeError(f"Cannot build an action from {type(value).__name__}")


@dataclass
class ActionResult:
    index: int
    type: str
    success: bool
    skipped: bool = False
    output: Any | None = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "type": self.type,
            "success": self.success,
            "skipped": self.skipped,
            "output": self.output,
            "error": self.error_message,
            "code": self.error_code,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class ActionRunResult:
    results: List[ActionResult] = field(default_factory=list)
    total_duration_seconds: float = 0.0

    @property
    def failures(self) -> List[ActionResult]:
        return [result for result in self.results if not result.success and not result.skipped]

    @property
    def executed(self) -> List[ActionResult]:
        return [result for result in self.results if not result.skipped]

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "results": [result.to_dict() for result in self.results],
            "total_duration_seconds": self.total_duration_seconds,
        }
