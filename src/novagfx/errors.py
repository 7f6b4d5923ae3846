"""
Error types raised by the interactive runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class InteractiveError(Exception):
    """Base error with optional location metadata."""

    message: str
    line: Optional[int] = None
    column: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        location = ""
        if self.line is not None:
            location = f" (line {self.line}"
            if self.column is not None:
                location += f", column {self.column}"
            location += ")"
        return f"{self.message}{location}"


@dataclass
class _CodedError(InteractiveError):
    code: str = "NGX-1000"
    diagnostics: list[dict[str, Any]] | None = None

    def __post_init__(self) -> None:
        if self.diagnostics is None:
            self.diagnostics = [
                {
                    "code": self.code,
                    "message": self.message,
                    "severity": "error",
                    "line": self.line,
                    "column": self.column,
                }
            ]


@dataclass
class AddressError(_CodedError):
    """Raised when an address string cannot be parsed or applied."""

    code: str = "NGX-1101"


@dataclass
class EvaluationError(_CodedError):
    """Raised when an expression or script fails while running."""

    code: str = "NGX-1201"


@dataclass
class ScriptSyntaxError(_CodedError):
    """Raised when user code does not parse."""

    code: str = "NGX-1202"


@dataclass
class ForbiddenSyntaxError(_CodedError):
    """Raised when user code reaches outside the allowed capability set."""

    code: str = "NGX-1203"


@dataclass
class ExpressionTimeoutError(_CodedError):
    """Raised when an expression runs past its wall-clock deadline."""

    code: str = "NGX-1204"
    timeout_ms: float | None = None


@dataclass
class ScriptTimeoutError(ExpressionTimeoutError):
    """Raised when a script (sync or async) runs past its deadline."""

    code: str = "NGX-1205"


@dataclass
class LoopIterationError(EvaluationError):
    """Raised when loop iterations exceed the configured ceiling."""

    code: str = "NGX-1206"
    limit: int | None = None


@dataclass
class ActionError(_CodedError):
    """Raised by action handlers; caught at the action boundary."""

    code: str = "NGX-1301"
    action_type: str | None = None


@dataclass
class GraphError(_CodedError):
    """Raised by node handlers; caught at the node boundary."""

    code: str = "NGX-1401"
    node_id: str | None = None


__all__ = [
    "InteractiveError",
    "AddressError",
    "EvaluationError",
    "ScriptSyntaxError",
    "ForbiddenSyntaxError",
    "ExpressionTimeoutError",
    "ScriptTimeoutError",
    "LoopIterationError",
    "ActionError",
    "GraphError",
]
