"""Pydantic schemas used by the FastAPI server."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ValidateRequest(BaseModel):
    code: str
    mode: Literal["eval", "exec"] = "eval"


class ValidateResponse(BaseModel):
    valid: bool
    diagnostics: List[Dict[str, Any]] = Field(default_factory=list)


class EvaluateRequest(BaseModel):
    code: str
    mode: Literal["expression", "script"] = "expression"
    state: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)
    event: Optional[Dict[str, Any]] = None
    element: Optional[Dict[str, Any]] = None


class SessionRequest(BaseModel):
    """Common run inputs: app config, state overrides and a designer snapshot."""

    app: Dict[str, Any] = Field(default_factory=dict)
    state: Dict[str, Any] = Field(default_factory=dict)
    designer: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None


class ExecuteActionsRequest(SessionRequest):
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    event: Optional[Dict[str, Any]] = None


class DispatchEventRequest(SessionRequest):
    event: Dict[str, Any]


class DispatchGraphRequest(SessionRequest):
    event_type: str = "click"
    element_id: Optional[str] = None
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    event_data: Optional[Dict[str, Any]] = None
    match_mode: Optional[Literal["sequential", "concurrent"]] = None


class RunResponse(BaseModel):
    result: Any = None
    state: Dict[str, Any] = Field(default_factory=dict)
    navigation: Dict[str, Any] = Field(default_factory=dict)
    forms: Dict[str, Any] = Field(default_factory=dict)
    designer: Dict[str, Any] = Field(default_factory=dict)
    calls: List[Dict[str, Any]] = Field(default_factory=list)
    logs: List[Dict[str, Any]] = Field(default_factory=list)


__all__ = [
    "DispatchEventRequest",
    "DispatchGraphRequest",
    "EvaluateRequest",
    "ExecuteActionsRequest",
    "RunResponse",
    "SessionRequest",
    "ValidateRequest",
    "ValidateResponse",
]
