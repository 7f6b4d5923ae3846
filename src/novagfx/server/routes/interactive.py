"""Interactive runtime routes: validation, evaluation, action lists and node graphs."""

from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from fastapi.concurrency import run_in_threadpool

from ...errors import InteractiveError
from ...observability.logging_utils import redact_event
from ...runtime.expressions import ScriptScope, collect_diagnostics, evaluate_expression, execute_script
from ...sessions import dispatch_event_document, json_safe, run_actions_document, run_graph_document
from ..schemas import (
    DispatchEventRequest,
    DispatchGraphRequest,
    EvaluateRequest,
    ExecuteActionsRequest,
    RunResponse,
    ValidateRequest,
    ValidateResponse,
)


def _error_detail(exc: InteractiveError) -> Dict[str, Any]:
    return {
        "message": exc.message,
        "code": getattr(exc, "code", None),
        "diagnostics": list(getattr(exc, "diagnostics", None) or []),
    }


def build_interactive_router(config, metrics, log_buffer, log_event) -> APIRouter:
    router = APIRouter(prefix="/api/interactive")

    @router.post("/validate", response_model=ValidateResponse)
    def api_validate(payload: ValidateRequest) -> Dict[str, Any]:
        diagnostics = collect_diagnostics(payload.code, payload.mode)
        log_event(log_buffer, "code_validated", level="info", mode=payload.mode, valid=not diagnostics)
        return {"valid": not diagnostics, "diagnostics": diagnostics}

    @router.post("/evaluate")
    async def api_evaluate(payload: EvaluateRequest) -> Dict[str, Any]:
        scope = ScriptScope(
            state=dict(payload.state),
            data=dict(payload.data),
            event=payload.event,
            element=payload.element,
            params=dict(payload.params),
            config=config,
        )
        started = time.monotonic()
        try:
            # The scope carries no-op actions, so a script leaves nothing to await.
            run = execute_script if payload.mode == "script" else evaluate_expression
            value = await run_in_threadpool(run, payload.code, scope, config=config)
        except InteractiveError as exc:
            log_event(log_buffer, "evaluation_failed", level="warning", mode=payload.mode, message=exc.message)
            raise HTTPException(status_code=422, detail=_error_detail(exc)) from exc
        return {
            "result": json_safe(value),
            "state": json_safe(scope.state),
            "duration_seconds": time.monotonic() - started,
        }

    @router.post("/actions/execute", response_model=RunResponse)
    async def api_execute_actions(payload: ExecuteActionsRequest) -> Dict[str, Any]:
        response = await run_actions_document(payload.model_dump(), config=config, metrics=metrics)
        log_event(
            log_buffer,
            "actions_executed",
            level="info",
            count=len(payload.actions),
            ok=response["result"]["ok"],
        )
        return response

    @router.post("/events/dispatch", response_model=RunResponse)
    async def api_dispatch_event(payload: DispatchEventRequest) -> Dict[str, Any]:
        response = await dispatch_event_document(payload.model_dump(), config=config, metrics=metrics)
        log_event(
            log_buffer,
            "event_dispatched",
            level="info",
            payload=redact_event(payload.event, config.log_redact),
            runs=len(response["result"]),
        )
        return response

    @router.post("/graph/dispatch", response_model=RunResponse)
    async def api_dispatch_graph(payload: DispatchGraphRequest) -> Dict[str, Any]:
        response = await run_graph_document(payload.model_dump(), config=config, metrics=metrics)
        log_event(
            log_buffer,
            "graph_dispatched",
            level="info",
            event_type=payload.event_type,
            matched=len(response["result"]["matched"]),
            errors=len(response["result"]["errors"]),
        )
        return response

    @router.get("/metrics")
    def api_metrics() -> Dict[str, Any]:
        return {"metrics": metrics.snapshot()}

    return router


__all__ = ["build_interactive_router"]
