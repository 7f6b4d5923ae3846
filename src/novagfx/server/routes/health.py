"""Health and server log routes."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from ...version import GRAPH_SCHEMA_VERSION, __version__


def build_health_router(log_buffer, log_event) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health() -> Dict[str, str]:
        log_event(log_buffer, "health_ping", level="info")
        return {"status": "ok", "version": __version__, "graph_schema_version": GRAPH_SCHEMA_VERSION}

    @router.get("/api/logs")
    def api_logs(limit: int = 100) -> Dict[str, Any]:
        return {"logs": log_buffer.history(limit)}

    return router


__all__ = ["build_health_router"]
