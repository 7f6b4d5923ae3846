"""Routers for the interactive runtime API."""

from .health import build_health_router
from .interactive import build_interactive_router

__all__ = ["build_health_router", "build_interactive_router"]
