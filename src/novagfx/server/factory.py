"""Application factory that builds the FastAPI app with all wiring."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from ..config import InteractiveConfig, load_config
from ..observability.logs import LogBuffer, log_event
from ..observability.metrics import MetricsRegistry, default_metrics
from ..version import __version__
from .routes import build_health_router, build_interactive_router

logger = logging.getLogger("novagfx.server")


def create_app(
    config: InteractiveConfig | None = None,
    metrics: MetricsRegistry | None = None,
    log_buffer: LogBuffer | None = None,
) -> FastAPI:
    """Create the FastAPI app."""

    config = config or load_config()
    metrics = metrics or default_metrics
    log_buffer = log_buffer or LogBuffer(max_events=config.log_buffer_size, redact=config.log_redact)
    app = FastAPI(title="Nova GFX Interactive Runtime", version=__version__)
    app.state.config = config
    app.state.metrics = metrics
    app.state.logs = log_buffer

    app.include_router(build_health_router(log_buffer, log_event))
    app.include_router(build_interactive_router(config, metrics, log_buffer, log_event))
    logger.debug("Interactive server ready (match mode %s)", config.graph_match_mode)
    return app


__all__ = ["create_app"]
