"""
Runtime configuration for the interactive engine, loaded from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

GRAPH_MATCH_MODES = ("sequential", "concurrent")


@dataclass
class InteractiveConfig:
    expression_timeout_ms: float = 1000.0
    script_timeout_ms: float = 5000.0
    max_loop_iterations: int = 10000
    max_call_depth: int = 100
    graph_match_mode: str = "sequential"
    navigation_history_limit: int = 50
    event_history_limit: int = 100
    log_buffer_size: int = 300
    log_redact: bool = True


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    val = environ.get(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def load_config(env: Optional[Mapping[str, str]] = None) -> InteractiveConfig:
    environ = env if env is not None else os.environ
    match_mode = (environ.get("NOVAGFX_GRAPH_MATCH_MODE") or "sequential").strip().lower()
    if match_mode not in GRAPH_MATCH_MODES:
        match_mode = "sequential"
    return InteractiveConfig(
        expression_timeout_ms=max(_env_float(environ, "NOVAGFX_EXPRESSION_TIMEOUT_MS", 1000.0), 0.0),
        script_timeout_ms=max(_env_float(environ, "NOVAGFX_SCRIPT_TIMEOUT_MS", 5000.0), 0.0),
        max_loop_iterations=max(_env_int(environ, "NOVAGFX_MAX_LOOP_ITERATIONS", 10000), 1),
        max_call_depth=max(_env_int(environ, "NOVAGFX_MAX_CALL_DEPTH", 100), 1),
        graph_match_mode=match_mode,
        navigation_history_limit=max(_env_int(environ, "NOVAGFX_NAVIGATION_HISTORY_LIMIT", 50), 1),
        event_history_limit=max(_env_int(environ, "NOVAGFX_EVENT_HISTORY_LIMIT", 100), 1),
        log_buffer_size=max(_env_int(environ, "NOVAGFX_LOG_BUFFER_SIZE", 300), 1),
        log_redact=_env_bool(environ, "NOVAGFX_LOG_REDACT", True),
    )


__all__ = ["InteractiveConfig", "load_config", "GRAPH_MATCH_MODES"]
