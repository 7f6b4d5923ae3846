"""
Nova GFX interactive apps runtime.
"""

from .version import __version__, GRAPH_SCHEMA_VERSION  # noqa: F401

__all__ = [
    "address",
    "designer",
    "errors",
    "config",
    "runtime",
    "actions",
    "graph",
    "observability",
    "sessions",
    "server",
    "cli",
    "__version__",
    "GRAPH_SCHEMA_VERSION",
]
