"""
Declarative action lists: ordered, typed steps run against an execution context.
"""

from .executor import ACTION_HANDLERS, ActionExecutor, execute_actions
from .models import ACTION_KINDS, ActionResult, ActionRunResult, InteractionAction

__all__ = [
    "ACTION_HANDLERS",
    "ACTION_KINDS",
    "ActionExecutor",
    "ActionResult",
    "ActionRunResult",
    "InteractionAction",
    "execute_actions",
]
