"""
Action handler mixins composed into :class:`~novagfx.actions.executor.ActionExecutor`.
"""

from .control import ControlActionsMixin
from .data import DataActionsMixin
from .elements import ElementActionsMixin
from .forms import FormActionsMixin
from .navigation import NavigationActionsMixin
from .scripts import ScriptActionsMixin
from .state import StateActionsMixin

__all__ = [
    "ControlActionsMixin",
    "DataActionsMixin",
    "ElementActionsMixin",
    "FormActionsMixin",
    "NavigationActionsMixin",
    "ScriptActionsMixin",
    "StateActionsMixin",
]
