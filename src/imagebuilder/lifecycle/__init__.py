"""
Build lifecycle: validated configuration, shared state and the step pipeline.
"""

from .config import BootstrapConfig, BuildConfig, TerminalAction, TerminalActionKind
from .runner import Step, StepAction, StepRunner
from .state import BuildState, GeneratedData

__all__ = [
    "BootstrapConfig",
    "BuildConfig",
    "BuildState",
    "GeneratedData",
    "Step",
    "StepAction",
    "StepRunner",
    "TerminalAction",
    "TerminalActionKind",
]
