"""
Sequential step runner.

Steps run strictly one after another against a shared :class:`BuildState`.
The first step that fails (or asks to halt) stops the pipeline, and every
step that started is cleaned up in reverse order, the failing one included.
"""

import abc
import logging
from enum import Enum
from typing import List, Optional, Sequence

from rich.console import Console

from ..ui import status
from .state import BuildState

logger = logging.getLogger(__name__)


class StepAction(str, Enum):
    CONTINUE = "continue"
    HALT = "halt"


class Step(abc.ABC):
    """
    One lifecycle operation.

    ``run`` may raise: the runner records the exception in ``state.error``
    and halts. ``cleanup`` runs for every step whose ``run`` was entered and
    must not raise for expected failures; it should log them instead.
    """

    #: Short label shown in progress output.
    description: str = ""

    @abc.abstractmethod
    def run(self, state: BuildState) -> StepAction:
        pass

    def cleanup(self, state: BuildState) -> None:
        pass

    @property
    def name(self) -> str:
        return self.description or type(self).__name__


class StepRunner:
    """Run steps in order with cooperative cancellation."""

    def __init__(self, steps: Sequence[Step], console: Optional[Console] = None):
        self.steps = list(steps)
        self.console = console
        self._state: Optional[BuildState] = None

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next step starts."""
        if self._state is not None:
            self._state.cancel_event.set()

    def run(self, state: BuildState) -> BuildState:
        self._state = state
        started: List[Step] = []
        try:
            for step in self.steps:
                if state.cancel_event.is_set():
                    logger.info("Build cancelled before step: %s", step.name)
                    state.cancelled = True
                    break

                started.append(step)
                logger.debug("Running step: %s", step.name)
                try:
                    with status(self.console, step.name):
                        action = step.run(state)
                except KeyboardInterrupt:
                    logger.warning("Interrupted during step: %s", step.name)
                    state.cancel_event.set()
                    state.cancelled = True
                    break
                except Exception as exc:
                    logger.error("Step '%s' failed: %s", step.name, exc)
                    state.error = exc
                    break

                if action is StepAction.HALT:
                    logger.debug("Step '%s' halted the build", step.name)
                    break
        finally:
            self._cleanup(started, state)
            self._state = None
        return state

    def _cleanup(self, started: List[Step], state: BuildState) -> None:
        for step in reversed(started):
            try:
                step.cleanup(state)
            except Exception as exc:
                logger.error("Cleanup of step '%s' failed: %s", step.name, exc)
