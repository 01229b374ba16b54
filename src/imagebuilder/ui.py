"""Rich helpers for build feedback in the terminal.

Both helpers degrade to plain logging when no console is attached, which is
the case for library use and tests.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

logger = logging.getLogger(__name__)

_MAX_LINE = 80


@contextmanager
def status(console: Optional[Console], message: str) -> Iterator[None]:
    """Show a spinner labelled ``message`` while a step runs."""

    if console is None:
        yield
        return

    with console.status(message, spinner="dots", spinner_style="cyan"):
        yield


@contextmanager
def live_output(console: Optional[Console], label: str) -> Iterator[Callable[[str], None]]:
    """Yield a callback that displays the latest line of streamed engine output.

    With a console, each line replaces the previous one on a transient row that
    ends as ``Docker <label> complete`` or ``Docker <label> failed``. Without
    one, every line is logged at INFO prefixed with ``[label]``.
    """

    if console is None:
        yield lambda line: logger.info("[%s] %s", label, line)
        return

    progress = Progress(
        SpinnerColumn(spinner_name="dots"),
        TextColumn("{task.description}"),
        TimeElapsedColumn(),
        transient=True,
        console=console,
    )
    task_id = progress.add_task(f"Docker {label}", total=None)
    outcome = "failed"
    with progress:
        try:
            yield lambda line: progress.update(
                task_id, description=line.strip()[:_MAX_LINE]
            )
            outcome = "complete"
        finally:
            progress.update(task_id, description=f"Docker {label} {outcome}")
