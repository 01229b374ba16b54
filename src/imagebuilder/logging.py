"""
Logging setup for imagebuilder.

`configure_logging` installs a single root handler. Engine argument vectors
are only visible at DEBUG level; streamed engine output and step progress are
logged at INFO.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(
    level: int = logging.INFO,
    use_rich: bool = True,
    console: Optional[Console] = None,
) -> None:
    """Configure application logging.

    Args:
        level: Root logging level (default: logging.INFO).
        use_rich: Install a Rich handler with a concise format. When False a
            plain stream handler is used instead, which suits CI logs.
        console: Console the Rich handler writes to, shared with progress
            displays so live output and log lines do not interleave.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(level)

    handler: logging.Handler
    if use_rich:
        handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            enable_link_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    root.addHandler(handler)
