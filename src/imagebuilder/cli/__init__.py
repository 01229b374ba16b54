"""Command-line interface for imagebuilder.

Usage:
    imagebuilder build [--env ENV] [--buildfile PATH] [--debug]
    imagebuilder validate [--env ENV] [--buildfile PATH]
    imagebuilder inspect [--env ENV] [--buildfile PATH]
"""

from .app import app, main

__all__ = ["app", "main"]
